#!/usr/bin/env python3
"""
Command line host for the ITSM OData adapter.

Runs a single operation over a set of input items, polls a business object
for new or changed records, or serves every operation as MCP tools.
"""

import argparse
import asyncio
import json
import os
import signal
import sys
import traceback
from typing import Any, Dict, List

from dotenv import load_dotenv

from itsm_odata_lib import (
    Credentials, ExecutionContext, ItsmClient, ItsmMCPBridge, JsonFileCursorStore, MemoryCursorStore,
    PollEngine, execute,
)
from itsm_odata_lib.context import pagination_options_from
from itsm_odata_lib.errors import ItsmError, ItsmOperationError
from itsm_odata_lib.error_classifier import classify
from itsm_odata_lib.poller import CONTINUOUS, MANUAL

# Load environment variables from .env file
load_dotenv()


def env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes", "on")


def load_json_argument(value: str, default: Any = None) -> Any:
    """Parse a JSON argument; ``@path`` reads the JSON from a file."""
    if value is None:
        return default
    if value.startswith('@'):
        with open(value[1:], 'r', encoding='utf-8') as f:
            return json.load(f)
    return json.loads(value)


def print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


def resolve_credentials(args) -> Credentials:
    """Priority: command line flag > environment variable > .env file."""
    tenant_url = args.tenant_url or os.getenv("ITSM_TENANT_URL")
    if tenant_url and args.verbose:
        source = "--tenant-url flag" if args.tenant_url else "environment"
        print(f"[VERBOSE] Using tenant URL from {source}.", file=sys.stderr)

    api_key = args.api_key or os.getenv("ITSM_API_KEY")
    allow_unauthorized = args.allow_unauthorized_certs or env_flag("ITSM_ALLOW_UNAUTHORIZED_CERTS")

    if not tenant_url:
        print("ERROR: ITSM tenant URL not provided.", file=sys.stderr)
        print("Provide it via the --tenant-url flag or the ITSM_TENANT_URL environment variable.", file=sys.stderr)
        sys.exit(1)
    if not api_key:
        print("ERROR: ITSM API key not provided.", file=sys.stderr)
        print("Provide it via the --api-key flag or the ITSM_API_KEY environment variable.", file=sys.stderr)
        sys.exit(1)
    if allow_unauthorized and args.verbose:
        print("[VERBOSE] TLS certificate validation is disabled.", file=sys.stderr)

    return Credentials(tenant_url=tenant_url, api_key=api_key, allow_unauthorized_certs=allow_unauthorized)


def report_failure(error: BaseException):
    detail = error.detail if isinstance(error, ItsmOperationError) else classify(error)
    print(f"ERROR: {detail.message}", file=sys.stderr)
    description = detail.joined_description()
    if description:
        print(description, file=sys.stderr)


async def run_operation(args, credentials: Credentials) -> List[Dict[str, Any]]:
    parameters = load_json_argument(args.params, {})
    items = load_json_argument(args.items, None)
    if items is not None and not isinstance(items, list):
        items = [items]
    ctx = ExecutionContext(credentials, parameters=parameters, continue_on_fail=args.continue_on_fail,
                           verbose=args.verbose)
    produced = await execute(ctx, args.resource, args.operation, items)
    return [item.to_dict() for item in produced]


def cursor_store_for(args):
    cursor_file = args.cursor_file or os.getenv("ITSM_CURSOR_FILE")
    if cursor_file:
        if args.verbose:
            print(f"[VERBOSE] Persisting poll cursors in {cursor_file}", file=sys.stderr)
        return JsonFileCursorStore(cursor_file)
    return MemoryCursorStore()


async def run_poll(args, credentials: Credentials):
    engine = PollEngine(
        ItsmClient(credentials, verbose=args.verbose),
        args.business_object,
        trigger_on=args.trigger_on,
        filter=args.filter,
        limit=args.limit,
        strip_null=args.strip_null,
        store=cursor_store_for(args),
        pagination=pagination_options_from(load_json_argument(args.options, {})),
        verbose=args.verbose,
    )

    if args.manual:
        print_json(await engine.poll(MANUAL))
        return

    if args.once:
        records = await engine.poll(CONTINUOUS)
        print_json(records or [])
        return

    async def emit(records):
        print_json(records)
        sys.stdout.flush()

    await engine.run(args.interval, emit)


def print_trace_info(bridge: ItsmMCPBridge):
    """Print the bridge configuration and its registered tools."""
    print("=" * 80)
    print("ITSM MCP Bridge Trace Information")
    print("=" * 80)
    print(f"\nTenant URL: {bridge.credentials.base_url}")
    print(f"MCP Name: {bridge.mcp.name}")
    print(f"TLS validation: {'disabled' if bridge.credentials.allow_unauthorized_certs else 'enabled'}")
    print(f"\nRegistered Tools ({len(bridge.registered_tools)}):")
    for name in sorted(bridge.registered_tools):
        print(f"  - {name}")
    print("=" * 80)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ITSM OData/REST adapter",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--tenant-url", help="Tenant base URL (overrides ITSM_TENANT_URL env var)")
    parser.add_argument("--api-key", help="REST API key (overrides ITSM_API_KEY env var)")
    parser.add_argument("--allow-unauthorized-certs", action="store_true",
                        help="Skip TLS certificate validation (or ITSM_ALLOW_UNAUTHORIZED_CERTS=true)")
    parser.add_argument("-v", "--verbose", "--debug", dest="verbose", action="store_true",
                        help="Enable verbose output to stderr")

    commands = parser.add_subparsers(dest="command", required=True)

    run_cmd = commands.add_parser("run", help="Run one operation over the input items")
    run_cmd.add_argument("resource", help="Resource, e.g. businessObject, relationship, attachment")
    run_cmd.add_argument("operation", help="Operation, e.g. create, get, getAll")
    run_cmd.add_argument("--params", help="Operation parameters as JSON (or @file.json)")
    run_cmd.add_argument("--items", help="Input items as a JSON list (or @file.json)")
    run_cmd.add_argument("--continue-on-fail", action="store_true",
                         help="Record failed items as error items instead of aborting")

    poll_cmd = commands.add_parser("poll", help="Poll a business object for new or updated records")
    poll_cmd.add_argument("business_object", help="Business object name, e.g. Incident")
    poll_cmd.add_argument("--trigger-on", choices=["objectCreated", "objectUpdated"], default="objectCreated")
    poll_cmd.add_argument("--filter", help="Additional OData $filter expression")
    poll_cmd.add_argument("--limit", type=int, help="Maximum records per poll (default: all)")
    poll_cmd.add_argument("--strip-null", action="store_true", help="Remove null-valued fields from records")
    poll_cmd.add_argument("--options", help="Pagination options as JSON, e.g. '{\"pagination\": {...}}'")
    poll_cmd.add_argument("--cursor-file", help="JSON file to persist cursors (overrides ITSM_CURSOR_FILE)")
    poll_cmd.add_argument("--manual", action="store_true", help="Fetch the most recent record to test the setup")
    poll_cmd.add_argument("--interval", type=float, default=60.0, help="Seconds between polls")
    poll_cmd.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")

    serve_cmd = commands.add_parser("serve", help="Serve all operations as MCP tools")
    serve_cmd.add_argument("--trace", action="store_true",
                           help="Initialize the MCP service, print all tools, then exit")
    serve_cmd.add_argument("--cursor-file", help="JSON file to persist poll cursors (overrides ITSM_CURSOR_FILE)")
    return parser


def main():
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()
    credentials = resolve_credentials(args)

    def signal_handler(sig, frame):
        print(f"\n{signal.Signals(sig).name} received, shutting down...", file=sys.stderr)
        sys.exit(0)
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if args.command == "run":
            print_json(asyncio.run(run_operation(args, credentials)))
        elif args.command == "poll":
            asyncio.run(run_poll(args, credentials))
        elif args.command == "serve":
            bridge = ItsmMCPBridge(credentials, verbose=args.verbose, cursor_store=cursor_store_for(args))
            if args.trace:
                print_trace_info(bridge)
                sys.exit(0)
            bridge.run()
    except ItsmError as e:
        report_failure(e)
        sys.exit(1)
    except Exception as e:
        print(f"\n--- FATAL ERROR ---", file=sys.stderr)
        print(f"An unexpected error occurred: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        print("-------------------", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
