"""
MCP bridge exposing the ITSM operations, the poll engine and discovery as tools.
"""

import inspect
import json
import sys
import traceback
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastmcp import FastMCP

from . import discovery
from .client import ItsmClient
from .context import ExecutionContext, pagination_options_from
from .dispatcher import HANDLERS, execute
from .error_classifier import classify
from .errors import ItsmError, ItsmOperationError
from .models import Credentials
from .poller import CONTINUOUS, MANUAL, CursorStore, MemoryCursorStore, PollEngine


def _snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append('_')
            out.append(ch.lower())
        else:
            out.append(ch)
    return ''.join(out).lstrip('_')


class ItsmMCPBridge:
    """Bridge between the ITSM service and MCP."""

    def __init__(self, credentials: Credentials, mcp_name: str = "itsm-odata", verbose: bool = False,
                 cursor_store: Optional[CursorStore] = None, tool_prefix: str = "itsm_"):
        self.credentials = credentials
        self.verbose = verbose
        self.tool_prefix = tool_prefix
        self.cursor_store = cursor_store or MemoryCursorStore()
        self.client = ItsmClient(credentials, verbose=verbose)
        self.mcp = FastMCP(name=mcp_name)
        self.registered_tools: List[str] = []

        self._log_verbose("Registering MCP Tools...")
        self._register_tools()
        self._log_verbose(f"{len(self.registered_tools)} MCP Tools Registered.")

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Bridge VERBOSE] {message}", file=sys.stderr)

    def _make_tool_name(self, base_name: str) -> str:
        return f"{self.tool_prefix}{base_name}"

    def _register(self, tool_name: str, doc: str, logic: Callable[..., Awaitable[Any]]):
        """Wrap ``logic`` so failures come back as a JSON error document, then register it."""
        async def tool(**kwargs) -> str:
            try:
                result = await logic(**kwargs)
            except ItsmError as e:
                detail = e.detail if isinstance(e, ItsmOperationError) else classify(e)
                print(f"ERROR: Error in tool {tool_name}: {detail.message}", file=sys.stderr)
                return json.dumps({'error': detail.message, 'details': detail.description}, indent=2)
            except Exception as e:
                err_msg = f"Error in tool {tool_name}: {e}"
                print(f"ERROR: {err_msg}", file=sys.stderr)
                if self.verbose:
                    traceback.print_exc(file=sys.stderr)
                return json.dumps({'error': err_msg}, indent=2)
            return json.dumps(result, indent=2, default=str)

        # FastMCP derives the tool schema from the signature of the function it is given
        tool.__signature__ = inspect.signature(logic).replace(return_annotation=str)
        tool.__annotations__ = dict(getattr(logic, '__annotations__', {}), **{'return': str})
        tool.__name__ = tool_name
        tool.__doc__ = doc
        self.mcp.tool(name=tool_name)(tool)
        self.registered_tools.append(tool_name)
        self._log_verbose(f"Registered tool: {tool_name}")

    def _context(self, parameters: Optional[Dict[str, Any]], continue_on_fail: bool) -> ExecutionContext:
        return ExecutionContext(self.credentials, parameters=parameters or {}, client=self.client,
                                continue_on_fail=continue_on_fail, verbose=self.verbose)

    def _register_operation_tools(self):
        for resource, operation in HANDLERS:
            def make_logic(res, op):
                async def logic(parameters: Optional[Dict[str, Any]] = None,
                                items: Optional[List[Dict[str, Any]]] = None,
                                continue_on_fail: bool = False):
                    ctx = self._context(parameters, continue_on_fail)
                    produced = await execute(ctx, res, op, items)
                    return [item.to_dict() for item in produced]
                return logic

            tool_name = self._make_tool_name(f"{_snake(resource.value)}_{_snake(operation.value)}")
            doc = (f"Run the {operation.value} operation on the {resource.value} resource. "
                   f"'parameters' holds the operation parameters (businessObject, recId, filter, ...), "
                   f"'items' the optional input items.")
            self._register(tool_name, doc, make_logic(resource, operation))

    def _register_poll_tool(self):
        async def logic(business_object: str, trigger_on: str = "objectCreated",
                        filter: Optional[str] = None, limit: Optional[int] = None,
                        strip_null: bool = False, manual: bool = False,
                        options: Optional[Dict[str, Any]] = None):
            engine = PollEngine(
                self.client, business_object, trigger_on=trigger_on, filter=filter, limit=limit,
                strip_null=strip_null, store=self.cursor_store,
                pagination=pagination_options_from(options or {}), verbose=self.verbose,
            )
            records = await engine.poll(MANUAL if manual else CONTINUOUS)
            return {'records': records or [], 'newData': records is not None,
                    'cursor': engine.cursor().last_time_checked}

        self._register(self._make_tool_name("poll"),
                       "Poll a business object for records created or updated since the last poll.", logic)

    def _register_discovery_tools(self):
        async def list_fields(business_object: str):
            return await discovery.get_object_fields(self.client, business_object)

        async def saved_searches(business_object: str):
            return [{'name': s.display_name, 'value': s.value}
                    for s in await discovery.get_saved_searches(self.client, business_object)]

        async def employees(query: Optional[str] = None):
            return [o.model_dump() for o in await discovery.get_employees(self.client, query)]

        async def subscriptions(user_id: str, query: Optional[str] = None):
            return [o.model_dump() for o in await discovery.get_subscriptions(self.client, user_id, query)]

        self._register(self._make_tool_name("list_fields"),
                       "List the field names of a business object.", list_fields)
        self._register(self._make_tool_name("saved_searches"),
                       "List the saved searches of a business object as name|actionId values.", saved_searches)
        self._register(self._make_tool_name("employees"),
                       "Find employees by display name.", employees)
        self._register(self._make_tool_name("subscriptions"),
                       "List request offerings available to a user.", subscriptions)

    def _register_service_info_tool(self):
        async def service_info():
            return {
                'tenant_url': self.credentials.base_url,
                'operations': [{'resource': r.value, 'operation': o.value} for r, o in HANDLERS],
                'registered_tools': self.registered_tools,
            }

        self._register(self._make_tool_name("service_info"),
                       "Describe the configured ITSM tenant and the available tools.", service_info)

    def _register_tools(self):
        self._register_service_info_tool()
        self._register_operation_tools()
        self._register_poll_tool()
        self._register_discovery_tools()

        if self.verbose:
            print("\n--- Registered Tools Summary ---", file=sys.stderr)
            for name in self.registered_tools:
                print(f"- {name}", file=sys.stderr)
            print("-------------------------------\n", file=sys.stderr)

    def run(self):
        """Run the MCP server."""
        self._log_verbose(f"Starting ITSM MCP bridge for tenant: {self.credentials.base_url}")
        self._log_verbose(f"MCP Server Name: {self.mcp.name}")
        self.mcp.run()
