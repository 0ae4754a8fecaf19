"""
HTTP client for the ITSM OData/REST API with API-key authentication.
"""

import asyncio
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode
import requests

from .constants import ATTACHMENT_PATH, ODATA_BUSINESS_OBJECT_PATH
from .errors import ItsmRequestError, PayloadValidationError
from .models import Credentials


def encode_query_params(params):
    """Encode query parameters properly for OData compatibility.

    OData servers don't accept '+' for spaces in URL parameters. They require
    '%20' according to RFC 3986.
    """
    encoded = urlencode(params, doseq=True, safe='$')
    return encoded.replace('+', '%20')


def auth_header(api_key: str) -> Dict[str, str]:
    return {'Authorization': f"rest_api_key={api_key}"}


class ItsmClient:
    """Client for the ITSM service. Blocking requests run in worker threads."""

    def __init__(self, credentials: Credentials, verbose: bool = False, timeout: int = 60):
        self.credentials = credentials
        self.base_url = credentials.base_url
        self.verbose = verbose
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'ITSM-OData-Adapter/1.0',
            'Content-Type': 'application/json',
        })
        self.session.headers.update(auth_header(credentials.api_key))
        # Self-signed tenants need certificate validation switched off
        self.session.verify = not credentials.allow_unauthorized_certs

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Client VERBOSE] {message}", file=sys.stderr)

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def collection_path(self, collection: str, rec_id: Optional[str] = None) -> str:
        path = f"{ODATA_BUSINESS_OBJECT_PATH}/{collection}"
        if rec_id is not None:
            path += f"('{rec_id}')"
        return path

    def record_path(self, collection: str, rec_id: Optional[str]) -> str:
        """Path of one record; never falls back to the whole collection."""
        if rec_id is None or not str(rec_id).strip():
            raise PayloadValidationError('Missing required parameter "recId"')
        return self.collection_path(collection, rec_id)

    def _make_request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Internal helper to make requests with OData-safe query encoding."""
        if 'params' in kwargs:
            params = kwargs.pop('params')
            if params:
                encoded_params = encode_query_params(params)
                url = f"{url}&{encoded_params}" if '?' in url else f"{url}?{encoded_params}"

        kwargs.setdefault('timeout', self.timeout)
        self._log_verbose(f"Requesting: {method} {url}")
        try:
            return self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            self._log_verbose(f"Request failed with exception: {e}")
            raise ItsmRequestError(f"Request to {url} failed: {e}") from e

    def _raise_for_status(self, response: requests.Response):
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as http_err:
            print(f"ERROR: ITSM HTTP Error: {response.status_code} {response.reason}", file=sys.stderr)
            raise ItsmRequestError(
                f"Request failed ({response.status_code}): {response.reason}",
                status_code=response.status_code,
                response_body=response.content,
            ) from http_err

    def _parse_response(self, response: requests.Response) -> Any:
        """Raise on HTTP errors, otherwise decode the JSON body."""
        self._raise_for_status(response)

        # PUT/DELETE/PATCH commonly answer 204
        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            self._log_verbose(f"Warning: Non-JSON response received (Status: {response.status_code}).")
            return response.text

    async def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                      json: Any = None, headers: Optional[Dict[str, str]] = None) -> Any:
        """Send a JSON request and return the decoded response body."""
        kwargs: Dict[str, Any] = {'params': params}
        if json is not None:
            kwargs['json'] = json
        if headers:
            kwargs['headers'] = headers
        response = await asyncio.to_thread(self._make_request, method, self.url(path), **kwargs)
        return self._parse_response(response)

    async def get_text(self, path: str, headers: Optional[Dict[str, str]] = None) -> str:
        """GET a non-JSON document, e.g. a $metadata XML file."""
        response = await asyncio.to_thread(self._make_request, 'GET', self.url(path), headers=headers)
        self._raise_for_status(response)
        return response.text

    async def get_records(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[List[Dict[str, Any]]]:
        """GET an OData collection and return its ``value`` list (None if absent)."""
        response = await self.request('GET', path, params=params)
        if isinstance(response, dict) and isinstance(response.get('value'), list):
            return response['value']
        return None

    async def download_attachment(self, attachment_id: str) -> Tuple[bytes, Dict[str, str]]:
        """Fetch attachment bytes together with the response headers."""
        response = await asyncio.to_thread(
            self._make_request, 'GET', self.url(ATTACHMENT_PATH),
            params={'ID': attachment_id}, headers={'Accept': '*/*'}
        )
        self._raise_for_status(response)
        return response.content, {key.lower(): value for key, value in response.headers.items()}

    def _post_multipart(self, url: str, files: Dict[str, Any], data: Dict[str, Any]) -> requests.Response:
        # The session carries a JSON Content-Type, so uploads go out on their own
        # request with the API key header set explicitly.
        self._log_verbose(f"Requesting: POST {url} (multipart)")
        try:
            return requests.post(
                url,
                files=files,
                data=data,
                headers=auth_header(self.credentials.api_key),
                verify=not self.credentials.allow_unauthorized_certs,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ItsmRequestError(f"Upload to {url} failed: {e}") from e

    async def upload_attachment(self, files: Dict[str, Any], data: Dict[str, Any]) -> Any:
        response = await asyncio.to_thread(self._post_multipart, self.url(ATTACHMENT_PATH), files, data)
        return self._parse_response(response)
