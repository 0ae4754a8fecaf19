#!/usr/bin/env python3
"""
Tests for the HTTP client: authentication, query encoding and error mapping.
"""

import asyncio
import json
import unittest
from unittest.mock import MagicMock, patch

import requests

from itsm_odata_lib.client import ItsmClient, auth_header, encode_query_params
from itsm_odata_lib.error_classifier import classify
from itsm_odata_lib.errors import ItsmRequestError, PayloadValidationError
from itsm_odata_lib.models import Credentials


def make_response(json_body=None, status_code=200, content=None, headers=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = json_body
    if content is None:
        content = json.dumps(json_body).encode("utf-8") if json_body is not None else b""
    response.content = content
    response.text = content.decode("utf-8", errors="replace")
    response.headers = headers or {}
    return response


class TestQueryEncoding(unittest.TestCase):

    def test_spaces_encoded_as_percent_20(self):
        encoded = encode_query_params({"$filter": "Status eq 'Active'", "$top": 5})
        self.assertEqual(encoded, "$filter=Status%20eq%20%27Active%27&$top=5")
        self.assertNotIn("+", encoded)

    def test_dollar_sign_kept(self):
        self.assertTrue(encode_query_params({"$select": "A,B"}).startswith("$select="))


class TestClientConfiguration(unittest.TestCase):

    def test_auth_header_format(self):
        self.assertEqual(auth_header("secret"), {"Authorization": "rest_api_key=secret"})

    def test_session_headers_and_tls(self):
        client = ItsmClient(Credentials(tenant_url="https://tenant.example.com/", api_key="secret"))
        self.assertEqual(client.base_url, "https://tenant.example.com")
        self.assertEqual(client.session.headers["Authorization"], "rest_api_key=secret")
        self.assertEqual(client.session.headers["Accept"], "application/json")
        self.assertTrue(client.session.verify)

    def test_unauthorized_certs_disable_verification(self):
        client = ItsmClient(Credentials(tenant_url="https://t", api_key="k", allow_unauthorized_certs=True))
        self.assertFalse(client.session.verify)

    def test_collection_path(self):
        client = ItsmClient(Credentials(tenant_url="https://t", api_key="k"))
        self.assertEqual(client.collection_path("Incidents"), "/api/odata/businessobject/Incidents")
        self.assertEqual(client.collection_path("Incidents", "42"), "/api/odata/businessobject/Incidents('42')")

    def test_record_path_requires_rec_id(self):
        client = ItsmClient(Credentials(tenant_url="https://t", api_key="k"))
        self.assertEqual(client.record_path("Incidents", "42"), "/api/odata/businessobject/Incidents('42')")
        for rec_id in (None, "", " "):
            with self.subTest(rec_id=rec_id):
                with self.assertRaises(PayloadValidationError):
                    client.record_path("Incidents", rec_id)


class TestRequests(unittest.TestCase):

    def setUp(self):
        self.client = ItsmClient(Credentials(tenant_url="https://tenant.example.com", api_key="k"))

    @patch('requests.Session.request')
    def test_get_records_returns_value_list(self, mock_request):
        mock_request.return_value = make_response({"value": [{"RecId": "1"}]})

        records = asyncio.run(self.client.get_records(
            "/api/odata/businessobject/Incidents", {"$filter": "Status eq 'Active'", "$top": 5}))

        self.assertEqual(records, [{"RecId": "1"}])
        method, url = mock_request.call_args[0]
        self.assertEqual(method, "GET")
        self.assertEqual(url, "https://tenant.example.com/api/odata/businessobject/Incidents"
                              "?$filter=Status%20eq%20%27Active%27&$top=5")
        self.assertEqual(mock_request.call_args[1]["timeout"], 60)

    @patch('requests.Session.request')
    def test_get_records_without_value(self, mock_request):
        mock_request.return_value = make_response({"RecId": "1"})
        self.assertIsNone(asyncio.run(self.client.get_records("/x")))

    @patch('requests.Session.request')
    def test_no_content_response(self, mock_request):
        mock_request.return_value = make_response(status_code=204)
        self.assertEqual(asyncio.run(self.client.request("DELETE", "/x")), {})

    @patch('requests.Session.request')
    def test_non_json_body_returned_as_text(self, mock_request):
        response = make_response(content=b"plain")
        response.json.side_effect = ValueError("no json")
        mock_request.return_value = response
        self.assertEqual(asyncio.run(self.client.request("GET", "/x")), "plain")

    @patch('requests.Session.request')
    def test_http_error_carries_body(self, mock_request):
        response = make_response(status_code=400, reason="Bad Request",
                                 content=b'{"code": "ISM_4000", "description": "Invalid", "message": ["Subject is required"]}')
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("400 Client Error")
        mock_request.return_value = response

        with self.assertRaises(ItsmRequestError) as cm:
            asyncio.run(self.client.request("POST", "/x", json={}))

        self.assertEqual(cm.exception.status_code, 400)
        detail = classify(cm.exception)
        self.assertEqual(detail.message, "Invalid")
        self.assertEqual(detail.description, ["Subject is required"])

    @patch('requests.Session.request')
    def test_network_error_wrapped(self, mock_request):
        mock_request.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(ItsmRequestError) as cm:
            asyncio.run(self.client.request("GET", "/x"))
        self.assertIn("refused", str(cm.exception))

    @patch('requests.Session.request')
    def test_download_attachment_lowercases_headers(self, mock_request):
        mock_request.return_value = make_response(
            content=b"bytes", headers={"Content-Type": "application/pdf"})

        content, headers = asyncio.run(self.client.download_attachment("ATT-1"))

        self.assertEqual(content, b"bytes")
        self.assertEqual(headers, {"content-type": "application/pdf"})
        self.assertEqual(mock_request.call_args[0][1],
                         "https://tenant.example.com/api/rest/Attachment?ID=ATT-1")

    @patch('requests.post')
    def test_upload_sends_multipart_with_api_key(self, mock_post):
        mock_post.return_value = make_response([{"IsUploaded": True}])

        result = asyncio.run(self.client.upload_attachment(
            {"file": ("a.txt", b"hi", "text/plain")}, {"AttachmentType": "File"}))

        self.assertEqual(result, [{"IsUploaded": True}])
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://tenant.example.com/api/rest/Attachment")
        self.assertEqual(kwargs["headers"], {"Authorization": "rest_api_key=k"})
        self.assertTrue(kwargs["verify"])
        self.assertNotIn("Content-Type", kwargs["headers"])


if __name__ == "__main__":
    unittest.main()
