# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for DID documents and HTTPS retrieval (nzcp.keys.did).

HTTP traffic is served by ``httpx.MockTransport``; no network access.

References:
    - did:web method §3.2
    - nzcp.keys.did.HttpDidDocumentRetriever
"""

from __future__ import annotations

import json

import httpx
import pytest

from nzcp.exceptions import DidDocumentFetchError
from nzcp.keys.did import DidDocument, HttpDidDocumentRetriever, did_web_url

from tests.helpers import ISSUER, KEY_REFERENCE


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDidWebUrl:
    """Test did:web to HTTPS address derivation."""

    def test_host_only(self):
        assert did_web_url(ISSUER) == "https://nzcp.identity.health.nz/.well-known/did.json"

    def test_with_path(self):
        assert did_web_url("did:web:example.com:issuers:1") == "https://example.com/issuers/1/did.json"

    def test_percent_encoded_port(self):
        assert did_web_url("did:web:localhost%3A8443") == "https://localhost:8443/.well-known/did.json"

    @pytest.mark.parametrize("issuer", ["did:key:z6Mk", "https://example.com", "did:web:"])
    def test_invalid_issuer(self, issuer):
        with pytest.raises(DidDocumentFetchError):
            did_web_url(issuer)


class TestDidDocumentModel:
    """Test DID document parsing."""

    def test_parses_document(self, make_did_document, public_jwk):
        document = DidDocument.model_validate(make_did_document())

        assert document.id == ISSUER
        assert document.assertion_method == [KEY_REFERENCE]
        method = document.find_verification_method(KEY_REFERENCE)
        assert method.type == "JsonWebKey2020"
        assert method.controller == ISSUER
        assert method.public_key_jwk == public_jwk

    def test_single_string_context(self, make_did_document):
        data = make_did_document()
        data["@context"] = "https://w3.org/ns/did/v1"
        assert DidDocument.model_validate(data).context == ["https://w3.org/ns/did/v1"]

    def test_embedded_assertion_method(self, make_did_document):
        """Embedded assertion methods are referenced by their id."""
        data = make_did_document(assertion_method=[{"id": KEY_REFERENCE, "type": "JsonWebKey2020"}])
        assert DidDocument.model_validate(data).assertion_method == [KEY_REFERENCE]

    def test_unknown_method(self, make_did_document):
        document = DidDocument.model_validate(make_did_document())
        assert document.find_verification_method(f"{ISSUER}#other") is None


class TestHttpRetriever:
    """Test document retrieval over HTTPS."""

    @pytest.mark.asyncio
    async def test_fetches_document(self, make_did_document):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=make_did_document())

        async with _client(handler) as client:
            document = await HttpDidDocumentRetriever(client=client).get_document(ISSUER)

        assert document.id == ISSUER
        assert str(requests[0].url) == "https://nzcp.identity.health.nz/.well-known/did.json"
        assert requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_non_2xx_status(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(DidDocumentFetchError, match="HTTP 404") as exc_info:
                await HttpDidDocumentRetriever(client=client).get_document(ISSUER)
        assert exc_info.value.code == "DID_FETCH_FAILED"

    @pytest.mark.asyncio
    async def test_redirect_not_followed(self):
        def handler(request):
            return httpx.Response(302, headers={"Location": "https://evil.example.com/did.json"})

        async with _client(handler) as client:
            with pytest.raises(DidDocumentFetchError, match="HTTP 302"):
                await HttpDidDocumentRetriever(client=client).get_document(ISSUER)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(DidDocumentFetchError) as exc_info:
                await HttpDidDocumentRetriever(client=client).get_document(ISSUER)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(DidDocumentFetchError, match="timed out"):
                await HttpDidDocumentRetriever(client=client, timeout=1.0).get_document(ISSUER)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with _client(lambda request: httpx.Response(200, content=b"<html>")) as client:
            with pytest.raises(DidDocumentFetchError) as exc_info:
                await HttpDidDocumentRetriever(client=client).get_document(ISSUER)
        assert exc_info.value.code == "DID_PARSE_FAILED"

    @pytest.mark.asyncio
    async def test_missing_id(self):
        body = json.dumps({"verificationMethod": []}).encode()
        async with _client(lambda request: httpx.Response(200, content=body)) as client:
            with pytest.raises(DidDocumentFetchError) as exc_info:
                await HttpDidDocumentRetriever(client=client).get_document(ISSUER)
        assert exc_info.value.code == "DID_PARSE_FAILED"

    @pytest.mark.asyncio
    async def test_oversize_body(self):
        body = b" " * 70000 + b"{}"
        async with _client(lambda request: httpx.Response(200, content=body)) as client:
            with pytest.raises(DidDocumentFetchError, match="exceeds"):
                await HttpDidDocumentRetriever(client=client).get_document(ISSUER)
