#!/usr/bin/env python3
"""Unit tests for UpdateClient.

Tests cover:
    - Request shape (method, URL, headers, body)
    - Response classification into outcomes
    - Error body decoding
    - Transport failures
    - Context manager protocol
"""
import asyncio
import json
import socket
import sys

import pytest
from aiohttp import web

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.fleet.api.client import ApiErrorBody, UpdateClient
from src.fleet.api.config import FleetConfig
from src.fleet.api.exceptions import ConnectionError, TimeoutError
from src.fleet.api.outcomes import (
    MalformedResponse,
    StructuredApiError,
    Success,
    TransportError,
)
from src.fleet.api.payload import build_payload

DEVICE = "aa:bb:cc:dd:ee:ff"


def make_config(url: str, **kwargs) -> FleetConfig:
    return FleetConfig(
        endpoint=url,
        auth_token="secret-token",
        hostname="build-host",
        **kwargs,
    )


def json_error(status: int, body):
    async def respond(request):
        return web.json_response(body, status=status)
    return respond


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ============================================
# Error Body Tests
# ============================================

class TestApiErrorBody:
    """Test ApiErrorBody.from_json()."""

    def test_full_body(self):
        body = ApiErrorBody.from_json(
            '{"statusCode": 404, "error": "Not Found", "message": "no such device"}'
        )
        assert body == ApiErrorBody(404, "Not Found", "no such device")

    def test_missing_fields_default(self):
        assert ApiErrorBody.from_json("{}") == ApiErrorBody()

    @pytest.mark.parametrize("text", [
        "not json",
        "[1, 2]",
        '{"statusCode": "404"}',
        '{"message": 12}',
    ])
    def test_invalid_bodies(self, text):
        with pytest.raises(ValueError):
            ApiErrorBody.from_json(text)


# ============================================
# Request Tests
# ============================================

class TestUpdateRequest:
    """Test what the client puts on the wire."""

    @pytest.mark.asyncio
    async def test_put_to_profile_url(self, fleet_api):
        payload = build_payload({"music_app": "v1.4.10"})

        async with UpdateClient(make_config(fleet_api.url)) as client:
            await client.update(DEVICE, payload)

        assert len(fleet_api.requests) == 1
        request = fleet_api.requests[0]
        assert request.method == "PUT"
        assert request.path == f"/profiles/clientId:{DEVICE}"

    @pytest.mark.asyncio
    async def test_headers(self, fleet_api):
        async with UpdateClient(make_config(fleet_api.url)) as client:
            await client.update(DEVICE, build_payload({}))

        headers = fleet_api.requests[0].headers
        assert headers["Content-Type"] == "application/json"
        assert headers["X-Client-ID"] == "build-host"
        assert headers["X-Authentication-Token"] == "secret-token"

    @pytest.mark.asyncio
    async def test_body_is_payload_bytes(self, fleet_api):
        payload = build_payload({"b": "v2.0.0", "a": "v1.0.0"})

        async with UpdateClient(make_config(fleet_api.url)) as client:
            await client.update(DEVICE, payload)

        assert fleet_api.requests[0].body == payload.body

    @pytest.mark.asyncio
    async def test_trailing_slash_on_endpoint(self, fleet_api):
        async with UpdateClient(make_config(fleet_api.url + "/")) as client:
            await client.update(DEVICE, build_payload({}))

        assert fleet_api.paths == [f"/profiles/clientId:{DEVICE}"]


# ============================================
# Classification Tests
# ============================================

class TestClassification:
    """Test mapping of responses onto outcomes."""

    @pytest.mark.asyncio
    async def test_success(self, fleet_api):
        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, Success)
        assert outcome.is_success
        assert outcome.device_id == DEVICE
        assert outcome.describe() == f"{fleet_api.url}/profiles/clientId:{DEVICE} updated."

    @pytest.mark.asyncio
    async def test_success_with_charset(self, fleet_api):
        async def respond(request):
            return web.Response(
                text="{}", headers={"Content-Type": "application/json; charset=utf-8"}
            )
        fleet_api.responder = respond

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, Success)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error,message", [
        (401, "Unauthorized", "invalid token"),
        (404, "Not Found", "unknown device"),
        (409, "Conflict", "profile locked"),
        (500, "Internal Server Error", "database unavailable"),
    ])
    async def test_structured_error(self, fleet_api, status, error, message):
        fleet_api.responder = json_error(
            status, {"statusCode": status, "error": error, "message": message}
        )

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, StructuredApiError)
        assert not outcome.is_success
        assert outcome.status == status
        assert outcome.code == error
        assert outcome.message == message
        assert str(status) in outcome.describe()
        assert message in outcome.describe()
        assert outcome.describe().startswith(f"PUT {fleet_api.url}/profiles/clientId:{DEVICE}: ")

    @pytest.mark.asyncio
    async def test_rejected_token(self, fleet_api):
        fleet_api.responder = json_error(401, {
            "statusCode": 401,
            "error": "Unauthorized",
            "message": "invalid clientId or token supplied",
        })

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, StructuredApiError)
        assert outcome.describe() == (
            f"PUT {fleet_api.url}/profiles/clientId:{DEVICE}: "
            "401 Unauthorized: invalid clientId or token supplied"
        )

    @pytest.mark.asyncio
    async def test_non_200_success_status_is_error(self, fleet_api):
        fleet_api.responder = json_error(201, {"message": "created"})

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, StructuredApiError)
        assert outcome.status == 201

    @pytest.mark.asyncio
    async def test_undecodable_json_error(self, fleet_api):
        async def respond(request):
            return web.Response(status=400, text="{oops", content_type="application/json")
        fleet_api.responder = respond

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, StructuredApiError)
        assert outcome.status == 400
        assert outcome.code == ""
        assert outcome.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 502])
    async def test_non_json_response(self, fleet_api, status):
        async def respond(request):
            return web.Response(status=status, text="<html>proxy</html>", content_type="text/html")
        fleet_api.responder = respond

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, MalformedResponse)
        assert outcome.status == status
        assert outcome.content_type == "text/html"
        assert "Unexpected API result" in outcome.describe()

    @pytest.mark.asyncio
    async def test_outcome_to_dict(self, fleet_api):
        fleet_api.responder = json_error(404, {"error": "Not Found", "message": "gone"})

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        data = outcome.to_dict()
        assert data["kind"] == "StructuredApiError"
        assert data["device_id"] == DEVICE
        assert "gone" in data["message"]


# ============================================
# Transport Tests
# ============================================

class TestTransport:
    """Test failures below HTTP."""

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        config = make_config(f"http://127.0.0.1:{free_port()}")

        async with UpdateClient(config) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, TransportError)
        assert isinstance(outcome.cause, ConnectionError)
        assert outcome.cause.recoverable
        assert outcome.describe().startswith(f"PUT {config.profile_url(DEVICE)}: ")
        assert outcome.to_dict()["cause"]["code"] == "CONNECTION_ERROR"

    @pytest.mark.asyncio
    async def test_timeout(self, fleet_api):
        async def slow(request):
            await asyncio.sleep(1)
            return web.json_response({})
        fleet_api.responder = slow

        config = make_config(fleet_api.url, request_timeout=0.05)
        async with UpdateClient(config) as client:
            outcome = await client.update(DEVICE, build_payload({}))

        assert isinstance(outcome, TransportError)
        assert isinstance(outcome.cause, TimeoutError)
        assert outcome.cause.details["timeout_seconds"] == 0.05


# ============================================
# Context Manager Tests
# ============================================

class TestContextManager:
    """Test the session lifecycle."""

    @pytest.mark.asyncio
    async def test_update_outside_context_raises(self):
        client = UpdateClient(make_config("http://127.0.0.1:1"))

        with pytest.raises(RuntimeError):
            await client.update(DEVICE, build_payload({}))

    @pytest.mark.asyncio
    async def test_session_closed_on_exit(self, fleet_api):
        client = UpdateClient(make_config(fleet_api.url))

        async with client:
            assert client._session is not None
        assert client._session is None

    @pytest.mark.asyncio
    async def test_connection_pool_sized_to_workers(self, fleet_api):
        async with UpdateClient(make_config(fleet_api.url, workers=7)) as client:
            assert client._session.connector.limit == 7

    @pytest.mark.asyncio
    async def test_shared_by_concurrent_calls(self, fleet_api):
        devices = [f"aa:bb:cc:dd:ee:{i:02x}" for i in range(10)]

        async with UpdateClient(make_config(fleet_api.url)) as client:
            outcomes = await asyncio.gather(
                *(client.update(device, build_payload({})) for device in devices)
            )

        assert all(isinstance(outcome, Success) for outcome in outcomes)
        assert sorted(fleet_api.paths) == sorted(
            f"/profiles/clientId:{device}" for device in devices
        )
        assert json.loads(fleet_api.requests[0].body) == {"profile": {"applications": []}}
