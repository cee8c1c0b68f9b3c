"""Shared fixtures: an in-process fake DSM and gateways wired to it."""

from __future__ import annotations

import base64
import copy
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from tokengate.config import GatewaySettings
from tokengate.gateway import Gateway, build_gateway
from tokengate.gateway.credentials import CredentialStore
from tokengate.gateway.schemas import CredentialsFile

ENDPOINT = "https://dsm.test"

BASE_CONFIG: dict[str, Any] = {
    "dsm": {
        "endpoint": ENDPOINT,
        "roles": {
            "admin": {"api_key": "admin-key"},
            "editor": {"api_key": "editor-key"},
            "viewer": {"api_key": "viewer-key"},
        },
        "fields": {
            "name": {"key_id": "kid-name", "detokenize": ["admin", "editor", "viewer"]},
            "phone": {"key_id": "kid-phone", "detokenize": ["admin"]},
            "email": {"key_id": "kid-email", "detokenize": ["admin"]},
            "ssn": {"key_id": "kid-ssn", "detokenize": ["admin", "editor"], "masked": ["editor"]},
            "passport_number": {"key_id": "kid-passport", "detokenize": ["admin"]},
        },
    },
    "app": {
        "users": [
            {"username": "alice", "password": "admin-pw", "role": "admin"},
            {"username": "eddie", "password": "editor-pw", "role": "editor"},
            {"username": "vera", "password": "viewer-pw", "role": "viewer"},
        ],
    },
}

PLAIN_RECORD: dict[str, str] = {
    "name": "Alice Smith",
    "phone": "5551234567",
    "email": "alice@example.com",
    "ssn": "123456789",
    "passport_number": "X1234567",
    "account_number": "ACC-001",
    "service_request": "SR-42",
    "created_by": "alice",
}


def _b64e(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _b64d(value: str) -> str:
    return base64.b64decode(value).decode()


class FakeDSM:
    """Stand-in for the remote service, served through httpx.MockTransport.

    Encrypt turns "abc" into "tok_cba"; decrypt reverses it. A masked decrypt
    returns only the last four characters.
    """

    def __init__(self) -> None:
        self.auth_calls: list[str] = []
        self.batch_calls: list[dict[str, Any]] = []
        self.expire_next = 0  # batch calls answered with 401 "session has expired"
        self.item_expire_next = 0  # batch calls whose items all report expiry
        self.fail_next = 0  # batch calls answered with a bare 500
        self.item_errors: set[str] = set()  # kids answered with {"error": ...}
        self.malformed: set[str] = set()  # kids answered with a non-string value
        self.reject_auth = False

    @staticmethod
    def token_for(plain: str) -> str:
        return "tok_" + plain[::-1]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/sys/v1/session/auth":
            api_key = request.headers["Authorization"].removeprefix("Basic ")
            self.auth_calls.append(api_key)
            if self.reject_auth:
                return httpx.Response(401, json={"message": "Invalid API key"})
            return httpx.Response(200, json={"access_token": f"bearer-{api_key}-{len(self.auth_calls)}"})

        body = json.loads(request.content)
        self.batch_calls.append({
            "path": request.url.path,
            "body": body,
            "authorization": request.headers.get("Authorization"),
        })

        if self.expire_next:
            self.expire_next -= 1
            return httpx.Response(401, json={"message": "Session has expired"})
        if self.fail_next:
            self.fail_next -= 1
            return httpx.Response(500, text="internal failure")
        if self.item_expire_next:
            self.item_expire_next -= 1
            return httpx.Response(200, json=[{"error": "Session has expired"} for _ in body])

        results = []
        for item in body:
            req = item["request"]
            if item["kid"] in self.item_errors:
                results.append({"error": "Input contains characters outside the FPE alphabet"})
            elif item["kid"] in self.malformed:
                results.append({"cipher": 123} if request.url.path.endswith("/encrypt") else {"plain": {"x": 1}})
            elif request.url.path.endswith("/encrypt"):
                results.append({"cipher": _b64e(self.token_for(_b64d(req["plain"])))})
            else:
                plain = _b64d(req["cipher"]).removeprefix("tok_")[::-1]
                if req.get("masked"):
                    plain = plain[-4:]
                results.append({"plain": _b64e(plain)})
        return httpx.Response(200, json=results)

    def kids(self, call: int = -1) -> list[str]:
        return [item["kid"] for item in self.batch_calls[call]["body"]]


@pytest.fixture
def dsm() -> FakeDSM:
    return FakeDSM()


@pytest.fixture
def config() -> dict[str, Any]:
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def plain_record() -> dict[str, str]:
    return dict(PLAIN_RECORD)


@pytest.fixture
def make_credentials() -> Callable[[dict[str, Any]], CredentialStore]:
    def _make(cfg: dict[str, Any]) -> CredentialStore:
        return CredentialStore(CredentialsFile.model_validate(cfg))

    return _make


@pytest.fixture
def make_gateway(dsm: FakeDSM, make_credentials) -> Callable[..., Gateway]:
    def _make(cfg: dict[str, Any] | None = None) -> Gateway:
        http = httpx.AsyncClient(transport=httpx.MockTransport(dsm.handler))
        return build_gateway(
            credentials=make_credentials(cfg if cfg is not None else copy.deepcopy(BASE_CONFIG)),
            gateway_settings=GatewaySettings(dsm_endpoint="", dsm_timeout=5.0),
            http=http,
        )

    return _make


@pytest.fixture
def gateway(make_gateway) -> Gateway:
    return make_gateway()
