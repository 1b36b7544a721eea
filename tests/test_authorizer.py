"""Tests for the access-control backends."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy import create_engine

from vehicle_gate.database import DatabaseManager
from vehicle_gate.models.schemas import AntennaConfig, Authorized, Denied, TransportFailure
from vehicle_gate.services.authorizer import (
    Authorizer,
    HttpAuthorizer,
    SqlProcedureAuthorizer,
    build_authorizer,
)
from vehicle_gate.utils.exceptions import ConfigurationError

BASE_URL = "http://access.test"

VERIFY_SQL = (
    "SELECT CASE WHEN :tag = '0005624566' AND :device = 7 AND :direction = 'E' "
    "THEN 'S' ELSE 'N' END AS PERMITIDO"
)


def _http_authorizer(handler, timeout: float = 1.0) -> HttpAuthorizer:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpAuthorizer(BASE_URL, timeout=timeout, client=client)


class TestAuthorizerContract:
    """Tests for the backend base class."""

    def test_incomplete_backend_rejected(self) -> None:
        """Test a backend without register cannot be created."""

        class VerifyOnly(Authorizer):
            async def verify(self, tag, antenna):
                return Authorized()

        with pytest.raises(TypeError):
            VerifyOnly()


class TestHttpAuthorizer:
    """Tests for the HTTP backend."""

    @pytest.mark.asyncio
    async def test_verify_authorized(self, antenna: AntennaConfig) -> None:
        """Test the request body and an authorized answer."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"authorized": True})

        outcome = await _http_authorizer(handler).verify("0005624566", antenna)

        assert isinstance(outcome, Authorized)
        assert seen["path"] == "/access/verify"
        assert seen["body"] == {"tagId": "0005624566", "deviceId": 7, "direction": "E"}

    @pytest.mark.asyncio
    async def test_verify_denied_with_reason(self, antenna: AntennaConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"authorized": False, "reason": "expired"})

        outcome = await _http_authorizer(handler).verify("0005624566", antenna)
        assert isinstance(outcome, Denied)
        assert outcome.reason == "expired"

    @pytest.mark.asyncio
    async def test_verify_denied_default_reason(self, antenna: AntennaConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"authorized": False})

        outcome = await _http_authorizer(handler).verify("0005624566", antenna)
        assert outcome.reason == "not authorized"

    @pytest.mark.asyncio
    async def test_verify_server_error(self, antenna: AntennaConfig) -> None:
        """Test a non-2xx status is a transport failure, not a denial."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        outcome = await _http_authorizer(handler).verify("0005624566", antenna)
        assert isinstance(outcome, TransportFailure)
        assert "503" in outcome.reason

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"not json", b'{"authorized": "yes"}', b"{}"])
    async def test_verify_malformed_body(self, antenna: AntennaConfig, body: bytes) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body)

        outcome = await _http_authorizer(handler).verify("0005624566", antenna)
        assert isinstance(outcome, TransportFailure)

    @pytest.mark.asyncio
    async def test_verify_timeout(self, antenna: AntennaConfig) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"authorized": True})

        outcome = await _http_authorizer(handler, timeout=0.05).verify("0005624566", antenna)
        assert isinstance(outcome, TransportFailure)
        assert outcome.reason.startswith("timeout")

    @pytest.mark.asyncio
    async def test_verify_connection_error(self, antenna: AntennaConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        outcome = await _http_authorizer(handler).verify("0005624566", antenna)
        assert isinstance(outcome, TransportFailure)
        assert "connection refused" in outcome.reason

    @pytest.mark.asyncio
    async def test_register(self, antenna: AntennaConfig) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={})

        assert await _http_authorizer(handler).register("0005624566", antenna) is True
        assert seen["path"] == "/access/register"
        assert seen["body"]["antennaName"] == "ANTENNA1"
        assert "timestamp" in seen["body"]

    @pytest.mark.asyncio
    async def test_register_failure(self, antenna: AntennaConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        assert await _http_authorizer(handler).register("0005624566", antenna) is False


class TestSqlProcedureAuthorizer:
    """Tests for the stored-procedure backend against SQLite."""

    @pytest.fixture
    def db(self) -> DatabaseManager:
        return DatabaseManager(create_engine("sqlite://"))

    @pytest.mark.asyncio
    async def test_permitted(self, db: DatabaseManager, antenna: AntennaConfig) -> None:
        outcome = await SqlProcedureAuthorizer(db, VERIFY_SQL).verify("0005624566", antenna)
        assert isinstance(outcome, Authorized)

    @pytest.mark.asyncio
    async def test_not_permitted(self, db: DatabaseManager, antenna: AntennaConfig) -> None:
        outcome = await SqlProcedureAuthorizer(db, VERIFY_SQL).verify("0001111111", antenna)
        assert isinstance(outcome, Denied)

    @pytest.mark.asyncio
    async def test_no_row(self, db: DatabaseManager, antenna: AntennaConfig) -> None:
        authorizer = SqlProcedureAuthorizer(db, "SELECT 'S' AS PERMITIDO WHERE 1 = 0")
        outcome = await authorizer.verify("0005624566", antenna)
        assert isinstance(outcome, TransportFailure)

    @pytest.mark.asyncio
    async def test_database_error(self, db: DatabaseManager, antenna: AntennaConfig) -> None:
        authorizer = SqlProcedureAuthorizer(db, "SELECT PERMITIDO FROM missing_table")
        outcome = await authorizer.verify("0005624566", antenna)
        assert isinstance(outcome, TransportFailure)
        assert outcome.reason.startswith("database error")

    @pytest.mark.asyncio
    async def test_register_without_statement(self, db: DatabaseManager, antenna: AntennaConfig) -> None:
        assert await SqlProcedureAuthorizer(db, VERIFY_SQL).register("0005624566", antenna) is True

    @pytest.mark.asyncio
    async def test_register_statement(self, db: DatabaseManager, antenna: AntennaConfig) -> None:
        authorizer = SqlProcedureAuthorizer(
            db, VERIFY_SQL, register_sql="SELECT :tag, :device, :direction, :antenna"
        )
        assert await authorizer.register("0005624566", antenna) is True


class TestBuildAuthorizer:
    """Tests for backend selection."""

    def _settings(self, backend: str) -> SimpleNamespace:
        return SimpleNamespace(
            AUTH_BACKEND=backend,
            API_BASE_URL=BASE_URL,
            API_TIMEOUT=2.0,
            DB_URL="sqlite://",
            DB_POOL_SIZE=1,
            DB_MAX_OVERFLOW=0,
            AUTH_SQL_VERIFY=VERIFY_SQL,
            AUTH_SQL_REGISTER="",
        )

    @pytest.mark.asyncio
    async def test_http(self) -> None:
        authorizer = build_authorizer(self._settings("http"))
        assert isinstance(authorizer, HttpAuthorizer)
        assert authorizer.timeout == 2.0
        await authorizer.close()

    def test_unknown_backend(self) -> None:
        with pytest.raises(ConfigurationError):
            build_authorizer(self._settings("ldap"))
