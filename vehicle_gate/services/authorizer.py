# =======================================================================================
# vehicle_gate/services/authorizer.py - External Access-Control Backends
# =======================================================================================
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..config import Config
from ..database import DatabaseManager
from ..models.schemas import (
    AntennaConfig,
    AuthorizationOutcome,
    Authorized,
    Denied,
    RegisterRequest,
    TransportFailure,
    VerifyRequest,
    VerifyResponse,
)
from ..utils.exceptions import AuthorizerError, ConfigurationError

logger = logging.getLogger(__name__)

USER_AGENT = "vehicle-gate/1.0.0"
PERMIT_COLUMN = "PERMITIDO"


class Authorizer(ABC):
    """Client side of the access-control service.

    ``verify`` never raises for transport problems: it answers with a
    ``TransportFailure`` so callers can fail closed. ``register`` reports
    success as a bool and logs its own failures.
    """

    timeout: float

    @abstractmethod
    async def verify(self, tag: str, antenna: AntennaConfig) -> AuthorizationOutcome:
        """Ask whether the tag may pass this antenna."""

    @abstractmethod
    async def register(self, tag: str, antenna: AntennaConfig) -> bool:
        """Record an access in the audit trail."""

    async def close(self) -> None:
        pass

    def _timeout_failure(self) -> TransportFailure:
        return TransportFailure(
            reason=f"timeout after {self.timeout:.1f}s waiting for the access-control service"
        )


class HttpAuthorizer(Authorizer):
    """POST /access/verify and /access/register over HTTP."""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout,
        )

    async def _post(self, path: str, payload: dict) -> dict:
        resp = await self._client.post(path, json=payload)
        if resp.status_code >= 400:
            raise AuthorizerError(f"API error: {resp.status_code} {resp.reason_phrase}")
        try:
            return resp.json()
        except ValueError as e:
            raise AuthorizerError(f"Invalid JSON from {path}: {e}") from e

    async def verify(self, tag: str, antenna: AntennaConfig) -> AuthorizationOutcome:
        payload = VerifyRequest(tagId=tag, deviceId=antenna.device, direction=antenna.direction.value)
        try:
            data = await asyncio.wait_for(
                self._post("/access/verify", payload.model_dump()), timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return self._timeout_failure()
        except AuthorizerError as e:
            return TransportFailure(reason=str(e))
        except httpx.HTTPError as e:
            return TransportFailure(reason=f"transport error: {e}")

        try:
            body = VerifyResponse.model_validate(data)
        except ValidationError:
            logger.warning("[AUTH] Unexpected verify response shape: %r", data)
            return TransportFailure(reason="invalid response from the access-control service")

        if body.authorized:
            return Authorized(reason=body.reason or "authorized by the access-control service")
        return Denied(reason=body.reason or "not authorized")

    async def register(self, tag: str, antenna: AntennaConfig) -> bool:
        payload = RegisterRequest(
            tagId=tag,
            deviceId=antenna.device,
            antennaName=antenna.name,
            direction=antenna.direction.value,
        )
        try:
            await asyncio.wait_for(
                self._post("/access/register", payload.model_dump(mode="json")),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.HTTPError, AuthorizerError) as e:
            logger.error("[REGISTER] Failed to register access for tag %s on %s: %s", tag, antenna.name, e)
            return False
        logger.info("[REGISTER] Access registered for tag %s on %s", tag, antenna.name)
        return True

    async def close(self) -> None:
        await self._client.aclose()


class SqlProcedureAuthorizer(Authorizer):
    """Authorizes through a stored procedure that answers with a PERMITIDO column ('S' = allowed)."""

    def __init__(self, db: DatabaseManager, verify_sql: str, register_sql: str = "", timeout: float = 5.0):
        self.db = db
        self.verify_sql = verify_sql
        self.register_sql = register_sql
        self.timeout = timeout

    @staticmethod
    def _permit_value(row) -> str:
        for key, value in row.items():
            if str(key).upper() == PERMIT_COLUMN:
                return str(value or "").strip().upper()
        return ""

    async def verify(self, tag: str, antenna: AntennaConfig) -> AuthorizationOutcome:
        params = {"tag": tag, "device": antenna.device, "direction": antenna.direction.value}
        try:
            row = await asyncio.wait_for(
                asyncio.to_thread(self.db.fetch_one, self.verify_sql, params), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            return self._timeout_failure()
        except SQLAlchemyError as e:
            return TransportFailure(reason=f"database error: {e}")

        if row is None:
            return TransportFailure(reason="empty response from the database")
        if self._permit_value(row) == "S":
            return Authorized(reason="authorized by the database")
        return Denied(reason="denied by the database")

    async def register(self, tag: str, antenna: AntennaConfig) -> bool:
        if not self.register_sql:
            logger.debug("[REGISTER] No register statement configured; access recorded by the verify procedure")
            return True
        params = {
            "tag": tag,
            "device": antenna.device,
            "direction": antenna.direction.value,
            "antenna": antenna.name,
        }
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.db.execute, self.register_sql, params), timeout=self.timeout
            )
        except (asyncio.TimeoutError, SQLAlchemyError) as e:
            logger.error("[REGISTER] Failed to register access for tag %s on %s: %s", tag, antenna.name, e)
            return False
        return True

    async def close(self) -> None:
        self.db.dispose()


def build_authorizer(settings: Config) -> Authorizer:
    """Pick the authorizer backend named by AUTH_BACKEND."""
    if settings.AUTH_BACKEND == "http":
        return HttpAuthorizer(settings.API_BASE_URL, timeout=settings.API_TIMEOUT)
    if settings.AUTH_BACKEND == "sql":
        return SqlProcedureAuthorizer(
            DatabaseManager.from_config(settings),
            verify_sql=settings.AUTH_SQL_VERIFY,
            register_sql=settings.AUTH_SQL_REGISTER,
            timeout=settings.API_TIMEOUT,
        )
    raise ConfigurationError(f"Unknown AUTH_BACKEND {settings.AUTH_BACKEND!r} (expected 'http' or 'sql')")
