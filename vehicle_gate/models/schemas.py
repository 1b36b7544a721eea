# =======================================================================================
# vehicle_gate/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import datetime, timezone
from typing import Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, StrictBool
from .enums import Direction, FrameKind

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ========== Antenna ==========
class AntennaConfig(BaseModel):
    """Static description of one antenna. Immutable after load."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Antenna identifier")
    name: str = Field(..., description="Human readable antenna name")
    device: int = Field(..., description="Device id known to the access-control service")
    host: str = Field("", description="Antenna IP address or hostname")
    port: int = Field(0, ge=0, le=65535, description="Antenna TCP port")
    direction: Direction = Field(Direction.ENTRY, description="E = entry, S = exit")

class InboundFrame(BaseModel):
    """One classified frame received from the antenna."""
    kind: FrameKind
    raw_hex: str
    tag_id: Optional[str] = None
    success: Optional[bool] = None

# ========== Tag validation ==========
class ValidationResult(BaseModel):
    tag: str
    is_valid: bool
    reason: str
    timestamp: datetime = Field(default_factory=_utcnow)
    cached: bool = False

class TagCacheEntry(BaseModel):
    tag: str
    validated_at: float         # monotonic seconds
    is_valid: bool

class CacheStats(BaseModel):
    size: int
    capacity: int
    ttl_seconds: float

# ========== Authorizer contract ==========
class Authorized(BaseModel):
    kind: Literal["authorized"] = "authorized"
    reason: str = "authorized"

class Denied(BaseModel):
    kind: Literal["denied"] = "denied"
    reason: str = "not authorized"

class TransportFailure(BaseModel):
    kind: Literal["transport_failure"] = "transport_failure"
    reason: str

AuthorizationOutcome = Union[Authorized, Denied, TransportFailure]

class VerifyRequest(BaseModel):
    tagId: str
    deviceId: int
    direction: str

class VerifyResponse(BaseModel):
    """Body returned by POST /access/verify. Anything else is a transport failure."""
    authorized: StrictBool
    reason: Optional[str] = None

class RegisterRequest(BaseModel):
    tagId: str
    deviceId: int
    antennaName: str
    direction: str
    timestamp: datetime = Field(default_factory=_utcnow)

# ========== Manual control API ==========
class GateStateResponse(BaseModel):
    state: str

class GateCommandResponse(BaseModel):
    success: bool
    message: str

class HealthResponse(BaseModel):
    content: str
    status: str                 # "ok" | "degraded"
    connected: bool
    gateState: str
    reconnectAttempts: int
    cache: CacheStats
    metrics: Dict[str, int] = Field(default_factory=dict)

class CacheClearResponse(BaseModel):
    success: bool
    removed: int
