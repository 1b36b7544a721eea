# =======================================================================================
# vehicle_gate/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *

__all__ = [
    "AntennaConfig", "InboundFrame", "ValidationResult", "TagCacheEntry", "CacheStats",
    "Authorized", "Denied", "TransportFailure", "AuthorizationOutcome",
    "VerifyRequest", "VerifyResponse", "RegisterRequest",
    "GateStateResponse", "GateCommandResponse", "HealthResponse", "CacheClearResponse",
    "GateState", "Direction", "FrameKind", "MetricName",
]
