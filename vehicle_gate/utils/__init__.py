# =======================================================================================
# vehicle_gate/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *
from .metrics import GateMetrics

__all__ = [
    "GateAgentError", "AntennaNotConnectedError", "ReconnectLimitExceeded",
    "ConfigurationError", "AuthorizerError", "TagFormatValidator", "GateMetrics",
]
