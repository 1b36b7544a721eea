# =======================================================================================
# vehicle_gate/utils/exceptions.py - Custom Exceptions
# =======================================================================================
class GateAgentError(Exception):
    """Base exception for the vehicle gate agent."""
    pass

class AntennaNotConnectedError(GateAgentError):
    """Raised when a frame is written without a live antenna socket."""
    pass

class ReconnectLimitExceeded(GateAgentError):
    """Raised when the antenna could not be reached within the retry budget."""

    def __init__(self, attempts: int, limit: int):
        self.attempts = attempts
        self.limit = limit
        super().__init__(f"Reconnect limit exceeded ({attempts} attempts, limit {limit})")

class ConfigurationError(GateAgentError):
    """Raised when configuration values cannot be used."""
    pass

class AuthorizerError(GateAgentError):
    """Raised inside an authorizer backend; converted to a TransportFailure at the boundary."""
    pass
