# =======================================================================================
# vehicle_gate/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
MetricName = Literal["AUTHORIZED", "OPEN_GATE", "CLOSE_GATE"]

class GateState(Enum):
    """Physical gate states, owned by the gate controller."""
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"

class Direction(Enum):
    """Direction of travel watched by an antenna."""
    ENTRY = "E"
    EXIT = "S"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        """Accept the wire codes (E/S) as well as the names (entry/exit)."""
        normalized = (value or "").strip().upper()
        for member in cls:
            if normalized in (member.value, member.name):
                return member
        raise ValueError(f"Unknown antenna direction: {value!r}")

class FrameKind(Enum):
    """Inbound frame classes reported by the antenna."""
    HEALTHCHECK_ACK = "healthcheck_ack"
    FILTER_ACK = "filter_ack"
    GATE_CLOSED_ACK = "gate_closed_ack"
    GATE_OPENED_ACK = "gate_opened_ack"
    TAG_READ = "tag_read"
    UNKNOWN = "unknown"
