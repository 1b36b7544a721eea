# =======================================================================================
# vehicle_gate/services/frame_codec.py - Antenna Wire Protocol
# =======================================================================================
"""
Frames exchanged with the antenna look like::

    CF | addr | cmd (2 bytes) | len | data (len bytes) | trailer (2 bytes)

Outbound commands are fixed constants with the trailer already baked in.
Inbound frames are classified by their hex prefix.
"""
import logging
from typing import List, Tuple

from ..models.enums import FrameKind
from ..models.schemas import InboundFrame
from ..utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

HEALTHCHECK_CMD = bytes.fromhex("CFFF0050000726")
RELAY_OPEN_CMD = bytes.fromhex("CFFF007702020AF27C")
RELAY_CLOSE_CMD = bytes.fromhex("CFFF0077020100774E")

FRAME_HEADER = 0xCF
_HEADER_SIZE = 5    # CF + addr + cmd(2) + len
_TRAILER_SIZE = 2

# Checked in order; the first matching prefix wins.
_PREFIXES: Tuple[Tuple[str, FrameKind], ...] = (
    ("cf000050", FrameKind.HEALTHCHECK_ACK),
    ("cf000073", FrameKind.FILTER_ACK),
    ("cf000077020001", FrameKind.GATE_CLOSED_ACK),
    ("cf00007703", FrameKind.GATE_OPENED_ACK),
    ("cf00000112", FrameKind.TAG_READ),
)
_FILTER_OK_PREFIX = "cf000073020001"
_KNOWN_STARTS: Tuple[bytes, ...] = tuple(bytes.fromhex(prefix) for prefix, _ in _PREFIXES)


def parse_command(value: str) -> bytes:
    """Parse a configured hex command such as FILTER_DATA."""
    cleaned = "".join((value or "").split())
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise ConfigurationError(f"Invalid hex command {value!r}: {e}") from e


def extract_tag_id(hex_frame: str) -> str:
    """Tag id is "0" followed by the 9 hex chars ending 4 chars before the frame end."""
    return "0" + hex_frame[-13:-4]


def classify_frame(data: bytes) -> InboundFrame:
    """Classify one complete inbound frame."""
    hex_frame = data.hex()
    for prefix, kind in _PREFIXES:
        if not hex_frame.startswith(prefix):
            continue
        if kind is FrameKind.FILTER_ACK:
            return InboundFrame(
                kind=kind, raw_hex=hex_frame, success=hex_frame.startswith(_FILTER_OK_PREFIX)
            )
        if kind is FrameKind.TAG_READ:
            return InboundFrame(kind=kind, raw_hex=hex_frame, tag_id=extract_tag_id(hex_frame))
        return InboundFrame(kind=kind, raw_hex=hex_frame)
    return InboundFrame(kind=FrameKind.UNKNOWN, raw_hex=hex_frame)


class FrameBuffer:
    """Reassembles antenna frames from arbitrary TCP segments."""

    def __init__(self):
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()

    def feed(self, data: bytes) -> List[bytes]:
        """Append received bytes and return every frame now complete."""
        self._buffer.extend(data)
        frames: List[bytes] = []

        while self._buffer:
            start = self._buffer.find(FRAME_HEADER)
            if start < 0:
                self._buffer.clear()
                break
            if start:
                del self._buffer[:start]

            if len(self._buffer) < _HEADER_SIZE:
                break
            total = _HEADER_SIZE + self._buffer[4] + _TRAILER_SIZE
            # The length byte of a header the antenna never sends is not trusted:
            # resync on the first known frame start inside the claimed frame
            if not self._buffer.startswith(_KNOWN_STARTS):
                resync = self._find_known_start(min(total, len(self._buffer)))
                if resync > 0:
                    logger.debug("[FRAME] Discarding %s before a known frame", self._buffer[:resync].hex())
                    del self._buffer[:resync]
                    continue
            if len(self._buffer) < total:
                break

            frames.append(bytes(self._buffer[:total]))
            del self._buffer[:total]

        return frames

    def _find_known_start(self, end: int) -> int:
        """Offset of the first known frame start after offset 0 and before ``end``, or -1."""
        hits = [self._buffer.find(start, 1, end) for start in _KNOWN_STARTS]
        hits = [hit for hit in hits if hit > 0]
        return min(hits) if hits else -1
