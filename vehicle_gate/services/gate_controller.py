# =======================================================================================
# vehicle_gate/services/gate_controller.py - Gate State Machine
# =======================================================================================
import asyncio
import logging
from typing import Callable, Optional

from ..models.enums import GateState
from ..utils.exceptions import GateAgentError
from ..utils.metrics import GateMetrics
from .frame_codec import RELAY_CLOSE_CMD, RELAY_OPEN_CMD

logger = logging.getLogger(__name__)


class GateController:
    """Drives the gate relay through CLOSED -> OPEN -> CLOSING -> CLOSED.

    Every transition is guarded by the current state, which is what keeps a
    single relay command outstanding on the socket at a time. Frames go out
    through ``send_frame``, the antenna worker's only write path.

    Tag reads arriving while the gate is OPENING or CLOSING, or while it is held
    open by a different tag, are ignored rather than queued.
    """

    def __init__(
        self,
        send_frame: Callable[[bytes], None],
        open_duration: float = 5.0,
        close_settle: float = 1.0,
        metrics: Optional[GateMetrics] = None,
        antenna_id: int = 0,
    ):
        self._send_frame = send_frame
        self.open_duration = open_duration
        self.close_settle = close_settle
        self.metrics = metrics or GateMetrics()
        self.antenna_id = antenna_id

        self._state = GateState.CLOSED
        self._holder: Optional[str] = None
        self._hold_duration = open_duration
        self._auto_close_handle: Optional[asyncio.TimerHandle] = None
        self._settle_handle: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def holder(self) -> Optional[str]:
        """Tag currently holding the gate open, if the gate was opened by a tag."""
        return self._holder

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    def _arm_auto_close(self, delay: float) -> None:
        self._cancel_auto_close()
        loop = asyncio.get_running_loop()
        self._auto_close_handle = loop.call_later(delay, self._on_auto_close)

    def _cancel_auto_close(self) -> None:
        if self._auto_close_handle is not None:
            self._auto_close_handle.cancel()
            self._auto_close_handle = None

    def _cancel_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    def cancel_timers(self) -> None:
        """Drop every pending timer so nothing fires against a dead socket."""
        self._cancel_auto_close()
        self._cancel_settle()

    def reset(self) -> None:
        """Force the known baseline used right after (re)connecting."""
        self.cancel_timers()
        self._state = GateState.CLOSED
        self._holder = None
        self._hold_duration = self.open_duration

    def _on_auto_close(self) -> None:
        self._auto_close_handle = None
        logger.debug("[GATE] Auto-close timer fired (antenna %s)", self.antenna_id)
        self.close_gate()

    def _on_close_settled(self) -> None:
        self._settle_handle = None
        if self._state is GateState.CLOSING:
            self._state = GateState.CLOSED
            logger.info("[GATE] Gate closed (antenna %s)", self.antenna_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def open_gate(self, tag: Optional[str] = None, auto_close: Optional[float] = None) -> bool:
        """Open the gate and arm auto-close. Rejected unless CLOSED."""
        if self._state is not GateState.CLOSED:
            logger.warning(
                "[GATE] Open rejected, gate is %s (antenna %s)", self._state.value, self.antenna_id
            )
            return False

        self._state = GateState.OPENING
        try:
            self._send_frame(RELAY_OPEN_CMD)
        except (GateAgentError, ConnectionError, OSError) as e:
            self._state = GateState.CLOSED
            logger.error("[GATE] Failed to send open command (antenna %s): %s", self.antenna_id, e)
            return False

        self._state = GateState.OPEN
        self._holder = tag
        self._hold_duration = auto_close if auto_close is not None else self.open_duration
        self._arm_auto_close(self._hold_duration)
        self.metrics.increment("OPEN_GATE")
        logger.info(
            "[GATE] Gate opening for %s, auto-close in %.1fs (antenna %s)",
            tag or "manual command", self._hold_duration, self.antenna_id,
        )
        return True

    def close_gate(self) -> bool:
        """Close the gate. Rejected unless OPEN."""
        if self._state is not GateState.OPEN:
            logger.warning(
                "[GATE] Close rejected, gate is %s (antenna %s)", self._state.value, self.antenna_id
            )
            return False

        try:
            self._send_frame(RELAY_CLOSE_CMD)
        except (GateAgentError, ConnectionError, OSError) as e:
            logger.error("[GATE] Failed to send close command (antenna %s): %s", self.antenna_id, e)
            return False

        self._cancel_auto_close()
        self._state = GateState.CLOSING
        self._holder = None
        self.metrics.increment("CLOSE_GATE")
        logger.info("[GATE] Gate closing (antenna %s)", self.antenna_id)

        # CLOSING ends on the closed ack or after the settle delay, whichever comes first
        self._cancel_settle()
        loop = asyncio.get_running_loop()
        self._settle_handle = loop.call_later(self.close_settle, self._on_close_settled)
        return True

    def on_tag_authorized(self, tag: str) -> bool:
        """React to an authorized tag read. Returns True if the gate opened or stayed open for it."""
        self.metrics.increment("AUTHORIZED")

        if self._state is GateState.CLOSED:
            return self.open_gate(tag)

        if self._state is GateState.OPEN and tag == self._holder:
            self._arm_auto_close(self._hold_duration)
            logger.debug(
                "[GATE] Tag %s still in range, auto-close re-armed for %.1fs", tag, self._hold_duration
            )
            return True

        logger.debug("[GATE] Tag %s ignored while gate is %s", tag, self._state.value)
        return False

    def on_closed_ack(self) -> None:
        logger.debug("[STATE] Antenna confirmed gate closed")
        if self._state is GateState.CLOSING:
            self._cancel_settle()
            self._state = GateState.CLOSED
            logger.info("[GATE] Gate closed (antenna %s)", self.antenna_id)

    def on_opened_ack(self) -> None:
        logger.debug("[STATE] Antenna confirmed gate open")
