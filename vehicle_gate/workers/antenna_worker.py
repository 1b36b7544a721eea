# =======================================================================================
# vehicle_gate/workers/antenna_worker.py - Antenna Connection Supervisor
# =======================================================================================
import asyncio
import logging
import os
from typing import Callable, Coroutine, Optional, Set

from ..config import Config, config
from ..models.enums import FrameKind, GateState
from ..models.schemas import AntennaConfig, InboundFrame
from ..services.authorizer import build_authorizer
from ..services.frame_codec import (
    HEALTHCHECK_CMD,
    RELAY_CLOSE_CMD,
    FrameBuffer,
    classify_frame,
    parse_command,
)
from ..services.gate_controller import GateController
from ..services.tag_validator import TagValidator
from ..utils.exceptions import AntennaNotConnectedError, ReconnectLimitExceeded
from ..utils.metrics import GateMetrics

logger = logging.getLogger(__name__)

READ_CHUNK = 1024


def _terminate_process(exc: BaseException) -> None:
    """Exit hard and let the process manager restart us cold."""
    logger.critical("[SHUTDOWN] Terminating process: %s", exc)
    logging.shutdown()
    os._exit(1)


class SessionState:
    """Per-connection state. Reset in full on every successful connect."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.healthcheck_pending: bool = False
        self.is_reconnecting: bool = False
        self.is_shutting_down: bool = False
        self.destroyed: bool = False
        self.last_activity: float = 0.0
        self.idle_handle: Optional[asyncio.TimerHandle] = None
        self.grace_handle: Optional[asyncio.TimerHandle] = None
        self.provision_task: Optional[asyncio.Task] = None


class AntennaWorker:
    """Keeps one antenna connected and routes its frames.

    The worker owns the TCP socket and is its only writer. Inbound bytes are
    reassembled into frames, classified, and routed either to the gate
    controller or handled here (healthcheck and filter acks). Link health is
    watched with an inactivity timer rather than fixed polling. Every close,
    whatever its cause, goes through one path that counts the retry and
    schedules the reconnect; exceeding the retry budget ends the process.
    """

    def __init__(
        self,
        antenna: AntennaConfig,
        validator: TagValidator,
        *,
        healthcheck_timeout: float = 10.0,
        healthcheck_grace: float = 3.0,
        max_reconnect_attempts: int = 3,
        reconnect_delay: float = 3.0,
        connect_timeout: float = 10.0,
        filter_command: bytes = b"",
        filter_settle: float = 1.0,
        open_duration: float = 5.0,
        close_settle: float = 1.0,
        metrics: Optional[GateMetrics] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ):
        self.antenna = antenna
        self.validator = validator
        self.healthcheck_timeout = healthcheck_timeout
        self.healthcheck_grace = healthcheck_grace
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.filter_command = filter_command
        self.filter_settle = filter_settle
        self.metrics = metrics or GateMetrics()
        self.gate = GateController(
            self.send_frame,
            open_duration=open_duration,
            close_settle=close_settle,
            metrics=self.metrics,
            antenna_id=antenna.id,
        )

        self.session = SessionState()
        self.connection_retry = 0
        self.running = False
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._frames = FrameBuffer()
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._tag_tasks: Set[asyncio.Task] = set()
        self._on_fatal = on_fatal or _terminate_process

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    @property
    def connected(self) -> bool:
        writer = self._writer
        return writer is not None and not self.session.destroyed and not writer.is_closing()

    @property
    def gate_state(self) -> GateState:
        return self.gate.state

    @property
    def reconnect_attempts(self) -> int:
        return self.connection_retry

    @property
    def is_reconnecting(self) -> bool:
        return self.session.is_reconnecting

    # ------------------------------------------------------------------
    # Start / Stop
    # ------------------------------------------------------------------
    def _should_start(self) -> bool:
        """Check if the worker has an antenna to talk to."""
        if not self.antenna.host or not self.antenna.port:
            logger.error(
                "[antenna] Invalid antenna configuration for device %s; worker not started",
                self.antenna.device,
            )
            return False
        return True

    def start(self) -> bool:
        """Start supervising the antenna in a background task."""
        if not self._should_start():
            return False
        if self._task is not None and not self._task.done():
            return True

        self.running = True
        self._task = asyncio.get_running_loop().create_task(self.run())
        self._task.add_done_callback(self._on_task_done)
        logger.info("[antenna] Worker started for %s (%s:%s)", self.antenna.name, self.antenna.host, self.antenna.port)
        return True

    async def stop(self) -> None:
        """Shut the connection down and cancel everything still pending."""
        if self.session.is_shutting_down:
            return
        self.session.is_shutting_down = True
        self.running = False
        logger.warning("[SHUTDOWN] Stopping antenna worker for %s", self.antenna.name)

        self.destroy()
        self._cancel_session_timers()
        self.gate.cancel_timers()
        self.validator.cancel_pending()

        pending = [t for t in (self._task, *self._tag_tasks) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if not isinstance(exc, ReconnectLimitExceeded):
            logger.error("[antenna] Worker crashed", exc_info=exc)
        self._on_fatal(exc)

    def restart(self) -> bool:
        """Drop the current connection; the close path reconnects."""
        if not self.connected:
            return False
        logger.warning("[RESTART] Connection restart requested for %s", self.antenna.name)
        self.destroy()
        return True

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    async def run(self) -> None:
        """Connect, serve, and reconnect until the retry budget is spent."""
        self.running = True
        while self.running:
            await self._connect_once()
            if not self.running:
                break
            self._on_close()
            await asyncio.sleep(self.reconnect_delay)

    async def _connect_once(self) -> None:
        self.session.is_reconnecting = False
        host, port = self.antenna.host, self.antenna.port
        logger.debug("[antenna] Connecting to %s:%s", host, port)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.error("[ERROR] Antenna [%s]: %s", host, e or type(e).__name__)
            return

        self._on_connect(reader, writer)
        try:
            await self._read_loop(reader)
        finally:
            self._teardown()

    def _on_connect(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._cancel_session_timers()
        self.session.reset()
        self.connection_retry = 0
        self._generation += 1
        self._reader, self._writer = reader, writer
        self._frames.clear()
        self.gate.reset()

        self._touch()
        self._arm_idle_timer()
        logger.info("[CONNECTED] RFID antenna %s [IP: %s]", self.antenna.name, self.antenna.host)
        logger.debug("[HEALTHCHECK] Inactivity timeout %.1fs", self.healthcheck_timeout)
        self.session.provision_task = asyncio.get_running_loop().create_task(self._provision())

    async def _provision(self) -> None:
        """Force the gate closed, then apply the read filter once the firmware settles."""
        try:
            self.send_frame(RELAY_CLOSE_CMD)
            await self._writer.drain()
            logger.debug("[SYNC] Gate baseline reset, close command sent")

            if not self.filter_command:
                logger.warning("[MASK] No read filter configured for %s", self.antenna.name)
                return
            # Sent back to back, the antenna drops the second command
            await asyncio.sleep(self.filter_settle)
            logger.debug("[MASK] Applying read filter %s", self.filter_command.hex().upper())
            self.send_frame(self.filter_command)
            await self._writer.drain()
        except (AntennaNotConnectedError, ConnectionError, OSError) as e:
            logger.error("[ERROR] Failed to provision antenna %s: %s", self.antenna.name, e)
            self.destroy()

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                data = await reader.read(READ_CHUNK)
            except (ConnectionError, OSError) as e:
                self._on_error(e)
                break
            if not data:
                break

            self._touch()
            self.session.healthcheck_pending = False
            for raw in self._frames.feed(data):
                try:
                    self._dispatch(classify_frame(raw))
                except Exception:
                    logger.exception("[ERROR] Failed to handle frame %s", raw.hex())

    def _on_close(self) -> None:
        """Single close path: count the retry, or give up."""
        self.gate.cancel_timers()
        if self.session.is_reconnecting:
            return

        self.connection_retry += 1
        if self.connection_retry > self.max_reconnect_attempts:
            logger.critical(
                "[ERROR] Reconnect attempts exceeded for antenna %s (%d > %d)",
                self.antenna.host, self.connection_retry, self.max_reconnect_attempts,
            )
            self.running = False
            raise ReconnectLimitExceeded(self.connection_retry, self.max_reconnect_attempts)

        self.session.is_reconnecting = True
        logger.warning(
            "[DISCONNECTED] Antenna [%s]. Reconnecting in %.1fs (attempt %d/%d)",
            self.antenna.host, self.reconnect_delay, self.connection_retry, self.max_reconnect_attempts,
        )

    def _on_error(self, exc: BaseException) -> None:
        if not self.session.destroyed:
            logger.error("[ERROR] Antenna [%s]: %s", self.antenna.host, exc)
            self.destroy()

    def _teardown(self) -> None:
        self._cancel_session_timers()
        self.gate.cancel_timers()
        writer = self._writer
        self._reader = self._writer = None
        if writer is not None and not writer.is_closing():
            writer.close()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------
    def send_frame(self, frame: bytes) -> None:
        """Write one frame to the antenna. The only place the socket is written."""
        writer = self._writer
        if writer is None or self.session.destroyed or writer.is_closing():
            raise AntennaNotConnectedError(f"Antenna {self.antenna.name} is not connected")
        writer.write(frame)
        self._touch()

    def destroy(self) -> None:
        """Abort the socket. Idempotent; the read loop then runs the close path."""
        if self.session.destroyed or self._writer is None:
            return
        self.session.destroyed = True
        self._writer.transport.abort()

    # ------------------------------------------------------------------
    # Link supervision
    # ------------------------------------------------------------------
    def _touch(self) -> None:
        self.session.last_activity = asyncio.get_running_loop().time()

    def _arm_idle_timer(self, delay: Optional[float] = None) -> None:
        if self.session.idle_handle is not None:
            self.session.idle_handle.cancel()
        loop = asyncio.get_running_loop()
        self.session.idle_handle = loop.call_later(
            self.healthcheck_timeout if delay is None else delay, self._check_idle
        )

    def _check_idle(self) -> None:
        self.session.idle_handle = None
        if self._writer is None:
            return
        idle_for = asyncio.get_running_loop().time() - self.session.last_activity
        if idle_for < self.healthcheck_timeout:
            self._arm_idle_timer(self.healthcheck_timeout - idle_for)
            return
        self._arm_idle_timer()
        self._on_idle_timeout()

    def _on_idle_timeout(self) -> None:
        """No bytes moved for a full interval."""
        if self.gate.state is GateState.OPEN:
            logger.warning("[TIMEOUT] Gate stuck open on %s. Restarting connection.", self.antenna.host)
            self.destroy()
            return

        if self.session.healthcheck_pending:
            logger.error("[TIMEOUT] Antenna %s did not answer the healthcheck. Restarting connection.", self.antenna.host)
            self.destroy()
            return

        try:
            self.send_frame(HEALTHCHECK_CMD)
        except AntennaNotConnectedError as e:
            logger.error("[TIMEOUT] Could not send healthcheck: %s", e)
            self.destroy()
            return

        self.session.healthcheck_pending = True
        logger.warning("[TIMEOUT] Inactivity detected on %s. Healthcheck sent", self.antenna.host)
        if self.session.grace_handle is not None:
            self.session.grace_handle.cancel()
        self.session.grace_handle = asyncio.get_running_loop().call_later(
            self.healthcheck_grace, self._check_healthcheck_answered
        )

    def _check_healthcheck_answered(self) -> None:
        self.session.grace_handle = None
        if self.session.healthcheck_pending:
            logger.error("[ERROR] Antenna %s exceeded the healthcheck response time", self.antenna.host)
            self.destroy()

    def _cancel_session_timers(self) -> None:
        for handle in (self.session.idle_handle, self.session.grace_handle):
            if handle is not None:
                handle.cancel()
        self.session.idle_handle = None
        self.session.grace_handle = None

        task = self.session.provision_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self.session.provision_task = None

    # ------------------------------------------------------------------
    # Frame routing
    # ------------------------------------------------------------------
    def _dispatch(self, frame: InboundFrame) -> None:
        kind = frame.kind
        if kind is FrameKind.HEALTHCHECK_ACK:
            logger.debug("[HEALTHCHECK] Link stable, waiting for reads")
        elif kind is FrameKind.FILTER_ACK:
            if frame.success:
                logger.debug("[MASK] Read filter applied")
            else:
                logger.error("[ERROR] Antenna %s rejected the read filter", self.antenna.host)
                self.destroy()
        elif kind is FrameKind.GATE_CLOSED_ACK:
            self.gate.on_closed_ack()
        elif kind is FrameKind.GATE_OPENED_ACK:
            self.gate.on_opened_ack()
        elif kind is FrameKind.TAG_READ:
            logger.debug("[READ] TAG %s", frame.tag_id)
            self._spawn(self._handle_tag_read(frame.tag_id, self._generation))
        else:
            logger.debug("[UNKNOWN] Unrecognized frame %s", frame.raw_hex)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tag_tasks.add(task)
        task.add_done_callback(self._tag_tasks.discard)
        return task

    async def _handle_tag_read(self, tag: str, generation: int) -> None:
        result = await self.validator.authorize(tag)
        if not result.is_valid:
            logger.warning("[UNAUTHORIZED] TAG %s not authorized: %s", result.tag, result.reason)
            return

        if generation != self._generation or not self.connected:
            logger.warning("[AUTHORIZED] TAG %s authorized after its connection ended; ignored", result.tag)
            return

        logger.info("[AUTHORIZED] TAG %s authorized (%s)", result.tag, result.reason)
        # Only a fresh opening is an access; a re-arm for the same vehicle is not
        opening = self.gate.state is GateState.CLOSED
        if self.gate.on_tag_authorized(result.tag) and opening:
            self._spawn(self.validator.register_access(result.tag, self.antenna))


def build_antenna_worker(settings: Config = config, **overrides) -> AntennaWorker:
    """Wire an antenna worker from configuration."""
    antenna = settings.antenna()
    validator = TagValidator(
        build_authorizer(settings),
        antenna,
        cache_ttl=settings.TAG_CACHE_TTL,
        cache_size=settings.TAG_CACHE_SIZE,
    )
    options = dict(
        healthcheck_timeout=settings.HEALTHCHECK_TIMEOUT,
        healthcheck_grace=settings.HEALTHCHECK_GRACE,
        max_reconnect_attempts=settings.ATTEMPT_RECONNECT,
        reconnect_delay=settings.RECONNECT_DELAY,
        connect_timeout=settings.CONNECT_TIMEOUT,
        filter_command=parse_command(settings.FILTER_DATA),
        filter_settle=settings.FILTER_SETTLE,
        open_duration=settings.GATE_TIMEOUT_TO_CLOSE,
        close_settle=settings.GATE_CLOSE_SETTLE,
        metrics=GateMetrics(settings.INSTANCE_NAME),
    )
    options.update(overrides)
    return AntennaWorker(antenna, validator, **options)
