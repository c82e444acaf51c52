import asyncio
import logging
import time
from typing import Callable, Optional, Set
from .config import settings
from .debounce import DebouncedEmitter, monotonic_ms
from .engine import ChangeClassifier
from .errors import ControllerStateError, HandshakeFailure, RefreshFailure
from .models import (
    CanonicalUpdate,
    ControllerState,
    ControllerStatus,
    LastKnownState,
    Observation,
)
from .presence import PresenceTracker
from .scheduler import CredentialRefreshScheduler

logger = logging.getLogger(__name__)

def wall_clock_ms() -> int:
    return int(time.time() * 1000)

class SyncController:
    """
    Streams the host's player state to the session as canonical updates.

    Lifecycle: IDLE -> STARTING -> ACTIVE -> STOPPING -> IDLE. Observations
    are classified synchronously against the last emitted state; only the
    outbound publish, the credential refresh and the player handshake await.
    """

    def __init__(
        self,
        player,
        channel,
        credentials,
        presence: Optional[PresenceTracker] = None,
        classifier: Optional[ChangeClassifier] = None,
        window_ms: Optional[int] = None,
        refresh_interval_seconds: Optional[float] = None,
        clock: Callable[[], int] = wall_clock_ms,
        emitter_clock: Callable[[], int] = monotonic_ms,
        device_label: Optional[str] = None,
    ):
        self.player = player
        self.channel = channel
        self.credentials = credentials
        self.presence = presence
        self.classifier = classifier or ChangeClassifier()
        self.window_ms = window_ms
        self.clock = clock
        self.emitter_clock = emitter_clock
        self.device_label = device_label or settings.DEVICE_LABEL
        self.scheduler = CredentialRefreshScheduler(
            credentials,
            interval_seconds=refresh_interval_seconds,
            on_failure=self._on_refresh_failure,
        )

        self.state = ControllerState.IDLE
        self.device_id: Optional[str] = None
        self.last_known: Optional[LastKnownState] = None
        self.emitter: Optional[DebouncedEmitter] = None
        self.needs_reauthentication = False
        self.publish_failures = 0
        self.last_publish_at = 0.0

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._generation = 0
        self._background: Set[asyncio.Task] = set()
        self._expiry: Optional[asyncio.Task] = None

    # Lifecycle

    async def start(self):
        if self.state != ControllerState.IDLE:
            raise ControllerStateError(f"Cannot start while {self.state.value}")

        self.state = ControllerState.STARTING
        self.scheduler.start()
        try:
            device_id = await self._handshake()
        except HandshakeFailure:
            self.scheduler.cancel()
            if self.state == ControllerState.STARTING:
                self.state = ControllerState.IDLE
            raise

        if self.state != ControllerState.STARTING:
            # stop() arrived while we were handshaking
            logger.info("Start aborted by stop request")
            await self._disconnect_player()
            return

        self.device_id = device_id
        self.last_known = None
        self.emitter = DebouncedEmitter(self._enqueue, window_ms=self.window_ms, clock=self.emitter_clock)
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._publish_worker(self._queue, self._generation))
        self._unsubscribe = self.player.subscribe(self.on_observation)
        self.state = ControllerState.ACTIVE
        logger.info(f"Hosting from device {device_id}")

    async def stop(self):
        """Publishes the disconnect update and releases everything. Safe to call repeatedly."""
        if self.state in (ControllerState.IDLE, ControllerState.STOPPING):
            return
        if self._abort_pending_start():
            return

        worker = self._begin_teardown()
        try:
            await asyncio.wait_for(asyncio.shield(worker), timeout=settings.STOP_PUBLISH_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Disconnect publish did not finish in time, leaving it in flight")
            self._detach(worker)

        await self._disconnect_player()
        self._finish_teardown()

    def stop_nowait(self):
        """
        Best-effort synchronous teardown for shutdown hooks.

        The disconnect update is queued but not awaited.
        """
        if self.state in (ControllerState.IDLE, ControllerState.STOPPING):
            return
        if self._abort_pending_start():
            return

        worker = self._begin_teardown()
        self._detach(worker)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, disconnect update will not be delivered")
        else:
            self._detach(loop.create_task(self._disconnect_player()))
        self._finish_teardown()

    async def handle_credentials_expired(self):
        """Re-handshakes with the player without broadcasting a disconnect."""
        if self.state != ControllerState.ACTIVE:
            logger.debug(f"Ignoring credential expiry while {self.state.value}")
            return

        logger.info("Credentials expired, reconnecting to player")
        self.state = ControllerState.STARTING
        # A failed refresh is reported by the scheduler; the handshake decides
        await self.scheduler.refresh_once()
        if self.state != ControllerState.STARTING:
            return
        try:
            device_id = await self._handshake()
        except HandshakeFailure:
            self.needs_reauthentication = True
            if self.state == ControllerState.STARTING:
                await self.stop()
            raise

        if self.state == ControllerState.STARTING:
            self.device_id = device_id
            self.state = ControllerState.ACTIVE

    def notify_credentials_expired(self):
        """Callback for collaborators that see their credentials rejected."""
        if self.state != ControllerState.ACTIVE:
            return
        if self._expiry is not None and not self._expiry.done():
            return
        self._expiry = asyncio.get_running_loop().create_task(self._expire_credentials())
        self._detach(self._expiry)

    async def _expire_credentials(self):
        try:
            await self.handle_credentials_expired()
        except HandshakeFailure as e:
            logger.error(f"Could not recover from expired credentials: {e}")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # Observations

    def on_observation(self, obs: Observation):
        if self.state != ControllerState.ACTIVE:
            return
        try:
            result = self.classifier.classify(self.last_known, obs)
            if not result.is_reportable:
                return
            if self.emitter.submit(result.update):
                self.last_known = LastKnownState.from_observation(obs)
        except Exception as e:
            logger.error(f"Failed to handle observation {obs!r}: {e}", exc_info=True)

    # Status

    def status(self) -> ControllerStatus:
        return ControllerStatus(
            state=self.state,
            device_id=self.device_id,
            last_update=self.last_known.update if self.last_known else None,
            last_emitted_at_ms=self.last_known.emitted_at_ms if self.last_known else None,
            last_publish_at=self.last_publish_at,
            forwarded_count=self.emitter.forwarded if self.emitter else 0,
            suppressed_count=self.emitter.suppressed if self.emitter else 0,
            publish_failure_count=self.publish_failures,
            refresh_failure_count=self.scheduler.total_failures,
            listener_count=self.presence.count if self.presence else 0,
            needs_reauthentication=self.needs_reauthentication,
        )

    # Internals

    async def _handshake(self) -> str:
        try:
            device_id = await self.player.connect(self.device_label)
        except HandshakeFailure as e:
            self._note_handshake_failure(e)
            raise
        except Exception as e:
            failure = HandshakeFailure(f"Could not connect to player: {e}", details={"original_error": repr(e)})
            self._note_handshake_failure(failure)
            raise failure from e

        self.needs_reauthentication = False
        return device_id

    def _note_handshake_failure(self, failure: HandshakeFailure):
        if failure.details.get("reason") == "bad_refresh_token":
            self.needs_reauthentication = True
            logger.warning("Player rejected the refresh token, host must log in again")
        else:
            logger.error(f"Handshake failed: {failure}")

    def _abort_pending_start(self) -> bool:
        """Handles stop() while start() is still handshaking. Nothing was published yet."""
        if self.state == ControllerState.STARTING and self._unsubscribe is None:
            self.scheduler.cancel()
            self.state = ControllerState.IDLE
            return True
        return False

    def _begin_teardown(self) -> asyncio.Task:
        self.state = ControllerState.STOPPING
        # Emitter, then timer, then disconnect
        self.emitter.cancel()
        self.scheduler.cancel()

        disconnect = CanonicalUpdate.disconnect(self._current_position_ms())
        logger.info(f"Publishing disconnect at {disconnect.position_ms}ms")
        self._queue.put_nowait(disconnect)
        self._queue.put_nowait(None)

        if self._unsubscribe is not None:
            try:
                self._unsubscribe()
            except Exception as e:
                logger.error(f"Failed to unsubscribe from player: {e}")
            self._unsubscribe = None
        return self._worker

    def _finish_teardown(self):
        self._generation += 1
        self._worker = None
        self._queue = None
        self.last_known = None
        self.device_id = None
        self.state = ControllerState.IDLE
        logger.info("Stopped hosting")

    def _detach(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _disconnect_player(self):
        try:
            await self.player.disconnect()
        except Exception as e:
            logger.error(f"Failed to disconnect player: {e}")

    def _current_position_ms(self) -> int:
        if self.last_known is not None:
            return self.last_known.position.extrapolate(self.clock())
        try:
            return self.player.current_position_ms() or 0
        except Exception as e:
            logger.warning(f"Could not read player position: {e}")
            return 0

    def _enqueue(self, update: CanonicalUpdate):
        self._queue.put_nowait(update)

    async def _publish_worker(self, queue: asyncio.Queue, generation: int):
        # One worker per session keeps publishes in classification order
        while True:
            update = await queue.get()
            if update is None:
                return
            try:
                await self.channel.publish(update)
            except Exception as e:
                if generation == self._generation:
                    self.publish_failures += 1
                    logger.error(f"Failed to publish update for '{update.track_id}': {e}")
                continue
            if generation == self._generation:
                self.last_publish_at = time.time()

    def _on_refresh_failure(self, failure: RefreshFailure, consecutive: int):
        if consecutive >= settings.MAX_REFRESH_FAILURES and not self.needs_reauthentication:
            self.needs_reauthentication = True
            logger.warning(f"{consecutive} refresh failures in a row, host must log in again")
