"""Timed attendance session: frame -> descriptor -> match -> ledger.

State machine::

    idle -> initializing -> scanning <-> processing
    any  -> stopped  (start() re-enters initializing)

A daemon timer thread ticks every ``interval_ms``. Ticks are single-flight:
while one detect/match/record run is in flight, further ticks are dropped
rather than queued. Oracle calls run on their own single worker and are bounded
by ``oracle_timeout``; while a timed-out call is still running, later ticks
report ``oracle_busy`` instead of piling up behind it.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .descriptors import Descriptor, DescriptorError, to_descriptor
from .events import EventInfo
from .ledger import AttendanceLedger, AttendanceRecord, LedgerError
from .matcher import match

STATE_IDLE = "idle"
STATE_INITIALIZING = "initializing"
STATE_SCANNING = "scanning"
STATE_PROCESSING = "processing"
STATE_STOPPED = "stopped"

OUTCOME_NO_FACE = "no_face"
OUTCOME_NO_MATCH = "no_match"
OUTCOME_RECORDED = "recorded"
OUTCOME_ALREADY_MARKED = "already_marked"
OUTCOME_FRAME_ERROR = "frame_error"
OUTCOME_ORACLE_ERROR = "oracle_error"
OUTCOME_ORACLE_TIMEOUT = "oracle_timeout"
OUTCOME_ORACLE_BUSY = "oracle_busy"
OUTCOME_STORE_ERROR = "store_error"
OUTCOME_ERROR = "error"
OUTCOME_DROPPED = "dropped"
OUTCOME_STOPPED = "stopped"


class SessionError(RuntimeError):
    """Raised for invalid session lifecycle requests."""


class NoActiveEventError(SessionError):
    """No event was selected and none is active; scanning cannot begin."""


class FrameSource(Protocol):
    def read(self) -> Any:
        ...

    def stop(self) -> None:
        ...


class DescriptorOracle(Protocol):
    def detect(self, frame: Any) -> Optional[Sequence[float]]:
        ...


class RegistryReader(Protocol):
    def list_trained(self) -> List[Tuple[str, Descriptor]]:
        ...


class EventReader(Protocol):
    def get_event(self, event_id: str) -> Optional[EventInfo]:
        ...

    def get_active_event(self) -> Optional[EventInfo]:
        ...


@dataclass(frozen=True)
class SessionConfig:
    """Everything one tick needs; replaced wholesale, never mutated."""

    event: EventInfo
    registry: Tuple[Tuple[str, Descriptor], ...]
    threshold: float


@dataclass
class TickResult:
    outcome: str
    student_id: Optional[str] = None
    distance: Optional[float] = None
    confidence: Optional[float] = None
    record: Optional[AttendanceRecord] = None
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "student_id": self.student_id,
            "distance": self.distance,
            "confidence": self.confidence,
            "record": self.record.to_dict() if self.record else None,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionLoop:
    """Polling driver for one camera feed against the shared ledger."""

    def __init__(
        self,
        *,
        frame_source: FrameSource,
        oracle: DescriptorOracle,
        registry: RegistryReader,
        events: EventReader,
        ledger: AttendanceLedger,
        threshold: float = 0.6,
        interval_ms: int = 500,
        oracle_timeout: float = 2.0,
        descriptor_length: Optional[int] = None,
        broadcaster: Any = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self._frame_source = frame_source
        self._oracle = oracle
        self._registry = registry
        self._events = events
        self._ledger = ledger
        self._threshold = float(threshold)
        self._interval = max(interval_ms, 1) / 1000.0
        self._oracle_timeout = oracle_timeout
        self._descriptor_length = descriptor_length
        self._broadcaster = broadcaster
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._state = STATE_IDLE
        self._config: Optional[SessionConfig] = None
        self._marked: Dict[str, Set[str]] = {}
        self._stop_event = threading.Event()
        self._timer: Optional[threading.Thread] = None
        self._processing_pool: Optional[ThreadPoolExecutor] = None
        self._oracle_pool: Optional[ThreadPoolExecutor] = None
        self._inflight: Optional[Future] = None
        self._oracle_future: Optional[Future] = None
        self._counts: Dict[str, int] = {}
        self._last_result: Optional[TickResult] = None
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    @property
    def config(self) -> Optional[SessionConfig]:
        with self._lock:
            return self._config

    def start(self, event_id: Optional[str] = None) -> SessionConfig:
        """Load registry and event, then begin scanning.

        Raises:
            NoActiveEventError: no event selected and none active
            SessionError: the session is already running
        """
        with self._lock:
            if self._state in (STATE_INITIALIZING, STATE_SCANNING, STATE_PROCESSING):
                raise SessionError(f"Session already {self._state}")
            self._state = STATE_INITIALIZING

        try:
            event = self._load_event(event_id)
            registry = tuple(self._registry.list_trained())
            marked = {record.student_id for record in self._ledger.list_for_event(event.id)}
        except Exception:
            with self._lock:
                self._state = STATE_IDLE
            raise

        with self._lock:
            self._config = SessionConfig(event=event, registry=registry, threshold=self._threshold)
            self._marked = {event.id: marked}
            self._counts = {}
            self._last_result = None
            self._last_error = None
            self._inflight = None
            self._oracle_future = None
            self._stop_event = threading.Event()
            self._processing_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="session-processing")
            self._oracle_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="session-oracle")
            self._state = STATE_SCANNING
            self._timer = threading.Thread(
                target=self._run_timer,
                args=(self._stop_event,),
                name="session-timer",
                daemon=True,
            )
            self._timer.start()
            config = self._config

        self._logger.info(
            "[Session] Scanning for event %s (%s) with %d enrolled students",
            event.name,
            event.id,
            len(registry),
        )
        self._publish("session_status", self.status())
        return config

    def stop(self) -> None:
        """Stop promptly; an in-flight tick may finish but no new one starts."""
        with self._lock:
            previous = self._state
            self._state = STATE_STOPPED
            self._stop_event.set()
            timer = self._timer
            processing_pool = self._processing_pool
            oracle_pool = self._oracle_pool
            inflight = self._inflight
            self._timer = None
            self._processing_pool = None
            self._oracle_pool = None

        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout=self._interval + 1.0)
        if processing_pool is not None:
            processing_pool.shutdown(wait=False)
        if oracle_pool is not None:
            oracle_pool.shutdown(wait=False, cancel_futures=True)

        if inflight is not None and not inflight.done():
            inflight.add_done_callback(lambda _future: self._release_frame_source())
        else:
            self._release_frame_source()

        if previous != STATE_STOPPED:
            self._logger.info("[Session] Stopped (was %s)", previous)
            self._publish("session_status", self.status())

    def select_event(self, event_id: str) -> SessionConfig:
        """Switch the target event; the next tick sees the new config."""
        event = self._load_event(event_id)
        marked = {record.student_id for record in self._ledger.list_for_event(event.id)}
        with self._lock:
            current = self._config
            registry = current.registry if current else tuple(self._registry.list_trained())
            self._config = SessionConfig(event=event, registry=registry, threshold=self._threshold)
            self._marked[event.id] = marked
            config = self._config
        self._logger.info("[Session] Event switched to %s (%s)", event.name, event.id)
        self._publish("session_status", self.status())
        return config

    def reload_registry(self) -> SessionConfig:
        registry = tuple(self._registry.list_trained())
        with self._lock:
            if self._config is None:
                raise SessionError("Session has not been started")
            self._config = SessionConfig(
                event=self._config.event,
                registry=registry,
                threshold=self._config.threshold,
            )
            config = self._config
        self._logger.info("[Session] Registry reloaded: %d enrolled students", len(registry))
        return config

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------
    def _run_timer(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            self.tick()

    def tick(self) -> Optional[Future]:
        """Timer entry point; returns the submitted run or None when dropped."""
        with self._lock:
            if self._state not in (STATE_SCANNING, STATE_PROCESSING) or self._processing_pool is None:
                return None
            if self._inflight is not None and not self._inflight.done():
                self._count(OUTCOME_DROPPED)
                return None
            config = self._config
            self._state = STATE_PROCESSING
            self._inflight = self._processing_pool.submit(self._process, config)
            return self._inflight

    def _process(self, config: SessionConfig) -> TickResult:
        try:
            return self.run_once(config)
        except Exception as exc:
            self._logger.exception("[Session] Tick crashed")
            result = TickResult(OUTCOME_ERROR, message=str(exc))
            self._remember(result, error=str(exc))
            return result
        finally:
            with self._lock:
                if self._state == STATE_PROCESSING:
                    self._state = STATE_SCANNING

    def run_once(self, config: Optional[SessionConfig] = None) -> TickResult:
        """Run one detect -> match -> record pass synchronously."""
        with self._lock:
            if self._state in (STATE_IDLE, STATE_STOPPED):
                return TickResult(OUTCOME_STOPPED, message="Session is not running")
            config = config or self._config
        if config is None:
            raise SessionError("Session has not been started")

        try:
            frame = self._frame_source.read()
        except Exception as exc:
            self._logger.warning("[Session] Frame read failed: %s", exc)
            return self._remember(TickResult(OUTCOME_FRAME_ERROR, message=str(exc)), error=str(exc))

        raw, failure = self._detect(frame)
        if failure is not None:
            return self._remember(failure, error=failure.message)
        if raw is None:
            return self._remember(TickResult(OUTCOME_NO_FACE, message="No face detected"))

        try:
            live = to_descriptor(raw, self._descriptor_length)
        except DescriptorError as exc:
            self._logger.warning("[Session] Oracle returned a malformed descriptor: %s", exc)
            return self._remember(TickResult(OUTCOME_ORACLE_ERROR, message=str(exc)), error=str(exc))

        if not config.registry:
            return self._remember(
                TickResult(OUTCOME_NO_MATCH, message="Face detected - no trained students")
            )

        result = match(live, config.registry, config.threshold)
        if result is None:
            self._logger.debug("[Session] No match among %d enrolled students", len(config.registry))
            return self._remember(TickResult(OUTCOME_NO_MATCH, message="Face detected but not recognized"))

        self._publish(
            "face_recognized",
            {
                "student_id": result.student_id,
                "distance": result.distance,
                "confidence": result.confidence,
                "event_id": config.event.id,
            },
        )

        event_id = config.event.id
        if self._is_marked(event_id, result.student_id):
            return self._remember(
                TickResult(
                    OUTCOME_ALREADY_MARKED,
                    student_id=result.student_id,
                    distance=result.distance,
                    confidence=result.confidence,
                    message="Already marked",
                )
            )

        try:
            outcome = self._ledger.record(
                result.student_id,
                event_id,
                result.confidence,
                self._clock(),
                config.event.start_time,
            )
        except LedgerError as exc:
            self._logger.warning("[Session] Ledger write failed for %s: %s", result.student_id, exc)
            return self._remember(
                TickResult(
                    OUTCOME_STORE_ERROR,
                    student_id=result.student_id,
                    distance=result.distance,
                    confidence=result.confidence,
                    message=str(exc),
                ),
                error=str(exc),
            )

        self._mark(event_id, result.student_id)
        if not outcome.created:
            return self._remember(
                TickResult(
                    OUTCOME_ALREADY_MARKED,
                    student_id=result.student_id,
                    distance=result.distance,
                    confidence=result.confidence,
                    record=outcome.record,
                    message="Already marked",
                )
            )

        self._publish("attendance_recorded", outcome.record.to_dict())
        return self._remember(
            TickResult(
                OUTCOME_RECORDED,
                student_id=result.student_id,
                distance=result.distance,
                confidence=result.confidence,
                record=outcome.record,
                message=f"Recorded as {outcome.record.status}",
            )
        )

    def _detect(self, frame: Any) -> Tuple[Optional[Sequence[float]], Optional[TickResult]]:
        with self._lock:
            pool = self._oracle_pool
            pending = self._oracle_future
            if pool is None:
                return None, TickResult(OUTCOME_STOPPED, message="Session is not running")
            if pending is not None and not pending.done():
                return None, TickResult(OUTCOME_ORACLE_BUSY, message="Previous detection still running")
            try:
                future = pool.submit(self._oracle.detect, frame)
            except RuntimeError as exc:
                return None, TickResult(OUTCOME_STOPPED, message=str(exc))
            self._oracle_future = future

        try:
            return future.result(timeout=self._oracle_timeout), None
        except FutureTimeoutError:
            self._logger.warning("[Session] Oracle timed out after %.2fs", self._oracle_timeout)
            return None, TickResult(OUTCOME_ORACLE_TIMEOUT, message="Face detection timed out")
        except Exception as exc:
            self._logger.warning("[Session] Oracle failed: %s", exc)
            return None, TickResult(OUTCOME_ORACLE_ERROR, message=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load_event(self, event_id: Optional[str]) -> EventInfo:
        if event_id:
            event = self._events.get_event(event_id)
            if event is None:
                raise NoActiveEventError(f"Event {event_id} not found")
            return event
        event = self._events.get_active_event()
        if event is None:
            raise NoActiveEventError("Select an event first")
        return event

    def _is_marked(self, event_id: str, student_id: str) -> bool:
        with self._lock:
            return student_id in self._marked.get(event_id, ())

    def _mark(self, event_id: str, student_id: str) -> None:
        with self._lock:
            self._marked.setdefault(event_id, set()).add(student_id)

    def _count(self, outcome: str) -> None:
        self._counts[outcome] = self._counts.get(outcome, 0) + 1

    def _remember(self, result: TickResult, error: Optional[str] = None) -> TickResult:
        with self._lock:
            self._count(result.outcome)
            self._last_result = result
            if error:
                self._last_error = error
        return result

    def _release_frame_source(self) -> None:
        try:
            self._frame_source.stop()
        except Exception as exc:
            self._logger.debug("[Session] Frame source stop() failed: %s", exc)

    def _publish(self, event_type: str, data: Dict[str, Any]) -> None:
        if self._broadcaster is None:
            return
        self._broadcaster.broadcast_event({"type": event_type, "data": data})

    def status(self) -> Dict[str, Any]:
        with self._lock:
            config = self._config
            last = self._last_result
            return {
                "state": self._state,
                "event": config.event.to_dict() if config else None,
                "registry_size": len(config.registry) if config else 0,
                "threshold": self._threshold,
                "interval_ms": int(self._interval * 1000),
                "counts": dict(self._counts),
                "last_result": last.to_dict() if last else None,
                "last_error": self._last_error,
                "low_light": getattr(self._frame_source, "low_light", None),
            }


__all__ = [
    "SessionLoop",
    "SessionConfig",
    "SessionError",
    "NoActiveEventError",
    "TickResult",
    "FrameSource",
    "DescriptorOracle",
    "RegistryReader",
    "EventReader",
]
