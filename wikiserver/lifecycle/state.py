"""Server lifecycle state management."""

import enum
import logging
import threading
import time

from wikiserver.domain.request_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("wikiserver.lifecycle"), {}
)


class LifecycleState(enum.Enum):
    """Phases a server passes through from startup to exit."""

    STARTING = "starting"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class HealthFlag:
    """Thread-safe readiness flag read by the health handler."""

    def __init__(self, healthy: bool = False) -> None:
        self._lock = threading.Lock()
        self._healthy = healthy

    def set(self, healthy: bool) -> None:
        with self._lock:
            self._healthy = healthy

    def is_healthy(self) -> bool:
        with self._lock:
            return self._healthy


class ServerLifecycle:
    """Manages server lifecycle state, health and worker thread tracking."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._listener_closed = threading.Event()
        self._keep_alives_enabled = True
        self._state = LifecycleState.STARTING
        self._workers: set[threading.Thread] = set()
        self.health = HealthFlag()

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    def mark_serving(self) -> None:
        """Record a successful bind and report the server as healthy."""
        with self._lock:
            self._state = LifecycleState.SERVING
        self.health.set(True)
        LIFECYCLE_LOGGER.info(
            "Server marked healthy", extra={"event": "lifecycle_serving"}
        )

    def mark_stopped(self) -> None:
        with self._lock:
            self._state = LifecycleState.STOPPED

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def mark_listener_closed(self) -> None:
        """Record that the accept loop has closed its listening socket."""
        self._listener_closed.set()

    def keep_alives_enabled(self) -> bool:
        """Return False once shutdown has disabled connection reuse."""
        with self._lock:
            return self._keep_alives_enabled

    def register_worker(self, thread: threading.Thread) -> None:
        """Register a worker thread for tracking."""
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.discard(thread)

    def has_worker(self, thread: threading.Thread) -> bool:
        """Return True when the worker is currently tracked."""
        with self._lock:
            return thread in self._workers

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def begin_shutdown(self) -> None:
        """Fail health checks, disable keep-alives and stop accepting."""
        self.health.set(False)
        with self._lock:
            self._state = LifecycleState.SHUTTING_DOWN
            self._keep_alives_enabled = False
        self._stop_event.set()
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown", extra={"event": "shutdown_started"}
        )

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {w for w in self._workers if w.is_alive()}
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={
                        "event": "shutdown_timeout",
                        "remaining_workers": len(active_workers),
                    },
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break

    def shutdown(self, timeout: float) -> bool:
        """Stop accepting and wait for in-flight requests.

        Returns False when the listener or the workers outlive ``timeout``.
        """
        deadline = time.monotonic() + timeout
        self.begin_shutdown()
        if not self._listener_closed.wait(timeout):
            LIFECYCLE_LOGGER.warning(
                "Listener did not close before the shutdown deadline",
                extra={"event": "shutdown_timeout"},
            )
            return False
        return self.wait_for_workers(max(0.0, deadline - time.monotonic()))
