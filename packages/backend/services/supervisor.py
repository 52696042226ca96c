"""Inference engine process supervisor.

Owns the llama-server child process: stops the previous engine, spawns a
new one bound to the requested model file, and waits for its health
endpoint before reporting success.

State machine:
    STOPPED -> STARTING -> READY
                        -> FAILED (readiness timeout or spawn error)
There is no automatic recovery; callers invoke switch_model again.
"""

import logging
import subprocess
import threading
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from core.exceptions import EngineStartError, EngineStartTimeoutError

from .model_store import ModelStore

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    """Lifecycle state of the supervised engine."""

    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"


class EngineSupervisor:
    """Starts, health-checks, and replaces the llama-server process."""

    def __init__(
        self,
        store: ModelStore,
        binary: str,
        port: str,
        probe: Callable[[], bool],
        bind_host: str = "0.0.0.0",
        threads: int = 8,
        ctx_size: int = 2048,
        ready_timeout: float = 30.0,
        poll_interval: float = 1.0,
        port_release_delay: float = 1.0,
        kill_orphans: bool = True,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the supervisor.

        Args:
            store: Model storage used to resolve model files
            binary: Path to the llama-server binary
            port: Port the engine binds to
            probe: Health check; returns True once the engine answers
            bind_host: Address passed to --host
            threads: Thread count (-t)
            ctx_size: Context size (-c)
            ready_timeout: Total seconds to wait for the engine to become healthy
            poll_interval: Seconds between health probes
            port_release_delay: Pause after stopping the previous engine
            kill_orphans: When no handle is held, pkill engines left by earlier runs
            popen: Process factory
            clock: Monotonic time source for the readiness deadline
        """
        self._store = store
        self._binary = binary
        self._port = port
        self._probe = probe
        self._bind_host = bind_host
        self._threads = threads
        self._ctx_size = ctx_size
        self._ready_timeout = ready_timeout
        self._poll_interval = poll_interval
        self._port_release_delay = port_release_delay
        self._kill_orphans = kill_orphans
        self._popen = popen
        self._clock = clock

        self._process: subprocess.Popen | None = None
        self._state = EngineState.STOPPED
        # Serializes switches so two callers never spawn competing engines
        self._switch_lock = threading.Lock()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def build_command(self, model_path: Path) -> list[str]:
        """Engine command line for a model file."""
        return [
            self._binary,
            "-m", str(model_path),
            "--host", self._bind_host,
            "--port", str(self._port),
            "-t", str(self._threads),
            "-c", str(self._ctx_size),
        ]

    def switch_model(self, name: str) -> Path:
        """Restart the engine with a different model and wait until ready.

        Returns:
            Path of the model file the engine was started with

        Raises:
            ModelNotFoundError: Model file is not in the models directory
            EngineStartError: The engine binary could not be spawned
            EngineStartTimeoutError: Engine was not healthy within ready_timeout
        """
        model_path = self._store.resolve_existing(name)

        with self._switch_lock:
            self._state = EngineState.STARTING
            self.stop()
            time.sleep(self._port_release_delay)

            command = self.build_command(model_path)
            logger.info("Starting llama-server: %s", " ".join(command))
            try:
                self._process = self._popen(command)
            except OSError as e:
                self._state = EngineState.FAILED
                raise EngineStartError(f"Failed to start {self._binary}: {e}") from e

            if self._wait_until_ready():
                self._state = EngineState.READY
                logger.info("llama-server ready with %s (pid %s)", model_path.name, self.pid)
                return model_path

            self._state = EngineState.FAILED
            logger.warning(
                "llama-server did not become ready within %.0f seconds (model %s)",
                self._ready_timeout, model_path.name,
            )
            raise EngineStartTimeoutError(name, self._ready_timeout)

    def _wait_until_ready(self) -> bool:
        """Poll the health probe every poll_interval until ready_timeout elapses.

        The deadline includes time spent inside the probe itself.
        """
        deadline = self._clock() + self._ready_timeout
        while True:
            time.sleep(self._poll_interval)
            if self._probe():
                return True
            if self._clock() >= deadline:
                return False

    def stop(self) -> None:
        """Stop the engine. Best-effort: never raises if nothing is running."""
        process, self._process = self._process, None

        if process is not None:
            if process.poll() is None:
                logger.info("Stopping llama-server (pid %s)", process.pid)
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    logger.warning("llama-server (pid %s) ignored SIGTERM, killing", process.pid)
                    process.kill()
                    process.wait(timeout=5)
        elif self._kill_orphans:
            self._kill_by_name()

        if self._state != EngineState.STARTING:
            self._state = EngineState.STOPPED

    def _kill_by_name(self) -> None:
        """Kill engines this supervisor did not start (e.g., from a previous run).

        Matches by process name, so an unrelated process with the same
        name is signalled too.
        """
        pattern = Path(self._binary).name
        try:
            subprocess.run(["pkill", "-f", pattern], check=False, timeout=5)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug("pkill fallback unavailable: %s", e)
