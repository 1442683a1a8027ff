"""
Dispatch engine: single-consumer state machine turning commands into sound.

Producers (keyboard hook, CLI/UI) enqueue commands; one worker thread
consumes them strictly in arrival order. EngineState and the OutputSink
are only ever touched by that worker, so playback and reconfiguration
need no locks.
"""

import asyncio
import logging
import queue
import random
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional

from core.audio.devices import DeviceDescriptor, list_device_names
from core.audio.sink import OutputSink, SinkConfig, open_sink
from core.errors import ClatterError, EngineNotRunning
from core.keys.classifier import classify
from core.presets.catalog import PresetCatalog, SoundPreset
from utils.events import (
    ChangeConfigCommand, ErrorEvent, KeyEventCommand, RawKeyEvent,
    SetEnabledCommand, ShutdownCommand, Transition
)
from utils.metrics import record_timing, timer
from .selector import ClipSelector

logger = logging.getLogger(__name__)

SinkFactory = Callable[[Optional[str]], OutputSink]
ErrorCallback = Callable[[ErrorEvent], None]


class EngineStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


@dataclass(frozen=True)
class EngineState:
    """The live configuration. Replaced wholesale, never mutated."""
    preset: SoundPreset
    device: DeviceDescriptor
    enabled: bool = True


class DispatchEngine:
    """
    Keystroke-to-sound dispatch engine.

    Typical use:
        engine = DispatchEngine(catalog)
        engine.start()
        engine.change_config("default", None)
        engine.key_event("a", Transition.PRESS)
        ...
        engine.shutdown()
    """

    def __init__(self,
                 catalog: PresetCatalog,
                 sink_factory: Optional[SinkFactory] = None,
                 device_lister: Optional[Callable[[], List[str]]] = None,
                 sink_config: Optional[SinkConfig] = None,
                 rng: Optional[random.Random] = None,
                 on_error: Optional[ErrorCallback] = None):
        self.catalog = catalog
        self.sink_config = sink_config or SinkConfig()
        self._sink_factory = sink_factory or (lambda name: open_sink(name, self.sink_config))
        self._device_lister = device_lister or list_device_names
        self._rng = rng or random.Random()
        self.on_error = on_error

        # Unbounded MPSC channel
        self._queue: "queue.Queue[object]" = queue.Queue()

        # Worker-owned
        self._state: Optional[EngineState] = None
        self._sink: Optional[OutputSink] = None
        self._selector = ClipSelector()
        self._pending_enabled = True
        self._status = EngineStatus.IDLE

        self._thread: Optional[threading.Thread] = None
        self._submit_lock = threading.Lock()
        self._stopped = False

    # -------------------- lifecycle --------------------

    def start(self) -> None:
        """Start the worker thread. Idempotent."""
        with self._submit_lock:
            if self._stopped:
                raise EngineNotRunning("Engine has been shut down")
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run,
                name="DispatchEngine",
                daemon=True
            )
            self._thread.start()
        logger.info("Dispatch engine started")

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop the engine after the commands already queued, and release the sink.

        Blocks until the worker has finished (or timeout elapses). Called
        from the worker itself (e.g. inside on_error) it only queues the
        shutdown, which runs once the current command returns.
        """
        on_worker = threading.current_thread() is self._thread
        cmd = None
        with self._submit_lock:
            if self._thread is None:
                if self._stopped:
                    return
                # never started: nothing to process, nothing open
                self._stopped = True
                self._status = EngineStatus.SHUTTING_DOWN
                self._fail_pending()
                return
            if not self._stopped:
                cmd = ShutdownCommand()
                self._queue.put(cmd)

        if on_worker:
            return
        if cmd is not None:
            cmd.done.result(timeout=timeout)
        self._thread.join(timeout=timeout)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(timeout=5.0)

    # -------------------- inbound command surface --------------------

    def _submit(self, command) -> None:
        with self._submit_lock:
            if self._stopped:
                raise EngineNotRunning("Engine has been shut down")
            self._queue.put(command)

    def key_event(self, key_code: str, transition: Transition = Transition.PRESS,
                  timestamp: Optional[float] = None) -> None:
        """Queue a raw key event. Never blocks; silently ignored after shutdown."""
        event = RawKeyEvent(
            key_code=key_code,
            transition=transition,
            timestamp=time.monotonic() if timestamp is None else timestamp
        )
        try:
            self._submit(KeyEventCommand(event))
        except EngineNotRunning:
            logger.debug("Key event after shutdown ignored")

    def submit_change_config(self, preset_name: str, device_name: Optional[str]) -> Future:
        """Queue a reconfiguration; the future resolves to the new EngineState."""
        cmd = ChangeConfigCommand(preset_name=preset_name, device_name=device_name)
        self._submit(cmd)
        return cmd.result

    def change_config(self, preset_name: str, device_name: Optional[str],
                      timeout: Optional[float] = None) -> EngineState:
        """
        Switch preset and device, waiting for the worker to apply it.

        Raises:
            UnknownPreset, DeviceUnavailable, DeviceEnumerationFailed: the
                engine keeps its previous configuration
            EngineNotRunning: the engine has been shut down
        """
        return self.submit_change_config(preset_name, device_name).result(timeout=timeout)

    def set_enabled(self, enabled: bool) -> None:
        """Mute or unmute key sounds for subsequently processed events."""
        self._submit(SetEnabledCommand(bool(enabled)))

    # -------------------- queries --------------------

    def list_presets(self) -> List[str]:
        return self.catalog.names()

    def list_devices(self) -> List[str]:
        return list(self._device_lister())

    @property
    def state(self) -> Optional[EngineState]:
        return self._state

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def active_preset(self) -> Optional[SoundPreset]:
        return self._state.preset if self._state else None

    @property
    def active_device(self) -> Optional[DeviceDescriptor]:
        return self._state.device if self._state else None

    @property
    def enabled(self) -> bool:
        return self._state.enabled if self._state else self._pending_enabled

    # -------------------- worker --------------------

    def _run(self) -> None:
        logger.debug("Dispatch worker running")
        while True:
            command = self._queue.get()  # blocks, no polling
            if isinstance(command, ShutdownCommand):
                self._handle_shutdown(command)
                return
            try:
                self._handle(command)
            except Exception as e:
                # keep the worker alive whatever a single command does
                logger.exception(f"Unexpected error handling {type(command).__name__}")
                self._report("dispatch", e)

    def _handle(self, command) -> None:
        if isinstance(command, KeyEventCommand):
            self._handle_key_event(command.event)
        elif isinstance(command, ChangeConfigCommand):
            self._handle_change_config(command)
        elif isinstance(command, SetEnabledCommand):
            self._handle_set_enabled(command.enabled)
        else:
            logger.warning(f"Unknown command ignored: {command!r}")

    def _handle_key_event(self, event: RawKeyEvent) -> None:
        state = self._state
        if state is None or not state.enabled or self._sink is None:
            return

        category = classify(event.key_code, event.transition)
        clips = state.preset.clips_for(category, event.transition)
        clip = self._selector.select((event.transition, category), clips)
        if clip is None:
            return  # silent slot

        try:
            self._sink.play(clip)
        except Exception as e:
            logger.error(f"Playback failed for {event.key_code!r}: {e}")
            self._report("playback", e)
            return
        record_timing("dispatch", time.monotonic() - event.timestamp)

    def _handle_change_config(self, command: ChangeConfigCommand) -> None:
        if not command.result.set_running_or_notify_cancel():
            return

        try:
            with timer("reconfigure"):
                # Build before swap: nothing changes until both resolve
                preset = self.catalog.find(command.preset_name)
                new_sink = self._sink_factory(command.device_name)
        except Exception as e:
            if isinstance(e, ClatterError):
                logger.warning(f"Reconfiguration rejected: {e}")
            else:
                logger.error(f"Reconfiguration failed: {e}")
            command.result.set_exception(e)
            self._report("config", e)
            return

        enabled = self._state.enabled if self._state else self._pending_enabled
        new_state = EngineState(preset=preset, device=new_sink.device, enabled=enabled)

        old_sink = self._sink
        self._sink = new_sink
        self._state = new_state
        self._selector = ClipSelector(preset.strategy, self._rng)
        self._status = EngineStatus.RUNNING

        if old_sink is not None:
            old_sink.close()

        logger.info(f"Active preset '{preset.name}' on '{new_state.device.name}'")
        command.result.set_result(new_state)

    def _handle_set_enabled(self, enabled: bool) -> None:
        if self._state is None:
            self._pending_enabled = enabled
        else:
            self._state = replace(self._state, enabled=enabled)
        logger.info(f"Key sounds {'enabled' if enabled else 'disabled'}")

    def _handle_shutdown(self, command: ShutdownCommand) -> None:
        with self._submit_lock:
            self._stopped = True
        self._status = EngineStatus.SHUTTING_DOWN

        sink = self._sink
        self._sink = None
        if sink is not None:
            sink.close()

        self._fail_pending()
        logger.info("Dispatch engine stopped")
        command.done.set_result(None)

    def _fail_pending(self) -> None:
        """Resolve futures of commands that will never be processed."""
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(command, ChangeConfigCommand):
                if command.result.set_running_or_notify_cancel():
                    command.result.set_exception(EngineNotRunning("Engine has been shut down"))
            elif isinstance(command, ShutdownCommand):
                command.done.set_result(None)

    def _report(self, stage: str, error: Exception) -> None:
        if self.on_error is None:
            return
        event = ErrorEvent(stage=stage, error=error, timestamp=time.time(), recoverable=True)
        try:
            self.on_error(event)
        except Exception as e:
            logger.error(f"Error callback failed: {e}")


class AsyncDispatchEngine:
    """Async wrapper for DispatchEngine."""

    def __init__(self, engine: DispatchEngine):
        self.engine = engine

    async def start(self):
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.engine.start)

    async def change_config(self, preset_name: str, device_name: Optional[str]) -> EngineState:
        """Reconfigure asynchronously; raises like DispatchEngine.change_config."""
        future = self.engine.submit_change_config(preset_name, device_name)
        return await asyncio.wrap_future(future)

    def key_event(self, key_code: str, transition: Transition = Transition.PRESS,
                  timestamp: Optional[float] = None):
        self.engine.key_event(key_code, transition, timestamp)

    async def set_enabled(self, enabled: bool):
        self.engine.set_enabled(enabled)

    async def shutdown(self, timeout: Optional[float] = 5.0):
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.engine.shutdown, timeout)

    def is_running(self) -> bool:
        return self.engine.status is not EngineStatus.SHUTTING_DOWN
