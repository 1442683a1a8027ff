#!/usr/bin/env python3
"""
Global keyboard hook feeding the dispatch engine.

Runs a pynput Listener in a wrapper thread and forwards every press and
release to a sink callable. The callback does no work beyond building the
event, so the OS hook is never stalled by audio.
"""

import logging
import threading
import time
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover - no display / no input backend
    keyboard = None  # type: ignore

from utils.events import Transition
from .classifier import key_code_of

logger = logging.getLogger(__name__)

KeyEventSink = Callable[[str, Transition, float], None]


class KeyboardHookError(RuntimeError):
    pass


class KeyboardHook:
    """
    Global key listener.

    Forwards (key_code, transition, timestamp) to `on_event`, typically
    DispatchEngine.key_event. Auto-repeat presses while a key is held are
    collapsed so one physical keystroke produces one strike.
    """

    def __init__(self, on_event: KeyEventSink, suppress_repeat: bool = True):
        self.on_event = on_event
        self.suppress_repeat = suppress_repeat
        self.listener = None          # pynput listener
        self.thread: Optional[threading.Thread] = None
        self._held = set()
        self._running = False

    @staticmethod
    def _physical_id(key, code: str):
        # modifiers change .char (1 -> !, ctrl+a -> \x01) but not the virtual key
        vk = getattr(key, "vk", None)
        return ("vk", vk) if vk is not None else code

    def _on_press(self, key):
        code = key_code_of(key)
        if self.suppress_repeat:
            held_id = self._physical_id(key, code)
            if held_id in self._held:
                return
            self._held.add(held_id)
        self._forward(code, Transition.PRESS)

    def _on_release(self, key):
        code = key_code_of(key)
        self._held.discard(self._physical_id(key, code))
        self._forward(code, Transition.RELEASE)

    def _forward(self, code: str, transition: Transition):
        try:
            self.on_event(code, transition, time.monotonic())
        except Exception as e:
            logger.error(f"Error forwarding key event: {e}")

    def _run_listener(self):
        """
        Listener thread main function.
        Blocks until stop() is called.
        """
        try:
            logger.debug("Starting pynput keyboard listener")
            with keyboard.Listener(
                on_press=self._on_press,
                on_release=self._on_release
            ) as listener:
                self.listener = listener
                self._running = True
                listener.join()
        except Exception as e:
            logger.error(f"Keyboard listener error: {e}")
        finally:
            self._running = False
            self.listener = None
            logger.debug("Keyboard listener thread ended")

    def start(self):
        """Start the keyboard listener in a background thread."""
        if keyboard is None:
            raise KeyboardHookError("pynput keyboard backend is not available")

        if self.thread and self.thread.is_alive():
            logger.debug("Keyboard listener already running")
            return

        self.thread = threading.Thread(
            target=self._run_listener,
            name="KeyboardHook",
            daemon=True
        )
        self.thread.start()
        logger.info("Global keyboard hook started")

    def stop(self):
        """Stop the keyboard listener."""
        listener = self.listener
        if listener is not None:
            listener.stop()
        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=1.0)

        self._running = False
        self._held.clear()
        logger.info("Keyboard hook stopped")

    def is_running(self) -> bool:
        """Check if the keyboard listener is currently running."""
        return bool(self._running and self.thread and self.thread.is_alive())
