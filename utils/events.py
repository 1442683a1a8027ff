"""
Command and event types for dispatch engine communication.

Collaborators (key hook, CLI) talk to the engine only through these
command dataclasses; the engine reports recoverable failures back as
ErrorEvent.
"""
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Transition(Enum):
    """Key transition."""
    PRESS = "press"
    RELEASE = "release"


@dataclass(frozen=True)
class RawKeyEvent:
    """Raw key event from the OS hook."""
    key_code: str
    transition: Transition
    timestamp: float


@dataclass
class KeyEventCommand:
    """Play the sound for one key transition."""
    event: RawKeyEvent


@dataclass
class ChangeConfigCommand:
    """Switch preset and output device; result is delivered through `result`."""
    preset_name: str
    device_name: Optional[str]
    result: Future = field(default_factory=Future)


@dataclass
class SetEnabledCommand:
    """Mute or unmute key sounds."""
    enabled: bool


@dataclass
class ShutdownCommand:
    """Stop the engine and release the output device."""
    done: Future = field(default_factory=Future)


@dataclass
class ErrorEvent:
    """Error information for diagnostics."""
    stage: str  # "config", "playback"
    error: Exception
    timestamp: float
    recoverable: bool = True
