"""
Keystroke dispatch: the engine state machine and clip selection.
"""

from .selector import ClipSelector

from .engine import (
    EngineStatus,
    EngineState,
    DispatchEngine,
    AsyncDispatchEngine
)

__all__ = [
    'ClipSelector',
    'EngineStatus',
    'EngineState',
    'DispatchEngine',
    'AsyncDispatchEngine',
]
