"""
Key handling: classification of raw key codes and the global keyboard hook.
"""

from .classifier import (
    KeyCategory,
    classify,
    key_code_of
)

from .listener import (
    KeyboardHook,
    KeyboardHookError
)

__all__ = [
    'KeyCategory',
    'classify',
    'key_code_of',
    'KeyboardHook',
    'KeyboardHookError',
]
