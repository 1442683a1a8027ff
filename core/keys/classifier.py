"""
Key classifier: maps raw key codes to acoustic categories.

Key codes are lowercase, platform-independent names ("a", "space",
"shift_r", "vk65"). Classification is pure and total: anything not
recognized is KeyCategory.OTHER.
"""

from enum import Enum
from typing import Any

from utils.events import Transition


class KeyCategory(Enum):
    """Acoustic category of a key."""
    ALPHANUMERIC = "alphanumeric"
    WHITESPACE = "whitespace"
    ENTER = "enter"
    BACKSPACE = "backspace"
    MODIFIER = "modifier"
    OTHER = "other"


_WHITESPACE_KEYS = frozenset({"space", "tab", " ", "\t"})
_ENTER_KEYS = frozenset({"enter", "return", "kp_enter", "\n", "\r"})
_BACKSPACE_KEYS = frozenset({"backspace", "delete"})

_MODIFIER_BASES = (
    "shift", "ctrl", "control", "alt", "alt_gr", "cmd", "meta", "super",
    "option", "fn", "caps_lock", "num_lock",
)
_MODIFIER_KEYS = frozenset(
    name + suffix for name in _MODIFIER_BASES for suffix in ("", "_l", "_r")
)


def classify(key_code: Any, transition: Transition = Transition.PRESS) -> KeyCategory:
    """
    Classify a key code into an acoustic category.

    The category does not depend on the transition; release sounds are
    chosen from the preset's release table instead.

    Args:
        key_code: Key name as produced by key_code_of()
        transition: Press or release (accepted for symmetry with lookups)

    Returns:
        KeyCategory, OTHER for unknown or malformed codes
    """
    if not isinstance(key_code, str) or not key_code:
        return KeyCategory.OTHER

    # Single characters keep their case-sensitive identity (" " vs "space")
    if len(key_code) == 1:
        if key_code in _WHITESPACE_KEYS:
            return KeyCategory.WHITESPACE
        if key_code in _ENTER_KEYS:
            return KeyCategory.ENTER
        if key_code.isprintable():
            return KeyCategory.ALPHANUMERIC
        return KeyCategory.OTHER

    name = key_code.lower()
    if name in _WHITESPACE_KEYS:
        return KeyCategory.WHITESPACE
    if name in _ENTER_KEYS:
        return KeyCategory.ENTER
    if name in _BACKSPACE_KEYS:
        return KeyCategory.BACKSPACE
    if name in _MODIFIER_KEYS:
        return KeyCategory.MODIFIER
    return KeyCategory.OTHER


def key_code_of(key: Any) -> str:
    """
    Convert a pynput key (Key or KeyCode) to a key code string.

    Works on anything shaped like a pynput key: `.char` for printable
    KeyCodes, `.name` for Key members, `.vk` for bare virtual keys.
    """
    char = getattr(key, "char", None)
    if isinstance(char, str) and char:
        return char.lower() if char.isalpha() else char

    name = getattr(key, "name", None)
    if isinstance(name, str) and name:
        return name.lower()

    vk = getattr(key, "vk", None)
    if vk is not None:
        return f"vk{vk}"

    return "unknown"
