"""
Key naming helpers.

Key names follow pyautogui's vocabulary ("a", "1", "enter", "esc", "f5",
"pageup", "ctrlleft", ...). Shifted characters are stored as their base key
plus a shift flag, so "!" is recorded as key "1" with shift held.
"""

from __future__ import annotations
from typing import Optional, Tuple

MODIFIER_KEYS = frozenset({
    "shift", "shiftleft", "shiftright",
    "ctrl", "ctrlleft", "ctrlright",
    "alt", "altleft", "altright", "option", "optionleft", "optionright",
    "command", "cmd", "win", "winleft", "winright",
    "capslock", "fn",
})

# pynput Key names that differ from pyautogui's
_ALIASES = {
    "escape": "esc",
    "return": "enter",
    "page_up": "pageup",
    "page_down": "pagedown",
    "shift_l": "shiftleft",
    "shift_r": "shiftright",
    "ctrl_l": "ctrlleft",
    "ctrl_r": "ctrlright",
    "control": "ctrl",
    "alt_l": "altleft",
    "alt_r": "altright",
    "alt_gr": "altright",
    "cmd": "command",
    "cmd_l": "command",
    "cmd_r": "command",
    "caps_lock": "capslock",
    "num_lock": "numlock",
    "scroll_lock": "scrolllock",
    "print_screen": "printscreen",
    "media_play_pause": "playpause",
    "media_next": "nexttrack",
    "media_previous": "prevtrack",
    "media_volume_up": "volumeup",
    "media_volume_down": "volumedown",
    "media_volume_mute": "volumemute",
}

# US layout
_SHIFTED = {
    "`": "~", "1": "!", "2": "@", "3": "#", "4": "$", "5": "%",
    "6": "^", "7": "&", "8": "*", "9": "(", "0": ")", "-": "_",
    "=": "+", "[": "{", "]": "}", "\\": "|", ";": ":", "'": '"',
    ",": "<", ".": ">", "/": "?",
}
_UNSHIFTED = {v: k for k, v in _SHIFTED.items()}


def normalize_key(name: str) -> str:
    """Map a key name from any supported source onto the pyautogui vocabulary."""
    if len(name) == 1:
        return name.lower() if name.isalpha() else name
    lowered = name.lower()
    return _ALIASES.get(lowered, lowered)


def is_modifier(key: str) -> bool:
    return normalize_key(key) in MODIFIER_KEYS


def printable_char(key: str, shift: bool = False) -> Optional[str]:
    """
    Text a key press produces, for widgets that consume characters.

    Returns None for keys without a printable payload (enter, arrows, F-keys).
    """
    if key == "space":
        return " "
    if len(key) != 1 or not key.isascii() or not key.isprintable():
        return None
    if key.isalpha():
        return key.upper() if shift else key.lower()
    if shift:
        return _SHIFTED.get(key, key)
    return key


def split_char(char: str) -> Tuple[str, bool]:
    """Split a typed character into (base key, shift implied)."""
    if char == " ":
        return ("space", False)
    if len(char) == 1 and char.isascii():
        if char.isalpha():
            return (char.lower(), char.isupper())
        if char in _UNSHIFTED:
            return (_UNSHIFTED[char], True)
        code = ord(char)
        if 1 <= code <= 26:
            # Ctrl+letter arrives as a control character on some platforms
            return (chr(code + 96), False)
    return (char, False)
