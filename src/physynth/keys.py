"""
Keyboard shortcuts bound to console code.

A shortcut is written ``[Mod+]*Key`` (``"Ctrl+Shift+A"``, ``"F5"``,
``"Alt+Space"``); a leading ``!`` binds the key release instead of the
press.
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

MODIFIERS = {
    "ctrl": "Ctrl",
    "control": "Ctrl",
    "shift": "Shift",
    "alt": "Alt",
    "super": "Super",
    "cmd": "Super",
    "command": "Super",
}

NAMED_KEYS = {
    name.lower(): name
    for name in (
        "Space", "Enter", "Tab", "Escape", "Backspace", "Delete",
        "Up", "Down", "Left", "Right", "Home", "End", "PageUp", "PageDown",
    )
}


@dataclass(frozen=True)
class Shortcut:
    modifiers: FrozenSet[str]
    key: str
    pressed: bool = True

    def __str__(self) -> str:
        mods = [m for m in ("Ctrl", "Shift", "Alt", "Super") if m in self.modifiers]
        text = "+".join(mods + [self.key])
        return text if self.pressed else "!" + text


def _parse_key(text: str) -> Optional[str]:
    if len(text) == 1 and text.isalnum():
        return text.upper()
    lowered = text.lower()
    if lowered in NAMED_KEYS:
        return NAMED_KEYS[lowered]
    if lowered.startswith("f") and lowered[1:].isdigit() and 1 <= int(lowered[1:]) <= 24:
        return f"F{int(lowered[1:])}"
    return None


def parse_shortcut(text: str) -> Optional[Shortcut]:
    """Parse a shortcut descriptor; ``None`` if it isn't one."""
    text = text.strip()
    pressed = True
    if text.startswith("!"):
        pressed = False
        text = text[1:]
    parts = [p.strip() for p in text.split("+")]
    if not parts or not parts[-1]:
        return None
    modifiers = set()
    for part in parts[:-1]:
        mod = MODIFIERS.get(part.lower())
        if mod is None:
            return None
        modifiers.add(mod)
    key = _parse_key(parts[-1])
    if key is None:
        return None
    return Shortcut(frozenset(modifiers), key, pressed)


class KeyTable:
    """Shortcuts and the code they run, in the order they were bound."""

    def __init__(self):
        self.entries: List[Tuple[Shortcut, str]] = []

    def __len__(self) -> int:
        return len(self.entries)

    def bind(self, shortcut: Shortcut, code: str) -> None:
        """Replace every binding of ``shortcut``; empty code only unbinds."""
        self.entries = [(s, c) for s, c in self.entries if s != shortcut]
        if code:
            self.entries.append((shortcut, code))

    def lookup(self, shortcut: Shortcut) -> List[str]:
        return [code for s, code in self.entries if s == shortcut]
