"""
Tests for shortcut parsing and the key table.
"""

import pytest

from physynth.keys import KeyTable, Shortcut, parse_shortcut


class TestParseShortcut:
    """Test shortcut descriptors."""

    def test_single_key(self):
        assert parse_shortcut("a") == Shortcut(frozenset(), "A")

    def test_modifiers(self):
        shortcut = parse_shortcut("ctrl+shift+a")
        assert shortcut.modifiers == {"Ctrl", "Shift"}
        assert shortcut.key == "A"
        assert shortcut.pressed

    @pytest.mark.parametrize("alias", ["Cmd", "command", "SUPER"])
    def test_super_aliases(self, alias):
        assert parse_shortcut(f"{alias}+K").modifiers == {"Super"}

    def test_control_alias(self):
        assert parse_shortcut("Control+K") == parse_shortcut("Ctrl+K")

    def test_function_keys(self):
        assert parse_shortcut("f12").key == "F12"
        assert parse_shortcut("F24").key == "F24"
        assert parse_shortcut("F25") is None
        assert parse_shortcut("F0") is None

    def test_named_keys(self):
        assert parse_shortcut("alt+space").key == "Space"
        assert parse_shortcut("PAGEDOWN").key == "PageDown"

    def test_digit_key(self):
        assert parse_shortcut("Ctrl+1").key == "1"

    def test_release(self):
        shortcut = parse_shortcut("!Alt+Enter")
        assert not shortcut.pressed
        assert shortcut != parse_shortcut("Alt+Enter")

    def test_whitespace(self):
        assert parse_shortcut(" Ctrl + A ") == parse_shortcut("Ctrl+A")

    @pytest.mark.parametrize("text", ["", "Ctrl+", "Hyper+A", "AB", "Ctrl+Shift", "+"])
    def test_invalid(self, text):
        assert parse_shortcut(text) is None


class TestShortcutText:
    """Test the canonical text form."""

    def test_modifier_order(self):
        assert str(parse_shortcut("super+alt+shift+ctrl+x")) == "Ctrl+Shift+Alt+Super+X"

    def test_release_prefix(self):
        assert str(parse_shortcut("!space")) == "!Space"


class TestKeyTable:
    """Test bindings."""

    def test_bind_and_lookup(self):
        table = KeyTable()
        table.bind(parse_shortcut("F1"), "1;")
        table.bind(parse_shortcut("F2"), "2;")
        assert table.lookup(parse_shortcut("f1")) == ["1;"]
        assert len(table) == 2

    def test_rebind_replaces(self):
        table = KeyTable()
        table.bind(parse_shortcut("F1"), "1;")
        table.bind(parse_shortcut("F1"), "2;")
        assert table.lookup(parse_shortcut("F1")) == ["2;"]
        assert len(table) == 1

    def test_empty_code_unbinds(self):
        table = KeyTable()
        table.bind(parse_shortcut("F1"), "1;")
        table.bind(parse_shortcut("F1"), "")
        assert table.lookup(parse_shortcut("F1")) == []
        assert len(table) == 0

    def test_press_and_release_are_separate(self):
        table = KeyTable()
        table.bind(parse_shortcut("A"), "down;")
        table.bind(parse_shortcut("!A"), "up;")
        assert table.lookup(parse_shortcut("A")) == ["down;"]
        assert table.lookup(parse_shortcut("!A")) == ["up;"]
