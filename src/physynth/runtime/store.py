"""
Value store: one table of named values.

Each name maps to exactly one ``Value``, so binding a name under a new sort
replaces whatever it held before.
"""

from typing import Any, Dict, Iterator, Optional

from .values import Sort, Value


class ValueStore:

    def __init__(self):
        self._values: Dict[str, Value] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def lookup(self, name: str) -> Optional[Value]:
        return self._values.get(name)

    def get(self, name: str, sort: Sort) -> Optional[Any]:
        """The object bound to ``name`` if it is of ``sort``."""
        value = self._values.get(name)
        if value is None or value.sort is not sort:
            return None
        return value.data

    def sort_of(self, name: str) -> Optional[Sort]:
        value = self._values.get(name)
        return value.sort if value is not None else None

    def bind(self, name: str, value: Value) -> None:
        self._values[name] = value

    def assign(self, name: str, value: Value) -> bool:
        """Overwrite an existing binding of the same sort."""
        current = self._values.get(name)
        if current is None or current.sort is not value.sort:
            return False
        self._values[name] = value
        return True

    def drop(self, name: str) -> None:
        self._values.pop(name, None)

    def clear(self) -> None:
        self._values.clear()
