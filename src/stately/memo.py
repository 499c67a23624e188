"""ArgKeyedMemo: a trie keyed by argument tuples.

Each position of a key selects a child level. Hashable items are matched by
type and equality, so ``1``, ``1.0`` and ``True`` stay distinct keys;
unhashable ones (lists, dicts, ...) are matched by identity, and the level
keeps a reference to such items so their ids stay valid. A slot holds a
private sentinel when absent, which keeps an explicitly stored ``None``
retrievable.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

V = TypeVar("V")

_ABSENT = object()


class _Level:
    __slots__ = ("value", "children", "by_identity")

    def __init__(self) -> None:
        self.value: Any = _ABSENT
        # (type(item), item) -> level
        self.children: dict[tuple, _Level] = {}
        # id(item) -> (item, level)
        self.by_identity: dict[int, tuple[Any, _Level]] = {}

    def child(self, item: Any, create: bool) -> _Level | None:
        key = (type(item), item)
        try:
            found = self.children.get(key)
        except TypeError:
            entry = self.by_identity.get(id(item))
            if entry is not None:
                return entry[1]
            if not create:
                return None
            level = _Level()
            self.by_identity[id(item)] = (item, level)
            return level
        if found is None and create:
            found = self.children[key] = _Level()
        return found


def _as_key(key: Any) -> tuple:
    if isinstance(key, (tuple, list)):
        return tuple(key)
    return (key,)


class ArgKeyedMemo(Generic[V]):
    """Map ordered argument sequences to memoized values."""

    def __init__(self) -> None:
        self._root = _Level()

    def _find(self, key: Any, create: bool) -> _Level | None:
        level: _Level | None = self._root
        for item in _as_key(key):
            level = level.child(item, create)
            if level is None:
                return None
        return level

    def set(self, key: Any, value: V) -> None:
        self._find(key, True).value = value

    def get(self, key: Any, default: V | None = None) -> V | None:
        level = self._find(key, False)
        if level is None or level.value is _ABSENT:
            return default
        return level.value

    def get_or_add(self, key: Any, factory: Callable[[tuple], V]) -> V:
        """Return the stored value, creating it with ``factory(key)`` if absent."""
        level = self._find(key, True)
        if level.value is _ABSENT:
            level.value = factory(_as_key(key))
        return level.value

    def delete(self, key: Any) -> None:
        """Mark the slot absent. Longer keys sharing this prefix are kept."""
        level = self._find(key, False)
        if level is not None:
            level.value = _ABSENT

    def clear(self) -> None:
        self._root = _Level()

    def __contains__(self, key: Any) -> bool:
        level = self._find(key, False)
        return level is not None and level.value is not _ABSENT
