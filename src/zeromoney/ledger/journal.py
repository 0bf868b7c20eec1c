# src/zeromoney/ledger/journal.py
from __future__ import annotations

"""Per-operation write journal.

Every write to the ledger state goes through a StateJournal, addressed as
(root, key), e.g. ("accounts", "<pubkey>") or ("token", "total_supply").
Before the first write to an entry the journal keeps a deep copy of its
pre-image. That gives us:

  - rollback(): restore every touched entry (all-or-nothing operations)
  - changes():  the touched entries with their new values, which is exactly
                what the SQLite store has to persist

Side effects that must only be observed once the operation is durable
(metrics, log lines) are queued with after_commit() and run by whoever owns
the journal, after its commit hook succeeds. rollback() drops them.

Entries are small (one account, one scalar), so an operation costs O(entries
touched), never O(state).
"""

import copy
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

Json = Dict[str, Any]
EntryKey = Tuple[str, str]

_MISSING: Any = object()


class StateJournal:
    def __init__(self, state: Json) -> None:
        self.state = state
        self._before: Dict[EntryKey, Any] = {}
        self._after: List[Callable[[], None]] = []

    def _root(self, root: str) -> Json:
        r = self.state.get(root)
        if not isinstance(r, dict):
            r = {}
            self.state[root] = r
        return r

    def touch(self, root: str, key: str) -> None:
        ek = (root, key)
        if ek in self._before:
            return
        container = self._root(root)
        self._before[ek] = copy.deepcopy(container[key]) if key in container else _MISSING

    def entry(self, root: str, key: str, default_factory: Optional[Callable[[], Any]] = None) -> Any:
        """Return the mutable value at (root, key), creating it if needed."""
        self.touch(root, key)
        container = self._root(root)
        if key not in container or container[key] is None:
            container[key] = default_factory() if default_factory is not None else {}
        return container[key]

    def set(self, root: str, key: str, value: Any) -> None:
        self.touch(root, key)
        self._root(root)[key] = value

    def delete(self, root: str, key: str) -> None:
        self.touch(root, key)
        self._root(root).pop(key, None)

    def rollback(self) -> None:
        for (root, key), old in reversed(list(self._before.items())):
            container = self._root(root)
            if old is _MISSING:
                container.pop(key, None)
            else:
                container[key] = old
        self._before.clear()
        self._after.clear()

    def after_commit(self, fn: Callable[[], None]) -> None:
        self._after.append(fn)

    def run_after_commit(self) -> None:
        pending, self._after = self._after, []
        for fn in pending:
            fn()

    def changes(self) -> Iterator[Tuple[str, str, Any]]:
        """Yield (root, key, value) for each touched entry; value is None if deleted."""
        for root, key in self._before:
            container = self._root(root)
            yield root, key, (copy.deepcopy(container[key]) if key in container else None)

    def __len__(self) -> int:
        return len(self._before)


__all__ = ["StateJournal", "EntryKey"]
