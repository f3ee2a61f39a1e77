from __future__ import annotations

import itertools
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

from .serialize import from_plain, to_plain

log = logging.getLogger("editcore.history")


class SnapshotStore(Protocol):
    """Anything whose state can be read whole and written back by field."""

    def get_state(self) -> Mapping[str, Any]: ...

    def set_state(self, partial: Mapping[str, Any]) -> None: ...


@dataclass(frozen=True)
class HistorySnapshot:
    """
    State of every registered store at one point in time.

    Notes:
        - `states` maps store name -> {field: plain value}. Values are produced by
          `serialize.to_plain`, so dicts, sets and dataclasses are stored as plain
          tagged structures and no live container is shared with a store.
        - Opaque objects (decoder handles, open files) are carried by reference.
    """

    label: str
    states: Dict[str, Dict[str, Any]]


class HistoryManager:
    """
    Undo/redo across several stores.

    `current` always holds the snapshot matching live state after the last
    committed action. Capturing pushes the previous `current` onto the undo
    stack; undo/redo swap `current` with the top of the other stack and write
    it back into every store.
    """

    def __init__(self, limit: int = 50) -> None:
        self.limit = max(1, int(limit))
        self._stores: List[Tuple[str, SnapshotStore, Optional[Tuple[str, ...]]]] = []
        self._undo: List[HistorySnapshot] = []
        self._redo: List[HistorySnapshot] = []
        self.current: Optional[HistorySnapshot] = None
        self.is_applying = False
        self._batch_ids = itertools.count(1)
        self.batch_id: Optional[int] = None
        self.batch_label: Optional[str] = None

    # ---------- registration ----------

    def register(self, name: str, store: SnapshotStore, keys: Optional[Sequence[str]] = None) -> None:
        """
        Add a store to every future snapshot.

        Args:
            name: key of the store inside a snapshot; re-registering a name replaces it
            keys: capture only these fields of `get_state()` (None = all)
        """
        if not callable(getattr(store, "get_state", None)) or not callable(getattr(store, "set_state", None)):
            raise TypeError(f"{type(store).__name__} must provide get_state() and set_state()")
        self._stores = [s for s in self._stores if s[0] != name]
        self._stores.append((str(name), store, tuple(keys) if keys is not None else None))

    def store_names(self) -> List[str]:
        return [name for name, _, _ in self._stores]

    # ---------- snapshots ----------

    def _take(self, label: str) -> HistorySnapshot:
        states: Dict[str, Dict[str, Any]] = {}
        for name, store, keys in self._stores:
            state = store.get_state()
            wanted = keys if keys is not None else tuple(state.keys())
            states[name] = {k: to_plain(state[k]) for k in wanted if k in state}
        return HistorySnapshot(label=str(label), states=states)

    def _apply(self, snapshot: HistorySnapshot) -> None:
        # Decode everything first so a bad entry cannot leave stores half-restored.
        decoded = []
        for name, store, _ in self._stores:
            plain = snapshot.states.get(name)
            if plain is not None:
                decoded.append((store, {k: from_plain(v) for k, v in plain.items()}))

        self.is_applying = True
        try:
            for store, partial in decoded:
                store.set_state(partial)
        finally:
            self.is_applying = False

    def capture_snapshot(self, label: str) -> None:
        """
        Record the live state as the result of an action labelled `label`.

        Ignored while undo/redo is restoring state and while a batch is open.
        """
        if self.is_applying or self.batch_id is not None:
            return
        snapshot = self._take(label)
        if self.current is None:
            self.current = snapshot
            return
        self._undo.append(self.current)
        if len(self._undo) > self.limit:
            self._undo = self._undo[-self.limit :]
        self.current = snapshot
        self._redo.clear()
        log.debug("Captured %r (undo depth %d)", label, len(self._undo))

    # ---------- batches ----------

    def start_batch(self, label: str) -> None:
        if self.batch_id is not None:
            return
        if self.current is None:
            # First batch of a session: remember the pre-batch state so it can be undone.
            self.capture_snapshot("initial")
        self.batch_id = next(self._batch_ids)
        self.batch_label = str(label)
        log.debug("Batch %d started: %s", self.batch_id, label)

    def end_batch(self) -> None:
        if self.batch_id is None:
            return
        label = self.batch_label or ""
        self.batch_id = None
        self.batch_label = None
        self.capture_snapshot(label)

    @contextmanager
    def batch(self, label: str) -> Iterator[None]:
        """Group every change in the block into one undo step."""
        self.start_batch(label)
        try:
            yield
        finally:
            self.end_batch()

    # ---------- undo / redo ----------

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo_label(self) -> str:
        # The step being undone is the one that produced `current`.
        return self.current.label if self._undo and self.current is not None else ""

    def redo_label(self) -> str:
        return self._redo[-1].label if self._redo else ""

    def undo(self) -> None:
        if not self._undo:
            return
        if self.current is not None:
            self._redo.append(self.current)
        self.current = self._undo.pop()
        log.info("Undo -> %s", self.current.label)
        self._apply(self.current)

    def redo(self) -> None:
        if not self._redo:
            return
        if self.current is not None:
            self._undo.append(self.current)
            if len(self._undo) > self.limit:
                self._undo = self._undo[-self.limit :]
        self.current = self._redo.pop()
        log.info("Redo -> %s", self.current.label)
        self._apply(self.current)

    def clear_history(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self.current = None

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)
