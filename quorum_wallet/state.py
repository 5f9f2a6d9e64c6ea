"""
Journaled state store.

Writes are buffered in memory on top of the database. Every write is
journaled so the store can be rolled back to any earlier snapshot, and
`commit()` flushes the buffered writes in a single batch. Together these give
all-or-nothing semantics to a wallet call.
"""
import logging
import msgpack
from typing import Any, Optional

from .crypto import generate_hash
from .db import DB

logger = logging.getLogger(__name__)

_MISSING = object()

BLANK_ROOT = generate_hash(b'')


class StateStore:
    def __init__(self, db: DB):
        self.db = db
        self._pending: dict[bytes, Optional[bytes]] = {}
        self._journal: list[tuple[bytes, Any]] = []

    # ==========================================================================
    # RAW ACCESS
    # ==========================================================================

    def get(self, key: bytes) -> Optional[bytes]:
        if key in self._pending:
            return self._pending[key]
        return self.db.get(key)

    def set(self, key: bytes, value: bytes):
        self._journal.append((key, self._pending.get(key, _MISSING)))
        self._pending[key] = value

    def delete(self, key: bytes):
        self._journal.append((key, self._pending.get(key, _MISSING)))
        self._pending[key] = None

    # ==========================================================================
    # ENCODED ACCESS
    # ==========================================================================

    def get_obj(self, key: bytes, default=None):
        raw = self.get(key)
        if raw is None:
            return default
        return msgpack.unpackb(raw, raw=False)

    def set_obj(self, key: bytes, obj):
        self.set(key, msgpack.packb(obj, use_bin_type=True))

    # ==========================================================================
    # SNAPSHOTS
    # ==========================================================================

    def snapshot(self) -> int:
        """Returns a marker that `revert` can roll back to."""
        return len(self._journal)

    def revert(self, snapshot: int):
        """Undo every write made after `snapshot` was taken."""
        if snapshot > len(self._journal):
            raise ValueError(f"Unknown snapshot {snapshot}")
        while len(self._journal) > snapshot:
            key, previous = self._journal.pop()
            if previous is _MISSING:
                del self._pending[key]
            else:
                self._pending[key] = previous
        logger.debug(f"State reverted to snapshot {snapshot}")

    def commit(self):
        """Flush buffered writes to the database in one batch."""
        if not self._pending:
            self._journal.clear()
            return
        count = len(self._pending)
        self.db.apply(self._pending)
        self._pending = {}
        self._journal.clear()
        logger.debug(f"Committed {count} state entries")

    @property
    def dirty(self) -> bool:
        return bool(self._pending)

    # ==========================================================================
    # STATE ROOT
    # ==========================================================================

    def items(self, prefix: bytes = b'') -> list[tuple[bytes, bytes]]:
        """Committed entries overlaid with pending writes, in key order."""
        merged = dict(self.db.get_prefix(prefix))
        for key, value in self._pending.items():
            if not key.startswith(prefix):
                continue
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return sorted(merged.items())

    def state_root(self) -> bytes:
        """
        Keccak-256 commitment over the whole state.

        Each entry contributes hash(len(key) || key || hash(value)), folded
        in key order, so equal states always produce equal roots.
        """
        root = BLANK_ROOT
        for key, value in self.items():
            leaf = generate_hash(len(key).to_bytes(4, "big") + key + generate_hash(value))
            root = generate_hash(root + leaf)
        return root
