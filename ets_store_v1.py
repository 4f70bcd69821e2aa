"""
Energy Trade Settlement (ETS) - Record Store Layer
Version: 1.0.0

Key-value store abstraction, an in-memory implementation, and the
per-invocation transaction context the rule engine reads and writes through.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from abc import ABC, abstractmethod

from ets_enforcement_v1 import StoreError, SystemCompromised, logger

# ============================================
# STORE INTERFACE
# ============================================

class KeyValueStore(ABC):
    """Opaque get/put-by-key byte store."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the key is absent.

        Raises StoreError on I/O failure, never for a missing key.
        """
        pass

    @abstractmethod
    def put(self, key: str, value: bytes):
        """Store bytes under key. Raises StoreError on I/O failure."""
        pass

    @abstractmethod
    def delete(self, key: str):
        """Remove key if present. Raises StoreError on I/O failure."""
        pass

# ============================================
# IN-MEMORY STORE
# ============================================

class InMemoryKeyValueStore(KeyValueStore):
    """In-memory record store (production uses the host ledger's world state)."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self.records: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self.records.get(key)

    def put(self, key: str, value: bytes):
        if not isinstance(value, (bytes, bytearray)):
            raise StoreError(f"value for {key} must be bytes, got {type(value).__name__}")
        self.records[key] = bytes(value)
        logger.debug(f"[STORE] Put {key} ({len(value)} bytes)")

    def delete(self, key: str):
        self.records.pop(key, None)

    def keys(self):
        return list(self.records.keys())

    def __len__(self) -> int:
        return len(self.records)

# ============================================
# TRANSACTION CONTEXT
# ============================================

class TransactionContext(KeyValueStore):
    """
    Write set for a single invocation.

    Reads see this invocation's own pending writes first. Nothing reaches the
    backing store until commit(); rollback() discards every pending write.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.write_set: Dict[str, bytes] = {}
        self.closed = False

    def get(self, key: str) -> Optional[bytes]:
        if key in self.write_set:
            return self.write_set[key]
        return self.store.get(key)

    def put(self, key: str, value: bytes):
        if self.closed:
            raise StoreError(f"transaction already closed, cannot write {key}")
        self.write_set[key] = bytes(value)

    def discard(self, key: str):
        """Drop one pending write."""
        self.write_set.pop(key, None)

    def delete(self, key: str):
        """Drop a pending write. Records already in the backing store cannot be deleted."""
        self.write_set.pop(key, None)
        if self.store.get(key) is not None:
            raise StoreError(f"cannot delete committed record {key}")

    def commit(self) -> int:
        """Flush pending writes to the backing store. Returns the write count.

        All or nothing: if a put fails, keys already flushed get their prior
        values back and the error is re-raised. The write set is kept so the
        caller can still rollback().
        """
        if self.closed:
            raise StoreError("transaction already closed")

        prior = {key: self.store.get(key) for key in self.write_set}
        flushed = []

        try:
            for key, value in self.write_set.items():
                self.store.put(key, value)
                flushed.append(key)
        except Exception as e:
            logger.error(f"[STORE] Commit failed after {len(flushed)} of {len(self.write_set)} writes: {e}")
            self._restore(prior, flushed)
            raise

        count = len(self.write_set)
        self.write_set.clear()
        self.closed = True
        logger.debug(f"[STORE] Committed {count} writes")
        return count

    def _restore(self, prior: Dict[str, Optional[bytes]], flushed: List[str]):
        for key in reversed(flushed):
            try:
                if prior[key] is None:
                    self.store.delete(key)
                else:
                    self.store.put(key, prior[key])
            except Exception as e:
                logger.critical(f"[STORE] RESTORE FAILED for {key}: {e}")
                raise SystemCompromised(f"Partial commit could not be undone at {key}") from e

        logger.warning(f"[STORE] Restored {len(flushed)} keys after failed commit")

    def rollback(self):
        """Discard every pending write."""
        if self.write_set:
            logger.warning(f"[STORE] Rolled back {len(self.write_set)} pending writes")
        self.write_set.clear()
        self.closed = True

# ============================================
# KEY SCHEME
# ============================================

@dataclass(frozen=True)
class KeyScheme:
    """Maps entity identifiers to store keys.

    The flat scheme keeps assets, accounts and reputations in one shared key
    space, so identifier domains must not overlap. The prefixed scheme keeps
    them apart.
    """
    asset_prefix: str = ""
    account_prefix: str = ""
    reputation_prefix: str = ""

    @classmethod
    def flat(cls) -> "KeyScheme":
        return cls()

    @classmethod
    def prefixed(cls) -> "KeyScheme":
        return cls(asset_prefix="asset~", account_prefix="account~", reputation_prefix="reputation~")

    @classmethod
    def from_name(cls, name: str) -> "KeyScheme":
        if name == "flat":
            return cls.flat()
        if name == "prefixed":
            return cls.prefixed()
        raise ValueError(f"Unknown key namespace: {name}")

    @property
    def name(self) -> str:
        if self.asset_prefix or self.account_prefix or self.reputation_prefix:
            return "prefixed"
        return "flat"

    def asset_key(self, token_id: str) -> str:
        return f"{self.asset_prefix}{token_id}"

    def account_key(self, account_id: str) -> str:
        return f"{self.account_prefix}{account_id}"

    def reputation_key(self, participant: str) -> str:
        return f"{self.reputation_prefix}{participant}"
