"""
Account store v1 (deterministic addressing + create-if-absent)

Entities live at addresses derived from a namespace tag and their
identifiers:

  proposal:   sha256(tag | proposal_id as u64 little endian)
  nullifier:  sha256(tag | proposal address bytes | nullifier)
  holding:    sha256("holding" | owner | asset)
  mint:       sha256("mint" | asset)

Two implementations:
  - MemoryStore     in-process dict, used by tests and embedders
  - DirectoryStore  one JSON file per entity: <root>/<kind>/<address>.json

`create` is the only way an entity comes into existence and it never
overwrites: a second create on the same address raises StorageAlreadyExists.
`lock(address)` gives the exclusive per-entity section the state machine
holds for the duration of one operation.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Protocol, Tuple
import hashlib
import json
import threading

from sealvote.errors import StorageAlreadyExists


def _sha256_hex(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def proposal_address(tag: str, proposal_id: int) -> str:
    return _sha256_hex(tag.encode("utf-8") + int(proposal_id).to_bytes(8, "little"))


def nullifier_address(tag: str, proposal_addr: str, nullifier: bytes) -> str:
    return _sha256_hex(tag.encode("utf-8") + bytes.fromhex(proposal_addr) + bytes(nullifier))


def holding_address(owner: str, asset: str) -> str:
    return _sha256_hex(f"holding|{owner}|{asset}".encode("utf-8"))


def mint_address(asset: str) -> str:
    return _sha256_hex(f"mint|{asset}".encode("utf-8"))


def _canonical_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


class AccountStore(Protocol):
    def create(self, kind: str, address: str, doc: Dict[str, Any]) -> None:
        ...

    def load(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        ...

    def save(self, kind: str, address: str, doc: Dict[str, Any]) -> None:
        ...

    def iter_kind(self, kind: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        ...

    def lock(self, address: str):
        ...


class _LockTable:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    @contextmanager
    def hold(self, address: str) -> Iterator[None]:
        with self._guard:
            lk = self._locks.setdefault(address, threading.RLock())
        with lk:
            yield


class MemoryStore:
    def __init__(self) -> None:
        self._docs: Dict[Tuple[str, str], str] = {}
        self._guard = threading.Lock()
        self._locks = _LockTable()

    def create(self, kind: str, address: str, doc: Dict[str, Any]) -> None:
        key = (kind, address)
        with self._guard:
            if key in self._docs:
                raise StorageAlreadyExists(f"{kind} already exists at {address}")
            self._docs[key] = _canonical_dumps(doc)

    def load(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        with self._guard:
            raw = self._docs.get((kind, address))
        return json.loads(raw) if raw is not None else None

    def save(self, kind: str, address: str, doc: Dict[str, Any]) -> None:
        key = (kind, address)
        with self._guard:
            if key not in self._docs:
                raise KeyError(f"{kind} not found at {address}")
            self._docs[key] = _canonical_dumps(doc)

    def iter_kind(self, kind: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        with self._guard:
            items = [(a, raw) for (k, a), raw in self._docs.items() if k == kind]
        for address, raw in items:
            yield address, json.loads(raw)

    def lock(self, address: str):
        return self._locks.hold(address)


class DirectoryStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks = _LockTable()

    def _path(self, kind: str, address: str) -> Path:
        return self.root / kind / f"{address}.json"

    def create(self, kind: str, address: str, doc: Dict[str, Any]) -> None:
        p = self._path(kind, address)
        body = _canonical_dumps(doc)
        p.parent.mkdir(parents=True, exist_ok=True)
        try:
            # "x" is the filesystem's own insert-if-missing
            with p.open("x", encoding="utf-8") as f:
                f.write(body)
        except FileExistsError as e:
            raise StorageAlreadyExists(f"{kind} already exists at {address}") from e

    def load(self, kind: str, address: str) -> Optional[Dict[str, Any]]:
        p = self._path(kind, address)
        if not p.exists():
            return None
        return json.loads(p.read_text(encoding="utf-8-sig"))

    def save(self, kind: str, address: str, doc: Dict[str, Any]) -> None:
        p = self._path(kind, address)
        if not p.exists():
            raise KeyError(f"{kind} not found at {address}")
        tmp = p.with_suffix(".json.tmp")
        tmp.write_text(_canonical_dumps(doc), encoding="utf-8")
        tmp.replace(p)

    def iter_kind(self, kind: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        d = self.root / kind
        if not d.exists():
            return
        for p in sorted(d.glob("*.json")):
            yield p.stem, json.loads(p.read_text(encoding="utf-8-sig"))

    def lock(self, address: str):
        return self._locks.hold(address)


def open_store(store_dir: Optional[str]) -> AccountStore:
    return DirectoryStore(Path(store_dir)) if store_dir else MemoryStore()
