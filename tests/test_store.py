from pathlib import Path

import pytest

from sealvote.errors import StorageAlreadyExists
from sealvote.store import (
    DirectoryStore,
    MemoryStore,
    holding_address,
    nullifier_address,
    open_store,
    proposal_address,
)


def test_addresses_are_deterministic_and_distinct():
    a = proposal_address("svrn_v5", 1)
    assert a == proposal_address("svrn_v5", 1)
    assert a != proposal_address("svrn_v5", 2)
    assert a != proposal_address("other", 1)
    assert len(a) == 64

    n1 = nullifier_address("nullifier", a, b"\x01" * 32)
    n2 = nullifier_address("nullifier", proposal_address("svrn_v5", 2), b"\x01" * 32)
    assert n1 != n2
    assert holding_address("alice", "USDC") != holding_address("bob", "USDC")


@pytest.mark.parametrize("make", [lambda p: MemoryStore(), lambda p: DirectoryStore(p / "store")])
def test_create_is_insert_if_absent(tmp_path: Path, make):
    s = make(tmp_path)
    s.create("proposal", "ab" * 32, {"v": 1})
    with pytest.raises(StorageAlreadyExists):
        s.create("proposal", "ab" * 32, {"v": 2})
    assert s.load("proposal", "ab" * 32) == {"v": 1}


@pytest.mark.parametrize("make", [lambda p: MemoryStore(), lambda p: DirectoryStore(p / "store")])
def test_save_requires_existing_and_iter_kind_filters(tmp_path: Path, make):
    s = make(tmp_path)
    with pytest.raises(KeyError):
        s.save("proposal", "cd" * 32, {"v": 1})

    s.create("proposal", "cd" * 32, {"v": 1})
    s.create("nullifier", "ef" * 32, {"n": 1})
    s.save("proposal", "cd" * 32, {"v": 3})

    assert s.load("proposal", "cd" * 32) == {"v": 3}
    assert s.load("proposal", "00" * 32) is None
    assert list(s.iter_kind("nullifier")) == [("ef" * 32, {"n": 1})]
    assert list(s.iter_kind("holding")) == []


def test_directory_store_layout_and_reopen(tmp_path: Path):
    root = tmp_path / "store"
    s = DirectoryStore(root)
    s.create("proposal", "aa" * 32, {"x": [1, 2]})
    assert (root / "proposal" / f"{'aa' * 32}.json").exists()

    again = DirectoryStore(root)
    assert again.load("proposal", "aa" * 32) == {"x": [1, 2]}


def test_lock_is_reentrant():
    s = MemoryStore()
    with s.lock("a"):
        with s.lock("a"):
            pass


def test_open_store_picks_backend(tmp_path: Path):
    assert isinstance(open_store(None), MemoryStore)
    assert isinstance(open_store(str(tmp_path / "s")), DirectoryStore)


def test_failed_serialization_leaves_address_free(tmp_path: Path):
    s = DirectoryStore(tmp_path / "store")
    with pytest.raises(TypeError):
        s.create("proposal", "ab" * 32, {"v": object()})
    assert s.load("proposal", "ab" * 32) is None
    s.create("proposal", "ab" * 32, {"v": 1})
    assert s.load("proposal", "ab" * 32) == {"v": 1}
