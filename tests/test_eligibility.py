import pytest

from sealvote.eligibility import (
    EligibilitySnapshot,
    InclusionProof,
    MerkleEligibility,
    OpenEligibility,
    build_snapshot,
    get_eligibility,
    verify_inclusion,
    voting_weight,
)
from sealvote.errors import InvalidConfiguration
from sealvote.models import Proposal
from sealvote.store import proposal_address


HOLDERS = [("alice", 100), ("bob", 49), ("carol", 0), ("dave", 1)]


def _proposal(root: bytes) -> Proposal:
    return Proposal(
        proposal_id=1,
        address=proposal_address("svrn_v5", 1),
        schema_version=1,
        voting_mint="VOTE",
        merkle_root=root,
        authority="alice",
    )


def test_quadratic_and_linear_weights():
    assert voting_weight(100) == 10
    assert voting_weight(99) == 9
    assert voting_weight(100, "linear") == 100
    with pytest.raises(InvalidConfiguration):
        voting_weight(1, "cubic")


def test_snapshot_skips_empty_balances_and_proves_members():
    snap = build_snapshot(HOLDERS, depth=4)
    assert set(snap.voters) == {"alice", "bob", "dave"}
    assert snap.voters["bob"].weight == 7

    for owner in snap.voters:
        proof = snap.inclusion_proof(owner)
        assert len(proof.path) == 4
        assert verify_inclusion(proof.leaf, proof, snap.root)

    with pytest.raises(KeyError):
        snap.inclusion_proof("carol")


def test_tampered_proof_fails():
    snap = build_snapshot(HOLDERS, depth=4)
    proof = snap.inclusion_proof("alice")
    forged = InclusionProof(leaf=snap.voters["bob"].leaf, index=proof.index, path=proof.path)
    assert not verify_inclusion(forged.leaf, forged, snap.root)


def test_snapshot_rejects_duplicates_and_overflow():
    with pytest.raises(InvalidConfiguration):
        build_snapshot([("a", 1), ("a", 2)])
    with pytest.raises(InvalidConfiguration):
        build_snapshot([(f"v{i}", 1) for i in range(5)], depth=2)


def test_snapshot_doc_round_trip():
    snap = build_snapshot(HOLDERS, depth=3, weighting="linear", salt=b"s")
    again = EligibilitySnapshot.from_doc(snap.to_doc())
    assert again.root == snap.root
    assert again.voters["alice"].weight == 100


def test_verifiers():
    snap = build_snapshot(HOLDERS, depth=4)
    p = _proposal(snap.root)
    assert OpenEligibility().is_eligible(p, None)
    merkle = MerkleEligibility()
    assert not merkle.is_eligible(p, None)
    assert merkle.is_eligible(p, snap.inclusion_proof("dave"))
    assert not merkle.is_eligible(_proposal(b"\x00" * 32), snap.inclusion_proof("dave"))

    assert isinstance(get_eligibility("merkle"), MerkleEligibility)
    with pytest.raises(InvalidConfiguration):
        get_eligibility("closed")
