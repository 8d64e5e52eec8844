import pytest

from sealvote.errors import SchemaMigrationError, UnsupportedOperation
from sealvote.models import Proposal, ProposalState
from sealvote.schema import ALL_PROGRAMS, LEGACY_PROGRAM, get_version, migrate_proposal_doc, validate_proposal_doc
from sealvote.store import proposal_address


def _proposal(version: int, **kw) -> Proposal:
    base = dict(
        proposal_id=7,
        address=proposal_address("svrn_v5", 7),
        schema_version=version,
        voting_mint="VOTE",
        merkle_root=b"\x11" * 32,
    )
    if version == 4:
        base["creator_commitment"] = b"\x22" * 32
    else:
        base["authority"] = "alice"
    if version > 1:
        base.update(treasury_mint="TREASURY", execution_amount=50, target_wallet="grantee")
    base.update(kw)
    return Proposal(**base)


def test_capabilities_per_version():
    assert not get_version(1).has_payout
    assert get_version(2).asset_programs == ALL_PROGRAMS
    assert get_version(3).asset_programs == frozenset({LEGACY_PROGRAM})
    v4 = get_version(4)
    assert v4.identity == "creator_commitment"
    assert v4.finalize and not v4.execute
    with pytest.raises(UnsupportedOperation):
        v4.require("set_tally")
    with pytest.raises(UnsupportedOperation):
        get_version(1).require("execute")


def test_unknown_version_is_rejected():
    with pytest.raises(SchemaMigrationError):
        get_version(9)


@pytest.mark.parametrize("version", [1, 2, 3, 4])
def test_doc_round_trip_per_version(version):
    p = _proposal(version)
    doc = p.to_doc()
    validate_proposal_doc(doc)
    assert Proposal.from_doc(doc) == p


def test_v1_doc_has_no_payout_fields():
    doc = _proposal(1).to_doc()
    assert "is_executed" not in doc
    assert "treasury_mint" not in doc


def test_extra_field_fails_validation():
    doc = _proposal(3).to_doc()
    doc["creator_commitment"] = "33" * 32
    with pytest.raises(SchemaMigrationError):
        validate_proposal_doc(doc)


def test_migrate_v1_to_v3_adds_empty_payout():
    doc = migrate_proposal_doc(_proposal(1, vote_count=4).to_doc(), 3)
    p = Proposal.from_doc(doc)
    assert p.schema_version == 3
    assert p.vote_count == 4
    assert p.treasury_mint is None
    assert p.execution_amount == 0
    assert p.is_executed is False


def test_migrate_to_v4_and_downgrade_are_rejected():
    with pytest.raises(SchemaMigrationError):
        migrate_proposal_doc(_proposal(3).to_doc(), 4)
    with pytest.raises(SchemaMigrationError):
        migrate_proposal_doc(_proposal(3).to_doc(), 2)


def test_state_derivation():
    p = _proposal(3)
    assert p.state == ProposalState.INITIALIZED
    p = p.record_vote()
    assert p.state == ProposalState.VOTING and p.voting_open
    p = p.with_tally(1)
    assert p.state == ProposalState.TALLIED and not p.voting_open and p.passed
    p = p.mark_executed()
    assert p.state == ProposalState.EXECUTED
