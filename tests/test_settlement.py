import copy
import pickle

import pytest

from sealvote.errors import (
    AlreadyExecuted,
    ArithmeticOverflow,
    InsufficientFunds,
    InvalidConfiguration,
    NotAuthorized,
    StorageAlreadyExists,
    TransferRejected,
)
from sealvote.models import Proposal
from sealvote.settlement import AssetBook, ProposalSigner, SettlementExecutor
from sealvote.store import holding_address, proposal_address
from sealvote.u64 import U64_MAX


def _proposal(version: int = 3, amount: int = 50) -> Proposal:
    return Proposal(
        proposal_id=9,
        address=proposal_address("svrn_v5", 9),
        schema_version=version,
        voting_mint="VOTE",
        merkle_root=b"\x00" * 32,
        authority="alice" if version != 4 else None,
        creator_commitment=b"\x01" * 32 if version == 4 else None,
        treasury_mint="TREASURY",
        execution_amount=amount,
        target_wallet="grantee",
        tally_result=1,
    )


def _book(program: str = "token") -> AssetBook:
    book = AssetBook()
    book.create_mint("TREASURY", decimals=6, program=program)
    return book


def test_mint_and_transfer_between_user_holdings():
    book = _book()
    book.mint_to("alice", "TREASURY", 100)
    to = book.open_holding("bob", "TREASURY")
    book.transfer_checked(holding_address("alice", "TREASURY"), to, "alice", "TREASURY", 30, 6)
    assert book.balance_of("alice", "TREASURY") == 70
    assert book.balance_of("bob", "TREASURY") == 30


def test_transfer_checks():
    book = _book()
    book.mint_to("alice", "TREASURY", 10)
    src = holding_address("alice", "TREASURY")
    dst = book.open_holding("bob", "TREASURY")
    with pytest.raises(TransferRejected):
        book.transfer_checked(src, dst, "alice", "TREASURY", 1, 9)
    with pytest.raises(NotAuthorized):
        book.transfer_checked(src, dst, "mallory", "TREASURY", 1, 6)
    with pytest.raises(InsufficientFunds):
        book.transfer_checked(src, dst, "alice", "TREASURY", 11, 6)
    with pytest.raises(TransferRejected):
        book.transfer_checked(src, holding_address("nobody", "TREASURY"), "alice", "TREASURY", 1, 6)
    assert book.balance_of("alice", "TREASURY") == 10


def test_duplicate_mint_is_rejected():
    book = _book()
    with pytest.raises(StorageAlreadyExists):
        book.create_mint("TREASURY", decimals=6)


def test_signer_is_scoped_and_not_exportable():
    with ProposalSigner("ab" * 32) as signer:
        assert signer.live
        with pytest.raises(TypeError):
            copy.copy(signer)
        with pytest.raises(TypeError):
            copy.deepcopy(signer)
        with pytest.raises(TypeError):
            pickle.dumps(signer)
    assert not signer.live


def test_revoked_signer_cannot_move_custody_funds():
    book = _book()
    p = _proposal()
    book.mint_to(p.address, "TREASURY", 100)
    dst = book.open_holding("grantee", "TREASURY")
    with ProposalSigner(p.address) as signer:
        pass
    with pytest.raises(NotAuthorized):
        book.transfer_checked(holding_address(p.address, "TREASURY"), dst, signer, "TREASURY", 1, 6)


def test_settle_moves_amount_once():
    book = _book()
    p = _proposal()
    book.mint_to(p.address, "TREASURY", 80)
    book.open_holding("grantee", "TREASURY")
    ex = SettlementExecutor(book)

    done = ex.settle(p)
    assert done.is_executed
    assert book.balance_of("grantee", "TREASURY") == 50
    assert book.balance_of(p.address, "TREASURY") == 30

    with pytest.raises(AlreadyExecuted):
        ex.settle(done)
    assert book.balance_of("grantee", "TREASURY") == 50


def test_legacy_versions_refuse_other_programs():
    book = _book(program="token-2022")
    p = _proposal(version=3)
    book.mint_to(p.address, "TREASURY", 80)
    book.open_holding("grantee", "TREASURY")
    with pytest.raises(TransferRejected):
        SettlementExecutor(book).settle(p)

    done = SettlementExecutor(book).settle(_proposal(version=2))
    assert done.is_executed


def test_unbound_payout_cannot_settle():
    with pytest.raises(InvalidConfiguration):
        SettlementExecutor(_book()).settle(_proposal(amount=0))


def test_credit_overflow_leaves_both_holdings_untouched():
    book = _book()
    book.mint_to("alice", "TREASURY", 100)
    book.mint_to("bob", "TREASURY", U64_MAX - 10)
    src = holding_address("alice", "TREASURY")
    with pytest.raises(ArithmeticOverflow):
        book.transfer_checked(src, holding_address("bob", "TREASURY"), "alice", "TREASURY", 50, 6)
    assert book.balance_of("alice", "TREASURY") == 100
    assert book.balance_of("bob", "TREASURY") == U64_MAX - 10


def test_transfer_to_same_holding_is_rejected():
    book = _book()
    book.mint_to("alice", "TREASURY", 100)
    src = holding_address("alice", "TREASURY")
    with pytest.raises(TransferRejected):
        book.transfer_checked(src, src, "alice", "TREASURY", 50, 6)
    assert book.balance_of("alice", "TREASURY") == 100
