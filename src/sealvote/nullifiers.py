"""
Nullifier registry (double-vote guard)

One record per (proposal, nullifier), created through the store's
create-if-absent primitive. A second registration of the same pair raises
DuplicateVote and leaves the first record untouched. Records are never
mutated or deleted afterwards.

The registry does not check how a nullifier was derived; that binding is
the voter's (off-ledger) responsibility.
"""
from __future__ import annotations

from typing import Optional
import hashlib
import logging

from sealvote.ballots import NULLIFIER_KIND, EncryptedBallot
from sealvote.errors import DuplicateVote, InvalidBallot, StorageAlreadyExists
from sealvote.models import NullifierRecord, Proposal
from sealvote.store import AccountStore, nullifier_address

log = logging.getLogger(__name__)

NULLIFIER_LEN = 32


def derive_nullifier(voter_secret: bytes, proposal_id: int) -> bytes:
    """Unique per (voter, proposal); reveals neither the secret nor the voter."""
    return hashlib.sha256(b"sealvote.nullifier|" + voter_secret + int(proposal_id).to_bytes(8, "little")).digest()


class NullifierRegistry:
    def __init__(self, store: AccountStore, tag: str = "nullifier") -> None:
        self.store = store
        self.tag = tag

    def address_of(self, proposal: Proposal, nullifier: bytes) -> str:
        return nullifier_address(self.tag, proposal.address, nullifier)

    def lookup(self, proposal: Proposal, nullifier: bytes) -> Optional[NullifierRecord]:
        doc = self.store.load(NULLIFIER_KIND, self.address_of(proposal, nullifier))
        return NullifierRecord.from_doc(doc) if doc is not None else None

    def is_spent(self, proposal: Proposal, nullifier: bytes) -> bool:
        return self.lookup(proposal, nullifier) is not None

    def register(self, proposal: Proposal, nullifier: bytes, ballot: EncryptedBallot) -> NullifierRecord:
        if len(nullifier) != NULLIFIER_LEN:
            raise InvalidBallot(f"nullifier must be {NULLIFIER_LEN} bytes")
        record = NullifierRecord(
            proposal=proposal.address,
            proposal_id=proposal.proposal_id,
            nullifier=bytes(nullifier),
            ciphertext=ballot.ciphertext,
            pubkey=ballot.pubkey,
            nonce=ballot.nonce,
        )
        try:
            self.store.create(NULLIFIER_KIND, self.address_of(proposal, nullifier), record.to_doc())
        except StorageAlreadyExists as e:
            log.warning("duplicate nullifier rejected for proposal #%d", proposal.proposal_id)
            raise DuplicateVote() from e
        return record
