"""
Proposal and NullifierRecord entities.

A Proposal's configuration (mints, merkle root, payout, identity) is fixed
at initialize. Transitions only ever produce a new Proposal through
`record_vote`, `with_tally` and `mark_executed`; everything else is copied
unchanged.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from sealvote.errors import AlreadyExecuted
from sealvote.schema import (
    NULLIFIER_SCHEMA_ID,
    PROPOSAL_SCHEMA_ID,
    SchemaVersion,
    get_version,
    validate_nullifier_doc,
    validate_proposal_doc,
)
from sealvote.u64 import checked_add

PASS = 1
FAIL = 0


class ProposalState(str, Enum):
    INITIALIZED = "initialized"
    VOTING = "voting"
    TALLIED = "tallied"
    EXECUTED = "executed"


@dataclass(frozen=True)
class Proposal:
    proposal_id: int
    address: str
    schema_version: int
    voting_mint: str
    merkle_root: bytes
    authority: Optional[str] = None
    creator_commitment: Optional[bytes] = None
    treasury_mint: Optional[str] = None
    execution_amount: int = 0
    target_wallet: Optional[str] = None
    vote_count: int = 0
    tally_result: Optional[int] = None
    is_executed: bool = False

    @property
    def version(self) -> SchemaVersion:
        return get_version(self.schema_version)

    @property
    def state(self) -> ProposalState:
        if self.is_executed:
            return ProposalState.EXECUTED
        if self.tally_result is not None:
            return ProposalState.TALLIED
        if self.vote_count > 0:
            return ProposalState.VOTING
        return ProposalState.INITIALIZED

    @property
    def voting_open(self) -> bool:
        return self.state in (ProposalState.INITIALIZED, ProposalState.VOTING)

    @property
    def passed(self) -> bool:
        return self.tally_result == PASS

    def record_vote(self) -> "Proposal":
        return replace(self, vote_count=checked_add(self.vote_count, 1))

    def with_tally(self, result: int) -> "Proposal":
        return replace(self, tally_result=result)

    def mark_executed(self) -> "Proposal":
        if self.is_executed:
            raise AlreadyExecuted()
        return replace(self, is_executed=True)

    def to_doc(self) -> Dict[str, Any]:
        sv = self.version
        doc: Dict[str, Any] = {
            "schema_id": PROPOSAL_SCHEMA_ID,
            "schema_version": self.schema_version,
            "proposal_id": self.proposal_id,
            "address": self.address,
            "voting_mint": self.voting_mint,
            "merkle_root": self.merkle_root.hex(),
            "vote_count": self.vote_count,
        }
        if sv.identity == "authority":
            doc["authority"] = self.authority
        else:
            doc["creator_commitment"] = (self.creator_commitment or b"").hex()
        if sv.has_payout:
            doc.update(
                {
                    "treasury_mint": self.treasury_mint,
                    "execution_amount": self.execution_amount,
                    "target_wallet": self.target_wallet,
                    "tally_result": self.tally_result,
                    "is_executed": self.is_executed,
                }
            )
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Proposal":
        validate_proposal_doc(doc)
        cc = doc.get("creator_commitment")
        return cls(
            proposal_id=doc["proposal_id"],
            address=doc["address"],
            schema_version=doc["schema_version"],
            voting_mint=doc["voting_mint"],
            merkle_root=bytes.fromhex(doc["merkle_root"]),
            authority=doc.get("authority"),
            creator_commitment=bytes.fromhex(cc) if cc else None,
            treasury_mint=doc.get("treasury_mint"),
            execution_amount=doc.get("execution_amount", 0),
            target_wallet=doc.get("target_wallet"),
            vote_count=doc["vote_count"],
            tally_result=doc.get("tally_result"),
            is_executed=doc.get("is_executed", False),
        )


@dataclass(frozen=True)
class NullifierRecord:
    proposal: str
    proposal_id: int
    nullifier: bytes
    ciphertext: bytes
    pubkey: bytes
    nonce: bytes

    def to_doc(self) -> Dict[str, Any]:
        return {
            "schema_id": NULLIFIER_SCHEMA_ID,
            "version": 1,
            "proposal": self.proposal,
            "proposal_id": self.proposal_id,
            "nullifier": self.nullifier.hex(),
            "ciphertext_hex": self.ciphertext.hex(),
            "pubkey": self.pubkey.hex(),
            "nonce": self.nonce.hex(),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "NullifierRecord":
        validate_nullifier_doc(doc)
        return cls(
            proposal=doc["proposal"],
            proposal_id=doc["proposal_id"],
            nullifier=bytes.fromhex(doc["nullifier"]),
            ciphertext=bytes.fromhex(doc["ciphertext_hex"]),
            pubkey=bytes.fromhex(doc["pubkey"]),
            nonce=bytes.fromhex(doc["nonce"]),
        )
