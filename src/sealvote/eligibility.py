"""
Eligibility snapshot v1 (merkle commitment over voter secrets and weights)

Leaf:   H(0x00 | voter_secret | weight as 32-byte big endian)
Parent: H(0x01 | left | right)
Tree is padded with the zero leaf H(0x00 | 0^32 | 0^32) to 2**depth leaves
(depth 8 -> 256 voters).

Weighting:
  - quadratic (default): weight = isqrt(balance)
  - linear:              weight = balance

The proposal stores only the root. Whether a vote must carry an inclusion
proof is a deployment choice made through an EligibilityVerifier:
  - OpenEligibility   accepts every ballot (no proof checked)
  - MerkleEligibility requires a proof that verifies against the root
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple
import hashlib
import hmac
import math

from sealvote.errors import InvalidConfiguration
from sealvote.models import Proposal

WEIGHTINGS = {"quadratic", "linear"}


def _h(*parts: bytes) -> bytes:
    h = hashlib.sha256()
    for p in parts:
        h.update(p)
    return h.digest()


def _as32(value: int) -> bytes:
    return int(value).to_bytes(32, "big")


def leaf_hash(secret: bytes, weight: int) -> bytes:
    if len(secret) != 32:
        raise ValueError("voter secret must be 32 bytes")
    return _h(b"\x00", secret, _as32(weight))


def node_hash(left: bytes, right: bytes) -> bytes:
    return _h(b"\x01", left, right)


ZERO_LEAF = _h(b"\x00", bytes(32), bytes(32))


def derive_voter_secret(owner: str, salt: bytes = b"") -> bytes:
    return _h(b"sealvote.secret|", salt, owner.encode("utf-8"))


def voting_weight(balance: int, weighting: str = "quadratic") -> int:
    if weighting not in WEIGHTINGS:
        raise InvalidConfiguration(f"unknown weighting: {weighting!r}")
    if balance < 0:
        raise InvalidConfiguration("balance must be >= 0")
    return math.isqrt(balance) if weighting == "quadratic" else balance


@dataclass(frozen=True)
class InclusionProof:
    leaf: bytes
    index: int
    path: Tuple[bytes, ...]


@dataclass(frozen=True)
class VoterEntry:
    owner: str
    index: int
    balance: int
    weight: int
    secret: bytes
    leaf: bytes


def verify_inclusion(leaf: bytes, proof: InclusionProof, root: bytes) -> bool:
    if proof.index < 0 or proof.index >= 2 ** len(proof.path):
        return False
    node = leaf
    idx = proof.index
    for sibling in proof.path:
        node = node_hash(node, sibling) if idx % 2 == 0 else node_hash(sibling, node)
        idx //= 2
    return hmac.compare_digest(node, root)


class EligibilitySnapshot:
    def __init__(self, voters: Dict[str, VoterEntry], depth: int, weighting: str) -> None:
        self.voters = voters
        self.depth = depth
        self.weighting = weighting
        leaves = [ZERO_LEAF] * (2**depth)
        for v in voters.values():
            leaves[v.index] = v.leaf
        self.levels: List[List[bytes]] = [leaves]
        level = leaves
        while len(level) > 1:
            level = [node_hash(level[i], level[i + 1]) for i in range(0, len(level), 2)]
            self.levels.append(level)

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    def inclusion_proof(self, owner: str) -> InclusionProof:
        v = self.voters.get(owner)
        if v is None:
            raise KeyError(f"not in snapshot: {owner}")
        path: List[bytes] = []
        idx = v.index
        for level in self.levels[:-1]:
            path.append(level[idx ^ 1])
            idx //= 2
        return InclusionProof(leaf=v.leaf, index=v.index, path=tuple(path))

    def to_doc(self) -> Dict[str, Any]:
        return {
            "schema_id": "sealvote.eligibility_snapshot",
            "version": 1,
            "merkle_root": self.root.hex(),
            "depth": self.depth,
            "weighting": self.weighting,
            "voters": {
                owner: {
                    "index": v.index,
                    "balance": v.balance,
                    "weight": v.weight,
                    "secret": v.secret.hex(),
                    "leaf": v.leaf.hex(),
                }
                for owner, v in self.voters.items()
            },
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "EligibilitySnapshot":
        voters = {
            owner: VoterEntry(
                owner=owner,
                index=int(e["index"]),
                balance=int(e["balance"]),
                weight=int(e["weight"]),
                secret=bytes.fromhex(e["secret"]),
                leaf=bytes.fromhex(e["leaf"]),
            )
            for owner, e in doc["voters"].items()
        }
        snap = cls(voters, depth=int(doc["depth"]), weighting=str(doc["weighting"]))
        if snap.root.hex() != doc.get("merkle_root"):
            raise ValueError("snapshot merkle_root does not match its voters")
        return snap


def build_snapshot(
    holders: Iterable[Tuple[str, int]],
    *,
    depth: int = 8,
    weighting: str = "quadratic",
    salt: bytes = b"",
) -> EligibilitySnapshot:
    voters: Dict[str, VoterEntry] = {}
    capacity = 2**depth
    for owner, balance in holders:
        if balance <= 0:
            continue
        if owner in voters:
            raise InvalidConfiguration(f"duplicate holder in snapshot: {owner}")
        if len(voters) >= capacity:
            raise InvalidConfiguration(f"snapshot exceeds tree capacity of {capacity} voters")
        secret = derive_voter_secret(owner, salt)
        weight = voting_weight(balance, weighting)
        voters[owner] = VoterEntry(
            owner=owner,
            index=len(voters),
            balance=balance,
            weight=weight,
            secret=secret,
            leaf=leaf_hash(secret, weight),
        )
    return EligibilitySnapshot(voters, depth=depth, weighting=weighting)


class EligibilityVerifier(Protocol):
    def is_eligible(self, proposal: Proposal, proof: Optional[InclusionProof]) -> bool:
        ...


class OpenEligibility:
    """
    Accepts every ballot. The merkle root is advertised at initialize but no
    inclusion proof is checked; eligibility is left to off-ledger convention.
    """
    def is_eligible(self, proposal: Proposal, proof: Optional[InclusionProof]) -> bool:
        return True


class MerkleEligibility:
    def is_eligible(self, proposal: Proposal, proof: Optional[InclusionProof]) -> bool:
        if proof is None:
            return False
        return verify_inclusion(proof.leaf, proof, proposal.merkle_root)


def get_eligibility(mode: str) -> EligibilityVerifier:
    if mode == "open":
        return OpenEligibility()
    if mode == "merkle":
        return MerkleEligibility()
    raise InvalidConfiguration(f"unknown eligibility mode: {mode!r}")
