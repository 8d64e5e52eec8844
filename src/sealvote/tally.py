"""
Tally aggregator v1 (simulated MPC over encrypted ballots)

Per ballot the circuit computes

    contribution = weight if choice == 1 else 0

and only the sum over all ballots is ever revealed. The cluster opens each
ballot inside the computation and immediately splits its contribution into
additive shares mod 2**128, one per party; a party only ever holds its own
running share total. Reveal adds the party totals.

Because the fold is modular addition it is order independent, supports
incremental (absorb) and batched (absorb_many) ingestion, and re-absorbing
a nullifier that was already counted is a no-op.

Alongside the yes weight the aggregator reveals the no weight
(choice == 0) and the counted/rejected ballot numbers; ballots that do not
decrypt or carry a choice outside {0, 1} are rejected and contribute nothing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple
import logging
import secrets

from cryptography.hazmat.primitives.asymmetric import x25519

from sealvote.ballots import CHOICE_NO, CHOICE_YES, BallotStore, EncryptedBallot, ballot_of, open_ballot, raw_public_key
from sealvote.errors import ArithmeticOverflow, InvalidBallot, MajorityNotMet, QuorumNotMet
from sealvote.models import FAIL, PASS, NullifierRecord
from sealvote.store import AccountStore, proposal_address
from sealvote.u64 import U64_MAX, checked_add, checked_mul
from sealvote.verifiers import prove_tally

log = logging.getLogger(__name__)

RING = 2**128


def contribution(weight: int, choice: int) -> int:
    return weight if choice == CHOICE_YES else 0


def check_quorum_and_majority(yes_votes: int, no_votes: int, threshold: int, quorum: int) -> None:
    """
    Raises QuorumNotMet / MajorityNotMet. Majority is yes*100 >= total*threshold,
    evaluated in checked u64 integers.
    """
    total = checked_add(yes_votes, no_votes)
    if total < quorum:
        raise QuorumNotMet(f"Quorum not met: {total} < {quorum}")
    lhs = checked_mul(yes_votes, 100)
    rhs = checked_mul(total, threshold)
    if lhs < rhs:
        raise MajorityNotMet(f"Majority threshold not met: {lhs} < {rhs}")


@dataclass(frozen=True)
class TallyOutcome:
    yes_votes: int
    no_votes: int
    ballots_counted: int
    ballots_rejected: int

    def passes(self, threshold: int, quorum: int) -> bool:
        try:
            check_quorum_and_majority(self.yes_votes, self.no_votes, threshold, quorum)
        except (QuorumNotMet, MajorityNotMet):
            return False
        return True


@dataclass(frozen=True)
class TallyBundle:
    proof: bytes
    yes_votes: int
    no_votes: int


class Party:
    def __init__(self, name: str) -> None:
        self.name = name
        self._yes = 0
        self._no = 0

    def receive(self, yes_share: int, no_share: int) -> None:
        self._yes = (self._yes + yes_share) % RING
        self._no = (self._no + no_share) % RING

    def partial(self) -> Tuple[int, int]:
        return self._yes, self._no


def _to_shares(value: int, n: int) -> List[int]:
    values = [secrets.randbelow(RING) for _ in range(n - 1)]
    values.append((value - sum(values)) % RING)
    return values


class MpcCluster:
    def __init__(self, parties: int = 3, private_key: Optional[x25519.X25519PrivateKey] = None) -> None:
        if parties < 2:
            raise ValueError("an MPC cluster needs at least 2 parties")
        self.party_names = [f"node-{i}" for i in range(parties)]
        self._key = private_key or x25519.X25519PrivateKey.generate()

    @property
    def public_key(self) -> bytes:
        return raw_public_key(self._key.public_key())

    def open(self, ballot: EncryptedBallot, proposal_id: int) -> Tuple[int, int]:
        return open_ballot(self._key, ballot, proposal_id)

    def new_parties(self) -> List[Party]:
        return [Party(n) for n in self.party_names]


class TallyAggregator:
    def __init__(self, cluster: MpcCluster, proposal_id: int) -> None:
        self.cluster = cluster
        self.proposal_id = proposal_id
        self._parties = cluster.new_parties()
        self._seen: Set[bytes] = set()
        self.counted = 0
        self.rejected = 0

    def absorb(self, record: NullifierRecord) -> bool:
        if record.proposal_id != self.proposal_id:
            raise ValueError(f"ballot belongs to proposal #{record.proposal_id}, not #{self.proposal_id}")
        if record.nullifier in self._seen:
            return False
        self._seen.add(record.nullifier)

        try:
            weight, choice = self.cluster.open(ballot_of(record), self.proposal_id)
        except InvalidBallot:
            self.rejected += 1
            log.warning("ballot %s... rejected: does not decrypt", record.nullifier.hex()[:10])
            return False
        if choice not in (CHOICE_NO, CHOICE_YES):
            self.rejected += 1
            log.warning("ballot %s... rejected: choice %d outside {0, 1}", record.nullifier.hex()[:10], choice)
            return False

        yes_shares = _to_shares(contribution(weight, choice), len(self._parties))
        no_shares = _to_shares(weight if choice == CHOICE_NO else 0, len(self._parties))
        for party, ys, ns in zip(self._parties, yes_shares, no_shares):
            party.receive(ys, ns)
        self.counted += 1
        return True

    def absorb_many(self, records: Iterable[NullifierRecord]) -> int:
        return sum(1 for r in records if self.absorb(r))

    def reveal(self) -> TallyOutcome:
        yes = sum(p.partial()[0] for p in self._parties) % RING
        no = sum(p.partial()[1] for p in self._parties) % RING
        if yes > U64_MAX or no > U64_MAX:
            raise ArithmeticOverflow("revealed tally exceeds u64")
        return TallyOutcome(yes_votes=yes, no_votes=no, ballots_counted=self.counted, ballots_rejected=self.rejected)


class TallyService:
    """
    Out-of-band tally: reads a proposal's ballots from the store, aggregates
    them in the cluster and hands back either a pass/fail flag (set_tally)
    or a proof-accompanied (proof, yes, no) bundle (finalize).
    """

    def __init__(self, store: AccountStore, cluster: MpcCluster, *, namespace_tag: str) -> None:
        self.ballots = BallotStore(store)
        self.cluster = cluster
        self.namespace_tag = namespace_tag

    def aggregate(self, proposal_id: int) -> TallyOutcome:
        agg = TallyAggregator(self.cluster, proposal_id)
        agg.absorb_many(self.ballots.iter_ballots(proposal_address(self.namespace_tag, proposal_id)))
        outcome = agg.reveal()
        log.info(
            "tally for proposal #%d: yes=%d no=%d counted=%d rejected=%d",
            proposal_id, outcome.yes_votes, outcome.no_votes, outcome.ballots_counted, outcome.ballots_rejected,
        )
        return outcome

    def direct_tally(self, proposal_id: int, *, threshold: int, quorum: int) -> int:
        return PASS if self.aggregate(proposal_id).passes(threshold, quorum) else FAIL

    def proven_tally(self, proposal_id: int, *, threshold: int, quorum: int) -> TallyBundle:
        outcome = self.aggregate(proposal_id)
        proof = prove_tally(
            proposal_id=proposal_id,
            yes_votes=outcome.yes_votes,
            no_votes=outcome.no_votes,
            threshold=threshold,
            quorum=quorum,
        )
        return TallyBundle(proof=proof, yes_votes=outcome.yes_votes, no_votes=outcome.no_votes)
