"""
Proposal state machine v1

    initialize -> (submit_vote)* -> set_tally -> execute      (v2, v3)
    initialize -> (submit_vote)* -> finalize                   (v4)
    initialize -> (submit_vote)*                               (v1)

Every operation runs inside the proposal's exclusive section
(`store.lock(address)`): load, check, mutate, persist. A failing check
aborts before anything is written, so a rejected call leaves no trace.

Once `is_executed` is set it is never cleared; set_tally, execute and
finalize all reject an executed proposal with AlreadyExecuted, and the
settlement transfer happens at most once.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Tuple
import logging

from sealvote.ballots import EncryptedBallot, BallotStore, validate_ballot
from sealvote.config import GovernanceConfig, load_config
from sealvote.eligibility import (
    EligibilitySnapshot,
    EligibilityVerifier,
    InclusionProof,
    build_snapshot,
    get_eligibility,
)
from sealvote.errors import (
    AlreadyExecuted,
    IneligibleVoter,
    InvalidConfiguration,
    InvalidProof,
    NotAuthorized,
    ProposalNotFound,
    ProposalNotPassed,
    VotingClosed,
)
from sealvote.events import EventKind, open_event_log
from sealvote.models import FAIL, PASS, NullifierRecord, Proposal
from sealvote.nullifiers import NullifierRegistry
from sealvote.schema import PROPOSAL_SCHEMA_ID, get_version, migrate_proposal_doc
from sealvote.settlement import AssetBook, AssetLedger, SettlementExecutor
from sealvote.store import AccountStore, open_store, proposal_address
from sealvote.tally import MpcCluster, TallyService, check_quorum_and_majority
from sealvote.u64 import is_u64
from sealvote.verifiers import ProofVerifier, get_verifier, tally_public_inputs

log = logging.getLogger(__name__)

PROPOSAL_KIND = "proposal"


class Governance:
    def __init__(
        self,
        store: Optional[AccountStore] = None,
        assets: Optional[AssetLedger] = None,
        config: Optional[GovernanceConfig] = None,
        verifier: Optional[ProofVerifier] = None,
        eligibility: Optional[EligibilityVerifier] = None,
    ) -> None:
        self.config = config or GovernanceConfig()
        self.store = store if store is not None else open_store(self.config.store_dir)
        self.assets = assets if assets is not None else AssetBook(self.store)
        self.verifier = verifier or get_verifier(self.config.proof_verifier)
        self.eligibility = eligibility or get_eligibility(self.config.eligibility)
        self.nullifiers = NullifierRegistry(self.store, self.config.nullifier_tag)
        self.ballot_store = BallotStore(self.store)
        self.settlement = SettlementExecutor(self.assets)
        self.events = open_event_log(self.config.events_out)

    @classmethod
    def from_config(cls, path: Optional[Path] = None, **kwargs) -> "Governance":
        return cls(config=load_config(path), **kwargs)

    # ---- helpers ----

    def address_of(self, proposal_id: int) -> str:
        return proposal_address(self.config.namespace_tag, proposal_id)

    def _emit(self, kind: EventKind, proposal: Proposal, **extra) -> None:
        if self.events is None:
            return
        data = {"state": proposal.state.value}
        data.update(extra)
        self.events.append(kind, proposal.proposal_id, proposal.address, data)

    def _load(self, proposal_id: int) -> Proposal:
        doc = self.store.load(PROPOSAL_KIND, self.address_of(proposal_id))
        if doc is None:
            raise ProposalNotFound(f"proposal #{proposal_id} not found")
        return Proposal.from_doc(doc)

    def _save(self, proposal: Proposal) -> None:
        self.store.save(PROPOSAL_KIND, proposal.address, proposal.to_doc())

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self._load(proposal_id)

    def ballots(self, proposal_id: int) -> List[NullifierRecord]:
        p = self._load(proposal_id)
        return self.ballot_store.list_ballots(p.address)

    def tally_service(self, cluster: Optional[MpcCluster] = None) -> TallyService:
        return TallyService(
            self.store,
            cluster or MpcCluster(self.config.mpc_parties),
            namespace_tag=self.config.namespace_tag,
        )

    def build_snapshot(self, holders: Iterable[Tuple[str, int]], *, salt: bytes = b"") -> EligibilitySnapshot:
        """Eligibility snapshot at the configured tree depth and weighting; its root goes to initialize."""
        return build_snapshot(holders, depth=self.config.tree_depth, weighting=self.config.weighting, salt=salt)

    # ---- transitions ----

    def initialize(
        self,
        proposal_id: int,
        *,
        voting_mint: str,
        merkle_root: bytes,
        treasury_mint: Optional[str] = None,
        execution_amount: int = 0,
        target_wallet: Optional[str] = None,
        authority: Optional[str] = None,
        creator_commitment: Optional[bytes] = None,
        schema_version: Optional[int] = None,
    ) -> Proposal:
        version = schema_version if schema_version is not None else self.config.schema_version
        sv = get_version(version)

        if not is_u64(proposal_id):
            raise InvalidConfiguration("proposal_id must fit in u64")
        if not voting_mint:
            raise InvalidConfiguration("voting_mint is required")
        if len(merkle_root) != 32:
            raise InvalidConfiguration("merkle_root must be 32 bytes")

        if sv.identity == "authority":
            if not authority:
                raise InvalidConfiguration(f"schema v{version} proposals need an authority")
            creator_commitment = None
        else:
            if creator_commitment is None or len(creator_commitment) != 32:
                raise InvalidConfiguration(f"schema v{version} proposals need a 32-byte creator commitment")
            authority = None

        if sv.has_payout:
            if not treasury_mint or not target_wallet:
                raise InvalidConfiguration("treasury_mint and target_wallet are required")
            if not is_u64(execution_amount) or execution_amount <= 0:
                raise InvalidConfiguration("execution_amount must be a positive u64")
        else:
            treasury_mint, execution_amount, target_wallet = None, 0, None

        proposal = Proposal(
            proposal_id=proposal_id,
            address=self.address_of(proposal_id),
            schema_version=version,
            voting_mint=voting_mint,
            merkle_root=bytes(merkle_root),
            authority=authority,
            creator_commitment=bytes(creator_commitment) if creator_commitment else None,
            treasury_mint=treasury_mint,
            execution_amount=execution_amount,
            target_wallet=target_wallet,
        )
        with self.store.lock(proposal.address):
            self.store.create(PROPOSAL_KIND, proposal.address, proposal.to_doc())
        log.info("initialized proposal #%d (schema v%d, %s)", proposal_id, version, sv.name)
        self._emit(EventKind.INITIALIZED, proposal, schema_version=version, schema_id=PROPOSAL_SCHEMA_ID)
        return proposal

    def submit_vote(
        self,
        proposal_id: int,
        nullifier: bytes,
        ciphertext: bytes,
        pubkey: bytes,
        nonce: bytes,
        *,
        eligibility_proof: Optional[InclusionProof] = None,
    ) -> NullifierRecord:
        address = self.address_of(proposal_id)
        with self.store.lock(address):
            p = self._load(proposal_id)
            if not p.voting_open:
                raise VotingClosed(f"proposal #{proposal_id} is {p.state.value}")
            ballot = EncryptedBallot(ciphertext=bytes(ciphertext), pubkey=bytes(pubkey), nonce=bytes(nonce))
            validate_ballot(ballot, self.config.max_ciphertext_len)
            if not self.eligibility.is_eligible(p, eligibility_proof):
                raise IneligibleVoter()

            updated = p.record_vote()
            record = self.nullifiers.register(p, nullifier, ballot)
            self._save(updated)

        log.debug("vote %d recorded for proposal #%d", updated.vote_count, proposal_id)
        self._emit(EventKind.VOTE_SUBMITTED, updated, vote_count=updated.vote_count, nullifier=record.nullifier.hex())
        return record

    def set_tally(self, proposal_id: int, result: int, *, authority: str) -> Proposal:
        address = self.address_of(proposal_id)
        with self.store.lock(address):
            p = self._load(proposal_id)
            p.version.require("set_tally")
            if p.is_executed:
                raise AlreadyExecuted()
            if authority != p.authority:
                raise NotAuthorized(f"only the proposal authority may set the tally of #{proposal_id}")
            if result not in (PASS, FAIL):
                raise InvalidConfiguration(f"tally result must be {FAIL} or {PASS}, got {result!r}")
            updated = p.with_tally(result)
            self._save(updated)

        log.info("tally for proposal #%d set to %d", proposal_id, result)
        self._emit(EventKind.TALLY_SET, updated, tally_result=result)
        return updated

    def execute(self, proposal_id: int) -> Proposal:
        address = self.address_of(proposal_id)
        with self.store.lock(address):
            p = self._load(proposal_id)
            p.version.require("execute")
            if p.is_executed:
                raise AlreadyExecuted()
            if not p.passed:
                raise ProposalNotPassed()
            updated = self.settlement.settle(p)
            self._save(updated)

        self._emit(EventKind.EXECUTED, updated, amount=updated.execution_amount, target=updated.target_wallet)
        return updated

    def finalize(
        self,
        proposal_id: int,
        proof: bytes,
        yes_votes: int,
        no_votes: int,
        threshold: int,
        quorum: int,
        *,
        relayer: Optional[str] = None,
    ) -> Proposal:
        address = self.address_of(proposal_id)
        with self.store.lock(address):
            p = self._load(proposal_id)
            p.version.require("finalize")
            if p.is_executed:
                raise AlreadyExecuted()
            allowed = self.config.allowed_relayers
            if allowed and relayer not in allowed:
                raise NotAuthorized(f"relayer {relayer!r} may not finalize proposals")
            if not proof:
                raise InvalidProof()
            public_inputs = tally_public_inputs(
                proposal_id=proposal_id,
                yes_votes=yes_votes,
                no_votes=no_votes,
                threshold=threshold,
                quorum=quorum,
            )
            if not self.verifier.verify(bytes(proof), public_inputs):
                raise InvalidProof()
            check_quorum_and_majority(yes_votes, no_votes, threshold, quorum)

            updated = self.settlement.settle(p.with_tally(PASS))
            self._save(updated)

        log.info("finalized proposal #%d: yes=%d no=%d", proposal_id, yes_votes, no_votes)
        self._emit(EventKind.FINALIZED, updated, yes_votes=yes_votes, no_votes=no_votes, relayer=relayer)
        return updated

    def migrate(self, proposal_id: int, target_version: int) -> Proposal:
        address = self.address_of(proposal_id)
        with self.store.lock(address):
            doc = self.store.load(PROPOSAL_KIND, address)
            if doc is None:
                raise ProposalNotFound(f"proposal #{proposal_id} not found")
            source = doc.get("schema_version")
            migrated = migrate_proposal_doc(doc, target_version)
            self.store.save(PROPOSAL_KIND, address, migrated)
            updated = Proposal.from_doc(migrated)

        log.info("migrated proposal #%d from v%s to v%d", proposal_id, source, target_version)
        self._emit(EventKind.MIGRATED, updated, from_version=source, to_version=target_version)
        return updated
