"""sealvote: privacy-preserving proposal governance (nullifier-guarded encrypted ballots, MPC tally, one-shot settlement)."""
from __future__ import annotations

from sealvote.ballots import EncryptedBallot, encrypt_ballot
from sealvote.config import GovernanceConfig, load_config
from sealvote.eligibility import build_snapshot
from sealvote.models import Proposal, ProposalState
from sealvote.nullifiers import derive_nullifier
from sealvote.proposal import Governance
from sealvote.settlement import AssetBook, SettlementExecutor
from sealvote.store import DirectoryStore, MemoryStore
from sealvote.tally import MpcCluster, TallyAggregator, TallyService

__all__ = [
    "AssetBook",
    "DirectoryStore",
    "EncryptedBallot",
    "Governance",
    "GovernanceConfig",
    "MemoryStore",
    "MpcCluster",
    "Proposal",
    "ProposalState",
    "SettlementExecutor",
    "TallyAggregator",
    "TallyService",
    "build_snapshot",
    "derive_nullifier",
    "encrypt_ballot",
    "load_config",
]
