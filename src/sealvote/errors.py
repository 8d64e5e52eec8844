"""
Governance errors.

Every failure aborts the whole operation; nothing is recovered locally.
Each error carries a stable `code` so callers (relayers, UIs) can map
failures without parsing messages.
"""
from __future__ import annotations


class GovernanceError(ValueError):
    code = "governance_error"
    default_message = "governance operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class DuplicateVote(GovernanceError):
    code = "duplicate_vote"
    default_message = "nullifier already used for this proposal"


class AlreadyExecuted(GovernanceError):
    code = "already_executed"
    default_message = "Already executed."


class ProposalNotPassed(GovernanceError):
    code = "proposal_not_passed"
    default_message = "Proposal did not pass (State)."


class InvalidProof(GovernanceError):
    code = "invalid_proof"
    default_message = "Invalid ZK Proof."


class QuorumNotMet(GovernanceError):
    code = "quorum_not_met"
    default_message = "Quorum not met."


class MajorityNotMet(GovernanceError):
    code = "majority_not_met"
    default_message = "Majority threshold not met."


class ArithmeticOverflow(GovernanceError):
    code = "arithmetic_overflow"
    default_message = "u64 arithmetic overflow"


class StorageAlreadyExists(GovernanceError):
    code = "storage_already_exists"
    default_message = "an entity already exists at this address"


class ProposalNotFound(GovernanceError):
    code = "proposal_not_found"
    default_message = "proposal not found"


class InvalidConfiguration(GovernanceError):
    code = "invalid_configuration"
    default_message = "invalid proposal configuration"


class NotAuthorized(GovernanceError):
    code = "not_authorized"
    default_message = "caller is not authorized for this proposal"


class VotingClosed(GovernanceError):
    code = "voting_closed"
    default_message = "voting is closed for this proposal"


class IneligibleVoter(GovernanceError):
    code = "ineligible_voter"
    default_message = "eligibility proof does not match the proposal merkle root"


class InvalidBallot(GovernanceError):
    code = "invalid_ballot"
    default_message = "malformed encrypted ballot"


class UnsupportedOperation(GovernanceError):
    code = "unsupported_operation"
    default_message = "operation not supported by this proposal schema version"


class SchemaMigrationError(GovernanceError):
    code = "schema_migration_error"
    default_message = "proposal document does not match a supported schema"


class InsufficientFunds(GovernanceError):
    code = "insufficient_funds"
    default_message = "holding balance is lower than the transfer amount"


class TransferRejected(GovernanceError):
    code = "transfer_rejected"
    default_message = "asset transfer rejected"
