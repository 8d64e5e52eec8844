"""
Tally proof verifiers v1

The finalize transition takes a proof next to (yes_votes, no_votes,
threshold, quorum). Verification is an injectable capability:

  - presence.v1       PresenceVerifier: accepts any proof. finalize itself
                      rejects an empty one, so this default matches the
                      observed presence-only check. Placeholder for a real
                      SNARK verifier.
  - stub.sha256.v1    StubTallyVerifier: accepts only the deterministic
                      sha256 stub produced by prove_tally (verifiable
                      without secrets; NOT zero knowledge).

Real verifiers plug in by implementing ProofVerifier and registering
under a new id.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Protocol
import hashlib
import hmac

from sealvote.errors import InvalidConfiguration

DEFAULT_VERIFIER_ID = "presence.v1"

PUBLIC_INPUT_ORDER = ("proposal_id", "yes_votes", "no_votes", "threshold", "quorum")


def tally_public_inputs(*, proposal_id: int, yes_votes: int, no_votes: int, threshold: int, quorum: int) -> Dict[str, Any]:
    return {
        "proposal_id": proposal_id,
        "yes_votes": yes_votes,
        "no_votes": no_votes,
        "threshold": threshold,
        "quorum": quorum,
    }


def proof_stub(public_inputs: Dict[str, Any]) -> bytes:
    """
    Deterministic placeholder proof: SHA256 over canonical concatenation of public inputs.
    """
    s = "|".join(f"{k}={public_inputs.get(k, '')}" for k in PUBLIC_INPUT_ORDER).encode("utf-8")
    return hashlib.sha256(b"tally_proof_stub|" + s).digest()


def prove_tally(*, proposal_id: int, yes_votes: int, no_votes: int, threshold: int, quorum: int) -> bytes:
    return proof_stub(
        tally_public_inputs(
            proposal_id=proposal_id,
            yes_votes=yes_votes,
            no_votes=no_votes,
            threshold=threshold,
            quorum=quorum,
        )
    )


class ProofVerifier(Protocol):
    def verify(self, proof: bytes, public_inputs: Dict[str, Any]) -> bool:
        ...


class PresenceVerifier:
    def verify(self, proof: bytes, public_inputs: Dict[str, Any]) -> bool:
        return True


class StubTallyVerifier:
    def verify(self, proof: bytes, public_inputs: Dict[str, Any]) -> bool:
        return hmac.compare_digest(bytes(proof), proof_stub(public_inputs))


VERIFIERS: Dict[str, Callable[[], ProofVerifier]] = {
    "presence.v1": PresenceVerifier,
    "stub.sha256.v1": StubTallyVerifier,
}


def get_verifier(verifier_id: str = DEFAULT_VERIFIER_ID) -> ProofVerifier:
    factory = VERIFIERS.get(verifier_id)
    if factory is None:
        raise InvalidConfiguration(f"Unknown verifier_id: {verifier_id}")
    return factory()
