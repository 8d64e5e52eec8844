"""
Proposal schema versions v1..v4

One Proposal entity, tagged with `schema_version`. Each version has a
fixed set of persisted fields (validated with JSON Schema on load) and a
capability set the state machine consults before any transition.

  v1 plain_tally         authority, voting mint, merkle root, vote count
  v2 token_interface     + payout (treasury mint, amount, target), set_tally/execute,
                           any asset program
  v3 legacy_token        as v2, legacy asset program only
  v4 privacy_commitment  creator commitment instead of authority, finalize with
                           tally proof, legacy asset program only

Migration rules (migrate_proposal_doc):
  - 1 -> 2: payout fields added empty (execution stays unavailable until bound)
  - 2 -> 3: version tag only; payouts become restricted to the legacy program
  - 3 -> 4 and every downgrade: rejected. An authority cannot be turned into a
    creator commitment without the creator's secret.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from jsonschema import Draft202012Validator

from sealvote.errors import SchemaMigrationError, UnsupportedOperation
from sealvote.u64 import U64_MAX


PROPOSAL_SCHEMA_ID = "sealvote.proposal"
NULLIFIER_SCHEMA_ID = "sealvote.nullifier_record"
CURRENT_VERSION = 4

LEGACY_PROGRAM = "token"
ALL_PROGRAMS: FrozenSet[str] = frozenset({"token", "token-2022"})


@dataclass(frozen=True)
class SchemaVersion:
    version: int
    name: str
    identity: str  # "authority" | "creator_commitment"
    set_tally: bool
    execute: bool
    finalize: bool
    asset_programs: FrozenSet[str]

    @property
    def has_payout(self) -> bool:
        return self.execute or self.finalize

    def require(self, operation: str) -> None:
        if not getattr(self, operation):
            raise UnsupportedOperation(f"{operation} is not available for schema v{self.version} ({self.name})")


VERSIONS: Dict[int, SchemaVersion] = {
    1: SchemaVersion(1, "plain_tally", "authority", False, False, False, frozenset()),
    2: SchemaVersion(2, "token_interface", "authority", True, True, False, ALL_PROGRAMS),
    3: SchemaVersion(3, "legacy_token", "authority", True, True, False, frozenset({LEGACY_PROGRAM})),
    4: SchemaVersion(4, "privacy_commitment", "creator_commitment", False, False, True, frozenset({LEGACY_PROGRAM})),
}


def get_version(version: int) -> SchemaVersion:
    sv = VERSIONS.get(version)
    if sv is None:
        raise SchemaMigrationError(f"unknown proposal schema version: {version!r}")
    return sv


_HEX32 = {"type": "string", "pattern": "^[0-9a-f]{64}$"}
_U64 = {"type": "integer", "minimum": 0, "maximum": U64_MAX}


def _proposal_schema(version: int) -> Dict[str, Any]:
    sv = VERSIONS[version]
    props: Dict[str, Any] = {
        "schema_id": {"const": PROPOSAL_SCHEMA_ID},
        "schema_version": {"const": version},
        "proposal_id": _U64,
        "address": _HEX32,
        "voting_mint": {"type": "string", "minLength": 1},
        "merkle_root": _HEX32,
        "vote_count": _U64,
    }
    required = list(props)
    if sv.identity == "authority":
        props["authority"] = {"type": "string", "minLength": 1}
        required.append("authority")
    else:
        props["creator_commitment"] = _HEX32
        required.append("creator_commitment")
    if sv.has_payout:
        payout = {
            "treasury_mint": {"type": ["string", "null"]},
            "execution_amount": _U64,
            "target_wallet": {"type": ["string", "null"]},
            "tally_result": {"type": ["integer", "null"], "minimum": 0, "maximum": 255},
            "is_executed": {"type": "boolean"},
        }
        props.update(payout)
        required.extend(payout)
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "additionalProperties": False,
        "properties": props,
        "required": required,
    }


NULLIFIER_RECORD_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "schema_id": {"const": NULLIFIER_SCHEMA_ID},
        "version": {"const": 1},
        "proposal": _HEX32,
        "proposal_id": _U64,
        "nullifier": _HEX32,
        "ciphertext_hex": {"type": "string", "pattern": "^([0-9a-f]{2})+$"},
        "pubkey": _HEX32,
        "nonce": {"type": "string", "pattern": "^[0-9a-f]{32}$"},
    },
    "required": ["schema_id", "version", "proposal", "proposal_id", "nullifier", "ciphertext_hex", "pubkey", "nonce"],
}


_validators: Dict[int, Draft202012Validator] = {
    v: Draft202012Validator(_proposal_schema(v)) for v in VERSIONS
}
_nullifier_validator = Draft202012Validator(NULLIFIER_RECORD_SCHEMA)


def _first_error(v: Draft202012Validator, doc: Dict[str, Any]) -> Optional[str]:
    errs = sorted(v.iter_errors(doc), key=lambda e: list(e.path))
    if not errs:
        return None
    e0 = errs[0]
    loc = ".".join(str(x) for x in e0.path) if e0.path else "<root>"
    return f"{loc}: {e0.message}"


def validate_proposal_doc(doc: Dict[str, Any]) -> None:
    version = doc.get("schema_version")
    if version not in _validators:
        raise SchemaMigrationError(f"unknown proposal schema version: {version!r}")
    err = _first_error(_validators[version], doc)
    if err:
        raise SchemaMigrationError(f"proposal v{version} schema violation at {err}")


def validate_nullifier_doc(doc: Dict[str, Any]) -> None:
    err = _first_error(_nullifier_validator, doc)
    if err:
        raise SchemaMigrationError(f"nullifier record schema violation at {err}")


def migrate_proposal_doc(doc: Dict[str, Any], target: int) -> Dict[str, Any]:
    validate_proposal_doc(doc)
    get_version(target)
    out = dict(doc)
    current = out["schema_version"]
    if target < current:
        raise SchemaMigrationError(f"downgrade from v{current} to v{target} is not supported")

    while current < target:
        if current == 1:
            out.update(
                {
                    "schema_version": 2,
                    "treasury_mint": None,
                    "execution_amount": 0,
                    "target_wallet": None,
                    "tally_result": None,
                    "is_executed": False,
                }
            )
        elif current == 2:
            out["schema_version"] = 3
        else:
            raise SchemaMigrationError(
                f"v{current} -> v{current + 1} needs a creator commitment that cannot be derived from an authority"
            )
        current = out["schema_version"]

    validate_proposal_doc(out)
    return out
