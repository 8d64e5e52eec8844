"""
Governance configuration.

Sources, later ones win:
1) built-in defaults (GovernanceConfig field defaults)
2) optional YAML file (path argument or env SEALVOTE_CONFIG)
3) SEALVOTE_* environment overrides

The YAML document is validated against CONFIG_SCHEMA before use.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import os

import yaml
from jsonschema import Draft202012Validator

from sealvote.errors import InvalidConfiguration
from sealvote.schema import CURRENT_VERSION


CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "namespace_tag": {"type": "string", "minLength": 1},
        "nullifier_tag": {"type": "string", "minLength": 1},
        "schema_version": {"type": "integer", "enum": [1, 2, 3, 4]},
        "tree_depth": {"type": "integer", "minimum": 1, "maximum": 20},
        "weighting": {"type": "string", "enum": ["quadratic", "linear"]},
        "max_ciphertext_len": {"type": "integer", "minimum": 1},
        "mpc_parties": {"type": "integer", "minimum": 2},
        "proof_verifier": {"type": "string", "minLength": 1},
        "eligibility": {"type": "string", "enum": ["open", "merkle"]},
        "allowed_relayers": {"type": "array", "items": {"type": "string"}},
        "store_dir": {"type": ["string", "null"]},
        "events_out": {"type": ["string", "null"]},
    },
}


def _truthy_env(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class GovernanceConfig:
    namespace_tag: str = "svrn_v5"
    nullifier_tag: str = "nullifier"
    schema_version: int = CURRENT_VERSION
    tree_depth: int = 8
    weighting: str = "quadratic"
    max_ciphertext_len: int = 200
    mpc_parties: int = 3
    proof_verifier: str = "presence.v1"
    eligibility: str = "open"
    allowed_relayers: Tuple[str, ...] = field(default_factory=tuple)
    store_dir: Optional[str] = None
    events_out: Optional[str] = None


def load_yaml(path: Path) -> Dict[str, Any]:
    doc = yaml.safe_load(path.read_text(encoding="utf-8-sig"))
    return doc or {}


def validate_config_doc(doc: Dict[str, Any]) -> None:
    v = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(v.iter_errors(doc), key=lambda e: list(e.path))
    if errors:
        msg = "\n".join(f"- {list(e.path)}: {e.message}" for e in errors)
        raise InvalidConfiguration("governance config validation failed:\n" + msg)


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in ("namespace_tag", "nullifier_tag", "weighting", "proof_verifier", "eligibility", "store_dir", "events_out"):
        v = os.getenv(f"SEALVOTE_{name.upper()}", "").strip()
        if v:
            out[name] = v
    for name in ("schema_version", "tree_depth", "max_ciphertext_len", "mpc_parties"):
        v = os.getenv(f"SEALVOTE_{name.upper()}", "").strip()
        if v:
            try:
                out[name] = int(v)
            except ValueError as e:
                raise InvalidConfiguration(f"SEALVOTE_{name.upper()} must be an integer, got {v!r}") from e
    relayers = os.getenv("SEALVOTE_ALLOWED_RELAYERS", "").strip()
    if relayers:
        out["allowed_relayers"] = [r.strip() for r in relayers.split(",") if r.strip()]
    if _truthy_env("SEALVOTE_STRICT_ELIGIBILITY"):
        out["eligibility"] = "merkle"
    return out


def config_from_dict(doc: Dict[str, Any], base: Optional[GovernanceConfig] = None) -> GovernanceConfig:
    validate_config_doc(doc)
    known = {f.name for f in fields(GovernanceConfig)}
    values = {k: v for k, v in doc.items() if k in known}
    if "allowed_relayers" in values:
        values["allowed_relayers"] = tuple(values["allowed_relayers"])
    return replace(base or GovernanceConfig(), **values)


def load_config(path: Optional[Path] = None) -> GovernanceConfig:
    if path is None:
        envp = os.getenv("SEALVOTE_CONFIG", "").strip()
        path = Path(envp) if envp else None

    cfg = GovernanceConfig()
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"governance config not found: {path}")
        cfg = config_from_dict(load_yaml(path), cfg)

    overrides = _env_overrides()
    if overrides:
        cfg = config_from_dict(overrides, cfg)
    return cfg
