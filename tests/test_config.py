from pathlib import Path

import pytest

from sealvote.config import GovernanceConfig, config_from_dict, load_config
from sealvote.errors import InvalidConfiguration
from sealvote.proposal import Governance
from sealvote.store import DirectoryStore
from sealvote.verifiers import StubTallyVerifier


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("CONFIG", "NAMESPACE_TAG", "SCHEMA_VERSION", "ALLOWED_RELAYERS", "STRICT_ELIGIBILITY", "EVENTS_OUT"):
        monkeypatch.delenv(f"SEALVOTE_{name}", raising=False)


def test_defaults():
    cfg = load_config()
    assert cfg == GovernanceConfig()
    assert cfg.namespace_tag == "svrn_v5"
    assert cfg.schema_version == 4
    assert cfg.eligibility == "open"


def test_yaml_file_then_env_overrides(tmp_path: Path, monkeypatch):
    p = tmp_path / "governance.yaml"
    p.write_text(
        "namespace_tag: dao_v1\n"
        "schema_version: 3\n"
        "proof_verifier: stub.sha256.v1\n"
        "allowed_relayers: [r1, r2]\n",
        encoding="utf-8",
    )
    cfg = load_config(p)
    assert cfg.namespace_tag == "dao_v1"
    assert cfg.allowed_relayers == ("r1", "r2")

    monkeypatch.setenv("SEALVOTE_CONFIG", str(p))
    monkeypatch.setenv("SEALVOTE_SCHEMA_VERSION", "2")
    monkeypatch.setenv("SEALVOTE_STRICT_ELIGIBILITY", "1")
    cfg = load_config()
    assert cfg.namespace_tag == "dao_v1"
    assert cfg.schema_version == 2
    assert cfg.eligibility == "merkle"


def test_invalid_documents_are_rejected(tmp_path: Path, monkeypatch):
    with pytest.raises(InvalidConfiguration):
        config_from_dict({"schema_version": 7})
    with pytest.raises(InvalidConfiguration):
        config_from_dict({"unknown_key": True})
    monkeypatch.setenv("SEALVOTE_SCHEMA_VERSION", "four")
    with pytest.raises(InvalidConfiguration):
        load_config()
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_governance_from_config(tmp_path: Path):
    p = tmp_path / "governance.yaml"
    p.write_text(
        f"store_dir: {tmp_path / 'ledger'}\nproof_verifier: stub.sha256.v1\n",
        encoding="utf-8",
    )
    gov = Governance.from_config(p)
    assert isinstance(gov.store, DirectoryStore)
    assert isinstance(gov.verifier, StubTallyVerifier)


def test_unknown_verifier_is_a_configuration_error():
    with pytest.raises(InvalidConfiguration):
        Governance(config=GovernanceConfig(proof_verifier="groth16.v9"))
