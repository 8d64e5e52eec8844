"""
Encrypted ballots v1 (X25519 + HKDF-SHA256 + AES-GCM)

A ballot is the triple stored under a nullifier:
  ciphertext  AES-GCM(weight u64 | choice u64), 32 bytes with tag
  pubkey      voter's ephemeral X25519 public key (32 bytes)
  nonce       16 random bytes

The key is HKDF(X25519(ephemeral, cluster public key)); the proposal id is
bound as associated data so a ciphertext cannot be replayed on another
proposal. Only the tally cluster holds the matching private key; the
ledger side treats the ciphertext as opaque bytes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple
import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from sealvote.errors import InvalidBallot
from sealvote.models import NullifierRecord
from sealvote.store import AccountStore
from sealvote.u64 import is_u64

PUBKEY_LEN = 32
NONCE_LEN = 16
NULLIFIER_KIND = "nullifier"
CHOICE_NO = 0
CHOICE_YES = 1

_PLAINTEXT = struct.Struct("<QQ")


@dataclass(frozen=True)
class EncryptedBallot:
    ciphertext: bytes
    pubkey: bytes
    nonce: bytes


def validate_ballot(ballot: EncryptedBallot, max_ciphertext_len: int = 200) -> None:
    if not ballot.ciphertext:
        raise InvalidBallot("ciphertext is empty")
    if len(ballot.ciphertext) > max_ciphertext_len:
        raise InvalidBallot(f"ciphertext exceeds {max_ciphertext_len} bytes")
    if len(ballot.pubkey) != PUBKEY_LEN:
        raise InvalidBallot(f"ephemeral pubkey must be {PUBKEY_LEN} bytes")
    if len(ballot.nonce) != NONCE_LEN:
        raise InvalidBallot(f"nonce must be {NONCE_LEN} bytes")


def raw_public_key(key: x25519.X25519PublicKey) -> bytes:
    return key.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


def _ballot_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=b"sealvote-ballot:v1",
    ).derive(shared_secret)


def _aad(proposal_id: int) -> bytes:
    return f"proposal_id={proposal_id}".encode("utf-8")


def encrypt_ballot(
    cluster_public_key: bytes,
    *,
    weight: int,
    choice: int,
    proposal_id: int,
    nonce: Optional[bytes] = None,
) -> EncryptedBallot:
    if not is_u64(weight) or not is_u64(choice):
        raise InvalidBallot("weight and choice must fit in u64")
    nonce = nonce or os.urandom(NONCE_LEN)

    eph_priv = x25519.X25519PrivateKey.generate()
    cluster_pub = x25519.X25519PublicKey.from_public_bytes(cluster_public_key)
    key = _ballot_key(eph_priv.exchange(cluster_pub))
    ct = AESGCM(key).encrypt(nonce, _PLAINTEXT.pack(weight, choice), _aad(proposal_id))
    return EncryptedBallot(ciphertext=ct, pubkey=raw_public_key(eph_priv.public_key()), nonce=nonce)


def open_ballot(cluster_private_key: x25519.X25519PrivateKey, ballot: EncryptedBallot, proposal_id: int) -> Tuple[int, int]:
    """Returns (weight, choice). Raises InvalidBallot when the ciphertext does not authenticate."""
    try:
        eph_pub = x25519.X25519PublicKey.from_public_bytes(ballot.pubkey)
        key = _ballot_key(cluster_private_key.exchange(eph_pub))
        pt = AESGCM(key).decrypt(ballot.nonce, ballot.ciphertext, _aad(proposal_id))
    except (InvalidTag, ValueError) as err:
        raise InvalidBallot("ballot does not decrypt under the cluster key") from err
    if len(pt) != _PLAINTEXT.size:
        raise InvalidBallot("ballot plaintext has the wrong length")
    weight, choice = _PLAINTEXT.unpack(pt)
    return weight, choice


def ballot_of(record: NullifierRecord) -> EncryptedBallot:
    return EncryptedBallot(ciphertext=record.ciphertext, pubkey=record.pubkey, nonce=record.nonce)


class BallotStore:
    """Read side of the nullifier records: the encrypted ballots of a proposal."""

    def __init__(self, store: AccountStore) -> None:
        self.store = store

    def iter_ballots(self, proposal_address: str) -> Iterator[NullifierRecord]:
        for _addr, doc in self.store.iter_kind(NULLIFIER_KIND):
            if doc.get("proposal") == proposal_address:
                yield NullifierRecord.from_doc(doc)

    def list_ballots(self, proposal_address: str) -> List[NullifierRecord]:
        return list(self.iter_ballots(proposal_address))

    def count(self, proposal_address: str) -> int:
        return sum(1 for _ in self.iter_ballots(proposal_address))
