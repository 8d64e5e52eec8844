"""
Settlement executor v1

Moves a passed proposal's payout out of its custody holding exactly once.

  custody holding:  holding_address(proposal.address, treasury_mint)
  target holding:   holding_address(target_wallet, treasury_mint)

The custody holding is owned by the proposal itself. Only a ProposalSigner
for that proposal can authorize moving funds out of it; the signer exists
for the duration of one settle() call and is revoked on exit.

AssetBook is the reference asset ledger (mints, holdings, checked
transfers) kept in the same AccountStore as proposals. Any object with
`mint_info` and `transfer_checked` can stand in for it.
"""
from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Union
import logging

from sealvote.errors import (
    AlreadyExecuted,
    InsufficientFunds,
    InvalidConfiguration,
    NotAuthorized,
    TransferRejected,
)
from sealvote.models import Proposal
from sealvote.schema import LEGACY_PROGRAM
from sealvote.store import AccountStore, MemoryStore, holding_address, mint_address
from sealvote.u64 import checked_add, is_u64

log = logging.getLogger(__name__)

MINT_KIND = "mint"
HOLDING_KIND = "holding"


@dataclass(frozen=True)
class MintInfo:
    asset: str
    decimals: int
    program: str = LEGACY_PROGRAM


class ProposalSigner:
    """Scoped signing token for a proposal's custody holding. Not copyable, not picklable."""

    __slots__ = ("_owner", "_live")

    def __init__(self, proposal_address: str) -> None:
        self._owner = proposal_address
        self._live = True

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def live(self) -> bool:
        return self._live

    def revoke(self) -> None:
        self._live = False

    def __enter__(self) -> "ProposalSigner":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.revoke()

    def __reduce__(self):
        raise TypeError("ProposalSigner cannot be serialized")

    def __copy__(self):
        raise TypeError("ProposalSigner cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("ProposalSigner cannot be copied")

    def __repr__(self) -> str:
        state = "live" if self._live else "revoked"
        return f"ProposalSigner({self._owner[:10]}..., {state})"


Authority = Union[str, ProposalSigner]


class AssetLedger(Protocol):
    def mint_info(self, asset: str) -> MintInfo:
        ...

    def transfer_checked(
        self,
        from_holding: str,
        to_holding: str,
        authority: Authority,
        asset: str,
        amount: int,
        decimals: int,
    ) -> None:
        ...


def _authorizes(authority: Authority, owner: str) -> bool:
    if isinstance(authority, ProposalSigner):
        return authority.live and authority.owner == owner
    return authority == owner


class AssetBook:
    def __init__(self, store: Optional[AccountStore] = None) -> None:
        self.store = store if store is not None else MemoryStore()

    def create_mint(self, asset: str, decimals: int, program: str = LEGACY_PROGRAM) -> MintInfo:
        if not 0 <= decimals <= 255:
            raise InvalidConfiguration("decimals must be in 0..255")
        info = MintInfo(asset=asset, decimals=decimals, program=program)
        self.store.create(MINT_KIND, mint_address(asset), {"asset": asset, "decimals": decimals, "program": program})
        return info

    def mint_info(self, asset: str) -> MintInfo:
        doc = self.store.load(MINT_KIND, mint_address(asset))
        if doc is None:
            raise TransferRejected(f"unknown asset: {asset}")
        return MintInfo(asset=doc["asset"], decimals=doc["decimals"], program=doc["program"])

    def holding_address(self, owner: str, asset: str) -> str:
        return holding_address(owner, asset)

    def _holding(self, address: str) -> Optional[Dict[str, Any]]:
        return self.store.load(HOLDING_KIND, address)

    def _credit(self, owner: str, asset: str, amount: int) -> None:
        addr = holding_address(owner, asset)
        with self.store.lock(addr):
            doc = self._holding(addr)
            if doc is None:
                self.store.create(HOLDING_KIND, addr, {"owner": owner, "asset": asset, "amount": amount})
            else:
                doc["amount"] = checked_add(doc["amount"], amount)
                self.store.save(HOLDING_KIND, addr, doc)

    def open_holding(self, owner: str, asset: str) -> str:
        self.mint_info(asset)
        addr = holding_address(owner, asset)
        with self.store.lock(addr):
            if self._holding(addr) is None:
                self.store.create(HOLDING_KIND, addr, {"owner": owner, "asset": asset, "amount": 0})
        return addr

    def mint_to(self, owner: str, asset: str, amount: int) -> None:
        self.mint_info(asset)
        if not is_u64(amount):
            raise TransferRejected("amount must fit in u64")
        self._credit(owner, asset, amount)

    def balance_of(self, owner: str, asset: str) -> int:
        doc = self._holding(holding_address(owner, asset))
        return doc["amount"] if doc else 0

    def transfer_checked(
        self,
        from_holding: str,
        to_holding: str,
        authority: Authority,
        asset: str,
        amount: int,
        decimals: int,
    ) -> None:
        info = self.mint_info(asset)
        if decimals != info.decimals:
            raise TransferRejected(f"decimals mismatch for {asset}: {decimals} != {info.decimals}")
        if not is_u64(amount):
            raise TransferRejected("amount must fit in u64")

        if from_holding == to_holding:
            raise TransferRejected("source and destination holding are the same")

        with ExitStack() as held:
            for addr in sorted((from_holding, to_holding)):
                held.enter_context(self.store.lock(addr))

            src = self._holding(from_holding)
            if src is None or src["asset"] != asset:
                raise TransferRejected(f"no {asset} holding at {from_holding}")
            if not _authorizes(authority, src["owner"]):
                raise NotAuthorized("transfer authority does not own the source holding")
            if src["amount"] < amount:
                raise InsufficientFunds(f"holding has {src['amount']}, transfer needs {amount}")

            dst = self._holding(to_holding)
            if dst is None:
                raise TransferRejected(f"no {asset} holding at {to_holding}")
            if dst["asset"] != asset:
                raise TransferRejected("destination holding is for a different asset")

            # both balances are computed before either is written
            credited = checked_add(dst["amount"], amount)
            src["amount"] -= amount
            dst["amount"] = credited
            self.store.save(HOLDING_KIND, from_holding, src)
            self.store.save(HOLDING_KIND, to_holding, dst)


class SettlementExecutor:
    def __init__(self, assets: AssetLedger) -> None:
        self.assets = assets

    def settle(self, proposal: Proposal) -> Proposal:
        """
        Transfer execution_amount from custody to the target and return the
        proposal with is_executed set. The caller persists the result inside
        the same locked section.
        """
        if proposal.is_executed:
            raise AlreadyExecuted()
        if not proposal.treasury_mint or not proposal.target_wallet or proposal.execution_amount <= 0:
            raise InvalidConfiguration(f"proposal #{proposal.proposal_id} has no bound payout")

        asset = proposal.treasury_mint
        info = self.assets.mint_info(asset)
        allowed = proposal.version.asset_programs
        if info.program not in allowed:
            raise TransferRejected(
                f"asset program {info.program!r} not allowed for schema v{proposal.schema_version}"
            )

        custody = holding_address(proposal.address, asset)
        target = holding_address(proposal.target_wallet, asset)
        with ProposalSigner(proposal.address) as signer:
            self.assets.transfer_checked(
                custody, target, signer, asset, proposal.execution_amount, info.decimals
            )
        log.info(
            "settled proposal #%d: %d %s to %s",
            proposal.proposal_id, proposal.execution_amount, asset, proposal.target_wallet,
        )
        return proposal.mark_executed()
