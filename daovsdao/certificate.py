"""
Sponsorship certificates.

A certificate is a transferable receipt for the pool shares minted by one
sponsorship deposit. The registry here issues them on behalf of the game
(its *manager*) and redeems them back through the manager.

Collaborator interfaces:

    CertificateIssuer   what the game needs from a certificate registry
    SharesRedeemer      what a certificate registry needs from the game
    MetadataRenderer    renders certificate data for display (black box)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from daovsdao.core import ZERO_ADDRESS, is_zero_address
from daovsdao.errors import AuthorizationError, BoundsError, StateError
from daovsdao.events import (
    CertificateEmitted,
    CertificateRedeemed,
    CertificateTransferred,
    Event,
    EventBus,
    EventStore,
    MetadataUpdate,
    Receipt,
    SponsorshipManagerUpdated,
    SponsorshipMetadataFactoryUpdated,
)
from daovsdao.ledger import OwnershipGate
from daovsdao.observability import AuditLogger, GameLayer, get_logger

logger = get_logger("certificate", GameLayer.CERTIFICATE)

CERTIFICATE_NAME = "DVD - Sponsorship Certificate"
CERTIFICATE_SYMBOL = "DVD-SC"
DEFAULT_CERTIFICATE_ADDRESS = "0x00000000000000000000000000000000000d5c01"


class CertificateIssuer(ABC):
    """Issues certificates for sponsorship deposits."""

    @property
    @abstractmethod
    def address(self) -> str:
        ...

    @abstractmethod
    def emit_certificate(
        self,
        caller: str,
        sponsor: str,
        beneficiary: str,
        amount: int,
        shares: int,
    ) -> int:
        """Record a deposit and return the new certificate id."""


class SharesRedeemer(ABC):
    """Converts redeemed pool shares back into value."""

    @property
    @abstractmethod
    def address(self) -> str:
        ...

    @abstractmethod
    def redeem_sponsorship_shares(
        self,
        caller: str,
        owner: str,
        beneficiary: str,
        shares: int,
    ) -> Receipt:
        """Burn ``shares`` of ``beneficiary``'s pool and pay ``owner``.

        The returned receipt's ``result`` is the value paid.
        """


class MetadataRenderer(ABC):
    """Turns certificate data into a display artifact (e.g. a data URI)."""

    @abstractmethod
    def create_certificate_metadata(self, certificate_id: int, data: "CertificateData") -> str:
        ...


@dataclass
class CertificateData:
    sponsor: str
    receiver: str
    amount: int
    shares: int
    redeemed: int = 0
    redeemed_shares: int = 0
    closed: bool = False

    @property
    def remaining_shares(self) -> int:
        return self.shares - self.redeemed_shares

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("amount", "shares", "redeemed", "redeemed_shares"):
            data[key] = str(data[key])
        return data


class SponsorshipCertificate(CertificateIssuer):
    """In-process certificate registry (one NFT per sponsorship deposit)."""

    name = CERTIFICATE_NAME
    symbol = CERTIFICATE_SYMBOL

    def __init__(
        self,
        owner: str,
        address: str = DEFAULT_CERTIFICATE_ADDRESS,
        bus: Optional[EventBus] = None,
        store: Optional[EventStore] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._address = address
        self.gate = OwnershipGate(owner)
        self.bus = bus or EventBus()
        self.store = store or EventStore()
        self.audit = audit
        self.manager: Optional[SharesRedeemer] = None
        self.metadata_factory: Optional[MetadataRenderer] = None
        self._certificates: Dict[int, CertificateData] = {}
        self._owners: Dict[int, str] = {}
        self._next_id = 1

    @property
    def address(self) -> str:
        return self._address

    @property
    def owner(self) -> str:
        return self.gate.owner

    @property
    def manager_address(self) -> str:
        return self.manager.address if self.manager is not None else ZERO_ADDRESS

    # ── plumbing ──────────────────────────────────────────────────────────

    def _commit(self, operation: str, caller: str, events: List[Event], result: Any = None) -> Receipt:
        self.store.append(f"certificate:{self._address}", events)
        for event in events:
            self.bus.publish(event)
        return Receipt(operation=operation, caller=caller, timestamp=0, events=events, result=result)

    def _privileged(self, caller: str, action: str, **details: Any) -> None:
        try:
            self.gate.require_owner(caller)
        except AuthorizationError:
            if self.audit:
                self.audit.log(caller, action, "certificate", self._address, "denied", **details)
            raise

    def _audited(self, caller: str, action: str, **details: Any) -> None:
        if self.audit:
            self.audit.log(caller, action, "certificate", self._address, "success", **details)

    def _require_token(self, certificate_id: int) -> CertificateData:
        data = self._certificates.get(certificate_id)
        if data is None:
            raise BoundsError("Invalid certificate id", certificate_id=certificate_id)
        return data

    # ── administration ────────────────────────────────────────────────────

    def set_sponsorship_certificate_manager(self, caller: str, manager: Optional[SharesRedeemer]) -> Receipt:
        self._privileged(caller, "set_manager", manager=getattr(manager, "address", ZERO_ADDRESS))
        if manager is None or is_zero_address(manager.address):
            raise BoundsError("Invalid manager")
        self.manager = manager
        self._audited(caller, "set_manager", manager=manager.address)
        return self._commit(
            "set_sponsorship_certificate_manager",
            caller,
            [SponsorshipManagerUpdated(manager=manager.address)],
        )

    def set_sponsorship_certificate_metadata_factory(
        self, caller: str, factory: Optional[MetadataRenderer], factory_address: str = ""
    ) -> Receipt:
        self._privileged(caller, "set_metadata_factory", factory=type(factory).__name__)
        if factory is None:
            raise BoundsError("Invalid factory")
        self.metadata_factory = factory
        self._audited(caller, "set_metadata_factory", factory=type(factory).__name__)
        label = factory_address or getattr(factory, "address", type(factory).__name__)
        return self._commit(
            "set_sponsorship_certificate_metadata_factory",
            caller,
            [SponsorshipMetadataFactoryUpdated(factory=label)],
        )

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        self._privileged(caller, "transfer_ownership", new_owner=new_owner)
        previous = self.gate.transfer_ownership(caller, new_owner)
        self._audited(caller, "transfer_ownership", new_owner=new_owner)
        return previous

    # ── issuance / redemption ─────────────────────────────────────────────

    def emit_certificate(
        self,
        caller: str,
        sponsor: str,
        beneficiary: str,
        amount: int,
        shares: int,
    ) -> int:
        if self.manager is None or caller != self.manager.address:
            raise AuthorizationError("Only manager can emit certs", caller=caller)
        certificate_id = self._next_id
        self._next_id += 1
        self._certificates[certificate_id] = CertificateData(
            sponsor=sponsor,
            receiver=beneficiary,
            amount=amount,
            shares=shares,
        )
        self._owners[certificate_id] = sponsor
        self._commit("emit_certificate", caller, [CertificateEmitted(
            certificate_id=certificate_id,
            owner=sponsor,
            receiver=beneficiary,
            amount=amount,
            shares=shares,
        )], result=certificate_id)
        logger.info("Certificate emitted", certificate_id=certificate_id, sponsor=sponsor,
                    beneficiary=beneficiary, shares=shares)
        return certificate_id

    def redeem_certificate(self, caller: str, certificate_id: int, shares: Optional[int] = None) -> Receipt:
        """Redeem ``shares`` (default: all remaining) of a certificate through the manager."""
        data = self._require_token(certificate_id)
        if self._owners.get(certificate_id) != caller:
            raise AuthorizationError("Not the owner", certificate_id=certificate_id, caller=caller)
        if data.closed:
            raise StateError("Certificate already closed", certificate_id=certificate_id)
        if shares is None:
            shares = data.remaining_shares
        if shares > data.remaining_shares:
            raise StateError(
                "Insufficient certificate shares",
                certificate_id=certificate_id,
                requested=shares,
                remaining=data.remaining_shares,
            )
        if self.manager is None:
            raise StateError("Manager not set")

        receipt = self.manager.redeem_sponsorship_shares(self._address, caller, data.receiver, shares)
        amount = int(receipt.result)

        data.redeemed += amount
        data.redeemed_shares += shares
        data.closed = data.redeemed_shares == data.shares

        logger.info("Certificate redeemed", certificate_id=certificate_id, shares=shares,
                    amount=amount, closed=data.closed)
        return self._commit("redeem_certificate", caller, [
            CertificateRedeemed(
                certificate_id=certificate_id,
                owner=caller,
                shares=shares,
                amount=amount,
                closed=data.closed,
            ),
            MetadataUpdate(certificate_id=certificate_id),
        ], result=amount)

    # ── NFT surface ───────────────────────────────────────────────────────

    def owner_of(self, certificate_id: int) -> str:
        self._require_token(certificate_id)
        return self._owners[certificate_id]

    def balance_of(self, owner: str) -> int:
        return sum(1 for holder in self._owners.values() if holder == owner)

    def transfer_from(self, caller: str, sender: str, recipient: str, certificate_id: int) -> Receipt:
        self._require_token(certificate_id)
        if self._owners[certificate_id] != sender or caller != sender:
            raise AuthorizationError("Not the owner", certificate_id=certificate_id, caller=caller)
        if is_zero_address(recipient):
            raise BoundsError("Invalid recipient")
        self._owners[certificate_id] = recipient
        return self._commit("transfer_from", caller, [CertificateTransferred(
            certificate_id=certificate_id,
            sender=sender,
            recipient=recipient,
        )])

    def certificate_data(self, certificate_id: int) -> CertificateData:
        return self._require_token(certificate_id)

    def get_user_certificates(self, identity: str) -> Tuple[List[int], List[int]]:
        """(certificates owned, open certificates where ``identity`` is the receiver)."""
        owned = [cid for cid, holder in sorted(self._owners.items()) if holder == identity]
        beneficiary = [
            cid for cid, data in sorted(self._certificates.items())
            if data.receiver == identity and not data.closed
        ]
        return owned, beneficiary

    def token_metadata(self, certificate_id: int) -> str:
        if self.metadata_factory is None:
            raise StateError("Metadata factory not set")
        data = self._require_token(certificate_id)
        return self.metadata_factory.create_certificate_metadata(certificate_id, data)

    @property
    def total_certificates(self) -> int:
        return len(self._certificates)
