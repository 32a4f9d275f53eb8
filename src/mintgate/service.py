"""Mint service — unified facade for the issuance engine.

This is the primary interface for programmatic access to mintgate.
It owns every piece of shared state and orchestrates all subsystems:
- Phase control (active sale phase, allowlist commitments)
- Allowlist membership (Merkle proof verification)
- Payment validation (exact price x quantity)
- Supply accounting (total, gifted, per-identity per-phase counts)
- Item materialization (ownership registry collaborator)
- Audit trail (append-only event log)

Every mint entry point runs the same ordered checks and returns at the
first failure:

    phase -> proof (allowlist phases) -> quantity -> payment -> supply

Only when every check passes is the ledger reservation committed and
the new ids handed to the registry, in order, under the recipient. If
anything fails after the reservation (a receipt callback raising, the
audit append failing) the reservation and materializations are undone,
so no request is ever partially applied.

Requests are serialized with a lock. Receipt callbacks run on the
minting thread while a request is still committing; an explicit
in-progress marker rejects any minting entry point reached from such a
callback with REENTRANT_CALL.

All operations produce typed ServiceResults.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Sequence

from mintgate.crypto.merkle import digest_hex, parse_digest, verify_proof
from mintgate.ledger.supply import SupplyLedger
from mintgate.models.sale import (
    ALLOWLIST_PHASES,
    MintCheck,
    MintError,
    MintErrorCode,
    MintRequest,
    SalePhase,
    normalize_identity,
)
from mintgate.persistence.event_log import EventKind, EventLog
from mintgate.policy.resolver import MintPolicy
from mintgate.registry.ownership import OwnershipRegistry, ProxyApprovalGate
from mintgate.sale.payment import validate_payment, validate_quantity
from mintgate.sale.phase_controller import PhaseController


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    error_code: Optional[MintErrorCode] = None
    data: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def rejected(check: MintCheck) -> ServiceResult:
        return ServiceResult(
            success=False, errors=[check.message], error_code=check.code,
        )


class MintService:
    """Issuance engine facade.

    Built once per collection. Initial state: phase CLOSED, all counters
    zero, both allowlist commitments empty, collected balance zero.
    A non-empty event log is replayed on construction, so a restarted
    service continues from the recorded phase, counters and owners.

    Usage:
        policy = PolicyResolver.from_config_dir(config_dir).policy
        service = MintService(policy, admin="0xAdmin...")

        service.set_phase(admin, SalePhase.PUBLIC)
        result = service.mint_public(holder, quantity=2, payment=2 * price)
        result.data["item_ids"]   # [1, 2]

        service.set_primary_commitment(admin, tree.root)
        service.set_phase(admin, SalePhase.PRIMARY_ALLOWLIST)
        result = service.mint_primary_allowlist(holder, 1, price, proof)
    """

    def __init__(
        self,
        policy: MintPolicy,
        admin: str,
        registry: Optional[OwnershipRegistry] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._policy = policy
        self._admin = normalize_identity(admin)
        self._phase_controller = PhaseController()
        self._ledger = SupplyLedger(
            max_total=policy.max_total,
            max_gifted=policy.max_gifted,
            max_per_phase=policy.max_per_phase,
        )
        if registry is None:
            registry = OwnershipRegistry(
                base_uri=policy.base_uri,
                royalty_receiver=self._admin,
                royalty_bps=policy.royalty_bps,
                proxy_gate=ProxyApprovalGate(
                    policy.proxy_registry, policy.proxy_approval_enabled,
                ),
            )
        self._registry = registry
        self._event_log = event_log if event_log is not None else EventLog()
        self._event_counter = self._event_log.count

        # Price per phase. The primary allowlist is charged the public
        # price; only the secondary allowlist has its own price.
        self._prices: dict[SalePhase, int] = {
            SalePhase.PUBLIC: policy.public_price_wei,
            SalePhase.PRIMARY_ALLOWLIST: policy.public_price_wei,
            SalePhase.SECONDARY_ALLOWLIST: policy.secondary_price_wei,
        }

        self._balance = 0
        self._total_withdrawn = 0

        self._lock = threading.RLock()
        self._mint_in_progress = False
        self._mint_thread: Optional[int] = None

        if self._event_log.count:
            self._replay()

    # ------------------------------------------------------------------
    # Public minting
    # ------------------------------------------------------------------

    def mint_public(self, caller: str, quantity: int, payment: int) -> ServiceResult:
        """Mint during the PUBLIC phase at the public price."""
        return self._mint(caller, SalePhase.PUBLIC, quantity, payment, ())

    def mint_primary_allowlist(
        self,
        caller: str,
        quantity: int,
        payment: int,
        proof: Optional[Sequence[bytes]],
    ) -> ServiceResult:
        """Mint during PRIMARY_ALLOWLIST with a proof against the primary root."""
        return self._mint(
            caller, SalePhase.PRIMARY_ALLOWLIST, quantity, payment, proof,
        )

    def mint_secondary_allowlist(
        self,
        caller: str,
        quantity: int,
        payment: int,
        proof: Optional[Sequence[bytes]],
    ) -> ServiceResult:
        """Mint during SECONDARY_ALLOWLIST at the secondary price."""
        return self._mint(
            caller, SalePhase.SECONDARY_ALLOWLIST, quantity, payment, proof,
        )

    # ------------------------------------------------------------------
    # Admin gifting
    # ------------------------------------------------------------------

    def reserve_for_gifting(self, caller: str, quantity: int) -> ServiceResult:
        """Draw quantity items from the gift pool into the admin's hands."""
        def body(admin: str) -> ServiceResult:
            for check in (validate_quantity(quantity), self._ledger.check_gift(quantity)):
                if not check.ok:
                    return self._reject(admin, "reserve_for_gifting", check)
            return self._gift(admin, [admin] * quantity, "reserve_for_gifting")

        return self._guarded(caller, "reserve_for_gifting", body, admin_only=True)

    def gift_to_addresses(
        self, caller: str, recipients: Sequence[str]
    ) -> ServiceResult:
        """Gift one item from the gift pool to each recipient, in order."""
        def body(admin: str) -> ServiceResult:
            if not recipients:
                return self._reject(admin, "gift_to_addresses", MintCheck.failed(
                    MintErrorCode.INVALID_QUANTITY, "No gift recipients given",
                ))
            try:
                normalized = [normalize_identity(r) for r in recipients]
            except ValueError as e:
                return self._reject(admin, "gift_to_addresses", MintCheck.failed(
                    MintErrorCode.INVALID_IDENTITY, str(e),
                ))
            return self._gift(admin, normalized, "gift_to_addresses")

        return self._guarded(caller, "gift_to_addresses", body, admin_only=True)

    # ------------------------------------------------------------------
    # Admin setters
    # ------------------------------------------------------------------

    def set_phase(self, caller: str, phase: SalePhase) -> ServiceResult:
        """Overwrite the active sale phase. Any phase may follow any other."""
        try:
            target = SalePhase(phase)
        except ValueError:
            return ServiceResult(success=False, errors=[f"Unknown sale phase: {phase!r}"])

        def body(admin: str) -> ServiceResult:
            previous = self._phase_controller.set_phase(target)
            logger.info("Sale phase %s -> %s", previous.value, target.value)
            err = self._record(EventKind.PHASE_CHANGED, admin, {
                "from": previous.value, "to": target.value,
            })
            if err:
                self._phase_controller.set_phase(previous)
                return ServiceResult(success=False, errors=[err])
            return ServiceResult(success=True, data={
                "previous_phase": previous.value, "phase": target.value,
            })

        return self._admin_call(caller, body)

    def set_primary_commitment(self, caller: str, root: bytes) -> ServiceResult:
        """Replace the primary allowlist root."""
        return self._set_commitment(caller, SalePhase.PRIMARY_ALLOWLIST, root)

    def set_secondary_commitment(self, caller: str, root: bytes) -> ServiceResult:
        """Replace the secondary allowlist root."""
        return self._set_commitment(caller, SalePhase.SECONDARY_ALLOWLIST, root)

    def set_base_uri(self, caller: str, base_uri: str) -> ServiceResult:
        """Set the metadata base URI. No effect on the ledger."""
        def body(admin: str) -> ServiceResult:
            previous = self._registry.base_uri
            self._registry.set_base_uri(base_uri)
            err = self._record(EventKind.BASE_URI_SET, admin, {"base_uri": base_uri})
            if err:
                self._registry.set_base_uri(previous)
                return ServiceResult(success=False, errors=[err])
            return ServiceResult(success=True, data={"base_uri": base_uri})

        return self._admin_call(caller, body)

    def set_proxy_approval_enabled(self, caller: str, enabled: bool) -> ServiceResult:
        """Toggle the marketplace proxy blanket approval. No effect on the ledger."""
        def body(admin: str) -> ServiceResult:
            gate = self._registry.proxy_gate
            previous = gate.enabled
            gate.set_enabled(enabled)
            err = self._record(
                EventKind.PROXY_APPROVAL_SET, admin, {"enabled": bool(enabled)},
            )
            if err:
                gate.set_enabled(previous)
                return ServiceResult(success=False, errors=[err])
            return ServiceResult(success=True, data={"enabled": bool(enabled)})

        return self._admin_call(caller, body)

    def withdraw(self, caller: str) -> ServiceResult:
        """Move the whole collected balance to the admin."""
        def body(admin: str) -> ServiceResult:
            amount = self._balance
            err = self._record(EventKind.FUNDS_WITHDRAWN, admin, {"amount_wei": amount})
            if err:
                return ServiceResult(success=False, errors=[err])
            self._balance = 0
            self._total_withdrawn += amount
            logger.info("Withdrew %d wei to %s", amount, admin)
            return ServiceResult(success=True, data={
                "recipient": admin, "amount_wei": amount,
            })

        return self._admin_call(caller, body)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def policy(self) -> MintPolicy:
        return self._policy

    @property
    def registry(self) -> OwnershipRegistry:
        return self._registry

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def current_phase(self) -> SalePhase:
        return self._phase_controller.current_phase()

    def commitment(self, phase: SalePhase) -> bytes:
        return self._phase_controller.commitment(phase)

    def last_issued_id(self) -> int:
        return self._ledger.total_issued

    def total_gifted(self) -> int:
        return self._ledger.total_gifted

    def phase_mint_count(self, identity: str, phase: SalePhase) -> int:
        return self._ledger.phase_count(identity, phase)

    def price_for(self, phase: SalePhase) -> int:
        """Price per item in wei for a minting phase."""
        if phase not in self._prices:
            raise ValueError(f"Phase {phase.value} has no price")
        return self._prices[phase]

    def balance(self) -> int:
        """Collected payments not yet withdrawn, in wei."""
        return self._balance

    def owner_of(self, item_id: int) -> str:
        return self._registry.owner_of(item_id)

    def token_uri(self, item_id: int) -> str:
        return self._registry.token_uri(item_id)

    def royalty_info(self, item_id: int, sale_price: int) -> tuple[Optional[str], int]:
        return self._registry.royalty_info(item_id, sale_price)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self._registry.is_approved_for_all(owner, operator)

    def status(self) -> dict[str, Any]:
        """Return an engine-wide status summary."""
        return {
            "phase": self.current_phase().value,
            "commitments": {
                phase.value: digest_hex(self._phase_controller.commitment(phase))
                for phase in sorted(ALLOWLIST_PHASES, key=lambda p: p.value)
            },
            "supply": {
                "max_total": self._policy.max_total,
                "max_gifted": self._policy.max_gifted,
                "max_per_phase": self._policy.max_per_phase,
                **self._ledger.snapshot(),
            },
            "prices_wei": {p.value: price for p, price in self._prices.items()},
            "balance_wei": self._balance,
            "withdrawn_wei": self._total_withdrawn,
            "base_uri": self._registry.base_uri,
            "proxy_approval_enabled": self._registry.proxy_gate.enabled,
            "events": self._event_log.count,
        }

    # ------------------------------------------------------------------
    # Internal — orchestration
    # ------------------------------------------------------------------

    def _mint(
        self,
        caller: str,
        phase: SalePhase,
        quantity: int,
        payment: int,
        proof: Optional[Sequence[bytes]],
    ) -> ServiceResult:
        def body(identity: str) -> ServiceResult:
            request = MintRequest(
                identity=identity,
                quantity=quantity,
                phase=phase,
                payment=payment,
                proof=tuple(proof or ()),
            )
            for check in self._validate(request):
                if not check.ok:
                    return self._reject(identity, f"mint_{phase.value}", check)
            return self._commit_mint(request)

        return self._guarded(caller, f"mint_{phase.value}", body)

    def _validate(self, request: MintRequest) -> Iterator[MintCheck]:
        """Yield each ordered check; the caller stops at the first failure."""
        yield self._phase_controller.require_active_phase(request.phase)
        if request.phase in ALLOWLIST_PHASES:
            yield self._check_proof(request)
        yield validate_quantity(request.quantity)
        yield validate_payment(
            request.payment, self.price_for(request.phase), request.quantity,
        )
        yield self._ledger.check_issuance(
            request.identity, request.phase, request.quantity,
        )

    def _check_proof(self, request: MintRequest) -> MintCheck:
        root = self._phase_controller.commitment(request.phase)
        if not verify_proof(request.identity, request.proof, root):
            return MintCheck.failed(
                MintErrorCode.PROOF_INVALID,
                f"{request.identity} is not on the {request.phase.value} "
                f"allowlist committed as {digest_hex(root)}",
            )
        return MintCheck.passed()

    def _commit_mint(self, request: MintRequest) -> ServiceResult:
        def materialize() -> list[int]:
            ids = self._ledger.reserve_issuance(
                request.identity, request.phase, request.quantity,
            )
            for item_id in ids:
                self._registry.materialize(request.identity, item_id)
            return ids

        def finalize(ids: list[int]) -> dict[str, Any]:
            return {
                "recipient": request.identity,
                "phase": request.phase.value,
                "item_ids": ids,
                "payment_wei": request.payment,
            }

        result = self._run_committed(
            request.identity, f"mint_{request.phase.value}",
            EventKind.ITEMS_MINTED, materialize, finalize,
        )
        if result.success:
            self._balance += request.payment
            logger.debug(
                "Minted %s to %s in %s",
                result.data["item_ids"], request.identity, request.phase.value,
            )
        return result

    def _gift(
        self, admin: str, recipients: list[str], operation: str
    ) -> ServiceResult:
        check = self._ledger.check_gift(len(recipients))
        if not check.ok:
            return self._reject(admin, operation, check)

        def materialize() -> list[int]:
            ids = self._ledger.reserve_gift(len(recipients))
            for recipient, item_id in zip(recipients, ids):
                self._registry.materialize(recipient, item_id)
            return ids

        def finalize(ids: list[int]) -> dict[str, Any]:
            return {
                "operation": operation,
                "recipients": recipients,
                "item_ids": ids,
            }

        result = self._run_committed(
            admin, operation, EventKind.ITEMS_GIFTED, materialize, finalize,
        )
        if result.success:
            logger.info("Gifted %d items via %s", len(recipients), operation)
        return result

    def _run_committed(
        self,
        actor: str,
        operation: str,
        kind: EventKind,
        materialize: Callable[[], list[int]],
        finalize: Callable[[list[int]], dict[str, Any]],
    ) -> ServiceResult:
        """Reserve, materialize and audit as one unit.

        Any failure inside undoes the ledger reservation and every
        materialization made for this request.
        """
        try:
            with self._ledger.transaction(), self._registry.transaction():
                ids = materialize()
                data = finalize(ids)
                err = self._record(kind, actor, data)
                if err:
                    raise _AuditFailure(err)
        except MintError as e:
            return self._reject(actor, operation, MintCheck.failed(e.code, str(e)))
        except _AuditFailure as e:
            return ServiceResult(success=False, errors=[str(e)])
        except Exception as e:
            logger.warning("Receipt rejected during %s: %s", operation, e)
            return self._reject(actor, operation, MintCheck.failed(
                MintErrorCode.RECEIPT_REJECTED, f"Item receipt failed: {e}",
            ))
        return ServiceResult(success=True, data=data)

    def _set_commitment(
        self, caller: str, phase: SalePhase, root: bytes
    ) -> ServiceResult:
        def body(admin: str) -> ServiceResult:
            try:
                previous = self._phase_controller.set_commitment(phase, root)
            except ValueError as e:
                return ServiceResult(success=False, errors=[str(e)])
            err = self._record(EventKind.COMMITMENT_SET, admin, {
                "phase": phase.value, "root": digest_hex(root),
            })
            if err:
                self._phase_controller.set_commitment(phase, previous)
                return ServiceResult(success=False, errors=[err])
            logger.info("Commitment for %s set to %s", phase.value, digest_hex(root))
            return ServiceResult(success=True, data={
                "phase": phase.value, "root": digest_hex(root),
            })

        return self._admin_call(caller, body)

    # ------------------------------------------------------------------
    # Internal — guards
    # ------------------------------------------------------------------

    def _guarded(
        self,
        caller: str,
        operation: str,
        body: Callable[[str], ServiceResult],
        admin_only: bool = False,
    ) -> ServiceResult:
        """Run a minting operation under the lock and the in-progress marker.

        A call arriving on the thread that is already committing a mint
        (i.e. from a receipt callback) is rejected before touching state.
        Calls from other threads wait for the lock.
        """
        try:
            identity = normalize_identity(caller)
        except ValueError as e:
            return ServiceResult(
                success=False, errors=[str(e)],
                error_code=MintErrorCode.INVALID_IDENTITY,
            )

        with self._lock:
            if self._mint_in_progress and self._mint_thread == threading.get_ident():
                return self._reject(identity, operation, MintCheck.failed(
                    MintErrorCode.REENTRANT_CALL,
                    f"{operation} re-entered while a mint is still committing",
                ))
            if admin_only and identity != self._admin:
                return self._reject(identity, operation, MintCheck.failed(
                    MintErrorCode.UNAUTHORIZED, f"{identity} is not the admin",
                ))
            self._mint_in_progress = True
            self._mint_thread = threading.get_ident()
            try:
                return body(identity)
            finally:
                self._mint_in_progress = False
                self._mint_thread = None

    def _admin_call(
        self, caller: str, body: Callable[[str], ServiceResult]
    ) -> ServiceResult:
        try:
            identity = normalize_identity(caller)
        except ValueError as e:
            return ServiceResult(
                success=False, errors=[str(e)],
                error_code=MintErrorCode.INVALID_IDENTITY,
            )
        if identity != self._admin:
            return ServiceResult(
                success=False,
                errors=[f"{identity} is not the admin"],
                error_code=MintErrorCode.UNAUTHORIZED,
            )
        with self._lock:
            return body(identity)

    # ------------------------------------------------------------------
    # Internal — audit trail
    # ------------------------------------------------------------------

    def _reject(self, actor: str, operation: str, check: MintCheck) -> ServiceResult:
        """Record a rejected request and return the failure result."""
        logger.debug("Rejected %s from %s: %s", operation, actor, check.message)
        err = self._record(EventKind.MINT_REJECTED, actor, {
            "operation": operation,
            "error_code": check.code.value if check.code else None,
            "message": check.message,
        })
        if err:
            logger.warning("Rejection of %s from %s not recorded: %s", operation, actor, err)
        return ServiceResult.rejected(check)

    def _replay(self) -> None:
        """Rebuild engine state from a previously persisted event log.

        Item ids are re-reserved through the ledger and must come back
        exactly as recorded, so a log written under different limits, or
        one whose ids are not contiguous, is refused with ValueError.
        """
        for event in self._event_log.events():
            payload = event.payload
            kind = event.event_kind
            try:
                if kind == EventKind.ITEMS_MINTED:
                    ids = self._ledger.reserve_issuance(
                        payload["recipient"], SalePhase(payload["phase"]),
                        len(payload["item_ids"]),
                    )
                    recipients = [payload["recipient"]] * len(ids)
                    self._balance += payload["payment_wei"]
                elif kind == EventKind.ITEMS_GIFTED:
                    ids = self._ledger.reserve_gift(len(payload["item_ids"]))
                    recipients = payload["recipients"]
                else:
                    self._replay_setting(kind, payload)
                    continue
            except MintError as e:
                raise ValueError(
                    f"Event {event.event_id} cannot be replayed: {e}"
                ) from None
            if ids != payload["item_ids"]:
                raise ValueError(
                    f"Event {event.event_id} records ids {payload['item_ids']}, "
                    f"ledger issued {ids}"
                )
            for recipient, item_id in zip(recipients, ids):
                self._registry.materialize(recipient, item_id)
        logger.info(
            "Replayed %d events: %d items issued, %d gifted",
            self._event_log.count, self._ledger.total_issued,
            self._ledger.total_gifted,
        )

    def _replay_setting(self, kind: EventKind, payload: dict[str, Any]) -> None:
        if kind == EventKind.PHASE_CHANGED:
            self._phase_controller.set_phase(SalePhase(payload["to"]))
        elif kind == EventKind.COMMITMENT_SET:
            self._phase_controller.set_commitment(
                SalePhase(payload["phase"]), parse_digest(payload["root"]),
            )
        elif kind == EventKind.BASE_URI_SET:
            self._registry.set_base_uri(payload["base_uri"])
        elif kind == EventKind.PROXY_APPROVAL_SET:
            self._registry.proxy_gate.set_enabled(payload["enabled"])
        elif kind == EventKind.FUNDS_WITHDRAWN:
            self._balance -= payload["amount_wei"]
            self._total_withdrawn += payload["amount_wei"]

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record(
        self, kind: EventKind, actor: str, payload: dict[str, Any]
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        try:
            self._event_log.record(self._next_event_id(), kind, actor, payload)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None


class _AuditFailure(Exception):
    """Raised inside a commit when the audit append fails."""
