"""
workflow.py — Order Placement Workflow

This module contains the confirm-then-submit protocol for placing an order
from a session's cart.

Workflow Overview:
1. place_order(): refetch sources if they are stale, validate the cart
   locally, and open the confirmation step (Idle → Confirming)
2. confirm(): send exactly the order shown for confirmation (Confirming → Submitting)
3. Reconcile with the server response:
   - Succeeded: cart cleared, sources marked for refetch
   - Failed: cart preserved, message surfaced, sources marked for refetch
4. dismiss() or any cart edit returns a finished attempt to Idle

While Confirming, a cart edit, a customer/supplier change or an applied catalog
refresh discards the summary and returns to Idle; the order has to be placed
(and validated) again.

Stock figures come from a snapshot that may be stale by the time the order is
submitted. The server's answer is authoritative: nothing is cleared unless it
accepts the order, and a failed attempt is retried from the current cart.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .clients import GENERIC_SUBMISSION_ERROR, SubmissionFailed
from .models import OrderRequest, ValidationResult
from .session import OrderSession

log = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = (SubmissionState.SUCCEEDED, SubmissionState.FAILED)


class OrderSubmitter:
    """
    Drives one session's order placement.

    Args:
        session (OrderSession): The session whose cart is submitted.
        placed_by (str | None): Acting user recorded on the order.
        source (str | None): Order origin marker, e.g. 'PO'.

    Attributes:
        state (SubmissionState): Current state.
        last_validation (ValidationResult | None): Outcome of the latest place_order() check.
        pending (OrderRequest | None): Order shown in / sent from the confirmation step.
        error (str | None): Message of the latest failed submission.
        last_order (dict | None): Server acknowledgement of the latest accepted order.
        submissions (int): Number of order-creation requests sent.
    """

    def __init__(self, session: OrderSession, placed_by: Optional[str] = None,
                 source: Optional[str] = None):
        self.session = session
        self.placed_by = placed_by
        self.source = source
        self.state = SubmissionState.IDLE
        self.last_validation: Optional[ValidationResult] = None
        self.pending: Optional[OrderRequest] = None
        self.error: Optional[str] = None
        self.last_order: Optional[Dict[str, Any]] = None
        self.submissions = 0
        self._listeners: List[Callable[[SubmissionState], None]] = []
        self._detached = False
        session.cart.subscribe(self._on_cart_edit)
        session.subscribe(self._on_session_change)

    @property
    def log_prefix(self) -> str:
        return f"{self.session.log_prefix}[Order: {self.session.customer_id}]"

    def subscribe(self, listener: Callable[[SubmissionState], None]) -> None:
        self._listeners.append(listener)

    def detach(self) -> None:
        """
        Marks the owning view as gone. An in-flight submission still completes and
        updates the session, but no listener is called any more.
        """
        self._detached = True
        self._listeners.clear()

    def _set_state(self, state: SubmissionState) -> None:
        self.state = state
        if self._detached:
            return
        for listener in list(self._listeners):
            listener(state)

    def _drop_confirmation(self, reason: str) -> None:
        log.info(f"{self.log_prefix} {reason} during confirmation. Summary discarded, back to idle.")
        self.pending = None
        self._set_state(SubmissionState.IDLE)

    def _on_cart_edit(self) -> None:
        if self.state in TERMINAL_STATES:
            self._set_state(SubmissionState.IDLE)
        elif self.state == SubmissionState.CONFIRMING:
            self._drop_confirmation("Cart edited")

    def _on_session_change(self, reason: str) -> None:
        if self.state == SubmissionState.CONFIRMING:
            self._drop_confirmation(f"Session {reason} changed")

    def dismiss(self) -> None:
        if self.state in TERMINAL_STATES:
            self._set_state(SubmissionState.IDLE)

    async def place_order(self) -> Optional[ValidationResult]:
        """
        Validates the cart and opens the confirmation step.

        Returns:
            ValidationResult | None: The check's outcome; None when ignored because
            an order is being submitted. On violations the state stays Idle.
        """
        if self.state == SubmissionState.SUBMITTING:
            log.info(f"{self.log_prefix} Order already submitting. Ignoring place_order().")
            return None
        if self.state == SubmissionState.CONFIRMING:
            return self.last_validation
        if self.state in TERMINAL_STATES:
            self._set_state(SubmissionState.IDLE)

        if self.session.stale:
            await self.session.ensure_fresh()
            if self.state == SubmissionState.SUBMITTING:
                return None
            if self.state != SubmissionState.IDLE:
                return self.last_validation

        result = self.session.validate()
        self.last_validation = result
        if not result.ok:
            log.info(f"{self.log_prefix} Order blocked by {len(result.violations)} violation(s): "
                     f"{'; '.join(v.message for v in result.violations)}")
            return result

        self.pending = self.session.build_order_request(placed_by=self.placed_by, source=self.source)
        self.error = None
        log.info(f"{self.log_prefix} Awaiting confirmation: {len(self.pending.items)} item(s), "
                 f"total {self.pending.totalPrice}.")
        self._set_state(SubmissionState.CONFIRMING)
        return result

    def cancel(self) -> bool:
        """Closes the confirmation step without side effects."""
        if self.state != SubmissionState.CONFIRMING:
            return False
        self.pending = None
        self._set_state(SubmissionState.IDLE)
        log.info(f"{self.log_prefix} Confirmation cancelled.")
        return True

    async def confirm(self) -> Optional[SubmissionState]:
        """
        Submits the confirmed order.

        Returns:
            SubmissionState | None: SUCCEEDED or FAILED; None when there was nothing
            to confirm (not in Confirming, e.g. a repeated click while submitting).
        """
        if self.state != SubmissionState.CONFIRMING or self.pending is None:
            log.info(f"{self.log_prefix} confirm() in state {self.state.value}. Ignoring.")
            return None

        order = self.pending
        self._set_state(SubmissionState.SUBMITTING)
        self.submissions += 1
        log.info(f"{self.log_prefix} Submitting order: {len(order.items)} item(s), total {order.totalPrice}.")

        try:
            ack = await self.session.client.create_order(order)

        except SubmissionFailed as e:
            log.error(f"{self.log_prefix} Order submission failed: {e.message}. Cart preserved.")
            self.error = e.message
            self.session.mark_stale()
            self._set_state(SubmissionState.FAILED)
            return self.state

        except Exception as e:
            log.critical(f"{self.log_prefix} Unexpected error during order submission: {e}", exc_info=True)
            self.error = GENERIC_SUBMISSION_ERROR
            self.session.mark_stale()
            self._set_state(SubmissionState.FAILED)
            return self.state

        self.last_order = ack
        self.error = None
        self.session.cart.clear()
        self.session.mark_stale()
        log.info(f"{self.log_prefix} Order accepted (ID: {ack.get('_id', ack.get('id'))}). Cart cleared.")
        self._set_state(SubmissionState.SUCCEEDED)
        return self.state
