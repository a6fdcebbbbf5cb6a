"""
Payment processor gateway  (Strategy Pattern)
=============================================

Delayed-charge model
--------------------
* **authorize** -- create a manual-capture PaymentIntent when the rider pays
  for a booking; funds are held, not moved.
* **capture**   -- move the held funds when the driver completes the booking.
* **refund**    -- release the hold (cancel the intent) or, if funds were
  already captured, refund them.

Capture and refund are idempotent: a repeat on an intent that is already
captured / cancelled / refunded returns a receipt without another processor
call, and the processor calls themselves carry idempotency keys.

Every processor failure is raised as ``ExternalServiceError``; the booking
lifecycle persists its transition only after these calls return.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import stripe

from carpool.config import settings
from carpool.domain.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntent:
    ref: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None


@dataclass
class PaymentReceipt:
    ref: str
    status: str
    metadata: dict = field(default_factory=dict)


def to_minor_units(amount: float) -> int:
    """Dollars -> cents."""
    return int(round(amount * 100))


# ── Strategy hierarchy ────────────────────────────────────────────────


class PaymentGateway(ABC):
    @abstractmethod
    async def authorize(self, amount: float, metadata: dict) -> PaymentIntent: ...

    @abstractmethod
    async def capture(self, ref: str) -> PaymentReceipt: ...

    @abstractmethod
    async def refund(self, ref: str) -> PaymentReceipt: ...

    @abstractmethod
    async def retrieve(self, ref: str) -> PaymentIntent: ...


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntents with ``capture_method="manual"``.

    The Stripe SDK is synchronous, so each call runs in a worker thread.
    """

    def __init__(self, api_key: str, currency: str = "usd"):
        self.api_key = api_key
        self.currency = currency

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.error("Stripe call %s failed: %s", fn.__qualname__, exc)
            raise ExternalServiceError(
                f"Payment processor error: {exc.user_message or 'request failed'}"
            ) from exc

    @staticmethod
    def _intent(obj) -> PaymentIntent:
        return PaymentIntent(
            ref=obj["id"],
            status=obj["status"],
            amount=obj["amount"],
            currency=obj["currency"],
            client_secret=obj.get("client_secret"),
        )

    async def authorize(self, amount: float, metadata: dict) -> PaymentIntent:
        obj = await self._call(
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=self.currency,
            metadata={k: str(v) for k, v in metadata.items()},
            capture_method="manual",
        )
        return self._intent(obj)

    async def retrieve(self, ref: str) -> PaymentIntent:
        return self._intent(await self._call(stripe.PaymentIntent.retrieve, ref))

    async def capture(self, ref: str) -> PaymentReceipt:
        intent = await self.retrieve(ref)
        if intent.status == "succeeded":
            return PaymentReceipt(ref=ref, status=intent.status)
        if intent.status != "requires_capture":
            raise ExternalServiceError(
                f"Payment {ref} cannot be captured in status {intent.status}"
            )
        obj = await self._call(
            stripe.PaymentIntent.capture, ref, idempotency_key=f"capture-{ref}"
        )
        return PaymentReceipt(ref=ref, status=obj["status"])

    async def refund(self, ref: str) -> PaymentReceipt:
        intent = await self.retrieve(ref)
        if intent.status == "canceled":
            return PaymentReceipt(ref=ref, status=intent.status)
        if intent.status == "succeeded":
            obj = await self._call(
                stripe.Refund.create,
                payment_intent=ref,
                idempotency_key=f"refund-{ref}",
            )
            return PaymentReceipt(ref=ref, status=obj["status"], metadata={"refund": obj["id"]})
        # Never captured: release the hold instead of refunding
        obj = await self._call(
            stripe.PaymentIntent.cancel, ref, idempotency_key=f"cancel-{ref}"
        )
        return PaymentReceipt(ref=ref, status=obj["status"])


def build_gateway() -> PaymentGateway:
    return StripeGateway(settings.stripe_secret_key, settings.payment_currency)
