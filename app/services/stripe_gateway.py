"""Wrapper around the Stripe SDK returning plain dicts."""

import json
from typing import Any

import stripe
import structlog
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.core.exceptions import (
    BadRequestException,
    ExternalServiceException,
    ServiceUnavailableException,
)

logger = structlog.get_logger(__name__)

PROVIDER = "stripe"


def to_plain(obj: Any) -> dict:
    """Recursive plain-dict copy of a Stripe object."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj
    return json.loads(str(obj))


class StripeGateway:
    """Blocking SDK calls run in the thread pool; SDK errors become 502s."""

    def __init__(self, secret_key: str | None = None, webhook_secret: str | None = None):
        """Initialize gateway with API and webhook secrets."""
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )

    async def _call(self, operation: str, fn, *args, **kwargs) -> dict:
        if not self.secret_key:
            raise ServiceUnavailableException("Payments are not configured")
        kwargs.setdefault("api_key", self.secret_key)
        try:
            result = await run_in_threadpool(fn, *args, **kwargs)
        except stripe.StripeError as e:
            message = e.user_message or str(e)
            logger.warning("stripe_call_failed", operation=operation, error=message)
            raise ExternalServiceException(PROVIDER, message) from e
        return to_plain(result)

    async def create_customer(self, email: str | None, name: str, metadata: dict) -> dict:
        """New customer for an organization."""
        return await self._call(
            "create_customer", stripe.Customer.create, email=email, name=name, metadata=metadata
        )

    async def retrieve_customer(self, customer_id: str) -> dict:
        """Customer (may carry ``deleted: true``)."""
        return await self._call("retrieve_customer", stripe.Customer.retrieve, customer_id)

    async def create_subscription(
        self, customer_id: str, price_id: str, trial_days: int, metadata: dict
    ) -> dict:
        """Subscription in trial, waiting for the first payment method."""
        return await self._call(
            "create_subscription",
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            trial_period_days=trial_days,
            payment_behavior="default_incomplete",
            payment_settings={"save_default_payment_method": "on_subscription"},
            expand=["latest_invoice.payment_intent", "pending_setup_intent"],
            metadata=metadata,
        )

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        """Subscription with payment method and product expanded."""
        return await self._call(
            "retrieve_subscription",
            stripe.Subscription.retrieve,
            subscription_id,
            expand=["default_payment_method", "customer", "items.data.price.product"],
        )

    async def schedule_cancellation(self, subscription_id: str) -> dict:
        """Cancel at the end of the current period."""
        return await self._call(
            "schedule_cancellation",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
        )

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> dict:
        """Attach a payment method to the customer."""
        return await self._call(
            "attach_payment_method",
            stripe.PaymentMethod.attach,
            payment_method_id,
            customer=customer_id,
        )

    async def set_customer_default_payment_method(
        self, customer_id: str, payment_method_id: str
    ) -> dict:
        """Use the payment method for the customer's invoices."""
        return await self._call(
            "set_customer_default_payment_method",
            stripe.Customer.modify,
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    async def set_subscription_default_payment_method(
        self, subscription_id: str, payment_method_id: str
    ) -> dict:
        """Use the payment method for the subscription."""
        return await self._call(
            "set_subscription_default_payment_method",
            stripe.Subscription.modify,
            subscription_id,
            default_payment_method=payment_method_id,
        )

    def construct_event(self, payload: bytes, signature: str) -> dict:
        """Verify the webhook signature and parse the event."""
        if not self.webhook_secret:
            raise ServiceUnavailableException("Payment webhooks are not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("stripe_webhook_rejected", error=str(e))
            raise BadRequestException("Invalid webhook signature") from e
        return to_plain(event)


def get_stripe_gateway() -> StripeGateway:
    """Dependency returning a gateway configured from settings."""
    return StripeGateway()
