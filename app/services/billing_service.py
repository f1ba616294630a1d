"""Subscription, payment method and balance operations."""

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import BadRequestException, NotFoundException
from app.core.redis_client import CacheManager
from app.models.balance import balance_movements
from app.models.organizations import organizations
from app.schemas.billing import (
    BalanceMovementResponse,
    BalanceResponse,
    CancelSubscriptionResponse,
    PaymentMethodInfo,
    SubscriptionCreate,
    SubscriptionCreated,
    SubscriptionDetails,
    SubscriptionDetailsResponse,
)
from app.services.organization_service import OrganizationService
from app.services.stripe_gateway import StripeGateway

logger = structlog.get_logger(__name__)

TOP_UP_VAT_RATE = Decimal("21")
TOP_UP_CONCEPT = "recarga_stripe"


def from_timestamp(value: int | None) -> datetime | None:
    """Stripe epoch seconds to an aware datetime."""
    if not value or value <= 0:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def human_date(value: datetime | None) -> str | None:
    """``dd/mm/YYYY HH:MM`` or None."""
    return value.strftime("%d/%m/%Y %H:%M") if value else None


def _first_item(subscription: dict) -> dict:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period(subscription: dict, key: str) -> datetime | None:
    # Newer API versions carry the period on the subscription item
    return from_timestamp(subscription.get(key) or _first_item(subscription).get(key))


def _payment_method(subscription: dict) -> PaymentMethodInfo | None:
    method = subscription.get("default_payment_method")
    if not isinstance(method, dict):
        customer = subscription.get("customer")
        if isinstance(customer, dict) and not customer.get("deleted"):
            method = (customer.get("invoice_settings") or {}).get("default_payment_method")
    if not isinstance(method, dict):
        return None

    card = method.get("card")
    if method.get("type") == "card" and card:
        return PaymentMethodInfo(
            id=method.get("id"),
            type="card",
            brand=card.get("brand"),
            last4=card.get("last4"),
            exp_month=card.get("exp_month"),
            exp_year=card.get("exp_year"),
        )
    return PaymentMethodInfo(id=method.get("id"), type=method.get("type"))


def _mirror_fields(subscription: dict) -> dict:
    """Organization columns derived from a subscription object."""
    trial_end = from_timestamp(subscription.get("trial_end"))
    period_end = _period(subscription, "current_period_end")
    price = _first_item(subscription).get("price") or {}
    values = {
        "subscription_status": subscription.get("status"),
        "trial_ends_at": trial_end,
        "subscription_expires": trial_end or period_end,
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
    }
    interval = (price.get("recurring") or {}).get("interval")
    if interval:
        values["subscription_interval"] = interval
    plan = (subscription.get("metadata") or {}).get("plan") or price.get("nickname")
    if plan:
        values["subscription_plan"] = plan
    return values


class BillingService:
    """Keep the organization in sync with its payment provider subscription."""

    def __init__(
        self,
        db: AsyncSession,
        organization_id: int,
        gateway: StripeGateway,
        cache: CacheManager | None = None,
    ):
        """Initialize service with database session, tenant and gateway."""
        self.db = db
        self.organization_id = organization_id
        self.gateway = gateway
        self.organizations = OrganizationService(cache)

    async def _organization(self) -> dict:
        return await self.organizations.get_organization_fresh(self.db, self.organization_id)

    async def _ensure_customer(self, organization: dict) -> str:
        if organization["stripe_customer_id"]:
            return organization["stripe_customer_id"]

        customer = await self.gateway.create_customer(
            email=organization["email"],
            name=organization["name"],
            metadata={"organization_id": str(self.organization_id)},
        )
        await self.organizations.update_fields(
            self.db, self.organization_id, stripe_customer_id=customer["id"]
        )
        logger.info(
            "stripe_customer_created",
            organization_id=self.organization_id,
            customer_id=customer["id"],
        )
        return customer["id"]

    async def create_subscription(self, data: SubscriptionCreate) -> SubscriptionCreated:
        """Start a trial subscription for the selected plan."""
        price_id = settings.stripe_plans[data.plan.value][data.period.value]
        if not price_id:
            raise BadRequestException(f"Plan {data.plan.value} ({data.period.value}) is not available")

        organization = await self._organization()
        customer_id = await self._ensure_customer(organization)

        subscription = await self.gateway.create_subscription(
            customer_id,
            price_id,
            settings.stripe_trial_days,
            metadata={
                "plan": data.plan.value,
                "period": data.period.value,
                "organization_id": str(self.organization_id),
            },
        )

        trial_end = from_timestamp(subscription.get("trial_end"))
        await self.organizations.update_fields(
            self.db,
            self.organization_id,
            stripe_subscription_id=subscription["id"],
            subscription_status=subscription.get("status"),
            subscription_plan=data.plan.value,
            subscription_interval="month" if data.period.value == "monthly" else "year",
            trial_ends_at=trial_end,
            subscription_expires=trial_end,
            cancel_at_period_end=False,
        )

        # Trials confirm through a setup intent, paid starts through the invoice
        client_secret = None
        invoice = subscription.get("latest_invoice")
        if isinstance(invoice, dict) and isinstance(invoice.get("payment_intent"), dict):
            client_secret = invoice["payment_intent"].get("client_secret")
        setup_intent = subscription.get("pending_setup_intent")
        if not client_secret and isinstance(setup_intent, dict):
            client_secret = setup_intent.get("client_secret")

        logger.info(
            "subscription_created",
            organization_id=self.organization_id,
            subscription_id=subscription["id"],
            plan=data.plan.value,
        )
        return SubscriptionCreated(
            subscription_id=subscription["id"],
            client_secret=client_secret,
            status=subscription.get("status", "incomplete"),
            trial_end=trial_end,
        )

    async def get_subscription(self) -> SubscriptionDetailsResponse:
        """Current subscription with readable dates; mirrors it on the organization."""
        organization = await self._organization()
        if not organization["stripe_subscription_id"]:
            return SubscriptionDetailsResponse(subscription=None)

        subscription = await self.gateway.retrieve_subscription(
            organization["stripe_subscription_id"]
        )
        item = _first_item(subscription)
        price = item.get("price") or {}
        trial_end = from_timestamp(subscription.get("trial_end"))
        period_end = _period(subscription, "current_period_end")
        amount = price.get("unit_amount")

        details = SubscriptionDetails(
            id=subscription["id"],
            status=subscription.get("status", "unknown"),
            plan=price.get("nickname") or (item.get("plan") or {}).get("nickname"),
            amount=Decimal(amount) / 100 if amount is not None else None,
            currency=price.get("currency"),
            interval=(price.get("recurring") or {}).get("interval"),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            trial_start=human_date(from_timestamp(subscription.get("trial_start"))),
            trial_end=human_date(trial_end),
            current_period_start=human_date(_period(subscription, "current_period_start")),
            current_period_end=human_date(period_end),
            canceled_at=human_date(from_timestamp(subscription.get("canceled_at"))),
            ended_at=human_date(from_timestamp(subscription.get("ended_at"))),
            access_until=human_date(trial_end or period_end),
            payment_method=_payment_method(subscription),
        )

        await self.organizations.update_fields(
            self.db, self.organization_id, **_mirror_fields(subscription)
        )
        return SubscriptionDetailsResponse(subscription=details)

    async def cancel_subscription(self) -> CancelSubscriptionResponse:
        """Schedule cancellation at the end of the paid (or trial) period."""
        organization = await self._organization()
        subscription_id = organization["stripe_subscription_id"]
        if not subscription_id:
            raise NotFoundException("The organization has no subscription")

        current = await self.gateway.retrieve_subscription(subscription_id)
        if current.get("cancel_at_period_end"):
            raise BadRequestException("The subscription is already scheduled for cancellation")

        subscription = await self.gateway.schedule_cancellation(subscription_id)
        access_until = from_timestamp(subscription.get("trial_end")) or _period(
            subscription, "current_period_end"
        )
        await self.organizations.update_fields(
            self.db,
            self.organization_id,
            cancel_at_period_end=True,
            subscription_expires=access_until,
        )

        logger.info(
            "subscription_cancellation_scheduled",
            organization_id=self.organization_id,
            subscription_id=subscription_id,
        )
        return CancelSubscriptionResponse(
            subscription_id=subscription_id,
            cancel_at_period_end=True,
            access_until=access_until,
        )

    async def update_payment_method(self, payment_method_id: str) -> PaymentMethodInfo:
        """
        Make a payment method the default for the customer and subscription.

        Provider calls are not rolled back if a later step fails.
        """
        organization = await self._organization()
        customer_id = organization["stripe_customer_id"]
        if not customer_id:
            raise NotFoundException("The organization has no billing customer")

        customer = await self.gateway.retrieve_customer(customer_id)
        if customer.get("deleted"):
            raise BadRequestException("The billing customer was deleted")

        method = await self.gateway.attach_payment_method(payment_method_id, customer_id)
        await self.gateway.set_customer_default_payment_method(customer_id, payment_method_id)

        subscription_id = organization["stripe_subscription_id"]
        if subscription_id:
            subscription = await self.gateway.retrieve_subscription(subscription_id)
            if subscription.get("status") != "canceled":
                await self.gateway.set_subscription_default_payment_method(
                    subscription_id, payment_method_id
                )

        card = method.get("card") or {}
        await self.organizations.update_fields(
            self.db,
            self.organization_id,
            stripe_payment_method_id=payment_method_id,
            card_brand=card.get("brand"),
            card_last4=card.get("last4"),
            card_exp_month=card.get("exp_month"),
            card_exp_year=card.get("exp_year"),
        )

        logger.info("payment_method_updated", organization_id=self.organization_id)
        return PaymentMethodInfo(
            id=payment_method_id,
            type=method.get("type"),
            brand=card.get("brand"),
            last4=card.get("last4"),
            exp_month=card.get("exp_month"),
            exp_year=card.get("exp_year"),
        )

    async def get_balance(self, limit: int = 50) -> BalanceResponse:
        """Sum of incomes minus expenses and the latest movements."""
        signed = case(
            (balance_movements.c.type == "ingreso", balance_movements.c.amount),
            else_=-balance_movements.c.amount,
        )
        total = (
            await self.db.execute(
                select(func.coalesce(func.sum(signed), 0)).where(
                    balance_movements.c.organization_id == self.organization_id
                )
            )
        ).scalar()

        result = await self.db.execute(
            select(balance_movements)
            .where(balance_movements.c.organization_id == self.organization_id)
            .order_by(balance_movements.c.created_at.desc(), balance_movements.c.id.desc())
            .limit(limit)
        )
        movements = [
            BalanceMovementResponse.model_validate(dict(row)) for row in result.mappings().all()
        ]
        return BalanceResponse(
            balance=Decimal(str(total)).quantize(Decimal("0.01")), movements=movements
        )


async def _record_top_up(db: AsyncSession, session: dict) -> str:
    metadata = session.get("metadata") or {}
    try:
        organization_id = int(metadata.get("orgId"))
        base_amount = Decimal(str(metadata.get("baseAmount")))
    except (TypeError, ValueError, InvalidOperation) as e:
        raise BadRequestException("Checkout session metadata is incomplete") from e
    if organization_id <= 0 or base_amount <= 0:
        raise BadRequestException("Checkout session metadata is incomplete")

    existing = await db.execute(
        select(balance_movements.c.id).where(balance_movements.c.reference_id == session["id"])
    )
    if existing.first() is not None:
        # Provider retries deliver the same session more than once
        logger.info("balance_top_up_duplicate", reference_id=session["id"])
        return "duplicate"

    known = await db.execute(
        select(organizations.c.id).where(organizations.c.id == organization_id)
    )
    if known.first() is None:
        raise NotFoundException(f"Organization {organization_id} not found")

    amount_with_vat = (base_amount * (100 + TOP_UP_VAT_RATE) / 100).quantize(Decimal("0.01"))
    try:
        await db.execute(
            balance_movements.insert().values(
                organization_id=organization_id,
                type="ingreso",
                concept=TOP_UP_CONCEPT,
                amount=base_amount,
                reference_id=session["id"],
                reference_data={
                    "stripe_payment_intent": session.get("payment_intent"),
                    "amount_with_vat": str(amount_with_vat),
                    "vat": int(TOP_UP_VAT_RATE),
                },
                notes="Recarga vía Stripe Checkout",
            )
        )
        await db.commit()
    except IntegrityError:
        # A concurrent delivery of the same session won the insert; the provider retries
        await db.rollback()
        raise

    logger.info(
        "balance_top_up_recorded",
        organization_id=organization_id,
        amount=str(base_amount),
        reference_id=session["id"],
    )
    return "recorded"


async def _mirror_subscription(
    db: AsyncSession, subscription: dict, deleted: bool, cache: CacheManager | None
) -> str:
    result = await db.execute(
        select(organizations.c.id).where(
            organizations.c.stripe_subscription_id == subscription["id"]
        )
    )
    organization_id = result.scalar()
    if organization_id is None:
        logger.warning("subscription_event_unmatched", subscription_id=subscription["id"])
        return "ignored"

    values = _mirror_fields(subscription)
    if deleted:
        values["subscription_status"] = "canceled"
        values["cancel_at_period_end"] = False
    await db.execute(
        update(organizations).where(organizations.c.id == organization_id).values(**values)
    )
    await db.commit()
    OrganizationService(cache).invalidate(organization_id)

    logger.info(
        "subscription_mirrored",
        organization_id=organization_id,
        status=values["subscription_status"],
    )
    return "updated"


async def handle_webhook_event(
    db: AsyncSession, event: dict, cache: CacheManager | None = None
) -> str:
    """Apply a verified provider event; returns what was done."""
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        return await _record_top_up(db, obj)
    if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        return await _mirror_subscription(
            db, obj, deleted=event_type == "customer.subscription.deleted", cache=cache
        )

    logger.debug("stripe_event_ignored", event_type=event_type)
    return "ignored"
