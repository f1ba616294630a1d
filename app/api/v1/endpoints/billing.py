"""Subscription, payment method and balance endpoints."""

from fastapi import APIRouter, Header, Query, Request, status

from app.core.exceptions import BadRequestException
from app.dependencies import (
    AdminUser,
    CacheManagerDep,
    CurrentOrganizationId,
    DatabaseSession,
    StripeGatewayDep,
)
from app.schemas.billing import (
    BalanceResponse,
    CancelSubscriptionResponse,
    PaymentMethodInfo,
    PaymentMethodUpdate,
    SubscriptionCreate,
    SubscriptionCreated,
    SubscriptionDetailsResponse,
)
from app.services.billing_service import BillingService, handle_webhook_event

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post(
    "/subscription",
    response_model=SubscriptionCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Start subscription",
)
async def create_subscription(
    data: SubscriptionCreate,
    admin: AdminUser,
    db: DatabaseSession,
    gateway: StripeGatewayDep,
    cache_manager: CacheManagerDep,
) -> SubscriptionCreated:
    """
    Start a subscription with a trial for the selected plan and period.

    The returned client secret is used by the web app to confirm the
    payment method.
    """
    service = BillingService(db, admin["organization_id"], gateway, cache_manager)
    return await service.create_subscription(data)


@router.get(
    "/subscription",
    response_model=SubscriptionDetailsResponse,
    summary="Subscription details",
)
async def get_subscription(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    gateway: StripeGatewayDep,
    cache_manager: CacheManagerDep,
) -> SubscriptionDetailsResponse:
    """
    Current subscription with readable dates and the card on file.

    Reading it also refreshes the copy stored on the organization.
    """
    service = BillingService(db, organization_id, gateway, cache_manager)
    return await service.get_subscription()


@router.post(
    "/subscription/cancel",
    response_model=CancelSubscriptionResponse,
    summary="Cancel at period end",
)
async def cancel_subscription(
    admin: AdminUser,
    db: DatabaseSession,
    gateway: StripeGatewayDep,
    cache_manager: CacheManagerDep,
) -> CancelSubscriptionResponse:
    """Schedule cancellation; access continues until the end of the period."""
    service = BillingService(db, admin["organization_id"], gateway, cache_manager)
    return await service.cancel_subscription()


@router.post(
    "/payment-method",
    response_model=PaymentMethodInfo,
    summary="Replace payment method",
)
async def update_payment_method(
    data: PaymentMethodUpdate,
    admin: AdminUser,
    db: DatabaseSession,
    gateway: StripeGatewayDep,
    cache_manager: CacheManagerDep,
) -> PaymentMethodInfo:
    """Make a payment method the default of the customer and subscription."""
    service = BillingService(db, admin["organization_id"], gateway, cache_manager)
    return await service.update_payment_method(data.payment_method_id)


@router.get("/balance", response_model=BalanceResponse, summary="Account balance")
async def get_balance(
    organization_id: CurrentOrganizationId,
    db: DatabaseSession,
    gateway: StripeGatewayDep,
    limit: int = Query(50, ge=1, le=500),
) -> BalanceResponse:
    """Incomes minus expenses and the latest movements."""
    return await BillingService(db, organization_id, gateway).get_balance(limit)


@router.post("/webhook", status_code=status.HTTP_200_OK, summary="Payment provider webhook")
async def stripe_webhook(
    request: Request,
    db: DatabaseSession,
    gateway: StripeGatewayDep,
    cache_manager: CacheManagerDep,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict:
    """
    Receive provider events.

    The signature is verified against the raw body before anything is
    read. Unknown event types are acknowledged and ignored.
    """
    if not stripe_signature:
        raise BadRequestException("Missing Stripe signature")

    payload = await request.body()
    event = gateway.construct_event(payload, stripe_signature)
    outcome = await handle_webhook_event(db, event, cache_manager)
    return {"received": True, "result": outcome}
