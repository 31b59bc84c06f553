"""Marketplace API endpoints: seller onboarding, order checkout and payout."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from loguru import logger

from api.auth import get_current_user
from api.billing import get_stripe_service
from api.schemas import CreateOrderRequest, OrderResponse, PayoutResponse, UrlResponse
from billing.stripe_client import StripeService
from core.exceptions import OrderNotFoundError, OrderStateError, OrganizationNotFoundError
from db import get_db, User, OrderStatus
from services import MessagesService, OrganizationService
from utils.metrics import get_metrics_collector

router = APIRouter(prefix="/marketplace", tags=["marketplace"])


def get_messages_service(db: Session = Depends(get_db)) -> MessagesService:
    return MessagesService(db)


def get_organization_service(db: Session = Depends(get_db)) -> OrganizationService:
    return OrganizationService(db)


@router.post("/account", response_model=UrlResponse)
async def create_seller_account(
    current_user: User = Depends(get_current_user),
    service: StripeService = Depends(get_stripe_service)
):
    """Onboarding link for the current user's connected account."""
    return service.create_account_process(current_user.id, current_user.email)


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    messages: MessagesService = Depends(get_messages_service),
    organizations: OrganizationService = Depends(get_organization_service)
):
    """Offer a service to a buyer organization."""
    if not current_user.account:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Connect a payout account before making offers"
        )
    if organizations.get_org_by_id(request.buyer_organization_id) is None:
        raise OrganizationNotFoundError(request.buyer_organization_id)

    order = messages.create_order(
        buyer_organization_id=request.buyer_organization_id,
        seller_id=current_user.id,
        group_id=request.group_id,
        items=[item.model_dump() for item in request.items],
    )
    return order.to_dict()


@router.post("/orders/{order_id}/pay", response_model=UrlResponse)
async def pay_order(
    order_id: str,
    current_user: User = Depends(get_current_user),
    messages: MessagesService = Depends(get_messages_service),
    service: StripeService = Depends(get_stripe_service)
):
    """Checkout link for the buyer of a pending order."""
    order = messages.get_order(order_id)
    if order.buyer_organization_id != current_user.organization_id:
        raise OrderNotFoundError(order_id)
    if order.status != OrderStatus.PENDING:
        raise OrderStateError(
            f"Order {order_id} is not awaiting payment",
            order_id=order_id,
            status=order.status.value
        )

    result = service.pay_account_step_one(
        current_user.id,
        current_user.organization,
        order.seller,
        order.id,
        [item.to_dict() for item in order.items],
        order.group_id,
    )
    get_metrics_collector().record_checkout("marketplace")
    return result


@router.post("/orders/{order_id}/complete", response_model=PayoutResponse)
async def complete_order(
    order_id: str,
    current_user: User = Depends(get_current_user),
    messages: MessagesService = Depends(get_messages_service),
    service: StripeService = Depends(get_stripe_service)
):
    """Release a paid order to the seller."""
    order = messages.get_payable_order(order_id, current_user.organization_id)

    charge, account, amount = order.captured, order.seller.account, order.total_price

    if not messages.claim_payout(order_id):
        raise OrderStateError(
            f"Order {order_id} is already being paid out",
            order_id=order_id,
            status=OrderStatus.COMPLETED.value
        )

    try:
        transfer = service.payout(order_id, charge, account, amount)
    except Exception:
        messages.release_payout(order_id)
        raise

    get_metrics_collector().record_payout()

    logger.info(f"Order {order_id} paid out to {account} (transfer {transfer['id']})")
    return {"ok": True, "transfer": transfer["id"]}
