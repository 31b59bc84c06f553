"""
Marketplace order persistence.

Orders are negotiated in message groups between a buyer organization and a
seller. This service owns their status transitions.
"""

from typing import Iterable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from core.exceptions import OrderNotFoundError, OrderStateError, SellerAccountError
from db.models import Order, OrderItem, OrderStatus

# Statuses an order may move to from each status
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.CANCELED},
    OrderStatus.ACCEPTED: {OrderStatus.COMPLETED, OrderStatus.CANCELED},
    OrderStatus.CANCELED: set(),
    OrderStatus.COMPLETED: set(),
}


class MessagesService:
    """Order operations used by the marketplace checkout and payout flows."""

    def __init__(self, db: Session):
        self.db = db

    def get_order(self, order_id: str) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def create_order(
        self,
        buyer_organization_id: str,
        seller_id: str,
        group_id: str,
        items: Iterable[dict]
    ) -> Order:
        """
        Create a pending order from a seller's offer.

        Args:
            buyer_organization_id: Organization that will pay
            seller_id: User offering the service
            group_id: Message group the offer was made in
            items: Dicts with integration_type, quantity and price
        """
        order = Order(
            buyer_organization_id=buyer_organization_id,
            seller_id=seller_id,
            group_id=group_id,
            status=OrderStatus.PENDING,
            items=[
                OrderItem(
                    integration_type=item["integration_type"],
                    quantity=item["quantity"],
                    price=item["price"],
                )
                for item in items
            ]
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} created by seller {seller_id} for {buyer_organization_id}")
        return order

    def change_order_status(
        self,
        order_id: str,
        status: str,
        charge_id: Optional[str] = None
    ) -> Order:
        """
        Move an order to a new status, recording the captured charge when given.

        Moving an order to the status it already has changes nothing.

        Raises:
            OrderStateError: The lifecycle does not allow the transition
        """
        order = self.get_order(order_id)
        target = OrderStatus(status)
        if order.status == target:
            return order

        if target not in ORDER_TRANSITIONS[order.status]:
            raise OrderStateError(
                f"Order {order_id} cannot go from {order.status.value} to {target.value}",
                order_id=order_id,
                status=order.status.value
            )

        order.status = target
        if charge_id:
            order.captured = charge_id
        self.db.commit()
        logger.info(f"Order {order_id} is now {order.status.value}")
        return order

    def claim_payout(self, order_id: str) -> bool:
        """
        Atomically move an accepted order to COMPLETED before paying the seller.

        Returns:
            False when another request already claimed the order
        """
        claimed = self.db.query(Order).filter(
            Order.id == order_id,
            Order.status == OrderStatus.ACCEPTED
        ).update({Order.status: OrderStatus.COMPLETED}, synchronize_session=False)
        self.db.commit()
        return claimed == 1

    def release_payout(self, order_id: str) -> None:
        """Give a claimed order back to ACCEPTED after a failed transfer."""
        self.db.query(Order).filter(
            Order.id == order_id,
            Order.status == OrderStatus.COMPLETED
        ).update({Order.status: OrderStatus.ACCEPTED}, synchronize_session=False)
        self.db.commit()
        logger.warning(f"Payout of order {order_id} failed, order is ACCEPTED again")

    def get_payable_order(self, order_id: str, organization_id: str) -> Order:
        """
        Get an order the buyer can release to the seller.

        Raises:
            OrderNotFoundError: Order missing or owned by another organization
            OrderStateError: Order was not paid yet, or already paid out
            SellerAccountError: Seller cannot receive transfers
        """
        order = self.get_order(order_id)
        if order.buyer_organization_id != organization_id:
            raise OrderNotFoundError(order_id)

        if order.status != OrderStatus.ACCEPTED or not order.captured:
            raise OrderStateError(
                f"Order {order_id} cannot be paid out",
                order_id=order_id,
                status=order.status.value
            )

        if not order.seller.account or not order.seller.connected_account:
            raise SellerAccountError(
                f"Seller of order {order_id} has no active connected account",
                order_id=order_id,
                status=order.status.value
            )
        return order
