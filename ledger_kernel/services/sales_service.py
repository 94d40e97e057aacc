"""Order and delivery completion, which is where income enters the ledger."""

from sqlalchemy.orm import Session

from ledger_kernel.domain.references import ReferenceKind
from ledger_kernel.exceptions import DeliveryNotFoundError, OrderNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sales import Delivery, Order
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_service import LedgerResult, LedgerService

logger = get_logger("services.sales")


class SalesService(BaseService[Order]):
    def __init__(self, session: Session, ledger: LedgerService):
        super().__init__(session)
        self._ledger = ledger

    def complete_order(self, order_id: int) -> LedgerResult | None:
        """
        Mark an order completed and record its income.

        Completing an already completed order records nothing and returns
        None.

        Raises:
            OrderNotFoundError: Unknown id.
        """
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status:
            logger.info("order_already_completed", extra={"order_id": order_id})
            return None

        order.status = True
        self.session.flush()

        table = f" - table {order.table_number}" if order.table_number else ""
        result = self._ledger.record_income(
            order.total_price,
            f"Income from order #{order.id}{table}",
            order.id,
            ReferenceKind.ORDER,
            f"Order completed on {order.date}",
        )
        logger.info(
            "order_completed",
            extra={
                "order_id": order.id,
                "amount": order.total_price,
                "ledger_durable": result.is_durable,
            },
        )
        return result

    def complete_delivery(self, delivery_id: int) -> LedgerResult | None:
        """
        Mark a delivery completed and record its income.

        Raises:
            DeliveryNotFoundError: Unknown id.
        """
        delivery = self.session.get(Delivery, delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)
        if delivery.status:
            logger.info("delivery_already_completed", extra={"delivery_id": delivery_id})
            return None

        delivery.status = True
        self.session.flush()

        result = self._ledger.record_income(
            delivery.total_price,
            f"Income from delivery #{delivery.id}",
            delivery.id,
            ReferenceKind.DELIVERY,
            f"Delivery completed on {delivery.date} - "
            f"{delivery.delivery_address or 'no address'}",
        )
        logger.info(
            "delivery_completed",
            extra={
                "delivery_id": delivery.id,
                "amount": delivery.total_price,
                "ledger_durable": result.is_durable,
            },
        )
        return result
