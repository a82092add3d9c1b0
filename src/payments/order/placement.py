"""PlaceOrder: price a cart and record it as a draft order awaiting payment."""

import json

from protean.exceptions import ObjectNotFoundError
from protean.fields import Float, Identifier, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from payments.domain import payments
from payments.errors import NotFoundError
from payments.order.order import Order
from payments.utils.logging import get_logger

logger = get_logger(__name__)


@payments.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON array of {product_id, product_type, quantity, unit_price}
    shipping_address = Text()  # JSON object
    billing_address = Text()  # JSON object
    discount = Float(default=0.0)
    notes = Text()


@payments.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.create(
            user_id=command.user_id,
            items_data=json.loads(command.items),
            shipping_address=json.loads(command.shipping_address) if command.shipping_address else None,
            billing_address=json.loads(command.billing_address) if command.billing_address else None,
            discount=command.discount or 0.0,
            notes=command.notes,
        )
        current_domain.repository_for(Order).add(order)
        logger.info("order_placed", order_id=str(order.id), order_number=order.order_number, total=order.total)
        return str(order.id)


def get_order(order_id: str) -> Order:
    try:
        return current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError:
        raise NotFoundError("Order not found") from None
