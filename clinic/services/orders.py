"""
Patient self-service medicine ordering.

Orders copy name and price from the catalog at submission time and are
never reconciled with prescriptions or stock counts.
"""
import logging
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from rest_framework.exceptions import ValidationError

from clinic.records import COLLECTED, ORDER_COUNTER, Medicine, MedicineOrder, OrderLine
from clinic.services.notify import broadcast_change
from clinic.stores.base import Stores

logger = logging.getLogger(__name__)

ALL_CATEGORIES = 'All'
EMPTY_CART_MESSAGE = 'Please add medicines to your cart'


def filter_catalog(medicines: Iterable[Medicine], *, category: Optional[str] = None,
                   query: Optional[str] = None) -> list[Medicine]:
    """Category match (``All`` or empty means any) and case-insensitive
    substring match on name or description."""
    needle = (query or '').strip().lower()
    result = []
    for medicine in medicines:
        if category and category != ALL_CATEGORIES and medicine.category != category:
            continue
        if needle and needle not in medicine.name.lower() and needle not in (medicine.description or '').lower():
            continue
        result.append(medicine)
    return result


def categories(medicines: Iterable[Medicine]) -> list[str]:
    seen: list[str] = []
    for medicine in medicines:
        if medicine.category and medicine.category not in seen:
            seen.append(medicine.category)
    return [ALL_CATEGORIES] + seen


def _merge(cart: Sequence[dict]) -> list[tuple[str, int]]:
    quantities: dict[str, int] = {}
    for item in cart:
        medicine_id = str(item['medicine_id'])
        quantities[medicine_id] = quantities.get(medicine_id, 0) + int(item['quantity'])
    return list(quantities.items())


def place_order(stores: Stores, cart: Sequence[dict], patient_id: Optional[str] = None) -> MedicineOrder:
    """Snapshot the cart, take the next order number and write the order.

    ``cart`` is a list of ``{'medicine_id', 'quantity'}``; the same medicine
    listed twice is merged into one line.
    """
    if not cart:
        raise ValidationError({'lines': [EMPTY_CART_MESSAGE]})
    lines = []
    for medicine_id, quantity in _merge(cart):
        if quantity < 1:
            raise ValidationError({'lines': ['quantity must be at least 1']})
        medicine = stores.medicines.get(medicine_id)
        if not medicine.in_stock:
            raise ValidationError({'lines': [f'{medicine.name} is out of stock']})
        lines.append(OrderLine(
            medicine_id=medicine.id,
            medicine_name=medicine.name,
            unit_price=medicine.price,
            quantity=quantity,
        ))
    total = sum((line.subtotal for line in lines), Decimal('0'))
    with stores.atomic():
        number = stores.issuer.issue_sequence_number(ORDER_COUNTER)
        order = stores.orders.create(number, lines, total, patient_id or None)
    logger.info('medicine order %s placed, total %s', order.order_number, total)
    broadcast_change('order_placed', orderId=order.id)
    return order


def collect(stores: Stores, order_id: str) -> MedicineOrder:
    order = stores.orders.set_status(order_id, COLLECTED)
    broadcast_change('order_collected', orderId=order_id)
    return order
