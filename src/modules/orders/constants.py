"""Order domain constants.

Statuses are an open set of strings: the built-in codes below are always
accepted, anything else must be registered (and enabled) in the
``OrderStatusDefinition`` table.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    CART = "cart", "Cart"
    PENDING = "pending", "Pending"
    INVOICED = "invoiced", "Invoiced"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    CLOSED = "closed", "Closed"
    REFUNDED = "refunded", "Refunded"
    CANCELED = "canceled", "Canceled"


class AddressKind(models.TextChoices):
    BILLTO = "billto", "Billing"
    SHIPTO = "shipto", "Shipping"


# Incoming "paid" is stored as processing.
PAID_ALIAS = "paid"

BUILTIN_STATUSES = frozenset(OrderStatus.values)

# An order may still be paid (auto-transitioned) while in one of these.
OPEN_FOR_PAYMENT = frozenset(
    {OrderStatus.CART, OrderStatus.PENDING, OrderStatus.INVOICED}
)

# Seed rows for the status registry:
# (name, orderby, notify_buyer, notify_admin, order_valid, order_closed, aff_eligible)
DEFAULT_STATUSES = (
    ("pending", 10, False, False, False, False, False),
    ("paid", 20, True, True, True, False, True),
    ("processing", 30, True, False, True, False, True),
    ("shipped", 40, True, False, True, False, True),
    ("closed", 50, False, False, True, True, True),
    ("refunded", 60, False, False, False, True, False),
    ("invoiced", 70, True, False, True, False, False),
    ("canceled", 80, True, True, False, True, False),
)

ORDER_NUMBER_MAX_RETRIES = 5

TOKEN_LENGTH = 13
