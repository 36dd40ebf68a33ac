"""Order service layer (Use Cases).

Owns the cart/order aggregate: its item collection and the totals
derived from it.  All write operations are atomic and lock the order row
first; the service defines the unit-of-work boundary.

Business rules enforced:
- Items can change only while the order is not final.
- A product must be purchasable, displayable and in stock (or allow
  oversell) to be added; quantities are clamped to the product limits.
- Adding an identical product/variant/options line merges quantities.
- Every quantity change reserves (or releases) the stock delta.
- Quantity tiers are evaluated on the total quantity of a product across
  all of its lines.
- A discount code change recomputes every line's net price, also when
  the code turns out to be invalid (the percent is reset to 0).
- ``order_total == net items + tax + shipping + handling``, rounded.
- Orders with an invoice number, or in a final status, are never deleted.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

import structlog
from django.db import transaction
from django.utils import timezone

from modules.catalog.capabilities import (
    accumulates_in_cart,
    allows_discount_code,
    allows_price_override,
    is_purchasable,
    is_taxable,
)
from modules.catalog.constants import NON_VARIANT_GROUP_TYPES
from modules.catalog.models import make_option_key
from modules.catalog.pricing import PricingEngine
from modules.catalog.services import ProductService
from modules.catalog.variants import variant_description
from modules.core.address import Address
from modules.core.config import get_shop_settings
from modules.core.currency import ZERO, Currency, to_decimal
from modules.core.exceptions import PersistenceError
from modules.discounts.services import DiscountValidation
from modules.inventory.exceptions import InsufficientStock
from modules.inventory.services import PERSISTENCE_ERROR
from modules.orders.constants import AddressKind, OrderStatus
from modules.orders.events import CartCreated, DiscountCodeApplied
from modules.orders.exceptions import (
    CheckoutNotReady,
    EmptyCart,
    GatewayNotFound,
    OrderFinalized,
    OrderItemNotFound,
    OrderNotDeletable,
    OrderNotFound,
    ProductNotOrderable,
    ShipperNotFound,
)
from modules.orders.gateways import GatewayRegistry
from modules.orders.models import Order, OrderItem, OrderItemOption
from modules.orders.shipping import ShippingCalculator
from modules.orders.status import OrderStatusMachine, actor_label

if TYPE_CHECKING:
    from modules.catalog.models import OptionValue, Product, ProductVariant
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.discounts.services import DiscountCodeValidator
    from modules.inventory.services import StockLedger
    from modules.orders.dtos import AddItemDTO, ShippingQuote
    from modules.orders.gateways import PaymentGateway
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.taxes.services import TaxCalculator

logger = structlog.get_logger(__name__)

PRICE_FIELDS = [
    "base_price",
    "price",
    "net_price",
    "qty_discount",
    "tax_rate",
    "tax",
    "shipping",
    "handling",
    "taxable",
    "valid",
    "updated_at",
]

CHECKOUT_SERVICE = "checkout"


def options_key(options: Iterable[OptionValue], custom_fields: Dict[str, str]) -> str:
    """Identity of an item's option choice, used to merge equal lines."""
    parts = [make_option_key(ov.pk for ov in options)]
    parts.extend(f"{name}={text}" for name, text in sorted(custom_fields.items()))
    return "|".join(parts)[:512]


def priced_options(item: OrderItem) -> List[OptionValue]:
    """Checkbox/text option values of *item*; they are priced per selection."""
    return [
        row.option_value
        for row in item.options.all()
        if row.option_value is not None
        and row.option_value.group.group_type in NON_VARIANT_GROUP_TYPES
    ]


def describe_item(product: Product, variant: Optional[ProductVariant]) -> str:
    if variant is None:
        return product.name
    return f"{product.name} ({variant_description(variant)})"


class OrderService:
    """Application service for the cart/order aggregate.

    Receives repositories and collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        catalog_repository: ICatalogRepository,
        stock: StockLedger,
        tax_calculator: TaxCalculator,
        discount_validator: DiscountCodeValidator,
        status_machine: Optional[OrderStatusMachine] = None,
        gateways: Optional[GatewayRegistry] = None,
    ) -> None:
        self._repo = order_repository
        self._catalog = catalog_repository
        self._stock = stock
        self._products = ProductService(catalog_repository, stock)
        self._taxes = tax_calculator
        self._discounts = discount_validator
        self._status = status_machine or OrderStatusMachine(order_repository, stock)
        self._gateways = gateways or GatewayRegistry.from_settings()
        self._shipping = ShippingCalculator(order_repository)

    @property
    def status_machine(self) -> OrderStatusMachine:
        return self._status

    @property
    def gateways(self) -> GatewayRegistry:
        return self._gateways

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, order_id: Any) -> Order:
        order = self._repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @staticmethod
    def _ensure_editable(order: Order) -> None:
        if order.is_final:
            raise OrderFinalized(
                f"Order {order.order_number} is {order.status} and cannot be changed."
            )

    def _pricing(self, order: Order) -> PricingEngine:
        return PricingEngine(self._catalog, Currency(order.currency))

    def _get_item(self, order: Order, item_id: Any) -> OrderItem:
        item = self._repo.get_item(order.pk, item_id)
        if item is None:
            raise OrderItemNotFound(f"Item {item_id} not found in this order.")
        return item

    def _reserve(
        self, product: Product, variant: Optional[ProductVariant], delta: int
    ) -> None:
        result = self._stock.reserve(product, variant, delta)
        if result.reason == PERSISTENCE_ERROR:
            raise PersistenceError(f"Stock for {product.sku} could not be updated.")
        if not result:
            available = result.details.get("available", 0)
            raise InsufficientStock(
                f"Only {available} of {product.sku} available.", available=available
            )

    @staticmethod
    def _line_is_valid(product: Product) -> bool:
        return (
            is_purchasable(product)
            and product.enabled
            and not product.is_deleted
            and product.is_available_on(timezone.localdate())
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_by_token(self, token: str) -> Order:
        order = self._repo.get_by_token(token)
        if not order:
            raise OrderNotFound("Order not found.")
        return order

    def items(self, order_id: Any) -> List[OrderItem]:
        return self._repo.items(order_id)

    # ------------------------------------------------------------------
    # Cart lifecycle
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_cart(
        self,
        owner: Any = None,
        currency: Optional[str] = None,
        affiliate: Any = None,
        buyer_email: str = "",
        geo_country: str = "",
    ) -> Order:
        """Create an empty order in ``cart`` with a fresh token."""
        owner = owner if getattr(owner, "pk", None) else None
        order = Order(
            owner=owner,
            currency=(currency or get_shop_settings().currency).upper(),
            status=OrderStatus.CART,
            affiliate=affiliate if getattr(affiliate, "pk", None) else None,
            buyer_email=buyer_email or getattr(owner, "email", "") or "",
            geo_country=(geo_country or "").upper(),
        )
        order.add_domain_event(
            CartCreated(aggregate_id=order.pk, owner_id=owner.pk if owner else None)
        )
        self._repo.save(order)
        self._repo.add_history(
            order.pk,
            "",
            OrderStatus.CART,
            user=owner,
            actor_name=actor_label(owner),
            notes="Cart created",
        )
        logger.info(
            "order.cart_created",
            order_id=str(order.pk),
            owner_id=owner.pk if owner else None,
        )
        return order

    @transaction.atomic
    def add_item(self, order_id: Any, dto: AddItemDTO) -> Order:
        """Add a product (with options) to a cart.

        Raises:
            OrderNotFound: order does not exist.
            OrderFinalized: order is final.
            ProductNotFound: product does not exist.
            ProductNotOrderable: product cannot be ordered now.
            InvalidOptionSelection: an option is not the product's.
            InsufficientStock: stock cannot cover the quantity.
        """
        order = self._lock(order_id)
        self._ensure_editable(order)

        product = self._products.get_product(dto.product_id)
        if not self._stock.can_order(product):
            raise ProductNotOrderable(f"Product {product.sku} cannot be ordered.")

        selection = self._products.resolve_selection(product, dto.option_value_ids)
        variant = selection.variant.value
        key = options_key(selection.options, dto.custom_fields)
        override = dto.override_price if allows_price_override(product) else None

        existing = None
        if override is None and accumulates_in_cart(product):
            existing = next(
                (
                    item
                    for item in self._repo.items(order.pk)
                    if item.product_id == product.pk
                    and item.variant_id == (variant.pk if variant else None)
                    and item.options_key == key
                    and not item.price_override
                ),
                None,
            )

        old_qty = existing.quantity if existing else 0
        quantity = self._stock.validate_order_qty(product, old_qty + dto.quantity, variant)
        log = logger.bind(
            order_id=str(order.pk),
            product_id=str(product.pk),
            variant_id=str(variant.pk) if variant else None,
            requested=dto.quantity,
        )
        if quantity == 0:
            raise ProductNotOrderable(f"Product {product.sku} is out of stock.")
        if quantity != old_qty + dto.quantity:
            log.warning("order.quantity_adjusted", quantity=quantity)
        if quantity == old_qty:
            return order

        self._reserve(product, variant, quantity - old_qty)

        if existing is not None:
            existing.quantity = quantity
            self._repo.save_item(existing)
        else:
            item = OrderItem(
                order=order,
                product=product,
                variant=variant,
                description=describe_item(product, variant),
                sku=variant.sku if variant is not None and variant.sku else product.sku,
                options_key=key,
                quantity=quantity,
                taxable=is_taxable(product),
            )
            if override is not None:
                breakdown = self._pricing(order).line_price(
                    product, variant, selection.priced_options, quantity, override
                )
                item.base_price = item.price = item.net_price = breakdown.unit_price
                item.price_override = True
            rows = [
                OrderItemOption(
                    option_value=ov,
                    name=ov.group.name,
                    value=ov.value,
                    price=ov.price,
                )
                for ov in selection.options
            ]
            rows.extend(
                OrderItemOption(name=name, value=text)
                for name, text in dto.custom_fields.items()
            )
            self._repo.save_item(item, rows)

        log.info("order.item_added", quantity=quantity)
        return self._recalculate(order)

    @transaction.atomic
    def update_item_quantity(self, order_id: Any, item_id: Any, quantity: int) -> Order:
        """Set an item's quantity; zero or less removes it.

        Raises:
            OrderNotFound, OrderItemNotFound, OrderFinalized, InsufficientStock
        """
        order = self._lock(order_id)
        self._ensure_editable(order)
        item = self._get_item(order, item_id)
        if quantity <= 0:
            return self._remove(order, item)

        quantity = self._stock.validate_order_qty(item.product, quantity, item.variant)
        if quantity == 0:
            raise ProductNotOrderable(f"Product {item.product.sku} is out of stock.")
        if quantity == item.quantity:
            return order

        self._reserve(item.product, item.variant, quantity - item.quantity)
        item.quantity = quantity
        self._repo.save_item(item)
        logger.info(
            "order.item_quantity_changed",
            order_id=str(order.pk),
            item_id=str(item.pk),
            quantity=quantity,
        )
        return self._recalculate(order)

    @transaction.atomic
    def remove_item(self, order_id: Any, item_id: Any) -> Order:
        order = self._lock(order_id)
        self._ensure_editable(order)
        return self._remove(order, self._get_item(order, item_id))

    def _remove(self, order: Order, item: OrderItem) -> Order:
        self._stock.release(item.product, item.variant, item.quantity)
        self._repo.delete_item(item.pk)
        logger.info("order.item_removed", order_id=str(order.pk), item_id=str(item.pk))
        return self._recalculate(order)

    @transaction.atomic
    def clear(self, order_id: Any) -> Order:
        """Remove every item and release its reservation."""
        order = self._lock(order_id)
        self._ensure_editable(order)
        self._release_all(order)
        logger.info("order.cleared", order_id=str(order.pk))
        return self._recalculate(order)

    def _release_all(self, order: Order) -> None:
        for item in self._repo.items(order.pk):
            self._stock.release(item.product, item.variant, item.quantity)
            self._repo.delete_item(item.pk)

    # ------------------------------------------------------------------
    # Addresses, shipping and discounts
    # ------------------------------------------------------------------

    @transaction.atomic
    def set_address(self, order_id: Any, kind: str, address: Address) -> Order:
        """Store the billing or shipping address and recompute tax."""
        order = self._lock(order_id)
        self._ensure_editable(order)
        if kind == AddressKind.BILLTO:
            order.billto = address.to_json()
        else:
            order.shipto = address.to_json()
        logger.info("order.address_set", order_id=str(order.pk), kind=kind)
        return self._recalculate(order)

    @transaction.atomic
    def set_shipper(self, order_id: Any, shipper_id: Any) -> Order:
        """Select a shipper; ``None`` clears it.

        Raises:
            ShipperNotFound: the shipper does not exist or is disabled.
        """
        order = self._lock(order_id)
        self._ensure_editable(order)
        if shipper_id is None:
            order.shipper = None
        else:
            shipper = self._repo.get_shipper(shipper_id)
            if shipper is None:
                raise ShipperNotFound(f"Shipper {shipper_id} not found.")
            order.shipper = shipper
        logger.info("order.shipper_set", order_id=str(order.pk), shipper_id=str(shipper_id))
        return self._recalculate(order)

    def shipping_quotes(self, order_id: Any) -> List[ShippingQuote]:
        """What each qualifying shipper would charge, cheapest first."""
        order = self.get_order(order_id)
        return self._shipping.quotes(self._repo.items(order.pk))

    @transaction.atomic
    def apply_discount_code(
        self, order_id: Any, code: str
    ) -> Tuple[Order, DiscountValidation]:
        """Validate *code* and reprice every line with its percent.

        An invalid code is not raised: the stored code and percent are
        reset and the order is repriced; the returned validation carries
        the reason.
        """
        order = self._lock(order_id)
        self._ensure_editable(order)
        code = (code or "").strip().upper()
        items = self._repo.items(order.pk)
        validation = self._discounts.validate(code, order, items)

        if (
            validation.code == order.discount_code
            and validation.percent == to_decimal(order.discount_pct)
        ):
            logger.debug("order.discount_unchanged", order_id=str(order.pk), code=code)
            return order, validation

        order.discount_code = validation.code if validation.is_valid else ""
        order.discount_pct = validation.percent
        if validation.is_valid:
            order.add_domain_event(
                DiscountCodeApplied(
                    aggregate_id=order.pk, code=validation.code, percent=validation.percent
                )
            )
        logger.info(
            "order.discount_applied",
            order_id=str(order.pk),
            code=code,
            percent=str(validation.percent),
        )
        return self._recalculate(order), validation

    @transaction.atomic
    def remove_discount_code(self, order_id: Any) -> Order:
        order = self._lock(order_id)
        self._ensure_editable(order)
        if not order.discount_code and not order.discount_pct:
            return order
        order.discount_code = ""
        order.discount_pct = ZERO
        logger.info("order.discount_removed", order_id=str(order.pk))
        return self._recalculate(order)

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    @transaction.atomic
    def recalculate(self, order_id: Any) -> Order:
        order = self._lock(order_id)
        if order.is_final:
            return order
        return self._recalculate(order)

    def _price_items(
        self, order: Order, items: List[OrderItem], currency: Currency
    ) -> None:
        pricing = self._pricing(order)
        product_qty: Dict[Any, int] = defaultdict(int)
        for item in items:
            product_qty[item.product_id] += item.quantity

        for item in items:
            product = item.product
            if not item.price_override:
                breakdown = pricing.line_price(
                    product,
                    item.variant,
                    priced_options(item),
                    product_qty[item.product_id],
                )
                item.base_price = breakdown.base_price
                item.price = breakdown.unit_price
                item.qty_discount = breakdown.qty_discount_pct
            if order.discount_pct and allows_discount_code(product):
                item.net_price = pricing.apply_discount_pct(item.price, order.discount_pct)
            else:
                item.net_price = item.price
            item.taxable = is_taxable(product)
            item.valid = self._line_is_valid(product)
            item.handling = currency.round(product.handling_for(item.quantity))
            item.shipping = (
                currency.round(product.shipping_for(item.quantity))
                if product.is_physical
                else ZERO
            )

    def _recalculate(self, order: Order) -> Order:
        """Reprice every line, then recompute charges, tax and totals."""
        currency = Currency(order.currency)
        items = self._repo.items(order.pk)
        self._price_items(order, items, currency)

        order.shipping = currency.round(self._shipping.calculate(order, items).total)
        order.handling = sum((to_decimal(item.handling) for item in items), ZERO)

        taxes = self._taxes.calculate(order, items)
        by_item = {tax.item_id: tax for tax in taxes.items}
        for item in items:
            item_tax = by_item.get(item.pk)
            item.tax_rate = item_tax.rate if item_tax else ZERO
            item.tax = item_tax.tax if item_tax else ZERO
        self._repo.save_items(items, PRICE_FIELDS)

        order.tax = taxes.total
        order.tax_rate = taxes.tax_rate
        order.tax_shipping = taxes.tax_shipping
        order.tax_handling = taxes.tax_handling
        order.gross_items = currency.round(
            sum((item.gross_total for item in items), ZERO)
        )
        order.net_taxable = currency.round(
            sum((item.net_total for item in items if item.taxable), ZERO)
        )
        order.net_nontax = currency.round(
            sum((item.net_total for item in items if not item.taxable), ZERO)
        )
        order.order_total = currency.round(
            order.net_items
            + to_decimal(order.tax)
            + to_decimal(order.shipping)
            + to_decimal(order.handling)
        )
        self._repo.save(order)
        logger.debug(
            "order.recalculated",
            order_id=str(order.pk),
            item_count=len(items),
            order_total=str(order.order_total),
        )
        return order

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def _gateway(self, name: str) -> PaymentGateway:
        gateway = self._gateways.get(name).value
        if gateway is None or not gateway.supports(CHECKOUT_SERVICE):
            raise GatewayNotFound(f"Payment gateway '{name}' is not available.")
        return gateway

    @transaction.atomic
    def checkout(self, order_id: Any, gateway: str, actor: Any = None) -> Order:
        """Validate the cart and hand it to the payment step (``pending``).

        Raises:
            GatewayNotFound: gateway unknown or not offering checkout.
            OrderFinalized: order is already final.
            EmptyCart: no items.
            CheckoutNotReady: missing address or an invalid item.
        """
        self._gateway(gateway)
        order = self._lock(order_id)
        self._ensure_editable(order)

        items = self._repo.items(order.pk)
        if not items:
            raise EmptyCart("Cannot check out an empty cart.")
        if any(item.product.is_physical for item in items):
            if not Address.from_json(order.shipto or order.billto).is_complete:
                raise CheckoutNotReady("A shipping address is required.")

        if order.discount_code:
            validation = self._discounts.validate(order.discount_code, order, items)
            if validation.percent != to_decimal(order.discount_pct):
                order.discount_code = validation.code if validation.is_valid else ""
                order.discount_pct = validation.percent
        order = self._recalculate(order)

        invalid = [item for item in self._repo.items(order.pk) if not item.valid]
        if invalid:
            raise CheckoutNotReady(
                "Some items can no longer be ordered: "
                + ", ".join(item.sku for item in invalid)
            )

        changed = self._status.transition(
            order, OrderStatus.PENDING, actor, notes=f"Checkout via {gateway}"
        )
        if changed and order.discount_code:
            self._discounts.record_use(order.discount_code)
        logger.info(
            "order.checked_out",
            order_id=str(order.pk),
            gateway=gateway,
            order_total=str(order.order_total),
        )
        return order

    @transaction.atomic
    def cancel_checkout(self, order_id: Any, gateway: str, actor: Any = None) -> Order:
        """Let the gateway undo its side and return the order to ``cart``."""
        gw = self._gateway(gateway)
        order = self._lock(order_id)
        self._ensure_editable(order)
        gw.cancel_checkout(order)
        self._status.transition(
            order, OrderStatus.CART, actor, notes=f"Checkout cancelled via {gateway}"
        )
        return order

    # ------------------------------------------------------------------
    # Deletion and maintenance
    # ------------------------------------------------------------------

    @transaction.atomic
    def delete_order(self, order_id: Any) -> None:
        """Delete a non-final, uninvoiced order and release its stock.

        Raises:
            OrderNotFound: order does not exist.
            OrderNotDeletable: order is final or invoiced.
        """
        order = self._lock(order_id)
        if not self._status.can_delete(order):
            raise OrderNotDeletable(
                f"Order {order.order_number} is {order.status} and cannot be deleted."
            )
        self._release_all(order)
        self._repo.delete(order.pk)
        logger.info("order.deleted", order_id=str(order.pk))

    @transaction.atomic
    def merge_carts(self, anon_id: Any, user_cart_id: Any) -> Order:
        """Move the items of an anonymous cart into the user's cart.

        Reservations travel with the items; the anonymous cart is deleted.
        """
        target = self._lock(user_cart_id)
        if str(anon_id) == str(user_cart_id):
            return target
        source = self._repo.get_for_update(anon_id)
        if source is None or source.status != OrderStatus.CART:
            return target
        self._ensure_editable(target)

        lines = {
            (item.product_id, item.variant_id, item.options_key): item
            for item in self._repo.items(target.pk)
            if not item.price_override and accumulates_in_cart(item.product)
        }
        moved = 0
        for item in self._repo.items(source.pk):
            key = (item.product_id, item.variant_id, item.options_key)
            existing = lines.get(key)
            if existing is not None and not item.price_override:
                combined = existing.quantity + item.quantity
                quantity = min(
                    self._stock.validate_order_qty(item.product, combined, item.variant),
                    combined,
                )
                if quantity < combined:
                    self._stock.release(item.product, item.variant, combined - quantity)
                    logger.warning(
                        "order.quantity_adjusted",
                        order_id=str(target.pk),
                        product_id=str(item.product_id),
                        quantity=quantity,
                    )
                self._repo.delete_item(item.pk)
                if quantity == 0:
                    self._repo.delete_item(existing.pk)
                    del lines[key]
                else:
                    existing.quantity = quantity
                    self._repo.save_item(existing)
            else:
                item.order = target
                self._repo.save_item(item)
            moved += 1

        if not target.discount_code and source.discount_code:
            target.discount_code = source.discount_code
            target.discount_pct = source.discount_pct
        self._repo.delete(source.pk)
        logger.info(
            "order.carts_merged",
            source_id=str(source.pk),
            target_id=str(target.pk),
            items=moved,
        )
        return self._recalculate(target)

    def purge_stale_carts(self, cutoff: datetime) -> int:
        purged = 0
        for cart in self._repo.stale_carts(cutoff):
            with transaction.atomic():
                order = self._repo.get_for_update(cart.pk)
                if order is None or order.status != OrderStatus.CART:
                    continue
                self._release_all(order)
                self._repo.delete(order.pk)
                purged += 1
        return purged
