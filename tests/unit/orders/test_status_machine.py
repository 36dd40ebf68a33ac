"""Unit tests for OrderStatusMachine.

Covers:
- cart -> processing -> processing is idempotent (one invoice number).
- Virtual-only order paid in full moves to the virtual paid status.
- ``paid`` alias, unknown and disabled statuses.
- Notifications gated by the registry flags or ``force_notify``.
- Affiliate bonus granted at most once per order.
- Stock purchases recorded once when payment completes.
- Payment ledger de-duplication.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.dtos import AddItemDTO, RecordPaymentDTO
from modules.orders.exceptions import InvalidOrderStatus
from modules.orders.models import (
    AffiliateBonus,
    Order,
    OrderSequence,
    OrderStatusDefinition,
    OrderStatusHistory,
    Payment,
)
from modules.orders.repositories.django_repository import invalidate_status_registry
from modules.inventory.models import StockRecord

pytestmark = pytest.mark.unit


@pytest.fixture()
def machine(order_service):
    return order_service.status_machine


@pytest.fixture()
def cart(order_service, product):
    order = order_service.create_cart(buyer_email="ada@example.com")
    return order_service.add_item(order.pk, AddItemDTO(product_id=product.pk, quantity=1))


def _pay(machine, order, amount=None, ref_id="txn-1"):
    order.refresh_from_db()
    return machine.record_payment(
        order.pk,
        RecordPaymentDTO(
            amount=amount if amount is not None else order.order_total,
            gateway="check",
            ref_id=ref_id,
        ),
    )


class TestTransitions:
    def test_cart_processing_processing_is_idempotent(self, machine, cart):
        first = machine.set_status(cart.pk, OrderStatus.PROCESSING)
        seq = first.order_seq

        second = machine.set_status(cart.pk, OrderStatus.PROCESSING)

        assert second.status == OrderStatus.PROCESSING
        assert second.order_seq == seq
        assert OrderSequence.objects.filter(order=cart).count() == 1
        assert (
            OrderStatusHistory.objects.filter(
                order=cart, new_status=OrderStatus.PROCESSING
            ).count()
            == 1
        )

    def test_transition_reports_whether_anything_changed(self, machine, cart):
        order = Order.objects.get(pk=cart.pk)
        assert machine.transition(order, OrderStatus.PENDING) is True
        assert machine.transition(order, OrderStatus.PENDING) is False
        assert machine.transition(order, "") is False

    def test_sequence_assigned_on_first_final_status_only(self, machine, cart):
        machine.set_status(cart.pk, OrderStatus.PENDING)
        assert Order.objects.get(pk=cart.pk).order_seq is None

        machine.set_status(cart.pk, OrderStatus.INVOICED)
        seq = Order.objects.get(pk=cart.pk).order_seq
        machine.set_status(cart.pk, OrderStatus.SHIPPED)

        assert seq is not None
        assert Order.objects.get(pk=cart.pk).order_seq == seq

    def test_sequence_numbers_increase(self, machine, order_service):
        first = order_service.create_cart()
        second = order_service.create_cart()
        a = machine.set_status(first.pk, OrderStatus.CLOSED).order_seq
        b = machine.set_status(second.pk, OrderStatus.CLOSED).order_seq
        assert b > a

    def test_paid_alias_is_stored_as_processing(self, machine, cart):
        assert machine.set_status(cart.pk, "PAID").status == OrderStatus.PROCESSING

    def test_unknown_status_is_rejected(self, machine, cart):
        with pytest.raises(InvalidOrderStatus):
            machine.set_status(cart.pk, "teleported")
        assert Order.objects.get(pk=cart.pk).status == OrderStatus.CART

    def test_disabled_status_is_rejected(self, machine, cart, status_registry):
        OrderStatusDefinition.objects.filter(name="shipped").update(enabled=False)
        invalidate_status_registry()
        with pytest.raises(InvalidOrderStatus):
            machine.set_status(cart.pk, OrderStatus.SHIPPED)

    def test_custom_registered_status(self, machine, cart):
        OrderStatusDefinition.objects.create(name="backordered", orderby=35)
        assert machine.set_status(cart.pk, "backordered").status == "backordered"

    def test_history_records_actor_and_notes(self, machine, cart, staff_user):
        machine.set_status(cart.pk, OrderStatus.SHIPPED, actor=staff_user, notes="UPS 1Z")
        entry = OrderStatusHistory.objects.get(order=cart, new_status=OrderStatus.SHIPPED)
        assert entry.old_status == OrderStatus.CART
        assert entry.new_status == OrderStatus.SHIPPED
        assert entry.actor_name == "manager"
        assert entry.user == staff_user
        assert entry.notes == "UPS 1Z"

    def test_can_delete(self, machine, cart):
        order = Order.objects.get(pk=cart.pk)
        assert machine.can_delete(order)
        machine.set_status(cart.pk, OrderStatus.INVOICED)
        assert not machine.can_delete(Order.objects.get(pk=cart.pk))


class TestNotifications:
    def test_registry_flags_select_recipients(self, machine, cart, notifier, status_registry):
        machine.set_status(cart.pk, OrderStatus.CANCELED)
        assert notifier.calls[-1]["buyer"] is True
        assert notifier.calls[-1]["admin"] is True

    def test_silent_status_sends_nothing(self, machine, cart, notifier, status_registry):
        machine.set_status(cart.pk, OrderStatus.CLOSED)
        assert notifier.calls == []

    def test_force_notify(self, machine, cart, notifier, status_registry):
        machine.set_status(cart.pk, OrderStatus.CLOSED, force_notify=True, notes="Thanks")
        assert notifier.calls == [
            {
                "order_id": cart.pk,
                "status": OrderStatus.CLOSED,
                "message": "Thanks",
                "buyer": True,
                "admin": True,
            }
        ]

    def test_notify_false_suppresses(self, machine, cart, notifier, status_registry):
        machine.set_status(cart.pk, OrderStatus.SHIPPED, notify=False)
        assert notifier.calls == []


class TestPayments:
    def test_virtual_order_paid_in_full_closes_once(
        self, order_service, machine, virtual_product, status_registry
    ):
        """pending + balance 0 + virtual items only -> closed, one sequence."""
        order = order_service.create_cart()
        order_service.add_item(order.pk, AddItemDTO(product_id=virtual_product.pk))
        order_service.checkout(order.pk, "check")

        paid = _pay(machine, order)
        again = machine.update_payment_status(order.pk)

        assert paid.status == OrderStatus.CLOSED
        assert paid.balance_due == Decimal("0.00")
        assert again.status == OrderStatus.CLOSED
        assert again.order_seq == paid.order_seq
        assert OrderSequence.objects.filter(order_id=order.pk).count() == 1

    def test_physical_order_paid_in_full_goes_to_processing(self, machine, cart):
        assert _pay(machine, cart).status == OrderStatus.PROCESSING

    def test_partial_payment_keeps_status(self, machine, cart):
        order = _pay(machine, cart, amount=Decimal("5.00"))
        assert order.status == OrderStatus.CART
        assert order.amount_paid == Decimal("5.00")

    def test_duplicate_gateway_reference_is_ignored(self, machine, cart):
        _pay(machine, cart, amount=Decimal("5.00"), ref_id="dup")
        order = _pay(machine, cart, amount=Decimal("5.00"), ref_id="dup")
        assert Payment.objects.filter(order=cart).count() == 1
        assert order.amount_paid == Decimal("5.00")

    def test_non_money_entries_do_not_count(self, machine, cart):
        order = machine.record_payment(
            cart.pk,
            RecordPaymentDTO(amount=Decimal("100"), gateway="check", is_money=False),
        )
        assert order.amount_paid == Decimal("0")
        assert order.status == OrderStatus.CART

    def test_empty_cart_is_never_auto_paid(self, machine, order_service):
        order = order_service.create_cart()
        paid = _pay(machine, order, amount=Decimal("0"))
        assert paid.status == OrderStatus.CART

    def test_purchases_recorded_once(self, order_service, machine, make_product, address):
        item = make_product(onhand=5, price=Decimal("10.00"))
        order = order_service.create_cart()
        order_service.add_item(order.pk, AddItemDTO(product_id=item.pk, quantity=2))
        order_service.set_address(order.pk, "shipto", address)
        order_service.checkout(order.pk, "check")

        _pay(machine, order)
        machine.set_status(order.pk, OrderStatus.SHIPPED)
        machine.set_status(order.pk, OrderStatus.CLOSED)

        record = StockRecord.objects.get(product=item, variant=None)
        assert record.onhand == 3
        assert record.reserved == 0

    def test_reopened_order_is_not_purchased_twice(
        self, order_service, machine, make_product, address
    ):
        item = make_product(onhand=5, price=Decimal("10.00"))
        order = order_service.create_cart()
        order_service.add_item(order.pk, AddItemDTO(product_id=item.pk, quantity=2))
        order_service.set_address(order.pk, "shipto", address)
        order_service.checkout(order.pk, "check")
        _pay(machine, order)

        machine.set_status(order.pk, OrderStatus.PENDING)
        reopened = machine.update_payment_status(order.pk)

        assert reopened.status == OrderStatus.PROCESSING
        assert reopened.stock_recorded is True
        record = StockRecord.objects.get(product=item, variant=None)
        assert record.onhand == 3
        assert record.reserved == 0


class TestAffiliateBonus:
    def test_bonus_granted_once(
        self,
        order_service,
        machine,
        product,
        affiliate,
        status_registry,
        django_capture_on_commit_callbacks,
    ):
        order = order_service.create_cart(affiliate=affiliate)
        order_service.add_item(order.pk, AddItemDTO(product_id=product.pk, quantity=2))

        with django_capture_on_commit_callbacks(execute=True):
            machine.set_status(order.pk, OrderStatus.PROCESSING)
        with django_capture_on_commit_callbacks(execute=True):
            machine.set_status(order.pk, OrderStatus.SHIPPED)

        bonus = AffiliateBonus.objects.get(order_id=order.pk)
        assert bonus.affiliate == affiliate
        # 5% of 40.00 net items
        assert bonus.amount == Decimal("2.00")
        assert Order.objects.get(pk=order.pk).aff_granted is True

    def test_ineligible_status_grants_nothing(
        self,
        order_service,
        machine,
        affiliate,
        status_registry,
        django_capture_on_commit_callbacks,
    ):
        order = order_service.create_cart(affiliate=affiliate)
        with django_capture_on_commit_callbacks(execute=True):
            machine.set_status(order.pk, OrderStatus.CANCELED)
        assert not AffiliateBonus.objects.filter(order_id=order.pk).exists()
