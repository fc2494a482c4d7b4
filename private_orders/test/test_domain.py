"""
Unit tests for domain models.
"""
from datetime import date, datetime, timezone
from uuid import uuid4

from django.test import SimpleTestCase

from private_orders.domain.order import (
    OPERATION_SOURCES,
    ORDER_TRANSITIONS,
    TERMINAL_STATUSES,
    Order,
    OrderLineItem,
    OrderStatus,
    VerificationResponse,
    VerificationSource,
    format_payment_reference,
)
from private_orders.domain.stock import StockSource, StockStatus, can_move
from private_orders.exceptions import PreconditionFailed, ValidationFailed

NOW = datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc)


def draft_order(**kwargs):
    order = Order(order_number="ORD-0042", partner_id=uuid4(), **kwargs)
    order.add_item(OrderLineItem(product_name="Chateau Margaux", vintage="2015", quantity=3))
    return order


def approved_order():
    order = draft_order()
    order.submit(NOW)
    order.approve(uuid4(), NOW)
    return order


class OrderLineItemTest(SimpleTestCase):
    """Tests for OrderLineItem value object."""

    def test_quantity_must_be_positive(self):
        with self.assertRaises(ValidationFailed):
            OrderLineItem(product_name="Krug Grande Cuvee", quantity=0)

    def test_product_name_required(self):
        with self.assertRaises(ValidationFailed):
            OrderLineItem(product_name="", quantity=1)

    def test_label_includes_vintage(self):
        item = OrderLineItem(product_name="Opus One", vintage="2018", quantity=1)
        self.assertEqual(item.label, "Opus One 2018")


class OrderTransitionTableTest(SimpleTestCase):
    """Every status reachable by an operation must be a listed edge."""

    def test_every_status_has_an_entry(self):
        self.assertEqual(set(ORDER_TRANSITIONS), set(OrderStatus))

    def test_terminal_statuses_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            self.assertEqual(ORDER_TRANSITIONS[status], frozenset())

    def test_operations_never_start_from_terminal_statuses(self):
        for operation, sources in OPERATION_SOURCES.items():
            if operation == "update_stock":
                # Stock may still be corrected on a delivered order
                continue
            self.assertFalse(sources & TERMINAL_STATUSES, operation)

    def test_cancel_allowed_from_every_non_terminal_status(self):
        for status, targets in ORDER_TRANSITIONS.items():
            if status not in TERMINAL_STATUSES:
                self.assertIn(OrderStatus.CANCELLED, targets, status)

    def test_illegal_move_raises_precondition_failed(self):
        order = draft_order()
        with self.assertRaises(PreconditionFailed):
            order.move_to(OrderStatus.DELIVERED, "skip")
        self.assertEqual(order.status, OrderStatus.DRAFT)


class OrderReviewTest(SimpleTestCase):

    def test_submit_requires_items(self):
        order = Order(order_number="ORD-0001", partner_id=uuid4())
        with self.assertRaises(ValidationFailed):
            order.submit(NOW)

    def test_submit_records_case_count(self):
        order = draft_order()
        event = order.submit(NOW)
        self.assertEqual(order.status, OrderStatus.SUBMITTED)
        self.assertEqual(event.previous_status, "draft")
        self.assertEqual(event.metadata["caseCount"], 3)

    def test_items_locked_after_submit(self):
        order = draft_order()
        order.submit(NOW)
        with self.assertRaises(PreconditionFailed):
            order.add_item(OrderLineItem(product_name="Dom Perignon", quantity=1))

    def test_approve_from_submitted_without_review(self):
        order = draft_order()
        order.submit(NOW)
        event = order.approve(uuid4(), NOW, "Looks good")
        self.assertEqual(order.status, OrderStatus.CC_APPROVED)
        self.assertEqual(event.notes, "Looks good")

    def test_approve_with_inventory_source_confirms_stock(self):
        order = draft_order()
        order.submit(NOW)
        item = order.items[0]
        event = order.approve(uuid4(), NOW, item_sources={item.id: StockSource.CC_INVENTORY})
        self.assertEqual(event.metadata["stockSources"], {str(item.id): "cc_inventory"})
        self.assertEqual(item.stock_status, StockStatus.PENDING)

        movement = order.confirm_inventory_items(NOW)

        self.assertEqual(item.stock_status, StockStatus.CONFIRMED)
        self.assertEqual(item.stock_confirmed_at, NOW)
        self.assertEqual(movement.item_ids, [item.id])
        self.assertEqual(movement.previous_statuses, {str(item.id): "pending"})

    def test_airfreight_source_leaves_stock_pending(self):
        order = draft_order()
        order.submit(NOW)
        item = order.items[0]
        order.approve(uuid4(), NOW, item_sources={item.id: StockSource.PARTNER_AIRFREIGHT})
        self.assertIsNone(order.confirm_inventory_items(NOW))
        self.assertEqual(item.stock_status, StockStatus.PENDING)

    def test_revision_requires_reason(self):
        order = draft_order()
        order.submit(NOW)
        with self.assertRaises(ValidationFailed):
            order.request_revision("  ", NOW)

    def test_revision_reopens_editing(self):
        order = draft_order()
        order.submit(NOW)
        order.request_revision("Vintage unavailable", NOW)
        order.add_item(OrderLineItem(product_name="Sassicaia", vintage="2019", quantity=2))
        self.assertEqual(order.case_count, 5)


class VerificationGateTest(SimpleTestCase):

    def test_assign_without_verification_issues_reference(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=False, now=NOW)
        self.assertEqual(order.status, OrderStatus.AWAITING_CLIENT_PAYMENT)
        self.assertEqual(order.payment_reference, "DIST01-ORD-0042")

    def test_assign_with_verification_waits_for_partner(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=True, now=NOW)
        self.assertEqual(order.status, OrderStatus.AWAITING_PARTNER_VERIFICATION)
        self.assertIsNone(order.payment_reference)
        self.assertEqual(order.verification_requested_at, NOW)

    def test_distributor_cannot_answer_before_partner(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=True, now=NOW)
        with self.assertRaises(PreconditionFailed):
            order.respond_distributor_verification(VerificationResponse.VERIFIED, uuid4(), NOW)

    def test_sequential_verification_opens_payment(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=True, now=NOW)
        order.respond_partner_verification(VerificationResponse.VERIFIED, uuid4(), NOW)
        self.assertEqual(order.status, OrderStatus.AWAITING_DISTRIBUTOR_VERIFICATION)
        event = order.respond_distributor_verification(VerificationResponse.VERIFIED, uuid4(), NOW)
        self.assertEqual(order.status, OrderStatus.AWAITING_CLIENT_PAYMENT)
        self.assertEqual(event.metadata["paymentReference"], "DIST01-ORD-0042")
        self.assertEqual(order.distributor_verification_source, VerificationSource.DISTRIBUTOR)

    def test_decline_requires_reason(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=True, now=NOW)
        with self.assertRaises(ValidationFailed):
            order.respond_partner_verification(VerificationResponse.DECLINED, uuid4(), NOW)
        self.assertEqual(order.status, OrderStatus.AWAITING_PARTNER_VERIFICATION)

    def test_decline_suspends_and_remembers_origin(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=True, now=NOW)
        order.respond_partner_verification(VerificationResponse.DECLINED, uuid4(), NOW, "Client unknown")
        self.assertEqual(order.status, OrderStatus.VERIFICATION_SUSPENDED)
        self.assertEqual(order.suspended_from, OrderStatus.AWAITING_PARTNER_VERIFICATION)

    def test_payment_reference_is_issued_once(self):
        order = approved_order()
        order.distributor_code = "DIST01"
        first = order.issue_payment_reference()
        order.distributor_code = "OTHER"
        self.assertEqual(order.issue_payment_reference(), first)

    def test_reference_falls_back_to_default_code(self):
        self.assertEqual(format_payment_reference(None, "ORD-0007", "ORD"), "ORD-ORD-0007")

    def test_timeout_suspends_from_current_step(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=True, now=NOW)
        event = order.time_out_verification(NOW, 72)
        self.assertEqual(order.suspended_from, OrderStatus.AWAITING_PARTNER_VERIFICATION)
        self.assertEqual(event.metadata["timedOutAt"], "awaiting_partner_verification")


class PaymentAndFulfillmentTest(SimpleTestCase):

    def paying_order(self):
        order = approved_order()
        order.assign_distributor(uuid4(), "DIST01", requires_verification=False, now=NOW)
        return order

    def test_steps_cannot_be_skipped(self):
        order = self.paying_order()
        with self.assertRaises(PreconditionFailed):
            order.record_payment_step(OrderStatus.DISTRIBUTOR_PAID, NOW)
        self.assertEqual(order.status, OrderStatus.AWAITING_CLIENT_PAYMENT)

    def test_payment_step_rejects_fulfillment_status(self):
        order = self.paying_order()
        with self.assertRaises(ValidationFailed):
            order.record_payment_step(OrderStatus.DELIVERED, NOW)

    def test_bank_reference_is_stored_per_step(self):
        order = self.paying_order()
        event = order.record_payment_step(OrderStatus.CLIENT_PAID, NOW, bank_reference="FT-991")
        self.assertEqual(order.client_payment_reference, "FT-991")
        self.assertEqual(order.client_paid_at, NOW)
        self.assertEqual(event.metadata["bankReference"], "FT-991")

    def test_delivery_scheduled_needs_a_date(self):
        order = self.paying_order()
        for step in (
            OrderStatus.CLIENT_PAID,
            OrderStatus.AWAITING_DISTRIBUTOR_PAYMENT,
            OrderStatus.DISTRIBUTOR_PAID,
            OrderStatus.AWAITING_PARTNER_PAYMENT,
            OrderStatus.PARTNER_PAID,
        ):
            order.record_payment_step(step, NOW)
        for step in (OrderStatus.STOCK_IN_TRANSIT, OrderStatus.WITH_DISTRIBUTOR, OrderStatus.SCHEDULING_DELIVERY):
            order.advance_fulfillment(step, NOW)
        with self.assertRaises(ValidationFailed):
            order.advance_fulfillment(OrderStatus.DELIVERY_SCHEDULED, NOW)
        event = order.advance_fulfillment(OrderStatus.DELIVERY_SCHEDULED, NOW, scheduled_for=date(2026, 11, 2))
        self.assertEqual(event.metadata["scheduledFor"], "2026-11-02")

    def test_cancelled_order_cannot_be_cancelled_again(self):
        order = draft_order()
        order.cancel("Client withdrew", NOW)
        with self.assertRaises(PreconditionFailed):
            order.cancel("Again", NOW)


class StockMovementTest(SimpleTestCase):

    def test_moves_are_forward_only(self):
        self.assertTrue(can_move(StockStatus.PENDING, StockStatus.AT_CC_BONDED))
        self.assertTrue(can_move(StockStatus.AT_CC_BONDED, StockStatus.AT_CC_BONDED))
        self.assertFalse(can_move(StockStatus.AT_DISTRIBUTOR, StockStatus.IN_TRANSIT_TO_CC))

    def test_stock_locked_on_draft(self):
        order = draft_order()
        with self.assertRaises(PreconditionFailed):
            order.move_items([order.items[0].id], StockStatus.CONFIRMED, NOW)

    def test_one_backward_item_blocks_the_batch(self):
        order = approved_order()
        item = order.items[0]
        item.stock_status = StockStatus.AT_DISTRIBUTOR
        with self.assertRaises(PreconditionFailed):
            order.move_items([item.id], StockStatus.AT_CC_BONDED, NOW)
        self.assertEqual(item.stock_status, StockStatus.AT_DISTRIBUTOR)

    def test_foreign_item_is_rejected(self):
        order = approved_order()
        with self.assertRaises(ValidationFailed):
            order.move_items([order.items[0].id, uuid4()], StockStatus.CONFIRMED, NOW)
        self.assertEqual(order.items[0].stock_status, StockStatus.PENDING)

    def test_confirming_stamps_confirmed_at_once(self):
        order = approved_order()
        item = order.items[0]
        order.move_items([item.id], StockStatus.CONFIRMED, NOW)
        later = datetime(2026, 10, 2, tzinfo=timezone.utc)
        order.move_items([item.id], StockStatus.CONFIRMED, later, notes="Allocation checked")
        self.assertEqual(item.stock_confirmed_at, NOW)
        self.assertEqual(item.stock_notes, "Allocation checked")

    def test_movement_metadata(self):
        order = approved_order()
        item = order.items[0]
        movement = order.move_items([item.id], StockStatus.IN_TRANSIT_TO_CC, NOW, notes="Airfreight booked")
        self.assertEqual(movement.metadata["itemCount"], 1)
        self.assertEqual(movement.metadata["itemNames"], "Chateau Margaux 2015")
        self.assertEqual(movement.metadata["previousStatuses"], {str(item.id): "pending"})
        self.assertTrue(movement.changed)

    def test_receipt_only_from_transit_or_bonded(self):
        order = approved_order()
        item = order.items[0]
        with self.assertRaises(PreconditionFailed):
            order.receive_items([item.id], NOW)
        item.stock_status = StockStatus.IN_TRANSIT_TO_DISTRIBUTOR
        movement = order.receive_items([item.id], NOW)
        self.assertEqual(item.stock_status, StockStatus.AT_DISTRIBUTOR)
        self.assertEqual(movement.action, "stock_received_at_distributor")
