"""
Tests for domain invariants and audit immutability.
"""
from uuid import uuid4

from django.test import SimpleTestCase

from private_orders.domain.order import Order, OrderStatus
from private_orders.infra.activity import ActivityLogEntry, AppendOnlyError
from private_orders.infra.models import OrderORM
from private_orders.infra.pii_masker import mask_pii_in_dict
from private_orders.test.base import WorkflowTestCase


class OrderInvariantTest(SimpleTestCase):
    """Tests for order invariants checked before every save."""

    def test_payment_status_requires_reference(self):
        order = Order(order_number="ORD-0042", partner_id=uuid4(), distributor_id=uuid4())
        order.status = OrderStatus.CLIENT_PAID
        with self.assertRaises(ValueError) as context:
            order.check_invariants()
        self.assertIn("must carry a payment reference", str(context.exception))

    def test_reference_not_allowed_before_payment_gate(self):
        order = Order(order_number="ORD-0042", partner_id=uuid4(), payment_reference="DIST01-ORD-0042")
        order.status = OrderStatus.SUBMITTED
        with self.assertRaises(ValueError) as context:
            order.check_invariants()
        self.assertIn("must not carry", str(context.exception))

    def test_verification_requires_distributor(self):
        order = Order(order_number="ORD-0042", partner_id=uuid4())
        order.status = OrderStatus.AWAITING_PARTNER_VERIFICATION
        with self.assertRaises(ValueError):
            order.check_invariants()

    def test_cancelled_order_may_keep_reference(self):
        order = Order(order_number="ORD-0042", partner_id=uuid4(), payment_reference="DIST01-ORD-0042")
        order.status = OrderStatus.CANCELLED
        order.check_invariants()


class ActivityLogImmutabilityTest(WorkflowTestCase):
    """Audit entries are written once and never rewritten."""

    def setUp(self):
        super().setUp()
        self.order = self.create_order()
        self.orders.submit(self.order.id, self.partner_actor)

    def test_entry_cannot_be_updated(self):
        entry = ActivityLogEntry.objects.for_order(self.order.id).first()
        entry.notes = "rewritten"
        with self.assertRaises(AppendOnlyError):
            entry.save()

    def test_queryset_update_refused(self):
        with self.assertRaises(AppendOnlyError):
            ActivityLogEntry.objects.for_order(self.order.id).update(notes="rewritten")

    def test_entry_cannot_be_deleted(self):
        entry = ActivityLogEntry.objects.for_order(self.order.id).first()
        with self.assertRaises(AppendOnlyError):
            entry.delete()
        with self.assertRaises(AppendOnlyError):
            ActivityLogEntry.objects.for_order(self.order.id).delete()
        self.assertEqual(ActivityLogEntry.objects.for_order(self.order.id).count(), 2)

    def test_sequence_numbers_are_per_order(self):
        other = self.create_order("ORD-0043")
        self.assertEqual(
            list(ActivityLogEntry.objects.for_order(other.id).values_list("sequence_number", flat=True)),
            [1],
        )

    def test_invalid_state_is_never_persisted(self):
        stale = self.order_repo.get_or_raise(self.order.id)
        stale.status = OrderStatus.CLIENT_PAID
        with self.assertRaises(ValueError):
            self.order_repo.save_state(stale, OrderStatus.SUBMITTED)
        self.assertEqual(OrderORM.objects.get(id=self.order.id).status, OrderStatus.SUBMITTED.value)


class LogMaskingTest(SimpleTestCase):
    """Request logs never carry raw identifiers or client names."""

    def test_nested_identifiers_are_masked(self):
        user_id = "6f1c2d3e-4a5b-4c6d-8e9f-0a1b2c3d4e5f"
        masked = mask_pii_in_dict({
            "user_id": user_id,
            "operation": "graphql",
            "order": {"client_name": "Jane Doe", "email": "jane@example.com"},
        })
        self.assertEqual(masked["user_id"], "6f1c2d3e-****-****-****-************")
        self.assertEqual(masked["operation"], "graphql")
        self.assertEqual(masked["order"]["client_name"], "J******e")
        self.assertEqual(masked["order"]["email"], "ja**@example.com")
