"""
Integration tests for the per-item stock workflow.
"""
from uuid import uuid4

from private_orders.domain.actors import Actor, Role
from private_orders.domain.stock import StockStatus
from private_orders.exceptions import Forbidden, NotFound, PreconditionFailed, ValidationFailed
from private_orders.infra.activity import ActivityLogEntry, ActivityLogRepository
from private_orders.infra.models import OrderItemORM
from private_orders.infra.outbox import NotificationOutbox
from private_orders.test.base import WorkflowTestCase

THREE_ITEMS = [
    {"productName": "Chateau Margaux", "vintage": "2015", "quantity": 3},
    {"productName": "Dom Perignon", "vintage": "2012", "quantity": 2},
    {"productName": "Sassicaia", "vintage": "2019", "quantity": 6},
]


class BulkStockUpdateTest(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.order = self.approved_order(items=THREE_ITEMS)
        self.orders.assign_distributor(self.order.id, self.distributor.id, self.admin)
        self.item_ids = [item.id for item in self.order.items]
        self.stock.bulk_update(self.order.id, self.item_ids, self.admin, "in_transit_to_cc")

    def test_bulk_update_moves_every_item_with_one_entry(self):
        before = set(NotificationOutbox.objects.values_list("id", flat=True))

        self.stock.bulk_update(
            self.order.id, self.item_ids, self.admin, "at_cc_bonded", notes="Container #4 unloaded",
        )

        statuses = set(OrderItemORM.objects.filter(order_id=self.order.id).values_list("stock_status", flat=True))
        self.assertEqual(statuses, {StockStatus.AT_CC_BONDED.value})
        notes = set(OrderItemORM.objects.filter(order_id=self.order.id).values_list("stock_notes", flat=True))
        self.assertEqual(notes, {"Container #4 unloaded"})

        entries = ActivityLogEntry.objects.for_order(self.order.id).stock().filter(new_status="at_cc_bonded")
        self.assertEqual(entries.count(), 1)
        entry = entries.get()
        self.assertEqual(entry.action, "stock_status_bulk_updated")
        self.assertEqual(entry.metadata["itemCount"], 3)
        self.assertEqual(entry.notes, "Container #4 unloaded")
        self.assertEqual(set(entry.metadata["previousStatuses"].values()), {"in_transit_to_cc"})
        self.assertEqual(entry.previous_status, "in_transit_to_cc")
        self.assertEqual(entry.new_status, "at_cc_bonded")

        new_rows = NotificationOutbox.objects.exclude(id__in=before)
        distributor_rows = new_rows.filter(partner_id=self.distributor.id)
        self.assertEqual(
            sorted(distributor_rows.values_list("recipient_id", flat=True)),
            sorted([self.distributor_user, self.distributor_colleague]),
        )
        self.assertEqual(new_rows.filter(partner_id=self.partner.id).count(), 2)

    def test_duplicate_ids_count_once(self):
        self.stock.bulk_update(self.order.id, self.item_ids + self.item_ids[:1], self.admin, "at_cc_bonded")
        entry = ActivityLogEntry.objects.for_order(self.order.id).stock().filter(new_status="at_cc_bonded").get()
        self.assertEqual(entry.metadata["itemCount"], 3)

    def test_foreign_item_rejects_whole_batch(self):
        other = self.approved_order(
            "ORD-0043",
            items=[{"productName": "Opus One", "quantity": 1}, {"productName": "Petrus", "quantity": 1}],
        )
        foreign_id = other.items[0].id
        batch = self.item_ids + [other.items[1].id]
        batch.insert(1, foreign_id)
        entries_before = ActivityLogEntry.objects.for_order(self.order.id).count()

        with self.assertRaises(ValidationFailed):
            self.stock.bulk_update(self.order.id, batch, self.admin, "at_cc_bonded")

        statuses = set(OrderItemORM.objects.filter(id__in=batch).values_list("stock_status", flat=True))
        self.assertNotIn(StockStatus.AT_CC_BONDED.value, statuses)
        self.assertEqual(ActivityLogEntry.objects.for_order(self.order.id).count(), entries_before)

    def test_unknown_item_is_not_found(self):
        with self.assertRaises(NotFound):
            self.stock.bulk_update(self.order.id, self.item_ids + [uuid4()], self.admin, "at_cc_bonded")

    def test_backward_move_rejects_whole_batch(self):
        self.stock.update_item(self.item_ids[0], self.admin, "at_distributor")
        with self.assertRaises(PreconditionFailed):
            self.stock.bulk_update(self.order.id, self.item_ids, self.admin, "at_cc_bonded")
        self.assertEqual(
            OrderItemORM.objects.get(id=self.item_ids[1]).stock_status,
            StockStatus.IN_TRANSIT_TO_CC.value,
        )

    def test_unknown_status_is_validation_error(self):
        with self.assertRaises(ValidationFailed):
            self.stock.bulk_update(self.order.id, self.item_ids, self.admin, "in_the_cellar")

    def test_only_admin_moves_stock(self):
        with self.assertRaises(Forbidden):
            self.stock.bulk_update(self.order.id, self.item_ids, self.distributor_actor, "at_cc_bonded")

    def test_single_item_entry_records_previous_status(self):
        self.stock.update_item(self.item_ids[0], self.admin, "at_cc_bonded")
        entry = ActivityLogEntry.objects.for_order(self.order.id).order_by("-sequence_number").first()
        self.assertEqual(entry.action, "stock_status_updated")
        self.assertEqual(entry.previous_status, "in_transit_to_cc")
        self.assertEqual(entry.new_status, "at_cc_bonded")

    def test_mixed_batch_keeps_previous_statuses_per_item(self):
        self.stock.update_item(self.item_ids[0], self.admin, "at_cc_bonded")
        self.stock.bulk_update(self.order.id, self.item_ids, self.admin, "at_cc_ready_for_dispatch")
        entry = ActivityLogEntry.objects.for_order(self.order.id).order_by("-sequence_number").first()
        self.assertIsNone(entry.previous_status)
        self.assertEqual(entry.metadata["previousStatuses"][str(self.item_ids[0])], "at_cc_bonded")
        self.assertEqual(entry.metadata["previousStatuses"][str(self.item_ids[1])], "in_transit_to_cc")

    def test_stock_timeline_oldest_first(self):
        self.stock.update_item(self.item_ids[0], self.admin, "at_cc_bonded")
        timeline = ActivityLogRepository().stock_timeline(self.order.id)
        self.assertEqual(
            [entry.new_status for entry in timeline],
            ["in_transit_to_cc", "at_cc_bonded"],
        )


class StockReceiptTest(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.order = self.approved_order(items=THREE_ITEMS[:2])
        self.orders.assign_distributor(self.order.id, self.distributor.id, self.admin)
        self.item_ids = [item.id for item in self.order.items]

    def test_distributor_confirms_receipt(self):
        self.stock.bulk_update(self.order.id, self.item_ids, self.admin, "in_transit_to_distributor")

        order = self.stock.confirm_receipt(self.order.id, self.item_ids, self.distributor_actor, "Pallet checked")

        self.assertEqual({item.stock_status for item in order.items}, {StockStatus.AT_DISTRIBUTOR})
        entry = ActivityLogEntry.objects.for_order(self.order.id).order_by("-sequence_number").first()
        self.assertEqual(entry.action, "stock_received_at_distributor")
        self.assertEqual(entry.actor_role, "distributor")
        self.assertEqual(entry.previous_status, "in_transit_to_distributor")

    def test_receipt_requires_stock_on_its_way(self):
        with self.assertRaises(PreconditionFailed):
            self.stock.confirm_receipt(self.order.id, self.item_ids, self.distributor_actor)

    def test_other_distributor_cannot_confirm(self):
        other = self.partner_repo.create("Other Distribution", "distributor", distributor_code="OTH")
        actor = Actor(user_id=uuid4(), role=Role.DISTRIBUTOR, partner_id=other.id)
        self.stock.bulk_update(self.order.id, self.item_ids, self.admin, "in_transit_to_distributor")
        with self.assertRaises(Forbidden):
            self.stock.confirm_receipt(self.order.id, self.item_ids, actor)

    def test_confirming_twice_keeps_first_timestamp(self):
        self.stock.update_item(self.item_ids[0], self.admin, "confirmed")
        first = OrderItemORM.objects.get(id=self.item_ids[0]).stock_confirmed_at
        self.stock.update_item(self.item_ids[0], self.admin, "confirmed", notes="Allocation rechecked")
        item = OrderItemORM.objects.get(id=self.item_ids[0])
        self.assertEqual(item.stock_confirmed_at, first)
        self.assertEqual(item.stock_notes, "Allocation rechecked")

    def test_same_status_move_is_not_announced(self):
        self.stock.update_item(self.item_ids[0], self.admin, "confirmed")
        before = NotificationOutbox.objects.count()
        self.stock.update_item(self.item_ids[0], self.admin, "confirmed", notes="No change")
        self.assertEqual(NotificationOutbox.objects.count(), before)


class ApprovalStockSourceTest(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.order = self.create_order(items=THREE_ITEMS[:2])
        self.orders.submit(self.order.id, self.partner_actor)
        by_name = {item.product_name: item.id for item in self.order.items}
        self.inventory_id = by_name["Chateau Margaux"]
        self.airfreight_id = by_name["Dom Perignon"]

    def approve(self):
        return self.orders.approve(
            self.order.id,
            self.admin,
            item_sources={self.inventory_id: "cc_inventory", self.airfreight_id: "partner_airfreight"},
        )

    def test_inventory_items_are_confirmed_on_approval(self):
        self.approve()

        inventory = OrderItemORM.objects.get(id=self.inventory_id)
        self.assertEqual(inventory.stock_status, StockStatus.CONFIRMED.value)
        self.assertEqual(inventory.source, "cc_inventory")
        self.assertIsNotNone(inventory.stock_confirmed_at)
        airfreight = OrderItemORM.objects.get(id=self.airfreight_id)
        self.assertEqual(airfreight.stock_status, StockStatus.PENDING.value)
        self.assertEqual(airfreight.source, "partner_airfreight")

    def test_approval_confirmation_is_audited(self):
        self.approve()

        timeline = ActivityLogRepository().stock_timeline(self.order.id)
        self.assertEqual(len(timeline), 1)
        entry = timeline[0]
        self.assertEqual(entry.action, "stock_confirmed_from_inventory")
        self.assertEqual(entry.previous_status, "pending")
        self.assertEqual(entry.new_status, "confirmed")
        self.assertEqual(entry.metadata["itemIds"], [str(self.inventory_id)])

        approval = ActivityLogEntry.objects.for_order(self.order.id).get(action="order_approved")
        self.assertEqual(
            approval.metadata["stockSources"],
            {str(self.inventory_id): "cc_inventory", str(self.airfreight_id): "partner_airfreight"},
        )
        self.assertLess(approval.sequence_number, entry.sequence_number)

    def test_approval_confirmation_notifies_partner(self):
        self.approve()

        rows = NotificationOutbox.objects.filter(notification_type="stock_status_updated")
        self.assertEqual(
            sorted(rows.values_list("recipient_id", flat=True)),
            sorted([self.partner_user, self.partner_colleague]),
        )
        self.assertIn("Chateau Margaux", rows.first().message)
