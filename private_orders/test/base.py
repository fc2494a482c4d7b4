"""
Shared setup for service-level tests.
"""
from datetime import date
from uuid import uuid4

from django.test import TestCase

from private_orders.domain.actors import Actor, Role
from private_orders.infra.repositories import OrderRepository, PartnerRepository
from private_orders.services import OrderWorkflowService, RecoveryService, StockWorkflowService


class WorkflowTestCase(TestCase):
    """A wine partner, a DIST01 distributor and an operator, each with members."""

    def setUp(self):
        self.partner_repo = PartnerRepository()
        self.order_repo = OrderRepository()
        self.orders = OrderWorkflowService()
        self.stock = StockWorkflowService()
        self.recovery = RecoveryService()

        self.partner = self.partner_repo.create("Cellar Door Trading", "wine_partner")
        self.distributor = self.partner_repo.create(
            "Gulf Fine Wines", "distributor", distributor_code="DIST01",
        )
        self.operator = self.partner_repo.create("Platform Operations", "operator")

        self.partner_user = uuid4()
        self.partner_colleague = uuid4()
        self.distributor_user = uuid4()
        self.distributor_colleague = uuid4()
        self.admin_user = uuid4()
        self.admin_colleague = uuid4()
        for partner, users in (
            (self.partner, (self.partner_user, self.partner_colleague)),
            (self.distributor, (self.distributor_user, self.distributor_colleague)),
            (self.operator, (self.admin_user, self.admin_colleague)),
        ):
            for user_id in users:
                self.partner_repo.add_member(partner.id, user_id)

        self.admin = Actor(user_id=self.admin_user, role=Role.ADMIN)
        self.partner_actor = Actor(user_id=self.partner_user, role=Role.WINE_PARTNER, partner_id=self.partner.id)
        self.distributor_actor = Actor(
            user_id=self.distributor_user, role=Role.DISTRIBUTOR, partner_id=self.distributor.id,
        )

    def create_order(self, order_number="ORD-0042", items=None):
        items = items or [{"productName": "Chateau Margaux", "vintage": "2015", "quantity": 3}]
        return self.orders.create_order(
            self.partner_actor,
            items=items,
            client_name="Jane Doe",
            order_number=order_number,
        )

    def approved_order(self, order_number="ORD-0042", items=None):
        order = self.create_order(order_number, items)
        self.orders.submit(order.id, self.partner_actor)
        self.orders.start_review(order.id, self.admin)
        return self.orders.approve(order.id, self.admin)

    def order_awaiting_distributor(self, order_number="ORD-0042"):
        order = self.approved_order(order_number)
        self.orders.assign_distributor(order.id, self.distributor.id, self.admin)
        return self.orders.respond_to_verification(order.id, self.partner_actor, "verified")

    def order_awaiting_payment(self, order_number="ORD-0042"):
        order = self.order_awaiting_distributor(order_number)
        return self.orders.respond_to_verification(order.id, self.distributor_actor, "verified")

    def deliver(self, order_id):
        for step, actor in (
            ("client_paid", self.partner_actor),
            ("awaiting_distributor_payment", self.admin),
            ("distributor_paid", self.admin),
            ("awaiting_partner_payment", self.admin),
            ("partner_paid", self.admin),
        ):
            self.orders.record_payment_step(order_id, actor, step)
        for step in ("stock_in_transit", "with_distributor", "scheduling_delivery"):
            actor = self.admin if step == "stock_in_transit" else self.distributor_actor
            self.orders.advance_fulfillment(order_id, actor, step)
        self.orders.advance_fulfillment(
            order_id, self.distributor_actor, "delivery_scheduled", scheduled_for=date(2026, 11, 2),
        )
        self.orders.advance_fulfillment(order_id, self.distributor_actor, "out_for_delivery")
        return self.orders.advance_fulfillment(order_id, self.distributor_actor, "delivered")
