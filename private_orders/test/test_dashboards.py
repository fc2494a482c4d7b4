"""
Tests for dashboard rollups.
"""
from decimal import Decimal

from private_orders.services import DashboardService
from private_orders.test.base import WorkflowTestCase


class DashboardTest(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.dashboards = DashboardService()
        self.draft = self.make_order("ORD-0101", cases=3, usd="100.00", client="Jane Doe")
        self.submitted = self.make_order("ORD-0102", cases=2, usd="200.00", client="Omar Haddad")
        self.orders.submit(self.submitted.id, self.partner_actor)
        self.paying = self.make_order("ORD-0103", cases=6, usd="900.00", client="Jane Doe")
        self.orders.submit(self.paying.id, self.partner_actor)
        self.orders.approve(self.paying.id, self.admin)
        self.orders.assign_distributor(self.paying.id, self.distributor.id, self.admin)
        self.orders.respond_to_verification(self.paying.id, self.partner_actor, "verified")
        self.orders.respond_to_verification(self.paying.id, self.distributor_actor, "verified")

    def make_order(self, order_number, cases, usd, client):
        return self.orders.create_order(
            self.partner_actor,
            items=[{"productName": "Barolo Riserva", "vintage": "2016", "quantity": cases}],
            client_name=client,
            order_number=order_number,
            total_usd=Decimal(usd),
            total_aed=Decimal(usd) * 4,
        )

    def test_admin_dashboard(self):
        dashboard = self.dashboards.admin()

        kpis = dashboard["kpis"]
        self.assertEqual(kpis["totalOrders"], 2)
        self.assertEqual(kpis["totalCases"], 8)
        self.assertEqual(kpis["totalValueUsd"], Decimal("1100.00"))
        self.assertEqual(kpis["totalValueAed"], Decimal("4400.00"))
        self.assertEqual(kpis["monthlyOrders"], 2)
        self.assertEqual(kpis["pendingApprovals"], 1)
        self.assertEqual(kpis["verifiedClients"], 1)
        self.assertEqual(kpis["overriddenClients"], 0)

        breakdown = dashboard["statusBreakdown"]
        self.assertEqual(breakdown["drafts"], 1)
        self.assertEqual(breakdown["pendingReview"], 1)
        self.assertEqual(breakdown["awaitingPayment"], 1)
        self.assertEqual(breakdown["completed"], 0)

        self.assertEqual(len(dashboard["recentOrders"]), 3)
        [rollup] = dashboard["ordersByPartner"]
        self.assertEqual(rollup["partnerName"], "Cellar Door Trading")
        self.assertEqual(rollup["orderCount"], 3)
        self.assertEqual(rollup["activeCount"], 2)

    def test_partner_dashboard_is_scoped(self):
        other = self.partner_repo.create("Another Cellar", "wine_partner")

        dashboard = self.dashboards.partner(self.partner.id)

        self.assertEqual(dashboard["kpis"]["totalOrders"], 2)
        self.assertEqual(dashboard["kpis"]["totalClients"], 2)
        self.assertEqual(self.dashboards.partner(other.id)["kpis"]["totalOrders"], 0)
        self.assertEqual(self.dashboards.partner(other.id)["kpis"]["totalValueUsd"], Decimal("0"))

    def test_distributor_sees_assigned_orders_only(self):
        dashboard = self.dashboards.distributor(self.distributor.id)

        self.assertEqual(dashboard["kpis"]["totalOrders"], 1)
        self.assertEqual(dashboard["kpis"]["monthlyOrders"], 1)
        self.assertEqual(dashboard["statusBreakdown"]["pendingPayment"], 1)
        self.assertEqual([row["orderNumber"] for row in dashboard["recentOrders"]], ["ORD-0103"])

    def test_admin_override_counted_separately(self):
        order = self.make_order("ORD-0104", cases=1, usd="50.00", client="Li Wei")
        self.orders.submit(order.id, self.partner_actor)
        self.orders.approve(order.id, self.admin)
        self.orders.assign_distributor(order.id, self.distributor.id, self.admin)
        self.orders.respond_to_verification(order.id, self.partner_actor, "declined", "Cannot reach client")
        self.recovery.reset_verification(order.id, self.admin, "awaiting_client_payment")

        kpis = self.dashboards.admin()["kpis"]

        self.assertEqual(kpis["verifiedClients"], 1)
        self.assertEqual(kpis["overriddenClients"], 1)
