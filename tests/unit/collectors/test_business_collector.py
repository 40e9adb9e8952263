"""Tests for BusinessMetricsCollector."""

import pytest

from storepulse.adapters.collectors.business import (
    ORDER_STATUSES,
    BusinessMetricsCollector,
    growth,
)
from tests.doubles import FakeDatabase

pytestmark = [pytest.mark.tier(1), pytest.mark.collectors]


@pytest.fixture
def storefront() -> FakeDatabase:
    return FakeDatabase(
        responses={
            "total_sales": {"total_sales": 250.0, "order_count": 4},
            "GROUP BY status": [
                {"status": "pending", "count": 3},
                {"status": "delivered", "count": 7},
            ],
            "payment_method AS method": [
                {"method": "card", "count": 8, "total": 800.25},
            ],
            "shipping_method AS method": [],
            "AS lifetime_value": {"lifetime_value": 120.5, "average_orders": 2.25},
            "total_spent DESC": [
                {"id": 1, "email": "a@shop.test", "total_spent": 900, "order_count": 6}
            ],
            "FROM customers": 30,
            "HAVING COUNT(*) > 1": 11,
            "new_this_month,": {
                "total": 50,
                "active": 45,
                "out_of_stock": 2,
                "low_stock": 5,
                "new_this_month": 3,
            },
            "units_sold DESC": [
                {"id": 7, "name": "Mug", "units_sold": 40, "revenue": 399.6}
            ],
            "product_count DESC": [{"name": "Kitchen", "product_count": 12}],
            "cost_price": 1234.5,
            "ORDER BY quantity ASC": [{"id": 9, "name": "Kettle", "quantity": 3}],
            "negative_stock": {"out_of_stock": 2, "negative_stock": 1},
            "AS gross": {"gross": 1000, "tax": 150, "shipping": 50, "discount": 20},
            "status = 'refunded'": 75,
        }
    )


class TestGrowth:
    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [(150, 100, 50.0), (50, 100, -50.0), (100, 0, None), (0, 0, None)],
    )
    def test_growth(self, current: float, previous: float, expected: float | None) -> None:
        assert growth(current, previous) == expected


class TestBusinessMetricsCollector:
    """Tests for the commerce KPI bundle."""

    def test_sections(self, storefront: FakeDatabase) -> None:
        bundle = BusinessMetricsCollector(storefront).collect()

        assert set(bundle) == {
            "sales",
            "orders",
            "customers",
            "products",
            "inventory",
            "revenue",
        }
        assert not any("error" in section for section in bundle.values())

    def test_sales_periods(self, storefront: FakeDatabase) -> None:
        sales = BusinessMetricsCollector(storefront).collect()["sales"]

        assert sales["today"] == {
            "total_sales": 250.0,
            "order_count": 4,
            "average_order_value": 62.5,
        }
        assert sales["growth"] == {"daily": 0.0, "weekly": 0.0, "monthly": 0.0}

    def test_orders_breakdown_includes_every_status(
        self, storefront: FakeDatabase
    ) -> None:
        orders = BusinessMetricsCollector(storefront).collect()["orders"]

        assert set(orders["status_breakdown"]) == set(ORDER_STATUSES)
        assert orders["status_breakdown"]["delivered"] == 7
        assert orders["total_orders"] == 10
        assert orders["payment_methods"] == [{"method": "card", "count": 8, "total": 800.25}]

    def test_customers(self, storefront: FakeDatabase) -> None:
        customers = BusinessMetricsCollector(storefront).collect()["customers"]

        assert customers["total"] == 30
        assert customers["returning"] == 11
        assert customers["lifetime_value"] == 120.5
        assert customers["top_customers"][0]["email"] == "a@shop.test"

    def test_inventory_and_revenue(self, storefront: FakeDatabase) -> None:
        bundle = BusinessMetricsCollector(storefront).collect()

        assert bundle["inventory"]["total_value"] == 1234.5
        assert bundle["inventory"]["low_stock_alerts"] == [
            {"id": 9, "name": "Kettle", "quantity": 3}
        ]
        assert bundle["revenue"]["net"] == 800.0
        assert bundle["revenue"]["refunded"] == 75.0

    def test_failing_query_keeps_default_and_reports_error(
        self, storefront: FakeDatabase
    ) -> None:
        storefront.failures["FROM customers"] = RuntimeError("relation customers missing")

        bundle = BusinessMetricsCollector(storefront).collect()

        customers = bundle["customers"]
        assert customers["total"] == 0
        assert customers["top_customers"] == []
        assert "relation customers missing" in customers["error"]
        assert customers["lifetime_value"] == 120.5
        assert "error" not in bundle["sales"]

    @pytest.mark.tra("Collector.Business.MalformedRows")
    def test_malformed_rows_degrade_only_their_value(
        self, storefront: FakeDatabase
    ) -> None:
        storefront.responses["GROUP BY status"] = [{"status": "pending"}]
        storefront.responses["total_spent DESC"] = [
            {"id": 1, "email": "a@shop.test", "total_spent": "n/a"}
        ]
        storefront.responses["AS gross"] = {"gross": "lots"}

        bundle = BusinessMetricsCollector(storefront).collect()

        orders = bundle["orders"]
        assert orders["status_breakdown"] == {status: 0 for status in ORDER_STATUSES}
        assert orders["payment_methods"][0]["method"] == "card"
        assert "count" in orders["error"]
        assert bundle["customers"]["top_customers"] == []
        assert bundle["customers"]["total"] == 30
        assert bundle["revenue"]["gross"] == 0.0
        assert bundle["revenue"]["refunded"] == 75.0
        assert "error" in bundle["revenue"]
        assert "error" not in bundle["products"]

    def test_database_down(self) -> None:
        down = FakeDatabase(failures={"": ConnectionError("connection refused")})

        bundle = BusinessMetricsCollector(down).collect()

        assert bundle["sales"]["today"]["total_sales"] == 0.0
        assert bundle["sales"]["growth"]["daily"] is None
        assert all("connection refused" in s["error"] for s in bundle.values())
