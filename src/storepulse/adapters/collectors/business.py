"""Commerce KPIs: sales, orders, customers, products, inventory and revenue.

Queries target the storefront's PostgreSQL schema (orders, customers,
products, order_items, categories). Every query is isolated: a failure
keeps that value's default and is appended to the section's ``error``.
"""

from collections.abc import Callable
from typing import Any, TypeVar

from storepulse.core.ports import DatabasePort

T = TypeVar("T")

LOW_STOCK_THRESHOLD = 10
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled", "refunded")

_WINDOWS = {
    "today": "created_at >= CURRENT_DATE",
    "yesterday": (
        "created_at >= CURRENT_DATE - INTERVAL '1 day' AND created_at < CURRENT_DATE"
    ),
    "this_week": "created_at >= date_trunc('week', CURRENT_DATE)",
    "last_week": (
        "created_at >= date_trunc('week', CURRENT_DATE) - INTERVAL '1 week'"
        " AND created_at < date_trunc('week', CURRENT_DATE)"
    ),
    "this_month": "created_at >= date_trunc('month', CURRENT_DATE)",
    "last_month": (
        "created_at >= date_trunc('month', CURRENT_DATE) - INTERVAL '1 month'"
        " AND created_at < date_trunc('month', CURRENT_DATE)"
    ),
}
_LAST_30_DAYS = "created_at >= CURRENT_DATE - INTERVAL '30 days'"

_SALES = """
SELECT COALESCE(SUM(total_amount), 0) AS total_sales, COUNT(*) AS order_count
FROM orders
WHERE status != 'cancelled' AND {window}
"""

_STATUS_BREAKDOWN = f"""
SELECT status, COUNT(*) AS count
FROM orders
WHERE {_LAST_30_DAYS}
GROUP BY status
"""

_METHOD_BREAKDOWN = f"""
SELECT {{column}} AS method, COUNT(*) AS count, COALESCE(SUM(total_amount), 0) AS total
FROM orders
WHERE {_LAST_30_DAYS}
GROUP BY {{column}}
ORDER BY count DESC
"""

_NEW_CUSTOMERS = "SELECT COUNT(*) FROM customers WHERE {window}"

_RETURNING_CUSTOMERS = """
SELECT COUNT(*) FROM (
    SELECT customer_id FROM orders GROUP BY customer_id HAVING COUNT(*) > 1
) returning_customers
"""

_CUSTOMER_TOTALS = """
SELECT COALESCE(AVG(total), 0) AS lifetime_value, COALESCE(AVG(orders), 0) AS average_orders
FROM (
    SELECT customer_id, SUM(total_amount) AS total, COUNT(*) AS orders
    FROM orders
    WHERE status != 'cancelled'
    GROUP BY customer_id
) per_customer
"""

_TOP_CUSTOMERS = """
SELECT c.id, c.email, SUM(o.total_amount) AS total_spent, COUNT(o.id) AS order_count
FROM customers c
JOIN orders o ON o.customer_id = c.id
WHERE o.status != 'cancelled'
GROUP BY c.id, c.email
ORDER BY total_spent DESC
LIMIT 10
"""

_PRODUCT_COUNTS = f"""
SELECT COUNT(*) FILTER (WHERE active) AS active,
       COUNT(*) FILTER (WHERE quantity <= 0) AS out_of_stock,
       COUNT(*) FILTER (WHERE quantity > 0 AND quantity <= {LOW_STOCK_THRESHOLD}) AS low_stock,
       COUNT(*) FILTER (WHERE created_at >= date_trunc('month', CURRENT_DATE)) AS new_this_month,
       COUNT(*) AS total
FROM products
"""

_BESTSELLERS = f"""
SELECT p.id, p.name, SUM(oi.quantity) AS units_sold, SUM(oi.quantity * oi.price) AS revenue
FROM order_items oi
JOIN products p ON p.id = oi.product_id
JOIN orders o ON o.id = oi.order_id
WHERE o.status != 'cancelled' AND o.{_LAST_30_DAYS}
GROUP BY p.id, p.name
ORDER BY units_sold DESC
LIMIT 10
"""

_CATEGORIES = """
SELECT c.name, COUNT(p.id) AS product_count
FROM categories c
LEFT JOIN products p ON p.category_id = c.id
GROUP BY c.name
ORDER BY product_count DESC
LIMIT 10
"""

_INVENTORY_VALUE = """
SELECT COALESCE(SUM(quantity * cost_price), 0) FROM products WHERE quantity > 0
"""

_LOW_STOCK = f"""
SELECT id, name, quantity FROM products
WHERE quantity > 0 AND quantity <= {LOW_STOCK_THRESHOLD}
ORDER BY quantity ASC
LIMIT 20
"""

_STOCK_COUNTS = """
SELECT COUNT(*) FILTER (WHERE quantity = 0) AS out_of_stock,
       COUNT(*) FILTER (WHERE quantity < 0) AS negative_stock
FROM products
"""

_MONTH_REVENUE = f"""
SELECT COALESCE(SUM(total_amount), 0) AS gross,
       COALESCE(SUM(tax_amount), 0) AS tax,
       COALESCE(SUM(shipping_amount), 0) AS shipping,
       COALESCE(SUM(discount_amount), 0) AS discount
FROM orders
WHERE status NOT IN ('cancelled', 'refunded') AND {_WINDOWS["this_month"]}
"""

_REVENUE_KEYS = ("gross", "tax", "shipping", "discount")

_MONTH_REFUNDS = f"""
SELECT COALESCE(SUM(total_amount), 0) FROM orders
WHERE status = 'refunded' AND {_WINDOWS["this_month"]}
"""


def _int(value: Any) -> int:
    return int(value or 0)


def _num(value: Any) -> float:
    return float(value) if value is not None else 0.0


def growth(current: float, previous: float) -> float | None:
    """Percentage change from previous to current; None when previous is 0."""
    if previous > 0:
        return round((current - previous) / previous * 100, 2)
    return None


class _Section:
    """Collects a section's values while isolating each query."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def run(self, query: Callable[[], T], default: T) -> T:
        try:
            return query()
        except Exception as exc:
            self.errors.append(str(exc) or type(exc).__name__)
            return default

    def finish(self, data: dict[str, Any]) -> dict[str, Any]:
        if self.errors:
            data["error"] = "; ".join(self.errors)
        return data


class BusinessMetricsCollector:
    """Collects commerce KPIs from the storefront database."""

    def __init__(self, database: DatabasePort) -> None:
        self._db = database

    def collect(self) -> dict[str, Any]:
        return {
            "sales": self._sales(),
            "orders": self._orders(),
            "customers": self._customers(),
            "products": self._products(),
            "inventory": self._inventory(),
            "revenue": self._revenue(),
        }

    def _period(self, window: str) -> dict[str, Any]:
        row = self._db.fetch_one(_SALES.format(window=window)) or {}
        total = _num(row.get("total_sales"))
        count = _int(row.get("order_count"))
        return {
            "total_sales": round(total, 2),
            "order_count": count,
            "average_order_value": round(total / count, 2) if count else 0.0,
        }

    def _sales(self) -> dict[str, Any]:
        section = _Section()
        empty = {"total_sales": 0.0, "order_count": 0, "average_order_value": 0.0}
        data: dict[str, Any] = {
            name: section.run(lambda w=window: self._period(w), dict(empty))
            for name, window in _WINDOWS.items()
        }
        data["growth"] = {
            "daily": growth(data["today"]["total_sales"], data["yesterday"]["total_sales"]),
            "weekly": growth(
                data["this_week"]["total_sales"], data["last_week"]["total_sales"]
            ),
            "monthly": growth(
                data["this_month"]["total_sales"], data["last_month"]["total_sales"]
            ),
        }
        return section.finish(data)

    def _orders(self) -> dict[str, Any]:
        section = _Section()

        def breakdown() -> dict[str, int]:
            statuses = {status: 0 for status in ORDER_STATUSES}
            for row in self._db.fetch_all(_STATUS_BREAKDOWN):
                statuses[str(row["status"])] = int(row["count"])
            return statuses

        def methods(column: str) -> list[dict[str, Any]]:
            return [
                {
                    "method": row["method"],
                    "count": int(row["count"]),
                    "total": round(_num(row["total"]), 2),
                }
                for row in self._db.fetch_all(_METHOD_BREAKDOWN.format(column=column))
            ]

        statuses = section.run(breakdown, {status: 0 for status in ORDER_STATUSES})
        return section.finish(
            {
                "total_orders": sum(statuses.values()),
                "status_breakdown": statuses,
                "payment_methods": section.run(lambda: methods("payment_method"), []),
                "shipping_methods": section.run(lambda: methods("shipping_method"), []),
            }
        )

    def _customers(self) -> dict[str, Any]:
        section = _Section()
        db = self._db

        def count(sql: str) -> int:
            return _int(db.fetch_value(sql))

        def totals() -> dict[str, float]:
            row = db.fetch_one(_CUSTOMER_TOTALS) or {}
            return {
                "lifetime_value": round(_num(row.get("lifetime_value")), 2),
                "average_orders": round(_num(row.get("average_orders")), 2),
            }

        def top() -> list[dict[str, Any]]:
            return [
                {
                    "id": row.get("id"),
                    "email": row.get("email"),
                    "total_spent": round(_num(row.get("total_spent")), 2),
                    "order_count": _int(row.get("order_count")),
                }
                for row in db.fetch_all(_TOP_CUSTOMERS)
            ]

        data: dict[str, Any] = {
            "total": section.run(lambda: count("SELECT COUNT(*) FROM customers"), 0),
            "new_today": section.run(
                lambda: count(_NEW_CUSTOMERS.format(window=_WINDOWS["today"])), 0
            ),
            "new_this_week": section.run(
                lambda: count(_NEW_CUSTOMERS.format(window=_WINDOWS["this_week"])), 0
            ),
            "new_this_month": section.run(
                lambda: count(_NEW_CUSTOMERS.format(window=_WINDOWS["this_month"])), 0
            ),
            "returning": section.run(lambda: count(_RETURNING_CUSTOMERS), 0),
        }
        data.update(section.run(totals, {"lifetime_value": 0.0, "average_orders": 0.0}))
        data["top_customers"] = section.run(top, [])
        return section.finish(data)

    def _counts(self, sql: str, keys: tuple[str, ...]) -> dict[str, int]:
        row = self._db.fetch_one(sql) or {}
        return {key: _int(row.get(key)) for key in keys}

    def _products(self) -> dict[str, Any]:
        section = _Section()
        keys = ("total", "active", "out_of_stock", "low_stock", "new_this_month")

        def bestsellers() -> list[dict[str, Any]]:
            return [
                {
                    "id": row.get("id"),
                    "name": row.get("name"),
                    "units_sold": _int(row.get("units_sold")),
                    "revenue": round(_num(row.get("revenue")), 2),
                }
                for row in self._db.fetch_all(_BESTSELLERS)
            ]

        def categories() -> list[dict[str, Any]]:
            return [
                {
                    "name": row.get("name"),
                    "product_count": _int(row.get("product_count")),
                }
                for row in self._db.fetch_all(_CATEGORIES)
            ]

        data: dict[str, Any] = section.run(
            lambda: self._counts(_PRODUCT_COUNTS, keys), dict.fromkeys(keys, 0)
        )
        data["bestsellers"] = section.run(bestsellers, [])
        data["categories"] = section.run(categories, [])
        return section.finish(data)

    def _inventory(self) -> dict[str, Any]:
        section = _Section()
        keys = ("out_of_stock", "negative_stock")

        def low_stock() -> list[dict[str, Any]]:
            return [
                {
                    "id": row.get("id"),
                    "name": row.get("name"),
                    "quantity": _int(row.get("quantity")),
                }
                for row in self._db.fetch_all(_LOW_STOCK)
            ]

        value = section.run(lambda: _num(self._db.fetch_value(_INVENTORY_VALUE)), 0.0)
        data: dict[str, Any] = {
            "total_value": round(value, 2),
            "low_stock_alerts": section.run(low_stock, []),
        }
        data.update(
            section.run(
                lambda: self._counts(_STOCK_COUNTS, keys), dict.fromkeys(keys, 0)
            )
        )
        return section.finish(data)

    def _revenue(self) -> dict[str, Any]:
        section = _Section()

        def month() -> dict[str, float]:
            row = self._db.fetch_one(_MONTH_REVENUE) or {}
            return {key: _num(row.get(key)) for key in _REVENUE_KEYS}

        totals = section.run(month, dict.fromkeys(_REVENUE_KEYS, 0.0))
        refunded = section.run(lambda: _num(self._db.fetch_value(_MONTH_REFUNDS)), 0.0)
        gross, tax, shipping = totals["gross"], totals["tax"], totals["shipping"]
        return section.finish(
            {
                "gross": round(gross, 2),
                "net": round(gross - tax - shipping, 2),
                "tax": round(tax, 2),
                "shipping": round(shipping, 2),
                "discount": round(totals["discount"], 2),
                "refunded": round(refunded, 2),
            }
        )
