"""Sales dashboard, CSV export and inventory metric tests."""

import csv
import io

import pytest

from abaya_pos.services import refund_service, reporting_service
from abaya_pos.services.reporting_service import ReportError


def _refund_all(sale, user, manager):
    refund = refund_service.create_refund(
        sale_id=sale.id,
        user_id=user.id,
        items=[{"sale_item_id": si.id, "quantity": si.quantity} for si in sale.items],
        refund_method="cash",
        refund_reason="defective",
    )
    refund_service.approve_refund(refund.id, manager.id)
    refund_service.complete_refund(refund.id, manager.id, return_condition="good")
    return refund


class TestSalesSummary:

    def test_totals_exclude_cancelled(self, make_sale, products, cashier, manager):
        formal, casual = products
        make_sale((formal, 2), (casual, 1))
        make_sale((casual, 1), payment_method="card")
        cancelled = make_sale((formal, 1))
        _refund_all(cancelled, cashier, manager)

        report = reporting_service.sales_summary()

        assert report["total_transactions"] == 2
        assert report["total_revenue_cents"] == 740000
        assert report["items_sold"] == 4
        assert report["average_order_value_cents"] == 370000
        assert report["refunded_cents"] == 0
        assert report["payment_methods"]["card"] == {"count": 1, "amount_cents": 120000}
        assert len(report["daily_trend"]) == 1

    def test_top_products_and_profit(self, make_sale, products):
        formal, casual = products
        make_sale((formal, 2), (casual, 3))

        report = reporting_service.sales_summary()

        top = report["top_products"][0]
        assert top["product_name"] == "Nida Formal Abaya"
        assert top["revenue_cents"] == 500000
        assert top["profit_cents"] == 200000
        categories = {c["category"]: c["revenue_cents"] for c in report["category_performance"]}
        assert categories == {"Formal Abayas": 500000, "Uncategorized": 360000}

    def test_partial_refund_netted(self, make_sale, products, cashier, manager):
        formal, casual = products
        sale = make_sale((formal, 1), (casual, 1))
        refund = refund_service.create_refund(
            sale_id=sale.id,
            user_id=cashier.id,
            items=[{"product_id": casual.id, "quantity": 1}],
            refund_method="cash",
            refund_reason="defective",
        )
        refund_service.approve_refund(refund.id, manager.id)
        refund_service.complete_refund(refund.id, manager.id, return_condition="good")

        report = reporting_service.sales_summary()

        assert report["total_revenue_cents"] == 370000
        assert report["refunded_cents"] == 120000
        assert report["net_revenue_cents"] == 250000
        assert report["items_sold"] == 1
        assert [p["product_name"] for p in report["top_products"]] == ["Nida Formal Abaya"]
        assert report["top_products"][0]["profit_cents"] == 100000
        assert report["category_performance"] == [
            {"category": "Formal Abayas", "quantity_sold": 1, "revenue_cents": 250000},
        ]
        assert report["payment_methods"]["cash"] == {"count": 1, "amount_cents": 250000}
        assert report["daily_trend"][0]["revenue_cents"] == 250000

    def test_date_range(self, make_sale, products):
        formal, _ = products
        make_sale((formal, 1))

        report = reporting_service.sales_summary(start="2000-01-01", end="2000-01-31")

        assert report["total_transactions"] == 0

    def test_bad_range(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.sales_summary(start="2024-02-01", end="2024-01-01")
        with pytest.raises(ReportError):
            reporting_service.sales_summary(start="yesterday")


class TestSalesCsv:

    def test_rows(self, make_sale, products, customer):
        formal, casual = products
        make_sale((formal, 1), customer=customer)
        make_sale((casual, 2))

        rows = list(csv.reader(io.StringIO(reporting_service.sales_csv())))

        assert rows[0] == reporting_service.CSV_COLUMNS
        assert rows[1][1:] == ["S-0001", "Fatima Rahman", "1", "2500.00", "cash"]
        assert rows[2][1:] == ["S-0002", "Walk-in Customer", "2", "2400.00", "cash"]

    def test_format_cents(self):
        assert reporting_service.format_cents(5) == "0.05"
        assert reporting_service.format_cents(-12345) == "-123.45"


class TestInventoryMetrics:

    def test_values(self, make_sale, products):
        formal, casual = products
        make_sale((formal, 8))

        metrics = reporting_service.inventory_metrics()

        assert metrics["total_products"] == 2
        assert metrics["total_units"] == 12
        assert metrics["low_stock_count"] == 1
        assert metrics["low_stock_products"][0]["sku"] == "ABY-FRM-001"
        assert metrics["inventory_value_cents"] == 2 * 150000 + 10 * 70000
