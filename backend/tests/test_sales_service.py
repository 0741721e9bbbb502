"""
Sales service tests.

Verifies:
- Sale numbering, stock deduction and movements
- Tax, discount and change due
- Loyalty points and customer totals
- Failed sales leave no trace
"""

import pytest

from abaya_pos.models import Discount, Sale
from abaya_pos.services import inventory_service, sales_service
from abaya_pos.services.sales_service import SaleError, compute_tax


class TestComputeTax:

    def test_rounds_half_up(self):
        assert compute_tax(10010, 500) == 501
        assert compute_tax(10009, 500) == 500

    def test_zero_rate(self):
        assert compute_tax(250000, 0) == 0


class TestCreateSale:

    def test_basic_sale(self, branch, make_sale, products):
        formal, casual = products

        sale = make_sale((formal, 2), (casual, 1))

        assert sale.sale_number == "S-0001"
        assert sale.status == "completed"
        assert sale.subtotal_cents == 620000
        assert sale.total_cents == 620000
        assert sale.cashier_name == "Cashier"
        assert [item.quantity for item in sale.items] == [2, 1]
        assert inventory_service.get_branch_stock(formal.id, branch.id) == 8

        movement = inventory_service.get_stock_movements(formal.id)[0]
        assert movement.type == "out"
        assert movement.reason == "Sale"
        assert movement.reference == "S-0001"

        assert make_sale((casual, 1)).sale_number == "S-0002"

    def test_tax_and_change(self, db_session, branch, make_sale, products):
        formal, _ = products
        branch.tax_rate_bps = 500
        db_session.commit()

        sale = make_sale((formal, 1), paid_amount_cents=300000)

        assert sale.tax_cents == 12500
        assert sale.total_cents == 262500
        assert sale.change_due_cents == 37500

    def test_underpayment_rejected(self, db_session, make_sale, products):
        formal, _ = products

        with pytest.raises(SaleError, match="less than total"):
            make_sale((formal, 1), paid_amount_cents=100)

        assert db_session.query(Sale).count() == 0

    def test_insufficient_stock_rolls_back(self, db_session, branch, make_sale, products):
        formal, casual = products

        with pytest.raises(SaleError, match="Insufficient stock"):
            make_sale((casual, 1), (formal, 11))

        assert db_session.query(Sale).count() == 0
        assert inventory_service.get_branch_stock(casual.id, branch.id) == 10

    def test_coupon_code(self, db_session, make_sale, products):
        formal, _ = products
        db_session.add(Discount(
            name="Eid", code="EID5", discount_type="fixed_amount", value=5000, scope="all_products",
        ))
        db_session.commit()

        sale = make_sale((formal, 1), coupon_code="eid5")

        assert sale.discount_cents == 5000
        assert sale.total_cents == 245000
        assert sales_service.get_sale(sale.id).discount_id is not None

    def test_unknown_coupon(self, make_sale, products):
        formal, _ = products

        with pytest.raises(SaleError, match="Coupon NOPE not found"):
            make_sale((formal, 1), coupon_code="NOPE")

    def test_inactive_product(self, db_session, make_sale, products):
        formal, _ = products
        formal.is_active = False
        db_session.commit()

        with pytest.raises(SaleError, match="is inactive"):
            make_sale((formal, 1))

    def test_empty_items(self, make_sale):
        with pytest.raises(SaleError, match="at least one item"):
            make_sale()

    def test_customer_points_and_totals(self, db_session, make_sale, products, customer):
        formal, _ = products

        sale = make_sale((formal, 1), customer=customer)

        assert sale.points_earned == 25
        assert sale.customer_name == "Fatima Rahman"
        db_session.refresh(customer)
        assert customer.loyalty_points == 25
        assert customer.total_orders == 1
        assert customer.total_spent_cents == 250000


class TestListSales:

    def test_filters(self, make_sale, products, customer):
        formal, casual = products
        first = make_sale((formal, 1), customer=customer)
        second = make_sale((casual, 1))

        assert [s.id for s in sales_service.list_sales()] == [second.id, first.id]
        assert [s.id for s in sales_service.list_sales(customer_id=customer.id)] == [first.id]

    def test_invalid_status(self, db_session):
        with pytest.raises(SaleError, match="Invalid status"):
            sales_service.list_sales(status="voided")
