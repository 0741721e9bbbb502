"""
Refund service tests.

Verifies:
- Amounts follow the sale lines, with discount and tax shares
- Branch policy checks on creation (window, reasons, partial, limits)
- Approval workflow transitions and their error messages
- Completion undoes the sale: status, restock, loyalty points, audit trail
"""

from datetime import timedelta

import pytest

from abaya_pos.extensions import db
from abaya_pos.models import Discount, Refund
from abaya_pos.services import inventory_service, refund_service
from abaya_pos.services.refund_service import RefundError
from abaya_pos.validation import NotFoundError


def _item(sale, product, quantity, **extra):
    sale_item = next(si for si in sale.items if si.product_id == product.id)
    return {"sale_item_id": sale_item.id, "quantity": quantity, **extra}


def _request(sale, items, user, **kwargs):
    kwargs.setdefault("refund_method", "cash")
    kwargs.setdefault("refund_reason", "defective")
    return refund_service.create_refund(sale_id=sale.id, user_id=user.id, items=items, **kwargs)


def _approve_and_complete(refund, manager, **kwargs):
    refund_service.approve_refund(refund.id, manager.id)
    return refund_service.complete_refund(refund.id, manager.id, return_condition="good", **kwargs)


# =============================================================================
# CREATION AND AMOUNTS
# =============================================================================


class TestCreateRefund:

    def test_full_refund_amount_and_numbering(self, make_sale, products, cashier):
        formal, casual = products
        sale = make_sale((formal, 2), (casual, 1))

        refund = _request(sale, [_item(sale, formal, 2), _item(sale, casual, 1)], cashier)

        assert refund.refund_number == "REF-0001"
        assert refund.sale_number == sale.sale_number
        assert refund.subtotal_cents == 620000
        assert refund.refund_amount_cents == 620000
        assert refund.status == "pending"
        assert refund.approval_status == "pending_approval"
        assert refund.original_payment_method == "cash"
        assert len(refund.items) == 2

        second_sale = make_sale((casual, 1))
        second = _request(second_sale, [_item(second_sale, casual, 1)], cashier)
        assert second.refund_number == "REF-0002"

    def test_item_by_product_id(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 2))

        refund = _request(sale, [{"product_id": formal.id, "quantity": 1}], cashier)

        assert refund.items[0].sale_item_id == sale.items[0].id
        assert refund.items[0].condition == "new"
        assert refund.items[0].reason == "defective"

    def test_tax_share_follows_items(self, db_session, branch, make_sale, products, cashier):
        formal, casual = products
        branch.tax_rate_bps = 500
        db_session.commit()
        sale = make_sale((formal, 1), (casual, 1))
        assert sale.tax_cents == 18500

        refund = _request(sale, [_item(sale, formal, 1)], cashier)

        assert refund.tax_cents == 12500
        assert refund.refund_amount_cents == 262500

    def test_discount_share_follows_items(self, db_session, make_sale, products, cashier):
        formal, casual = products
        discount = Discount(name="Eid 10%", discount_type="percentage", value=1000, scope="all_products")
        db_session.add(discount)
        db_session.commit()
        sale = make_sale((formal, 1), (casual, 1), discount_id=discount.id)
        assert sale.discount_cents == 37000

        refund = _request(sale, [_item(sale, casual, 1)], cashier)

        assert refund.discount_cents == 12000
        assert refund.refund_amount_cents == 108000

    def test_lower_amount_accepted(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 1))

        refund = _request(sale, [_item(sale, formal, 1)], cashier, refund_amount_cents=200000)

        assert refund.refund_amount_cents == 200000

    def test_amount_above_maximum_rejected(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="exceeds the maximum refundable 250000"):
            _request(sale, [_item(sale, formal, 1)], cashier, refund_amount_cents=250001)

    def test_quantity_above_sold_rejected(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 2))

        with pytest.raises(RefundError, match="only 2 refundable"):
            _request(sale, [_item(sale, formal, 3)], cashier)

    def test_open_refunds_claim_quantity(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        first = _request(sale, [_item(sale, formal, 1)], cashier)

        with pytest.raises(RefundError, match="only 0 refundable"):
            _request(sale, [_item(sale, formal, 1)], cashier)

        refund_service.reject_refund(first.id, manager.id, reason="Tags removed")
        again = _request(sale, [_item(sale, formal, 1)], cashier)
        assert again.status == "pending"

    def test_unknown_sale_item_rejected(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="is not part of sale"):
            _request(sale, [{"sale_item_id": 99999, "quantity": 1}], cashier)

    def test_duplicate_line_rejected(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 2))

        with pytest.raises(RefundError, match="listed more than once"):
            _request(sale, [_item(sale, formal, 1), _item(sale, formal, 1)], cashier)

    def test_invalid_condition_rejected(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="Invalid item condition"):
            _request(sale, [_item(sale, formal, 1, condition="stained")], cashier)

    def test_missing_method_rejected(self, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="refund_method is required"):
            _request(sale, [_item(sale, formal, 1)], cashier, refund_method="")

    def test_unknown_sale(self, db_session, cashier):
        with pytest.raises(NotFoundError):
            refund_service.create_refund(
                sale_id=99999,
                user_id=cashier.id,
                items=[{"product_id": 1, "quantity": 1}],
                refund_method="cash",
                refund_reason="defective",
            )

    def test_failed_request_leaves_nothing(self, db_session, make_sale, products, cashier):
        formal, _ = products
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError):
            _request(sale, [_item(sale, formal, 5)], cashier)

        assert db_session.query(Refund).count() == 0

    def test_customer_details_copied(self, make_sale, products, cashier, customer):
        formal, _ = products
        sale = make_sale((formal, 1), customer=customer)

        refund = _request(sale, [_item(sale, formal, 1)], cashier)

        assert refund.customer_id == customer.id
        assert refund.customer_name == "Fatima Rahman"
        assert refund.customer_phone == "01711000000"


# =============================================================================
# BRANCH POLICY
# =============================================================================


class TestRefundPolicy:

    def test_policy_defaults(self, branch, manager):
        policy = refund_service.update_policy(branch.id, manager.id)

        assert policy.refund_window_days == 30
        assert policy.require_approval is True
        assert policy.auto_approve_below_cents == 100000
        assert policy.allowed_reasons == ["defective", "wrong_item", "customer_request", "other"]
        assert policy.updated_by_name == "Manager"

    def test_update_changes_only_given_fields(self, branch, manager):
        refund_service.update_policy(branch.id, manager.id)
        policy = refund_service.update_policy(branch.id, manager.id, refund_window_days=14)

        assert policy.refund_window_days == 14
        assert policy.max_refund_percentage == 100

    def test_unknown_field_rejected(self, branch, manager):
        with pytest.raises(RefundError, match="Unknown policy fields: colour"):
            refund_service.update_policy(branch.id, manager.id, colour="red")

    def test_percentage_bounds(self, branch, manager):
        with pytest.raises(RefundError):
            refund_service.update_policy(branch.id, manager.id, max_refund_percentage=150)

    def test_unknown_branch(self, db_session, manager):
        with pytest.raises(NotFoundError):
            refund_service.update_policy(99999, manager.id)

    def test_refunds_disabled(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id, allow_refunds=False)
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="Refunds are not allowed at this branch"):
            _request(sale, [_item(sale, formal, 1)], cashier)

    def test_refund_window(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id, refund_window_days=7)
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="Refund window of 7 days has passed"):
            _request(sale, [_item(sale, formal, 1)], cashier, now=sale.created_at + timedelta(days=8))

        refund = _request(sale, [_item(sale, formal, 1)], cashier, now=sale.created_at + timedelta(days=6))
        assert refund.status == "pending"

    def test_reason_not_allowed(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id)
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="Refund reason 'changed_mind' is not allowed"):
            _request(sale, [_item(sale, formal, 1)], cashier, refund_reason="changed_mind")

    def test_photo_evidence_required(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id, require_photo_evidence=True)
        sale = make_sale((formal, 1))

        with pytest.raises(RefundError, match="Photo evidence is required"):
            _request(sale, [_item(sale, formal, 1)], cashier)

        refund = _request(sale, [_item(sale, formal, 1)], cashier, photo_evidence=["uploads/seam.jpg"])
        assert refund.photo_evidence == ["uploads/seam.jpg"]

    def test_partial_refund_disallowed(self, branch, manager, make_sale, products, cashier):
        formal, casual = products
        refund_service.update_policy(branch.id, manager.id, allow_partial_refund=False)
        sale = make_sale((formal, 1), (casual, 1))

        with pytest.raises(RefundError, match="Partial refunds are not allowed"):
            _request(sale, [_item(sale, formal, 1)], cashier)

    def test_max_refund_percentage(self, branch, manager, make_sale, products, cashier):
        formal, casual = products
        refund_service.update_policy(branch.id, manager.id, max_refund_percentage=50)
        sale = make_sale((formal, 1), (casual, 1))

        with pytest.raises(RefundError, match="exceeds 50% of the sale total"):
            _request(sale, [_item(sale, formal, 1)], cashier)

        refund = _request(sale, [_item(sale, casual, 1)], cashier)
        assert refund.refund_amount_cents == 120000

    def test_restock_penalty(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id, restock_penalty_cents=5000)
        sale = make_sale((formal, 2))

        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        assert refund.restock_penalty_cents == 5000
        assert refund.refund_amount_cents == 245000

        no_restock = _request(sale, [_item(sale, formal, 1)], cashier, restock_required=False)
        assert no_restock.restock_penalty_cents == 0
        assert no_restock.refund_amount_cents == 250000

    def test_auto_approve_small_amounts(self, branch, manager, make_sale, products, cashier):
        formal, casual = products
        refund_service.update_policy(branch.id, manager.id, auto_approve_below_cents=150000)
        sale = make_sale((formal, 1), (casual, 1))

        small = _request(sale, [_item(sale, casual, 1)], cashier)
        assert small.approval_status == "approved"
        assert small.approved_by_name == "Refund policy"
        assert small.approval_date is not None

        large = _request(sale, [_item(sale, formal, 1)], cashier)
        assert large.approval_status == "pending_approval"

    def test_manager_threshold_blocks_auto_approve(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(
            branch.id,
            manager.id,
            auto_approve_below_cents=300000,
            require_manager_approval_above_cents=200000,
        )
        sale = make_sale((formal, 1))

        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        assert refund.approval_status == "pending_approval"

    def test_no_approval_required(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id, require_approval=False)
        sale = make_sale((formal, 1))

        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        assert refund.approval_status == "approved"

        created = refund_service.get_audit_trail(refund.id)[0]
        assert "auto-approved by branch refund policy" in created.notes

    def test_restock_default_from_policy(self, branch, manager, make_sale, products, cashier):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id, auto_restock_refunded_items=False)
        sale = make_sale((formal, 1))

        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        assert refund.restock_required is False


# =============================================================================
# WORKFLOW
# =============================================================================


class TestRefundWorkflow:

    def test_approve(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)

        approved = refund_service.approve_refund(refund.id, manager.id, notes="Seam defect confirmed")

        assert approved.approval_status == "approved"
        assert approved.approved_by_user_id == manager.id
        assert approved.approved_by_name == "Manager"

        with pytest.raises(RefundError, match="Cannot approve refund with status: approved"):
            refund_service.approve_refund(refund.id, manager.id)

    def test_reject_requires_reason(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)

        with pytest.raises(RefundError, match="Rejection reason is required"):
            refund_service.reject_refund(refund.id, manager.id, reason="  ")

        rejected = refund_service.reject_refund(refund.id, manager.id, reason="Worn garment")
        assert rejected.status == "rejected"
        assert rejected.approval_status == "rejected"
        assert rejected.internal_notes == "Worn garment"

    def test_cannot_reject_processed(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        refund_service.approve_refund(refund.id, manager.id)
        refund_service.process_refund(refund.id, manager.id)

        with pytest.raises(RefundError, match="Cannot reject refund with status: processed"):
            refund_service.reject_refund(refund.id, manager.id, reason="Too late")

    def test_process_requires_approval(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)

        with pytest.raises(RefundError, match="Cannot process unapproved refund"):
            refund_service.process_refund(refund.id, manager.id)

    def test_process_records_details(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1), payment_method="bkash")
        refund = _request(sale, [_item(sale, formal, 1)], cashier, refund_method="bkash")
        refund_service.approve_refund(refund.id, manager.id)

        processed = refund_service.process_refund(
            refund.id,
            manager.id,
            refund_details={"transaction_id": "TX99", "phone_number": "01711000000"},
        )

        assert processed.status == "processed"
        assert processed.refund_details == {"transaction_id": "TX99", "phone_number": "01711000000"}
        assert refund_service.get_audit_trail(refund.id)[0].notes == "Refund processed with method: bkash"

        with pytest.raises(RefundError, match="Cannot process refund with status: processed"):
            refund_service.process_refund(refund.id, manager.id)

    def test_unknown_refund_details_rejected(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        refund_service.approve_refund(refund.id, manager.id)

        with pytest.raises(RefundError, match="Unknown refund_details fields: card_pin"):
            refund_service.process_refund(refund.id, manager.id, refund_details={"card_pin": "1234"})

    def test_complete_requires_approval(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)

        with pytest.raises(RefundError, match="Cannot complete unapproved refund"):
            refund_service.complete_refund(refund.id, manager.id, return_condition="good")

    def test_complete_requires_return_condition(self, branch, make_sale, products, cashier, manager):
        formal, _ = products
        refund_service.update_policy(branch.id, manager.id)
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        refund_service.approve_refund(refund.id, manager.id)

        with pytest.raises(RefundError, match="Return condition is required"):
            refund_service.complete_refund(refund.id, manager.id)

    def test_unknown_refund(self, db_session, manager):
        with pytest.raises(NotFoundError):
            refund_service.approve_refund(99999, manager.id)


# =============================================================================
# COMPLETION (UNDO SALE)
# =============================================================================


class TestCompleteRefund:

    def test_full_refund_cancels_sale(self, db_session, branch, make_sale, products, cashier, manager, customer):
        formal, casual = products
        sale = make_sale((formal, 2), (casual, 1), customer=customer)
        assert sale.points_earned == 62
        assert inventory_service.get_branch_stock(formal.id, branch.id) == 8

        refund = _request(sale, [_item(sale, formal, 2), _item(sale, casual, 1)], cashier)
        refund_service.approve_refund(refund.id, manager.id)
        refund_service.process_refund(refund.id, manager.id)
        result = refund_service.complete_refund(refund.id, manager.id, return_condition="good")

        assert result["success"] is True
        assert result["sale_status"] == "cancelled"
        assert result["points_reversed"] == 62
        assert result["items_restocked"] == 3

        db_session.refresh(sale)
        assert sale.status == "cancelled"
        assert sale.cancelled_at is not None
        assert inventory_service.get_branch_stock(formal.id, branch.id) == 10
        assert inventory_service.get_branch_stock(casual.id, branch.id) == 10

        db_session.refresh(customer)
        assert customer.loyalty_points == 0

        completed = refund_service.get_refund(refund.id)
        assert completed.status == "completed"
        assert completed.is_returned is True
        assert completed.return_condition == "good"
        assert completed.completed_by_user_id == manager.id

    def test_restock_movement_recorded(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        _approve_and_complete(refund, manager)

        movement = inventory_service.get_stock_movements(formal.id)[0]
        assert movement.type == "in"
        assert movement.reason == "Undo Sale Return"
        assert movement.reference == refund.refund_number
        assert movement.quantity == 1

    def test_partial_then_remaining(self, db_session, make_sale, products, cashier, manager, customer):
        formal, casual = products
        sale = make_sale((formal, 2), (casual, 1), customer=customer)

        first = _request(sale, [_item(sale, formal, 1)], cashier)
        result = _approve_and_complete(first, manager)
        assert result["sale_status"] == "partially_refunded"
        assert result["points_reversed"] == 25

        second = _request(sale, [_item(sale, formal, 1), _item(sale, casual, 1)], cashier)
        result = _approve_and_complete(second, manager)
        assert result["sale_status"] == "cancelled"
        assert result["points_reversed"] == 37

        db_session.refresh(customer)
        assert customer.loyalty_points == 0
        assert customer.lifetime_points == 0

    def test_line_by_line_with_fixed_discount_sums_to_total(self, db_session, make_sale, products, cashier, manager):
        formal, casual = products
        discount = Discount(name="Flat 10", discount_type="fixed_amount", value=1000, scope="all_products")
        db_session.add(discount)
        db_session.commit()
        sale = make_sale((formal, 1), (casual, 1), discount_id=discount.id)
        assert sale.discount_cents == 1000
        assert sale.total_cents == 369000

        first = _request(sale, [_item(sale, formal, 1)], cashier)
        _approve_and_complete(first, manager)
        second = _request(sale, [_item(sale, casual, 1)], cashier)
        result = _approve_and_complete(second, manager)

        assert first.discount_cents + second.discount_cents == 1000
        assert first.refund_amount_cents + second.refund_amount_cents == sale.total_cents
        assert result["sale_status"] == "cancelled"

    def test_unit_by_unit_with_tax_sums_to_total(self, db_session, branch, make_sale, products, cashier, manager):
        formal, casual = products
        branch.tax_rate_bps = 333
        db_session.commit()
        sale = make_sale((formal, 1), (casual, 2))
        assert sale.tax_cents == 16317

        refunds = []
        for product in (casual, casual, formal):
            refund = _request(sale, [_item(sale, product, 1)], cashier)
            result = _approve_and_complete(refund, manager)
            refunds.append(refund)

        assert sum(r.tax_cents for r in refunds) == sale.tax_cents
        assert sum(r.refund_amount_cents for r in refunds) == sale.total_cents
        assert result["sale_status"] == "cancelled"

    def test_rejected_refund_does_not_claim_shares(self, db_session, make_sale, products, cashier, manager):
        formal, casual = products
        discount = Discount(name="Flat 10", discount_type="fixed_amount", value=1000, scope="all_products")
        db_session.add(discount)
        db_session.commit()
        sale = make_sale((formal, 1), (casual, 1), discount_id=discount.id)

        rejected = _request(sale, [_item(sale, formal, 1)], cashier)
        refund_service.reject_refund(rejected.id, manager.id, reason="No receipt")
        refund = _request(sale, [_item(sale, formal, 1), _item(sale, casual, 1)], cashier)

        assert refund.discount_cents == 1000
        assert refund.refund_amount_cents == sale.total_cents

    def test_cancelled_sale_cannot_be_refunded_again(self, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        _approve_and_complete(refund, manager)

        with pytest.raises(RefundError, match="has already been fully refunded"):
            _request(sale, [_item(sale, formal, 1)], cashier)

    def test_no_restock(self, branch, make_sale, products, cashier, manager):
        formal, _ = products
        sale = make_sale((formal, 1))
        refund = _request(sale, [_item(sale, formal, 1, condition="damaged")], cashier, restock_required=False)

        result = _approve_and_complete(refund, manager)

        assert result["items_restocked"] == 0
        assert inventory_service.get_branch_stock(formal.id, branch.id) == 9

    def test_points_floor_at_zero(self, db_session, make_sale, products, cashier, manager, customer):
        formal, _ = products
        sale = make_sale((formal, 4), customer=customer)
        assert sale.points_earned == 100
        customer.loyalty_points = 30
        db_session.commit()

        refund = _request(sale, [_item(sale, formal, 4)], cashier)
        result = _approve_and_complete(refund, manager)

        assert result["points_reversed"] == 100
        db_session.refresh(customer)
        assert customer.loyalty_points == 0

    def test_audit_entries(self, db_session, branch, make_sale, products, cashier, manager):
        formal, casual = products
        branch.tax_rate_bps = 500
        discount = Discount(name="Eid 10%", discount_type="percentage", value=1000, scope="all_products")
        db_session.add(discount)
        db_session.commit()
        sale = make_sale((formal, 1), (casual, 1), discount_id=discount.id)

        refund = _request(sale, [_item(sale, formal, 1)], cashier)
        _approve_and_complete(refund, manager)

        trail = refund_service.get_audit_trail(refund.id)
        actions = [entry.action_type for entry in trail]
        assert actions[0] == "completed"
        assert set(actions) == {"created", "approved", "discount_reversal", "tax_reversal", "completed"}
        assert all(entry.refund_number == refund.refund_number for entry in trail)


# =============================================================================
# QUERIES
# =============================================================================


class TestRefundQueries:

    def test_statistics(self, make_sale, products, cashier, manager):
        formal, casual = products
        sale = make_sale((formal, 1), (casual, 1))
        done = _request(sale, [_item(sale, formal, 1)], cashier)
        _approve_and_complete(done, manager)
        _request(sale, [_item(sale, casual, 1)], cashier, refund_method="card", refund_reason="wrong_item")

        stats = refund_service.get_refund_statistics()

        assert stats["total_refunds"] == 2
        assert stats["total_refund_amount_cents"] == 370000
        assert stats["by_status"]["completed"] == 1
        assert stats["by_status"]["pending"] == 1
        assert stats["by_reason"] == {"defective": 1, "wrong_item": 1}
        assert stats["by_method"] == {"cash": 1, "card": 1}
        assert stats["pending_approval"] == 1
        assert stats["average_refund_amount_cents"] == 185000

    def test_pending_and_by_sale(self, make_sale, products, cashier, manager, customer):
        formal, casual = products
        sale = make_sale((formal, 1), (casual, 1), customer=customer)
        pending = _request(sale, [_item(sale, formal, 1)], cashier)
        rejected = _request(sale, [_item(sale, casual, 1)], cashier)
        refund_service.reject_refund(rejected.id, manager.id, reason="No receipt")

        assert [r.id for r in refund_service.get_pending_approval()] == [pending.id]
        assert {r.id for r in refund_service.get_refunds_by_sale(sale.id)} == {pending.id, rejected.id}
        assert len(refund_service.get_refunds_by_customer(customer.id)) == 2
        assert [r.id for r in refund_service.list_refunds(status="rejected")] == [rejected.id]

    def test_list_invalid_status(self, db_session):
        with pytest.raises(RefundError, match="Invalid status"):
            refund_service.list_refunds(status="lost")
