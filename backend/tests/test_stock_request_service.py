"""
Stock request workflow tests.

Verifies:
- DRAFT -> SUBMITTED -> APPROVED -> FULFILLED with goods moving down and
  payment moving up
- Hierarchy and item validation at creation
- Every transition rejects every other starting status
- A failed fulfillment leaves no inventory or ledger trace and the request
  stays APPROVED
"""

import pytest

from conftest import assign, balance_of, seed_fund, seed_stock
from pointonsale.context import CallerContext
from pointonsale.errors import (
    InsufficientBalanceError,
    InsufficientStockError,
    InvalidHierarchyError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from pointonsale.extensions import db
from pointonsale.models import InventoryLedgerEntry, StockRequest, WalletLedgerEntry
from pointonsale.models.requests import (
    STOCK_REQUEST_STATUS_APPROVED,
    STOCK_REQUEST_STATUS_DRAFT,
    STOCK_REQUEST_STATUS_FULFILLED,
    STOCK_REQUEST_STATUS_REJECTED,
    STOCK_REQUEST_STATUS_SUBMITTED,
)
from pointonsale.models.wallets import WALLET_TYPE_FUND, WALLET_TYPE_INCOME
from pointonsale.services import inventory_service
from pointonsale.services import stock_request_service as service


def _approved_request(local, district, items):
    request = service.create(local.id, district.id, items)
    service.submit(request.id)
    service.approve(request.id, district.id)
    return request


# =============================================================================
# FULFILLMENT
# =============================================================================


class TestFulfillment:

    def test_goods_down_payment_up(self, db_session, district, local, product):
        assign(db_session, district.id, product.id, price_override_cents=800)
        seed_stock(district.id, product.id, 10)
        seed_fund(local.id, 10_000)

        request = _approved_request(local, district, [{"product_id": product.id, "qty": 10}])
        fulfilled = service.fulfill(request.id, district.id)

        assert fulfilled.status == STOCK_REQUEST_STATUS_FULFILLED
        assert fulfilled.fulfilled_at is not None
        assert fulfilled.total_amount_cents == 8_000
        assert fulfilled.items[0].unit_price_cents == 800

        assert inventory_service.get_quantity_on_hand(district.id, product.id) == 0
        assert inventory_service.get_quantity_on_hand(local.id, product.id) == 10
        assert balance_of(local.id, WALLET_TYPE_FUND) == 2_000
        assert balance_of(district.id, WALLET_TYPE_INCOME) == 8_000

        payment = db.session.query(WalletLedgerEntry).filter_by(ref_type="StockRequest").one()
        assert payment.ref_id == str(request.id)
        assert payment.amount_cents == 8_000

    def test_requester_may_start_negative(self, db_session, district, local, product):
        seed_stock(district.id, product.id, 5)
        inventory_service.move(local.id, product.id, -2, "ADJUSTMENT", "Test", "1", allow_negative=True)
        seed_fund(local.id, 5_000)

        request = _approved_request(local, district, [(product.id, 5)])
        service.fulfill(request.id, district.id)

        assert inventory_service.get_quantity_on_hand(local.id, product.id) == 3

    def test_zero_total_books_no_payment(self, db_session, district, local, product):
        assign(db_session, district.id, product.id, price_override_cents=0)
        seed_stock(district.id, product.id, 4)

        request = _approved_request(local, district, [(product.id, 4)])
        fulfilled = service.fulfill(request.id, district.id)

        assert fulfilled.status == STOCK_REQUEST_STATUS_FULFILLED
        assert fulfilled.total_amount_cents == 0
        assert db.session.query(WalletLedgerEntry).filter_by(ref_type="StockRequest").count() == 0

    def test_insufficient_funds_rolls_back_everything(self, db_session, district, local, product):
        seed_stock(district.id, product.id, 10)
        seed_fund(local.id, 500)

        request = _approved_request(local, district, [(product.id, 10)])

        with pytest.raises(InsufficientBalanceError):
            service.fulfill(request.id, district.id)

        assert service.get_request(request.id).status == STOCK_REQUEST_STATUS_APPROVED
        assert service.get_request(request.id).items[0].unit_price_cents is None
        assert inventory_service.get_quantity_on_hand(district.id, product.id) == 10
        assert inventory_service.get_balance(local.id, product.id) is None
        assert db.session.query(InventoryLedgerEntry).filter_by(ref_type="StockRequest").count() == 0
        assert balance_of(local.id) == 500

    def test_insufficient_stock_on_later_item_rolls_back_earlier_items(
        self, db_session, district, local, product, second_product
    ):
        seed_stock(district.id, product.id, 10)
        seed_stock(district.id, second_product.id, 1)
        seed_fund(local.id, 100_000)

        request = _approved_request(local, district, [(product.id, 10), (second_product.id, 2)])

        with pytest.raises(InsufficientStockError) as exc_info:
            service.fulfill(request.id, district.id)

        assert exc_info.value.available == 1
        assert exc_info.value.requested == 2
        assert service.get_request(request.id).status == STOCK_REQUEST_STATUS_APPROVED
        assert inventory_service.get_quantity_on_hand(district.id, product.id) == 10
        assert inventory_service.get_balance(local.id, product.id) is None
        assert balance_of(local.id) == 100_000

    def test_fulfillment_can_be_retried_after_top_up(self, db_session, district, local, product):
        seed_stock(district.id, product.id, 2)
        request = _approved_request(local, district, [(product.id, 2)])

        with pytest.raises(InsufficientBalanceError):
            service.fulfill(request.id, district.id)

        seed_fund(local.id, 2_000)
        assert service.fulfill(request.id, district.id).status == STOCK_REQUEST_STATUS_FULFILLED
        assert balance_of(local.id) == 0

    def test_only_supplier_may_fulfill(self, db_session, state, district, local, product):
        request = _approved_request(local, district, [(product.id, 1)])
        with pytest.raises(UnauthorizedError):
            service.fulfill(request.id, state.id)


# =============================================================================
# CREATION
# =============================================================================


class TestCreate:

    def test_creates_draft_with_items(self, local, district, product, second_product):
        request = service.create(
            local.id,
            district.id,
            [{"product_id": product.id, "qty": 3}, {"product_id": second_product.id, "qty": 1}],
        )

        assert request.status == STOCK_REQUEST_STATUS_DRAFT
        assert request.requested_at is not None
        assert [(i.product_id, i.qty) for i in request.items] == [(product.id, 3), (second_product.id, 1)]

    def test_wrong_direction_is_invalid_hierarchy(self, state, district, product):
        with pytest.raises(InvalidHierarchyError):
            service.create(state.id, district.id, [(product.id, 1)])
        assert db.session.query(StockRequest).count() == 0

    def test_cross_company_is_invalid_hierarchy(self, local, other_company, product):
        with pytest.raises(InvalidHierarchyError):
            service.create(local.id, other_company.id, [(product.id, 1)])

    @pytest.mark.parametrize(
        "items",
        [
            [],
            None,
            [{"product_id": 1, "qty": 0}],
            [{"product_id": 1, "qty": -2}],
            [{"product_id": 1, "qty": 1.5}],
            [{"product_id": "1", "qty": 1}],
            [(1, 1), (1, 2)],
            [5],
            [(1, 2, 3)],
            [[1]],
            7,
        ],
    )
    def test_invalid_items(self, local, district, items):
        with pytest.raises(ValidationError):
            service.create(local.id, district.id, items)
        assert db.session.query(StockRequest).count() == 0

    def test_missing_product(self, local, district, product):
        with pytest.raises(NotFoundError):
            service.create(local.id, district.id, [(product.id, 1), (999999, 1)])
        assert db.session.query(StockRequest).count() == 0

    def test_caller_must_reach_requester(self, state, district, local, product):
        service.create(local.id, district.id, [(product.id, 1)], caller=CallerContext(scope_id=state.id))

        with pytest.raises(UnauthorizedError):
            service.create(district.id, state.id, [(product.id, 1)], caller=CallerContext(scope_id=local.id))


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestStateMachine:

    @pytest.fixture
    def draft(self, local, district, product):
        return service.create(local.id, district.id, [(product.id, 1)])

    def test_submit_twice(self, draft):
        service.submit(draft.id)
        with pytest.raises(InvalidStateError):
            service.submit(draft.id)
        assert service.get_request(draft.id).status == STOCK_REQUEST_STATUS_SUBMITTED

    def test_approve_requires_submitted(self, draft, district):
        with pytest.raises(InvalidStateError):
            service.approve(draft.id, district.id)

    def test_reject_requires_submitted(self, draft, district):
        with pytest.raises(InvalidStateError):
            service.reject(draft.id, district.id, "no")

    def test_fulfill_requires_approved(self, draft, district):
        service.submit(draft.id)
        with pytest.raises(InvalidStateError):
            service.fulfill(draft.id, district.id)

    def test_reject_is_terminal(self, draft, district):
        service.submit(draft.id)
        rejected = service.reject(draft.id, district.id, "out of season")

        assert rejected.status == STOCK_REQUEST_STATUS_REJECTED
        assert rejected.rejection_reason == "out of season"
        assert rejected.rejected_at is not None
        for action in (service.approve, service.fulfill, service.reject):
            with pytest.raises(InvalidStateError):
                action(draft.id, district.id)
        with pytest.raises(InvalidStateError):
            service.submit(draft.id)

    def test_approved_cannot_be_rejected(self, draft, district):
        service.submit(draft.id)
        service.approve(draft.id, district.id)
        with pytest.raises(InvalidStateError):
            service.reject(draft.id, district.id)

    def test_fulfilled_is_terminal(self, db_session, draft, district, product):
        seed_stock(district.id, product.id, 1)
        assign(db_session, district.id, product.id, price_override_cents=0)
        service.submit(draft.id)
        service.approve(draft.id, district.id)
        service.fulfill(draft.id, district.id)

        with pytest.raises(InvalidStateError):
            service.fulfill(draft.id, district.id)

    def test_only_supplier_approves(self, draft, state, local):
        service.submit(draft.id)
        with pytest.raises(UnauthorizedError):
            service.approve(draft.id, local.id)
        with pytest.raises(UnauthorizedError):
            service.reject(draft.id, state.id)
        assert service.get_request(draft.id).status == STOCK_REQUEST_STATUS_SUBMITTED

    def test_caller_must_reach_acting_scope(self, draft, district, local):
        service.submit(draft.id)
        with pytest.raises(UnauthorizedError):
            service.approve(draft.id, district.id, caller=CallerContext(scope_id=local.id))

    def test_missing_request(self, db_session):
        with pytest.raises(NotFoundError):
            service.submit(999999)


class TestListings:

    def test_outgoing_and_incoming(self, state, district, local, product):
        first = service.create(local.id, district.id, [(product.id, 1)])
        second = service.create(local.id, state.id, [(product.id, 2)])
        service.submit(second.id)

        assert {r.id for r in service.list_as_requester(local.id)} == {first.id, second.id}
        assert [r.id for r in service.list_as_requester(local.id, STOCK_REQUEST_STATUS_SUBMITTED)] == [second.id]
        assert [r.id for r in service.list_as_supplier(district.id)] == [first.id]
        assert service.list_as_supplier(local.id) == []
