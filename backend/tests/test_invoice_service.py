# Overview: Pytest coverage for invoice creation, numbering, status changes and cancellation.

import re

import pytest

from stockbook.extensions import db
from stockbook.models import Invoice, Product, StockTransaction
from stockbook.services.invoice_service import (
    add_invoice_line,
    cancel_invoice,
    compute_tax,
    create_invoice,
    generate_invoice_number,
    get_invoice,
    list_invoices,
    update_invoice,
    update_invoice_status,
)
from stockbook.services.stock_service import InsufficientStockError
from stockbook.time_utils import utcnow
from stockbook.validation import ConflictError, NotFoundError, ValidationError


def _quantity(product_id):
    return db.session.get(Product, product_id, populate_existing=True).quantity


def _month():
    return utcnow().strftime("%Y%m")


@pytest.fixture
def stocked(db_session, business_a, category_a, make_product):
    """Two products: P1 at 500 and P2 at 1000, both with 10 in stock."""
    p1 = make_product(business_a, category_a, name="P1", quantity=10, price_cents=500)
    p2 = make_product(business_a, category_a, name="P2", quantity=10, price_cents=1000)
    return p1, p2


class TestCreateInvoice:
    def test_totals_with_tax(self, db_session, business_a, client_a, stocked):
        """P1 2 x 500 + P2 1 x 1000 at 20%: subtotal 2000, tax 400, total 2400."""
        p1, p2 = stocked

        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 2}, {"product_id": p2.id, "quantity": 1}],
            tax_rate_bps=2000,
            tax_enabled=True,
        )

        assert invoice.subtotal_cents == 2000
        assert invoice.tax_cents == 400
        assert invoice.total_cents == 2400
        assert invoice.status == "UNPAID"
        assert _quantity(p1.id) == 8
        assert _quantity(p2.id) == 9

        sales = db.session.query(StockTransaction).filter_by(invoice_id=invoice.id).all()
        assert sum(t.subtotal_cents for t in sales) == invoice.subtotal_cents
        assert {t.type for t in sales} == {"SALE"}

    def test_tax_disabled_total_equals_subtotal(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 3}],
            tax_enabled=False,
        )
        assert invoice.subtotal_cents == 1500
        assert invoice.tax_cents == 0
        assert invoice.total_cents == 1500

    def test_tax_rate_defaults_to_business_rate(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        assert invoice.tax_rate_bps == business_a.default_tax_rate_bps == 2000
        assert invoice.total_cents == 600

    def test_line_price_override(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 2, "unit_price_cents": 450}],
            tax_enabled=False,
        )
        assert invoice.subtotal_cents == 900
        assert invoice.transactions[0].unit_price_cents == 450

    def test_insufficient_stock_writes_nothing(self, db_session, business_a, client_a, stocked):
        p1, p2 = stocked

        with pytest.raises(InsufficientStockError) as exc:
            create_invoice(
                business_id=business_a.id,
                client_id=client_a.id,
                lines=[{"product_id": p1.id, "quantity": 1}, {"product_id": p2.id, "quantity": 11}],
            )

        assert exc.value.details["items"][0]["product_id"] == p2.id
        assert db.session.query(Invoice).count() == 0
        assert db.session.query(StockTransaction).count() == 0
        assert _quantity(p1.id) == 10
        # No number was consumed by the failed attempt
        assert generate_invoice_number(business_id=business_a.id) == f"FACT-{_month()}-001"

    def test_empty_lines_rejected(self, db_session, business_a, client_a):
        with pytest.raises(ValidationError, match="^lines must be a non-empty list"):
            create_invoice(business_id=business_a.id, client_id=client_a.id, lines=[])

    def test_bad_line_names_the_lines_field(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        with pytest.raises(ValidationError, match="^lines 2: quantity"):
            create_invoice(
                business_id=business_a.id,
                client_id=client_a.id,
                lines=[{"product_id": p1.id, "quantity": 1}, {"product_id": p1.id, "quantity": 0}],
            )

    def test_unknown_client_is_not_found(self, db_session, business_a, stocked):
        p1, _ = stocked
        with pytest.raises(NotFoundError):
            create_invoice(
                business_id=business_a.id, client_id=987654, lines=[{"product_id": p1.id, "quantity": 1}]
            )
        assert _quantity(p1.id) == 10

    def test_other_tenants_client_is_not_found(self, db_session, business_a, client_b, stocked):
        p1, _ = stocked
        with pytest.raises(NotFoundError):
            create_invoice(
                business_id=business_a.id, client_id=client_b.id, lines=[{"product_id": p1.id, "quantity": 1}]
            )

    @pytest.mark.parametrize("rate", [-1, 10001, "abc"])
    def test_bad_tax_rate_rejected(self, db_session, business_a, client_a, stocked, rate):
        p1, _ = stocked
        with pytest.raises(ValidationError):
            create_invoice(
                business_id=business_a.id,
                client_id=client_a.id,
                lines=[{"product_id": p1.id, "quantity": 1}],
                tax_rate_bps=rate,
            )

    def test_bad_status_rejected(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        with pytest.raises(ValidationError):
            create_invoice(
                business_id=business_a.id,
                client_id=client_a.id,
                lines=[{"product_id": p1.id, "quantity": 1}],
                status="REFUNDED",
            )


class TestInvoiceNumbering:
    def test_numbers_are_sequential_and_formatted(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        numbers = [
            create_invoice(
                business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
            ).invoice_number
            for _ in range(3)
        ]
        assert numbers == [f"FACT-{_month()}-00{i}" for i in (1, 2, 3)]

    def test_generate_never_repeats(self, db_session, business_a):
        numbers = [generate_invoice_number(business_id=business_a.id) for _ in range(25)]
        assert len(set(numbers)) == 25
        assert all(re.fullmatch(r"FACT-\d{6}-\d{3}", n) for n in numbers)

    def test_each_business_has_its_own_counter(self, db_session, business_a, business_b):
        assert generate_invoice_number(business_id=business_a.id).endswith("-001")
        assert generate_invoice_number(business_id=business_a.id).endswith("-002")
        assert generate_invoice_number(business_id=business_b.id).endswith("-001")

    def test_supplied_number_is_used(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 1}],
            invoice_number="  MANUAL-7 ",
        )
        assert invoice.invoice_number == "MANUAL-7"

    def test_duplicate_supplied_number_conflicts(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        first = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        with pytest.raises(ConflictError):
            create_invoice(
                business_id=business_a.id,
                client_id=client_a.id,
                lines=[{"product_id": p1.id, "quantity": 1}],
                invoice_number=first.invoice_number,
            )
        assert _quantity(p1.id) == 9

    def test_generated_numbers_skip_manually_used_values(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 1}],
            invoice_number=f"FACT-{_month()}-001",
        )
        second = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        assert second.invoice_number == f"FACT-{_month()}-002"

    def test_update_changes_number(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        first = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        second = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )

        updated = update_invoice(business_id=business_a.id, invoice_id=second.id, invoice_number=" MANUAL-9 ")
        assert updated.invoice_number == "MANUAL-9"

        # Keeping its own number is not a conflict
        update_invoice(business_id=business_a.id, invoice_id=second.id, invoice_number="MANUAL-9")

        with pytest.raises(ConflictError):
            update_invoice(business_id=business_a.id, invoice_id=second.id, invoice_number=first.invoice_number)
        assert db.session.get(Invoice, second.id, populate_existing=True).invoice_number == "MANUAL-9"

        with pytest.raises(ValidationError):
            update_invoice(business_id=business_a.id, invoice_id=second.id, invoice_number=42)


class TestTaxRounding:
    @pytest.mark.parametrize("subtotal,bps,enabled,expected", [
        (2000, 2000, True, 400),
        (1, 5000, True, 1),
        (3, 1500, True, 0),
        (10, 2050, True, 2),
        (999, 2000, False, 0),
    ])
    def test_compute_tax_rounds_half_up(self, subtotal, bps, enabled, expected):
        assert compute_tax(subtotal, bps, enabled) == expected


class TestStatusTransitions:
    @pytest.fixture
    def invoice(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        return create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )

    @pytest.mark.parametrize("path", [
        ["PAID"],
        ["PENDING"],
        ["PENDING", "PAID"],
        ["PENDING", "UNPAID"],
        ["PAID", "UNPAID"],
    ])
    def test_allowed_paths(self, business_a, invoice, path):
        for status in path:
            updated = update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status=status)
        assert updated.status == path[-1]

    def test_paid_to_pending_is_rejected(self, business_a, invoice):
        update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status="PAID")
        with pytest.raises(ValidationError):
            update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status="PENDING")

    def test_same_status_is_a_no_op(self, business_a, invoice):
        version = invoice.version_id
        updated = update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status="UNPAID")
        assert updated.status == "UNPAID"
        assert updated.version_id == version

    def test_unknown_status_rejected(self, business_a, invoice):
        with pytest.raises(ValidationError):
            update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status="LOST")

    def test_status_change_does_not_touch_stock(self, business_a, invoice, stocked):
        p1, _ = stocked
        update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status="PAID")
        assert _quantity(p1.id) == 9

    def test_other_tenant_cannot_change_status(self, business_b, invoice):
        with pytest.raises(NotFoundError):
            update_invoice_status(business_id=business_b.id, invoice_id=invoice.id, new_status="PAID")


class TestInvoiceEdits:
    def test_add_line_moves_stock_and_totals(self, db_session, business_a, client_a, stocked):
        p1, p2 = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 2}],
            tax_rate_bps=2000,
        )

        updated = add_invoice_line(business_id=business_a.id, invoice_id=invoice.id, product_id=p2.id, quantity=1)

        assert updated.subtotal_cents == 2000
        assert updated.total_cents == 2400
        assert _quantity(p2.id) == 9

    def test_add_line_insufficient_stock(self, db_session, business_a, client_a, stocked):
        p1, p2 = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        with pytest.raises(InsufficientStockError):
            add_invoice_line(business_id=business_a.id, invoice_id=invoice.id, product_id=p2.id, quantity=50)
        assert db.session.get(Invoice, invoice.id, populate_existing=True).subtotal_cents == 500

    def test_update_replaces_lines_with_compensating_returns(self, db_session, business_a, client_a, stocked):
        p1, p2 = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 4}],
            tax_enabled=False,
        )
        assert _quantity(p1.id) == 6

        updated = update_invoice(
            business_id=business_a.id,
            invoice_id=invoice.id,
            lines=[{"product_id": p1.id, "quantity": 1}, {"product_id": p2.id, "quantity": 2}],
        )

        assert _quantity(p1.id) == 9
        assert _quantity(p2.id) == 8
        assert updated.subtotal_cents == 1 * 500 + 2 * 1000

        rows = (
            db.session.query(StockTransaction)
            .filter_by(invoice_id=invoice.id)
            .order_by(StockTransaction.id)
            .all()
        )
        assert [r.type for r in rows] == ["SALE", "RETURN", "SALE", "SALE"]
        assert rows[1].reverses_transaction_id == rows[0].id

    def test_update_only_needs_net_stock(self, db_session, business_a, client_a, stocked):
        """10 in stock, 10 on the invoice: raising the line to 12 needs 2 more, which are missing."""
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 10}]
        )
        assert _quantity(p1.id) == 0

        # Same quantity again needs nothing extra
        update_invoice(business_id=business_a.id, invoice_id=invoice.id,
                       lines=[{"product_id": p1.id, "quantity": 10}])
        assert _quantity(p1.id) == 0

        with pytest.raises(InsufficientStockError) as exc:
            update_invoice(business_id=business_a.id, invoice_id=invoice.id,
                           lines=[{"product_id": p1.id, "quantity": 12}])
        assert exc.value.details["items"][0]["requested"] == 2
        assert _quantity(p1.id) == 0

    def test_update_header_fields(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 2}]
        )
        updated = update_invoice(
            business_id=business_a.id, invoice_id=invoice.id, tax_rate_bps=1000, status="PENDING"
        )
        assert updated.tax_cents == 100
        assert updated.total_cents == 1100
        assert updated.status == "PENDING"

        updated = update_invoice(business_id=business_a.id, invoice_id=invoice.id, tax_enabled=False)
        assert updated.total_cents == 1000


class TestCancelInvoice:
    def test_cancel_restores_stock_and_keeps_history(self, db_session, business_a, client_a, stocked):
        p1, p2 = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 2}, {"product_id": p2.id, "quantity": 1}],
        )

        cancelled = cancel_invoice(business_id=business_a.id, invoice_id=invoice.id, reason="Customer returned")

        assert cancelled.voided_at is not None
        assert cancelled.void_reason == "Customer returned"
        assert cancelled.subtotal_cents == 0
        assert cancelled.total_cents == 0
        assert _quantity(p1.id) == 10
        assert _quantity(p2.id) == 10

        types = [t.type for t in db.session.query(StockTransaction).filter_by(invoice_id=invoice.id)]
        assert sorted(types) == ["RETURN", "RETURN", "SALE", "SALE"]

    def test_cancel_twice_rejected(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        cancel_invoice(business_id=business_a.id, invoice_id=invoice.id)
        with pytest.raises(ValidationError):
            cancel_invoice(business_id=business_a.id, invoice_id=invoice.id)
        assert _quantity(p1.id) == 10

    def test_cancelled_invoice_is_frozen(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        cancel_invoice(business_id=business_a.id, invoice_id=invoice.id)

        with pytest.raises(ValidationError):
            update_invoice_status(business_id=business_a.id, invoice_id=invoice.id, new_status="PAID")
        with pytest.raises(ValidationError):
            add_invoice_line(business_id=business_a.id, invoice_id=invoice.id, product_id=p1.id, quantity=1)
        with pytest.raises(ValidationError):
            update_invoice(business_id=business_a.id, invoice_id=invoice.id, tax_enabled=False)

    def test_cancel_after_edit_returns_only_active_lines(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 3}]
        )
        update_invoice(business_id=business_a.id, invoice_id=invoice.id,
                       lines=[{"product_id": p1.id, "quantity": 5}])
        assert _quantity(p1.id) == 5

        cancel_invoice(business_id=business_a.id, invoice_id=invoice.id)
        assert _quantity(p1.id) == 10

    @pytest.mark.parametrize("reason", [5, ["wrong"], "x" * 256])
    def test_reason_must_be_short_text(self, db_session, business_a, client_a, stocked, reason):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        with pytest.raises(ValidationError):
            cancel_invoice(business_id=business_a.id, invoice_id=invoice.id, reason=reason)
        assert db.session.get(Invoice, invoice.id, populate_existing=True).voided_at is None
        assert _quantity(p1.id) == 9

    def test_blank_reason_stored_as_null(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        cancelled = cancel_invoice(business_id=business_a.id, invoice_id=invoice.id, reason="   ")
        assert cancelled.void_reason is None


class TestInvoiceQueries:
    def test_get_invoice_detail(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 2}]
        )

        detail = get_invoice(business_id=business_a.id, invoice_id=invoice.id)

        assert detail["invoice_number"] == invoice.invoice_number
        assert detail["business"]["name"] == "Alpha Pharmacy"
        assert detail["client"]["name"] == "Jane Customer"
        assert detail["transaction_count"] == 1
        assert detail["lines"][0]["product_name"] == "P1"
        assert detail["lines"][0]["subtotal_cents"] == 1000

    def test_detail_after_edit_lists_current_lines(self, db_session, business_a, client_a, stocked):
        p1, p2 = stocked
        invoice = create_invoice(
            business_id=business_a.id,
            client_id=client_a.id,
            lines=[{"product_id": p1.id, "quantity": 4}],
            tax_enabled=False,
        )
        update_invoice(
            business_id=business_a.id,
            invoice_id=invoice.id,
            lines=[{"product_id": p1.id, "quantity": 1}, {"product_id": p2.id, "quantity": 1}],
        )

        detail = get_invoice(business_id=business_a.id, invoice_id=invoice.id)

        assert [(ln["type"], ln["product_id"], ln["quantity"]) for ln in detail["lines"]] == [
            ("SALE", p1.id, 1),
            ("SALE", p2.id, 1),
        ]
        assert sum(ln["subtotal_cents"] for ln in detail["lines"]) == detail["subtotal_cents"] == 1500
        assert detail["transaction_count"] == 2
        assert [h["type"] for h in detail["history"]] == ["SALE", "RETURN", "SALE", "SALE"]

    def test_detail_after_cancel_has_no_lines(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 2}]
        )
        cancel_invoice(business_id=business_a.id, invoice_id=invoice.id)

        detail = get_invoice(business_id=business_a.id, invoice_id=invoice.id)

        assert detail["lines"] == []
        assert detail["transaction_count"] == 0
        assert len(detail["history"]) == 2

    def test_list_invoices_filters_and_hides_voided(self, db_session, business_a, client_a, stocked):
        p1, _ = stocked
        kept = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        voided = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        cancel_invoice(business_id=business_a.id, invoice_id=voided.id)
        update_invoice_status(business_id=business_a.id, invoice_id=kept.id, new_status="PAID")

        result = list_invoices(business_id=business_a.id)
        assert [i["id"] for i in result["items"]] == [kept.id]

        result = list_invoices(business_id=business_a.id, include_voided=True)
        assert {i["id"] for i in result["items"]} == {kept.id, voided.id}

        assert list_invoices(business_id=business_a.id, status="UNPAID")["count"] == 0

        page = list_invoices(business_id=business_a.id, include_voided=True, page=1, per_page=1)
        assert page["count"] == 1
        assert page["pagination"]["total"] == 2
        assert page["pagination"]["has_next"] is True

    def test_other_tenant_cannot_read_invoice(self, db_session, business_a, business_b, client_a, stocked):
        p1, _ = stocked
        invoice = create_invoice(
            business_id=business_a.id, client_id=client_a.id, lines=[{"product_id": p1.id, "quantity": 1}]
        )
        with pytest.raises(NotFoundError):
            get_invoice(business_id=business_b.id, invoice_id=invoice.id)
        assert list_invoices(business_id=business_b.id)["count"] == 0
