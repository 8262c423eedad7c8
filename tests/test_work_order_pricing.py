"""Tests for work order totals and window replacement."""

from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.services import work_orders as work_order_service
from app.services.common import utcnow


class TestTotals:
    def test_subtotal_sums_every_tool(self, work_order):
        assert work_order_service.calculate_subtotal(work_order) == Decimal("100.00")

    def test_recalculate_applies_vat(self, work_order):
        work_order_service.recalculate_totals(work_order, vat_rate=0.2)
        assert work_order.total_vat_excluded_price == Decimal("100.00")
        assert work_order.total_vat_included_price == Decimal("120.00")

    def test_recalculate_sets_grand_total(self, work_order):
        work_order.grand_total = Decimal("5.00")
        work_order_service.recalculate_totals(work_order, vat_rate=0.2)
        assert work_order.grand_total == Decimal("120.00")
        assert work_order.grand_total == work_order.total_vat_included_price

    def test_recalculate_rounds_half_up(self, work_order_factory):
        work_order = work_order_factory(windows=[("Hall", [("Seal", "10.05")])])
        work_order_service.recalculate_totals(work_order, vat_rate=0.25)
        assert work_order.total_vat_included_price == Decimal("12.56")

    def test_empty_work_order_totals_zero(self, work_order_factory):
        work_order = work_order_factory()
        work_order_service.recalculate_totals(work_order)
        assert work_order.total_vat_excluded_price == Decimal("0.00")
        assert work_order.total_vat_included_price == Decimal("0.00")

    def test_vat_amount(self, work_order):
        work_order_service.recalculate_totals(work_order, vat_rate=0.2)
        assert work_order_service.vat_amount(work_order) == Decimal("20.00")

    def test_vat_amount_without_totals(self, work_order):
        assert work_order_service.vat_amount(work_order) == Decimal("0")


class TestReplaceWindows:
    def test_replaces_windows_and_tools(self, db_session, work_order):
        created = work_order_service.replace_windows(
            db_session,
            work_order,
            [
                {"location": "Loft", "items": ["Clean", "Seal"], "prices": [5, 7], "image_url": "https://cdn/l.jpg"},
            ],
        )
        db_session.commit()
        db_session.refresh(work_order)

        assert len(created) == 1
        assert [w.location for w in work_order.windows] == ["Loft"]
        loft = work_order.windows[0]
        assert [tool.name for tool in loft.tools] == ["Clean", "Seal"]
        assert [tool.price for tool in loft.tools] == [Decimal("5.00"), Decimal("7.00")]
        assert loft.effective_image_url == "https://cdn/l.jpg"

    def test_empty_list_clears_windows(self, db_session, work_order):
        work_order_service.replace_windows(db_session, work_order, [])
        db_session.commit()
        db_session.refresh(work_order)
        assert work_order.windows == []


class TestGetWorkOrder:
    def test_returns_work_order(self, db_session, work_order):
        assert work_order_service.get_work_order(db_session, str(work_order.id)) is work_order

    def test_missing_raises_404(self, db_session):
        with pytest.raises(HTTPException) as exc:
            work_order_service.get_work_order(db_session, "not-a-uuid")
        assert exc.value.status_code == 404

    def test_soft_deleted_raises_404(self, db_session, work_order):
        work_order.deleted_at = utcnow()
        db_session.commit()
        with pytest.raises(HTTPException) as exc:
            work_order_service.get_work_order(db_session, str(work_order.id))
        assert exc.value.detail == "Work order not found"
