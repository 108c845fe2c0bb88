# Overview: Pytest coverage for the sale engine: atomic creation, price snapshots and reads.

from datetime import date, datetime
from decimal import Decimal

import pytest

from bakery_pos.extensions import db
from bakery_pos.models import Sale, SaleItem
from bakery_pos.services import product_service, sales_service, stock_service
from bakery_pos.services.sales_service import (
    CreateSaleRequest,
    EmptyBasket,
    PaymentMethodNotFound,
    SaleItemRequest,
)
from bakery_pos.services.stock_service import InsufficientStock, InvalidQuantity, ProductNotFound
from bakery_pos.validation import ValidationError


def _sale_count() -> int:
    return db.session.query(Sale).count()


def _item_count() -> int:
    return db.session.query(SaleItem).count()


class TestCreateSale:

    def test_commits_sale_items_and_stock(self, cash_method, bread, croissant):
        sale = sales_service.create_sale(
            cash_method.id,
            [SaleItemRequest(bread.id, 2), SaleItemRequest(croissant.id, 3)],
        )

        assert sale.id is not None
        assert sale.payment_method_id == cash_method.id
        assert sale.subtotal == Decimal("306.50")
        assert sale.total == Decimal("306.50")
        assert [(i.product_id, i.quantity) for i in sale.items] == [(bread.id, 2), (croissant.id, 3)]
        assert sale.items[0].unit_price == Decimal("100.00")
        assert sale.items[0].line_subtotal == Decimal("200.00")
        assert sale.items[1].line_subtotal == Decimal("106.50")
        assert sum(i.line_subtotal for i in sale.items) == sale.total

        assert stock_service.get_stock(bread.id).quantity == 8
        assert stock_service.get_stock(croissant.id).quantity == 2

    def test_accepts_plain_pairs(self, cash_method, bread):
        sale = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        assert sale.total == Decimal("100.00")

    def test_to_dict_serializes_money_as_strings(self, cash_method, croissant):
        sale = sales_service.create_sale(cash_method.id, [(croissant.id, 2)])

        data = sale.to_dict()

        assert data["total"] == "71.00"
        assert data["subtotal"] == "71.00"
        assert data["items"][0]["unit_price"] == "35.50"
        assert data["items"][0]["line_subtotal"] == "71.00"

    def test_empty_basket(self, cash_method):
        with pytest.raises(EmptyBasket) as exc_info:
            sales_service.create_sale(cash_method.id, [])
        assert isinstance(exc_info.value, ValidationError)
        assert _sale_count() == 0

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity(self, cash_method, bread, quantity):
        with pytest.raises(InvalidQuantity):
            sales_service.create_sale(cash_method.id, [(bread.id, quantity)])
        assert stock_service.get_stock(bread.id).quantity == 10

    def test_unknown_payment_method(self, bread):
        with pytest.raises(PaymentMethodNotFound) as exc_info:
            sales_service.create_sale(424242, [(bread.id, 1)])
        assert exc_info.value.payment_method_id == 424242
        assert _sale_count() == 0

    def test_unknown_product_names_offender(self, cash_method, bread):
        with pytest.raises(ProductNotFound) as exc_info:
            sales_service.create_sale(cash_method.id, [(bread.id, 1), (987654, 1)])

        assert exc_info.value.product_id == 987654
        assert stock_service.get_stock(bread.id).quantity == 10
        assert _sale_count() == 0

    def test_insufficient_stock_on_later_item_rolls_back_everything(self, cash_method, bread, croissant):
        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.create_sale(cash_method.id, [(bread.id, 4), (croissant.id, 6)])

        err = exc_info.value
        assert err.product_id == croissant.id
        assert err.available == 5
        assert err.requested == 6

        assert stock_service.get_stock(bread.id).quantity == 10
        assert stock_service.get_stock(croissant.id).quantity == 5
        assert _sale_count() == 0
        assert _item_count() == 0

    def test_product_without_stock_record_cannot_be_sold(self, cash_method, product_factory):
        product = product_factory("Torta", "5000.00")

        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.create_sale(cash_method.id, [(product.id, 1)])

        assert exc_info.value.available == 0
        assert _sale_count() == 0

    def test_repeated_product_lines_share_stock(self, cash_method, croissant):
        sale = sales_service.create_sale(cash_method.id, [(croissant.id, 2), (croissant.id, 3)])

        assert len(sale.items) == 2
        assert sale.total == Decimal("177.50")
        assert stock_service.get_stock(croissant.id).quantity == 0

    def test_repeated_product_lines_checked_together(self, cash_method, croissant):
        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.create_sale(cash_method.id, [(croissant.id, 3), (croissant.id, 3)])

        assert exc_info.value.requested == 6
        assert stock_service.get_stock(croissant.id).quantity == 5
        assert _sale_count() == 0

    def test_price_snapshot_survives_price_change(self, cash_method, bread):
        sale = sales_service.create_sale(cash_method.id, [(bread.id, 3)])
        sale_id = sale.id

        product_service.set_unit_price(bread.id, "150.00")
        db.session.expire_all()

        stored = sales_service.get_sale(sale_id)
        assert stored.total == Decimal("300.00")
        assert stored.items[0].unit_price == Decimal("100.00")
        assert sum(i.unit_price * i.quantity for i in stored.items) == stored.total

        newer = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        assert newer.total == Decimal("150.00")

    def test_from_request(self, cash_method, bread):
        request = CreateSaleRequest.from_dict({
            "payment_method_id": str(cash_method.id),
            "items": [{"product_id": bread.id, "quantity": "2"}],
        })

        sale = sales_service.create_sale_from_request(request)

        assert sale.total == Decimal("200.00")

    @pytest.mark.parametrize("payload", [
        {"items": []},
        {"payment_method_id": 1, "items": "nope"},
        {"payment_method_id": 1, "items": [{"product_id": 1, "quantity": 1.5}]},
        {"payment_method_id": 1, "items": [5]},
    ])
    def test_request_shape_validation(self, payload):
        with pytest.raises(ValidationError):
            CreateSaleRequest.from_dict(payload)


class TestSaleReads:

    def test_get_missing_is_none(self, db_session):
        assert sales_service.get_sale(123456) is None

    def test_list_sales_most_recent_first(self, cash_method, bread, clock):
        first = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.advance(minutes=5)
        second = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.advance(minutes=5)
        third = sales_service.create_sale(cash_method.id, [(bread.id, 1)])

        assert [s.id for s in sales_service.list_sales()] == [third.id, second.id, first.id]

    def test_list_sales_by_date_uses_day_bounds(self, cash_method, bread, clock):
        clock.set(datetime(2026, 3, 13, 23, 59, 59))
        sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.set(datetime(2026, 3, 14, 0, 0, 0))
        start = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.set(datetime(2026, 3, 14, 18, 30, 0))
        late = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.set(datetime(2026, 3, 15, 0, 0, 0))
        sales_service.create_sale(cash_method.id, [(bread.id, 1)])

        sales = sales_service.list_sales_by_date(date(2026, 3, 14))

        assert [s.id for s in sales] == [late.id, start.id]

    def test_list_sales_by_date_in_store_timezone(self, app, cash_method, bread, clock, monkeypatch):
        monkeypatch.setitem(app.config, "STORE_TIMEZONE", "America/Argentina/Buenos_Aires")

        # 02:00 UTC on the 14th is still the 13th in Buenos Aires (UTC-3)
        clock.set(datetime(2026, 3, 14, 2, 0, 0))
        evening = sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.set(datetime(2026, 3, 14, 12, 0, 0))
        noon = sales_service.create_sale(cash_method.id, [(bread.id, 1)])

        assert [s.id for s in sales_service.list_sales_by_date(date(2026, 3, 13))] == [evening.id]
        assert [s.id for s in sales_service.list_sales_by_date(date(2026, 3, 14))] == [noon.id]

    def test_sales_stats_by_method(self, cash_method, card_method, bread, croissant, clock):
        sales_service.create_sale(cash_method.id, [(bread.id, 2)])
        sales_service.create_sale(card_method.id, [(croissant.id, 1)])
        sales_service.create_sale(cash_method.id, [(croissant.id, 1)])

        stats = sales_service.get_sales_stats(datetime(2026, 3, 14), datetime(2026, 3, 15))

        assert stats["total_count"] == 3
        assert stats["total_amount"] == Decimal("271.00")
        assert stats["by_method"] == {
            "Efectivo": Decimal("235.50"),
            "Débito": Decimal("35.50"),
        }

    def test_sales_stats_empty_window(self, db_session):
        stats = sales_service.get_sales_stats(datetime(2026, 1, 1), datetime(2026, 1, 2))
        assert stats == {"total_amount": Decimal("0.00"), "total_count": 0, "by_method": {}}

    def test_total_for_methods_is_inclusive_and_filtered(self, cash_method, card_method, bread, croissant, clock):
        start = clock()
        sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.advance(minutes=30)
        sales_service.create_sale(card_method.id, [(croissant.id, 1)])
        end = clock.advance(minutes=30)
        sales_service.create_sale(cash_method.id, [(croissant.id, 2)])
        clock.advance(seconds=1)
        sales_service.create_sale(cash_method.id, [(bread.id, 1)])

        assert sales_service.get_total_for_methods(start, end, [cash_method.id]) == Decimal("171.00")
        assert sales_service.get_total_for_methods(
            start, end, [cash_method.id, card_method.id]
        ) == Decimal("206.50")
        assert sales_service.get_total_for_methods(start, end, []) == Decimal("0.00")

    def test_sales_history_groups_by_day(self, cash_method, bread, clock):
        clock.set(datetime(2026, 3, 10, 10, 0, 0))
        sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.set(datetime(2026, 3, 12, 10, 0, 0))
        sales_service.create_sale(cash_method.id, [(bread.id, 1)])
        clock.set(datetime(2026, 3, 12, 16, 0, 0))
        sales_service.create_sale(cash_method.id, [(bread.id, 2)])
        clock.set(datetime(2026, 3, 14, 9, 0, 0))

        history = sales_service.get_sales_history(3)

        assert history == [{"date": "2026-03-12", "amount": Decimal("300.00")}]

    def test_sales_history_rejects_non_positive_days(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.get_sales_history(0)
