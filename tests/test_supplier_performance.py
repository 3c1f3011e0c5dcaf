import asyncio
from uuid import uuid4

import pytest

from restaurant_analytics.services.errors import ValidationError
from restaurant_analytics.services.record_store import InMemoryRecordStore


def test_delivery_performance(make_purchase_order, aggregator_for) -> None:
    supplier_id = uuid4()
    store = InMemoryRecordStore(
        purchase_orders=[
            make_purchase_order(supplier_id, total=120.0, delay_days=-1),
            make_purchase_order(supplier_id, total=80.5, delay_days=0),
            make_purchase_order(supplier_id, total=200.0, delay_days=2),
            make_purchase_order(supplier_id, total=99.5, delay_days=-3),
        ]
    )

    report = asyncio.run(aggregator_for(store).get_supplier_performance(str(supplier_id)))

    assert report.supplier_id == supplier_id
    assert report.delivery_performance.on_time_rate == pytest.approx(0.75)
    assert report.delivery_performance.avg_delivery_delay == pytest.approx(-0.5)
    assert report.order_statistics.total_orders == 4
    assert report.order_statistics.total_spent == pytest.approx(500)


def test_only_delivered_orders_of_the_supplier_count(make_purchase_order, aggregator_for) -> None:
    supplier_id = uuid4()
    store = InMemoryRecordStore(
        purchase_orders=[
            make_purchase_order(supplier_id, total=50.0, delay_days=1),
            make_purchase_order(supplier_id, total=70.0, status="ordered", delay_days=None),
            make_purchase_order(supplier_id, total=30.0, status="cancelled", delay_days=None),
            make_purchase_order(uuid4(), total=999.0, delay_days=-5),
        ]
    )

    report = asyncio.run(aggregator_for(store).get_supplier_performance(supplier_id))

    assert report.order_statistics.total_orders == 1
    assert report.order_statistics.total_spent == pytest.approx(50)
    assert report.delivery_performance.avg_delivery_delay == pytest.approx(1)
    assert report.delivery_performance.on_time_rate == 0


def test_delivered_orders_without_a_receipt_date_are_left_out_of_delays(make_purchase_order, aggregator_for) -> None:
    supplier_id = uuid4()
    store = InMemoryRecordStore(
        purchase_orders=[
            make_purchase_order(supplier_id, total=40.0, delay_days=0),
            make_purchase_order(supplier_id, total=60.0, delay_days=None),
        ]
    )

    report = asyncio.run(aggregator_for(store).get_supplier_performance(supplier_id))

    assert report.order_statistics.total_orders == 2
    assert report.delivery_performance.on_time_rate == 1
    assert report.delivery_performance.avg_delivery_delay == 0


def test_supplier_without_deliveries(aggregator_for) -> None:
    report = asyncio.run(aggregator_for(InMemoryRecordStore()).get_supplier_performance(uuid4()))

    assert report.delivery_performance.avg_delivery_delay == 0
    assert report.delivery_performance.on_time_rate == 0
    assert report.order_statistics.total_orders == 0
    assert report.order_statistics.total_spent == 0


def test_malformed_supplier_id_is_rejected(aggregator_for) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(aggregator_for(InMemoryRecordStore()).get_supplier_performance("supplier-7"))
