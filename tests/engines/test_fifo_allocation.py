"""
Tests for the FIFO allocation planner (parts_ledger/engines/fifo.py).

Example-based cases pin the ordering and tie-break rules; the property
tests check conservation and FIFO order over arbitrary batch sets.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from parts_ledger.engines.fifo import BatchLayer, plan_fifo_allocation
from parts_ledger.exceptions import InsufficientStockError, InvalidQuantityError

PRODUCT_ID = uuid4()


def _layer(purchase_date, available, unit_cost="1.00", receipt_seq=1):
    return BatchLayer(
        batch_id=uuid4(),
        purchase_date=purchase_date,
        receipt_seq=receipt_seq,
        unit_cost=Decimal(unit_cost),
        available=available,
    )


class TestPlanFifoAllocation:
    def test_single_batch_partial(self):
        layer = _layer(date(2025, 1, 2), 10, "3.00")
        plan = plan_fifo_allocation(PRODUCT_ID, [layer], 4)

        assert len(plan.allocations) == 1
        allocation = plan.allocations[0]
        assert allocation.batch_id == layer.batch_id
        assert allocation.quantity == 4
        assert allocation.unit_cost == Decimal("3.00")
        assert not allocation.depletes_batch
        assert plan.total_cost == Decimal("12.00")

    def test_spans_batches_oldest_first(self):
        newer = _layer(date(2025, 1, 12), 5, "4.00", receipt_seq=2)
        older = _layer(date(2025, 1, 2), 6, "3.00", receipt_seq=1)

        plan = plan_fifo_allocation(PRODUCT_ID, [newer, older], 8)

        assert [a.batch_id for a in plan.allocations] == [older.batch_id, newer.batch_id]
        assert [a.quantity for a in plan.allocations] == [6, 2]
        assert plan.allocations[0].depletes_batch
        assert plan.total_quantity == 8
        assert plan.total_cost == Decimal("26.00")

    def test_same_day_tie_broken_by_receipt_seq(self):
        second = _layer(date(2025, 1, 5), 3, "2.00", receipt_seq=8)
        first = _layer(date(2025, 1, 5), 3, "1.00", receipt_seq=7)

        plan = plan_fifo_allocation(PRODUCT_ID, [second, first], 4)

        assert [a.batch_id for a in plan.allocations] == [first.batch_id, second.batch_id]
        assert [a.quantity for a in plan.allocations] == [3, 1]

    def test_empty_batches_skipped(self):
        empty = _layer(date(2025, 1, 1), 0, receipt_seq=1)
        full = _layer(date(2025, 1, 3), 5, receipt_seq=2)

        plan = plan_fifo_allocation(PRODUCT_ID, [empty, full], 2)

        assert [a.batch_id for a in plan.allocations] == [full.batch_id]

    def test_exact_total_depletes_everything(self):
        layers = [_layer(date(2025, 1, d), 2, receipt_seq=d) for d in (1, 2, 3)]
        plan = plan_fifo_allocation(PRODUCT_ID, layers, 6)
        assert all(a.depletes_batch for a in plan.allocations)

    def test_insufficient_stock_rejects_whole_request(self):
        layers = [_layer(date(2025, 1, 2), 3), _layer(date(2025, 1, 3), 2, receipt_seq=2)]

        with pytest.raises(InsufficientStockError) as exc_info:
            plan_fifo_allocation(PRODUCT_ID, layers, 6)

        assert exc_info.value.requested == 6
        assert exc_info.value.available == 5
        assert exc_info.value.code == "INSUFFICIENT_STOCK"

    def test_no_batches_is_insufficient(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            plan_fifo_allocation(PRODUCT_ID, [], 1)
        assert exc_info.value.available == 0

    @pytest.mark.parametrize("quantity", [0, -1, 2.0, True])
    def test_invalid_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError):
            plan_fifo_allocation(PRODUCT_ID, [_layer(date(2025, 1, 2), 10)], quantity)


batch_sets = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=60),  # day offset
        st.integers(min_value=0, max_value=25),  # available
        st.integers(min_value=0, max_value=500),  # unit cost in cents
    ),
    min_size=1,
    max_size=12,
)


def _layers_from(layout):
    base = date(2025, 1, 1)
    return [
        BatchLayer(
            batch_id=uuid4(),
            purchase_date=base + timedelta(days=offset),
            receipt_seq=seq,
            unit_cost=Decimal(cents) / 100,
            available=available,
        )
        for seq, (offset, available, cents) in enumerate(layout, start=1)
    ]


class TestFifoProperties:
    @settings(max_examples=200)
    @given(layout=batch_sets, data=st.data())
    def test_conservation_and_order(self, layout, data):
        layers = _layers_from(layout)
        total = sum(layer.available for layer in layers)
        if total == 0:
            with pytest.raises(InsufficientStockError):
                plan_fifo_allocation(PRODUCT_ID, layers, 1)
            return

        quantity = data.draw(st.integers(min_value=1, max_value=total))
        plan = plan_fifo_allocation(PRODUCT_ID, layers, quantity)

        # Conservation
        assert plan.total_quantity == quantity
        assert all(a.quantity > 0 for a in plan.allocations)

        # Allocations follow the FIFO key and never exceed what a batch holds
        by_id = {layer.batch_id: layer for layer in layers}
        keys = [by_id[a.batch_id].fifo_key for a in plan.allocations]
        assert keys == sorted(keys)
        for a in plan.allocations:
            assert a.quantity <= by_id[a.batch_id].available
            assert a.unit_cost == by_id[a.batch_id].unit_cost

        # Every batch before the last one touched is emptied
        assert all(a.depletes_batch for a in plan.allocations[:-1])

        # No older batch with stock is skipped
        last_key = keys[-1]
        touched = {a.batch_id for a in plan.allocations}
        for layer in layers:
            if layer.available > 0 and layer.fifo_key < last_key:
                assert layer.batch_id in touched

    @settings(max_examples=100)
    @given(layout=batch_sets, excess=st.integers(min_value=1, max_value=50))
    def test_oversell_always_rejected(self, layout, excess):
        layers = _layers_from(layout)
        total = sum(layer.available for layer in layers)

        with pytest.raises(InsufficientStockError) as exc_info:
            plan_fifo_allocation(PRODUCT_ID, layers, total + excess)
        assert exc_info.value.available == total
