"""
Tests for monthly report aggregation (parts_ledger/engines/period_report.py).

The property test replays a random purchase/sale history through the FIFO
planner, then checks that every month reconciles and that each month's
ending quantity is the next month's starting quantity.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from parts_ledger.domain.periods import LedgerPeriod
from parts_ledger.engines.fifo import BatchLayer, plan_fifo_allocation
from parts_ledger.engines.period_report import (
    BatchSnapshot,
    ProductSnapshot,
    SaleSnapshot,
    aggregate_period,
)
from parts_ledger.exceptions import InsufficientStockError

JAN = LedgerPeriod(2025, 1)
FEB = LedgerPeriod(2025, 2)


def _product(sku="BRK-001", category="Brakes"):
    return ProductSnapshot(product_id=uuid4(), sku=sku, name=f"Part {sku}", category=category)


def _batch(product, purchase_date, initial, current, price, seq):
    return BatchSnapshot(
        batch_id=uuid4(),
        product_id=product.product_id,
        purchase_date=purchase_date,
        receipt_seq=seq,
        purchase_price=Decimal(price),
        initial_quantity=initial,
        current_quantity=current,
        supplier="Acme",
    )


def _sale(product, batch, quantity, price, sale_date):
    return SaleSnapshot(
        product_id=product.product_id,
        batch_id=batch.batch_id,
        quantity=quantity,
        sale_price=Decimal(price),
        purchase_price=batch.purchase_price,
        sale_date=sale_date,
    )


class TestAggregatePeriod:
    def test_january_scenario(self):
        p = _product()
        b1 = _batch(p, date(2025, 1, 2), 10, 0, "3.00", 1)
        b2 = _batch(p, date(2025, 1, 12), 5, 3, "4.00", 2)
        sales = [
            _sale(p, b1, 4, "5.00", date(2025, 1, 10)),
            _sale(p, b1, 6, "5.00", date(2025, 1, 20)),
            _sale(p, b2, 2, "5.00", date(2025, 1, 20)),
        ]

        figures = aggregate_period(JAN, [p], [b1, b2], sales)
        line = figures.products[0]

        assert line.starting_quantity == 0
        assert line.purchased_quantity == 15
        assert line.sold_quantity == 12
        assert line.ending_quantity == 3
        assert line.revenue == Decimal("60.00")
        assert line.cost == Decimal("38.00")
        assert line.profit == Decimal("22.00")
        assert line.ending_inventory_value == Decimal("12.00")
        assert figures.mismatches == ()
        assert figures.average_profit_margin == Decimal("0.366667")

    def test_payload_shape(self):
        p = _product()
        b1 = _batch(p, date(2025, 1, 2), 10, 6, "3.00", 1)
        payload = aggregate_period(
            JAN, [p], [b1], [_sale(p, b1, 4, "5.00", date(2025, 1, 10))]
        ).to_payload()

        assert payload["year"] == 2025
        assert payload["month"] == 1
        assert payload["startDate"] == "2025-01-01"
        assert payload["endDate"] == "2025-01-31"
        assert payload["totalRevenue"] == "20.00"
        assert payload["totalProfit"] == "8.00"
        assert payload["averageProfitMargin"] == "0.400000"
        assert payload["endingInventoryValue"] == "18.00"

        line = payload["products"][0]
        assert line["productId"] == str(p.product_id)
        assert line["category"] == "Brakes"
        assert line["endingQuantity"] == 6
        assert line["profitMargin"] == "0.400000"
        assert line["batches"] == [
            {
                "batchId": str(b1.batch_id),
                "purchaseDate": "2025-01-02",
                "purchasePrice": "3.00",
                "initialQuantity": 10,
                "remainingQuantity": 6,
                "supplier": "Acme",
            }
        ]

    def test_later_activity_ignored(self):
        """Rebuilding January after February postings gives January's figures."""
        p = _product()
        b1 = _batch(p, date(2025, 1, 2), 10, 1, "3.00", 1)
        b2 = _batch(p, date(2025, 2, 3), 4, 4, "3.50", 2)
        sales = [
            _sale(p, b1, 4, "5.00", date(2025, 1, 10)),
            _sale(p, b1, 5, "5.00", date(2025, 2, 10)),
        ]

        jan = aggregate_period(JAN, [p], [b1, b2], sales).products[0]
        assert jan.purchased_quantity == 10
        assert jan.sold_quantity == 4
        assert jan.ending_quantity == 6
        assert jan.reconciles

        feb = aggregate_period(FEB, [p], [b1, b2], sales).products[0]
        assert feb.starting_quantity == 6
        assert feb.purchased_quantity == 4
        assert feb.sold_quantity == 5
        assert feb.ending_quantity == 5

    def test_carried_forward_overrides_history(self):
        p = _product()
        b1 = _batch(p, date(2025, 1, 2), 10, 10, "3.00", 1)

        figures = aggregate_period(FEB, [p], [b1], [], carried_forward={p.product_id: 9})

        line = figures.products[0]
        assert line.starting_quantity == 9
        assert line.batch_ending_quantity == 10
        assert not line.reconciles
        assert figures.mismatches == (
            {
                "productId": str(p.product_id),
                "sku": p.sku,
                "endingQuantity": 9,
                "batchQuantity": 10,
            },
        )

    def test_no_sales_gives_zero_margin(self):
        p = _product()
        b1 = _batch(p, date(2025, 1, 2), 3, 3, "0", 1)

        payload = aggregate_period(JAN, [p], [b1], []).to_payload()

        assert payload["averageProfitMargin"] == "0.000000"
        assert payload["products"][0]["profitMargin"] == "0.000000"
        assert payload["endingInventoryValue"] == "0.00"

    def test_products_sorted_by_sku_and_idle_products_listed(self):
        a = _product("AAA-1")
        z = _product("ZZZ-9")
        figures = aggregate_period(JAN, [z, a], [], [])

        assert [line.product.sku for line in figures.products] == ["AAA-1", "ZZZ-9"]
        assert figures.total_ending == 0

    def test_identical_inputs_identical_payload(self):
        p = _product()
        b1 = _batch(p, date(2025, 1, 2), 10, 6, "3.00", 1)
        sales = [_sale(p, b1, 4, "5.00", date(2025, 1, 10))]

        first = aggregate_period(JAN, [p], [b1], sales).to_payload()
        second = aggregate_period(JAN, [p], [b1], list(reversed(sales))).to_payload()
        assert first == second


events = st.lists(
    st.one_of(
        st.tuples(
            st.just("buy"),
            st.integers(min_value=0, max_value=89),
            st.integers(min_value=1, max_value=20),
            st.integers(min_value=0, max_value=900),
        ),
        st.tuples(
            st.just("sell"),
            st.integers(min_value=0, max_value=89),
            st.integers(min_value=1, max_value=15),
            st.integers(min_value=1, max_value=1500),
        ),
    ),
    max_size=40,
)


class TestAggregationProperties:
    @settings(max_examples=150, deadline=None)
    @given(history=events)
    def test_months_reconcile_and_chain(self, history):
        product = _product()
        start = date(2025, 1, 1)

        batches: dict = {}
        remaining: dict = {}
        sales: list[SaleSnapshot] = []
        seq = 0

        # Purchases before sales on the same day
        ordered = sorted(history, key=lambda e: (e[1], 0 if e[0] == "buy" else 1))
        for kind, offset, quantity, cents in ordered:
            when = start + timedelta(days=offset)
            if kind == "buy":
                seq += 1
                snapshot = _batch(product, when, quantity, quantity, Decimal(cents) / 100, seq)
                batches[snapshot.batch_id] = snapshot
                remaining[snapshot.batch_id] = quantity
                continue
            layers = [
                BatchLayer(b.batch_id, b.purchase_date, b.receipt_seq, b.purchase_price,
                           remaining[b.batch_id])
                for b in batches.values()
            ]
            try:
                plan = plan_fifo_allocation(product.product_id, layers, quantity)
            except InsufficientStockError:
                continue
            for a in plan.allocations:
                remaining[a.batch_id] -= a.quantity
                sales.append(
                    SaleSnapshot(
                        product_id=product.product_id,
                        batch_id=a.batch_id,
                        quantity=a.quantity,
                        sale_price=Decimal(cents) / 100,
                        purchase_price=a.unit_cost,
                        sale_date=when,
                    )
                )

        final = [
            BatchSnapshot(
                batch_id=b.batch_id,
                product_id=b.product_id,
                purchase_date=b.purchase_date,
                receipt_seq=b.receipt_seq,
                purchase_price=b.purchase_price,
                initial_quantity=b.initial_quantity,
                current_quantity=remaining[b.batch_id],
            )
            for b in batches.values()
        ]

        previous_ending = 0
        period = LedgerPeriod(2025, 1)
        for _ in range(3):
            figures = aggregate_period(period, [product], final, sales)
            line = figures.products[0]

            assert figures.mismatches == ()
            assert line.starting_quantity == previous_ending
            assert line.ending_quantity == (
                line.starting_quantity + line.purchased_quantity - line.sold_quantity
            )
            assert line.ending_quantity >= 0
            assert line.profit == line.revenue - line.cost

            previous_ending = line.ending_quantity
            period = period.next()

        assert previous_ending == sum(remaining.values())
