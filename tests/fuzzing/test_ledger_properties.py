"""
Hypothesis-based property tests for the points ledger.

Pure properties:
- Base points are monotone in spend and match spend / point_value within
  half a point
- Every request variant either constructs or raises InvalidRequestError

Database properties (few examples, real engine):
- For any sequence of operations, every account's stored balance equals
  the balance rebuilt from the ledger and reserved points equal the
  pending redemptions
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from points_kernel.domain.promotions import base_points
from points_kernel.domain.requests import parse_request
from points_kernel.exceptions import ConflictError, InvalidRequestError, PointsKernelError

spend_values = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

point_values = st.sampled_from([Decimal("0.25"), Decimal("0.5"), Decimal("1"), Decimal("0.1")])

junk = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10**6, max_value=10**6),
    st.floats(allow_nan=True, allow_infinity=True),
    st.text(max_size=10),
    st.lists(st.integers(), max_size=3),
)


class TestBasePointsProperties:

    @given(spent=spend_values, point_value=point_values)
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_within_half_point(self, spent, point_value):
        exact = spent / point_value
        assert abs(Decimal(base_points(spent, point_value)) - exact) <= Decimal("0.5")

    @given(a=spend_values, b=spend_values, point_value=point_values)
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_monotone(self, a, b, point_value):
        lo, hi = sorted((a, b))
        assert base_points(lo, point_value) <= base_points(hi, point_value)


class TestRequestParsingProperties:

    @given(
        tag=st.sampled_from(["purchase", "adjustment", "transfer", "redemption", "event", "bogus"]),
        fields=st.dictionaries(
            st.one_of(
                st.sampled_from(
                    ["beneficiary", "recipient", "spent", "amount", "related_id",
                     "event_id", "promotion_ids", "remark", "extra"]
                ),
                st.integers(min_value=0, max_value=3),
            ),
            junk,
            max_size=5,
        ),
    )
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_parse_never_raises_untyped(self, tag, fields):
        try:
            parse_request({"type": tag, **fields})
        except InvalidRequestError:
            pass


OPERATIONS = st.lists(
    st.tuples(
        st.sampled_from(["purchase", "transfer", "redeem", "fulfil", "adjust", "flag", "unflag"]),
        st.integers(min_value=1, max_value=120),
    ),
    min_size=1,
    max_size=12,
)


class TestLedgerConservation:

    @given(ops=OPERATIONS)
    @settings(
        max_examples=15,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_balances_always_reconstructable(self, ops, ledger, make_account, account_state, read):
        cashier = make_account(role="cashier")
        manager = make_account(role="manager")
        alice = make_account(points=50)
        bob = make_account(points=50)
        anchor = read(lambda sel: sel.transactions_for_account(alice))[0].id
        pending: list[int] = []
        flagged: list[int] = []

        for kind, n in ops:
            try:
                if kind == "purchase":
                    tx = ledger.purchase(cashier, "cashier", alice, Decimal(n) / 4).record
                    flagged.append(tx.id)
                elif kind == "transfer":
                    ledger.transfer(alice, "regular", bob, n)
                elif kind == "redeem":
                    pending.append(ledger.request_redemption(bob, "regular", n).record.id)
                elif kind == "fulfil" and pending:
                    ledger.process_redemption(cashier, "cashier", pending.pop(0))
                elif kind == "adjust":
                    ledger.adjust(manager, "manager", bob, n - 60, related_id=anchor)
                elif kind == "flag" and flagged:
                    ledger.set_transaction_suspicious(manager, "manager", flagged[-1], True)
                elif kind == "unflag" and flagged:
                    ledger.set_transaction_suspicious(manager, "manager", flagged[-1], False)
            except ConflictError:
                pytest.fail("unexpected conflict in a single-threaded run")
            except PointsKernelError:
                pass

        for account in (alice, bob):
            check = read(lambda sel: sel.verify_balance(account))
            assert check.matches, check
            state = account_state(account)
            assert read(lambda sel: sel.computed_reserved(account)) == state.reserved_points
