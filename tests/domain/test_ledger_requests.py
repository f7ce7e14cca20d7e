"""
Tests for request variants and parse_request().

These tests verify:
- Mappings with a ``type`` key become the matching frozen variant
- Structural validation rejects bad values with InvalidRequestError
- Unknown types, unknown fields and missing fields are rejected
"""

from decimal import Decimal

import pytest

from points_kernel.domain.requests import (
    AdjustmentRequest,
    EventAwardRequest,
    PurchaseRequest,
    RedemptionRequest,
    TransferRequest,
    parse_request,
)
from points_kernel.exceptions import InvalidRequestError


class TestParseRequest:
    """Dispatch from mapping to variant."""

    def test_purchase_mapping(self):
        req = parse_request({
            "type": "purchase",
            "beneficiary": "alice01",
            "spent": "40.00",
            "promotion_ids": [3, 1],
        })

        assert isinstance(req, PurchaseRequest)
        assert req.beneficiary == "alice01"
        assert req.spent == Decimal("40.00")
        assert req.promotion_ids == (3, 1)
        assert req.remark is None

    def test_each_type_dispatches(self):
        assert isinstance(
            parse_request({"type": "adjustment", "beneficiary": 1, "amount": -5, "related_id": 2}),
            AdjustmentRequest,
        )
        assert isinstance(
            parse_request({"type": "transfer", "recipient": "bob", "amount": 10}),
            TransferRequest,
        )
        assert isinstance(
            parse_request({"type": "redemption", "amount": 10}),
            RedemptionRequest,
        )
        assert isinstance(
            parse_request({"type": "event", "event_id": 4, "amount": 5}),
            EventAwardRequest,
        )

    def test_request_objects_pass_through(self):
        req = TransferRequest(recipient=2, amount=5)
        assert parse_request(req) is req

    def test_missing_type_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_request({"amount": 5})
        assert exc_info.value.field == "type"

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_request({"type": "refund", "amount": 5})
        assert exc_info.value.field == "type"
        assert exc_info.value.code == "INVALID_REQUEST"

    def test_unknown_field_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_request({"type": "redemption", "amount": 5, "cashier": 3})
        assert exc_info.value.field == "cashier"

    def test_missing_required_field_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_request({"type": "transfer", "amount": 5})
        assert exc_info.value.field == "recipient"

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidRequestError):
            parse_request(["purchase"])

    def test_non_string_field_name_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_request({"type": "transfer", "recipient": 2, "amount": 5, 1: "x", "zz": 1})
        assert "field names must be strings" in str(exc_info.value)


class TestPurchaseValidation:
    """Purchase field rules."""

    def test_float_spend_keeps_decimal_value(self):
        req = PurchaseRequest(beneficiary=1, spent=40.1)
        assert req.spent == Decimal("40.10")

    def test_spend_quantized_to_cents(self):
        req = PurchaseRequest(beneficiary=1, spent="10.005")
        assert req.spent == Decimal("10.01")

    @pytest.mark.parametrize("spent", [0, "-1", "0.001", "abc", True, None, "NaN"])
    def test_bad_spend_rejected(self, spent):
        with pytest.raises(InvalidRequestError) as exc_info:
            PurchaseRequest(beneficiary=1, spent=spent)
        assert exc_info.value.field == "spent"

    def test_sub_cent_spend_reports_rounding(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            PurchaseRequest(beneficiary=1, spent="0.004")
        assert exc_info.value.field == "spent"
        assert "rounds to zero" in str(exc_info.value)

    def test_negative_spend_reports_positive(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            PurchaseRequest(beneficiary=1, spent="-1")
        assert "must be positive" in str(exc_info.value)

    def test_duplicate_promotion_ids_rejected(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            PurchaseRequest(beneficiary=1, spent=10, promotion_ids=[1, 1])
        assert exc_info.value.field == "promotion_ids"

    @pytest.mark.parametrize("bad_id", [0, -3, "2", 1.5, True])
    def test_non_positive_or_non_int_promotion_ids_rejected(self, bad_id):
        with pytest.raises(InvalidRequestError):
            PurchaseRequest(beneficiary=1, spent=10, promotion_ids=[bad_id])

    def test_none_promotion_ids_means_empty(self):
        assert PurchaseRequest(beneficiary=1, spent=10, promotion_ids=None).promotion_ids == ()

    @pytest.mark.parametrize("ref", ["", "   ", 0, -1, True, 2.0])
    def test_bad_beneficiary_rejected(self, ref):
        with pytest.raises(InvalidRequestError) as exc_info:
            PurchaseRequest(beneficiary=ref, spent=10)
        assert exc_info.value.field == "beneficiary"

    def test_remark_must_be_string(self):
        with pytest.raises(InvalidRequestError):
            PurchaseRequest(beneficiary=1, spent=10, remark=42)

    def test_request_is_frozen(self):
        req = PurchaseRequest(beneficiary=1, spent=10)
        with pytest.raises(AttributeError):
            req.spent = Decimal("99")


class TestAmountValidation:
    """Integer amount rules across variants."""

    def test_adjustment_allows_negative_amount(self):
        assert AdjustmentRequest(beneficiary=1, amount=-500, related_id=1).amount == -500

    def test_adjustment_requires_related_id(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            AdjustmentRequest(beneficiary=1, amount=5, related_id=0)
        assert exc_info.value.field == "related_id"

    @pytest.mark.parametrize("amount", [0, -1, 2.5, "10", True])
    def test_transfer_amount_must_be_positive_int(self, amount):
        with pytest.raises(InvalidRequestError):
            TransferRequest(recipient=2, amount=amount)

    @pytest.mark.parametrize("amount", [0, -10])
    def test_redemption_amount_must_be_positive(self, amount):
        with pytest.raises(InvalidRequestError):
            RedemptionRequest(amount=amount)

    def test_event_recipient_optional(self):
        assert EventAwardRequest(event_id=1, amount=5).recipient is None
        assert EventAwardRequest(event_id=1, amount=5, recipient=" bob ").recipient == "bob"
