"""
Tests for the rule-table validator.
"""
from datetime import date
from decimal import Decimal

import pytest

from app.core.errors import ValidationError
from app.services import Validator
from app.services.result import Err, Ok

TODAY = date(2024, 9, 1)


@pytest.fixture
def validator() -> Validator:
    return Validator(max_upload_size_bytes=10 * 1024 * 1024, clock=lambda: TODAY)


def fields(result) -> set:
    assert isinstance(result, Err)
    assert isinstance(result.error, ValidationError)
    return {v.field for v in result.error.violations}


class TestPolicyRules:
    def test_valid_policy(self, validator):
        result = validator.validate("policy", {
            "policy_number": "POL-2024-000001",
            "total_premium": Decimal("1200.00"),
            "effective_date": date(2024, 1, 1),
            "expiry_date": date(2024, 12, 31),
            "owner_id": 1,
        })
        assert isinstance(result, Ok)

    def test_aggregates_every_violation(self, validator):
        """All broken fields are reported in one error."""
        result = validator.validate("policy", {
            "policy_number": "2024-1",
            "total_premium": Decimal("0"),
            "effective_date": date(2024, 6, 1),
            "expiry_date": date(2024, 5, 1),
        })
        assert fields(result) == {"policy_number", "total_premium", "expiry_date", "owner_id"}

    def test_expiry_equal_to_effective_rejected(self, validator):
        result = validator.validate("policy", {
            "policy_number": "POL-2024-000001",
            "total_premium": 100,
            "effective_date": date(2024, 1, 1),
            "expiry_date": date(2024, 1, 1),
            "owner_id": 1,
        })
        assert fields(result) == {"expiry_date"}
        assert "after effective_date" in result.error.violations[0].reason

    def test_term_longer_than_one_year_rejected(self, validator):
        result = validator.validate("policy", {
            "policy_number": "POL-2024-000001",
            "total_premium": 100,
            "effective_date": date(2024, 1, 1),
            "expiry_date": date(2025, 1, 2),
            "owner_id": 1,
        })
        assert fields(result) == {"expiry_date"}
        assert "one year" in result.error.violations[0].reason

    def test_exactly_one_year_allowed(self, validator):
        result = validator.validate("policy", {
            "policy_number": "POL-2024-000001",
            "total_premium": 100,
            "effective_date": date(2024, 2, 29),
            "expiry_date": date(2025, 2, 28),
            "owner_id": 1,
        })
        assert result.is_ok

    def test_missing_fields_reported_as_required(self, validator):
        result = validator.validate("policy", {})
        reasons = {v.field: v.reason for v in result.error.violations}
        assert reasons["policy_number"] == "is required"
        assert reasons["effective_date"] == "is required"

    def test_coverage_prefix(self, validator):
        found = validator.violations("coverage", {"coverage_type": "liability", "limit_amount": -5}, prefix="coverages[0]")
        assert [v.field for v in found] == ["coverages[0].limit_amount"]


class TestClaimRules:
    def test_future_incident_rejected(self, validator):
        result = validator.validate("claim", {
            "policy_id": 1,
            "incident_date": date(2024, 9, 2),
            "claim_amount": Decimal("10"),
        })
        assert fields(result) == {"incident_date"}

    def test_reported_before_incident_rejected(self, validator):
        result = validator.validate("claim", {
            "policy_id": 1,
            "incident_date": date(2024, 3, 1),
            "reported_date": date(2024, 2, 28),
            "claim_amount": Decimal("10"),
        })
        assert fields(result) == {"reported_date"}

    def test_non_positive_amount_and_unknown_status(self, validator):
        result = validator.validate("claim", {
            "policy_id": 1,
            "incident_date": date(2024, 3, 1),
            "claim_amount": Decimal("-1"),
            "status": "LOST",
        })
        assert fields(result) == {"claim_amount", "status"}

    def test_status_rule(self, validator):
        assert validator.validate("claim_status", {"status": "IN_REVIEW"}).is_ok
        assert fields(validator.validate("claim_status", {"status": "in_review"})) == {"status"}


class TestDocumentRules:
    def test_pdf_accepted(self, validator):
        result = validator.validate("document", {
            "file_name": "estimate.pdf",
            "content_type": "application/pdf",
            "file_size": 2048,
        })
        assert result.is_ok

    def test_oversized_file_rejected(self, validator):
        result = validator.validate("document", {
            "file_name": "scan.png",
            "content_type": "image/png",
            "file_size": 15 * 1024 * 1024,
        })
        assert fields(result) == {"file_size"}
        assert "10 MB" in result.error.violations[0].reason

    def test_empty_file_and_bad_type(self, validator):
        result = validator.validate("document", {
            "file_name": "notes.txt",
            "content_type": "text/plain",
            "file_size": 0,
        })
        assert fields(result) == {"content_type", "file_size"}


class TestUserRules:
    def test_user_rules(self, validator):
        result = validator.validate("user", {
            "username": "ab",
            "email": "not-an-email",
            "password": "short",
            "roles": ["ADMIN", "SUPERUSER"],
        })
        assert fields(result) == {"username", "email", "password", "roles"}

    def test_payment_method_rule(self, validator):
        assert validator.validate("payment", {"amount": "10.00", "payment_method": "ACH"}).is_ok
        assert fields(validator.validate("payment", {"amount": "ten", "payment_method": "CASH"})) == {
            "amount",
            "payment_method",
        }
