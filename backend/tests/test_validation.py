# Overview: Pytest coverage for the model-driven payload validation layer.

from datetime import date, datetime

import pytest

from coinop.models import Machine
from coinop.time_utils import parse_iso_datetime, period_key, to_utc_z
from coinop.validation import (
    MAX_COUNTER_VALUE,
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_rules_expense,
    enforce_rules_machine,
    validate_counter,
    validate_payload,
    validate_percentage,
)

POLICY = ModelValidationPolicy(
    writable_fields={"serial_number", "machine_type", "initial_counter", "purchase_date", "has_manual"},
    required_on_create={"serial_number", "machine_type"},
)


class TestValidatePayload:

    def test_create_requires_fields(self):
        with pytest.raises(ValidationError, match="machine_type"):
            validate_payload(model=Machine, payload={"serial_number": "SN"}, policy=POLICY, partial=False)

    def test_rejects_fields_outside_policy(self):
        with pytest.raises(ValidationError, match="current_counter"):
            validate_payload(model=Machine, payload={"current_counter": 5}, policy=POLICY, partial=True)

    def test_coerces_types(self):
        patch = validate_payload(
            model=Machine,
            payload={
                "serial_number": "  SN-1 ",
                "machine_type": "claw",
                "initial_counter": "1200",
                "purchase_date": "2026-01-02T10:00:00Z",
                "has_manual": True,
            },
            policy=POLICY,
            partial=False,
        )
        assert patch == {
            "serial_number": "SN-1",
            "machine_type": "claw",
            "initial_counter": 1200,
            "purchase_date": datetime(2026, 1, 2, 10, 0),
            "has_manual": True,
        }

    def test_not_nullable(self):
        with pytest.raises(ValidationError, match="cannot be null"):
            validate_payload(model=Machine, payload={"serial_number": None}, policy=POLICY, partial=True)

    def test_max_length(self):
        with pytest.raises(ValidationError, match="max length"):
            validate_payload(model=Machine, payload={"serial_number": "X" * 65}, policy=POLICY, partial=True)


class TestTimeUtils:

    def test_parse_offsets_to_utc_naive(self):
        assert parse_iso_datetime("2026-03-09T10:00:00+02:00") == datetime(2026, 3, 9, 8, 0)
        assert parse_iso_datetime("2026-03-09T10:00:00Z") == datetime(2026, 3, 9, 10, 0)
        assert parse_iso_datetime("  ") is None

    def test_date_only_bounds(self):
        assert parse_iso_datetime("2026-03-09") == datetime(2026, 3, 9)
        end = parse_iso_datetime("2026-03-09", end_of_day=True)
        assert end.date() == date(2026, 3, 9)
        assert end.hour == 23 and end.minute == 59

    def test_period_keys(self):
        # 2026-01-01 belongs to ISO week 1 of 2026
        assert period_key(datetime(2026, 1, 1), "week") == "2026-W01"
        assert period_key(datetime(2026, 12, 31), "year") == "2026"
        with pytest.raises(ValueError):
            period_key(datetime(2026, 1, 1), "quarter")

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2026, 3, 9, 10, 0, 5, 999)) == "2026-03-09T10:00:05Z"
        assert to_utc_z(None) is None


class TestCounterRules:

    @pytest.mark.parametrize("value,expected", [(0, 0), ("15", 15), (MAX_COUNTER_VALUE, MAX_COUNTER_VALUE)])
    def test_valid_counters(self, value, expected):
        assert validate_counter("counter", value) == expected

    @pytest.mark.parametrize("value", [-1, 1.5, "1e5", "12.0", True, None, MAX_COUNTER_VALUE + 1])
    def test_invalid_counters(self, value):
        with pytest.raises(ValidationError):
            validate_counter("counter", value)

    def test_coerce_int_rejects_bool(self):
        with pytest.raises(ValidationError):
            coerce_int("x", False)

    @pytest.mark.parametrize("value", [-0.1, 100.5, "abc", "nan", float("nan"), "inf", float("-inf")])
    def test_invalid_percentages(self, value):
        with pytest.raises(ValidationError):
            validate_percentage("split_percentage", value)

    def test_percentage_accepts_comma_decimal(self):
        assert validate_percentage("split_percentage", "37,5") == 37.5

    def test_machine_rules(self):
        patch = {"initial_counter": "10", "split_percentage": "60"}
        enforce_rules_machine(patch)
        assert patch == {"initial_counter": 10, "split_percentage": 60.0}

        with pytest.raises(ValidationError):
            enforce_rules_machine({"width": 0})

    def test_expense_rules(self):
        with pytest.raises(ValidationError):
            enforce_rules_expense({"amount": -1})
        with pytest.raises(ValidationError):
            enforce_rules_expense({"amount": 10_000_000})
