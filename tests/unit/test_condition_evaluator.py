"""
Unit tests for price-list condition evaluation.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from quotations.models import Cart, PriceListCondition
from quotations.services.condition_evaluator import evaluate_condition, is_condition_met


NOW = datetime(2026, 6, 15, 12, 0, 0)


def make_condition(condition_type, operator, condition_value, **extra):
    return PriceListCondition(
        condition_type=condition_type,
        operator=operator,
        condition_value=condition_value,
        status='active',
        **extra
    )


class TestAmountCondition:
    """Tests for amount conditions."""

    def test_minimum_reached(self):
        condition = make_condition('amount', 'greater_or_equal', {'min_amount': 100})
        result = evaluate_condition(condition, Decimal('150'), 3, now=NOW)

        assert result['is_met'] is True
        assert result['progress'] == Decimal('100.00')
        assert result['remaining'] == Decimal('0')

    def test_minimum_not_reached_reports_progress(self):
        condition = make_condition('amount', 'greater_or_equal', {'min_amount': 100})
        result = evaluate_condition(condition, Decimal('50'), 1, now=NOW)

        assert result['is_met'] is False
        assert result['progress'] == Decimal('50.00')
        assert result['current_value'] == Decimal('50')
        assert result['target_value'] == Decimal('100')
        assert result['remaining'] == Decimal('50')
        assert 'Agrega' in result['message']

    def test_between_respects_upper_bound(self):
        condition = make_condition('amount', 'between', {'min_amount': 100, 'max_amount': 200})

        assert is_condition_met(condition, Decimal('150'), 1, now=NOW) is True
        assert is_condition_met(condition, Decimal('250'), 1, now=NOW) is False

    def test_between_without_upper_bound_is_open(self):
        condition = make_condition('amount', 'between', {'min_amount': 100})
        assert is_condition_met(condition, Decimal('1000000'), 1, now=NOW) is True

    def test_zero_upper_bound_is_open(self):
        condition = make_condition('amount', 'between', {'min_amount': 100, 'max_amount': 0})
        assert is_condition_met(condition, Decimal('250'), 1, now=NOW) is True
        assert is_condition_met(condition, Decimal('50'), 1, now=NOW) is False

    def test_zero_target_gives_full_progress(self):
        condition = make_condition('amount', 'greater_or_equal', {'min_amount': 0})
        result = evaluate_condition(condition, Decimal('0'), 0, now=NOW)

        assert result['is_met'] is True
        assert result['progress'] == Decimal('100')

    def test_unknown_operator_is_not_met(self):
        condition = make_condition('amount', 'after', {'min_amount': 10})
        result = evaluate_condition(condition, Decimal('500'), 1, now=NOW)

        assert result['is_met'] is False
        assert result['progress'] == Decimal('0')

    def test_invalid_payload_is_not_met(self):
        condition = make_condition('amount', 'greater_than', {'min_amount': 'mucho'})
        assert is_condition_met(condition, Decimal('500'), 1, now=NOW) is False


class TestQuantityCondition:
    """Tests for quantity conditions."""

    def test_greater_than_is_strict(self):
        condition = make_condition('quantity', 'greater_than', {'min_quantity': 10})

        assert is_condition_met(condition, Decimal('0'), 10, now=NOW) is False
        assert is_condition_met(condition, Decimal('0'), 11, now=NOW) is True

    def test_progress_and_remaining(self):
        condition = make_condition('quantity', 'greater_or_equal', {'min_quantity': 12})
        result = evaluate_condition(condition, Decimal('0'), 3, now=NOW)

        assert result['progress'] == Decimal('25.00')
        assert result['remaining'] == Decimal('9')

    def test_zero_upper_bound_is_open(self):
        condition = make_condition('quantity', 'between', {'min_quantity': 5, 'max_quantity': 0})

        assert is_condition_met(condition, Decimal('0'), 500, now=NOW) is True
        assert is_condition_met(condition, Decimal('0'), 4, now=NOW) is False


class TestDateRangeCondition:
    """Tests for date_range conditions."""

    def test_between_inside_window(self):
        condition = make_condition('date_range', 'between', {
            'from_date': '2026-06-01', 'to_date': '2026-06-30T23:59:59Z'
        })
        assert is_condition_met(condition, Decimal('0'), 0, now=NOW) is True

    def test_between_outside_window(self):
        condition = make_condition('date_range', 'between', {
            'from_date': '2026-07-01', 'to_date': '2026-07-31'
        })
        assert is_condition_met(condition, Decimal('0'), 0, now=NOW) is False

    def test_after_and_before(self):
        after = make_condition('date_range', 'after', {'from_date': '2026-06-01'})
        before = make_condition('date_range', 'before', {'to_date': '2026-06-01'})

        assert is_condition_met(after, Decimal('0'), 0, now=NOW) is True
        assert is_condition_met(before, Decimal('0'), 0, now=NOW) is False

    def test_unparseable_date_is_not_met(self):
        condition = make_condition('date_range', 'after', {'from_date': 'ayer'})
        assert is_condition_met(condition, Decimal('0'), 0, now=NOW) is False


class TestCustomerTypeCondition:
    """Tests for customer_type conditions."""

    def test_matches_case_insensitively(self):
        condition = make_condition('customer_type', 'equals', {'customer_type': 'Mayorista'})
        cart = Cart(customer_type='mayorista ')

        assert is_condition_met(condition, Decimal('0'), 0, cart=cart, now=NOW) is True

    def test_missing_customer_type_is_not_met(self):
        condition = make_condition('customer_type', 'equals', {'customer_type': 'mayorista'})

        assert is_condition_met(condition, Decimal('0'), 0, cart=Cart(), now=NOW) is False
        assert is_condition_met(condition, Decimal('0'), 0, cart=None, now=NOW) is False

    def test_only_equals_is_supported(self):
        condition = make_condition('customer_type', 'greater_than', {'customer_type': 'mayorista'})
        cart = Cart(customer_type='mayorista')

        assert is_condition_met(condition, Decimal('0'), 0, cart=cart, now=NOW) is False


class TestConditionGate:
    """Validity window and unknown types."""

    def test_condition_outside_its_validity_window(self):
        condition = make_condition(
            'amount', 'greater_or_equal', {'min_amount': 1},
            valid_from=NOW + timedelta(days=1)
        )
        result = evaluate_condition(condition, Decimal('500'), 5, now=NOW)

        assert result['is_met'] is False
        assert 'vigencia' in result['message']

    def test_expired_condition_window(self):
        condition = make_condition(
            'quantity', 'greater_or_equal', {'min_quantity': 1},
            valid_to=NOW - timedelta(seconds=1)
        )
        assert is_condition_met(condition, Decimal('0'), 5, now=NOW) is False

    def test_unknown_type_is_not_met(self):
        condition = make_condition('loyalty_points', 'greater_than', {'points': 10})
        result = evaluate_condition(condition, Decimal('500'), 5, now=NOW)

        assert result['is_met'] is False
        assert result['progress'] == Decimal('0')
