"""
Unit tests for the quote policy configuration.
"""

from quotations.models import Organization
from quotations.services.quote_config import QuoteConfig


class TestQuoteConfig:

    def test_defaults(self):
        config = QuoteConfig()

        assert config.validity_days == 7
        assert config.price_change_threshold == 5.0
        assert config.requires_approval_on_increase is True
        assert config.apply_lower_price_automatically is True
        assert config.allow_expired_quotes is False

    def test_from_app_config(self):
        config = QuoteConfig.from_app_config({
            'QUOTE_VALID_DAYS': 15,
            'QUOTE_PRICE_CHANGE_THRESHOLD': 2.5,
            'QUOTE_ALLOW_EXPIRED': True,
        })

        assert config.validity_days == 15
        assert config.price_change_threshold == 2.5
        assert config.allow_expired_quotes is True
        assert config.requires_approval_on_increase is True

    def test_organization_overrides_app_policy(self):
        organization = Organization(slug='acme', name='Acme', quote_settings={
            'validity_days': 30,
            'allow_expired_quotes': True,
        })
        config = QuoteConfig.for_organization({'QUOTE_VALID_DAYS': 10}, organization)

        assert config.validity_days == 30
        assert config.allow_expired_quotes is True

    def test_unknown_and_null_overrides_are_ignored(self):
        config = QuoteConfig().with_overrides({'colour': 'red', 'validity_days': None})

        assert config.validity_days == 7
        assert 'colour' not in config.to_dict()

    def test_with_overrides_returns_a_copy(self):
        base = QuoteConfig()
        changed = base.with_overrides({'price_change_threshold': 10})

        assert base.price_change_threshold == 5.0
        assert changed.price_change_threshold == 10.0
