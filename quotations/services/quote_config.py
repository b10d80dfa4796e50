"""Quote policy configuration, built per request and injected into the quote services."""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Organization.quote_settings key -> Flask config key
_SETTINGS_KEYS = {
    'validity_days': 'QUOTE_VALID_DAYS',
    'price_change_threshold': 'QUOTE_PRICE_CHANGE_THRESHOLD',
    'requires_approval_on_increase': 'QUOTE_REQUIRES_APPROVAL_ON_INCREASE',
    'apply_lower_price_automatically': 'QUOTE_APPLY_LOWER_PRICE_AUTOMATICALLY',
    'allow_expired_quotes': 'QUOTE_ALLOW_EXPIRED',
}


class QuoteConfig:
    """
    Quote validity and price-change policy.

    Attributes:
        validity_days: days a quote stays valid after activation
        price_change_threshold: percent drift tolerated without approval
        requires_approval_on_increase: increases above the threshold need approval
        apply_lower_price_automatically: price drops are always applied
        allow_expired_quotes: expired quotes may still be paid
    """

    def __init__(self, validity_days=7, price_change_threshold=5,
                 requires_approval_on_increase=True, apply_lower_price_automatically=True,
                 allow_expired_quotes=False):
        self.validity_days = int(validity_days)
        self.price_change_threshold = float(price_change_threshold)
        self.requires_approval_on_increase = bool(requires_approval_on_increase)
        self.apply_lower_price_automatically = bool(apply_lower_price_automatically)
        self.allow_expired_quotes = bool(allow_expired_quotes)

    def __repr__(self):
        return (
            f"<QuoteConfig(validity_days={self.validity_days}, threshold={self.price_change_threshold}, "
            f"approval_on_increase={self.requires_approval_on_increase}, "
            f"auto_lower={self.apply_lower_price_automatically}, allow_expired={self.allow_expired_quotes})>"
        )

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> 'QuoteConfig':
        """Return a copy with known keys from `overrides` applied; unknown keys are ignored."""
        values = self.to_dict()
        for key, value in (overrides or {}).items():
            if key not in _SETTINGS_KEYS:
                logger.warning(f"[PRICING] Ignoring unknown quote setting '{key}'")
                continue
            if value is not None:
                values[key] = value
        return QuoteConfig(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in _SETTINGS_KEYS}

    @classmethod
    def from_app_config(cls, config) -> 'QuoteConfig':
        """Build from a Flask config mapping (missing keys keep the defaults)."""
        defaults = cls()
        return cls(**{
            key: config.get(config_key, getattr(defaults, key))
            for key, config_key in _SETTINGS_KEYS.items()
        })

    @classmethod
    def for_organization(cls, config, organization=None) -> 'QuoteConfig':
        """App-level policy with the organization's quote_settings applied on top."""
        base = cls.from_app_config(config)
        if organization is None:
            return base
        return base.with_overrides(organization.quote_settings)


def current_quote_config() -> QuoteConfig:
    """Policy for the organization of the current request."""
    from flask import current_app, g
    return QuoteConfig.for_organization(current_app.config, g.get('organization'))
