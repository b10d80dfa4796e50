"""
Unit tests for the organization-scoped Redis cache (Redis client mocked).
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from quotations.services.cache_service import CacheService


@pytest.fixture
def cache():
    service = CacheService()
    service.client = MagicMock()
    service._enabled = True
    service._prefix = 'quotations'
    return service


class TestMemoize:

    def test_miss_loads_and_stores(self, cache):
        cache.client.get.return_value = None
        loader = MagicMock(return_value=[{'id': 1, 'total': Decimal('10.50')}])

        value = cache.memoize(7, 'price_lists', 'list:all', loader, ttl=300)

        assert value == [{'id': 1, 'total': Decimal('10.50')}]
        loader.assert_called_once()
        key, ttl, payload = cache.client.setex.call_args[0]
        assert key == 'quotations:org:7:price_lists:list:all'
        assert ttl == 300
        assert '__decimal__' in payload

    def test_hit_keeps_decimal_precision(self, cache):
        cache.client.get.return_value = cache._serialize([{'total': Decimal('10.50')}])
        loader = MagicMock()

        value = cache.memoize(7, 'price_lists', 'list:all', loader, ttl=300)

        assert value == [{'total': Decimal('10.50')}]
        loader.assert_not_called()

    def test_disabled_cache_always_loads(self):
        service = CacheService()
        loader = MagicMock(return_value=['fresh'])

        assert service.memoize(7, 'price_lists', 'list:all', loader, ttl=300) == ['fresh']
        assert service.invalidate_module(7, 'price_lists') == 0


class TestInvalidateModule:

    def test_scans_every_page(self, cache):
        cache.client.scan.side_effect = [(5, ['k1', 'k2']), (0, ['k3'])]

        deleted = cache.invalidate_module(7, 'price_lists')

        assert deleted == 3
        assert cache.client.scan.call_args_list[0].kwargs['match'] == 'quotations:org:7:price_lists:*'
        assert cache.client.pipeline.return_value.execute.call_count == 2
