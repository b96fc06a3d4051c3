import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    # throttle counters live in the cache; keep tests independent of each other
    cache.clear()
    yield
    cache.clear()
