import fnmatch

import pytest
import redis

from services.cache import CacheService


class FakeRedis:
    """In-memory stand-in for the handful of redis commands the cache uses"""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def scan_iter(self, match='*'):
        return [key for key in list(self.store) if fnmatch.fnmatch(key, match)]

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    def ping(self):
        return True


class BrokenRedis(FakeRedis):

    def get(self, key):
        raise redis.ConnectionError('connection refused')

    def setex(self, key, ttl, value):
        raise redis.ConnectionError('connection refused')

    def ping(self):
        raise redis.ConnectionError('connection refused')


@pytest.fixture
def fake_redis(app):
    app.config['CACHE_ENABLED'] = True
    client = FakeRedis()
    CacheService().init_app(app, client=client)
    return client


def test_round_trip_and_invalidate(app):
    app.config['CACHE_ENABLED'] = True
    cache = CacheService(app, client=FakeRedis())

    cache.set('awards:categories', [{'name': 'Innovation'}], ttl=60)
    cache.set('awards:nominations:abc', {'page': 1}, ttl=60)

    assert cache.get('awards:categories') == [{'name': 'Innovation'}]
    assert cache.invalidate('awards:nominations*') == 1
    assert cache.get('awards:nominations:abc') is None
    assert cache.get('awards:categories') is not None


def test_redis_outage_degrades_to_misses(app):
    app.config['CACHE_ENABLED'] = True
    cache = CacheService(app, client=BrokenRedis())

    cache.set('key', {'value': 1}, ttl=60)
    assert cache.get('key') is None
    assert cache.ping() is False


def test_disabled_cache_never_touches_client(app):
    client = FakeRedis()
    cache = CacheService()
    cache.init_app(app)
    cache.client = client

    cache.set('key', 1, ttl=60)
    assert client.store == {}


def test_category_listing_is_cached_and_invalidated(admin_client, category, fake_redis):
    first = admin_client.get('/api/awards/categories').get_json()['data']['categories']
    assert [c['name'] for c in first] == ['Innovation Leader']
    assert 'sap:awards:categories' in fake_redis.store

    admin_client.post('/api/awards/admin/categories', json={
        'name': 'Community Champion',
        'description': 'Recognises leaders who uplift their communities',
    })
    assert 'sap:awards:categories' not in fake_redis.store

    second = admin_client.get('/api/awards/categories').get_json()['data']['categories']
    assert [c['name'] for c in second] == ['Community Champion', 'Innovation Leader']
    assert second[1]['totalNominations'] == 0


def test_public_nomination_listing_uses_cache(admin_client, nomination, fake_redis):
    admin_client.patch(
        f"/api/awards/admin/nominations/{nomination['id']}/status", json={'status': 'approved'}
    )

    admin_client.get('/api/awards/nominations')
    cached_keys = [key for key in fake_redis.store if key.startswith('sap:awards:nominations:')]
    assert len(cached_keys) == 1

    admin_client.post(f"/api/awards/nominations/{nomination['id']}/vote", json={'voterEmail': 'fan@gmail.com'})
    assert not any(key.startswith('sap:awards:nominations:') for key in fake_redis.store)

    listing = admin_client.get('/api/awards/nominations').get_json()['data']
    assert listing['nominations'][0]['votes'] == 1


def test_detailed_health_reports_cache(client, fake_redis):
    body = client.get('/health/detailed').get_json()
    assert body['components']['redis'] == 'healthy'
