import pytest

import backend_auth as m

CONSUMER = m.RequestContext.CONSUMER
BACKOFFICE = m.RequestContext.BACKOFFICE


def test_miss_returns_not_found():
    cache = m.PrincipalCache()

    assert cache.get("uid-1", CONSUMER) == (None, False)


def test_put_then_get():
    cache = m.PrincipalCache()
    cache.put("uid-1", CONSUMER, m.ConsumerPrincipal(id=7, is_guest=False))

    principal, found = cache.get("uid-1", CONSUMER)

    assert found is True
    assert principal == m.ConsumerPrincipal(id=7, is_guest=False)


def test_negative_entries_are_cached():
    cache = m.PrincipalCache()
    cache.put("uid-x", BACKOFFICE, m.BackofficePrincipal(id=0))

    principal, found = cache.get("uid-x", BACKOFFICE)

    assert found is True
    assert principal is not None and principal.found is False


def test_namespaces_are_independent():
    cache = m.PrincipalCache()
    cache.put("uid-1", CONSUMER, m.ConsumerPrincipal(id=7, is_guest=False))
    cache.put("uid-1", BACKOFFICE, m.BackofficePrincipal(id=3, is_admin=True))

    assert cache.get("uid-1", CONSUMER)[0] == m.ConsumerPrincipal(7, False)
    assert cache.get("uid-1", BACKOFFICE)[0] == m.BackofficePrincipal(3, True)

    cache.invalidate("uid-1", CONSUMER)
    assert cache.get("uid-1", CONSUMER) == (None, False)
    assert cache.get("uid-1", BACKOFFICE)[1] is True


def test_put_rejects_context_mismatch():
    cache = m.PrincipalCache()

    with pytest.raises(ValueError):
        cache.put("uid-1", CONSUMER, m.BackofficePrincipal(id=3, is_admin=True))


def test_entries_expire(clock):
    cache = m.PrincipalCache(ttl_seconds=60)
    cache.put("uid-1", CONSUMER, m.ConsumerPrincipal(id=7, is_guest=False))

    clock.advance(59)
    assert cache.get("uid-1", CONSUMER)[1] is True

    clock.advance(1)
    assert cache.get("uid-1", CONSUMER) == (None, False)


def test_redis_backed_roundtrip(fake_redis):
    cache = m.PrincipalCache(m.RedisCache(fake_redis, prefix="svc:principal:"))  # type: ignore
    cache.put("uid-1", BACKOFFICE, m.BackofficePrincipal(id=3, is_admin=True))

    assert cache.get("uid-1", BACKOFFICE) == (m.BackofficePrincipal(3, True), True)


@pytest.mark.parametrize("raw", ["not-json", '{"value": {"id": "seven"}}', '{"value": 5}'])
def test_corrupted_entry_is_dropped(fake_redis, raw):
    cache = m.PrincipalCache(m.RedisCache(fake_redis, prefix="svc:"))  # type: ignore
    fake_redis.setex("svc:principal:consumer:uid-1", 60, raw)

    assert cache.get("uid-1", CONSUMER) == (None, False)
    assert fake_redis.get("svc:principal:consumer:uid-1") is None


def test_clear():
    cache = m.PrincipalCache()
    cache.put("uid-1", CONSUMER, m.ConsumerPrincipal(id=7))
    cache.put("uid-2", BACKOFFICE, m.BackofficePrincipal(id=3))

    cache.clear()

    assert cache.get("uid-1", CONSUMER) == (None, False)
    assert cache.get("uid-2", BACKOFFICE) == (None, False)
