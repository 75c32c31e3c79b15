import pytest

from backend.catalog.models import FALLBACK_PRODUCT_ID
from backend.catalog.service import CatalogStore, CatalogUnavailable, build_entries, course_url


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class _Fetcher:
    """Renvoie les lignes du catalogue ou lève, et compte les appels."""

    def __init__(self, rows):
        self.rows = rows
        self.calls = 0
        self.fail = False

    def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("connection refused")
        return self.rows


def test_build_entries_links_bundle_members_and_urls(catalog_rows):
    entries = {e.product.id: e for e in build_entries(catalog_rows, school_url="https://school.test")}

    bundle = entries["green-card-bundle"]
    assert bundle.is_bundle
    assert bundle.product.package == ["eb1a-guide", "niw-guide"]
    assert bundle.plan("6mo").url == "https://school.test/program/gc_bundle"
    assert entries["eb1a-guide"].plan("7day").price == 1900
    assert entries["eb1a-guide"].plan("6mo").url == "https://school.test/path-player?courseid=eb1a_course"
    assert entries["intro-free"].plan("6mo").type == "free"


def test_course_url_by_category():
    assert course_url("bundle", "b1", "https://s") == "https://s/program/b1"
    assert course_url("course", "c1", "https://s") == "https://s/path-player?courseid=c1"


def test_cache_is_served_until_ttl_expires(catalog_rows):
    clock, fetcher = _Clock(), _Fetcher(catalog_rows)
    store = CatalogStore(fetcher=fetcher, ttl_seconds=300, clock=clock)

    store.get_all()
    clock.now += 299
    store.get_all()
    assert fetcher.calls == 1

    clock.now += 2
    store.get_all()
    assert fetcher.calls == 2
    assert store.source == "database"


def test_refresh_failure_keeps_last_known_good(catalog_rows):
    clock, fetcher = _Clock(), _Fetcher(catalog_rows)
    store = CatalogStore(fetcher=fetcher, ttl_seconds=10, clock=clock)
    first = store.get_all()

    fetcher.fail = True
    clock.now += 11
    again = store.get_all()

    assert again == first
    assert store.source == "last_known_good"
    assert store.failures == 1
    assert store.health()["status"] == "warning"


def test_outage_with_snapshot_retries_the_store_only_after_backoff(catalog_rows):
    clock, fetcher = _Clock(), _Fetcher(catalog_rows)
    store = CatalogStore(fetcher=fetcher, ttl_seconds=300, retry_seconds=30, clock=clock)
    store.get_all()

    fetcher.fail = True
    clock.now += 400
    for _ in range(20):
        store.get_all()
        store.get_by_product_id("eb1a-guide")
    assert fetcher.calls == 2
    assert store.failures == 1

    clock.now += 31
    store.get_all()
    assert fetcher.calls == 3
    assert store.failures == 2

    fetcher.fail = False
    clock.now += 31
    store.get_all()
    assert store.source == "database"
    assert store.failures == 0


def test_stale_marker_is_dropped_when_refresh_fails(catalog_rows):
    clock, fetcher = _Clock(), _Fetcher(catalog_rows)
    store = CatalogStore(fetcher=fetcher, ttl_seconds=300, clock=clock)
    store.get_all()
    store.invalidate("course:eb1a-guide")

    fetcher.fail = True
    assert store.get_by_product_id("eb1a-guide").product.name == "EB1A Guide"
    store.get_by_product_id("eb1a-guide")
    assert fetcher.calls == 2


def test_no_snapshot_raises_then_serves_fallback_after_max_failures(catalog_rows):
    fetcher = _Fetcher(catalog_rows)
    fetcher.fail = True
    store = CatalogStore(fetcher=fetcher, max_failures=3)

    for _ in range(2):
        with pytest.raises(CatalogUnavailable):
            store.get_all()

    entries = store.get_all()
    assert [e.product.id for e in entries] == [FALLBACK_PRODUCT_ID]
    assert store.source == "fallback"
    assert store.health()["status"] == "error"


def test_recovery_resets_failure_count(catalog_rows):
    fetcher = _Fetcher(catalog_rows)
    fetcher.fail = True
    store = CatalogStore(fetcher=fetcher, max_failures=3)
    with pytest.raises(CatalogUnavailable):
        store.get_all()

    fetcher.fail = False
    store.get_all()
    assert store.failures == 0
    assert store.source == "database"


def test_invalid_rows_count_as_failure(catalog_rows):
    catalog_rows["plans"] = []
    store = CatalogStore(fetcher=_Fetcher(catalog_rows), max_failures=5)
    with pytest.raises(CatalogUnavailable):
        store.get_all()
    assert store.failures == 1


def test_point_lookups(catalog):
    assert catalog.get_by_product_id("eb1a-guide").product.name == "EB1A Guide"
    assert catalog.get_by_product_id("unknown") is None
    assert catalog.is_bundle("green-card-bundle") is True
    assert catalog.is_bundle("eb1a-guide") is False
    assert catalog.bundle_members("green-card-bundle") == ["eb1a-guide", "niw-guide"]
    assert set(catalog.get_many(["eb1a-guide", "niw-guide", "nope"])) == {"eb1a-guide", "niw-guide"}


def test_invalidate_courses_tag_forces_refresh(catalog_rows):
    clock, fetcher = _Clock(), _Fetcher(catalog_rows)
    store = CatalogStore(fetcher=fetcher, ttl_seconds=300, clock=clock)
    store.get_all()

    assert store.invalidate("courses") == ["courses"]
    store.get_all()
    assert fetcher.calls == 2


def test_invalidate_product_tag_refreshes_on_lookup_of_that_product(catalog_rows):
    fetcher = _Fetcher(catalog_rows)
    store = CatalogStore(fetcher=fetcher, ttl_seconds=300)
    store.get_all()

    applied = store.invalidate("course:eb1a-guide", "bogus", "other:x")
    assert applied == ["course:eb1a-guide"]

    store.get_by_product_id("niw-guide")
    assert fetcher.calls == 1
    catalog_rows["courses"][0]["name"] = "EB1A Guide (2025)"
    assert store.get_by_product_id("eb1a-guide").product.name == "EB1A Guide (2025)"
    assert fetcher.calls == 2

    # le marqueur est consommé par le rafraîchissement
    store.get_by_product_id("eb1a-guide")
    assert fetcher.calls == 2


def test_health_ok(catalog):
    info = catalog.health()
    assert info["status"] == "ok"
    assert info["courseCount"] == 4
