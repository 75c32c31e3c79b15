import pytest

from backend.cart.models import CartItem
from backend.checkout.errors import (
    AlreadyOwned,
    EnrollmentIdMismatch,
    InvalidPriceReference,
    PlanNotFound,
    PriceMismatch,
    ProductNotFound,
)
from backend.checkout.validation import validate_checkout


def _cart(*raw):
    return [CartItem.model_validate(r) for r in raw]


@pytest.fixture(autouse=True)
def _owns_nothing(monkeypatch):
    monkeypatch.setattr("backend.ownership.service.get_owned_product_ids", lambda user_id, **kw: set())


def test_valid_cart_is_rederived_from_catalog(catalog, items):
    item = dict(items["eb1a"], courseName="Whatever the client says")
    lines = validate_checkout(_cart(item, items["niw"]), catalog)

    assert [line.course_id for line in lines] == ["eb1a-guide", "niw-guide"]
    assert lines[0].course_name == "EB1A Guide"
    assert lines[0].price == 9900
    assert lines[0].stripe_price_id == "price_eb1a_6mo"
    assert lines[0].line_id == "0:eb1a-guide:6mo"
    assert lines[1].line_id == "1:niw-guide:6mo"
    assert lines[0].product_type == "course"


def test_tampered_price_is_rejected(catalog, items):
    tampered = dict(items["eb1a"], price=100)
    with pytest.raises(PriceMismatch) as exc:
        validate_checkout(_cart(tampered), catalog)
    assert str(exc.value) == 'Price mismatch for "EB1A Guide". Expected: 9900, Received: 100'
    assert exc.value.to_dict() == {"error": str(exc.value), "kind": "PriceMismatch"}


def test_unknown_product(catalog, items):
    with pytest.raises(ProductNotFound, match="Course not found: ghost"):
        validate_checkout(_cart(dict(items["eb1a"], courseId="ghost")), catalog)


def test_unknown_plan(catalog, items):
    with pytest.raises(PlanNotFound, match='Plan "7day" not found for course "NIW Guide"'):
        validate_checkout(_cart(dict(items["niw"], planLabel="7day")), catalog)


def test_enrollment_id_mismatch(catalog, items):
    with pytest.raises(EnrollmentIdMismatch):
        validate_checkout(_cart(dict(items["niw"], enrollmentId="other")), catalog)


def test_invalid_price_reference_applies_to_free_plans(catalog_rows, items):
    from backend.catalog.service import CatalogStore

    catalog_rows["plans"][4]["stripe_price_id"] = "prod_intro"
    store = CatalogStore(fetcher=lambda: catalog_rows)
    with pytest.raises(InvalidPriceReference, match='Must start with "price_"'):
        validate_checkout(_cart(dict(items["intro"], stripePriceId="prod_intro")), store)


def test_free_line_with_valid_reference_passes(catalog, items):
    lines = validate_checkout(_cart(items["intro"]), catalog)
    assert lines[0].price == 0


def test_first_invalid_line_fails_whole_request(catalog, items):
    with pytest.raises(ProductNotFound):
        validate_checkout(_cart(items["eb1a"], dict(items["niw"], courseId="ghost"), dict(items["eb1a"], price=1)), catalog)


def test_already_owned_blocks_checkout(monkeypatch, catalog, items):
    monkeypatch.setattr("backend.ownership.service.get_owned_product_ids", lambda user_id, **kw: {"green-card-bundle"})
    with pytest.raises(AlreadyOwned) as exc:
        validate_checkout(_cart(items["eb1a"], items["intro"]), catalog, user_id="auth-user-1")

    err = exc.value
    assert err.conflicting_names == ["EB1A Guide (included in Green Card Bundle)"]
    assert str(err) == (
        "You already own these items: EB1A Guide (included in Green Card Bundle). Please remove them from your cart."
    )
    assert err.to_dict()["conflictingItems"] == ["EB1A Guide (included in Green Card Bundle)"]


def test_ownership_not_checked_without_user(monkeypatch, catalog, items):
    def _boom(user_id, **kw):
        raise AssertionError("ownership must not be resolved")

    monkeypatch.setattr("backend.ownership.service.get_owned_product_ids", _boom)
    assert len(validate_checkout(_cart(items["eb1a"]), catalog)) == 1


def test_ownership_is_resolved_strictly(monkeypatch, catalog, items):
    calls = []
    monkeypatch.setattr(
        "backend.ownership.service.get_owned_product_ids",
        lambda user_id, **kw: calls.append(kw) or set(),
    )
    validate_checkout(_cart(items["eb1a"]), catalog, user_id="auth-user-1")
    assert calls == [{"strict": True}]


def test_ownership_outage_blocks_checkout(monkeypatch, catalog, items):
    from backend.ownership.service import OwnershipUnavailable

    def _down(user_id, **kw):
        raise OwnershipUnavailable()

    monkeypatch.setattr("backend.ownership.service.get_owned_product_ids", _down)
    with pytest.raises(OwnershipUnavailable):
        validate_checkout(_cart(items["eb1a"]), catalog, user_id="auth-user-1")


def test_fallback_entry_cannot_be_checked_out():
    from backend.catalog.models import FALLBACK_PRODUCT_ID
    from backend.catalog.service import CatalogStore, CatalogUnavailable

    def _down():
        raise RuntimeError("db down")

    store = CatalogStore(fetcher=_down, max_failures=1)
    assert [e.product.id for e in store.get_all()] == [FALLBACK_PRODUCT_ID]

    item = {
        "courseId": FALLBACK_PRODUCT_ID,
        "courseName": "Service Unavailable",
        "planLabel": "6mo",
        "price": 0,
        "enrollmentId": "fallback",
        "stripePriceId": "price_fallback",
    }
    with pytest.raises(CatalogUnavailable):
        validate_checkout(_cart(item), store)
