import copy
import os

os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Any, Dict, Generator
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from backend.app import app as fastapi_app
from backend.catalog.service import CatalogStore, get_catalog
from backend.utils.security import require_user

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

CATALOG_ROWS: Dict[str, Any] = {
    "courses": [
        {"id": "uuid-eb1a", "unique_id": "eb1a-guide", "name": "EB1A Guide", "description": "Extraordinary ability", "is_bundle": False},
        {"id": "uuid-niw", "unique_id": "niw-guide", "name": "NIW Guide", "description": "National interest waiver", "is_bundle": False},
        {"id": "uuid-bundle", "unique_id": "green-card-bundle", "name": "Green Card Bundle", "description": "EB1A + NIW", "is_bundle": True},
        {"id": "uuid-intro", "unique_id": "intro-free", "name": "Intro Course", "description": "Free intro", "is_bundle": False},
    ],
    "plans": [
        {"id": "p1", "course_id": "uuid-eb1a", "label": "6mo", "category": "course", "type": "paid", "price": 9900, "enrollment_id": "eb1a_course", "stripe_price_id": "price_eb1a_6mo"},
        {"id": "p2", "course_id": "uuid-eb1a", "label": "7day", "category": "course", "type": "paid", "price": 1900, "enrollment_id": "eb1a_course", "stripe_price_id": "price_eb1a_7day"},
        {"id": "p3", "course_id": "uuid-niw", "label": "6mo", "category": "course", "type": "paid", "price": 7900, "enrollment_id": "niw_course", "stripe_price_id": "price_niw_6mo"},
        {"id": "p4", "course_id": "uuid-bundle", "label": "6mo", "category": "bundle", "type": "paid", "price": 14900, "enrollment_id": "gc_bundle", "stripe_price_id": "price_bundle_6mo"},
        {"id": "p5", "course_id": "uuid-intro", "label": "6mo", "category": "course", "type": "free", "price": 0, "enrollment_id": "intro_course", "stripe_price_id": "price_intro_free"},
    ],
    "bundles": [
        {"bundle_course_id": "uuid-bundle", "child_course_id": "uuid-eb1a"},
        {"bundle_course_id": "uuid-bundle", "child_course_id": "uuid-niw"},
    ],
}

def cart_item(course_id: str, name: str, plan: str, price: int, enrollment_id: str, price_id: str) -> Dict[str, Any]:
    return {
        "courseId": course_id,
        "courseName": name,
        "planLabel": plan,
        "price": price,
        "enrollmentId": enrollment_id,
        "stripePriceId": price_id,
    }

EB1A_6MO = cart_item("eb1a-guide", "EB1A Guide", "6mo", 9900, "eb1a_course", "price_eb1a_6mo")
NIW_6MO = cart_item("niw-guide", "NIW Guide", "6mo", 7900, "niw_course", "price_niw_6mo")
BUNDLE_6MO = cart_item("green-card-bundle", "Green Card Bundle", "6mo", 14900, "gc_bundle", "price_bundle_6mo")
INTRO_FREE = cart_item("intro-free", "Intro Course", "6mo", 0, "intro_course", "price_intro_free")

@pytest.fixture()
def items() -> Dict[str, Dict[str, Any]]:
    """Lignes de panier conformes au catalogue de test."""
    return {
        "eb1a": dict(EB1A_6MO),
        "niw": dict(NIW_6MO),
        "bundle": dict(BUNDLE_6MO),
        "intro": dict(INTRO_FREE),
    }

@pytest.fixture()
def catalog_rows() -> Dict[str, Any]:
    return copy.deepcopy(CATALOG_ROWS)

@pytest.fixture()
def catalog(catalog_rows) -> CatalogStore:
    return CatalogStore(fetcher=lambda: catalog_rows, school_url="https://school.test")

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Catalogue statique pour les endpoints (pas d'accès Supabase)
@pytest.fixture(autouse=True)
def _override_catalog(app, catalog):
    app.dependency_overrides[get_catalog] = lambda: catalog
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_catalog, None)

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture()
def fake_user() -> Dict[str, Any]:
    return {
        "id": "auth-user-1",
        "email": "student@school.io",
        "full_name": "Test Student",
        "metadata": {"full_name": "Test Student"},
        "token": "fake-token",
    }

@pytest.fixture(autouse=True)
def _override_require_user(app, fake_user):
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun test ne doit toucher une vraie base Supabase
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("backend.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("backend.infra.supabase_client.get_service_supabase", lambda: MagicMock())
