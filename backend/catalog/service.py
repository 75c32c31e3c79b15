"""
Catalog Store: catalogue en cache mémoire avec TTL, dernier état valide et entrée de secours.

- get_all / get_by_product_id / get_many: lectures servies depuis le cache (TTL CATALOG_TTL_SECONDS)
- En cas d'échec Supabase: sert le dernier snapshot valide pendant CATALOG_RETRY_SECONDS avant de retenter; sans snapshot, lève CatalogUnavailable
  jusqu'à CATALOG_MAX_FAILURES échecs consécutifs, puis sert l'entrée "emergency-fallback"
- invalidate(*tags): "courses" expire tout le snapshot, "course:<id>"/"bundle:<id>" forcent
  un rafraîchissement à la prochaine lecture ponctuelle de ce produit
- Rafraîchissement par simple remplacement (pas de verrou)
"""
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from backend.config import CATALOG_MAX_FAILURES, CATALOG_RETRY_SECONDS, CATALOG_TTL_SECONDS, LEARNWORLDS_SCHOOL_URL
from . import repository
from .models import CatalogEntry, Plan, Product, fallback_entry, PRICE_ID_PREFIX

logger = logging.getLogger(__name__)

class CatalogUnavailable(Exception):
    kind = "CatalogUnavailable"
    status_code = 503

    def __init__(self, message: str = "Course catalog temporarily unavailable"):
        super().__init__(message)
        self.message = message

class CatalogDataError(ValueError):
    """Données catalogue inexploitables (tables vides, champs requis manquants)."""

def course_url(category: str, enrollment_id: str, school_url: str = LEARNWORLDS_SCHOOL_URL) -> str:
    if category == "bundle":
        return f"{school_url}/program/{enrollment_id}"
    return f"{school_url}/path-player?courseid={enrollment_id}"

def build_entries(rows: Dict[str, List[Dict[str, Any]]], school_url: str = LEARNWORLDS_SCHOOL_URL) -> List[CatalogEntry]:
    """
    Valide les lignes brutes et construit les entrées du catalogue.
    - Lève CatalogDataError si aucun cours/plan ou si un champ requis manque.
    - Les price ids mal formés et les membres de bundle orphelins sont journalisés, pas fatals.
    """
    courses = rows.get("courses") or []
    plans = rows.get("plans") or []
    bundles = rows.get("bundles") or []

    if not courses:
        raise CatalogDataError("No courses found in database")
    if not plans:
        raise CatalogDataError("No course plans found in database")

    for c in courses:
        if not c.get("unique_id") or not c.get("name"):
            raise CatalogDataError(f"Invalid course data: missing required fields for course {c.get('id')}")
    for p in plans:
        if not p.get("course_id") or not p.get("label") or not p.get("enrollment_id") or not p.get("stripe_price_id"):
            raise CatalogDataError(f"Invalid plan data: missing required fields for plan {p.get('id')}")
        if not str(p["stripe_price_id"]).startswith(PRICE_ID_PREFIX):
            logger.warning("catalog.build_entries invalid stripe price id=%s plan=%s", p["stripe_price_id"], p.get("id"))

    id_to_unique = {str(c["id"]): c["unique_id"] for c in courses if c.get("id") is not None}

    plans_by_course: Dict[str, List[Plan]] = {}
    for p in plans:
        category = p.get("category") or "course"
        plans_by_course.setdefault(str(p["course_id"]), []).append(
            Plan(
                label=p["label"],
                category=category,
                type=p.get("type") or ("free" if int(p.get("price") or 0) == 0 else "paid"),
                price=int(p.get("price") or 0),
                enrollment_id=p["enrollment_id"],
                stripe_price_id=p["stripe_price_id"],
                url=course_url(category, p["enrollment_id"], school_url),
            )
        )

    children: Dict[str, List[str]] = {}
    for bi in bundles:
        child = id_to_unique.get(str(bi.get("child_course_id")))
        if not child:
            logger.warning("catalog.build_entries bundle item points to unknown course=%s", bi.get("child_course_id"))
            continue
        members = children.setdefault(str(bi.get("bundle_course_id")), [])
        if child not in members:
            members.append(child)

    entries: List[CatalogEntry] = []
    for c in courses:
        is_bundle = bool(c.get("is_bundle"))
        entries.append(
            CatalogEntry(
                product=Product(
                    id=c["unique_id"],
                    name=c["name"],
                    description=c.get("description") or "",
                    is_bundle=is_bundle,
                    package=children.get(str(c.get("id")), []) if is_bundle else [],
                ),
                plans=plans_by_course.get(str(c.get("id")), []),
            )
        )
    return entries

class CatalogStore:
    def __init__(
        self,
        fetcher: Optional[Callable[[], Dict[str, List[Dict[str, Any]]]]] = None,
        ttl_seconds: int = CATALOG_TTL_SECONDS,
        max_failures: int = CATALOG_MAX_FAILURES,
        retry_seconds: int = CATALOG_RETRY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        school_url: str = LEARNWORLDS_SCHOOL_URL,
    ):
        self._fetcher = fetcher
        self._ttl = ttl_seconds
        self._max_failures = max(1, max_failures)
        self._retry = max(0, min(retry_seconds, ttl_seconds))
        self._clock = clock
        self._school_url = school_url
        self._snapshot: Optional[List[CatalogEntry]] = None
        self._fetched_at: Optional[float] = None
        self._stale_ids: Set[str] = set()
        self.failures = 0
        self.source = "empty"  # database | last_known_good | fallback

    def _fetch_rows(self) -> Dict[str, List[Dict[str, Any]]]:
        if self._fetcher is not None:
            return self._fetcher()
        return repository.fetch_catalog_rows()

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._fetched_at is None:
            return False
        return (self._clock() - self._fetched_at) < self._ttl

    def refresh(self) -> List[CatalogEntry]:
        try:
            entries = build_entries(self._fetch_rows(), self._school_url)
        except Exception as e:
            self.failures += 1
            logger.exception("catalog.service.refresh failed attempt=%s/%s", self.failures, self._max_failures)
            if self._snapshot is not None:
                self.source = "last_known_good"
                # instantané servi retry_seconds avant la prochaine tentative
                self._fetched_at = self._clock() - self._ttl + self._retry
                self._stale_ids.clear()
                return self._snapshot
            if self.failures < self._max_failures:
                raise CatalogUnavailable() from e
            logger.error("catalog.service.refresh max failures reached, serving fallback entry")
            self.source = "fallback"
            return [fallback_entry()]

        self.failures = 0
        self._snapshot = entries
        self._fetched_at = self._clock()
        self._stale_ids.clear()
        self.source = "database"
        logger.info("catalog.service.refresh loaded courses=%s", len(entries))
        return entries

    def get_all(self) -> List[CatalogEntry]:
        if self._is_fresh():
            return self._snapshot  # type: ignore[return-value]
        return self.refresh()

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, CatalogEntry]:
        wanted = {str(i) for i in product_ids}
        if wanted & self._stale_ids:
            entries = self.refresh()
        else:
            entries = self.get_all()
        return {e.product.id: e for e in entries if e.product.id in wanted}

    def get_by_product_id(self, product_id: str) -> Optional[CatalogEntry]:
        return self.get_many([product_id]).get(product_id)

    def is_bundle(self, product_id: str) -> bool:
        entry = self.get_by_product_id(product_id)
        return bool(entry and entry.is_bundle)

    def bundle_members(self, product_id: str) -> List[str]:
        entry = self.get_by_product_id(product_id)
        return list(entry.product.package) if entry else []

    def invalidate(self, *tags: str) -> List[str]:
        applied: List[str] = []
        for tag in tags:
            if tag == "courses":
                self._fetched_at = None
            elif ":" in tag:
                kind, _, product_id = tag.partition(":")
                if kind not in ("course", "bundle") or not product_id:
                    continue
                self._stale_ids.add(product_id)
            else:
                continue
            applied.append(tag)
        if applied:
            logger.info("catalog.service.invalidate tags=%s", applied)
        return applied

    def reset(self) -> None:
        self._snapshot = None
        self._fetched_at = None
        self._stale_ids.clear()
        self.failures = 0
        self.source = "empty"

    def health(self) -> Dict[str, Any]:
        started = time.monotonic()
        try:
            entries = self.get_all()
        except Exception as e:
            return {"status": "error", "message": f"Health check failed: {e}", "failureCount": self.failures}
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if self.source == "fallback":
            return {
                "status": "error",
                "message": "Using emergency fallback data - database unavailable",
                "courseCount": len(entries),
                "failureCount": self.failures,
            }
        if self.source == "last_known_good":
            return {
                "status": "warning",
                "message": "Using cached data - database may be experiencing issues",
                "courseCount": len(entries),
                "failureCount": self.failures,
            }
        if not all(e.plans for e in entries):
            return {"status": "error", "message": "Some courses missing plans", "courseCount": len(entries)}
        if not all(p.has_valid_price_id for e in entries for p in e.plans):
            return {"status": "warning", "message": "Some plans have invalid Stripe price IDs", "courseCount": len(entries)}
        if not all(p.url and p.url != "#" for e in entries for p in e.plans):
            return {"status": "warning", "message": "Some plans have placeholder URLs", "courseCount": len(entries)}
        return {
            "status": "ok",
            "message": "All systems operational",
            "courseCount": len(entries),
            "responseTimeMs": elapsed_ms,
            "failureCount": self.failures,
        }

catalog_store = CatalogStore()

def get_catalog() -> CatalogStore:
    """Dépendance FastAPI: instance partagée du catalogue (surchargée dans les tests)."""
    return catalog_store
