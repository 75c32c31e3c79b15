"""
Cart Conflict Checker: détecte les lignes de panier déjà possédées par l'utilisateur.

Règles, dans l'ordre (la première qui s'applique gagne, une ligne n'est reportée qu'une fois):
  1) le produit est possédé directement
  2) la ligne est un bundle dont au moins un membre est possédé
  3) la ligne est un cours inclus dans un bundle possédé
Les conflits sont rendus dans l'ordre du panier.
"""
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from backend.catalog.service import CatalogStore

class ConflictReport:
    def __init__(self, conflicting_lines: Optional[List[Any]] = None, conflicting_names: Optional[List[str]] = None):
        self.conflicting_lines = conflicting_lines or []
        self.conflicting_names = conflicting_names or []

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicting_lines)

    @property
    def message(self) -> Optional[str]:
        if not self.has_conflicts:
            return None
        return (
            f"You already own these courses: {', '.join(self.conflicting_names)}. "
            "Please remove them from your cart to continue."
        )

def _owned_bundles(owned_ids: Set[str], catalog: CatalogStore) -> List[Tuple[str, str, List[str]]]:
    """(id, nom, membres) des bundles possédés."""
    owned = catalog.get_many(owned_ids)
    return [
        (pid, entry.product.name, list(entry.product.package))
        for pid, entry in owned.items()
        if entry.is_bundle
    ]

def check_cart_conflicts(lines: Sequence[Any], owned_ids: Iterable[str], catalog: CatalogStore) -> ConflictReport:
    """
    lines: objets exposant course_id et course_name (CartItem ou ProcessedLine).
    owned_ids: sortie de l'Ownership Resolver.
    """
    owned = {str(i) for i in owned_ids}
    report = ConflictReport()
    if not owned or not lines:
        return report

    entries = catalog.get_many(line.course_id for line in lines)
    owned_bundles = _owned_bundles(owned, catalog)

    for line in lines:
        name = None
        entry = entries.get(line.course_id)
        if line.course_id in owned:
            name = line.course_name
        elif entry is not None and entry.is_bundle:
            if any(member in owned for member in entry.product.package):
                name = f"{line.course_name} (contains owned courses)"
        else:
            for _, bundle_name, members in owned_bundles:
                if line.course_id in members:
                    name = f"{line.course_name} (included in {bundle_name})"
                    break
        if name is not None:
            report.conflicting_lines.append(line)
            report.conflicting_names.append(name)
    return report

def can_add_to_cart(course_id: str, owned_ids: Iterable[str], catalog: CatalogStore) -> Tuple[bool, Optional[str]]:
    """Vérification unitaire avant ajout au panier: (autorisé, raison)."""
    owned = {str(i) for i in owned_ids}
    if course_id in owned:
        return False, "You already own this course"
    entry = catalog.get_by_product_id(course_id)
    if entry is not None and entry.is_bundle:
        if any(member in owned for member in entry.product.package):
            return False, "You already own a course included in this bundle"
        return True, None
    for _, bundle_name, members in _owned_bundles(owned, catalog):
        if course_id in members:
            return False, f"You already own this course as part of the {bundle_name} bundle"
    return True, None
