"""
Modèles du catalogue (produits = cours ou bundles, et leurs plans tarifaires).
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

PRICE_ID_PREFIX = "price_"
PlanLabel = Literal["6mo", "7day"]

class Plan(BaseModel):
    label: str
    category: Literal["course", "bundle"] = "course"
    type: Literal["paid", "free"] = "paid"
    price: int = Field(ge=0)
    enrollment_id: str
    stripe_price_id: str
    url: str = "#"

    @property
    def has_valid_price_id(self) -> bool:
        return self.stripe_price_id.startswith(PRICE_ID_PREFIX)

class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    is_bundle: bool = False
    package: List[str] = Field(default_factory=list)

class CatalogEntry(BaseModel):
    product: Product
    plans: List[Plan] = Field(default_factory=list)

    @property
    def is_bundle(self) -> bool:
        # un produit est un bundle s'il est marqué comme tel ou si un de ses plans l'est
        return self.product.is_bundle or any(p.category == "bundle" for p in self.plans)

    def plan(self, label: str) -> Optional[Plan]:
        for p in self.plans:
            if p.label == label:
                return p
        return None

FALLBACK_PRODUCT_ID = "emergency-fallback"

def fallback_entry() -> CatalogEntry:
    """Entrée visible servie quand le catalogue est indisponible après plusieurs échecs."""
    return CatalogEntry(
        product=Product(
            id=FALLBACK_PRODUCT_ID,
            name="Service Unavailable",
            description="Database connection failed. Please try again later.",
        ),
        plans=[
            Plan(
                label="6mo",
                category="course",
                type="paid",
                price=0,
                enrollment_id="fallback",
                stripe_price_id="price_fallback",
                url="#",
            )
        ],
    )
