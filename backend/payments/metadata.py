"""
Sérialisation/désérialisation de la commande dans les métadonnées Stripe.

Une commande est un seul document JSON: liste de lignes
{lineId, productId, productName, planLabel, price, enrollmentId, priceId, category, url}.
Stripe limite chaque valeur à 500 caractères et 50 clés: le JSON est découpé en
order_0, order_1, ... et order_parts donne le nombre de morceaux.
"""
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

logger = logging.getLogger(__name__)

METADATA_VALUE_LIMIT = 500
METADATA_KEY_LIMIT = 50
ORDER_PARTS_KEY = "order_parts"
ORDER_PREFIX = "order_"
# userId, userEmail, userName, itemCount, order_parts
_RESERVED_KEYS = 5

class OrderMetadataError(ValueError):
    """Métadonnées de commande absentes ou illisibles."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []

class OrderLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    line_id: str = Field(alias="lineId", min_length=1)
    product_id: str = Field(alias="productId", min_length=1)
    product_name: str = Field(alias="productName", min_length=1)
    plan_label: str = Field(alias="planLabel", min_length=1)
    price: int = Field(ge=0)
    enrollment_id: str = Field(alias="enrollmentId", min_length=1)
    price_id: str = Field(alias="priceId", default="")
    category: str = "course"
    url: str = "#"

    @property
    def product_type(self) -> str:
        return "bundle" if self.category == "bundle" else "course"

class OrderPayload(BaseModel):
    user_id: str = Field(min_length=1)
    user_email: EmailStr
    user_name: str = ""
    lines: List[OrderLine]

    @property
    def enrollment_ids(self) -> List[str]:
        return [line.enrollment_id for line in self.lines]

    @property
    def total(self) -> int:
        return sum(line.price for line in self.lines)

def order_lines_from_processed(lines: Sequence[Any]) -> List[OrderLine]:
    """Convertit des ProcessedLine (checkout) en lignes de commande."""
    return [
        OrderLine(
            line_id=line.line_id,
            product_id=line.course_id,
            product_name=line.course_name,
            plan_label=line.plan_label,
            price=line.price,
            enrollment_id=line.enrollment_id,
            price_id=line.stripe_price_id,
            category=line.category,
            url=line.url,
        )
        for line in lines
    ]

def build_order_metadata(*, user_id: str, user_email: str, user_name: str, lines: Sequence[OrderLine]) -> Dict[str, str]:
    """
    Construit les métadonnées de session (toutes les valeurs sont des str).
    - Lève OrderMetadataError si la commande dépasse la capacité des métadonnées Stripe.
    """
    doc = json.dumps(
        [line.model_dump(by_alias=True) for line in lines],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    parts = [doc[i:i + METADATA_VALUE_LIMIT] for i in range(0, len(doc), METADATA_VALUE_LIMIT)] or ["[]"]
    if len(parts) > METADATA_KEY_LIMIT - _RESERVED_KEYS:
        raise OrderMetadataError(f"order too large for session metadata ({len(lines)} lines)")

    metadata = {
        "userId": user_id,
        "userEmail": user_email,
        "userName": (user_name or "")[:METADATA_VALUE_LIMIT],
        "itemCount": str(len(lines)),
        ORDER_PARTS_KEY: str(len(parts)),
    }
    for i, part in enumerate(parts):
        metadata[f"{ORDER_PREFIX}{i}"] = part
    return metadata

def parse_order_metadata(metadata: Optional[Mapping[str, Any]]) -> OrderPayload:
    """
    Reconstruit la commande depuis les métadonnées d'une session.
    - Lève OrderMetadataError (missing=[...]) si userEmail/userId/lignes manquent
    - Lève OrderMetadataError si le JSON ou un champ de ligne est invalide
    """
    meta = dict(metadata or {})
    missing = [k for k in ("userId", "userEmail") if not meta.get(k)]
    try:
        count = int(meta.get(ORDER_PARTS_KEY) or 0)
    except (TypeError, ValueError):
        count = 0
    if count <= 0:
        missing.append("order")
    if missing:
        raise OrderMetadataError(f"missing metadata fields: {', '.join(missing)}", missing=missing)

    chunks = []
    for i in range(count):
        chunk = meta.get(f"{ORDER_PREFIX}{i}")
        if chunk is None:
            raise OrderMetadataError(f"missing order chunk {i}/{count}")
        chunks.append(str(chunk))

    try:
        raw_lines = json.loads("".join(chunks))
    except json.JSONDecodeError as e:
        raise OrderMetadataError(f"order JSON is not decodable: {e}") from e
    if not isinstance(raw_lines, list) or not raw_lines:
        raise OrderMetadataError("order must be a non-empty list", missing=["order"])

    try:
        lines = [OrderLine.model_validate(raw) for raw in raw_lines]
    except ValidationError as e:
        raise OrderMetadataError(f"invalid order line: {e.errors()[0].get('msg')}") from e

    line_ids = [line.line_id for line in lines]
    if len(set(line_ids)) != len(line_ids):
        raise OrderMetadataError("duplicate lineId in order")

    declared = meta.get("itemCount")
    if declared is not None and str(declared) != str(len(lines)):
        logger.warning("payments.metadata itemCount=%s differs from decoded lines=%s", declared, len(lines))

    try:
        return OrderPayload(
            user_id=str(meta["userId"]),
            user_email=str(meta["userEmail"]),
            user_name=str(meta.get("userName") or ""),
            lines=lines,
        )
    except ValidationError as e:
        raise OrderMetadataError(f"invalid order customer: {e.errors()[0].get('msg')}") from e
