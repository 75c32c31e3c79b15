from typing import List, Literal
from pydantic import BaseModel, ConfigDict, Field

class CartItem(BaseModel):
    """Ligne de panier envoyée par le client (non fiable hormis courseId/planLabel)."""
    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(alias="courseId", min_length=1)
    course_name: str = Field(alias="courseName", min_length=1)
    plan_label: Literal["6mo", "7day"] = Field(alias="planLabel")
    price: int = Field(ge=0)
    enrollment_id: str = Field(alias="enrollmentId", min_length=1)
    stripe_price_id: str = Field(alias="stripePriceId", min_length=1)

class CartRequest(BaseModel):
    items: List[CartItem] = Field(min_length=1)
