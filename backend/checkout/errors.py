"""
Erreurs de validation du checkout.
Chaque classe porte un `kind` stable (lisible par machine) et le code HTTP à renvoyer.
"""
from typing import List, Optional

class CheckoutValidationError(Exception):
    kind = "CheckoutValidationError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}

class ProductNotFound(CheckoutValidationError):
    kind = "ProductNotFound"

class PlanNotFound(CheckoutValidationError):
    kind = "PlanNotFound"

class PriceMismatch(CheckoutValidationError):
    kind = "PriceMismatch"

class EnrollmentIdMismatch(CheckoutValidationError):
    kind = "EnrollmentIdMismatch"

class InvalidPriceReference(CheckoutValidationError):
    kind = "InvalidPriceReference"

class AlreadyOwned(CheckoutValidationError):
    kind = "AlreadyOwned"

    def __init__(self, conflicting_names: List[str], conflicting_ids: Optional[List[str]] = None):
        self.conflicting_names = list(conflicting_names)
        self.conflicting_ids = list(conflicting_ids or [])
        super().__init__(
            f"You already own these items: {', '.join(self.conflicting_names)}. "
            "Please remove them from your cart."
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["conflictingItems"] = self.conflicting_names
        return data
