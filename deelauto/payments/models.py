from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel, Field, StrictBool, field_validator

class PaymentCreate(BaseModel):
    """Paiement saisi par l'administrateur (hors demande 'payer maintenant')."""
    title: str
    description: str
    amount_in_euros: float
    is_business_transaction: StrictBool
    send_at: datetime

    @field_validator("title", "description")
    def non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("doit être une chaîne non vide")
        return v

    @field_validator("amount_in_euros")
    def positive_amount(cls, v: float) -> float:
        if not v > 0:
            raise ValueError("doit être un nombre positif")
        return float(Decimal(str(v)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

class PaymentPaidUpdate(BaseModel):
    paid_at: datetime

class PayNowRequest(BaseModel):
    group_key: str = Field(pattern=r"^\d{4}-\d{2}-(business|personal)$")

class SyncRequest(BaseModel):
    """Corps optionnel de la synchronisation admin: un seul paiement si payment_id est donné."""
    payment_id: Optional[str] = None
