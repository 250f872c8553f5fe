from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

class ReservationImportRow(BaseModel):
    """Une ligne de l'export des réservations (une par trajet)."""
    name_user: str = Field(min_length=1)
    reserved_start: datetime
    reserved_end: datetime
    effective_start: datetime
    effective_end: datetime
    license_plate: str = ""
    remarks: Optional[str] = None
    kilometers_start: Optional[float] = None
    kilometers_end: Optional[float] = None
    kilometers_driven: Optional[float] = None

    @field_validator("name_user", "license_plate")
    def strip_text(cls, v: str) -> str:
        return (v or "").strip()

class ReservationImportRequest(BaseModel):
    reservations: List[ReservationImportRow] = Field(min_length=1)

class BusinessStatusRequest(BaseModel):
    is_business_transaction: bool
