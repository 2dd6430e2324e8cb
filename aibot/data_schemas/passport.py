# aibot/data_schemas/passport.py

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Passport(BaseModel):
    """Fields extracted from an identity document image"""

    model_config = ConfigDict(extra="forbid")

    passport_no: Optional[str] = None
    name: Optional[str] = None
    birthdate: Optional[date] = None  # YYYY-MM-DD
    gender: Optional[str] = None
    nationality: Optional[str] = None
    issue_date: Optional[date] = None  # YYYY-MM-DD
    expiry_date: Optional[date] = None  # YYYY-MM-DD
