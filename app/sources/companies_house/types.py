"""
Pydantic models for Companies House payloads.

The registry returns loosely structured JSON with many optional fields.
These records are the only shape the rest of the application sees; the
mapping from raw JSON (and every defaulting rule) lives in metadata.py.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class PartialDate(BaseModel):
    """Month/year date of birth as published by the registry (no day)."""
    month: Optional[int] = None
    year: Optional[int] = None

    def as_month_year(self) -> Optional[str]:
        """Format as "month/year", or None when the month is unknown."""
        if not self.month:
            return None
        return f"{self.month}/{self.year}" if self.year else str(self.month)


class OfficerRecord(BaseModel):
    """An officer listed against a company."""
    name: str = Field(..., description="Name as published, usually 'SURNAME, Forenames'")
    officer_role: str = Field(..., description="Role, e.g. director, secretary, llp-member")
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None
    appointments_ref: Optional[str] = Field(
        None, description="Opaque links.officer.appointments path for this officer"
    )
    nationality: Optional[str] = None
    occupation: Optional[str] = None
    date_of_birth: Optional[PartialDate] = None

    @property
    def is_active(self) -> bool:
        return self.resigned_on is None


class AppointmentRecord(BaseModel):
    """One appointment from an officer's appointment history."""
    company_number: Optional[str] = None
    company_name: Optional[str] = None
    company_status: Optional[str] = None
    officer_role: str = ""
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None

    @property
    def is_active(self) -> bool:
        return self.resigned_on is None


class CompanyRecord(BaseModel):
    """Company profile."""
    company_number: str
    company_name: str = ""
    company_status: Optional[str] = None
    company_type: Optional[str] = None
    date_of_creation: Optional[date] = None
    date_of_cessation: Optional[date] = None
    sic_codes: List[str] = Field(default_factory=list)

    @property
    def sector(self) -> Optional[str]:
        """First SIC code, used as the company's sector."""
        return self.sic_codes[0] if self.sic_codes else None

    @property
    def is_active(self) -> bool:
        return (self.company_status or "").lower() == "active"
