"""
Companies House metadata utilities.

Handles:
- Mapping raw officer, appointment and company payloads to typed records
- Defaulting rules for missing or malformed fields
- Officer id extraction from appointment links
- Role normalization
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from app.sources.companies_house.types import (
    AppointmentRecord,
    CompanyRecord,
    OfficerRecord,
    PartialDate,
)

logger = logging.getLogger(__name__)

UNKNOWN_OFFICER_NAME = "Unknown officer"

# Page size accepted by the officers and appointments endpoints
DEFAULT_ITEMS_PER_PAGE = 100


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a registry ISO date (YYYY-MM-DD).

    Returns None for missing or malformed values rather than failing the record.
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.debug(f"Ignoring malformed date: {value!r}")
        return None


def normalize_role(role: Optional[str]) -> str:
    """
    Normalize an officer role for comparison.

    The registry uses hyphenated slugs ("llp-member"); callers compare
    against plain lowercase phrases ("llp member").
    """
    if not role:
        return ""
    return " ".join(role.replace("-", " ").replace("_", " ").lower().split())


def extract_officer_id(appointments_ref: Optional[str]) -> Optional[str]:
    """
    Extract the registry officer id from an appointments link.

    "/officers/abc123/appointments" -> "abc123". Absolute URLs and query
    strings are accepted. Returns None when no id can be found.
    """
    if not appointments_ref:
        return None

    path = urlparse(appointments_ref).path
    segments = [s for s in path.split("/") if s]
    if segments and segments[-1] == "appointments":
        segments = segments[:-1]
    if not segments:
        return None
    officer_id = segments[-1]
    if officer_id == "officers":
        return None
    return officer_id


def parse_officer(item: Dict[str, Any]) -> OfficerRecord:
    """Map one entry of the officers endpoint to an OfficerRecord."""
    links = item.get("links") or {}
    officer_links = links.get("officer") or {}

    dob = item.get("date_of_birth")
    date_of_birth = None
    if isinstance(dob, dict) and (dob.get("month") or dob.get("year")):
        date_of_birth = PartialDate(month=dob.get("month"), year=dob.get("year"))

    return OfficerRecord(
        name=(item.get("name") or "").strip() or UNKNOWN_OFFICER_NAME,
        officer_role=item.get("officer_role") or "",
        appointed_on=parse_date(item.get("appointed_on")),
        resigned_on=parse_date(item.get("resigned_on")),
        appointments_ref=officer_links.get("appointments") or None,
        nationality=item.get("nationality") or None,
        occupation=item.get("occupation") or None,
        date_of_birth=date_of_birth,
    )


def parse_officers(api_response: Dict[str, Any]) -> List[OfficerRecord]:
    """Map an officers page to records, skipping entries that fail to parse."""
    officers = []
    for item in api_response.get("items") or []:
        try:
            officers.append(parse_officer(item))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unparseable officer record: {e}")
    return officers


def parse_appointment(item: Dict[str, Any]) -> AppointmentRecord:
    """Map one entry of an officer's appointments to an AppointmentRecord."""
    appointed_to = item.get("appointed_to") or {}
    return AppointmentRecord(
        company_number=appointed_to.get("company_number") or None,
        company_name=appointed_to.get("company_name") or None,
        company_status=appointed_to.get("company_status") or None,
        officer_role=item.get("officer_role") or "",
        appointed_on=parse_date(item.get("appointed_on")),
        resigned_on=parse_date(item.get("resigned_on")),
    )


def parse_appointments(api_response: Dict[str, Any]) -> List[AppointmentRecord]:
    """Map an appointments page to records, skipping entries that fail to parse."""
    appointments = []
    for item in api_response.get("items") or []:
        try:
            appointments.append(parse_appointment(item))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping unparseable appointment record: {e}")
    return appointments


def parse_company(data: Dict[str, Any], company_number: str) -> CompanyRecord:
    """
    Map a company profile to a CompanyRecord.

    Args:
        data: Company profile payload
        company_number: Number that was requested (used if the payload omits it)
    """
    sic_codes = data.get("sic_codes") or []
    return CompanyRecord(
        company_number=data.get("company_number") or company_number,
        company_name=data.get("company_name") or "",
        company_status=data.get("company_status") or None,
        company_type=data.get("type") or data.get("company_type") or None,
        date_of_creation=parse_date(data.get("date_of_creation")),
        date_of_cessation=parse_date(data.get("date_of_cessation")),
        sic_codes=[str(code) for code in sic_codes if code],
    )


def next_start_index(api_response: Dict[str, Any], start_index: int, page_count: int) -> Optional[int]:
    """
    Work out the start_index of the next page, or None when done.

    Stops when a page comes back empty or total_results has been reached.
    """
    if page_count == 0:
        return None
    next_index = start_index + page_count
    total = api_response.get("total_results")
    if total is None or next_index >= int(total):
        return None
    return next_index
