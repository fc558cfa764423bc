"""Defines upload allow-lists and local field validators.

Everything here runs before a remote call so trivially invalid input never
costs a round trip.
"""

import ipaddress
import logging
import re
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

# Allowed file extensions for supporting documents
ALLOWED_EXTENSIONS: set[str] = {".pdf", ".doc", ".docx", ".xls", ".xlsx", ".txt"}

# MIME type mapping for validation
MIME_MAPPING: dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".txt": "text/plain",
}

ALLOWED_MIME_TYPES: set[str] = set(MIME_MAPPING.values())

MAX_TITLE_CHARS: int = 128
MAX_CONTENT_CHARS: int = 9000

INVALID_URL_MESSAGE = (
    "Invalid URL format: please enter a valid company website starting with https:// "
    "(no localhost, no IP address)."
)
NAME_REQUIRED_MESSAGE = "Company Name is required"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_YEAR_RE = re.compile(r"^\d{4}$")


def is_valid_company_url(url: str | None) -> bool:
    """True for an http(s) URL whose host is a dotted domain name."""
    if not url or not url.strip():
        return False
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not hostname:
        return False
    if hostname == "localhost" or len(hostname.split(".")) < 2:
        return False
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return True
    return False


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email.strip()))


def is_valid_year(year: object) -> bool:
    return bool(_YEAR_RE.match(str(year).strip()))


def is_allowed_file(name: str, content_type: str | None) -> bool:
    """A file is accepted when its extension or its declared type is allow-listed."""
    dot = name.rfind(".")
    ext = name[dot:].lower() if dot != -1 else ""
    if ext in ALLOWED_EXTENSIONS:
        return True
    declared = (content_type or "").split(";")[0].strip().lower()
    return declared in ALLOWED_MIME_TYPES


def validate_profile_fields(fields: dict[str, object]) -> dict[str, str]:
    """Validates a company profile before confirmation.

    Args:
        fields: Profile values keyed by field name.

    Returns:
        A mapping of field name to inline error message; empty when valid.
    """
    errors: dict[str, str] = {}

    name = fields.get("name")
    if name is None or not str(name).strip():
        errors["name"] = NAME_REQUIRED_MESSAGE

    website = fields.get("website")
    if website and not is_valid_company_url(str(website)):
        errors["website"] = INVALID_URL_MESSAGE

    email = fields.get("email")
    if email and not is_valid_email(str(email)):
        errors["email"] = "Please enter a valid email address."

    founded_year = fields.get("founded_year")
    if founded_year not in (None, "") and not is_valid_year(founded_year):
        errors["founded_year"] = "Founded year must be a 4-digit year."

    if errors:
        logger.debug("Profile validation failed for fields: %s", sorted(errors))
    return errors
