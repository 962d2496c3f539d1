"""Content normalization and validation for outgoing email

Pure functions only. Every read or write of the comma-joined address columns
and the JSON tag column goes through the join/split helpers here.
"""
import json
import re
import uuid
from typing import Iterable, List, Optional, Sequence, Union

from mailrelay.core.errors import INVALID_ADDRESS, MISSING_CONTENT, ValidationError

CONTENT_TYPE_HTML = "html"
CONTENT_TYPE_TEXT = "text"
CONTENT_TYPE_MIXED = "mixed"

ADDRESS_DELIMITER = ","

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def generate_email_id() -> str:
    """Generate a unique id for an email log entry"""
    return f"email_{uuid.uuid4()}"


def is_valid_email(address: str) -> bool:
    return bool(address) and EMAIL_REGEX.match(address) is not None


def validate_addresses(addresses: Union[str, Sequence[str]]) -> List[str]:
    """Validate one or many addresses, all-or-nothing.

    Returns the addresses as a list in their original order. Raises
    ValidationError naming every malformed address if any fail.
    """
    address_list = [addresses] if isinstance(addresses, str) else list(addresses)
    invalid = [address for address in address_list if not is_valid_email(address)]

    if invalid:
        raise ValidationError(
            f"Invalid email addresses: {', '.join(str(a) for a in invalid)}",
            code=INVALID_ADDRESS
        )

    return address_list


def determine_content_type(html: Optional[str] = None, text: Optional[str] = None) -> str:
    """Classify the body: mixed when both are present, otherwise whichever one is.

    A part that is blank after sanitizing counts as absent.
    """
    html, text = sanitize_content(html), sanitize_content(text)
    if html and text:
        return CONTENT_TYPE_MIXED
    if html:
        return CONTENT_TYPE_HTML
    if text:
        return CONTENT_TYPE_TEXT
    raise ValidationError("Either html or text content is required", code=MISSING_CONTENT)


def sanitize_content(raw: Optional[str]) -> str:
    """Strip null bytes and surrounding whitespace"""
    if not raw:
        return ""
    return raw.replace("\x00", "").strip()


def select_stored_content(html: Optional[str] = None, text: Optional[str] = None) -> str:
    """The single body persisted on the log entry: html when non-blank, else text"""
    return sanitize_content(html) or sanitize_content(text)


def join_addresses(addresses: Optional[Iterable[str]]) -> Optional[str]:
    """Comma-join for storage; None (never "") for an empty or absent list"""
    if not addresses:
        return None
    if isinstance(addresses, str):
        addresses = [addresses]
    joined = ADDRESS_DELIMITER.join(address for address in addresses if address)
    return joined or None


def split_addresses(value: Optional[str]) -> List[str]:
    """Inverse of join_addresses"""
    if not value:
        return []
    return [part.strip() for part in value.split(ADDRESS_DELIMITER) if part.strip()]


def serialize_tags(tags: Optional[Iterable[dict]]) -> Optional[str]:
    """JSON-encode a [{name, value}] tag list for storage"""
    if not tags:
        return None
    return json.dumps([{"name": tag["name"], "value": tag["value"]} for tag in tags])


def parse_tags(value: Optional[str]) -> List[dict]:
    if not value:
        return []
    try:
        tags = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return []
    return tags if isinstance(tags, list) else []
