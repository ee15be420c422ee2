import copy
import re
from dataclasses import asdict, dataclass
from typing import Any

_FULL_ADDRESS_WITH_ZIP = re.compile(r",\s*([^,]+),\s*([A-Z]{2})\s+\d{5}(-\d{4})?$")
_STATE_CODE = re.compile(r"^[A-Z]{2}$")
_CITY_STATE = re.compile(r"^([^,]+),\s*([A-Z]{2})$")
_CITY_STATE_ZIP = re.compile(r"^([^,]+),\s*([A-Z]{2})\s+\d{5}(-\d{4})?$")
_STREET_NUMBER = re.compile(r"^\d+\s")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class PrivacySettings:
    show_phone: bool = False
    show_address: bool = False
    hide_from_search: bool = False
    show_in_directory: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "PrivacySettings":
        """Parse stored flags. Anything malformed falls back to the most private defaults."""
        if not isinstance(raw, dict):
            return cls()
        show_phone = raw.get("show_phone")
        show_address = raw.get("show_address")
        if not isinstance(show_phone, bool) or not isinstance(show_address, bool):
            return cls()
        hide_from_search = raw.get("hide_from_search", False)
        show_in_directory = raw.get("show_in_directory", False)
        return cls(
            show_phone=show_phone,
            show_address=show_address,
            hide_from_search=hide_from_search if isinstance(hide_from_search, bool) else False,
            show_in_directory=show_in_directory if isinstance(show_in_directory, bool) else False,
        )

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


def extract_region(location: str | None) -> str:
    """Reduce an address to "City, ST" granularity.

    >>> extract_region("123 Main St, San Francisco, CA 94102")
    'San Francisco, CA'
    """
    if not location or not location.strip():
        return ""
    normalized = _WHITESPACE.sub(" ", location.strip())

    match = _FULL_ADDRESS_WITH_ZIP.search(normalized)
    if match:
        return f"{match.group(1)}, {match.group(2)}"

    parts = [part.strip() for part in normalized.split(",")]
    if len(parts) >= 3 and _STATE_CODE.match(parts[-1]):
        return f"{parts[-2]}, {parts[-1]}"

    if _CITY_STATE.match(normalized):
        return normalized

    match = _CITY_STATE_ZIP.match(normalized)
    if match:
        return f"{match.group(1)}, {match.group(2)}"

    if len(parts) == 1 and not _STREET_NUMBER.match(normalized):
        return normalized
    if len(parts) >= 2:
        return f"{parts[-2]}, {parts[-1]}"
    return normalized


def apply_privacy(content: dict[str, Any], settings: PrivacySettings) -> dict[str, Any]:
    """Return a filtered copy of resume content for public display.

    The phone is dropped unless ``show_phone``. Unless ``show_address``, the
    contact location and every experience and education location are reduced
    to region granularity.
    """
    filtered = copy.deepcopy(content)
    contact = filtered.get("contact")
    if isinstance(contact, dict):
        if not settings.show_phone:
            contact.pop("phone", None)
        if not settings.show_address and contact.get("location"):
            contact["location"] = extract_region(contact["location"])

    if not settings.show_address:
        for section in ("experience", "education"):
            entries = filtered.get(section)
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if isinstance(entry, dict) and entry.get("location"):
                    entry["location"] = extract_region(entry["location"])
    return filtered
