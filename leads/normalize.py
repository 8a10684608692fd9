"""
Field normalizers for scraped place records.

Every function here is pure: it takes one raw record (a schemaless dict as
returned by the scrape provider) and produces the text for one Leads column.
Provider field names drift between actor versions, so most lookups take an
ordered list of aliases and use the first one that is present.
"""

import json
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

RawRecord = Dict[str, Any]

COUNTRY_NAME_TO_CODE: Dict[str, str] = {
    "australia": "AU",
    "united states": "US",
    "united states of america": "US",
    "usa": "US",
    "united kingdom": "GB",
    "uk": "GB",
    "canada": "CA",
    "germany": "DE",
    "france": "FR",
    "new zealand": "NZ",
    "japan": "JP",
    "china": "CN",
    "india": "IN",
    "singapore": "SG",
    "malaysia": "MY",
    "indonesia": "ID",
    "philippines": "PH",
    "vietnam": "VN",
    "thailand": "TH",
    "italy": "IT",
    "spain": "ES",
    "netherlands": "NL",
    "brazil": "BR",
    "mexico": "MX",
    "south korea": "KR",
    "hong kong": "HK",
}

WEEKDAYS: Dict[str, str] = {
    "monday": "Monday",
    "mon": "Monday",
    "tuesday": "Tuesday",
    "tue": "Tuesday",
    "tues": "Tuesday",
    "wednesday": "Wednesday",
    "wed": "Wednesday",
    "thursday": "Thursday",
    "thu": "Thursday",
    "thur": "Thursday",
    "thurs": "Thursday",
    "friday": "Friday",
    "fri": "Friday",
    "saturday": "Saturday",
    "sat": "Saturday",
    "sunday": "Sunday",
    "sun": "Sunday",
}

POSTAL_KEYS = ["postalCode", "zip", "addressPostalCode", "zipCode", "postcode"]
COUNTRY_KEYS = ["countryCode", "addressCountryCode", "country"]
STREET_KEYS = ["street", "streetAddress"]
CITY_KEYS = ["city", "municipality"]
STATE_KEYS = ["state", "region", "county"]
ADDRESS_KEYS = ["address", "fullAddress", "formattedAddress"]

NESTED_STREET_KEYS = ["street", "streetAddress", "line1", "address1"]
NESTED_CITY_KEYS = ["city", "locality", "municipality"]
NESTED_STATE_KEYS = ["state", "region", "province", "county"]
NESTED_POSTAL_KEYS = ["postalCode", "zip", "postcode", "zipCode"]
NESTED_COUNTRY_KEYS = ["countryCode", "country"]

OPENING_HOURS_KEYS = ["openingHours", "opening_hours", "openingHoursText", "openingHoursOpenDays"]
SERVICE_KEYS = ["categories", "categoryName", "category", "subTitle"]

_US_ZIP_RE = re.compile(r"\b(\d{5}(?:-\d{4})?)\b")
# Any token carrying a digit, optionally followed by a short inward code ("SW1A 1AA", "K1A 0B6").
_GENERIC_POSTAL_RE = re.compile(r"\b([A-Z0-9]*\d[A-Z0-9]*(?:\s\d[A-Z0-9]{2})?)\b", re.IGNORECASE)
_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(AM|PM)?$")
_RANGE_SPLIT_RE = re.compile(r"\s+to\s+|\s*[–—-]\s*", re.IGNORECASE)


# =============================================================================
# Generic accessors
# =============================================================================

def to_string_or_empty(value: Any) -> str:
    """Render any raw value as cell text. Containers fall back to compact JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def get_item_field(item: RawRecord, keys: Iterable[str]) -> Any:
    """Return the value of the first alias that is present and not null."""
    for key in keys:
        value = item.get(key)
        if value is not None:
            return value
    return None


def get_from_nested(obj: Any, keys: Iterable[str]) -> Any:
    if not isinstance(obj, dict):
        return None
    return get_item_field(obj, keys)


def first_text(item: RawRecord, keys: Iterable[str]) -> str:
    return to_string_or_empty(get_item_field(item, keys))


def to_first_url(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return value[0] if isinstance(value[0], str) else ""
    return ""


# =============================================================================
# Phones / emails
# =============================================================================

def normalize_phone(value: Any) -> str:
    return re.sub(r"\D", "", to_string_or_empty(value))


def normalize_phones(value: Any, separator: str = " | ") -> str:
    if isinstance(value, list):
        return separator.join(p for p in (normalize_phone(v) for v in value) if p)
    return normalize_phone(value)


def first_email(item: RawRecord) -> str:
    emails = get_item_field(item, ["emails", "email"])
    if isinstance(emails, list):
        return to_string_or_empty(emails[0]) if emails else ""
    return to_string_or_empty(emails)


def other_emails(item: RawRecord) -> str:
    emails = item.get("emails")
    if not isinstance(emails, list):
        return ""
    return "\n".join(e for e in (to_string_or_empty(v) for v in emails[1:]) if e)


# =============================================================================
# Address decomposition
# =============================================================================

def country_code_from(value: str) -> str:
    """Map a country name or code to an ISO-3166 alpha-2 guess."""
    text = value.strip()
    if not text:
        return ""
    mapped = COUNTRY_NAME_TO_CODE.get(text.lower())
    if mapped:
        return mapped
    if len(text) <= 3:
        return text[:2].upper()
    return re.sub(r"[^A-Za-z]", "", text)[:2].upper()


def _is_country_segment(segment: str) -> bool:
    return segment.lower() in COUNTRY_NAME_TO_CODE or (len(segment) <= 3 and segment.isalpha())


def _postal_from_segments(address: str, segments: List[str]) -> str:
    us_match = _US_ZIP_RE.search(address)
    if us_match:
        return us_match.group(1)
    # The first segment is the street line; its house number is not a postcode.
    for segment in reversed(segments[1:]):
        matches = _GENERIC_POSTAL_RE.findall(segment)
        if matches:
            return " ".join(matches[-1].split())
    return ""


def parse_address_string(address: str) -> Dict[str, str]:
    """Split a free-text address ("street, city, STATE 1234, Country") into parts."""
    parsed = {"street": "", "city": "", "state": "", "postal_code": "", "country_code": ""}
    segments = [s.strip() for s in address.split(",") if s.strip()]
    if not segments:
        return parsed

    postal_code = _postal_from_segments(address, segments)
    parsed["postal_code"] = postal_code
    parsed["country_code"] = country_code_from(segments[-1])
    parsed["street"] = segments[0]

    rest = segments[1:]
    if rest and _is_country_segment(rest[-1]):
        rest = rest[:-1]

    def strip_postal(segment: str) -> str:
        if postal_code and postal_code in segment:
            segment = segment.replace(postal_code, "")
        return " ".join(segment.split()).strip(" ,")

    if len(rest) >= 2:
        parsed["city"] = strip_postal(rest[0])
        parsed["state"] = strip_postal(rest[-1])
    elif rest:
        parsed["city"] = strip_postal(rest[0])
    return parsed


def _address_parts(item: RawRecord) -> Tuple[Optional[Dict[str, Any]], Dict[str, str]]:
    """Return the structured address object (if any) and the parsed free-text address."""
    address = get_item_field(item, ADDRESS_KEYS)
    if isinstance(address, dict):
        return address, {}
    if isinstance(address, str) and address.strip():
        return None, parse_address_string(address)
    return None, {}


def _address_field(item: RawRecord, top_keys: List[str], nested_keys: List[str], parsed_key: str) -> str:
    top = to_string_or_empty(get_item_field(item, top_keys)).strip()
    if top:
        return top
    structured, parsed = _address_parts(item)
    if structured is not None:
        return to_string_or_empty(get_from_nested(structured, nested_keys)).strip()
    return parsed.get(parsed_key, "")


def address_street(item: RawRecord) -> str:
    return _address_field(item, STREET_KEYS, NESTED_STREET_KEYS, "street")


def address_city(item: RawRecord) -> str:
    return _address_field(item, CITY_KEYS, NESTED_CITY_KEYS, "city")


def address_state(item: RawRecord) -> str:
    return _address_field(item, STATE_KEYS, NESTED_STATE_KEYS, "state")


def address_postal_code(item: RawRecord) -> str:
    return _address_field(item, POSTAL_KEYS, NESTED_POSTAL_KEYS, "postal_code")


def address_country_code(item: RawRecord) -> str:
    top = to_string_or_empty(get_item_field(item, COUNTRY_KEYS)).strip()
    if top:
        return country_code_from(top)
    structured, parsed = _address_parts(item)
    if structured is not None:
        return country_code_from(to_string_or_empty(get_from_nested(structured, NESTED_COUNTRY_KEYS)))
    return parsed.get("country_code", "")


# =============================================================================
# Opening hours
# =============================================================================

def normalize_weekday(raw_day: str) -> str:
    cleaned = raw_day.strip().rstrip(".").lower()
    return WEEKDAYS.get(cleaned, raw_day.strip())


def _parse_time(raw: str) -> Optional[Tuple[int, str, str]]:
    cleaned = " ".join(raw.split()).upper().replace(".", "")
    match = _TIME_RE.match(cleaned)
    if not match:
        return None
    return int(match.group(1)), match.group(2) or "00", match.group(3) or ""


def _render_time(hour: int, minute: str, meridiem: str) -> str:
    text = str(hour) if minute == "00" else f"{hour}:{minute}"
    return f"{text} {meridiem}" if meridiem else text


def normalize_time(raw: str, fallback_meridiem: str = "") -> str:
    """Render "5:30pm" as "5:30 PM" and "9" (with a fallback meridiem) as "9 AM"."""
    parsed = _parse_time(raw)
    if parsed is None:
        return raw.strip()
    hour, minute, meridiem = parsed
    return _render_time(hour, minute, meridiem or fallback_meridiem)


def _infer_start_meridiem(start: Tuple[int, str, str], end: Tuple[int, str, str]) -> str:
    end_meridiem = end[2]
    if not end_meridiem:
        return ""
    start_key = (start[0] % 12, int(start[1]))
    end_key = (end[0] % 12, int(end[1]))
    if start_key > end_key:
        return "AM" if end_meridiem == "PM" else "PM"
    return end_meridiem


def normalize_hours_range(text: str) -> str:
    parts = _RANGE_SPLIT_RE.split(text)
    if len(parts) != 2:
        return normalize_time(text)
    start_raw, end_raw = parts[0].strip(), parts[1].strip()
    start, end = _parse_time(start_raw), _parse_time(end_raw)
    if start is None or end is None:
        return f"{normalize_time(start_raw)} to {normalize_time(end_raw)}"
    start_meridiem = start[2] or _infer_start_meridiem(start, end)
    return f"{_render_time(start[0], start[1], start_meridiem)} to {_render_time(*end)}"


def normalize_hours_ranges(raw_hours: str) -> str:
    cleaned = " ".join(raw_hours.split())
    if not cleaned:
        return ""
    if cleaned.lower() == "closed":
        return "Closed"
    ranges = [r.strip() for r in cleaned.split(",") if r.strip()]
    return ", ".join(normalize_hours_range(r) for r in ranges)


def opening_hours_text(item: RawRecord) -> str:
    value = get_item_field(item, OPENING_HOURS_KEYS)
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        lines = []
        for entry in value:
            if not isinstance(entry, dict):
                lines.append(to_string_or_empty(entry))
                continue
            raw_day = to_string_or_empty(get_item_field(entry, ["day", "weekday", "name"]))
            if not raw_day:
                lines.append(to_string_or_empty(entry))
                continue
            raw_hours = to_string_or_empty(get_item_field(entry, ["hours", "open", "time"]))
            hours = normalize_hours_ranges(raw_hours)
            lines.append(f"{normalize_weekday(raw_day)} - {hours or 'Closed'}")
        return "\n".join(line for line in lines if line)
    if isinstance(value, dict):
        weekday_text = value.get("weekdayText")
        if isinstance(weekday_text, list):
            return "\n".join(t for t in (to_string_or_empty(x) for x in weekday_text) if t)
    return to_string_or_empty(value)


# =============================================================================
# Services / categories
# =============================================================================

def list_of_services(item: RawRecord) -> str:
    parts: List[str] = []

    def add(label: str) -> None:
        label = label.strip()
        if label and label not in parts:
            parts.append(label)

    categories = get_item_field(item, SERVICE_KEYS)
    if isinstance(categories, list):
        for category in categories:
            if isinstance(category, dict) and "name" in category:
                add(to_string_or_empty(category.get("name")))
            else:
                add(to_string_or_empty(category))
    else:
        add(to_string_or_empty(categories))

    additional_info = item.get("additionalInfo")
    if isinstance(additional_info, dict):
        for options in additional_info.values():
            if not isinstance(options, list):
                continue
            for option in options:
                if not isinstance(option, dict):
                    continue
                for name, flag in option.items():
                    if flag is True or flag == "true" or (flag == 1 and not isinstance(flag, bool)):
                        add(str(name))

    return " | ".join(parts)


# =============================================================================
# Timestamps
# =============================================================================

def format_first_seen(now: datetime) -> str:
    """Format like en-AU locale strings: "17/10/2026, 3:04:05 pm"."""
    hour = now.hour % 12 or 12
    meridiem = "am" if now.hour < 12 else "pm"
    return f"{now.day:02d}/{now.month:02d}/{now.year}, {hour}:{now.minute:02d}:{now.second:02d} {meridiem}"
