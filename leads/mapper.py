"""
Record mapper: turns a batch of scraped places into Leads-tab rows.

The Leads header row is authoritative. Every header is resolved to a rule by
its normalized name; headers with no rule produce an empty cell. Records whose
unique id is already in the dedup set are dropped.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from leads import normalize as n
from leads.dedup import DedupSet
from leads.scoring import score_lead

UNIQUE_ID_KEYS = ["placeId", "place_id", "id", "placeID"]

CellRule = Callable[[Dict[str, Any], "MappingContext"], str]


class MappingContext:
    """Per-record values shared by the header rules."""

    def __init__(self, unique_id: str, first_seen: str):
        self.unique_id = unique_id
        self.first_seen = first_seen


def _text(*keys: str) -> CellRule:
    return lambda item, ctx: n.first_text(item, keys)


def _first_url(*keys: str) -> CellRule:
    return lambda item, ctx: n.to_first_url(n.get_item_field(item, keys))


HEADER_RULES: Dict[str, CellRule] = {
    "unique id": lambda item, ctx: ctx.unique_id,
    "business name": _text("title", "name"),
    "opening hours": lambda item, ctx: n.opening_hours_text(item),
    "comments": lambda item, ctx: "",
    "phone number": lambda item, ctx: n.normalize_phone(n.get_item_field(item, ["phone", "phoneNumber"])),
    "other phones": lambda item, ctx: n.normalize_phones(
        n.get_item_field(item, ["phones", "phoneNumbers", "otherPhones"])
    ),
    "email": lambda item, ctx: n.first_email(item),
    "other emails": lambda item, ctx: n.other_emails(item),
    "website url": _text("website", "web", "domain"),
    "address street": lambda item, ctx: n.address_street(item),
    "address city": lambda item, ctx: n.address_city(item),
    "address state": lambda item, ctx: n.address_state(item),
    "address postcode": lambda item, ctx: n.address_postal_code(item),
    "address postal code": lambda item, ctx: n.address_postal_code(item),
    "address country": lambda item, ctx: n.address_country_code(item),
    "address country code": lambda item, ctx: n.address_country_code(item),
    "list of services": lambda item, ctx: n.list_of_services(item),
    "facebook url": _first_url("facebook", "facebooks"),
    "linkedin url": _first_url("linkedIn", "linkedIns", "linkedin", "linkedins"),
    "twitter url": _first_url("twitter", "twitters"),
    "instagram url": _first_url("instagram", "instagrams"),
    "youtube url": _first_url("youtube", "youtubes"),
    "tiktok url": _first_url("tiktok", "tiktoks"),
    "pinterest url": _first_url("pinterest", "pinterests"),
    "discord url": _first_url("discord", "discords"),
    "google my business url": _text("placeUrl", "googleBusinessUrl", "gmbUrl"),
    "google maps url": _text("url", "googleMapsUrl", "mapsUrl"),
    "search word": _text("searchString", "searchTerm", "keyword"),
    "rating": _text("totalScore", "rating"),
    "reviews count": _text("reviewsCount", "reviews_count"),
    "date first added": lambda item, ctx: ctx.first_seen,
    "ai analysis": lambda item, ctx: str(score_lead(item)),
    "lead score": lambda item, ctx: str(score_lead(item)),
}


def normalize_header(header: Optional[str]) -> str:
    return " ".join((header or "").split()).lower()


def find_header_index(headers: Iterable[Optional[str]], header_name: str) -> int:
    """0-based index of a header, matched case/whitespace-insensitively; -1 if absent."""
    wanted = normalize_header(header_name)
    for i, header in enumerate(headers):
        if normalize_header(header) == wanted:
            return i
    return -1


def resolve_rules(destination_headers: List[str]) -> List[Optional[CellRule]]:
    """Look up each destination header's rule once per batch."""
    return [HEADER_RULES.get(normalize_header(h)) if normalize_header(h) else None for h in destination_headers]


def unique_id_of(item: Dict[str, Any]) -> str:
    return n.to_string_or_empty(n.get_item_field(item, UNIQUE_ID_KEYS)).strip()


def map_record(item: Dict[str, Any], rules: List[Optional[CellRule]], ctx: MappingContext) -> List[str]:
    return [rule(item, ctx) if rule else "" for rule in rules]


def map_records(
    raw_records: Iterable[Dict[str, Any]],
    destination_headers: List[str],
    dedup_set: DedupSet,
    now: Optional[datetime] = None,
) -> List[List[str]]:
    """
    Map raw records onto destination rows, skipping ids already in dedup_set.

    Args:
        raw_records: Scraped records from the provider
        destination_headers: Leads tab header row, in column order
        dedup_set: Ids already present; new non-empty ids are added to it
        now: Timestamp used for "Date First Added" (defaults to the current time)

    Returns:
        One list of cell strings per new record, aligned with destination_headers
    """
    first_seen = n.format_first_seen(now or datetime.now())
    rules = resolve_rules(destination_headers)

    rows: List[List[str]] = []
    duplicates = 0
    for item in raw_records:
        if not isinstance(item, dict):
            logger.warning(f"Skipping non-object record of type {type(item).__name__}")
            continue
        uid = unique_id_of(item)
        if uid and uid in dedup_set:
            duplicates += 1
            continue
        if uid:
            dedup_set.add(uid)
        rows.append(map_record(item, rules, MappingContext(uid, first_seen)))

    if duplicates:
        logger.info(f"Dropped {duplicates} duplicate record(s)")
    return rows
