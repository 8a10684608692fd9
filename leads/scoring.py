from typing import Any, Dict, List

from leads.normalize import get_item_field, to_string_or_empty

BASELINE_SCORE = 2
MAX_SCORE = 10

WEBSITE_KEYS = ["website", "web", "domain"]
REVIEWS_KEYS = ["reviewsCount", "reviews", "reviews_count"]
RATING_KEYS = ["totalScore", "rating", "score"]
CATEGORY_KEYS = ["categories", "categoryName", "category"]

SOCIAL_KEYS = [
    "facebook", "facebooks",
    "linkedIn", "linkedIns", "linkedin", "linkedins",
    "instagram", "instagrams",
    "twitter", "twitters",
    "youtube", "youtubes",
    "tiktok", "tiktoks",
]

ICP_KEYWORDS = [
    "agency", "marketing", "consult", "software", "technology",
    "it ", "it services", "development", "web",
]


def _as_number(value: Any) -> float:
    """Coerce a loosely typed count/rating to a float; anything unparseable is 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return 0.0


def _category_text(record: Dict[str, Any]) -> str:
    parts: List[str] = []
    for key in CATEGORY_KEYS:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, list):
            for entry in value:
                if isinstance(entry, dict) and "name" in entry:
                    parts.append(to_string_or_empty(entry.get("name")))
                else:
                    parts.append(to_string_or_empty(entry))
        else:
            parts.append(to_string_or_empty(value))
    return " ".join(p for p in parts if p).lower()


def _has_social(record: Dict[str, Any]) -> bool:
    for key in SOCIAL_KEYS:
        value = record.get(key)
        if isinstance(value, list):
            if value:
                return True
        elif value:
            return True
    return False


def score_lead(record: Dict[str, Any]) -> int:
    """Heuristic lead quality score in [0, 10] for one scraped place."""
    score = BASELINE_SCORE

    website = to_string_or_empty(get_item_field(record, WEBSITE_KEYS)).strip()
    reviews_count = _as_number(get_item_field(record, REVIEWS_KEYS))
    rating = _as_number(get_item_field(record, RATING_KEYS))

    if website:
        score += 2
    if reviews_count >= 50:
        score += 2
    if reviews_count >= 200:
        score += 3
    if rating >= 4.5:
        score += 1
    if _has_social(record):
        score += 1

    categories = _category_text(record)
    if any(keyword in categories for keyword in ICP_KEYWORDS):
        score += 2

    return max(0, min(MAX_SCORE, score))
