import os
import json
from typing import Dict

from loguru import logger

# Settings tab columns the run writes back to, keyed by role.
DEFAULT_WRITEBACK_HEADERS: Dict[str, str] = {
    "dataset": "Dataset URL",
    "scraped": "Scraped",
    "status": "Status",
    "comments": "Comments",
    "scrape_status": "Scrape Status",
    "push_status": "Google-Maps Push Status",
    "pushed": "Pushed",
}

# Settings tab columns that describe the scrape job for a row.
DEFAULT_DESCRIPTOR_HEADERS: Dict[str, str] = {
    "launch_key": "Actor ID",
    "max_limit": "Max Limit",
    "actor_input": "Actor Input",
    "apify_token": "Apify Token",
}

UNIQUE_ID_HEADER = "Unique ID"


def load_column_names() -> Dict[str, Dict[str, str]]:
    """Load Settings column names, applying overrides from SHEET_COLUMNS_JSON."""
    columns = {
        "writeback": dict(DEFAULT_WRITEBACK_HEADERS),
        "descriptor": dict(DEFAULT_DESCRIPTOR_HEADERS),
    }
    path = os.getenv("SHEET_COLUMNS_JSON", "./infra/columns.json")
    try:
        with open(path, "r") as f:
            overrides = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Column config not found at {path}, using defaults")
        return columns
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON in column config {path}, using defaults")
        return columns

    for section in ("writeback", "descriptor"):
        for role, header in (overrides.get(section) or {}).items():
            if role in columns[section] and isinstance(header, str) and header.strip():
                columns[section][role] = header.strip()
            else:
                logger.warning(f"Ignoring unknown column override {section}.{role}")
    return columns
