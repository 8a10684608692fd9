import json
from typing import Dict, List

from loguru import logger

from leads.mapper import find_header_index
from rungraph.errors import NotAuthorized
from rungraph.state import SettingsRow, StepState
from rungraph.writeback import fail_row


def _cell(cells: List[str], idx: int) -> str:
    if idx < 0 or idx >= len(cells):
        return ""
    return (cells[idx] or "").strip()


def parse_settings_row(row: int, cells: List[str], headers: List[str], names: Dict[str, str],
                       pushed_col: int) -> SettingsRow:
    """
    Read a scrape-target descriptor out of one Settings row.

    Rows that will be skipped (already pushed, or no actor id) are returned
    without looking at the job parameters.

    Raises:
        ValueError: Max Limit is not a whole number, or Actor Input is not a JSON object
    """
    def named(role: str) -> str:
        return _cell(cells, find_header_index(headers, names[role]))

    settings: SettingsRow = {
        "row": row,
        "launch_key": named("launch_key"),
        "pushed": _cell(cells, pushed_col - 1).upper() == "Y",
        "apify_token": None,
        "max_limit": None,
        "actor_input": {},
    }
    if settings["pushed"] or not settings["launch_key"]:
        return settings

    settings["apify_token"] = named("apify_token") or None

    raw_limit = named("max_limit")
    if raw_limit:
        try:
            settings["max_limit"] = int(float(raw_limit.replace(",", "")))
        except ValueError:
            raise ValueError(f"Max Limit '{raw_limit}' is not a number")

    raw_input = named("actor_input")
    if raw_input:
        try:
            actor_input = json.loads(raw_input)
        except json.JSONDecodeError as e:
            raise ValueError(f"Actor Input is not valid JSON: {e.msg}")
        if not isinstance(actor_input, dict):
            raise ValueError("Actor Input must be a JSON object")
        settings["actor_input"] = actor_input
    return settings


def inspect_row(state: StepState) -> StepState:
    """Read the current Settings row and decide whether it needs a job."""
    run_state = state["run_state"]
    progress = run_state["current_run"]
    row = progress["row_numbers"][progress["current_index"]]

    if run_state.get("active_job_id"):
        # Job already launched for this row; keep polling it.
        state["settings_row"] = {"row": row, "apify_token": run_state.get("active_credential_token")}
        return state

    try:
        cells = state["services"].table.get_row(progress["spreadsheet_id"], progress["settings_sheet_name"], row)
        settings = parse_settings_row(
            row,
            cells,
            progress.get("headers_after_ensure", []),
            progress["descriptor_headers"],
            progress.get("columns", {}).get("pushed", 0),
        )
    except NotAuthorized:
        raise
    except Exception as e:
        return fail_row(state, row, str(e))

    state["settings_row"] = settings
    if settings["pushed"]:
        logger.info(f"Row {row} already pushed, skipping")
        state["outcome"] = {"row": row, "status": "skipped", "message": "Already pushed"}
    elif not settings["launch_key"]:
        logger.info(f"Row {row} has no actor id, skipping")
        state["outcome"] = {"row": row, "status": "skipped", "message": "No actor id"}
    return state
