from typing import Any, Dict, Optional

from loguru import logger

from rungraph.state import RowEntry, RunProgress, StepState


def write_back(table, progress: RunProgress, row: int, values: Dict[str, Any]) -> None:
    """Write role -> value pairs into the Settings row; roles without a resolved column are skipped."""
    columns = progress.get("columns", {})
    for role, value in values.items():
        col = columns.get(role, 0)
        if col:
            table.set_cell(progress["spreadsheet_id"], progress["settings_sheet_name"], row, col, value)


def fail_row(state: StepState, row: int, message: str, extra: Optional[Dict[str, Any]] = None) -> StepState:
    """Record a failed outcome for the current row and mark it Failed on the sheet, best effort."""
    logger.error(f"Row {row} failed: {message}")
    progress = state["run_state"]["current_run"]
    outcome: RowEntry = {"row": row, "status": "failed", "message": message}
    if extra:
        outcome.update(extra)
    state["outcome"] = outcome

    # A failed row never keeps its job; the next row starts fresh.
    state["run_state"]["active_job_id"] = None
    state["run_state"]["active_credential_token"] = None

    try:
        write_back(state["services"].table, progress, row, {"status": "Failed", "comments": message})
    except Exception as e:
        logger.warning(f"Could not mark row {row} as failed: {e}")
    return state
