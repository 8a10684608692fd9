from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypedDict, Optional, List, Dict, Any, Callable

from leads.dedup import DedupSet


class RowEntry(TypedDict, total=False):
    """One visited Settings row in the run log."""
    row: int
    status: str                      # "skipped" | "succeeded" | "failed"
    message: str
    dataset_url: str
    leads: int


class RunProgress(TypedDict, total=False):
    """Progress of one run over a contiguous Settings row range."""
    run_id: str
    spreadsheet_id: str
    settings_sheet_name: str
    leads_sheet_name: str
    start_row: int
    end_row: int
    row_numbers: List[int]           # computed once at start, [start_row..end_row]
    current_index: int               # cursor into row_numbers
    processed: int
    skipped: int
    total_leads: int
    started_at: str
    finished_at: Optional[str]
    cancelled: bool
    per_row: List[RowEntry]
    headers_after_ensure: List[str]  # Settings header row after write-back columns exist
    leads_headers: List[str]         # Leads header row, the destination schema
    existing_unique_ids: DedupSet
    columns: Dict[str, int]          # write-back role -> 1-based Settings column
    descriptor_headers: Dict[str, str]


class RunState(TypedDict, total=False):
    """Process-wide persisted orchestrator state."""
    cancel_requested: bool
    active_job_id: Optional[str]
    active_credential_token: Optional[str]
    current_run: Optional[RunProgress]


class SettingsRow(TypedDict, total=False):
    """Scrape-target descriptor read from one Settings row."""
    row: int
    launch_key: str                  # Apify actor or task id
    max_limit: Optional[int]
    actor_input: Dict[str, Any]
    apify_token: Optional[str]
    pushed: bool


class JobStatus(TypedDict, total=False):
    status: str                      # "running" | "succeeded" | "failed"
    provider_status: str
    dataset_url: str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunServices:
    """Collaborators one step needs. Nothing here survives between steps."""
    store: Any
    table: Any
    jobs: Any
    clock: Callable[[], datetime] = utc_now


class StepState(TypedDict, total=False):
    """State flowing through the nodes of one step."""
    services: RunServices
    run_id: str
    run_state: RunState
    settings_row: SettingsRow
    job: JobStatus
    outcome: Optional[RowEntry]      # set once the current row is finished
    waiting: bool                    # job still running, revisit the same row
    done: bool


def empty_run_state() -> RunState:
    return {
        "cancel_requested": False,
        "active_job_id": None,
        "active_credential_token": None,
        "current_run": None,
    }


def is_complete(progress: RunProgress) -> bool:
    return progress.get("current_index", 0) >= len(progress.get("row_numbers", []))


def is_active(progress: Optional[RunProgress]) -> bool:
    return bool(progress) and not progress.get("finished_at")


def snapshot(progress: RunProgress, done: Optional[bool] = None) -> Dict[str, Any]:
    """JSON-serializable view of a run for callers polling it."""
    if done is None:
        done = bool(progress.get("finished_at"))
    return {
        "ok": True,
        "run_id": progress.get("run_id"),
        "done": done,
        "cancelled": bool(progress.get("cancelled")),
        "spreadsheet_id": progress.get("spreadsheet_id"),
        "settings_sheet_name": progress.get("settings_sheet_name"),
        "leads_sheet_name": progress.get("leads_sheet_name"),
        "start_row": progress.get("start_row"),
        "end_row": progress.get("end_row"),
        "current_index": progress.get("current_index", 0),
        "total_rows": len(progress.get("row_numbers", [])),
        "processed": progress.get("processed", 0),
        "skipped": progress.get("skipped", 0),
        "total_leads": progress.get("total_leads", 0),
        "started_at": progress.get("started_at"),
        "finished_at": progress.get("finished_at"),
        "per_row": [dict(entry) for entry in progress.get("per_row", [])],
    }
