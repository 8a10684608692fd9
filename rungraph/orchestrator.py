"""
Run orchestrator: walks a range of Settings rows one bounded step at a time.

Every entry point loads the run state from the store, does its work and saves
it back, so consecutive calls may land on different processes. A step is a
compiled LangGraph workflow:

    load_run -> [finalize_cancelled | inspect_row -> run_job -> push_results] -> advance -> persist
"""

import uuid
from typing import Any, Callable, Dict, Optional

from langgraph.graph import StateGraph, START, END
from loguru import logger

from connectors.apify import get_job_provider
from connectors.google_auth import get_auth_url, is_authorized
from connectors.run_store import get_run_state_store
from connectors.sheets import get_sheets_client
from leads.dedup import seed_from_column
from rungraph.columns import UNIQUE_ID_HEADER, load_column_names
from rungraph.errors import InvalidRange, NoActiveRun, NotAuthorized, RunInProgress, TableServiceError
from rungraph.nodes.advance import advance
from rungraph.nodes.cancel import finalize_cancelled
from rungraph.nodes.inspect import inspect_row
from rungraph.nodes.job import run_job
from rungraph.nodes.load import load_run
from rungraph.nodes.persist import persist
from rungraph.nodes.push import push_results
from rungraph.state import (
    RunProgress,
    RunServices,
    StepState,
    empty_run_state,
    is_active,
    is_complete,
    snapshot,
    utc_now,
)


def build_step_workflow():
    """Build the workflow that performs one step of a run."""
    workflow = StateGraph(StepState)

    workflow.add_node("load_run", load_run)
    workflow.add_node("finalize_cancelled", finalize_cancelled)
    workflow.add_node("inspect_row", inspect_row)
    workflow.add_node("run_job", run_job)
    workflow.add_node("push_results", push_results)
    workflow.add_node("advance", advance)
    workflow.add_node("persist", persist)

    workflow.add_edge(START, "load_run")

    def after_load(state: StepState) -> str:
        run_state = state["run_state"]
        progress = run_state["current_run"]
        if progress.get("finished_at"):
            return "finished"
        if run_state.get("cancel_requested"):
            return "cancel"
        if is_complete(progress):
            return "advance"
        return "inspect"

    def after_inspect(state: StepState) -> str:
        return "advance" if state.get("outcome") else "run_job"

    def after_job(state: StepState) -> str:
        if state.get("outcome"):
            return "advance"
        if state.get("waiting"):
            return "persist"
        return "push"

    workflow.add_conditional_edges(
        "load_run",
        after_load,
        {
            "finished": END,
            "cancel": "finalize_cancelled",
            "advance": "advance",
            "inspect": "inspect_row",
        }
    )
    workflow.add_conditional_edges(
        "inspect_row",
        after_inspect,
        {"advance": "advance", "run_job": "run_job"}
    )
    workflow.add_conditional_edges(
        "run_job",
        after_job,
        {"advance": "advance", "persist": "persist", "push": "push_results"}
    )

    workflow.add_edge("finalize_cancelled", "persist")
    workflow.add_edge("push_results", "advance")
    workflow.add_edge("advance", "persist")
    workflow.add_edge("persist", END)

    return workflow.compile()


def _is_row_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class RunOrchestrator:
    """Entry points for starting, stepping, cancelling and inspecting a run."""

    def __init__(
        self,
        store=None,
        table_factory: Optional[Callable[[str], Any]] = None,
        jobs=None,
        auth_check: Callable[[Optional[str]], bool] = is_authorized,
        auth_url: Callable[[], Optional[str]] = get_auth_url,
        clock=utc_now,
    ):
        self.store = store or get_run_state_store()
        self.table_factory = table_factory or get_sheets_client
        self.jobs = jobs or get_job_provider()
        self.auth_check = auth_check
        self.auth_url = auth_url
        self.clock = clock
        self.step_graph = build_step_workflow()

    def _require_auth(self, auth_token: Optional[str]) -> None:
        if not self.auth_check(auth_token):
            raise NotAuthorized(auth_url=self.auth_url())

    def _abort_quietly(self, job_id: Optional[str], token: Optional[str]) -> None:
        if not job_id:
            return
        try:
            self.jobs.abort_job(job_id, token)
        except Exception as e:
            logger.warning(f"Failed to abort job {job_id}: {e}")

    def start_run(
        self,
        spreadsheet_id: str,
        settings_sheet_name: str,
        leads_sheet_name: str,
        start_row: int,
        end_row: int,
        auth_token: Optional[str],
        supersede: bool = False,
    ) -> Dict[str, Any]:
        """
        Start a run over Settings rows start_row..end_row (inclusive, row 1 is headers).

        Raises:
            NotAuthorized: no usable Google token
            InvalidRange: bad row bounds
            RunInProgress: another run is unfinished and supersede is False
            TableServiceError: Leads tab has no header row, or Settings tab is not accessible
            StorageError: the new run could not be saved
        """
        self._require_auth(auth_token)

        if not _is_row_number(start_row) or not _is_row_number(end_row):
            raise InvalidRange("Start and end rows must be whole numbers.")
        if start_row < 2:
            raise InvalidRange("Start row must be 2 or greater; row 1 holds the headers.")
        if end_row < start_row:
            raise InvalidRange("End row must be greater than or equal to start row.")

        existing = self.store.load() or empty_run_state()
        if is_active(existing.get("current_run")):
            old_run_id = existing["current_run"].get("run_id")
            if not supersede:
                raise RunInProgress(f"Run {old_run_id} is still in progress. Cancel it or supersede it.")
            logger.warning(f"Superseding unfinished run {old_run_id}")
            self._abort_quietly(existing.get("active_job_id"), existing.get("active_credential_token"))

        table = self.table_factory(auth_token)

        leads_headers = table.get_row(spreadsheet_id, leads_sheet_name, 1)
        if not any((h or "").strip() for h in leads_headers):
            raise TableServiceError(f"Leads tab '{leads_sheet_name}' has no header row.")

        names = load_column_names()
        columns: Dict[str, int] = {}
        for role, header in names["writeback"].items():
            col = table.ensure_header(spreadsheet_id, settings_sheet_name, header)
            if not col:
                raise TableServiceError(f"Settings tab '{settings_sheet_name}' is not accessible.")
            columns[role] = col

        headers_after_ensure = table.get_row(spreadsheet_id, settings_sheet_name, 1)
        seed = seed_from_column(table.get_column(spreadsheet_id, leads_sheet_name, UNIQUE_ID_HEADER))

        progress: RunProgress = {
            "run_id": uuid.uuid4().hex,
            "spreadsheet_id": spreadsheet_id,
            "settings_sheet_name": settings_sheet_name,
            "leads_sheet_name": leads_sheet_name,
            "start_row": start_row,
            "end_row": end_row,
            "row_numbers": list(range(start_row, end_row + 1)),
            "current_index": 0,
            "processed": 0,
            "skipped": 0,
            "total_leads": 0,
            "started_at": self.clock().isoformat(),
            "finished_at": None,
            "cancelled": False,
            "per_row": [],
            "headers_after_ensure": headers_after_ensure,
            "leads_headers": leads_headers,
            "existing_unique_ids": seed,
            "columns": columns,
            "descriptor_headers": names["descriptor"],
        }
        run_state = empty_run_state()
        run_state["current_run"] = progress
        self.store.save(run_state)

        logger.info(
            f"Started run {progress['run_id']} over rows {start_row}-{end_row} "
            f"with {len(seed)} existing lead ids"
        )
        return snapshot(progress, done=False)

    def step_run(self, run_id: str, auth_token: Optional[str]) -> Dict[str, Any]:
        """Advance the run by one bounded unit of work and return its progress."""
        self._require_auth(auth_token)

        services = RunServices(
            store=self.store,
            table=self.table_factory(auth_token),
            jobs=self.jobs,
            clock=self.clock,
        )
        result = self.step_graph.invoke({"services": services, "run_id": run_id})
        return snapshot(result["run_state"]["current_run"], done=result["done"])

    def cancel_run(self) -> Dict[str, Any]:
        """Request cancellation; the next step finalizes the run."""
        run_state = self.store.load()
        if not run_state:
            raise NoActiveRun("No run to cancel.")

        run_state["cancel_requested"] = True
        self.store.save(run_state)
        logger.info("Cancellation requested")

        self._abort_quietly(run_state.get("active_job_id"), run_state.get("active_credential_token"))
        return {"ok": True, "cancel_requested": True}

    def get_run_status(self) -> Dict[str, Any]:
        run_state = self.store.load()
        progress = (run_state or {}).get("current_run")
        if not progress:
            raise NoActiveRun("No run has been started.")
        status = snapshot(progress)
        status["cancel_requested"] = bool(run_state.get("cancel_requested"))
        return status

    def reset_run(self) -> Dict[str, Any]:
        """Forget the persisted run, aborting its job if one is still running."""
        run_state = self.store.load()
        if run_state:
            self._abort_quietly(run_state.get("active_job_id"), run_state.get("active_credential_token"))
        self.store.clear()
        logger.info("Run state cleared")
        return {"ok": True}


_orchestrator: Optional[RunOrchestrator] = None


def get_orchestrator() -> RunOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RunOrchestrator()
    return _orchestrator


def start_run(spreadsheet_id: str, settings_sheet_name: str, leads_sheet_name: str,
              start_row: int, end_row: int, auth_token: Optional[str], supersede: bool = False) -> Dict[str, Any]:
    return get_orchestrator().start_run(
        spreadsheet_id, settings_sheet_name, leads_sheet_name, start_row, end_row, auth_token, supersede
    )


def step_run(run_id: str, auth_token: Optional[str]) -> Dict[str, Any]:
    return get_orchestrator().step_run(run_id, auth_token)


def cancel_run() -> Dict[str, Any]:
    return get_orchestrator().cancel_run()


def get_run_status() -> Dict[str, Any]:
    return get_orchestrator().get_run_status()


def reset_run() -> Dict[str, Any]:
    return get_orchestrator().reset_run()
