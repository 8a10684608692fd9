from loguru import logger

from rungraph.errors import NoActiveRun
from rungraph.state import StepState


def load_run(state: StepState) -> StepState:
    """Load the persisted run and check it is the one the caller is stepping."""
    run_id = state.get("run_id")
    run_state = state["services"].store.load()

    progress = (run_state or {}).get("current_run")
    if not progress:
        raise NoActiveRun("No run is in progress. Start a new run.")
    if progress.get("run_id") != run_id:
        logger.warning(f"Step requested for stale run {run_id}, current is {progress.get('run_id')}")
        raise NoActiveRun(f"Run {run_id} is not the current run.")

    state["run_state"] = run_state
    state["outcome"] = None
    state["waiting"] = False
    state["done"] = bool(progress.get("finished_at"))
    return state
