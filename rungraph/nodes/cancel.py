from loguru import logger

from rungraph.state import StepState


def finalize_cancelled(state: StepState) -> StepState:
    """Finish a run whose cancellation was requested out of band."""
    run_state = state["run_state"]
    progress = run_state["current_run"]

    progress["finished_at"] = state["services"].clock().isoformat()
    progress["cancelled"] = True
    # cancel_requested stays set until the next run starts.
    run_state["active_job_id"] = None
    run_state["active_credential_token"] = None

    logger.info(f"Run {progress['run_id']} cancelled at row index {progress.get('current_index', 0)}")
    state["done"] = True
    return state
