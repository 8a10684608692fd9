from loguru import logger

from rungraph.state import StepState, is_complete


def advance(state: StepState) -> StepState:
    """Log the finished row, move the cursor and finish the run after the last row."""
    progress = state["run_state"]["current_run"]
    outcome = state.get("outcome")

    if outcome:
        progress.setdefault("per_row", []).append(outcome)
        if outcome["status"] == "skipped":
            progress["skipped"] = progress.get("skipped", 0) + 1
        else:
            progress["processed"] = progress.get("processed", 0) + 1
        progress["total_leads"] = progress.get("total_leads", 0) + outcome.get("leads", 0)
        progress["current_index"] = progress.get("current_index", 0) + 1

    if is_complete(progress) and not progress.get("finished_at"):
        progress["finished_at"] = state["services"].clock().isoformat()
        logger.info(
            f"Run {progress['run_id']} finished: {progress.get('processed', 0)} processed, "
            f"{progress.get('skipped', 0)} skipped, {progress.get('total_leads', 0)} leads"
        )
    state["done"] = bool(progress.get("finished_at"))
    return state
