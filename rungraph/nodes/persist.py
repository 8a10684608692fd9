from rungraph.state import StepState


def persist(state: StepState) -> StepState:
    # StorageError propagates: a lost save would desync the cursor from the sheet.
    state["services"].store.save(state["run_state"])
    state["done"] = bool(state["run_state"]["current_run"].get("finished_at"))
    return state
