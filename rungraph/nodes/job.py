from loguru import logger

from rungraph.errors import NotAuthorized
from rungraph.state import StepState
from rungraph.writeback import fail_row, write_back


def run_job(state: StepState) -> StepState:
    """Launch the row's scrape job, or poll the one already running."""
    services = state["services"]
    run_state = state["run_state"]
    progress = run_state["current_run"]
    settings = state["settings_row"]
    row = settings["row"]

    try:
        job_id = run_state.get("active_job_id")
        if not job_id:
            token = settings.get("apify_token")
            job_id = services.jobs.start_job(
                settings["launch_key"],
                {"run_input": settings.get("actor_input") or {}, "max_items": settings.get("max_limit")},
                token,
            )
            run_state["active_job_id"] = job_id
            run_state["active_credential_token"] = token
            logger.info(f"Row {row}: started job {job_id}")
            state["waiting"] = True
            return state

        job = services.jobs.get_job_status(job_id, run_state.get("active_credential_token"))
    except NotAuthorized:
        raise
    except Exception as e:
        return fail_row(state, row, str(e))

    state["job"] = job
    if job["status"] == "running":
        logger.info(f"Row {row}: job {job_id} still {job.get('provider_status', 'running')}")
        state["waiting"] = True
    elif job["status"] != "succeeded":
        provider_status = job.get("provider_status") or "FAILED"
        extra = {"dataset_url": job["dataset_url"]} if job.get("dataset_url") else None
        fail_row(state, row, f"Job {job_id} ended with status {provider_status}", extra)
        try:
            write_back(services.table, progress, row, {"scrape_status": provider_status})
        except Exception as e:
            logger.warning(f"Could not record scrape status for row {row}: {e}")
    return state
