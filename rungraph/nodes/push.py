from loguru import logger

from leads.mapper import map_records
from rungraph.errors import NotAuthorized
from rungraph.state import StepState
from rungraph.writeback import fail_row, write_back


def push_results(state: StepState) -> StepState:
    """Map a finished job's records into the Leads tab and mark the Settings row done."""
    services = state["services"]
    run_state = state["run_state"]
    progress = run_state["current_run"]
    row = state["settings_row"]["row"]
    job = state.get("job", {})
    job_id = run_state["active_job_id"]
    leads = 0
    appended = False

    try:
        records = services.jobs.get_result_records(job_id, run_state.get("active_credential_token"))

        # Map against a copy so a failed append leaves the run's dedup set untouched.
        working = progress["existing_unique_ids"].copy()
        rows = map_records(records, progress["leads_headers"], working, now=services.clock().astimezone())
        services.table.append_rows(progress["spreadsheet_id"], progress["leads_sheet_name"], rows)
        progress["existing_unique_ids"].update(working)
        appended = True
        leads = len(rows)
        logger.info(f"Row {row}: pushed {leads} of {len(records)} records")

        write_back(services.table, progress, row, {
            "dataset": job.get("dataset_url", ""),
            "scraped": "Y",
            "status": "Done",
            "scrape_status": job.get("provider_status") or "SUCCEEDED",
            "push_status": f"Pushed {leads} leads",
            "pushed": "Y",
        })
    except NotAuthorized as e:
        if not appended:
            raise
        # The leads are already in the tab; the row must finish so the job is never pushed again.
        message = f"Pushed {leads} leads but the Settings write-back was rejected: {e.message}"
        return fail_row(state, row, message, {"leads": leads, "dataset_url": job.get("dataset_url", "")})
    except Exception as e:
        return fail_row(state, row, str(e), {"leads": leads, "dataset_url": job.get("dataset_url", "")})

    run_state["active_job_id"] = None
    run_state["active_credential_token"] = None
    state["outcome"] = {
        "row": row,
        "status": "succeeded",
        "dataset_url": job.get("dataset_url", ""),
        "leads": leads,
    }
    return state
