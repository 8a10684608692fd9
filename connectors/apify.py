import os
from typing import Any, Dict, List, Optional

from apify_client import ApifyClient
from loguru import logger

from rungraph.errors import JobProviderError
from rungraph.state import JobStatus

RUNNING_STATUSES = {"READY", "RUNNING"}
DATASET_CONSOLE_URL = "https://console.apify.com/storage/datasets/{dataset_id}"


class ApifyJobProvider:
    """Scrape jobs run as Apify actor (or task) runs."""

    def __init__(self, default_token: Optional[str] = None):
        self.default_token = default_token or os.getenv("APIFY_TOKEN")
        if not self.default_token:
            logger.warning("No APIFY_TOKEN configured; rows must carry their own Apify token")

    def _client(self, token: Optional[str]) -> ApifyClient:
        token = token or self.default_token
        if not token:
            raise JobProviderError("No Apify token available for this row")
        return ApifyClient(token)

    def start_job(self, launch_key: str, params: Dict[str, Any], token: Optional[str] = None) -> str:
        """
        Start a run and return its id without waiting for it.

        Args:
            launch_key: Actor id (e.g. "compass/crawler-google-places"), or "task:<task id>"
            params: {"run_input": dict, "max_items": int or None}
            token: Apify token; falls back to APIFY_TOKEN
        """
        client = self._client(token)
        run_input = params.get("run_input") or {}
        max_items = params.get("max_items")
        try:
            if launch_key.startswith("task:"):
                run = client.task(launch_key[len("task:"):]).start(task_input=run_input, max_items=max_items)
            else:
                run = client.actor(launch_key).start(run_input=run_input, max_items=max_items)
        except Exception as e:
            logger.error(f"Failed to start Apify run for {launch_key}: {e}")
            raise JobProviderError(f"Failed to start job {launch_key}: {e}")

        run_id = (run or {}).get("id")
        if not run_id:
            raise JobProviderError(f"Apify returned no run id for {launch_key}")
        logger.info(f"Started Apify run {run_id} for {launch_key}")
        return run_id

    def get_job_status(self, job_id: str, token: Optional[str] = None) -> JobStatus:
        client = self._client(token)
        try:
            run = client.run(job_id).get()
        except Exception as e:
            logger.error(f"Failed to poll Apify run {job_id}: {e}")
            raise JobProviderError(f"Failed to poll job {job_id}: {e}")
        if not run:
            raise JobProviderError(f"Apify run {job_id} not found")

        provider_status = run.get("status", "UNKNOWN")
        if provider_status in RUNNING_STATUSES:
            status = "running"
        elif provider_status == "SUCCEEDED":
            status = "succeeded"
        else:
            status = "failed"

        dataset_id = run.get("defaultDatasetId")
        return {
            "status": status,
            "provider_status": provider_status,
            "dataset_url": DATASET_CONSOLE_URL.format(dataset_id=dataset_id) if dataset_id else "",
        }

    def get_result_records(self, job_id: str, token: Optional[str] = None) -> List[Dict[str, Any]]:
        client = self._client(token)
        try:
            run = client.run(job_id).get() or {}
            dataset_id = run.get("defaultDatasetId")
            if not dataset_id:
                raise JobProviderError(f"Apify run {job_id} has no dataset")
            items = list(client.dataset(dataset_id).iterate_items())
        except JobProviderError:
            raise
        except Exception as e:
            logger.error(f"Failed to fetch results of Apify run {job_id}: {e}")
            raise JobProviderError(f"Failed to fetch results of job {job_id}: {e}")
        logger.info(f"Fetched {len(items)} records from Apify run {job_id}")
        return items

    def abort_job(self, job_id: str, token: Optional[str] = None) -> None:
        client = self._client(token)
        try:
            client.run(job_id).abort()
        except Exception as e:
            raise JobProviderError(f"Failed to abort job {job_id}: {e}")
        logger.info(f"Aborted Apify run {job_id}")


def get_job_provider() -> ApifyJobProvider:
    return ApifyJobProvider()
