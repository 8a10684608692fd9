import os
import json
from typing import Any, Dict, Optional

import redis
from loguru import logger

from leads.dedup import DedupSet
from rungraph.errors import StorageError
from rungraph.state import RunState

REDIS_KEY = "runstate:current"


def default_state_path() -> str:
    """Where the file store lives when RUN_STATE_PATH is not set."""
    if os.getenv("VERCEL") or os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        return "/tmp/.run-state.json"
    return ".run-state.json"


def dump_state(state: RunState) -> str:
    """Serialize run state to JSON; the dedup set is written as an ordered list."""
    data = dict(state)
    progress = data.get("current_run")
    if progress:
        progress = dict(progress)
        ids = progress.get("existing_unique_ids")
        progress["existing_unique_ids"] = ids.to_list() if isinstance(ids, DedupSet) else list(ids or [])
        data["current_run"] = progress
    return json.dumps(data)


def parse_state(raw: str) -> RunState:
    data: Dict[str, Any] = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("run state must be a JSON object")
    progress = data.get("current_run")
    if progress:
        progress["existing_unique_ids"] = DedupSet(progress.get("existing_unique_ids") or [])
    data.setdefault("cancel_requested", False)
    data.setdefault("active_job_id", None)
    data.setdefault("active_credential_token", None)
    data.setdefault("current_run", None)
    return data


class FileRunStateStore:
    """Run state kept in one JSON file, replaced atomically on every save."""

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.getenv("RUN_STATE_PATH") or default_state_path()

    def load(self) -> Optional[RunState]:
        try:
            with open(self.path, "r") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not read run state at {self.path}: {e}")
            return None
        try:
            return parse_state(raw)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Corrupt run state at {self.path}, ignoring it: {e}")
            return None

    def save(self, state: RunState) -> None:
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w") as f:
                f.write(dump_state(state))
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save run state to {self.path}: {e}")
            raise StorageError(f"Failed to save run state: {e}")

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to clear run state: {e}")


class RedisRunStateStore:
    """Run state kept under a single Redis key."""

    def __init__(self, redis_url: Optional[str] = None, client=None):
        self.r = client or redis.from_url(redis_url or os.getenv("RUN_STATE_REDIS_URL"))

    def load(self) -> Optional[RunState]:
        try:
            raw = self.r.get(REDIS_KEY)
        except redis.RedisError as e:
            logger.warning(f"Could not read run state from Redis: {e}")
            return None
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return parse_state(raw)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Corrupt run state in Redis, ignoring it: {e}")
            return None

    def save(self, state: RunState) -> None:
        try:
            self.r.set(REDIS_KEY, dump_state(state))
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"Failed to save run state to Redis: {e}")
            raise StorageError(f"Failed to save run state: {e}")

    def clear(self) -> None:
        try:
            self.r.delete(REDIS_KEY)
        except redis.RedisError as e:
            raise StorageError(f"Failed to clear run state: {e}")


def get_run_state_store():
    """Pick the store backend from the environment."""
    redis_url = os.getenv("RUN_STATE_REDIS_URL")
    if redis_url:
        logger.info("Using Redis run state store")
        return RedisRunStateStore(redis_url)
    return FileRunStateStore()
