from typing import Any, Dict, Optional


class RunError(Exception):
    """Base error for the run entry points. Rendered to callers as {error, kind, message}."""

    kind = "server_error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "kind": self.kind, "message": self.message}


class NotAuthorized(RunError):
    kind = "not_authorized"
    http_status = 401

    def __init__(self, message: str = "Authorize Google Sheets access first.", auth_url: Optional[str] = None):
        super().__init__(message)
        self.auth_url = auth_url

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.auth_url:
            data["authUrl"] = self.auth_url
        return data


class InvalidRange(RunError):
    kind = "invalid_range"
    http_status = 400


class NoActiveRun(RunError):
    kind = "no_active_run"
    http_status = 404


class RunInProgress(RunError):
    kind = "run_in_progress"
    http_status = 409


class JobProviderError(RunError):
    kind = "job_provider_error"
    http_status = 502


class TableServiceError(RunError):
    kind = "table_service_error"
    http_status = 502


class StorageError(RunError):
    kind = "storage_error"
    http_status = 500
