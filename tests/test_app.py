import os
import sys
from unittest.mock import patch

from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import app as app_module
from rungraph.errors import InvalidRange, NoActiveRun, NotAuthorized, RunInProgress, StorageError, TableServiceError


class TestRunEndpoints:
    """Test the HTTP front door."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = TestClient(app_module.app, raise_server_exceptions=False)
        self.start_payload = {
            "spreadsheet_id": "sheet-1",
            "settings_sheet_name": "Settings",
            "leads_sheet_name": "Leads",
            "start_row": "2",
            "end_row": 5,
        }

    def test_health(self):
        """Test the health endpoint."""
        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_start_passes_bearer_token_and_rows(self):
        """Test start forwards the request with the bearer token and numeric rows."""
        with patch.object(app_module, "start_run", return_value={"ok": True, "run_id": "r1", "done": False}) as start:
            response = self.client.post(
                "/run/start", json=self.start_payload, headers={"Authorization": "Bearer tok"}
            )

        assert response.status_code == 200
        assert response.json()["run_id"] == "r1"
        start.assert_called_once_with("sheet-1", "Settings", "Leads", 2, 5, "tok", supersede=False)

    def test_step_takes_token_from_body(self):
        """Test step falls back to the auth_token body field."""
        with patch.object(app_module, "step_run", return_value={"ok": True, "done": True}) as step:
            response = self.client.post("/run/step", json={"run_id": "r1", "auth_token": "tok"})

        assert response.json() == {"ok": True, "done": True}
        step.assert_called_once_with("r1", "tok")

    def test_not_authorized_carries_auth_url(self):
        """Test NotAuthorized renders as 401 with the consent URL."""
        error = NotAuthorized(auth_url="https://auth.test/consent")
        with patch.object(app_module, "step_run", side_effect=error):
            response = self.client.post("/run/step", json={"run_id": "r1"})

        assert response.status_code == 401
        assert response.json() == {
            "error": "not_authorized",
            "kind": "not_authorized",
            "message": "Authorize Google Sheets access first.",
            "authUrl": "https://auth.test/consent",
        }

    def test_error_kinds_map_to_status_codes(self):
        """Test each run error kind gets its HTTP status."""
        cases = [
            (InvalidRange("bad rows"), 400, "invalid_range"),
            (RunInProgress("busy"), 409, "run_in_progress"),
            (TableServiceError("sheet gone"), 502, "table_service_error"),
            (StorageError("disk full"), 500, "storage_error"),
        ]
        for error, status, kind in cases:
            with patch.object(app_module, "start_run", side_effect=error):
                response = self.client.post("/run/start", json=self.start_payload)

            assert response.status_code == status
            assert response.json() == {"error": kind, "kind": kind, "message": error.message}

    def test_status_and_cancel_without_run(self):
        """Test status and cancel report 404 when no run exists."""
        with patch.object(app_module, "get_run_status", side_effect=NoActiveRun("No run has been started.")):
            assert self.client.get("/run/status").status_code == 404
        with patch.object(app_module, "cancel_run", side_effect=NoActiveRun("No run to cancel.")):
            assert self.client.post("/run/cancel").json()["error"] == "no_active_run"

    def test_reset(self):
        """Test reset returns the orchestrator's answer."""
        with patch.object(app_module, "reset_run", return_value={"ok": True}):
            assert self.client.post("/run/reset").json() == {"ok": True}

    def test_unexpected_error_is_500(self):
        """Test unexpected exceptions are rendered by the global handler."""
        with patch.object(app_module, "get_run_status", side_effect=RuntimeError("boom")):
            response = self.client.get("/run/status")

        assert response.status_code == 500
        assert response.json() == {"error": "server_error", "kind": "server_error", "message": "Internal server error"}

    def test_malformed_body_still_validates(self):
        """Test a non-JSON body reaches range validation instead of crashing."""
        with patch.object(app_module, "start_run", side_effect=InvalidRange("bad rows")) as start:
            response = self.client.post("/run/start", content="not json", headers={"Authorization": "Bearer tok"})

        assert response.status_code == 400
        assert start.call_args[0][:5] == ("", "", "", None, None)
