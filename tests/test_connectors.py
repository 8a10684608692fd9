import os
import sys
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from connectors.apify import ApifyJobProvider
from connectors.google_auth import get_auth_url, is_authorized
from connectors.sheets import SheetsClient, column_letter
from rungraph.columns import load_column_names
from rungraph.errors import JobProviderError, NotAuthorized, TableServiceError


def http_error(status):
    return HttpError(MagicMock(status=status, reason="error"), b"denied")


class TestSheetsClient:
    """Test the Google Sheets client against a mocked discovery service."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = MagicMock()
        self.values = self.service.spreadsheets.return_value.values.return_value
        self.client = SheetsClient("token", service=self.service)

    def test_column_letters(self):
        """Test 1-based indices convert to A1 column letters."""
        assert column_letter(1) == "A"
        assert column_letter(26) == "Z"
        assert column_letter(27) == "AA"
        assert column_letter(703) == "AAA"

    def test_get_row_reads_one_row(self):
        """Test get_row requests the quoted row range and stringifies cells."""
        self.values.get.return_value.execute.return_value = {"values": [["a", 5, None]]}

        assert self.client.get_row("sheet-1", "Bob's Tab", 3) == ["a", "5", ""]
        self.values.get.assert_called_with(spreadsheetId="sheet-1", range="'Bob''s Tab'!3:3")

    def test_get_rows_pads_missing_rows(self):
        """Test trailing empty rows dropped by the API come back as empty lists."""
        self.values.get.return_value.execute.return_value = {"values": [["x"]]}

        assert self.client.get_rows("sheet-1", "Settings", 2, 3) == [["x"], [], []]

    def test_get_column_by_header(self):
        """Test get_column finds the header and reads the cells beneath it."""
        self.values.get.return_value.execute.side_effect = [
            {"values": [["Name", "unique id"]]},
            {"values": [["id-1"], [], ["id-3"]]},
        ]

        assert self.client.get_column("sheet-1", "Leads", "Unique ID") == ["id-1", "", "id-3"]
        self.values.get.assert_called_with(spreadsheetId="sheet-1", range="'Leads'!B2:B")

    def test_ensure_header_existing_and_new(self):
        """Test an existing header returns its index and a missing one is appended."""
        self.values.get.return_value.execute.return_value = {"values": [["Actor ID", "Status"]]}

        assert self.client.ensure_header("sheet-1", "Settings", "status") == 2
        assert self.client.ensure_header("sheet-1", "Settings", "Pushed") == 3
        self.values.update.assert_called_once_with(
            spreadsheetId="sheet-1",
            range="'Settings'!C1",
            valueInputOption="RAW",
            body={"values": [["Pushed"]]},
        )

    def test_ensure_header_inaccessible_tab(self):
        """Test a tab that cannot be read yields column 0."""
        self.values.get.return_value.execute.side_effect = http_error(400)

        assert self.client.ensure_header("sheet-1", "Missing", "Pushed") == 0

    def test_append_rows(self):
        """Test rows are appended as raw values and empty batches are skipped."""
        self.client.append_rows("sheet-1", "Leads", [])
        self.values.append.assert_not_called()

        self.client.append_rows("sheet-1", "Leads", [["p1", "Cafe"]])
        kwargs = self.values.append.call_args.kwargs
        assert kwargs["range"] == "'Leads'!A1"
        assert kwargs["insertDataOption"] == "INSERT_ROWS"
        assert kwargs["body"] == {"values": [["p1", "Cafe"]]}

    def test_http_errors_are_wrapped(self):
        """Test API failures become TableServiceError and 401 becomes NotAuthorized."""
        self.values.update.return_value.execute.side_effect = http_error(500)
        with pytest.raises(TableServiceError):
            self.client.set_cell("sheet-1", "Settings", 2, 1, "Y")

        self.values.get.return_value.execute.side_effect = http_error(401)
        with pytest.raises(NotAuthorized):
            self.client.get_row("sheet-1", "Settings", 1)


class TestApifyJobProvider:
    """Test the Apify job provider against a mocked client."""

    def setup_method(self):
        """Set up test fixtures."""
        self.patcher = patch("connectors.apify.ApifyClient")
        self.client_cls = self.patcher.start()
        self.client = self.client_cls.return_value
        self.provider = ApifyJobProvider(default_token="env-token")

    def teardown_method(self):
        self.patcher.stop()

    def test_start_actor_run(self):
        """Test an actor run is started with the row's input and limit."""
        self.client.actor.return_value.start.return_value = {"id": "run-1"}

        job_id = self.provider.start_job("compass/gmaps", {"run_input": {"q": "cafe"}, "max_items": 20}, "row-token")

        assert job_id == "run-1"
        self.client_cls.assert_called_with("row-token")
        self.client.actor.assert_called_with("compass/gmaps")
        self.client.actor.return_value.start.assert_called_with(run_input={"q": "cafe"}, max_items=20)

    def test_start_task_run(self):
        """Test a task: launch key starts a saved task with the default token."""
        self.client.task.return_value.start.return_value = {"id": "run-2"}

        assert self.provider.start_job("task:abc", {"run_input": {}}) == "run-2"
        self.client_cls.assert_called_with("env-token")
        self.client.task.assert_called_with("abc")

    def test_status_mapping(self):
        """Test Apify statuses map onto running, succeeded and failed."""
        run = self.client.run.return_value
        expected = {"READY": "running", "RUNNING": "running", "SUCCEEDED": "succeeded",
                    "ABORTED": "failed", "TIMED-OUT": "failed", "FAILED": "failed"}
        for provider_status, status in expected.items():
            run.get.return_value = {"status": provider_status, "defaultDatasetId": "ds-1"}
            job = self.provider.get_job_status("run-1")
            assert job["status"] == status
            assert job["provider_status"] == provider_status
            assert job["dataset_url"] == "https://console.apify.com/storage/datasets/ds-1"

    def test_result_records(self):
        """Test records are read from the run's default dataset."""
        self.client.run.return_value.get.return_value = {"defaultDatasetId": "ds-1"}
        self.client.dataset.return_value.iterate_items.return_value = iter([{"placeId": "p1"}])

        assert self.provider.get_result_records("run-1") == [{"placeId": "p1"}]
        self.client.dataset.assert_called_with("ds-1")

    def test_failures_become_job_provider_errors(self):
        """Test client exceptions and a missing token surface as JobProviderError."""
        self.client.actor.return_value.start.side_effect = RuntimeError("actor not found")
        with pytest.raises(JobProviderError, match="actor not found"):
            self.provider.start_job("nope", {})

        self.client.run.return_value.abort.side_effect = RuntimeError("already finished")
        with pytest.raises(JobProviderError):
            self.provider.abort_job("run-1")

        with patch.dict(os.environ, {}, clear=True):
            tokenless = ApifyJobProvider()
        with pytest.raises(JobProviderError, match="No Apify token"):
            tokenless.start_job("compass/gmaps", {})


class TestGoogleAuth:
    """Test the consent URL helper."""

    def test_auth_url_from_client_id(self, monkeypatch):
        """Test the consent URL carries client id, redirect and offline access."""
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "cid.apps.googleusercontent.com")
        monkeypatch.setenv("GOOGLE_REDIRECT_URI", "https://runner.test/auth/callback")

        url = get_auth_url()

        assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
        assert "client_id=cid.apps.googleusercontent.com" in url
        assert "access_type=offline" in url
        assert "prompt=consent" in url

    def test_auth_url_from_credentials_file(self, monkeypatch, tmp_path):
        """Test the client id is read from a web or installed client-secrets file."""
        secrets = tmp_path / "credentials.json"
        secrets.write_text('{"web": {"client_id": "web-id", "client_secret": "s"}}')
        monkeypatch.delenv("GOOGLE_CLIENT_ID", raising=False)
        monkeypatch.setenv("GOOGLE_OAUTH_CREDENTIALS_PATH", str(secrets))

        assert "client_id=web-id" in get_auth_url()

        monkeypatch.setenv("GOOGLE_OAUTH_CREDENTIALS_PATH", str(tmp_path / "missing.json"))
        assert get_auth_url() is None

    def test_is_authorized(self):
        """Test only non-blank tokens count as authorized."""
        assert is_authorized("ya29.token") is True
        assert is_authorized("  ") is False
        assert is_authorized(None) is False


class TestColumnNames:
    """Test Settings column configuration."""

    def test_defaults_when_file_missing(self, monkeypatch, tmp_path):
        """Test the built-in header names are used without a config file."""
        monkeypatch.setenv("SHEET_COLUMNS_JSON", str(tmp_path / "missing.json"))

        columns = load_column_names()

        assert columns["writeback"]["push_status"] == "Google-Maps Push Status"
        assert columns["descriptor"]["launch_key"] == "Actor ID"

    def test_overrides_and_invalid_json(self, monkeypatch, tmp_path):
        """Test known roles can be renamed, unknown ones ignored, and bad JSON falls back."""
        config = tmp_path / "columns.json"
        config.write_text('{"writeback": {"pushed": " Sent "}, "descriptor": {"bogus": "x"}}')
        monkeypatch.setenv("SHEET_COLUMNS_JSON", str(config))

        columns = load_column_names()
        assert columns["writeback"]["pushed"] == "Sent"
        assert "bogus" not in columns["descriptor"]

        config.write_text("{broken")
        assert load_column_names()["writeback"]["pushed"] == "Pushed"
