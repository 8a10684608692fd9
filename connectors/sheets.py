from typing import Any, List

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from loguru import logger

from connectors.google_auth import SCOPES, get_auth_url
from leads.mapper import find_header_index
from rungraph.errors import NotAuthorized, TableServiceError


def _wrap_http_error(e: HttpError, message: str) -> Exception:
    """401 means the caller's token is no longer valid; everything else is a table failure."""
    if getattr(e, "status_code", None) == 401 or getattr(getattr(e, "resp", None), "status", None) == 401:
        return NotAuthorized("Google Sheets authorization expired. Authorize again.", auth_url=get_auth_url())
    return TableServiceError(f"{message}: {e}")


def column_letter(col: int) -> str:
    """1-based column index to A1 letters (1 -> A, 27 -> AA)."""
    if col < 1:
        raise ValueError(f"column index must be >= 1, got {col}")
    letters = ""
    while col:
        col, rem = divmod(col - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def _a1(tab_name: str, rng: str) -> str:
    escaped = tab_name.replace("'", "''")
    return f"'{escaped}'!{rng}"


def _cells(row: List[Any]) -> List[str]:
    return ["" if v is None else str(v) for v in row]


class SheetsClient:
    """Google Sheets v4 access on behalf of one OAuth access token."""

    def __init__(self, access_token: str, service=None):
        if service is None:
            creds = Credentials(token=access_token, scopes=SCOPES)
            service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        self.service = service
        self.svc = service.spreadsheets()

    def _get_values(self, spreadsheet_id: str, rng: str) -> List[List[str]]:
        try:
            res = self.svc.values().get(spreadsheetId=spreadsheet_id, range=rng).execute()
        except HttpError as e:
            logger.error(f"Sheets read failed for {rng}: {e}")
            raise _wrap_http_error(e, f"Failed to read {rng}")
        return [_cells(r) for r in res.get("values", [])]

    def get_row(self, spreadsheet_id: str, tab_name: str, row_index: int) -> List[str]:
        """Cells of one 1-based row; trailing empty cells are not returned."""
        values = self._get_values(spreadsheet_id, _a1(tab_name, f"{row_index}:{row_index}"))
        return values[0] if values else []

    def get_rows(self, spreadsheet_id: str, tab_name: str, start_row: int, count: int) -> List[List[str]]:
        if count <= 0:
            return []
        end_row = start_row + count - 1
        values = self._get_values(spreadsheet_id, _a1(tab_name, f"{start_row}:{end_row}"))
        # Sheets drops trailing empty rows; pad so the result lines up with the range.
        return values + [[] for _ in range(count - len(values))]

    def get_column(self, spreadsheet_id: str, tab_name: str, header_name: str) -> List[str]:
        """Values under the named header (matched case-insensitively); empty if the header is absent."""
        headers = self.get_row(spreadsheet_id, tab_name, 1)
        idx = find_header_index(headers, header_name)
        if idx < 0:
            return []
        letter = column_letter(idx + 1)
        values = self._get_values(spreadsheet_id, _a1(tab_name, f"{letter}2:{letter}"))
        return [r[0] if r else "" for r in values]

    def append_rows(self, spreadsheet_id: str, tab_name: str, rows: List[List[str]]) -> None:
        if not rows:
            return
        try:
            self.svc.values().append(
                spreadsheetId=spreadsheet_id,
                range=_a1(tab_name, "A1"),
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": rows},
            ).execute()
        except HttpError as e:
            logger.error(f"Appending {len(rows)} rows to '{tab_name}' failed: {e}")
            raise _wrap_http_error(e, f"Failed to append rows to '{tab_name}'")
        logger.info(f"Appended {len(rows)} rows to '{tab_name}'")

    def ensure_header(self, spreadsheet_id: str, tab_name: str, header_name: str) -> int:
        """
        Make sure a header exists in row 1, adding it after the last header if needed.

        Returns:
            1-based column index of the header, or 0 if the tab cannot be read or written
        """
        try:
            headers = self.get_row(spreadsheet_id, tab_name, 1)
        except TableServiceError:
            return 0
        idx = find_header_index(headers, header_name)
        if idx >= 0:
            return idx + 1

        col = len(headers) + 1
        try:
            self.set_cell(spreadsheet_id, tab_name, 1, col, header_name)
        except TableServiceError:
            return 0
        logger.info(f"Added header '{header_name}' to '{tab_name}' at column {col}")
        return col

    def set_cell(self, spreadsheet_id: str, tab_name: str, row: int, col: int, value: Any) -> None:
        rng = _a1(tab_name, f"{column_letter(col)}{row}")
        try:
            self.svc.values().update(
                spreadsheetId=spreadsheet_id,
                range=rng,
                valueInputOption="RAW",
                body={"values": [["" if value is None else str(value)]]},
            ).execute()
        except HttpError as e:
            logger.error(f"Sheets write failed for {rng}: {e}")
            raise _wrap_http_error(e, f"Failed to write {rng}")


def get_sheets_client(auth_token: str) -> SheetsClient:
    return SheetsClient(auth_token)
