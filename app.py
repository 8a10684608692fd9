import os
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from dotenv import load_dotenv

from rungraph.errors import RunError
from rungraph.orchestrator import start_run, step_run, cancel_run, get_run_status, reset_run

# Load environment variables
load_dotenv()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level="INFO")

app = FastAPI(
    title="Sheet Lead Runner",
    description="Runs Apify scrapes for Settings rows and pushes deduplicated leads into Google Sheets",
    version="1.0.0"
)


async def _payload(req: Request) -> Dict[str, Any]:
    try:
        body = await req.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _auth_token(req: Request, payload: Dict[str, Any]) -> Optional[str]:
    """Google access token from the Authorization header, else from the body."""
    header = req.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return payload.get("auth_token")


def _row_number(value: Any) -> Any:
    # Forms send numbers as strings; anything else is left for range validation.
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


@app.post("/run/start")
async def run_start(req: Request):
    """
    Start a run over a range of Settings rows.

    Expected payload:
    {
        "spreadsheet_id": "1AbC...",
        "settings_sheet_name": "Settings",
        "leads_sheet_name": "Leads",
        "start_row": 2,
        "end_row": 20,
        "supersede": false
    }
    """
    payload = await _payload(req)
    logger.info(f"Start requested for rows {payload.get('start_row')}-{payload.get('end_row')}")
    return start_run(
        payload.get("spreadsheet_id", ""),
        payload.get("settings_sheet_name", ""),
        payload.get("leads_sheet_name", ""),
        _row_number(payload.get("start_row")),
        _row_number(payload.get("end_row")),
        _auth_token(req, payload),
        supersede=bool(payload.get("supersede", False)),
    )


@app.post("/run/step")
async def run_step(req: Request):
    """Advance the current run by one step. Call again until "done" is true."""
    payload = await _payload(req)
    return step_run(payload.get("run_id", ""), _auth_token(req, payload))


@app.post("/run/cancel")
def run_cancel():
    return cancel_run()


@app.get("/run/status")
def run_status():
    return get_run_status()


@app.post("/run/reset")
def run_reset():
    return reset_run()


@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0"
    }


# Error handlers
@app.exception_handler(RunError)
async def run_error_handler(request: Request, exc: RunError):
    logger.warning(f"{request.url.path} failed with {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "server_error", "kind": "server_error", "message": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Sheet Lead Runner")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
