# server.py
# HTTP trigger for the ecomdash sync jobs.
#
# GET  /                 liveness text
# GET  /health           static OK payload
# GET  /run              batch scrape (masterfile ids -> destination tabs)
# GET  /generate-report  Sales Orders report -> SalesMasterfile
# GET  /generate-sales   Sales-by-category report -> SalesData
# POST /append-orders    append raw rows to the destination Orders tab

import logging
import threading
import traceback
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse
import uvicorn

from .config import ORDERS_TAB, RAW, Settings
from .orchestrator import run_scraper
from .report_export import SALES_BY_CATEGORY, SALES_ORDERS, export_report
from .sheets import SheetGateway, get_sheets_client


def run_payload(result: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
    """Status code + body for a finished scrape run. Order failures do not fail the run."""
    batch_errors = result.get("batch_errors", [])
    errors = [f"batch {e['batch']}: {e['error']}" for e in batch_errors]
    ok = not errors
    message = (
        f"Pushed {len(result.get('successes', []))} orders, "
        f"{len(result.get('failures', []))} failed"
    )
    if not ok:
        message += f", {len(errors)} batches failed"
    return (200 if ok else 500), {"success": ok, "message": message, "errors": errors, **result}


def fatal_payload(ex: Exception) -> Dict[str, Any]:
    return {"success": False, "message": str(ex), "errors": [traceback.format_exc()]}


def create_app(
    settings: Optional[Settings] = None,
    scraper: Optional[Callable[[Settings], Any]] = None,
    reporter: Optional[Callable] = None,
    gateway_factory: Optional[Callable[[Settings], SheetGateway]] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    scraper = scraper or run_scraper
    reporter = reporter or export_report
    gateway_factory = gateway_factory or (
        lambda s: SheetGateway(get_sheets_client(s.credentials_b64), s.destination_id)
    )
    # one run at a time; later requests wait their turn
    run_lock = threading.Lock()

    app = FastAPI(title="ecomdash sync")
    app.state.run_lock = run_lock

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "Scraper is alive. Hit /run to start."

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True}

    @app.get("/run")
    def run() -> JSONResponse:
        with run_lock:
            try:
                result = scraper(settings)
            except Exception as ex:
                logging.exception(f"Run failed: {ex}")
                return JSONResponse(status_code=500, content=fatal_payload(ex))
        payload = result.as_dict() if hasattr(result, "as_dict") else dict(result)
        status, body = run_payload(payload)
        return JSONResponse(status_code=status, content=body)

    def _report(kind, date_from: Optional[str], date_to: Optional[str]) -> JSONResponse:
        if not date_from or not date_to:
            raise HTTPException(status_code=400, detail="Missing from or to date")
        with run_lock:
            try:
                summary = reporter(settings, kind, date_from, date_to)
            except Exception as ex:
                logging.exception(f"{kind.name} failed: {ex}")
                return JSONResponse(status_code=500, content=fatal_payload(ex))
        return JSONResponse(content={"success": True, "errors": [], **summary})

    @app.get("/generate-report")
    def generate_report(
        date_from: Optional[str] = Query(None, alias="from"),
        date_to: Optional[str] = Query(None, alias="to"),
    ) -> JSONResponse:
        return _report(SALES_ORDERS, date_from, date_to)

    @app.get("/generate-sales")
    def generate_sales(
        date_from: Optional[str] = Query(None, alias="from"),
        date_to: Optional[str] = Query(None, alias="to"),
    ) -> JSONResponse:
        return _report(SALES_BY_CATEGORY, date_from, date_to)

    def _append_orders(rows) -> None:
        with run_lock:
            gateway_factory(settings).append_rows(ORDERS_TAB, rows, RAW)

    @app.post("/append-orders")
    async def append_orders(req: Request) -> Dict[str, Any]:
        try:
            body = await req.json()
        except ValueError as ex:
            raise HTTPException(status_code=400, detail=f"Body is not valid JSON: {ex}") from ex
        rows = body.get("data") if isinstance(body, dict) else None
        if not isinstance(rows, list) or not all(isinstance(r, list) for r in rows):
            raise HTTPException(status_code=400, detail="data must be a list of rows")
        try:
            await run_in_threadpool(_append_orders, rows)
        except Exception as ex:
            logging.exception(f"append-orders failed: {ex}")
            raise HTTPException(status_code=500, detail=f"Error appending data: {ex}") from ex
        return {"success": True, "message": f"Appended {len(rows)} rows", "errors": []}

    return app


def serve(settings: Settings, host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    uvicorn.run(create_app(settings), host=host, port=port or settings.port, log_level="info")
