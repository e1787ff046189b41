# cli.py
# ecomdash-sync scrape | report | sales | sync-columns | serve

import argparse
import json
import logging
from typing import List, Optional

from dotenv import load_dotenv

from .config import LOG_FORMAT, Settings
from .column_sync import run_column_sync
from .orchestrator import run_scraper
from .report_export import SALES_BY_CATEGORY, SALES_ORDERS, export_report
from .server import run_payload, serve


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ecomdash-sync", description="Sync ecomdash orders and reports into Google Sheets.")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("scrape", help="Scrape every masterfile order id not yet in the destination sheet")

    for name, help_text in (
        ("report", "Sales Orders report -> SalesMasterfile (append + update)"),
        ("sales", "Sales-by-category report -> SalesData (append new ids)"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--from", dest="date_from", required=True, help="report start date, e.g. 6/1/2025")
        p.add_argument("--to", dest="date_to", required=True, help="report end date, e.g. 6/30/2025")

    p = sub.add_parser("sync-columns", help="Fill Orders columns from the masterfile")
    p.add_argument("--overwrite", action="store_true", help="replace non-blank cells too")

    p = sub.add_parser("serve", help="Run the HTTP trigger")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=None)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    if args.command == "serve":
        serve(settings, host=args.host, port=args.port)
        return 0

    if args.command == "scrape":
        status, body = run_payload(run_scraper(settings).as_dict())
        print(json.dumps(body, indent=2))
        return 0 if status == 200 else 1

    if args.command in ("report", "sales"):
        kind = SALES_ORDERS if args.command == "report" else SALES_BY_CATEGORY
        summary = export_report(settings, kind, args.date_from, args.date_to)
        print(summary["message"])
        return 0

    if args.command == "sync-columns":
        summary = run_column_sync(settings, overwrite=True if args.overwrite else None)
        print(json.dumps(summary, indent=2))
        return 0

    return 2
