# report_export.py
# Generate an ecomdash report, download the .xlsx and sync it into a sheet.
#
# Two report kinds share one path; what differs (tile, target tab, header
# rows, date columns, dedup strategy) lives in ReportKind.

import io
import logging
import numbers
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .browser import EcomdashSession
from .config import REPORTING_RETURN_URL, USER_ENTERED, Settings
from .dedup import diff_rows, existing_ids, normalize_cell
from .normalize import clean_notes, parse_date, to_output_date
from .sheets import SheetGateway, get_sheets_client

# a stray sub-header the sales export repeats in column A
SUBHEADER_ID = "Date TypeCreate"


@dataclass(frozen=True)
class ReportKind:
    name: str
    tile_id: str
    tab: str
    header_rows: int
    sheet_attr: str                  # Settings attribute holding the spreadsheet id
    read_range: str
    last_col: str = "AZ"
    date_cols: Tuple[int, ...] = ()
    sort_col: Optional[int] = None
    notes_col: Optional[int] = None
    sku_col: Optional[int] = None
    upc_col: Optional[int] = None
    diff_existing: bool = True       # False: append-new-ids-only


SALES_ORDERS = ReportKind(
    name="sales_orders",
    tile_id="mostPopular-SalesOrdersReport",
    tab="SalesMasterfile",
    header_rows=2,
    sheet_attr="masterfile_id",
    read_range="SalesMasterfile!A:AZ",
    date_cols=(5, 6, 41),  # invoice, payment received, completed
    sort_col=5,
    notes_col=36,
)

SALES_BY_CATEGORY = ReportKind(
    name="sales_by_category",
    tile_id="mostPopular-SalesWithinDateRange_Category",
    tab="SalesData",
    header_rows=1,
    sheet_attr="sales_sheet_id",
    read_range="SalesData!A:A",
    sku_col=2,
    upc_col=3,
    diff_existing=False,
)

REPORT_KINDS: Dict[str, ReportKind] = {k.name: k for k in (SALES_ORDERS, SALES_BY_CATEGORY)}


# ───────────────────────── XLSX ─────────────────────────
def read_report(content: bytes) -> pd.DataFrame:
    """First worksheet, no header inference; positional integer columns."""
    df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None)
    return df.replace({np.nan: None})


def _blank(v) -> bool:
    return normalize_cell(v) == ""


def _as_rows(df: pd.DataFrame) -> List[List]:
    rows = []
    for rec in df.itertuples(index=False, name=None):
        row = []
        for v in rec:
            if v is None or (isinstance(v, float) and np.isnan(v)):
                row.append("")
            elif isinstance(v, pd.Timestamp):
                row.append(v.to_pydatetime().strftime("%Y/%m/%d %H:%M:%S"))
            elif isinstance(v, np.generic):
                row.append(v.item())
            else:
                row.append(v)
        # trailing blanks would otherwise count as a difference against Sheets
        while row and row[-1] == "":
            row.pop()
        rows.append(row)
    return rows


def prepare_sales_orders(df: pd.DataFrame, date_mode: str, kind: ReportKind = SALES_ORDERS) -> List[List]:
    """
    Header rows untouched; data rows get date columns in the configured mode,
    notes flattened to one line, sorted by invoice date (newest first, blanks last).
    """
    header = df.iloc[:kind.header_rows]
    data = df.iloc[kind.header_rows:].copy()

    if kind.sort_col is not None and kind.sort_col in data.columns:
        sort_key = data[kind.sort_col].map(_date_sort_key)
        data = data.assign(_sort=sort_key).sort_values("_sort", ascending=False, na_position="last", kind="stable")
        data = data.drop(columns="_sort")

    for col in kind.date_cols:
        if col in data.columns:
            data[col] = data[col].map(lambda v: to_output_date(v, date_mode)).astype(object)

    if kind.notes_col is not None and kind.notes_col in data.columns:
        data[kind.notes_col] = data[kind.notes_col].map(lambda v: "" if v is None else clean_notes(v))

    return _as_rows(header) + _as_rows(data)


def _date_sort_key(v) -> float:
    if v is None or _blank(v):
        return np.nan
    if isinstance(v, numbers.Real) and not isinstance(v, bool):
        return float(v) if v > 0 else np.nan
    d = parse_date(v)
    if d is None:
        return np.nan
    return (d.replace(tzinfo=None) - datetime(1899, 12, 30)).total_seconds() / 86400.0


def prepare_sales_by_category(
    df: pd.DataFrame,
    date_from: str,
    date_to: str,
    generated_at: str,
    kind: ReportKind = SALES_BY_CATEGORY,
) -> List[List]:
    """Drop rows without SKU/UPC and stamp every row with the report window."""
    if df.empty:
        raise ValueError("Report file appears empty")
    rows = _as_rows(df)
    header = list(rows[0]) + ["Start Date", "End Date", "Date Generated"]

    out = [header]
    for row in rows[1:]:
        sku = row[kind.sku_col] if len(row) > kind.sku_col else ""
        upc = row[kind.upc_col] if len(row) > kind.upc_col else ""
        if _blank(sku) and _blank(upc):
            continue
        width = len(rows[0])
        padded = list(row) + [""] * max(0, width - len(row))
        out.append(padded + [date_from, date_to, generated_at])
    return out


# ───────────────────────── SYNC ─────────────────────────
def sync_report_rows(gateway: SheetGateway, kind: ReportKind, rows: List[List]) -> Dict[str, int]:
    """Push prepared rows (header rows first) into the kind's tab."""
    existing = gateway.read_range(kind.read_range)
    headers = rows[:kind.header_rows]
    data = rows[kind.header_rows:]

    if kind.diff_existing:
        diff = diff_rows(data, existing, key_cols=(0,), ignore_keys=(SUBHEADER_ID,))
        to_append = list(diff.append)
        updates = [
            {"range": f"{kind.tab}!A{u.row_number}:{kind.last_col}{u.row_number}", "values": [u.values]}
            for u in diff.update
        ]
        skipped = len(diff.skip)
    else:
        present = existing_ids(existing)
        to_append = []
        skipped = 0
        for row in data:
            oid = normalize_cell(row[0]) if row else ""
            if not oid or oid == SUBHEADER_ID:
                continue
            if oid in present:
                skipped += 1
                continue
            to_append.append(row)
        updates = []

    appended = len(to_append)
    if not existing:
        to_append = list(headers) + to_append

    if updates:
        gateway.batch_update(updates, value_input=USER_ENTERED)
    if to_append:
        gateway.append_rows(f"{kind.tab}!A1", to_append, USER_ENTERED)

    summary = {"appended": appended, "updated": len(updates), "skipped": skipped}
    logging.info(f"{kind.tab}: {summary}")
    return summary


def summary_message(kind: ReportKind, summary: Dict[str, int]) -> str:
    return (
        f"Added {summary['appended']} new rows, updated {summary['updated']} rows "
        f"in {kind.tab}"
    )


def export_report(
    settings: Settings,
    kind: ReportKind,
    date_from: str,
    date_to: str,
    client=None,
    session_factory: Optional[Callable] = None,
) -> Dict:
    """Full flow: login, generate, poll, download, transform, sync."""
    if not date_from or not date_to:
        raise ValueError("Missing from or to date")
    settings.require("login_email", "login_pass", kind.sheet_attr)

    factory = session_factory or (lambda: EcomdashSession(headless=settings.headless))
    with factory() as session:
        session.login(settings.login_email, settings.login_pass, REPORTING_RETURN_URL)
        timestamp = session.generate_report(kind.tile_id, date_from, date_to)
        logging.info(f"{kind.name}: waiting for report {timestamp!r}")
        url = session.find_report_download(timestamp)
        content = session.download(url)

    df = read_report(content)
    if kind.name == SALES_BY_CATEGORY.name:
        rows = prepare_sales_by_category(df, date_from, date_to, timestamp, kind)
    else:
        rows = prepare_sales_orders(df, settings.date_mode, kind)

    client = client or get_sheets_client(settings.credentials_b64)
    gateway = SheetGateway(client, getattr(settings, kind.sheet_attr))
    summary = sync_report_rows(gateway, kind, rows)
    return {"message": summary_message(kind, summary), **summary}
