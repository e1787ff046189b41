# sheets.py
# Thin gateway over one Google spreadsheet (gspread). Everything is addressed
# as A1 ranges: sheet name + column letters + row numbers.

import base64
import json
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1

from .config import RAW, SCOPES, USER_ENTERED
from .dedup import normalize_cell

ROW_DIGITS_RE = re.compile(r"\d+$")


def get_sheets_client(credentials_b64: str) -> gspread.Client:
    """Authorize from a base64-encoded service-account JSON blob."""
    if not credentials_b64:
        raise ValueError("GCP_CREDENTIALS_B64 is not set")
    info = json.loads(base64.b64decode(credentials_b64).decode("utf-8"))
    creds = Credentials.from_service_account_info(info, scopes=SCOPES)
    return gspread.authorize(creds)


def col_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA"""
    return ROW_DIGITS_RE.sub("", rowcol_to_a1(1, index + 1))


def normalize_header(h) -> str:
    return re.sub(r"\s+", "", str(h or "").strip().lower())


def find_index_by_aliases(header_row: Sequence, aliases: Iterable[str]) -> int:
    """Column index of the first alias present in header_row (case/space-insensitive), else -1."""
    positions: Dict[str, int] = {}
    for i, h in enumerate(header_row):
        positions.setdefault(normalize_header(h), i)
    for a in aliases:
        idx = positions.get(normalize_header(a))
        if idx is not None:
            return idx
    return -1


class SheetGateway:
    def __init__(self, client: gspread.Client, spreadsheet_id: str):
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self._sh: Optional[gspread.Spreadsheet] = None

    @property
    def spreadsheet(self) -> gspread.Spreadsheet:
        if self._sh is None:
            self._sh = self.client.open_by_key(self.spreadsheet_id)
        return self._sh

    def read_range(self, range_name: str, unformatted: bool = False) -> List[List]:
        params = None
        if unformatted:
            params = {
                "valueRenderOption": "UNFORMATTED_VALUE",
                "dateTimeRenderOption": "FORMATTED_STRING",
                "majorDimension": "ROWS",
            }
        resp = self.spreadsheet.values_get(range_name, params=params)
        return resp.get("values", [])

    def append_rows(self, range_name: str, rows: List[List], value_input: str = USER_ENTERED) -> None:
        if not rows:
            return
        self.spreadsheet.values_append(
            range_name,
            params={"valueInputOption": value_input, "insertDataOption": "INSERT_ROWS"},
            body={"values": rows},
        )
        logging.info(f"Appended {len(rows)} rows to {range_name}")

    def update_range(self, range_name: str, rows: List[List], value_input: str = RAW) -> None:
        self.spreadsheet.values_update(
            range_name,
            params={"valueInputOption": value_input},
            body={"values": rows},
        )

    def batch_update(self, data: List[Dict], value_input: str = RAW) -> None:
        """data: [{"range": "Tab!A2:A9", "values": [[...], ...]}, ...]"""
        if not data:
            return
        self.spreadsheet.values_batch_update(body={"valueInputOption": value_input, "data": data})
        logging.info(f"Batch-updated {len(data)} ranges")

    def clear_range(self, range_name: str) -> None:
        self.spreadsheet.values_clear(range_name)

    # ───────────────────────── HEADERS ─────────────────────────
    def header_row(self, tab: str, unformatted: bool = False) -> List:
        rows = self.read_range(f"{tab}!1:1", unformatted=unformatted)
        return rows[0] if rows else []

    def ensure_header(self, tab: str, header: List[str]) -> bool:
        """Write the header when the tab's first row is empty. Returns True if written."""
        first = self.header_row(tab)
        if not first:
            self.update_range(f"{tab}!A1", [header], value_input=RAW)
            logging.info(f"Wrote header row to '{tab}'")
            return True
        if [str(h).strip() for h in first] != header:
            logging.warning(f"'{tab}' header differs from expected; appending under existing header.")
        return False

    def column_cells(self, tab: str, col_index: int, first_row: int = 2, unformatted: bool = False) -> List:
        """One column from first_row down, cell values as returned; gaps are ""."""
        letter = col_letter(col_index)
        rows = self.read_range(f"{tab}!{letter}{first_row}:{letter}", unformatted=unformatted)
        return [r[0] if r and r[0] is not None else "" for r in rows]

    def column_values(self, tab: str, col_index: int, first_row: int = 2, unformatted: bool = False) -> List[str]:
        return [normalize_cell(v) for v in self.column_cells(tab, col_index, first_row, unformatted)]
