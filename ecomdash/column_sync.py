# column_sync.py
# Maintenance: fill Orders-tab columns from the masterfile (Sheets -> Sheets),
# no scraping.
# - FIRST master row per orderId wins.
# - Missing headers are added (orderId in front, rule columns at the end).
# - Default fills blanks only; overwrite=True replaces every cell.
# - Destination reads are unformatted, so cells written back RAW keep their type.

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .config import DATE_MODE_STRING, RAW, Settings
from .dedup import first_match_map, normalize_cell
from .normalize import format_date, to_output_date
from .sheets import SheetGateway, col_letter, find_index_by_aliases, get_sheets_client, normalize_header


def master_date(v) -> str:
    """Masterfile dates arrive either as text or, unformatted, as serials."""
    if v is None or v == "":
        return ""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return to_output_date(v, DATE_MODE_STRING)
    return format_date(v)


@dataclass(frozen=True)
class ColumnRule:
    dest_header: str
    master_aliases: Tuple[str, ...]
    transform: Optional[Callable] = None

    def value(self, raw):
        if self.transform:
            return self.transform(raw)
        return "" if raw is None else raw


COLUMN_RULES: List[ColumnRule] = [
    ColumnRule("invoiceDate", ("InvoiceDate",), master_date),
    ColumnRule("paymentReceivedDate", ("PaymentReceivedDate",), master_date),
    ColumnRule("completedDate", ("CompletedDate",), master_date),
    ColumnRule("customerEmail", ("Email",)),
    ColumnRule("shipToCity", ("ShippingCity",)),
    ColumnRule("shipToState", ("ShippingState",)),
    ColumnRule("shipToCountry", ("ShippingCountry",)),
]

ORDER_ID_ALIASES = ("EcomdashID", "orderId")
DEST_ORDER_ID = "orderId"


def build_master_map(master: List[List], rules: List[ColumnRule] = COLUMN_RULES) -> Tuple[Dict[str, Dict], int, List[str]]:
    """
    orderId -> {dest_header: value} from the first master row per id.
    Returns (map, duplicate_count, rules_missing_in_master).
    """
    header, rows = master[0], master[1:]
    id_idx = find_index_by_aliases(header, ORDER_ID_ALIASES)
    if id_idx == -1:
        raise ValueError(f"Could not find an order id column in masterfile (aliases: {ORDER_ID_ALIASES})")

    rule_idx: Dict[str, int] = {}
    missing = []
    for rule in rules:
        idx = find_index_by_aliases(header, rule.master_aliases)
        if idx == -1:
            missing.append(rule.dest_header)
        else:
            rule_idx[rule.dest_header] = idx

    first, duplicates = first_match_map(rows, id_idx)
    out: Dict[str, Dict] = {}
    for oid, r in first.items():
        values = {}
        for rule in rules:
            idx = rule_idx.get(rule.dest_header)
            if idx is None:
                continue
            values[rule.dest_header] = rule.value(r[idx] if idx < len(r) else None)
        out[oid] = values
    return out, duplicates, missing


def ensure_order_id_column(dest: SheetGateway, tab: str, header: List) -> List:
    """
    Put an orderId column in front of the tab when it has none, shifting the
    existing cells one column right. Returns the new header.
    """
    if find_index_by_aliases(header, (DEST_ORDER_ID,)) != -1:
        return header
    grid = dest.read_range(f"{tab}!A1:ZZ", unformatted=True)
    shifted = [[DEST_ORDER_ID] + list(header)]
    shifted += [[""] + list(r) for r in grid[1:]]
    dest.update_range(f"{tab}!A1", shifted, value_input=RAW)
    logging.info(f"Added '{DEST_ORDER_ID}' column to '{tab}' ({len(shifted) - 1} rows shifted)")
    return shifted[0]


def sync_columns(
    master_gw: SheetGateway,
    dest_gw: SheetGateway,
    master_range: str,
    tab: str,
    fill_only_blanks: bool = True,
    rules: List[ColumnRule] = COLUMN_RULES,
) -> Dict:
    master = master_gw.read_range(master_range, unformatted=True)
    if len(master) < 2:
        logging.info("No master rows found (need header + data).")
        return {"rows": 0, "columns": [], "added_headers": [], "duplicates": 0}

    master_map, duplicates, missing = build_master_map(master, rules)
    if missing:
        logging.warning(f"Skipping columns not found in master: {', '.join(missing)}")
    if duplicates:
        logging.info(f"{duplicates} duplicate master rows (kept first occurrence per orderId)")

    header = ensure_order_id_column(dest_gw, tab, dest_gw.header_row(tab, unformatted=True))
    id_col = find_index_by_aliases(header, (DEST_ORDER_ID,))
    order_ids = dest_gw.column_values(tab, id_col, unformatted=True)
    row_count = len(order_ids)
    if not row_count:
        logging.info(f"Nothing to update ('{tab}' has no rows beyond header).")
        return {"rows": 0, "columns": [], "added_headers": [], "duplicates": duplicates}

    header = list(header)
    known = {normalize_header(h) for h in header}
    added = []
    for rule in rules:
        if normalize_header(rule.dest_header) not in known:
            header.append(rule.dest_header)
            known.add(normalize_header(rule.dest_header))
            added.append(rule.dest_header)
    if added:
        dest_gw.update_range(f"{tab}!1:1", [header], value_input=RAW)
        logging.info(f"Added headers: {', '.join(added)}")

    value_ranges = []
    for rule in rules:
        col = find_index_by_aliases(header, (rule.dest_header,))
        existing = dest_gw.column_cells(tab, col, unformatted=True)
        existing += [""] * (row_count - len(existing))

        values = []
        for i, oid in enumerate(order_ids):
            candidate = master_map.get(oid, {}).get(rule.dest_header, "") if oid else ""
            current = existing[i]
            if fill_only_blanks and normalize_cell(current) != "":
                values.append([current])
            else:
                values.append([candidate])

        letter = col_letter(col)
        value_ranges.append({"range": f"{tab}!{letter}2:{letter}{row_count + 1}", "values": values})

    dest_gw.batch_update(value_ranges, value_input=RAW)
    mode = "filled blanks only" if fill_only_blanks else "overwrote all"
    logging.info(f"Updated columns in '{tab}' ({mode}): {', '.join(r.dest_header for r in rules)}")
    return {
        "rows": row_count,
        "columns": [r.dest_header for r in rules],
        "added_headers": added,
        "duplicates": duplicates,
    }


def run_column_sync(settings: Settings, client=None, overwrite: Optional[bool] = None) -> Dict:
    settings.require("masterfile_id", "destination_id")
    client = client or get_sheets_client(settings.credentials_b64)
    fill_only_blanks = settings.fill_only_blanks if overwrite is None else not overwrite
    return sync_columns(
        SheetGateway(client, settings.masterfile_id),
        SheetGateway(client, settings.destination_id),
        settings.master_range,
        settings.orders_sheet_name,
        fill_only_blanks=fill_only_blanks,
    )
