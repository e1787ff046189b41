# extractor.py
# Reads one ecomdash order-detail page into an OrderRecord + ProductLines.
#
# The parsing itself is pure BeautifulSoup over the rendered HTML; the browser
# side only has to implement the PageReader capability below.

import logging
import re
from typing import Dict, List, Optional, Protocol

from bs4 import BeautifulSoup

from .config import DATE_MODE_STRING
from .models import Financials, KitComponent, OrderRecord, ProductLine, ScrapedOrder
from .normalize import clean_text, normalize_order_number, normalize_status, to_output_date, format_date

# ───────────────────────── SELECTORS ─────────────────────────
ORDER_NUMBER_SEL = ".orderdetail-header__text"
STATUS_SEL = ".orderdetail-header__status"
ECOMDASH_ID_SEL = "input#ID"
ORDER_DATE_SEL = "input#SalesOrderCreateDate"
STOREFRONT_LABEL_SEL = ".orderdetail-header label:nth-of-type(2)"

FINANCIAL_INPUTS = {
    "merchandise_total": "#ProductTotal",
    "tax1": "#Tax1",
    "tax2": "#Tax2",
    "tax3": "#Tax3",
    "shipping": "#ShippingandHandling",
    "discount": "#Discount",
    "other_fees": "#OtherAmount",
    "order_total": "#SalesOrderTotal",
}

PRODUCT_TABLE_SEL = "#SalesOrderProductList"
PRODUCT_ROWS_SEL = "#SalesOrderProductList tbody > tr"
CHILD_ROW_MARKER = ".child-table"
# product rows only; expanded kits insert child rows between them
TOP_LEVEL_ROWS_SEL = "#SalesOrderProductList tbody > tr:not(:has(.child-table))"
DETAIL_ROW_XPATH = "xpath=following-sibling::tr[1]"
KIT_EXPANDER_SEL = ".details-control"
KIT_COMPONENT_ROWS_SEL = ".child-table tbody tr"

SKU_RE = re.compile(r"SKU:\s*([A-Za-z0-9\-_]+)")

# product table columns (1-based, as they appear on the page)
NAME_COL = 2
QTY_COL = 5
PRICE_COL = 6


class PageReader(Protocol):
    """What the extractor needs from a page already on an order-detail URL."""

    def get_order_header(self) -> Dict[str, str]: ...

    def get_product_rows(self) -> List[Dict]: ...

    def expand_kit(self, row: Dict) -> List[Dict[str, str]]: ...


# ───────────────────────── HELPERS ─────────────────────────
def _soup(html) -> BeautifulSoup:
    if isinstance(html, BeautifulSoup):
        return html
    return BeautifulSoup(html or "", "html.parser")


def input_value(root, selector: str) -> str:
    el = root.select_one(selector)
    if not el:
        return ""
    return (el.get("value") or "").strip()


def text_of(root, selector: str) -> str:
    el = root.select_one(selector)
    return el.get_text(" ", strip=True) if el else ""


def _cells(row) -> list:
    return row.find_all("td", recursive=False)


def _cell(row, col: int):
    cells = _cells(row)
    return cells[col - 1] if len(cells) >= col else None


def storefront_text(soup: BeautifulSoup) -> str:
    """The storefront is the bare text node right after the 2nd header label."""
    label = soup.select_one(STOREFRONT_LABEL_SEL)
    if not label:
        return ""
    sib = label.next_sibling
    if sib is None:
        return ""
    if hasattr(sib, "get_text"):
        return clean_text(sib.get_text(" ", strip=True))
    return clean_text(str(sib))


# ───────────────────────── HEADER ─────────────────────────
def parse_order_header(html) -> Dict[str, str]:
    """Raw header fields; every missing location yields ""."""
    soup = _soup(html)
    out = {
        "order_number": normalize_order_number(text_of(soup, ORDER_NUMBER_SEL)),
        "status": normalize_status(text_of(soup, STATUS_SEL)),
        "ecomdash_id": input_value(soup, ECOMDASH_ID_SEL),
        "order_date": input_value(soup, ORDER_DATE_SEL),
        "storefront": storefront_text(soup),
    }
    for key, sel in FINANCIAL_INPUTS.items():
        out[key] = input_value(soup, sel)
    return out


# ───────────────────────── PRODUCT ROWS ─────────────────────────
def parse_product_row(row) -> Dict:
    name_cell = _cell(row, NAME_COL)
    name = ""
    sku = ""
    if name_cell is not None:
        name_el = name_cell.select_one("b font")
        name = name_el.get_text(strip=True) if name_el else ""
        m = SKU_RE.search(name_cell.get_text(" ", strip=True))
        if m:
            sku = m.group(1).strip()

    qty = ""
    qty_cell = _cell(row, QTY_COL)
    if qty_cell is not None:
        qty = input_value(qty_cell, 'input[type="hidden"]')

    price = ""
    price_cell = _cell(row, PRICE_COL)
    if price_cell is not None:
        price = input_value(price_cell, 'input[type="hidden"]')
        if not price:
            # orders awaiting shipment render an editable price box instead
            price = input_value(price_cell, "input.order-price")

    return {
        "name": name,
        "sku": sku,
        "qty": qty,
        "price": price,
        "has_expander": row.select_one(KIT_EXPANDER_SEL) is not None,
    }


def parse_product_rows(html) -> List[Dict]:
    """
    Top-level product rows in document order. Child (kit detail) rows are
    skipped; each result keeps `index`, its position among top-level rows,
    which stays valid after kits above it are expanded.
    """
    soup = _soup(html)
    table = soup.select_one(PRODUCT_TABLE_SEL)
    if not table:
        return []
    body = table.find("tbody")
    if body is None:
        return []

    out = []
    for row in body.find_all("tr", recursive=False):
        if row.select_one(CHILD_ROW_MARKER) is not None:
            continue
        item = parse_product_row(row)
        item["index"] = len(out)
        out.append(item)
    return out


def parse_kit_components(html) -> List[Dict[str, str]]:
    """Component sub-rows of an expanded kit, read positionally."""
    soup = _soup(html)
    comps = []
    for tr in soup.select(KIT_COMPONENT_ROWS_SEL):
        texts = [td.get_text(" ", strip=True) for td in tr.find_all("td")]
        if not any(texts):
            continue
        texts += [""] * (4 - len(texts))
        comps.append({
            "component_name": texts[0],
            "component_sku": texts[1],
            "component_qty": texts[2],
            "component_location": texts[3],
        })
    return comps


# ───────────────────────── ORDER ─────────────────────────
def build_order_record(order_id: str, header: Dict[str, str], date_mode: str = DATE_MODE_STRING) -> OrderRecord:
    raw_date = header.get("order_date", "")
    if date_mode == DATE_MODE_STRING:
        order_date = format_date(raw_date)
    else:
        order_date = to_output_date(raw_date, date_mode) or raw_date

    financials = Financials(**{k: header.get(k, "") for k in FINANCIAL_INPUTS})
    return OrderRecord(
        order_id=str(order_id),
        order_number=header.get("order_number", ""),
        order_date=order_date,
        status=header.get("status", ""),
        storefront=header.get("storefront", ""),
        financials=financials,
    )


def build_product_line(order_id: str, line_index: int, row: Dict, kit: Optional[List[Dict]] = None) -> ProductLine:
    components = [
        KitComponent(
            order_id=str(order_id),
            product_line_index=line_index,
            component_index=i,
            component_name=c.get("component_name", ""),
            component_sku=c.get("component_sku", ""),
            component_qty=c.get("component_qty", ""),
            component_location=c.get("component_location", ""),
        )
        for i, c in enumerate(kit or [], start=1)
    ]
    return ProductLine(
        order_id=str(order_id),
        line_index=line_index,
        name=row.get("name", ""),
        sku=row.get("sku", ""),
        qty=row.get("qty", ""),
        price=row.get("price", ""),
        kit=components,
    )


def extract_order(reader: PageReader, order_id: str, date_mode: str = DATE_MODE_STRING) -> ScrapedOrder:
    """
    Header + product lines (+ kit components) for the order the reader is on.
    Navigation/selector errors from the reader propagate to the caller.
    """
    order = build_order_record(order_id, reader.get_order_header(), date_mode)

    lines: List[ProductLine] = []
    for line_index, row in enumerate(reader.get_product_rows(), start=1):
        kit: List[Dict] = []
        if row.get("has_expander"):
            kit = reader.expand_kit(row) or []
            if not kit:
                logging.info(f"[{order_id}] line {line_index}: no kit components, using the line itself")
        lines.append(build_product_line(order_id, line_index, row, kit))

    return ScrapedOrder(order=order, lines=lines)
