import re
from typing import Dict, List, Optional

import pytest

from ecomdash.config import Settings
from ecomdash.extractor import parse_kit_components, parse_order_header, parse_product_rows
from ecomdash.sheets import SheetGateway

CELL_RE = re.compile(r"^([A-Z]*)(\d*)$")


def col_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - 64)
    return n


def parse_a1(range_name: str):
    """-> (tab, row0, col0, row1 | None, col1 | None), 1-based, None = unbounded."""
    tab, _, ref = range_name.partition("!")
    if not ref:
        return tab, 1, 1, None, None
    start, sep, end = ref.partition(":")
    sl, sd = CELL_RE.match(start).groups()
    r0 = int(sd) if sd else 1
    c0 = col_index(sl) if sl else 1
    if not sep:
        return tab, r0, c0, r0, c0
    el, ed = CELL_RE.match(end).groups()
    return tab, r0, c0, (int(ed) if ed else None), (col_index(el) if el else None)


class FakeSpreadsheet:
    """Grid-per-tab stand-in for gspread.Spreadsheet's values_* calls."""

    def __init__(self, tabs: Optional[Dict[str, List[List]]] = None):
        self.tabs: Dict[str, List[List]] = {k: [list(r) for r in v] for k, v in (tabs or {}).items()}
        self.calls: List[tuple] = []
        # tab -> exception raised by values_append on that tab
        self.append_errors: Dict[str, Exception] = {}

    def _grid(self, tab: str) -> List[List]:
        return self.tabs.setdefault(tab, [])

    def _write(self, tab: str, r0: int, c0: int, values: List[List]) -> None:
        grid = self._grid(tab)
        for i, row in enumerate(values):
            r = r0 - 1 + i
            while len(grid) <= r:
                grid.append([])
            target = grid[r]
            for j, v in enumerate(row):
                c = c0 - 1 + j
                while len(target) <= c:
                    target.append("")
                target[c] = v

    def values_get(self, range_name, params=None):
        self.calls.append(("get", range_name, params))
        tab, r0, c0, r1, c1 = parse_a1(range_name)
        grid = self._grid(tab)
        last_row = len(grid) if r1 is None else min(r1, len(grid))
        out = []
        for r in range(r0 - 1, last_row):
            row = grid[r]
            end = len(row) if c1 is None else min(c1, len(row))
            cells = list(row[c0 - 1:end])
            while cells and cells[-1] in ("", None):
                cells.pop()
            out.append(cells)
        while out and not out[-1]:
            out.pop()
        return {"range": range_name, "values": out} if out else {"range": range_name}

    def values_append(self, range_name, params=None, body=None):
        self.calls.append(("append", range_name, params, body))
        tab = range_name.partition("!")[0]
        if tab in self.append_errors:
            raise self.append_errors[tab]
        grid = self._grid(tab)
        while grid and not any(v not in ("", None) for v in grid[-1]):
            grid.pop()
        self._write(tab, len(grid) + 1, 1, body["values"])

    def values_update(self, range_name, params=None, body=None):
        self.calls.append(("update", range_name, params, body))
        tab, r0, c0, _, _ = parse_a1(range_name)
        self._write(tab, r0, c0, body["values"])

    def values_batch_update(self, body=None):
        self.calls.append(("batch_update", body))
        for item in body["data"]:
            tab, r0, c0, _, _ = parse_a1(item["range"])
            self._write(tab, r0, c0, item["values"])

    def values_clear(self, range_name):
        self.calls.append(("clear", range_name))
        tab, r0, c0, r1, c1 = parse_a1(range_name)
        grid = self._grid(tab)
        for r in range(r0 - 1, len(grid) if r1 is None else min(r1, len(grid))):
            row = grid[r]
            for c in range(c0 - 1, len(row) if c1 is None else min(c1, len(row))):
                row[c] = ""


def make_gateway(tabs: Optional[Dict[str, List[List]]] = None, spreadsheet_id: str = "sheet") -> SheetGateway:
    gw = SheetGateway(client=None, spreadsheet_id=spreadsheet_id)
    gw._sh = FakeSpreadsheet(tabs)
    return gw


class FakeSession:
    """
    Browser stand-in: per-order HTML run through the real parsers.
    pages[order_id] may be an Exception to simulate a navigation failure.
    """

    def __init__(self, pages: Dict[str, object], kits: Optional[Dict[str, Dict[int, str]]] = None,
                 login_error: Optional[Exception] = None, log: Optional[List] = None):
        self.pages = pages
        self.kits = kits or {}
        self.login_error = login_error
        self.log = log if log is not None else []
        self.current = None
        self.closed = False

    def __enter__(self):
        self.log.append(("open",))
        return self

    def __exit__(self, *exc):
        self.closed = True
        self.log.append(("close",))
        return False

    def login(self, email, password, return_url):
        self.log.append(("login", email))
        if self.login_error:
            raise self.login_error

    def open_order(self, order_id):
        self.log.append(("visit", order_id))
        page = self.pages.get(order_id)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise TimeoutError(f"Timeout 60000ms exceeded navigating to {order_id}")
        self.current = order_id

    def get_order_header(self):
        return parse_order_header(self.pages[self.current])

    def get_product_rows(self):
        return parse_product_rows(self.pages[self.current])

    def expand_kit(self, row):
        html = self.kits.get(self.current, {}).get(row["index"], "")
        return parse_kit_components(html)


def order_page(order_number="ORDER #1001", status=" Shipped ", date="2024-03-05T10:15:00",
               storefront="Amazon US", products: Optional[List[str]] = None, total="21.99") -> str:
    rows = "".join(products or [product_row("Widget", "WID-1", "1", "19.99")])
    return f"""
    <html><body>
      <div class="orderdetail-header">
        <span class="orderdetail-header__text">{order_number}</span>
        <span class="orderdetail-header__status">{status}</span>
        <label>Order Date</label> 03/05/2024
        <label>Storefront</label> {storefront}
      </div>
      <input id="ID" value="555" />
      <input id="SalesOrderCreateDate" value="{date}" />
      <input id="ProductTotal" value="19.99" />
      <input id="Tax1" value="1.00" />
      <input id="Tax2" value="0" />
      <input id="Tax3" value="0" />
      <input id="ShippingandHandling" value="1.00" />
      <input id="Discount" value="0" />
      <input id="OtherAmount" value="0" />
      <input id="SalesOrderTotal" value="{total}" />
      <table id="SalesOrderProductList"><tbody>{rows}</tbody></table>
    </body></html>
    """


def product_row(name, sku, qty, price, hidden_price=True, expander=False) -> str:
    price_input = (
        f'<input type="hidden" value="{price}" />' if hidden_price
        else f'<input class="order-price" type="text" value="{price}" />'
    )
    first = '<td class="details-control"></td>' if expander else "<td></td>"
    return (
        f"<tr>{first}"
        f"<td><b><font>{name}</font></b><br/>SKU: {sku}</td>"
        f"<td></td><td></td>"
        f'<td><input type="hidden" value="{qty}" />{qty}</td>'
        f"<td>{price_input}</td></tr>"
    )


def child_row(components) -> str:
    inner = "".join(
        "<tr>" + "".join(f"<td>{v}</td>" for v in comp) + "</tr>" for comp in components
    )
    return f'<tr><td colspan="6"><table class="child-table"><tbody>{inner}</tbody></table></td></tr>'


@pytest.fixture
def settings():
    return Settings(
        login_email="ops@example.com",
        login_pass="secret",
        masterfile_id="master",
        destination_id="dest",
        sales_sheet_id="sales",
        batch_size=2,
    )
