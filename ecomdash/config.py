# config.py
# Static configuration for the ecomdash -> Google Sheets sync, plus the runtime
# Settings object built from environment variables.

import os
from dataclasses import dataclass
from typing import Dict, List, Optional

# ───────────────────────── ECOMDASH ─────────────────────────
LOGIN_URL = "https://app.ecomdash.com/"
ORDERS_RETURN_URL = "/SalesOrderModule/AllSalesOrders"
REPORTING_RETURN_URL = "/Reporting"
ORDER_DETAIL_URL = (
    "https://dashboard.ecomdash.com/SalesOrderModule/SalesOrderDetails?ID={order_id}&ReturnItem=AllSO"
)
REPORTING_HISTORY_URL = "https://dashboard.ecomdash.com/Support/ReportingHistory"

VIEWPORT = {"width": 1280, "height": 800}
LOGIN_TIMEOUT_MS = 10_000
NAVIGATION_TIMEOUT_MS = 60_000
SELECTOR_TIMEOUT_MS = 10_000
KIT_EXPAND_TIMEOUT_MS = 5_000
KIT_EXPAND_ATTEMPTS = 2

REPORT_POLL_ATTEMPTS = 30
REPORT_POLL_DELAY = 3.0       # seconds
REPORT_DOWNLOAD_TIMEOUT = 60  # seconds

# ───────────────────────── PACING ─────────────────────────
DEFAULT_BATCH_SIZE = 100
ORDER_DELAY = 2.0   # seconds between orders
BATCH_DELAY = 5.0   # seconds between batches

# ───────────────────────── SHEETS ─────────────────────────
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

MASTER_IDS_RANGE = "Distinct_Orders!A2:A"
DEFAULT_MASTER_RANGE = "SalesMasterfile!A:AP"

ORDERS_TAB = "Orders"
PRODUCTS_TAB = "Products"
ITEMIZED_TAB = "Itemized"

ORDERS_HEADER = [
    "orderId",
    "orderNumber",
    "orderDate",
    "status",
    "storefront",
    "merchandiseTotal",
    "tax1",
    "tax2",
    "tax3",
    "shipping",
    "discount",
    "otherFees",
    "orderTotal",
]
PRODUCTS_HEADER = ["orderId", "lineIndex", "name", "sku", "qty", "price", "orderDate", "storefront"]
ITEMIZED_HEADER = [
    "orderId",
    "productLineIndex",
    "componentIndex",
    "componentName",
    "componentSku",
    "componentQty",
    "componentLocation",
    "orderDate",
    "storefront",
]

DESTINATION_HEADERS: Dict[str, List[str]] = {
    ORDERS_TAB: ORDERS_HEADER,
    PRODUCTS_TAB: PRODUCTS_HEADER,
    ITEMIZED_TAB: ITEMIZED_HEADER,
}

# "entered" lets Sheets reinterpret dates/formulas; column sync writes literals
USER_ENTERED = "USER_ENTERED"
RAW = "RAW"

# ───────────────────────── DATES ─────────────────────────
DATE_MODE_STRING = "string"   # YYYY/MM/DD
DATE_MODE_SERIAL = "serial"   # spreadsheet serial number
DATE_MODES = (DATE_MODE_STRING, DATE_MODE_SERIAL)

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    credentials_b64: str = ""
    login_email: str = ""
    login_pass: str = ""
    masterfile_id: str = ""
    destination_id: str = ""
    sales_sheet_id: str = ""
    master_range: str = DEFAULT_MASTER_RANGE
    orders_sheet_name: str = ORDERS_TAB
    batch_size: int = DEFAULT_BATCH_SIZE
    date_mode: str = DATE_MODE_STRING
    fill_only_blanks: bool = True
    headless: bool = True
    port: int = 3000

    def __post_init__(self):
        if self.date_mode not in DATE_MODES:
            raise ValueError(f"DATE_MODE must be one of {DATE_MODES}, got {self.date_mode!r}")
        if self.batch_size < 1:
            raise ValueError(f"BATCH_SIZE must be >= 1, got {self.batch_size}")

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        try:
            batch_size = int(env.get("BATCH_SIZE") or DEFAULT_BATCH_SIZE)
            port = int(env.get("PORT") or 3000)
        except ValueError as ex:
            raise ValueError(f"BATCH_SIZE and PORT must be integers: {ex}") from ex

        fill_raw = (env.get("FILL_ONLY_BLANKS") or "true").strip().lower()
        headless_raw = (env.get("HEADLESS") or "true").strip().lower()

        return cls(
            credentials_b64=env.get("GCP_CREDENTIALS_B64", ""),
            login_email=env.get("LOGIN_EMAIL", ""),
            login_pass=env.get("LOGIN_PASS", ""),
            masterfile_id=env.get("MASTERFILE_ID", ""),
            destination_id=env.get("DESTINATION_ID", ""),
            sales_sheet_id=env.get("SALES_SHEET_ID", ""),
            master_range=env.get("MASTER_RANGE") or DEFAULT_MASTER_RANGE,
            orders_sheet_name=env.get("ORDERS_SHEET_NAME") or ORDERS_TAB,
            batch_size=batch_size,
            date_mode=(env.get("DATE_MODE") or DATE_MODE_STRING).strip().lower(),
            fill_only_blanks=fill_raw == "true",
            headless=headless_raw not in ("0", "false", "no", "off"),
            port=port,
        )

    def require(self, *names: str) -> None:
        """Raise ValueError naming every listed setting that is empty."""
        missing = [n for n in names if not getattr(self, n)]
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")
