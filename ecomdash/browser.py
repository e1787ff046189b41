# browser.py
# Playwright session against the ecomdash back office: login, order pages
# (PageReader for the extractor) and the reporting screens.

import logging
import time
from typing import Dict, List, Optional
from urllib.parse import quote

import requests
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import (
    KIT_EXPAND_ATTEMPTS,
    KIT_EXPAND_TIMEOUT_MS,
    LOGIN_TIMEOUT_MS,
    LOGIN_URL,
    NAVIGATION_TIMEOUT_MS,
    ORDER_DETAIL_URL,
    REPORT_DOWNLOAD_TIMEOUT,
    REPORT_POLL_ATTEMPTS,
    REPORT_POLL_DELAY,
    REPORTING_HISTORY_URL,
    SELECTOR_TIMEOUT_MS,
    VIEWPORT,
)
from .extractor import (
    CHILD_ROW_MARKER,
    DETAIL_ROW_XPATH,
    KIT_COMPONENT_ROWS_SEL,
    KIT_EXPANDER_SEL,
    PRODUCT_ROWS_SEL,
    TOP_LEVEL_ROWS_SEL,
    parse_kit_components,
    parse_order_header,
    parse_product_rows,
)

BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class LoginError(RuntimeError):
    pass


class ReportNotFoundError(RuntimeError):
    pass


def login_url(return_url: str) -> str:
    return f"{LOGIN_URL}?returnUrl={quote(return_url, safe='')}"


class EcomdashSession:
    """
    One browser lifetime. Started lazily, torn down by close() or by leaving
    the `with` block.
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._pw = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _ensure(self):
        if self._pw is not None:
            return
        self._pw = sync_playwright().start()
        self._browser = self._pw.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
        self._context = self._browser.new_context(viewport=VIEWPORT)
        self._page = self._context.new_page()
        self._page.set_default_timeout(SELECTOR_TIMEOUT_MS)

    @property
    def page(self):
        self._ensure()
        return self._page

    # ───────────────────────── AUTH ─────────────────────────
    def login(self, email: str, password: str, return_url: str) -> None:
        page = self.page
        try:
            page.goto(login_url(return_url), wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
            page.fill("input#UserName", email)
            page.click("input#submit")
            page.wait_for_selector("input#Password", timeout=LOGIN_TIMEOUT_MS)
            page.fill("input#Password", password)
            with page.expect_navigation(wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS):
                page.click("input#submit")
        except PlaywrightTimeoutError as ex:
            raise LoginError(f"ecomdash login failed: {ex}") from ex
        logging.info("Logged in to ecomdash")

    # ───────────────────────── ORDERS ─────────────────────────
    def open_order(self, order_id: str) -> None:
        url = ORDER_DETAIL_URL.format(order_id=quote(str(order_id), safe=""))
        self.page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)

    def get_order_header(self) -> Dict[str, str]:
        return parse_order_header(self.page.content())

    def get_product_rows(self) -> List[Dict]:
        self.page.wait_for_selector(PRODUCT_ROWS_SEL, timeout=SELECTOR_TIMEOUT_MS)
        return parse_product_rows(self.page.content())

    def expand_kit(self, row: Dict) -> List[Dict[str, str]]:
        """
        Click the row's expander and read the nested component table.
        The row is looked up among top-level rows at call time, so child rows
        inserted by earlier expansions do not shift it.
        """
        row_loc = self.page.locator(TOP_LEVEL_ROWS_SEL).nth(row["index"])
        expander = row_loc.locator(KIT_EXPANDER_SEL)
        if expander.count() == 0:
            return []

        detail_row = row_loc.locator(DETAIL_ROW_XPATH)
        for attempt in range(1, KIT_EXPAND_ATTEMPTS + 1):
            try:
                # click only while the detail row is closed
                if detail_row.locator(CHILD_ROW_MARKER).count() == 0:
                    expander.first.click()
                detail_row.locator(KIT_COMPONENT_ROWS_SEL).first.wait_for(timeout=KIT_EXPAND_TIMEOUT_MS)
                comps = parse_kit_components(detail_row.inner_html())
                if comps:
                    return comps
            except PlaywrightTimeoutError:
                logging.warning(f"kit expand attempt {attempt} timed out (row {row['index']})")
        return []

    # ───────────────────────── REPORTS ─────────────────────────
    def generate_report(self, tile_id: str, date_from: str, date_to: str) -> str:
        """
        Open a report tile on the Reporting page, submit the date range and
        return the timestamp of the newest reporting-history row.
        """
        page = self.page
        page.wait_for_selector(f"div#{tile_id}")
        page.click(f"div#{tile_id} div.buttonDiv a.albany-btn.albany-btn--primary")
        page.wait_for_selector("form#GenerateReport", state="visible")

        for field_sel, value in (("#ReportStartDate", date_from), ("#ReportEndDate", date_to)):
            page.fill(field_sel, "")
            page.type(field_sel, value)
            page.eval_on_selector(field_sel, "el => el.blur()")

        with page.expect_navigation(wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS):
            page.click("a#GenerateDateRestrictionReport")

        page.wait_for_selector("table")
        return page.inner_text("table tbody tr td:nth-child(1)").strip()

    def find_report_download(
        self,
        timestamp: str,
        attempts: int = REPORT_POLL_ATTEMPTS,
        delay: float = REPORT_POLL_DELAY,
    ) -> str:
        page = self.page
        for i in range(1, attempts + 1):
            page.goto(REPORTING_HISTORY_URL, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
            page.wait_for_selector("table")
            url = self._completed_report_url(timestamp)
            if url:
                logging.info(f"Report {timestamp!r} ready: {url}")
                return url
            logging.info(f"Report {timestamp!r} not ready (poll {i}/{attempts})")
            time.sleep(delay)
        raise ReportNotFoundError(f"No completed report for {timestamp!r} after {attempts} polls")

    def _completed_report_url(self, timestamp: str) -> Optional[str]:
        rows = self.page.locator("table tbody tr")
        for i in range(rows.count()):
            row = rows.nth(i)
            row_ts = row.locator("td:nth-child(1)").inner_text().strip()
            status = row.locator("td:nth-child(4)").inner_text().strip()
            if row_ts != timestamp or status != "Complete":
                continue
            link = row.locator('td:nth-child(5) a[href$=".xlsx"]')
            if link.count():
                return link.first.evaluate("a => a.href")
        return None

    def download(self, url: str) -> bytes:
        """Fetch a report file with the browser's cookies."""
        jar = requests.cookies.RequestsCookieJar()
        for c in self._context.cookies() if self._context else []:
            jar.set(c["name"], c["value"], domain=c.get("domain"), path=c.get("path", "/"))
        resp = requests.get(url, cookies=jar, timeout=REPORT_DOWNLOAD_TIMEOUT)
        resp.raise_for_status()
        return resp.content

    def close(self):
        try:
            if self._page:
                self._page.close()
            if self._context:
                self._context.close()
            if self._browser:
                self._browser.close()
        finally:
            if self._pw:
                self._pw.stop()
            self._pw = self._browser = self._context = self._page = None
