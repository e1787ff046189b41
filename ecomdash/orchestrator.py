# orchestrator.py
# Batch scrape: masterfile order ids -> ecomdash order pages -> destination tabs.
#
# Idle -> LoadingIds -> (BatchInProgress -> BatchComplete)* -> Done
# One browser session per batch; orders strictly in list order.

import logging
import time
from typing import Callable, Iterable, List, Optional, Set

from .browser import EcomdashSession
from .config import (
    BATCH_DELAY,
    DESTINATION_HEADERS,
    ITEMIZED_TAB,
    MASTER_IDS_RANGE,
    ORDER_DELAY,
    ORDERS_RETURN_URL,
    ORDERS_TAB,
    PRODUCTS_TAB,
    USER_ENTERED,
    Settings,
)
from .dedup import existing_ids
from .extractor import extract_order
from .models import RunResult, ScrapedOrder
from .sheets import SheetGateway, get_sheets_client

IDLE = "Idle"
LOADING_IDS = "LoadingIds"
BATCH_IN_PROGRESS = "BatchInProgress"
BATCH_COMPLETE = "BatchComplete"
DONE = "Done"


def chunked(items: List, size: int) -> Iterable[List]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def read_order_ids(master: SheetGateway, range_name: str = MASTER_IDS_RANGE) -> List[str]:
    rows = master.read_range(range_name)
    ids = []
    for r in rows:
        if not r:
            continue
        oid = str(r[0]).strip()
        if oid:
            ids.append(oid)
    return ids


def write_order(destination: SheetGateway, scraped: ScrapedOrder) -> None:
    # Orders goes last: its id marks the order as present for later runs
    destination.append_rows(f"{PRODUCTS_TAB}!A1", scraped.product_rows(), USER_ENTERED)
    destination.append_rows(f"{ITEMIZED_TAB}!A1", scraped.itemized_rows(), USER_ENTERED)
    destination.append_rows(f"{ORDERS_TAB}!A1", scraped.order_rows(), USER_ENTERED)


class BatchRunner:
    """
    Drives the extractor over the masterfile id list.

    session_factory() must return a context manager exposing login(),
    open_order() and the PageReader methods (EcomdashSession in production).
    """

    def __init__(
        self,
        settings: Settings,
        master: SheetGateway,
        destination: SheetGateway,
        session_factory: Optional[Callable] = None,
        sleep: Callable[[float], None] = time.sleep,
        order_delay: float = ORDER_DELAY,
        batch_delay: float = BATCH_DELAY,
    ):
        self.settings = settings
        self.master = master
        self.destination = destination
        self.session_factory = session_factory or (lambda: EcomdashSession(headless=settings.headless))
        self.sleep = sleep
        self.order_delay = order_delay
        self.batch_delay = batch_delay
        self.state = IDLE

    def _set_state(self, state: str) -> None:
        self.state = state
        logging.debug(f"runner state -> {state}")

    def run(self) -> RunResult:
        self._set_state(LOADING_IDS)
        order_ids = read_order_ids(self.master)
        for tab, header in DESTINATION_HEADERS.items():
            self.destination.ensure_header(tab, header)

        batches = list(chunked(order_ids, self.settings.batch_size))
        result = RunResult(processed=len(order_ids), batches=len(batches))
        logging.info(f"{len(order_ids)} order ids in {len(batches)} batches of <= {self.settings.batch_size}")

        for i, batch in enumerate(batches, start=1):
            self._set_state(BATCH_IN_PROGRESS)
            logging.info(f"Starting batch {i} of {len(batches)}")
            try:
                self.run_batch(batch, result)
            except Exception as ex:
                logging.exception(f"Batch {i} failed: {ex}")
                result.batch_errors.append({"batch": i, "error": str(ex)})
            self._set_state(BATCH_COMPLETE)
            logging.info(f"Finished batch {i} of {len(batches)}")
            if i < len(batches):
                self.sleep(self.batch_delay)

        self._set_state(DONE)
        logging.info(
            f"Done: {len(result.successes)} pushed, {len(result.failures)} failed, "
            f"{len(result.skipped)} already present, {len(result.batch_errors)} batch errors"
        )
        return result

    def run_batch(self, order_ids: List[str], result: RunResult) -> None:
        s = self.settings
        with self.session_factory() as session:
            session.login(s.login_email, s.login_pass, ORDERS_RETURN_URL)
            present: Set[str] = existing_ids(self.destination.read_range(f"{ORDERS_TAB}!A2:A"))

            for order_id in order_ids:
                if order_id in present:
                    result.skipped.append(order_id)
                    continue

                logging.info(f"Visiting order {order_id}")
                try:
                    session.open_order(order_id)
                    scraped = extract_order(session, order_id, s.date_mode)
                    write_order(self.destination, scraped)
                except Exception as ex:
                    logging.error(f"Failed on order {order_id}: {ex}")
                    result.failures.append({"orderId": order_id, "error": str(ex)})
                else:
                    present.add(order_id)
                    result.successes.append(order_id)
                    logging.info(f"Pushed order {order_id} ({len(scraped.lines)} lines)")

                self.sleep(self.order_delay)


def run_scraper(settings: Settings, client=None, session_factory: Optional[Callable] = None) -> RunResult:
    """Build the run context from settings, run every batch, discard the context."""
    settings.require("masterfile_id", "destination_id", "login_email", "login_pass")
    client = client or get_sheets_client(settings.credentials_b64)
    runner = BatchRunner(
        settings,
        master=SheetGateway(client, settings.masterfile_id),
        destination=SheetGateway(client, settings.destination_id),
        session_factory=session_factory,
    )
    return runner.run()
