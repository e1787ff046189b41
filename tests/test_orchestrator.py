from dataclasses import replace

import pytest
from conftest import FakeSession, make_gateway, order_page, product_row

from ecomdash.browser import LoginError
from ecomdash.config import ITEMIZED_HEADER, ORDERS_HEADER, PRODUCTS_HEADER
from ecomdash.orchestrator import DONE, IDLE, BatchRunner, chunked, read_order_ids, run_scraper

PAGES = {
    "1001": order_page(order_number="ORDER #1001"),
    "1002": order_page(order_number="ORDER #1002"),
    "1003": order_page(
        order_number="ORDER #1003",
        products=[product_row("Widget", "WID-1", "1", "19.99"), product_row("Gadget", "GAD-2", "3", "4.50")],
    ),
}


def _master(ids):
    return make_gateway({"Distinct_Orders": [["orderId"]] + [[i] for i in ids]}, "master")


def _runner(settings, master, dest, sessions, log=None, pages=PAGES, **kw):
    log = log if log is not None else []

    def factory():
        s = FakeSession(pages, log=log, **kw)
        sessions.append(s)
        return s

    return BatchRunner(settings, master, dest, session_factory=factory, sleep=lambda s: None)


def _ids(dest, tab):
    return [r[0] for r in dest.spreadsheet.tabs.get(tab, [])[1:]]


def test_chunked():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []


def test_read_order_ids_skips_blanks():
    master = make_gateway({"Distinct_Orders": [["orderId"], ["1001"], [], [" 1002 "], [""]]})
    assert read_order_ids(master) == ["1001", "1002"]


def test_run_skips_present_orders_and_writes_all_tabs(settings):
    master = _master(["1001", "1002", "1003"])
    dest = make_gateway({"Orders": [ORDERS_HEADER, ["1002", "#1002"]]}, "dest")
    sessions = []
    runner = _runner(settings, master, dest, sessions)
    assert runner.state == IDLE

    result = runner.run()

    assert runner.state == DONE
    assert result.successes == ["1001", "1003"]
    assert result.skipped == ["1002"]
    assert result.failures == []
    assert result.batch_errors == []
    assert result.processed == 3
    assert result.batches == 2
    # one session per batch, each closed
    assert len(sessions) == 2
    assert all(s.closed for s in sessions)

    tabs = dest.spreadsheet.tabs
    assert tabs["Products"][0] == PRODUCTS_HEADER
    assert tabs["Itemized"][0] == ITEMIZED_HEADER
    assert _ids(dest, "Orders") == ["1002", "1001", "1003"]
    assert _ids(dest, "Products") == ["1001", "1003", "1003"]
    assert [r[1] for r in tabs["Products"][1:]] == [1, 1, 2]
    assert _ids(dest, "Itemized") == ["1001", "1003", "1003"]


def test_second_run_appends_nothing(settings):
    master = _master(["1001", "1003"])
    dest = make_gateway({}, "dest")
    _runner(settings, master, dest, []).run()
    before = {k: [list(r) for r in v] for k, v in dest.spreadsheet.tabs.items()}

    result = _runner(settings, master, dest, []).run()

    assert result.successes == []
    assert result.skipped == ["1001", "1003"]
    assert dest.spreadsheet.tabs == before


def test_order_failure_does_not_stop_batch(settings):
    pages = dict(PAGES)
    pages["1001"] = RuntimeError("page crashed")
    master = _master(["1001", "1002", "1003"])
    dest = make_gateway({}, "dest")
    log = []

    result = _runner(settings, master, dest, [], log=log, pages=pages).run()

    assert result.failures == [{"orderId": "1001", "error": "page crashed"}]
    assert result.successes == ["1002", "1003"]
    assert [e for e in log if e[0] == "visit"] == [("visit", "1001"), ("visit", "1002"), ("visit", "1003")]
    assert _ids(dest, "Orders") == ["1002", "1003"]


def test_failed_line_write_leaves_order_for_next_run(settings):
    master = _master(["1001"])
    dest = make_gateway({}, "dest")
    dest.spreadsheet.append_errors["Products"] = RuntimeError("quota exceeded")

    first = _runner(settings, master, dest, []).run()

    assert first.failures == [{"orderId": "1001", "error": "quota exceeded"}]
    assert _ids(dest, "Orders") == []

    del dest.spreadsheet.append_errors["Products"]
    second = _runner(settings, master, dest, []).run()

    assert second.skipped == []
    assert second.successes == ["1001"]
    assert _ids(dest, "Orders") == ["1001"]
    assert _ids(dest, "Products") == ["1001"]
    assert _ids(dest, "Itemized") == ["1001"]


def test_missing_order_page_is_a_failure(settings):
    master = _master(["9999"])
    dest = make_gateway({}, "dest")
    result = _runner(settings, master, dest, []).run()
    assert result.successes == []
    assert result.failures[0]["orderId"] == "9999"
    assert "Timeout" in result.failures[0]["error"]


def test_login_failure_fails_batch_but_next_batch_runs(settings):
    master = _master(["1001", "1002", "1003"])
    dest = make_gateway({}, "dest")
    attempts = []

    def factory():
        err = LoginError("Login failed") if not attempts else None
        s = FakeSession(PAGES, login_error=err)
        attempts.append(s)
        return s

    runner = BatchRunner(settings, master, dest, session_factory=factory, sleep=lambda s: None)
    result = runner.run()

    assert result.batch_errors == [{"batch": 1, "error": "Login failed"}]
    assert result.successes == ["1003"]
    assert attempts[0].closed
    assert runner.state == DONE


def test_duplicate_id_within_chunk_is_written_once(settings):
    master = _master(["1001", "1001"])
    dest = make_gateway({}, "dest")
    result = _runner(settings, master, dest, []).run()
    assert result.successes == ["1001"]
    assert result.skipped == ["1001"]
    assert _ids(dest, "Orders") == ["1001"]


def test_pacing_sleeps(settings):
    master = _master(["1001", "1002", "1003"])
    dest = make_gateway({}, "dest")
    slept = []
    runner = BatchRunner(
        settings, master, dest,
        session_factory=lambda: FakeSession(PAGES),
        sleep=slept.append, order_delay=2.0, batch_delay=5.0,
    )
    runner.run()
    assert slept == [2.0, 2.0, 5.0, 2.0]


def test_existing_header_is_kept(settings):
    master = _master([])
    dest = make_gateway({"Orders": [["custom", "header"]]}, "dest")
    result = _runner(settings, master, dest, []).run()
    assert result.processed == 0
    assert dest.spreadsheet.tabs["Orders"][0] == ["custom", "header"]


def test_run_scraper_requires_settings(settings):
    incomplete = replace(settings, login_pass="")
    with pytest.raises(ValueError, match="login_pass"):
        run_scraper(incomplete, client=object())
