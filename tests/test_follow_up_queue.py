import logging

from app.core.metrics import request_metrics
from app.services.follow_up import FollowUpQueue


def _broken_clear_cart():
    raise RuntimeError("cart store down")


def test_failed_action_is_logged_and_later_actions_still_run(caplog):
    calls = []
    queue = FollowUpQueue("order:1")
    queue.add("decrement_stock:3", lambda: calls.append("decrement"))
    queue.add("clear_cart", _broken_clear_cart)
    queue.add("decrement_stock:4", lambda: calls.append("decrement-2"))
    before = request_metrics.counters().get("follow_up_failed.clear_cart", 0)

    with caplog.at_level(logging.WARNING, logger="app.services.follow_up"):
        failed = queue.run()

    assert failed == ["clear_cart"]
    assert calls == ["decrement", "decrement-2"]
    assert request_metrics.counters()["follow_up_failed.clear_cart"] == before + 1
    error_records = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert len(error_records) == 1
    assert error_records[0].exc_info is not None
    assert "order:1" in error_records[0].getMessage()


def test_queue_runs_each_action_once():
    calls = []
    queue = FollowUpQueue("noop")
    queue.add("count", lambda: calls.append(1))

    assert len(queue) == 1
    assert queue.run() == []
    assert queue.run() == []
    assert calls == [1]
    assert len(queue) == 0
