"""Application startup and shutdown wiring."""

import threading

from fastapi.testclient import TestClient

from procurement import main


class SlowStoppingQueue:
    running = True
    pending = 0

    def __init__(self):
        self.started_on = None
        self.stopped_on = None

    def start(self):
        self.started_on = threading.get_ident()

    def stop(self, timeout=30.0):
        self.stopped_on = threading.get_ident()


def test_worker_pool_is_drained_off_the_event_loop(monkeypatch):
    analysis_queue = SlowStoppingQueue()
    calls = []
    monkeypatch.setattr(main, "init_db", lambda: calls.append("init_db"))
    monkeypatch.setattr(main, "get_analysis_queue", lambda: analysis_queue)
    monkeypatch.setattr(main.jobs, "init_scheduler", lambda analysis_queue=None: calls.append("poller"))
    monkeypatch.setattr(main.jobs, "shutdown_scheduler", lambda: calls.append("poller_stop"))

    with TestClient(main.app):
        assert calls == ["init_db", "poller"]

    assert calls[-1] == "poller_stop"
    assert analysis_queue.stopped_on is not None
    assert analysis_queue.stopped_on != analysis_queue.started_on
