"""Background analysis pool tests."""

import pytest

from conftest import FakeAnalyzer, recommended
from procurement.models import Proposal, ProposalStatus
from procurement.services.analysis_queue import AnalysisQueue
from procurement.services.proposal_service import ProposalService


@pytest.fixture
def make_queue(session_factory):
    created = []

    def _make(analyzer=None, workers=1, maxsize=10):
        analyzer = analyzer or FakeAnalyzer()
        q = AnalysisQueue(
            workers=workers,
            maxsize=maxsize,
            session_factory=session_factory,
            analyzer_factory=lambda: analyzer,
        )
        created.append(q)
        return q
    yield _make
    for q in created:
        q.stop(timeout=5)


class TestAnalysisQueue:

    def test_create_hands_off_and_worker_analyzes(self, db, make_queue, rfp, make_vendor):
        q = make_queue(analyzer=FakeAnalyzer(scores={"a": 60, "b": 85}), workers=2)
        q.start()
        service = ProposalService(db, queue=q)
        a = service.create(rfp.id, make_vendor("a@v.test").id, "a")
        b = service.create(rfp.id, make_vendor("b@v.test").id, "b")
        assert a.status == ProposalStatus.PENDING

        q.join()
        db.expire_all()
        assert db.get(Proposal, a.id).status == ProposalStatus.ANALYZED
        assert db.get(Proposal, b.id).score == 85
        assert [p.id for p in recommended(db, rfp.id)] == [b.id]

    def test_full_queue_rejects_job(self, db, make_queue, rfp, make_vendor):
        q = make_queue(maxsize=1)
        service = ProposalService(db, queue=q)
        service.create(rfp.id, make_vendor("a@v.test").id, "first offer")

        assert q.enqueue("another") is False
        second = service.create(rfp.id, make_vendor("b@v.test").id, "second offer")
        assert second.status == ProposalStatus.PENDING
        assert q.pending == 1

    def test_failed_analysis_is_contained(self, db, make_queue, rfp, vendor):
        q = make_queue(analyzer=FakeAnalyzer(fail_on={"broken"}))
        q.start()
        proposal = ProposalService(db, queue=q).create(rfp.id, vendor.id, "broken")

        q.join()
        assert q.running
        db.expire_all()
        stored = db.get(Proposal, proposal.id)
        assert stored.status == ProposalStatus.PENDING
        assert stored.is_recommended is False

    def test_missing_proposal_is_contained(self, make_queue):
        q = make_queue()
        q.run_job("does-not-exist")

    def test_stop_joins_workers(self, make_queue):
        q = make_queue(workers=2)
        q.start()
        assert q.running
        q.stop(timeout=5)
        assert not q.running
