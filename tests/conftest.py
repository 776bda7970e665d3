"""Shared test fixtures for the procurement engine test suite."""

import os
import tempfile
import threading
from datetime import datetime, timedelta
from email.message import EmailMessage

import pytest

# The module-level engine is built at import time, so point it at SQLite first
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.mkdtemp(prefix='procurement-tests-'), 'default.db')}",
)

from procurement.database import Base, build_engine, build_session_factory  # noqa: E402
from procurement.exceptions import AnalysisFailed, ConnectionFailed  # noqa: E402
from procurement.models import (  # noqa: E402
    RFP, RFPItem, RFPStatus, Vendor, VendorCategory, Proposal,
)
from procurement.schemas.analysis import ProposalAnalysis  # noqa: E402


# =========================================================================
# DATABASE
# =========================================================================
@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite database so worker threads share it."""
    eng = build_engine(f"sqlite:///{tmp_path / 'procurement.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# =========================================================================
# DATA BUILDERS
# =========================================================================
@pytest.fixture
def category(db):
    cat = VendorCategory(name="Office Supplies")
    db.add(cat)
    db.commit()
    return cat


@pytest.fixture
def make_vendor(db, category):
    def _make(email="sales@acme.test", name="Acme Corp", is_active=True):
        vendor = Vendor(name=name, email=email, is_active=is_active, category_id=category.id)
        db.add(vendor)
        db.commit()
        return vendor
    return _make


@pytest.fixture
def make_rfp(db):
    counter = {"n": 0}

    def _make(title="Office Chairs Procurement", status=RFPStatus.SENT, rfp_id=None, items=None,
              updated_at=None, budget=None):
        counter["n"] += 1
        rfp = RFP(
            title=title,
            description=f"{title} description",
            raw_input=f"Need {title.lower()}",
            budget=budget,
            status=status,
            updated_at=updated_at or datetime.utcnow() + timedelta(seconds=counter["n"]),
        )
        if rfp_id:
            rfp.id = rfp_id
        for position, (name, quantity) in enumerate(items or [("Ergonomic chair", 20)]):
            rfp.items.append(RFPItem(name=name, quantity=quantity, position=position,
                                     specifications={"color": "black"}))
        db.add(rfp)
        db.commit()
        return rfp
    return _make


@pytest.fixture
def rfp(make_rfp):
    return make_rfp()


@pytest.fixture
def vendor(make_vendor):
    return make_vendor()


# =========================================================================
# DOUBLES
# =========================================================================
def analysis_payload(score=80.0, **overrides):
    data = {
        "proposedPrice": 12500.0,
        "deliveryDays": 14,
        "warranty": "2 years",
        "paymentTerms": "Net 30",
        "itemPricing": [{"name": "Ergonomic chair", "price": 625.0}],
        "strengths": ["Competitive price"],
        "weaknesses": ["Long lead time"],
        "score": score,
        "recommendation": "Solid offer.",
    }
    data.update(overrides)
    return data


class FakeAnalyzer:
    """Stands in for the AI port. Scores are looked up by proposal content."""

    def __init__(self, scores=None, default_score=80.0, fail_on=(), barrier=None):
        self.scores = dict(scores or {})
        self.default_score = default_score
        self.fail_on = set(fail_on)
        self.barrier = barrier
        self.calls = []
        self._lock = threading.Lock()

    def analyze(self, summary, raw_content):
        with self._lock:
            self.calls.append((summary, raw_content))
        if self.barrier is not None:
            self.barrier.wait(timeout=10)
        if raw_content in self.fail_on:
            raise AnalysisFailed("AI port unavailable")
        score = self.scores.get(raw_content, self.default_score)
        return ProposalAnalysis.model_validate(analysis_payload(score=score))


class RecordingQueue:
    def __init__(self):
        self.jobs = []

    def enqueue(self, proposal_id):
        self.jobs.append(proposal_id)
        return True


class FakeMailbox:
    """In-memory IMAP session recording what the poller does."""

    instances = []

    def __init__(self, messages=None, refuse=False, seen_fails=()):
        self.messages = list(messages or [])
        self.refuse = refuse
        self.seen_fails = set(seen_fails)
        self.seen = []
        self.connected = False
        self.logged_out = False
        self.aborted = False
        FakeMailbox.instances.append(self)

    def connect(self):
        if self.refuse:
            raise ConnectionFailed("connection refused")
        self.connected = True

    def select_inbox(self):
        pass

    def fetch_unseen(self):
        return [(uid, raw) for uid, raw in self.messages if uid not in self.seen]

    def mark_seen(self, uid):
        if uid in self.seen_fails:
            raise OSError("flag failed")
        self.seen.append(uid)

    def logout(self):
        self.logged_out = True

    def abort(self):
        self.aborted = True


def build_email(sender, subject, body="We offer 20 chairs at $625 each, delivery in 14 days.",
                date="Mon, 19 Oct 2026 09:30:00 +0000"):
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = "procurement@buyer.test"
    msg["Subject"] = subject
    if date:
        msg["Date"] = date
    msg.set_content(body)
    return msg.as_bytes()


def recommended(db, rfp_id):
    db.expire_all()
    return db.query(Proposal).filter(
        Proposal.rfp_id == rfp_id, Proposal.is_recommended == True  # noqa: E712
    ).all()
