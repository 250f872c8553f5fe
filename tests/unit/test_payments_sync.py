from datetime import datetime, timezone

import pytest

import deelauto.payments.sync as sync
from deelauto.bunq import BunqApiError

NOW = datetime(2025, 10, 2, 12, 0, tzinfo=timezone.utc)
LATER = datetime(2025, 10, 3, 12, 0, tzinfo=timezone.utc)

def test_reconcile_sets_paid_at_on_first_acceptance():
    changes = sync.reconcile_payment({"bunq_status": "PENDING", "paid_at": None}, "ACCEPTED", NOW)
    assert changes == {"bunq_status": "ACCEPTED", "paid_at": NOW.isoformat()}

def test_reconcile_never_overwrites_paid_at():
    payment = {"bunq_status": "ACCEPTED", "paid_at": NOW.isoformat()}
    assert sync.reconcile_payment(payment, "ACCEPTED", LATER) == {}

def test_reconcile_rejected_has_no_paid_at():
    assert sync.reconcile_payment({"bunq_status": "PENDING"}, "REJECTED", NOW) == {"bunq_status": "REJECTED"}

@pytest.mark.parametrize("payment,expected", [
    ({"bunq_request_id": 1, "paid_at": None, "bunq_status": "PENDING"}, True),
    ({"bunq_request_id": 1, "paid_at": "2025-10-01", "bunq_status": "ACCEPTED"}, False),
    ({"bunq_request_id": 1, "paid_at": None, "bunq_status": "REJECTED"}, True),
    ({"bunq_request_id": None, "paid_at": None, "bunq_status": None}, False),
])
def test_needs_sync(payment, expected):
    assert sync.needs_sync(payment) is expected

class FakeStore:
    def __init__(self, payments):
        self.rows = {p["id"]: dict(p) for p in payments}
        self.updates = []

    def update(self, payment_id, data):
        self.updates.append((payment_id, data))
        self.rows[payment_id].update(data)
        return self.rows[payment_id]

@pytest.fixture
def store(monkeypatch):
    s = FakeStore([
        {"id": "p1", "bunq_request_id": 11, "bunq_status": "PENDING", "paid_at": None},
        {"id": "p2", "bunq_request_id": 22, "bunq_status": "PENDING", "paid_at": None},
        {"id": "p3", "bunq_request_id": 33, "bunq_status": "PENDING", "paid_at": None},
    ])
    monkeypatch.setattr("deelauto.payments.repository.update_payment", s.update)
    monkeypatch.setattr("deelauto.payments.repository.list_unsettled_with_request", lambda: list(s.rows.values()))
    return s

def test_settled_payment_gets_paid_at_exactly_once(monkeypatch, store):
    monkeypatch.setattr(sync, "check_bunq_payment_status", lambda client, rid: "ACCEPTED")
    payment = store.rows["p1"]
    assert sync.update_payment_bunq_status(object(), payment, NOW) is True
    first_paid_at = store.rows["p1"]["paid_at"]
    assert first_paid_at == NOW.isoformat()
    # synchronisation suivante: plus rien à écrire
    assert sync.update_payment_bunq_status(object(), store.rows["p1"], LATER) is False
    assert store.rows["p1"]["paid_at"] == first_paid_at
    assert len(store.updates) == 1

def test_bulk_sync_collects_errors_and_waits_between_calls(monkeypatch, store):
    statuses = {11: "ACCEPTED", 22: BunqApiError("get_request_inquiry", 500, "boom"), 33: "PENDING"}

    def fake_status(client, request_id):
        value = statuses[request_id]
        if isinstance(value, Exception):
            raise value
        return value

    monkeypatch.setattr(sync, "check_bunq_payment_status", fake_status)
    sleeps = []
    result = sync.sync_all_bunq_statuses(object(), delay=0.5, sleep=sleeps.append)
    assert result["updated_count"] == 1
    assert [e["payment_id"] for e in result["errors"]] == ["p2"]
    assert sleeps == [0.5, 0.5]
    assert store.rows["p1"]["bunq_status"] == "ACCEPTED"
    assert store.rows["p3"]["paid_at"] is None

def test_background_sync_never_raises(monkeypatch, caplog):
    def boom(*args, **kwargs):
        raise RuntimeError("store down")
    monkeypatch.setattr(sync, "sync_all_bunq_statuses", boom)
    with caplog.at_level("WARNING", logger="deelauto.payments.sync"):
        sync.sync_payments_in_background(object(), [])
    assert "background failed" in caplog.text
