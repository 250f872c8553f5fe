from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

import deelauto.payments.service as svc
from deelauto.bunq import BunqApiError, PaymentRequestLink
from deelauto.payments.models import PaymentCreate, PayNowRequest

MEMBER = {"id": "u1", "name": "Jan", "email_address": "jan@example.com"}

GROUP = [
    {"id": "r1", "total_costs": 55.0},
    {"id": "r2", "total_costs": 12.345},
]

@pytest.fixture
def store(monkeypatch):
    state = {"payments": [], "updates": [], "bunq_calls": []}

    def fake_insert(data):
        row = {"id": f"p{len(state['payments']) + 1}", **data}
        state["payments"].append(row)
        return row

    def fake_update(payment_id, data):
        state["updates"].append((payment_id, data))
        row = next(p for p in state["payments"] if p["id"] == payment_id)
        row.update(data)
        return row

    def fake_request(client, amount, description, email, redirect_url=None):
        state["bunq_calls"].append((amount, description, email, redirect_url))
        return PaymentRequestLink(payment_url="https://bunq.me/t/xyz", request_id=777)

    monkeypatch.setattr(
        "deelauto.reservations.service.get_outstanding_reservations",
        lambda user_id, now=None: {"2025-09-personal": GROUP},
    )
    monkeypatch.setattr("deelauto.payments.repository.insert_payment", fake_insert)
    monkeypatch.setattr("deelauto.payments.repository.update_payment", fake_update)
    monkeypatch.setattr("deelauto.payments.repository.list_user_payments", lambda user_id: list(state["payments"]))
    monkeypatch.setattr(svc, "create_bunq_payment_request", fake_request)
    return state

def test_describe_group():
    assert svc.describe_group("2025-09-business") == "Deelauto september 2025 (zakelijk)"
    assert svc.describe_group("2026-01-personal") == "Deelauto januari 2026 (privé)"

def test_pay_now_records_pending_payment_with_bunq_link(store):
    payment = svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal", "https://app.test/mijn/betalingen")
    assert payment["bunq_request_id"] == 777
    assert payment["bunq_payment_url"] == "https://bunq.me/t/xyz"
    assert payment["bunq_status"] == "PENDING"
    assert payment["paid_at"] is None
    assert payment["reservations_paid"] == ["r1", "r2"]
    assert payment["amount_in_euros"] == 67.35
    assert payment["is_business_transaction"] is False
    amount, description, email, redirect = store["bunq_calls"][0]
    assert str(amount) == "67.35"
    assert description == "Deelauto september 2025 (privé)"
    assert email == "jan@example.com"
    assert redirect == "https://app.test/mijn/betalingen"

def test_pay_now_reuses_open_request(store):
    first = svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")
    again = svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")
    assert again["id"] == first["id"]
    assert len(store["bunq_calls"]) == 1
    assert len(store["payments"]) == 1

def test_pay_now_unknown_group_is_404(store):
    with pytest.raises(HTTPException) as exc:
        svc.pay_outstanding_group(object(), MEMBER, "2025-08-business")
    assert exc.value.status_code == 404
    assert store["bunq_calls"] == []

def test_pay_now_requires_member_email(store):
    with pytest.raises(HTTPException) as exc:
        svc.pay_outstanding_group(object(), {"id": "u1", "email_address": ""}, "2025-09-personal")
    assert exc.value.status_code == 400

def test_pay_now_zero_amount_is_refused(monkeypatch, store):
    monkeypatch.setattr(
        "deelauto.reservations.service.get_outstanding_reservations",
        lambda user_id, now=None: {"2025-09-personal": [{"id": "r1", "total_costs": 0}]},
    )
    with pytest.raises(HTTPException) as exc:
        svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")
    assert exc.value.status_code == 400
    assert store["payments"] == []

def valid_payment(**overrides):
    data = {
        "title": "Jaarbijdrage",
        "description": "Bijdrage 2025",
        "amount_in_euros": 12.345,
        "is_business_transaction": False,
        "send_at": "2025-10-01T09:00:00+02:00",
    }
    data.update(overrides)
    return data

def test_payment_create_rounds_amount():
    assert PaymentCreate(**valid_payment()).amount_in_euros == 12.35

@pytest.mark.parametrize("bad", [
    {"title": "   "},
    {"description": ""},
    {"amount_in_euros": 0},
    {"amount_in_euros": -5},
    {"is_business_transaction": "yes"},
    {"send_at": "not a date"},
])
def test_payment_create_rejects_invalid(bad):
    with pytest.raises(ValidationError):
        PaymentCreate(**valid_payment(**bad))

def test_pay_now_request_group_key_pattern():
    assert PayNowRequest(group_key="2025-09-business").group_key == "2025-09-business"
    with pytest.raises(ValidationError):
        PayNowRequest(group_key="2025-09-other")

def test_mark_paid_treats_naive_as_utc(monkeypatch):
    updates = []
    monkeypatch.setattr("deelauto.payments.repository.get_payment", lambda pid: {"id": pid})
    monkeypatch.setattr(
        "deelauto.payments.repository.update_payment",
        lambda pid, data: updates.append(data) or {"id": pid, **data},
    )
    row = svc.mark_paid("p1", datetime(2025, 10, 2, 8, 30))
    assert row["paid_at"] == "2025-10-02T08:30:00+00:00"
    assert updates == [{"paid_at": "2025-10-02T08:30:00+00:00"}]

def test_mark_paid_unknown_payment(monkeypatch):
    monkeypatch.setattr("deelauto.payments.repository.get_payment", lambda pid: None)
    with pytest.raises(HTTPException) as exc:
        svc.mark_paid("nope", datetime.now(timezone.utc))
    assert exc.value.status_code == 404

def test_member_history_only_completed_newest_first(monkeypatch):
    monkeypatch.setattr("deelauto.payments.repository.list_user_payments", lambda uid: [
        {"id": "a", "paid_at": "2025-08-01T10:00:00+00:00"},
        {"id": "b", "paid_at": None, "bunq_status": "PENDING"},
        {"id": "c", "paid_at": "2025-09-01T10:00:00+00:00"},
    ])
    assert [p["id"] for p in svc.list_member_payments("u1")] == ["c", "a"]

def test_member_cannot_read_other_members_payment(monkeypatch):
    monkeypatch.setattr("deelauto.payments.repository.get_payment", lambda pid: {"id": pid, "user_id": "u2"})
    with pytest.raises(HTTPException) as exc:
        svc.get_member_payment("u1", "p9")
    assert exc.value.status_code == 404

def test_pay_now_bunq_failure_closes_the_payment(monkeypatch, store):
    def boom(client, amount, description, email, redirect_url=None):
        raise BunqApiError("request_inquiry_create", 400, "invalid alias")
    monkeypatch.setattr(svc, "create_bunq_payment_request", boom)

    with pytest.raises(BunqApiError):
        svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")
    assert len(store["payments"]) == 1
    closed = store["payments"][0]
    assert closed["bunq_status"] == "REJECTED"
    assert closed.get("bunq_request_id") is None
    assert store["updates"] == [("p1", {"bunq_status": "REJECTED"})]

def test_pay_now_after_failure_does_not_reuse_closed_payment(monkeypatch, store):
    def boom(client, amount, description, email, redirect_url=None):
        raise BunqApiError("request_inquiry_create", 500, "down")
    monkeypatch.setattr(svc, "create_bunq_payment_request", boom)
    with pytest.raises(BunqApiError):
        svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")

    monkeypatch.setattr(
        svc, "create_bunq_payment_request",
        lambda client, amount, description, email, redirect_url=None: PaymentRequestLink("https://bunq.me/t/new", 778),
    )
    payment = svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")
    assert payment["id"] == "p2"
    assert payment["bunq_request_id"] == 778

def test_pay_now_unsaved_request_id_is_an_error(monkeypatch, store):
    monkeypatch.setattr("deelauto.payments.repository.update_payment", lambda payment_id, data: None)
    with pytest.raises(HTTPException) as exc:
        svc.pay_outstanding_group(object(), MEMBER, "2025-09-personal")
    assert exc.value.status_code == 500
    assert len(store["bunq_calls"]) == 1

SETTLED = {
    "id": "p5", "user_id": "u1", "paid_at": "2025-10-02T08:30:00+00:00",
    "bunq_status": "ACCEPTED", "reservations_paid": ["r2", "r1"],
}

def test_receipt_lists_covered_reservations_by_effective_start(monkeypatch):
    asked = []
    monkeypatch.setattr("deelauto.payments.repository.get_payment", lambda pid: SETTLED)
    monkeypatch.setattr(
        "deelauto.reservations.repository.get_reservations_by_ids",
        lambda ids: asked.extend(ids) or [
            {"id": "r2", "user_id": "u1", "price_scheme_id": "ps1", "effective_start": "2025-09-20T09:00:00+00:00"},
            {"id": "r1", "user_id": "u1", "price_scheme_id": "ps1", "effective_start": "2025-09-03T09:00:00+00:00"},
        ],
    )
    monkeypatch.setattr(
        "deelauto.reservations.service.enrich_reservations",
        lambda rows: [dict(r, price_scheme={"id": "ps1"}, user=MEMBER) for r in rows],
    )
    receipt = svc.get_member_receipt(MEMBER, "p5")
    assert receipt["payment"] is SETTLED
    assert receipt["user"] is MEMBER
    assert [r["id"] for r in receipt["reservations"]] == ["r1", "r2"]
    assert receipt["reservations"][0]["price_scheme"] == {"id": "ps1"}
    assert sorted(asked) == ["r1", "r2"]

def test_receipt_of_unsettled_payment_is_400(monkeypatch):
    monkeypatch.setattr(
        "deelauto.payments.repository.get_payment",
        lambda pid: {"id": pid, "user_id": "u1", "paid_at": None, "bunq_status": "PENDING"},
    )
    with pytest.raises(HTTPException) as exc:
        svc.get_member_receipt(MEMBER, "p2")
    assert exc.value.status_code == 400

def test_receipt_of_other_members_payment_is_404(monkeypatch):
    monkeypatch.setattr("deelauto.payments.repository.get_payment", lambda pid: dict(SETTLED, user_id="u2"))
    with pytest.raises(HTTPException) as exc:
        svc.get_member_receipt(MEMBER, "p5")
    assert exc.value.status_code == 404
