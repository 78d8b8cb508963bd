from datetime import datetime, timedelta
from decimal import Decimal

from sqlmodel import select

from promptmarket.gateways.base import IntentState
from promptmarket.models.payout import Payout, PayoutStatus
from promptmarket.models.purchase import Purchase
from promptmarket.models.user import UserRole
from promptmarket.services import payout_service, purchase_service
from promptmarket.services.profile_service import update_profile
from tests.conftest import auth_headers


def sell(session, gateway, buyer, prompt):
    purchase = purchase_service.initiate(session, buyer, prompt)
    intent = purchase_service.create_payment_intent(session, purchase, gateway)
    gateway.set_status(intent.intent_id, IntentState.succeeded)
    return purchase_service.confirm_payment(session, purchase, buyer, intent.intent_id, gateway)


def past_due():
    return datetime.utcnow() - timedelta(minutes=1)


def test_pending_earnings_counts_unpaid_completed_sales(session, make_user, seller, make_prompt, gateway):
    prompt = make_prompt(seller, price="10.00")
    sell(session, gateway, make_user(), prompt)
    sell(session, gateway, make_user(), prompt)
    purchase_service.initiate(session, make_user(), prompt)

    other_seller = make_user(UserRole.seller)
    sell(session, gateway, make_user(), make_prompt(other_seller, price="40.00"))

    assert payout_service.pending_earnings(session, seller.id) == Decimal("17.00")


def test_payout_below_minimum_is_not_created(session, buyer, seller, make_prompt, gateway):
    sell(session, gateway, buyer, make_prompt(seller, price="5.00"))

    assert payout_service.create_payout(session, seller.id) is None
    assert session.exec(select(Payout)).all() == []
    assert payout_service.pending_earnings(session, seller.id) == Decimal("4.25")


def test_schedule_batches_unpaid_sales_once(session, make_user, seller, make_prompt, gateway):
    prompt = make_prompt(seller, price="10.00")
    sales = [sell(session, gateway, make_user(), prompt) for _ in range(2)]

    assert payout_service.schedule_payouts(session) == 1
    assert payout_service.schedule_payouts(session) == 0

    payout = session.exec(select(Payout)).one()
    assert payout.status == PayoutStatus.pending
    assert payout.amount == Decimal("17.00")
    assert payout.scheduled_for > datetime.utcnow() + timedelta(days=6)
    session.expire_all()
    assert {session.get(Purchase, s.id).payout_id for s in sales} == {payout.id}
    assert payout_service.pending_earnings(session, seller.id) == Decimal("0.00")


def test_only_due_payouts_are_processed(session, make_user, seller, make_prompt, gateway):
    update_profile(session, seller.id, {"payout_method": "payoneer"})
    prompt = make_prompt(seller, price="20.00")
    sell(session, gateway, make_user(), prompt)
    payout_service.schedule_payouts(session)

    assert payout_service.process_scheduled_payouts(session) == 0

    processed = payout_service.process_scheduled_payouts(
        session, now=datetime.utcnow() + timedelta(days=8)
    )

    assert processed == 1
    payout = session.exec(select(Payout)).one()
    assert payout.status == PayoutStatus.processed
    assert payout.transaction_id.startswith("PO-")
    assert payout.processed_at is not None

    summary = payout_service.earnings_summary(session, seller.id)
    assert summary["paid_out"] == Decimal("17.00")
    assert summary["scheduled"] == Decimal("0.00")
    assert summary["unpaid"] == Decimal("0.00")


def test_payout_without_method_fails_and_releases_sales(session, buyer, seller, make_prompt, gateway):
    sell(session, gateway, buyer, make_prompt(seller, price="20.00"))
    payout_service.schedule_payouts(session, scheduled_for=past_due())

    assert payout_service.process_scheduled_payouts(session) == 0

    payout = session.exec(select(Payout)).one()
    assert payout.status == PayoutStatus.failed
    assert payout.meta["error"] == "No payout method on file"
    assert payout_service.pending_earnings(session, seller.id) == Decimal("17.00")


def test_refund_after_scheduling_shrinks_the_payout(session, make_user, seller, make_prompt, gateway):
    update_profile(session, seller.id, {"payout_method": "payoneer"})
    prompt = make_prompt(seller, price="10.00")
    kept = sell(session, gateway, make_user(), prompt)
    refunded = sell(session, gateway, make_user(), prompt)
    payout_service.schedule_payouts(session, scheduled_for=past_due())

    purchase_service.refund(session, refunded, gateway)
    payout_service.process_scheduled_payouts(session)

    payout = session.exec(select(Payout)).one()
    assert payout.status == PayoutStatus.processed
    assert payout.amount == Decimal(kept.seller_earnings)


def test_history_is_newest_first(session, make_user, seller, make_prompt, gateway):
    prompt = make_prompt(seller, price="20.00")
    sell(session, gateway, make_user(), prompt)
    first = payout_service.create_payout(session, seller.id)
    sell(session, gateway, make_user(), prompt)
    second = payout_service.create_payout(session, seller.id)

    history = payout_service.payout_history(session, seller.id)

    assert history["total_items"] == 2
    assert [p.id for p in history["results"]] == [second.id, first.id]


def test_payout_endpoints(client, session, admin, buyer, seller, make_prompt, gateway):
    update_profile(session, seller.id, {"payout_method": "payoneer"})
    sell(session, gateway, buyer, make_prompt(seller, price="20.00"))

    assert client.post("/admin/payouts/schedule", headers=auth_headers(seller)).status_code == 403
    res = client.post(
        "/admin/payouts/schedule",
        params={"scheduled_for": past_due().isoformat()},
        headers=auth_headers(admin),
    )
    assert res.json() == {"scheduled": 1}
    assert client.post("/admin/payouts/process", headers=auth_headers(admin)).json() == {"processed": 1}

    history = client.get("/payouts/me", headers=auth_headers(seller)).json()
    assert history["total_items"] == 1
    assert history["results"][0]["status"] == "processed"

    earnings = client.get("/payouts/earnings", headers=auth_headers(seller)).json()
    assert Decimal(earnings["paid_out"]) == Decimal("17.00")

    assert client.get("/payouts/me", headers=auth_headers(buyer)).status_code == 403
    listed = client.get("/admin/payouts", params={"status": "processed"}, headers=auth_headers(admin))
    assert listed.json()["total_items"] == 1
