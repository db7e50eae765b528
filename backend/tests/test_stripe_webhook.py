"""Gateway webhook endpoint tests."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_event, sign_payload
from farmconnect.config import settings
from farmconnect.models.payment import Invoice, Payment
from farmconnect.models.webhook_event import ProcessedWebhookEvent
from farmconnect.services import webhooks
from farmconnect.services.order_state import get_order
from farmconnect.services.reconciliation import (
    SESSION_KEY,
    create_payment_for_order,
    find_payment_by_session,
)

WEBHOOK_URL = "/api/stripe/webhook"


async def _count(db: AsyncSession, column) -> int:
    return (await db.execute(select(func.count(column)))).scalar()


def _completed_session(session_id: str, order_id: str | None, amount_total: int = 100000) -> dict:
    return {
        "id": session_id,
        "object": "checkout.session",
        "amount_total": amount_total,
        "currency": "kes",
        "payment_status": "paid",
        "metadata": {"order_id": order_id} if order_id else {},
    }


async def _post(client: AsyncClient, payload: str, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else sign_payload(payload)
    return await client.post(WEBHOOK_URL, content=payload, headers=headers)


@pytest.mark.api
@pytest.mark.asyncio
class TestWebhookVerification:

    async def test_bad_signature_is_rejected_without_changes(
        self, client: AsyncClient, db_session: AsyncSession, order
    ):
        payload = make_event("checkout.session.completed", _completed_session("cs_1", order.id))

        resp = await _post(client, payload, signature=sign_payload(payload, secret="whsec_wrong"))

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_SIGNATURE"
        assert await _count(db_session, Payment.id) == 0
        assert await _count(db_session, ProcessedWebhookEvent.event_id) == 0
        assert (await get_order(db_session, order.id)).status == "pending"

    async def test_missing_signature_is_rejected(self, client: AsyncClient, order):
        payload = make_event("checkout.session.completed", _completed_session("cs_1", order.id))
        resp = await client.post(WEBHOOK_URL, content=payload)
        assert resp.status_code == 400

    async def test_tampered_body_is_rejected(self, client: AsyncClient, order):
        payload = make_event("checkout.session.completed", _completed_session("cs_1", order.id))
        signature = sign_payload(payload)
        tampered = payload.replace("100000", "1")

        resp = await _post(client, tampered, signature=signature)
        assert resp.status_code == 400

    async def test_non_utf8_body_is_rejected(self, client: AsyncClient, db_session: AsyncSession):
        resp = await client.post(
            WEBHOOK_URL,
            content=b'{"id": "evt_bin", "type": "checkout.session.completed"\xff\xfe}',
            headers={"Content-Type": "application/json", "Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_SIGNATURE"
        assert await _count(db_session, ProcessedWebhookEvent.event_id) == 0

    async def test_unconfigured_secret_is_a_server_error(
        self, client: AsyncClient, order, monkeypatch
    ):
        payload = make_event("checkout.session.completed", _completed_session("cs_1", order.id))
        signature = sign_payload(payload)
        monkeypatch.setattr(settings, "stripe_webhook_secret", "")

        resp = await _post(client, payload, signature=signature)

        assert resp.status_code == 500
        assert resp.json()["error"]["message"] == "Webhook secret not configured"

    async def test_get_not_allowed(self, client: AsyncClient):
        resp = await client.get(WEBHOOK_URL)
        assert resp.status_code == 405


@pytest.mark.api
@pytest.mark.asyncio
class TestCheckoutCompleted:

    async def test_existing_payment_is_marked_paid(
        self, client: AsyncClient, db_session: AsyncSession, order, market
    ):
        payment = await create_payment_for_order(
            db_session, order.id, 1000.0, market_id=market.id,
            metadata={SESSION_KEY: "cs_paid"},
        )
        payload = make_event("checkout.session.completed", _completed_session("cs_paid", order.id))

        resp = await _post(client, payload)

        assert resp.status_code == 200
        assert resp.text == "OK"
        paid = await find_payment_by_session(db_session, "cs_paid")
        assert paid.id == payment.id
        assert paid.status == "paid"
        assert await _count(db_session, Invoice.id) == 1
        assert (await get_order(db_session, order.id)).status == "confirmed"

    async def test_duplicate_delivery_is_applied_once(
        self, client: AsyncClient, db_session: AsyncSession, order
    ):
        payload = make_event(
            "checkout.session.completed", _completed_session("cs_dup", order.id), event_id="evt_dup"
        )

        first = await _post(client, payload)
        second = await _post(client, payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert await _count(db_session, Payment.id) == 1
        assert await _count(db_session, Invoice.id) == 1
        assert await _count(db_session, ProcessedWebhookEvent.event_id) == 1
        assert len((await get_order(db_session, order.id)).status_history) == 2

    async def test_redelivery_with_new_event_id_is_still_single(
        self, client: AsyncClient, db_session: AsyncSession, order
    ):
        session = _completed_session("cs_again", order.id)
        for event_id in ("evt_a", "evt_b"):
            resp = await _post(client, make_event("checkout.session.completed", session, event_id))
            assert resp.status_code == 200

        assert await _count(db_session, Payment.id) == 1
        assert await _count(db_session, Invoice.id) == 1

    async def test_unknown_session_synthesizes_payment(
        self, client: AsyncClient, db_session: AsyncSession, order
    ):
        payload = make_event(
            "checkout.session.completed", _completed_session("cs_new", order.id, amount_total=4999)
        )

        resp = await _post(client, payload)

        assert resp.status_code == 200
        payment = await find_payment_by_session(db_session, "cs_new")
        assert payment.status == "paid"
        assert payment.amount == 49.99
        assert payment.invoice is not None

    async def test_no_payment_and_no_order_is_ignored(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        payload = make_event("checkout.session.completed", _completed_session("cs_lost", None))

        resp = await _post(client, payload)

        assert resp.status_code == 200
        assert await _count(db_session, Payment.id) == 0
        assert await _count(db_session, Invoice.id) == 0
        assert await _count(db_session, ProcessedWebhookEvent.event_id) == 0

    async def test_unknown_order_is_ignored(self, client: AsyncClient, db_session: AsyncSession):
        payload = make_event(
            "checkout.session.completed", _completed_session("cs_x", "no-such-order")
        )

        resp = await _post(client, payload)

        assert resp.status_code == 200
        assert await _count(db_session, Payment.id) == 0

    async def test_reconciliation_failure_still_acknowledged(
        self, client: AsyncClient, db_session: AsyncSession, order, monkeypatch
    ):
        async def broken(*args, **kwargs):
            raise RuntimeError("database hiccup")

        monkeypatch.setattr(webhooks, "reconcile_paid_session", broken)
        payload = make_event("checkout.session.completed", _completed_session("cs_err", order.id))

        resp = await _post(client, payload)

        assert resp.status_code == 200
        assert await _count(db_session, ProcessedWebhookEvent.event_id) == 0


@pytest.mark.api
@pytest.mark.asyncio
class TestOtherEvents:

    async def test_payment_intent_succeeded_uses_session_metadata(
        self, client: AsyncClient, db_session: AsyncSession, order
    ):
        await create_payment_for_order(
            db_session, order.id, 1000.0, metadata={SESSION_KEY: "cs_pi"}
        )
        intent = {
            "id": "pi_1",
            "object": "payment_intent",
            "amount_received": 100000,
            "currency": "kes",
            "metadata": {"checkout_session_id": "cs_pi", "order_id": order.id},
        }

        resp = await _post(client, make_event("payment_intent.succeeded", intent, "evt_pi"))

        assert resp.status_code == 200
        assert (await find_payment_by_session(db_session, "cs_pi")).status == "paid"
        assert (await get_order(db_session, order.id)).status == "confirmed"

    async def test_payment_intent_without_session_is_ignored(
        self, client: AsyncClient, db_session: AsyncSession, order
    ):
        intent = {"id": "pi_2", "amount": 500, "metadata": {"order_id": order.id}}

        resp = await _post(client, make_event("payment_intent.succeeded", intent, "evt_pi2"))

        assert resp.status_code == 200
        assert await _count(db_session, Payment.id) == 0
        assert (await get_order(db_session, order.id)).status == "pending"

    async def test_unhandled_type_is_acknowledged(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        resp = await _post(client, make_event("customer.created", {"id": "cus_1"}))

        assert resp.status_code == 200
        assert await _count(db_session, ProcessedWebhookEvent.event_id) == 0
