"""
Tests for the Stripe webhook endpoint and the subscriber state machine.
"""
import json
import time
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import Response
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.models import (
    Subscriber,
    SubscriberStatus,
    SubscriptionPlan,
    PaymentTransaction,
    PaymentStatus,
    AccessToken,
    StripeWebhook,
)
from substrack.services.notification_service import (
    NotificationDispatcher,
    EmailSender,
    get_notification_dispatcher,
    WELCOME,
    PAYMENT_RECEIVED,
    PAYMENT_FAILED,
)
from tests.utils import (
    PERIOD_END,
    checkout_session,
    subscription_object,
    invoice_object,
    make_event,
    post_event,
    sign_payload,
    fetch_all,
    fetch_one,
)


async def complete_checkout(client, merchant, plan, **kwargs):
    event = make_event("checkout.session.completed", checkout_session(merchant.id, plan.id, **kwargs))
    response = await post_event(client, event)
    assert response.status_code == 200
    return event


class TestCheckoutCompleted:
    async def test_creates_subscriber_token_and_payment(self, async_client, session_factory, merchant, plan, dispatcher):
        response = await post_event(
            async_client, make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}

        subscribers = await fetch_all(session_factory, Subscriber)
        assert len(subscribers) == 1
        subscriber = subscribers[0]
        assert subscriber.status == SubscriberStatus.ACTIVE
        assert subscriber.customer_email == "jane@example.com"
        assert subscriber.customer_name == "Jane Doe"
        assert subscriber.stripe_subscription_id == "sub_123"
        assert subscriber.next_renewal_date is not None
        assert subscriber.last_payment_amount == Decimal("29.00")
        assert subscriber.last_payment_date is not None

        refreshed = await fetch_one(session_factory, SubscriptionPlan, id=plan.id)
        assert refreshed.subscriber_count == 1

        tokens = await fetch_all(session_factory, AccessToken)
        assert len(tokens) == 1
        assert tokens[0].stripe_session_id == "cs_test_123"
        assert tokens[0].used is False

        transactions = await fetch_all(session_factory, PaymentTransaction)
        assert len(transactions) == 1
        assert transactions[0].stripe_payment_id == "in_first"
        assert transactions[0].amount == Decimal("29.00")
        assert transactions[0].status == PaymentStatus.SUCCESS

        assert [n.kind for n in dispatcher.dispatched] == [WELCOME]
        assert dispatcher.dispatched[0].invoice is not None
        assert dispatcher.dispatched[0].to == "jane@example.com"

    async def test_retry_with_new_event_id_is_a_no_op(self, async_client, session_factory, merchant, plan, dispatcher):
        await complete_checkout(async_client, merchant, plan)
        await complete_checkout(async_client, merchant, plan)

        assert len(await fetch_all(session_factory, Subscriber)) == 1
        assert len(await fetch_all(session_factory, AccessToken)) == 1
        assert len(await fetch_all(session_factory, PaymentTransaction)) == 1
        refreshed = await fetch_one(session_factory, SubscriptionPlan, id=plan.id)
        assert refreshed.subscriber_count == 1
        assert len(dispatcher.dispatched) == 1

    async def test_duplicate_event_id_is_acknowledged_once(self, async_client, session_factory, merchant, plan, stripe_gateway):
        event = make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))

        first = await post_event(async_client, event)
        second = await post_event(async_client, event)

        assert first.status_code == 200
        assert second.status_code == 200
        assert len(await fetch_all(session_factory, StripeWebhook)) == 1
        assert [c[0] for c in stripe_gateway.calls] == ["retrieve_subscription"]

    async def test_free_checkout_records_no_payment(self, async_client, session_factory, merchant, plan, dispatcher):
        await complete_checkout(async_client, merchant, plan, amount_total=0)

        assert len(await fetch_all(session_factory, Subscriber)) == 1
        assert await fetch_all(session_factory, PaymentTransaction) == []
        assert dispatcher.dispatched[0].invoice is None
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.last_payment_amount is None

    async def test_payment_reference_falls_back_to_session_id(self, async_client, session_factory, merchant, plan):
        await complete_checkout(async_client, merchant, plan, invoice=None)

        transactions = await fetch_all(session_factory, PaymentTransaction)
        assert transactions[0].stripe_payment_id == "cs_test_123"

    async def test_session_without_subscription_is_ignored(self, async_client, session_factory, merchant, plan):
        session = checkout_session(merchant.id, plan.id)
        session["subscription"] = None

        response = await post_event(async_client, make_event("checkout.session.completed", session))

        assert response.status_code == 200
        assert await fetch_all(session_factory, Subscriber) == []

    async def test_unknown_plan_is_acknowledged_without_rows(self, async_client, session_factory, merchant, plan):
        response = await post_event(
            async_client, make_event("checkout.session.completed", checkout_session(merchant.id, uuid4()))
        )

        assert response.status_code == 200
        assert await fetch_all(session_factory, Subscriber) == []
        webhooks = await fetch_all(session_factory, StripeWebhook)
        assert webhooks[0].action == "plan_not_found"

    async def test_stripe_failure_rolls_back_and_allows_redelivery(self, async_client, session_factory, merchant, plan, stripe_gateway):
        event = make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))
        stripe_gateway.error = RuntimeError("Stripe unavailable")

        failed = await post_event(async_client, event)

        assert failed.status_code == 500
        assert await fetch_all(session_factory, Subscriber) == []
        assert await fetch_all(session_factory, StripeWebhook) == []

        stripe_gateway.error = None
        retried = await post_event(async_client, event)

        assert retried.status_code == 200
        assert len(await fetch_all(session_factory, Subscriber)) == 1


class TestSubscriptionLifecycle:
    async def test_cancel_then_pay_scenario(self, async_client, session_factory, merchant, plan):
        await complete_checkout(async_client, merchant, plan)

        await post_event(async_client, make_event("customer.subscription.deleted", subscription_object(status="canceled")))
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.CANCELLED
        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 0

        await post_event(async_client, make_event("invoice.payment_succeeded", invoice_object("in_second")))
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.ACTIVE
        assert subscriber.last_payment_amount == Decimal("29.00")
        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 0

    async def test_repeated_deletion_decrements_once(self, async_client, session_factory, merchant, plan):
        await complete_checkout(async_client, merchant, plan)
        for _ in range(2):
            response = await post_event(
                async_client, make_event("customer.subscription.deleted", subscription_object(status="canceled"))
            )
            assert response.status_code == 200

        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 0

    @pytest.mark.parametrize("stripe_status", ["paused", "canceled", "incomplete_expired"])
    async def test_deletion_after_cancelled_update_decrements(self, async_client, session_factory, merchant, plan, stripe_status):
        await complete_checkout(async_client, merchant, plan)
        await post_event(async_client, make_event("customer.subscription.updated", subscription_object(status=stripe_status)))
        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 1

        response = await post_event(
            async_client, make_event("customer.subscription.deleted", subscription_object(status="canceled"))
        )

        assert response.status_code == 200
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.CANCELLED
        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 0
        deleted = await fetch_one(session_factory, StripeWebhook, event_type="customer.subscription.deleted")
        assert deleted.action == "subscription_cancelled"
        assert deleted.object_id == "sub_123"

    async def test_counter_never_goes_negative(self, async_client, session_factory, db, merchant, plan):
        await complete_checkout(async_client, merchant, plan)
        await db.execute(update(SubscriptionPlan).where(SubscriptionPlan.id == plan.id).values(subscriber_count=0))
        await db.commit()

        await post_event(async_client, make_event("customer.subscription.deleted", subscription_object(status="canceled")))

        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 0

    @pytest.mark.parametrize("stripe_status,expected", [
        ("active", SubscriberStatus.ACTIVE),
        ("trialing", SubscriberStatus.ACTIVE),
        ("past_due", SubscriberStatus.FAILED),
        ("unpaid", SubscriberStatus.FAILED),
        ("canceled", SubscriberStatus.CANCELLED),
        ("paused", SubscriberStatus.CANCELLED),
    ])
    async def test_subscription_updated_maps_status(self, async_client, session_factory, merchant, plan, stripe_status, expected):
        await complete_checkout(async_client, merchant, plan)
        later = PERIOD_END + 30 * 24 * 3600

        response = await post_event(
            async_client,
            make_event("customer.subscription.updated", subscription_object(status=stripe_status, period_end=later)),
        )

        assert response.status_code == 200
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == expected
        assert subscriber.next_renewal_date.strftime("%Y-%m-%d") == "2026-03-03"
        assert (await fetch_one(session_factory, SubscriptionPlan, id=plan.id)).subscriber_count == 1

    async def test_event_for_unknown_subscriber_is_acknowledged(self, async_client, session_factory, merchant, plan):
        obj = subscription_object(subscription_id="sub_unknown", metadata={"merchant_id": str(merchant.id)})

        response = await post_event(async_client, make_event("customer.subscription.updated", obj))

        assert response.status_code == 200
        webhooks = await fetch_all(session_factory, StripeWebhook)
        assert webhooks[0].action == "subscriber_not_found"

    async def test_unhandled_event_type_is_acknowledged(self, async_client, session_factory, merchant):
        obj = {"id": "cus_1", "object": "customer", "metadata": {"merchant_id": str(merchant.id)}}

        response = await post_event(async_client, make_event("customer.created", obj))

        assert response.status_code == 200
        webhooks = await fetch_all(session_factory, StripeWebhook)
        assert webhooks[0].action == "unhandled_event"


class TestInvoiceEvents:
    async def test_payment_recorded_once_per_invoice(self, async_client, session_factory, merchant, plan, dispatcher):
        await complete_checkout(async_client, merchant, plan)

        for _ in range(3):
            response = await post_event(async_client, make_event("invoice.payment_succeeded", invoice_object("in_second")))
            assert response.status_code == 200

        transactions = await fetch_all(session_factory, PaymentTransaction)
        assert sorted(t.stripe_payment_id for t in transactions) == ["in_first", "in_second"]
        assert [n.kind for n in dispatcher.dispatched] == [WELCOME, PAYMENT_RECEIVED]

    async def test_first_invoice_is_not_double_counted(self, async_client, session_factory, merchant, plan, dispatcher):
        await complete_checkout(async_client, merchant, plan)

        await post_event(
            async_client,
            make_event("invoice.payment_succeeded", invoice_object("in_first", billing_reason="subscription_create")),
        )

        assert len(await fetch_all(session_factory, PaymentTransaction)) == 1
        assert [n.kind for n in dispatcher.dispatched] == [WELCOME]

    async def test_payment_failed_marks_subscriber_failed(self, async_client, session_factory, merchant, plan, dispatcher):
        await complete_checkout(async_client, merchant, plan)

        response = await post_event(async_client, make_event("invoice.payment_failed", invoice_object("in_failed")))

        assert response.status_code == 200
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.FAILED
        failed = await fetch_one(session_factory, PaymentTransaction, stripe_payment_id="in_failed")
        assert failed.status == PaymentStatus.FAILED
        assert failed.amount == Decimal("29.00")
        assert dispatcher.dispatched[-1].kind == PAYMENT_FAILED
        assert dispatcher.dispatched[-1].invoice is None

    async def test_recovery_after_failed_payment(self, async_client, session_factory, merchant, plan):
        await complete_checkout(async_client, merchant, plan)
        await post_event(async_client, make_event("invoice.payment_failed", invoice_object("in_failed")))

        await post_event(async_client, make_event("invoice.payment_succeeded", invoice_object("in_retry")))

        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.ACTIVE

    async def test_paid_retry_of_failed_invoice_keeps_one_row(self, async_client, session_factory, merchant, plan, dispatcher):
        await complete_checkout(async_client, merchant, plan)
        await post_event(async_client, make_event("invoice.payment_failed", invoice_object("in_cycle2", amount=3100)))

        for _ in range(2):
            response = await post_event(
                async_client, make_event("invoice.payment_succeeded", invoice_object("in_cycle2", amount=3100))
            )
            assert response.status_code == 200

        retried = [t for t in await fetch_all(session_factory, PaymentTransaction) if t.stripe_payment_id == "in_cycle2"]
        assert len(retried) == 1
        assert retried[0].status == PaymentStatus.SUCCESS
        assert retried[0].amount == Decimal("31.00")
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.ACTIVE
        assert [n.kind for n in dispatcher.dispatched] == [WELCOME, PAYMENT_FAILED, PAYMENT_RECEIVED]
        assert dispatcher.dispatched[-1].invoice is not None

        actions = [w.action for w in await fetch_all(session_factory, StripeWebhook)]
        assert actions.count("payment_recovered") == 1
        assert actions.count("payment_already_recorded") == 1


class TestTenantResolution:
    async def test_tenant_found_through_stored_subscription(self, async_client, session_factory, merchant, plan):
        await complete_checkout(async_client, merchant, plan)
        invoice = invoice_object("in_no_metadata")
        assert invoice["parent"]["subscription_details"]["metadata"] == {}

        response = await post_event(async_client, make_event("invoice.payment_succeeded", invoice))

        assert response.status_code == 200
        assert await fetch_one(session_factory, PaymentTransaction, stripe_payment_id="in_no_metadata") is not None

    async def test_nested_metadata_resolves_tenant(self, async_client, session_factory, merchant, plan):
        await complete_checkout(async_client, merchant, plan)
        invoice = invoice_object("in_nested", metadata={"merchant_id": str(merchant.id)})
        invoice["parent"]["subscription_details"]["subscription"] = "sub_123"

        response = await post_event(async_client, make_event("invoice.payment_succeeded", invoice))

        assert response.status_code == 200

    async def test_unresolvable_tenant_is_rejected(self, async_client, session_factory, merchant):
        obj = subscription_object(subscription_id="sub_nobody", metadata={"merchant_id": "not-a-uuid"})

        response = await post_event(async_client, make_event("customer.subscription.updated", obj))

        assert response.status_code == 400
        assert await fetch_all(session_factory, StripeWebhook) == []

    async def test_merchant_without_webhook_secret_is_rejected(self, async_client, db, merchant, plan):
        merchant.stripe_webhook_secret = None
        await db.commit()

        response = await post_event(
            async_client, make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))
        )

        assert response.status_code == 400


class TestSignatureVerification:
    @pytest.fixture
    def track_writes(self, monkeypatch):
        """Spy on every commit/flush issued through an AsyncSession"""
        writes = []
        original_commit = AsyncSession.commit
        original_flush = AsyncSession.flush

        async def tracking_commit(session):
            writes.append("commit")
            return await original_commit(session)

        async def tracking_flush(session, objects=None):
            writes.append("flush")
            return await original_flush(session, objects)

        def start():
            monkeypatch.setattr(AsyncSession, "commit", tracking_commit)
            monkeypatch.setattr(AsyncSession, "flush", tracking_flush)
            return writes
        return start

    @pytest.mark.parametrize("case", ["wrong_secret", "tampered", "stale", "garbage_header"])
    async def test_bad_signature_rejected_without_mutations(self, async_client, session_factory, merchant, plan, track_writes, case):
        event = make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))
        payload = json.dumps(event).encode()
        header = sign_payload(payload)
        if case == "wrong_secret":
            header = sign_payload(payload, secret="whsec_someoneelse12345")
        elif case == "tampered":
            tampered = dict(event, id="evt_forged")
            payload = json.dumps(tampered).encode()
        elif case == "stale":
            header = sign_payload(payload, timestamp=int(time.time()) - 3600)
        elif case == "garbage_header":
            header = "not-a-signature"

        writes = track_writes()
        response = await async_client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": header, "content-type": "application/json"},
        )

        assert response.status_code == 400
        assert writes == []
        assert await fetch_all(session_factory, Subscriber) == []
        assert await fetch_all(session_factory, StripeWebhook) == []
        assert await fetch_all(session_factory, AccessToken) == []

    async def test_missing_signature_header(self, async_client, merchant, plan):
        event = make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))

        response = await async_client.post("/api/webhooks/stripe", content=json.dumps(event).encode())

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing Stripe signature"

    async def test_non_json_body(self, async_client, merchant):
        payload = b"not json"

        response = await async_client.post(
            "/api/webhooks/stripe", content=payload, headers={"stripe-signature": "t=1,v1=abc"}
        )

        assert response.status_code == 400


class TestNotificationIsolation:
    async def test_email_failure_keeps_committed_transition(self, app, async_client, session_factory, merchant, plan, respx_mock):
        route = respx_mock.post("https://api.resend.com/emails").mock(return_value=Response(500, json={"message": "down"}))
        app.dependency_overrides[get_notification_dispatcher] = lambda: NotificationDispatcher(
            EmailSender(api_key="re_test_key", api_url="https://api.resend.com/emails")
        )

        response = await post_event(
            async_client, make_event("checkout.session.completed", checkout_session(merchant.id, plan.id))
        )

        assert response.status_code == 200
        assert route.called
        subscriber = await fetch_one(session_factory, Subscriber, stripe_subscription_id="sub_123")
        assert subscriber.status == SubscriberStatus.ACTIVE
        assert len(await fetch_all(session_factory, PaymentTransaction)) == 1
