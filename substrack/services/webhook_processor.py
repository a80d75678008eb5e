import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from substrack.crud.subscriber import subscriber_crud
from substrack.crud.subscription_plan import subscription_plan_crud
from substrack.crud.payment_transaction import payment_transaction_crud
from substrack.crud.stripe_webhook import stripe_webhook_crud, StripeWebhookCreate
from substrack.models.merchant import Merchant
from substrack.models.subscriber import Subscriber, SubscriberStatus
from substrack.models.subscription_plan import SubscriptionPlan
from substrack.models.payment_transaction import PaymentTransaction, PaymentStatus
from substrack.schemas.billing import SubscriberCreate, PaymentTransactionCreate
from substrack.services.access_token_service import access_token_service
from substrack.services.invoice_service import build_invoice_data, format_money
from substrack.services.notification_service import (
    PendingNotification,
    WELCOME,
    PAYMENT_RECEIVED,
    PAYMENT_FAILED,
)
from substrack.services.stripe_service import StripeGateway
from substrack.services.tenant_resolver import subscription_ref
from substrack.utils.utils import dig, from_unix, cents_to_amount, utcnow, ref_id, parse_uuid

logger = logging.getLogger(__name__)

# Stripe subscription status -> local subscriber status
STRIPE_STATUS_MAP = {
    "active": SubscriberStatus.ACTIVE,
    "trialing": SubscriberStatus.ACTIVE,
    "past_due": SubscriberStatus.FAILED,
    "unpaid": SubscriberStatus.FAILED,
    "incomplete": SubscriberStatus.FAILED,
    "canceled": SubscriberStatus.CANCELLED,
    "incomplete_expired": SubscriberStatus.CANCELLED,
    "paused": SubscriberStatus.CANCELLED,
}

SUBSCRIPTION_CANCELLED = "subscription_cancelled"


@dataclass
class WebhookOutcome:
    action: str
    notifications: List[PendingNotification] = field(default_factory=list)


def billing_period(subscription: Dict[str, Any]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Current period from the subscription, or from its first item on newer API versions"""
    start = subscription.get("current_period_start") or dig(subscription, "items", "data", 0, "current_period_start")
    end = subscription.get("current_period_end") or dig(subscription, "items", "data", 0, "current_period_end")
    return from_unix(start), from_unix(end)


class WebhookProcessor:
    """
    Applies one verified Stripe event to a merchant's subscribers.

    Each transition stages its writes plus the audit row and commits once.
    Emails are returned as pending notifications for delivery after commit.
    """

    def __init__(self, db: AsyncSession, merchant: Merchant, gateway: Optional[StripeGateway]):
        self.db = db
        self.merchant = merchant
        self.gateway = gateway
        self.handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
            "invoice.payment_succeeded": self.handle_payment_succeeded,
            "invoice.payment_failed": self.handle_payment_failed,
        }

    async def process(self, event: Dict[str, Any]) -> WebhookOutcome:
        event_type = event.get("type")
        obj = dig(event, "data", "object", default={})
        handler = self.handlers.get(event_type)

        if handler:
            outcome = await handler(obj)
        else:
            logger.info(f"Unhandled event type: {event_type}")
            outcome = WebhookOutcome(action="unhandled_event")

        await stripe_webhook_crud.stage(
            self.db,
            obj_in=StripeWebhookCreate(
                event_id=event["id"],
                merchant_id=self.merchant.id,
                event_type=event_type or "unknown",
                action=outcome.action,
                object_id=ref_id(obj.get("id")) if isinstance(obj, dict) else None,
                webhook_timestamp=utcnow(),
            )
        )
        await self.db.commit()
        logger.info(f"✅ {event_type} [{event['id']}] -> {outcome.action}")
        return outcome

    async def handle_checkout_completed(self, session: Dict[str, Any]) -> WebhookOutcome:
        subscription_id = ref_id(session.get("subscription"))
        if not subscription_id:
            return WebhookOutcome(action="checkout_without_subscription")

        existing = await subscriber_crud.get_by_stripe_subscription_id(self.db, subscription_id)
        if existing:
            logger.info(f"Subscriber for {subscription_id} already exists, skipping")
            return WebhookOutcome(action="checkout_already_processed")

        metadata = session.get("metadata") or {}
        plan = None
        plan_id = parse_uuid(metadata.get("plan_id"))
        if plan_id:
            plan = await subscription_plan_crud.get_for_merchant(self.db, plan_id, self.merchant.id)
        if not plan:
            logger.error(f"❌ Plan {metadata.get('plan_id')} not found for merchant {self.merchant.id}")
            return WebhookOutcome(action="plan_not_found")

        customer_email = dig(session, "customer_details", "email") or session.get("customer_email")
        if not customer_email:
            logger.error(f"❌ Checkout session {session.get('id')} has no customer email")
            return WebhookOutcome(action="customer_email_missing")
        customer_name = metadata.get("customer_name") or dig(session, "customer_details", "name")

        if self.gateway is None:
            raise RuntimeError(f"Merchant {self.merchant.id} has no Stripe secret key")
        subscription = await self.gateway.retrieve_subscription(subscription_id)
        start_date, next_renewal = billing_period(subscription)

        subscriber = await subscriber_crud.stage(
            self.db,
            obj_in=SubscriberCreate(
                merchant_id=self.merchant.id,
                plan_id=plan.id,
                customer_name=customer_name,
                customer_email=customer_email,
                status=SubscriberStatus.ACTIVE,
                stripe_subscription_id=subscription_id,
                stripe_customer_id=ref_id(session.get("customer")),
                start_date=start_date or utcnow(),
                next_renewal_date=next_renewal,
            )
        )
        await subscription_plan_crud.increment_subscriber_count(self.db, plan.id)
        await access_token_service.issue_access_token(self.db, subscriber, plan, session["id"])

        transaction = None
        amount_total = session.get("amount_total") or 0
        if amount_total > 0:
            payment_ref = ref_id(session.get("invoice")) or ref_id(session.get("payment_intent")) or session["id"]
            transaction, _ = await payment_transaction_crud.stage_if_absent(
                self.db,
                obj_in=PaymentTransactionCreate(
                    merchant_id=self.merchant.id,
                    subscriber_id=subscriber.id,
                    plan_id=plan.id,
                    amount=cents_to_amount(amount_total),
                    status=PaymentStatus.SUCCESS,
                    stripe_payment_id=payment_ref,
                    payment_date=utcnow(),
                )
            )
            if transaction.status == PaymentStatus.SUCCESS:
                await subscriber_crud.update(
                    self.db,
                    db_obj=subscriber,
                    obj_in={"last_payment_date": transaction.payment_date, "last_payment_amount": transaction.amount},
                    commit=False
                )

        notification = self._notification(WELCOME, subscriber, plan, transaction)
        return WebhookOutcome(action="subscriber_created", notifications=[notification])

    async def handle_subscription_updated(self, subscription: Dict[str, Any]) -> WebhookOutcome:
        subscriber = await self._find_subscriber(subscription.get("id"))
        if not subscriber:
            logger.warning(f"⚠️ No subscriber for subscription {subscription.get('id')}")
            return WebhookOutcome(action="subscriber_not_found")

        changes: Dict[str, Any] = {}
        new_status = STRIPE_STATUS_MAP.get(subscription.get("status"))
        if new_status:
            changes["status"] = new_status
        else:
            logger.info(f"Keeping status for unknown Stripe status {subscription.get('status')}")
        _, next_renewal = billing_period(subscription)
        if next_renewal:
            changes["next_renewal_date"] = next_renewal

        await subscriber_crud.update(self.db, db_obj=subscriber, obj_in=changes, commit=False)
        return WebhookOutcome(action="subscription_updated")

    async def handle_subscription_deleted(self, subscription: Dict[str, Any]) -> WebhookOutcome:
        subscriber = await self._find_subscriber(subscription.get("id"))
        if not subscriber:
            logger.warning(f"⚠️ No subscriber for subscription {subscription.get('id')}")
            return WebhookOutcome(action="subscriber_not_found")

        # An earlier updated event may already show cancelled; the counter only follows deletion
        if await stripe_webhook_crud.transition_applied(
            self.db, self.merchant.id, subscription.get("id"), SUBSCRIPTION_CANCELLED
        ):
            return WebhookOutcome(action="subscription_already_cancelled")

        prior_plan_id = subscriber.plan_id
        await subscriber_crud.update(
            self.db, db_obj=subscriber, obj_in={"status": SubscriberStatus.CANCELLED}, commit=False
        )
        await subscription_plan_crud.decrement_subscriber_count(self.db, prior_plan_id)
        return WebhookOutcome(action=SUBSCRIPTION_CANCELLED)

    async def handle_payment_succeeded(self, invoice: Dict[str, Any]) -> WebhookOutcome:
        subscriber = await self._find_subscriber(subscription_ref(invoice))
        if not subscriber:
            logger.warning(f"⚠️ No subscriber for invoice {invoice.get('id')}")
            return WebhookOutcome(action="subscriber_not_found")

        amount = cents_to_amount(invoice.get("amount_paid"))
        paid_at = from_unix(dig(invoice, "status_transitions", "paid_at")) or utcnow()
        changes: Dict[str, Any] = {
            "status": SubscriberStatus.ACTIVE,
            "last_payment_date": paid_at,
            "last_payment_amount": amount,
        }
        period_end = from_unix(dig(invoice, "lines", "data", 0, "period", "end"))
        if period_end:
            changes["next_renewal_date"] = period_end
        await subscriber_crud.update(self.db, db_obj=subscriber, obj_in=changes, commit=False)

        transaction, created = await payment_transaction_crud.stage_if_absent(
            self.db,
            obj_in=PaymentTransactionCreate(
                merchant_id=subscriber.merchant_id,
                subscriber_id=subscriber.id,
                plan_id=subscriber.plan_id,
                amount=amount,
                status=PaymentStatus.SUCCESS,
                stripe_payment_id=invoice.get("id"),
                payment_date=paid_at,
            )
        )
        action = "payment_recorded"
        if not created:
            if transaction.status == PaymentStatus.SUCCESS:
                return WebhookOutcome(action="payment_already_recorded")
            # Stripe retries a failed invoice under the same id
            await payment_transaction_crud.update(
                self.db,
                db_obj=transaction,
                obj_in={"status": PaymentStatus.SUCCESS, "amount": amount, "payment_date": paid_at},
                commit=False
            )
            action = "payment_recovered"

        notifications = []
        # The first invoice is covered by the welcome email
        if invoice.get("billing_reason") != "subscription_create":
            plan = await subscription_plan_crud.get(self.db, subscriber.plan_id, raise_if_not_found=False)
            if plan:
                notifications.append(self._notification(PAYMENT_RECEIVED, subscriber, plan, transaction))
        return WebhookOutcome(action=action, notifications=notifications)

    async def handle_payment_failed(self, invoice: Dict[str, Any]) -> WebhookOutcome:
        subscriber = await self._find_subscriber(subscription_ref(invoice))
        if not subscriber:
            logger.warning(f"⚠️ No subscriber for invoice {invoice.get('id')}")
            return WebhookOutcome(action="subscriber_not_found")

        await subscriber_crud.update(
            self.db, db_obj=subscriber, obj_in={"status": SubscriberStatus.FAILED}, commit=False
        )
        transaction, created = await payment_transaction_crud.stage_if_absent(
            self.db,
            obj_in=PaymentTransactionCreate(
                merchant_id=subscriber.merchant_id,
                subscriber_id=subscriber.id,
                plan_id=subscriber.plan_id,
                amount=cents_to_amount(invoice.get("amount_due")),
                status=PaymentStatus.FAILED,
                stripe_payment_id=invoice.get("id"),
                payment_date=utcnow(),
            )
        )
        if not created:
            return WebhookOutcome(action="payment_failure_already_recorded")

        notifications = []
        plan = await subscription_plan_crud.get(self.db, subscriber.plan_id, raise_if_not_found=False)
        if plan:
            notifications.append(
                self._notification(PAYMENT_FAILED, subscriber, plan, transaction, attach_invoice=False)
            )
        return WebhookOutcome(action="payment_failed", notifications=notifications)

    async def _find_subscriber(self, stripe_subscription_id: Optional[str]) -> Optional[Subscriber]:
        """Subscriber for a Stripe subscription, scoped to this merchant"""
        subscriber = await subscriber_crud.get_by_stripe_subscription_id(self.db, stripe_subscription_id)
        if subscriber and subscriber.merchant_id != self.merchant.id:
            logger.warning(f"⚠️ Subscription {stripe_subscription_id} belongs to another merchant")
            return None
        return subscriber

    def _notification(
        self,
        kind: str,
        subscriber: Subscriber,
        plan: SubscriptionPlan,
        transaction: Optional[PaymentTransaction],
        attach_invoice: bool = True
    ) -> PendingNotification:
        invoice = None
        if transaction is not None and attach_invoice:
            invoice = build_invoice_data(self.merchant, subscriber, plan, transaction)
        return PendingNotification(
            kind=kind,
            to=subscriber.customer_email,
            merchant_name=self.merchant.display_name,
            merchant_email=self.merchant.email,
            customer_name=subscriber.customer_name or subscriber.customer_email,
            plan_name=plan.name,
            amount=format_money(transaction.amount, plan.currency) if transaction is not None else None,
            next_renewal=f"{subscriber.next_renewal_date:%d %b %Y}" if subscriber.next_renewal_date else None,
            features=list(plan.features or []),
            invoice=invoice,
        )
