"""
Payment provider (Stripe) integration.

Card handling stays entirely with the provider: the frontend confirms the
payment with the client secret returned here, then reports the intent id
to /tokens/purchase. With VERIFY_PAYMENT_INTENTS enabled the purchase is
only credited once the provider says the intent succeeded.

The stripe SDK is synchronous, so its calls run in the threadpool.
"""

import stripe
from starlette.concurrency import run_in_threadpool

from djei.config import settings
from djei.exceptions import ServiceUnavailableError, UpstreamError, ValidationError
from djei.log import get_logger
from djei.security import Identity

logger = get_logger(__name__)


class StripePayments:
    def __init__(self, secret_key: str | None = None, currency: str = "usd"):
        self._secret_key = secret_key
        self._currency = currency

    @classmethod
    def from_settings(cls) -> "StripePayments":
        return cls(secret_key=settings.STRIPE_SECRET_KEY, currency=settings.PAYMENT_CURRENCY)

    @property
    def configured(self) -> bool:
        return bool(self._secret_key)

    def _require_key(self) -> str:
        if not self._secret_key:
            raise ServiceUnavailableError("Payment provider not configured")
        return self._secret_key

    async def create_payment_intent(
        self,
        identity: Identity,
        amount_cents: int,
        currency: str | None = None,
        token_amount: int | None = None,
        event_id: str | None = None,
        description: str | None = None,
    ) -> dict:
        """
        Create a PaymentIntent for the caller.

        The user id and token amount travel in the intent metadata, so the
        intent can be matched to the purchase that redeems it.

        Returns:
            {"client_secret", "payment_intent_id"}
        """
        api_key = self._require_key()
        metadata = {"userId": identity.id}
        if token_amount is not None:
            metadata["tokenAmount"] = str(token_amount)
        if event_id:
            metadata["eventId"] = event_id

        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=(currency or self._currency).lower(),
                description=description,
                metadata=metadata,
                receipt_email=identity.email or None,
                automatic_payment_methods={"enabled": True},
                api_key=api_key,
            )
        except stripe.StripeError as exc:
            logger.warning("payments.create_intent_failed", account_id=identity.id, error=str(exc))
            raise UpstreamError("Failed to create payment intent")

        logger.info(
            "payments.intent_created",
            account_id=identity.id,
            payment_intent_id=intent.id,
            amount=amount_cents,
        )
        return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}

    async def verify_payment_intent(self, payment_intent_id: str, account_id: str, token_amount: int) -> None:
        """
        Check that an intent was paid, by this account, for this many tokens.

        The token amount must match the tokenAmount written into the intent's
        metadata when it was created; an intent without one redeems nothing.

        Raises:
            ValidationError: If the intent has not succeeded, belongs to
                             someone else, or was paid for a different amount.
            UpstreamError: If the provider can't be reached or doesn't know the id.
        """
        api_key = self._require_key()
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.retrieve, payment_intent_id, api_key=api_key
            )
        except stripe.StripeError as exc:
            logger.warning("payments.verify_failed", payment_intent_id=payment_intent_id, error=str(exc))
            raise UpstreamError("Failed to verify payment")

        metadata = intent.metadata or {}
        owner = metadata["userId"] if "userId" in metadata else None
        if intent.status != "succeeded" or (owner and owner != account_id):
            raise ValidationError(
                "Payment not completed",
                details=[{"field": "paymentIntentId", "message": "Payment intent has not succeeded"}],
            )

        paid_for = metadata["tokenAmount"] if "tokenAmount" in metadata else None
        if paid_for is None or str(paid_for) != str(token_amount):
            logger.warning(
                "payments.amount_mismatch",
                payment_intent_id=payment_intent_id,
                account_id=account_id,
                requested=token_amount,
                paid_for=paid_for,
            )
            raise ValidationError(
                "Payment amount mismatch",
                details=[{"field": "amount", "message": "Amount does not match the payment intent"}],
            )
