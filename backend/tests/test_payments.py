"""Tests for payment gateways — signature verification and event parsing."""

import hashlib
import hmac
import json
import time
import uuid

import pytest

from credit_ledger.core.config import settings
from credit_ledger.services.exceptions import NotFoundError
from credit_ledger.services.payments import (
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentConfigurationError,
    PaystackGateway,
    StripeGateway,
    get_gateway,
)
from credit_ledger.services.payments.paystack import compute_signature

STRIPE_SECRET = "whsec_unit_secret"
PAYSTACK_SECRET = "sk_unit_secret"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def stripe_signature(payload: bytes, secret: str = STRIPE_SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_checkout_event(user_id, session_id="cs_test_1", credits="100", **overrides) -> bytes:
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": "paid",
        "amount_total": 1999,
        "currency": "usd",
        "metadata": {"userId": str(user_id), "creditsGranted": credits},
    }
    session.update(overrides)
    event = {
        "id": "evt_test_1",
        "type": "checkout.session.completed",
        "data": {"object": session},
    }
    return json.dumps(event).encode("utf-8")


def paystack_charge_event(user_id, reference="ps_ref_1", metadata=None, **overrides) -> bytes:
    data = {
        "id": 302961,
        "status": "success",
        "reference": reference,
        "amount": 500000,
        "currency": "NGN",
        "metadata": metadata if metadata is not None else {"userId": str(user_id), "creditsGranted": 100},
    }
    data.update(overrides)
    return json.dumps({"event": "charge.success", "data": data}).encode("utf-8")


# ===========================================================================
# Stripe
# ===========================================================================


class TestStripeGateway:
    def setup_method(self):
        self.gateway = StripeGateway(STRIPE_SECRET, default_credits=100)
        self.user_id = uuid.uuid4()

    def test_valid_signature_parses_event(self):
        payload = stripe_checkout_event(self.user_id)

        event = self.gateway.verify(payload, stripe_signature(payload))

        assert event.gateway == "stripe"
        assert event.event_type == "checkout.session.completed"
        assert event.event_id == "evt_test_1"
        assert event.data["id"] == "cs_test_1"

    def test_wrong_secret_rejected(self):
        payload = stripe_checkout_event(self.user_id)
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, stripe_signature(payload, secret="whsec_other"))

    def test_tampered_body_rejected(self):
        payload = stripe_checkout_event(self.user_id)
        header = stripe_signature(payload)
        tampered = payload.replace(b'"100"', b'"9999"')
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(tampered, header)

    def test_stale_timestamp_rejected(self):
        payload = stripe_checkout_event(self.user_id)
        header = stripe_signature(payload, timestamp=int(time.time()) - 3600)
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, header)

    def test_missing_header_rejected(self):
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(stripe_checkout_event(self.user_id), None)

    def test_signed_garbage_rejected(self):
        payload = b"not json"
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, stripe_signature(payload))

    def test_non_ascii_signature_rejected(self):
        payload = stripe_checkout_event(self.user_id)
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, f"t={int(time.time())},v1=\u00e9abc")

    @pytest.mark.parametrize("data", [[1, 2], {"object": ["cs_test_1"]}, "session"])
    def test_signed_non_object_data_rejected(self, data):
        payload = json.dumps({"id": "evt_x", "type": "checkout.session.completed", "data": data}).encode()
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, stripe_signature(payload))

    def test_paid_checkout_is_confirmation(self):
        payload = stripe_checkout_event(self.user_id)
        event = self.gateway.verify(payload, stripe_signature(payload))

        assert self.gateway.is_payment_confirmation(event) is True
        assert self.gateway.extract_reference(event) == "cs_test_1"
        assert self.gateway.extract_user_id(event) == self.user_id
        assert self.gateway.extract_amount(event) == 100
        assert self.gateway.extract_payment_details(event) == (1999, "usd")

    def test_unpaid_checkout_is_not_confirmation(self):
        payload = stripe_checkout_event(self.user_id, payment_status="unpaid")
        event = self.gateway.verify(payload, stripe_signature(payload))
        assert self.gateway.is_payment_confirmation(event) is False

    def test_async_payment_succeeded_is_confirmation(self):
        body = json.loads(stripe_checkout_event(self.user_id, payment_status="unpaid"))
        body["type"] = "checkout.session.async_payment_succeeded"
        payload = json.dumps(body).encode("utf-8")
        event = self.gateway.verify(payload, stripe_signature(payload))
        assert self.gateway.is_payment_confirmation(event) is True

    def test_credits_default_when_metadata_omits_them(self):
        payload = stripe_checkout_event(self.user_id, metadata={"userId": str(self.user_id)})
        event = self.gateway.verify(payload, stripe_signature(payload))
        assert self.gateway.extract_amount(event) == 100

    @pytest.mark.parametrize("credits", ["abc", "0", "-5"])
    def test_invalid_credits_metadata(self, credits):
        payload = stripe_checkout_event(self.user_id, credits=credits)
        event = self.gateway.verify(payload, stripe_signature(payload))
        with pytest.raises(InvalidPayloadError):
            self.gateway.extract_amount(event)

    @pytest.mark.parametrize("metadata", [{}, {"userId": "not-a-uuid"}])
    def test_invalid_user_metadata(self, metadata):
        payload = stripe_checkout_event(self.user_id, metadata=metadata)
        event = self.gateway.verify(payload, stripe_signature(payload))
        with pytest.raises(InvalidPayloadError):
            self.gateway.extract_user_id(event)

    def test_requires_secret(self):
        with pytest.raises(PaymentConfigurationError):
            StripeGateway("")


# ===========================================================================
# Paystack
# ===========================================================================


class TestPaystackGateway:
    def setup_method(self):
        self.gateway = PaystackGateway(PAYSTACK_SECRET, default_credits=100)
        self.user_id = uuid.uuid4()

    def test_compute_signature_is_hmac_sha512(self):
        expected = hmac.new(PAYSTACK_SECRET.encode(), b"{}", hashlib.sha512).hexdigest()
        assert compute_signature(PAYSTACK_SECRET, b"{}") == expected

    def test_valid_signature_parses_event(self):
        payload = paystack_charge_event(self.user_id)

        event = self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))

        assert event.gateway == "paystack"
        assert event.event_type == "charge.success"
        assert event.event_id == "302961"
        assert self.gateway.is_payment_confirmation(event) is True
        assert self.gateway.extract_reference(event) == "ps_ref_1"
        assert self.gateway.extract_user_id(event) == self.user_id
        assert self.gateway.extract_amount(event) == 100
        assert self.gateway.extract_payment_details(event) == (500000, "NGN")

    def test_wrong_signature_rejected(self):
        payload = paystack_charge_event(self.user_id)
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, compute_signature("sk_other", payload))

    def test_missing_signature_rejected(self):
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(paystack_charge_event(self.user_id), "")

    def test_non_ascii_signature_rejected(self):
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(paystack_charge_event(self.user_id), "\u00e9abc")

    def test_signed_non_object_data_rejected(self):
        payload = json.dumps({"event": "charge.success", "data": [{"reference": "ps_ref_1"}]}).encode()
        with pytest.raises(InvalidSignatureError):
            self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))

    @pytest.mark.parametrize("credits", [100.9, True, "12.5", [100]])
    def test_non_integral_credits_rejected(self, credits):
        payload = paystack_charge_event(
            self.user_id, metadata={"userId": str(self.user_id), "creditsGranted": credits}
        )
        event = self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))
        with pytest.raises(InvalidPayloadError):
            self.gateway.extract_amount(event)

    def test_whole_number_credits_accepted(self):
        payload = paystack_charge_event(
            self.user_id, metadata={"userId": str(self.user_id), "creditsGranted": 250.0}
        )
        event = self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))
        assert self.gateway.extract_amount(event) == 250

    def test_failed_charge_is_not_confirmation(self):
        payload = paystack_charge_event(self.user_id, status="failed")
        event = self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))
        assert self.gateway.is_payment_confirmation(event) is False

    def test_metadata_sent_as_json_string(self):
        metadata = json.dumps({"userId": str(self.user_id), "creditsGranted": "250"})
        payload = paystack_charge_event(self.user_id, metadata=metadata)
        event = self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))
        assert self.gateway.extract_user_id(event) == self.user_id
        assert self.gateway.extract_amount(event) == 250

    def test_missing_reference(self):
        payload = paystack_charge_event(self.user_id, reference="")
        event = self.gateway.verify(payload, compute_signature(PAYSTACK_SECRET, payload))
        with pytest.raises(InvalidPayloadError):
            self.gateway.extract_reference(event)

    def test_requires_secret(self):
        with pytest.raises(PaymentConfigurationError):
            PaystackGateway("")


# ===========================================================================
# Factory
# ===========================================================================


class TestGetGateway:
    def test_builds_configured_gateways(self):
        assert isinstance(get_gateway("stripe"), StripeGateway)
        assert isinstance(get_gateway("paystack"), PaystackGateway)

    def test_unknown_gateway(self):
        with pytest.raises(NotFoundError):
            get_gateway("paypal")

    def test_unconfigured_gateway(self, monkeypatch):
        monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", "")
        with pytest.raises(PaymentConfigurationError):
            get_gateway("paystack")
