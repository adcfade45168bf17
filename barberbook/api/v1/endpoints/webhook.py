import logging
import re
from fastapi import APIRouter, Request, Header, HTTPException
from typing import Any, Dict, Optional

import stripe

from barberbook.core.config import settings
from barberbook.core.errors import BookingError
from barberbook.services.agent import agent
from barberbook.services.catalog import catalog_service
from barberbook.services.message_logger import log_message
from barberbook.services.payments import payment_service, stripe_field
from barberbook.services.whatsapp import send_text_message
from barberbook.utils.phone import phone_from_remote_jid

logger = logging.getLogger(__name__)

router = APIRouter()

CHECKOUT_COMPLETED = "checkout.session.completed"
_UPSERT_EVENT = re.compile(r"messages[\s._-]*upsert", re.IGNORECASE)

# --- Stripe ---

@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None)
):
    """
    Confirms appointments when Stripe reports a completed Checkout session.
    Anything we don't act on still gets a 200 so Stripe stops redelivering.
    """
    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=500, detail="missing_webhook_secret")

    if not stripe_signature:
        raise HTTPException(status_code=400, detail="missing_signature")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail="invalid_signature")

    if event["type"] != CHECKOUT_COMPLETED:
        return {"ok": True}

    session = event["data"]["object"]
    metadata = stripe_field(session, "metadata")
    appointment_id = stripe_field(metadata, "appointment_id")
    tenant_id = stripe_field(metadata, "org_id")
    if not appointment_id or not tenant_id:
        logger.info(f"Stripe event {event['id']} has no booking metadata, ignoring")
        return {"ok": True}

    payment_intent = stripe_field(session, "payment_intent")
    try:
        outcome = await payment_service.confirm_payment(
            provider_event_id=event["id"],
            tenant_id=tenant_id,
            appointment_id=appointment_id,
            session_id=stripe_field(session, "id"),
            amount_cents=stripe_field(session, "amount_total") or 0,
            currency=(stripe_field(session, "currency") or settings.default_currency).lower(),
            payment_intent_id=payment_intent if isinstance(payment_intent, str) else None,
        )
    except BookingError as e:
        # Metadata pointing at an unknown tenant or appointment will never succeed on redelivery
        logger.warning(f"Stripe event {event['id']} not applied: {e.code}")
        return {"ok": True}
    logger.info(f"Stripe event {event['id']} processed: {outcome.value}")
    return {"ok": True}

# --- WhatsApp (Evolution API) ---

def extract_text_message(data: Any) -> Optional[Dict[str, Any]]:
    """
    Pulls sender, id and text out of an Evolution 'messages.upsert' payload.
    Returns None for anything that isn't a text-bearing message.
    """
    if not isinstance(data, dict):
        return None

    messages = data.get("messages")
    if isinstance(messages, list) and messages:
        msg = messages[0]
    elif isinstance(data.get("key"), dict):
        # Standard shape: data is the message itself, with "key" and "message"
        msg = data
    else:
        msg = data.get("message", data)
    if not isinstance(msg, dict):
        return None

    key = msg.get("key") if isinstance(msg.get("key"), dict) else {}
    message_id = key.get("id") or msg.get("id")
    remote_jid = key.get("remoteJid") or msg.get("remoteJid")
    if not message_id or not remote_jid:
        return None

    body = msg.get("message") if isinstance(msg.get("message"), dict) else msg
    extended = body.get("extendedTextMessage") or {}
    text = body.get("conversation") or extended.get("text")
    for media in ("imageMessage", "videoMessage", "documentMessage"):
        if not text and isinstance(body.get(media), dict):
            text = body[media].get("caption")

    return {
        "message_id": message_id,
        "remote_jid": remote_jid,
        "from_me": bool(key.get("fromMe", msg.get("fromMe", False))),
        "text": text if isinstance(text, str) else None,
    }

def _is_group_or_status(remote_jid: str) -> bool:
    return remote_jid.endswith("@g.us") or remote_jid == "status@broadcast"

@router.post("/evolution")
async def evolution_webhook(request: Request):
    """
    Handles incoming WhatsApp messages and answers with the booking agent
    after identifying the tenant by its Evolution instance.
    Always answers 200 so the channel keeps delivering.
    """
    try:
        payload = await request.json()
    except Exception:
        return {"ok": True}

    if not isinstance(payload, dict):
        return {"ok": True}

    event_name = str(payload.get("event") or payload.get("type") or "")
    if not _UPSERT_EVENT.search(event_name):
        return {"ok": True}

    instance_name = payload.get("instance") or payload.get("instanceName")
    extracted = extract_text_message(payload.get("data"))
    if not instance_name or not extracted or extracted["from_me"]:
        return {"ok": True}
    if _is_group_or_status(extracted["remote_jid"]) or not extracted["text"]:
        return {"ok": True}

    phone = phone_from_remote_jid(extracted["remote_jid"])
    if not phone:
        return {"ok": True}

    try:
        # --- MULTI-TENANT LOOKUP ---
        tenant = await catalog_service.get_tenant_by_instance(instance_name)
        if not tenant:
            logger.info(f"Tenant not found for instance: {instance_name}")
            return {"ok": True}

        is_new = await log_message(tenant["id"], phone, extracted["text"], "inbound", extracted["message_id"])
        if not is_new:
            return {"ok": True}

        reply = await agent.get_response(
            extracted["text"], phone=phone, tenant_id=tenant["id"], timezone=tenant.get("timezone")
        )
        sent = await send_text_message(instance_name=instance_name, recipient_number=phone, text=reply)
        if sent:
            await log_message(tenant["id"], phone, reply, "outbound")
    except Exception as e:
        logger.exception(f"Error processing WhatsApp message {extracted['message_id']}: {e}")

    return {"ok": True}
