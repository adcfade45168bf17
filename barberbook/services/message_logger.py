from typing import Optional
from postgrest.exceptions import APIError
from barberbook.core.supabase_client import get_supabase
import logging

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

async def log_message(
    tenant_id: str,
    phone: str,
    text: Optional[str],
    direction: str,
    provider_message_id: Optional[str] = None
) -> bool:
    """
    Logs an inbound or outbound WhatsApp message to the 'messages' table.
    Returns False only when the provider message id was already logged, i.e. the
    channel redelivered it. Other logging failures never interrupt the conversation.
    """
    try:
        data = {
            "org_id": tenant_id,
            "phone": phone,
            "text": text,
            "direction": direction,
            "provider_message_id": provider_message_id
        }
        get_supabase().table("messages").insert(data).execute()
        logger.info(f"Message logged: {direction} | tenant {tenant_id} | {phone}")

    except APIError as e:
        if e.code == UNIQUE_VIOLATION and provider_message_id:
            logger.info(f"Message {provider_message_id} already logged, skipping redelivery")
            return False
        logger.error(f"Failed to log message to Supabase: {e}")
    except Exception as e:
        logger.error(f"Failed to log message to Supabase: {e}")

    return True
