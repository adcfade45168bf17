import logging
import httpx
from barberbook.core.config import settings

logger = logging.getLogger(__name__)

def _base_url() -> str:
    # Panel URLs often end in /manager; the API lives at the root
    url = (settings.evolution_api_url or "").rstrip("/")
    if url.endswith("/manager"):
        url = url[: -len("/manager")]
    return url

async def send_text_message(instance_name: str, recipient_number: str, text: str) -> bool:
    """
    Sends a text message through the Evolution API (WhatsApp).
    Returns False instead of raising; callers treat delivery as best-effort.
    """
    if not settings.evolution_api_url or not settings.evolution_api_key:
        logger.error("Evolution API is not configured; message not sent.")
        return False

    url = f"{_base_url()}/message/sendText/{instance_name}"
    headers = {
        "apikey": settings.evolution_api_key,
        "Content-Type": "application/json",
    }
    payload = {"number": recipient_number, "text": text}

    async with httpx.AsyncClient(timeout=15.0) as client:
        try:
            response = await client.post(url, headers=headers, json=payload)
            if response.status_code >= 300:
                logger.error(f"Error sending message via {instance_name} (Status {response.status_code}): {response.text[:500]}")
                return False

            logger.info(f"Message sent via {instance_name} to {recipient_number}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"Exception during message sending via {instance_name}: {e}")
            return False
