from typing import Any, Dict, Optional
from supabase import create_client, Client
from barberbook.core.config import settings

_client: Optional[Client] = None

def get_supabase() -> Client:
    """Returns the process-wide Supabase client, creating it on first use."""
    global _client
    if _client is None:
        _client = create_client(settings.supabase_url, settings.supabase_key)
    return _client

def maybe_row(response) -> Optional[Dict[str, Any]]:
    """
    Unwraps a maybe_single() response.
    Depending on the postgrest version an empty result is either None or a
    response whose data is None.
    """
    if response is None:
        return None
    data = response.data
    if isinstance(data, list):
        return data[0] if data else None
    return data

class SupabaseBacked:
    """Mixin for services that talk to the store; the client can be injected."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def db(self) -> Client:
        return self._client or get_supabase()
