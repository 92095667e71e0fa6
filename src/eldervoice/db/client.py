"""
ElderVoice - Supabase Client.

Low-level database access. The backend acts on behalf of verified users, so
it uses the service role key; ownership is checked in the routes.
"""

from supabase import Client, create_client

from eldervoice.config import settings

# Singleton client instance
_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the service-role Supabase client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        _client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _client
