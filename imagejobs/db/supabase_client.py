"""Service-role Supabase client, built once per process at startup."""

from supabase import Client, create_client

from imagejobs.config import Settings


def create_supabase(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"
        )
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
    )
