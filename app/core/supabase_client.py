from dotenv import load_dotenv
from supabase import AsyncClient, acreate_client

from app.core.config import Settings


load_dotenv()


async def create_supabase_client(settings: Settings) -> AsyncClient:
    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        raise RuntimeError(
            "PUBLIC_SUPABASE_URL and SECRET_API_KEY must be set for the supabase store."
        )
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
