from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

from app.utils.env_helper import env_bool, env_float, env_list, env_none_or_str


load_dotenv()


class Settings:
    def __init__(self) -> None:
        self.SUPABASE_URL: Optional[str] = env_none_or_str("PUBLIC_SUPABASE_URL")
        self.SUPABASE_KEY: Optional[str] = env_none_or_str("SECRET_API_KEY")
        self.JWT_SIGN_KEY: Optional[str] = env_none_or_str("SUPABASE_JWT_SECRET")

        # "supabase" in deployments, "memory" for local runs without a project
        self.STORE_BACKEND: str = (
            env_none_or_str("STORE_BACKEND", "supabase") or "supabase"
        ).lower()

        self.LOG_LEVEL: str = env_none_or_str("LOG_LEVEL", "INFO")
        self.LOG_JSON: bool = env_bool("LOG_JSON", default=False)

        # None disables the per-lookup timeout
        self.ENRICHMENT_TIMEOUT_SECONDS: Optional[float] = env_float(
            "ENRICHMENT_TIMEOUT_SECONDS", 5.0
        )
        self.CHAT_MEDIA_BUCKET: str = env_none_or_str("CHAT_MEDIA_BUCKET", "chat_media")

        self.CORS_ORIGINS: List[str] = env_list(
            "CORS_ORIGINS", ["http://localhost:5173", "http://localhost:8080"]
        )

    @property
    def jwt_issuer(self) -> str:
        return f"{self.SUPABASE_URL}/auth/v1"


@lru_cache
def get_settings() -> Settings:
    return Settings()
