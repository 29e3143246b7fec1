import json
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., Google clients).
_backend_root = Path(__file__).resolve().parents[1]
_project_root = _backend_root.parent
load_dotenv(_project_root / ".env", override=False)
load_dotenv(_backend_root / ".env", override=False)


def _coerce_json(value: str):
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = "sqlite:///./powerbrief.db"
    DB_POOL_SIZE: int = 20
    DB_POOL_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30

    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    APP_BASE_URL: str = "http://localhost:3000"
    API_BASE_URL: str = "http://localhost:8000"

    SUPABASE_JWT_SECRET: str | None = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    HTTP_TIMEOUT_SECONDS: float = 30.0

    META_APP_ID: str | None = None
    META_APP_SECRET: str | None = None
    META_GRAPH_API_VERSION: str = "v22.0"
    META_GRAPH_API_BASE_URL: str = "https://graph.facebook.com"
    META_OAUTH_REDIRECT_URI: str | None = None
    # Signs the OAuth state parameter; falls back to SUPABASE_JWT_SECRET.
    META_OAUTH_STATE_SECRET: str | None = None
    META_OAUTH_STATE_TTL_SECONDS: int = 600
    # 32-byte AES key, hex encoded.
    META_TOKEN_ENCRYPTION_KEY: str | None = None

    SENDGRID_API_KEY: str | None = None
    SENDGRID_API_BASE_URL: str = "https://api.sendgrid.com"
    SENDGRID_FROM_EMAIL: str | None = None
    SENDGRID_FROM_NAME: str = "PowerBrief"
    INBOUND_EMAIL_DOMAIN: str = "mail.powerbrief.ai"

    N8N_URL: str = "http://localhost:5678"
    N8N_API_KEY: str | None = None
    N8N_CREATOR_ACKNOWLEDGEMENT_WEBHOOK: str | None = None
    N8N_CREATOR_APPROVED_WEBHOOK: str | None = None

    ELEVENLABS_API_KEY: str | None = None
    ELEVENLABS_BASE_URL: str = "https://api.elevenlabs.io"

    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    GOOGLE_API_KEY: str | None = None
    UGC_SCRIPT_MODEL: str = "gemini-2.5-flash"
    AI_COORDINATOR_MODEL: str = "gemini-2.5-flash"

    MEDIA_STORAGE_BUCKET: str | None = None
    MEDIA_STORAGE_ENDPOINT: str | None = None
    MEDIA_STORAGE_REGION: str = "us-east-1"
    MEDIA_STORAGE_ACCESS_KEY: str | None = None
    MEDIA_STORAGE_SECRET_KEY: str | None = None
    MEDIA_STORAGE_PREFIX: str = "dev"
    # Presigned URLs are handed straight to the browser; keep this <= 7 days (SigV4 max).
    MEDIA_STORAGE_PRESIGN_TTL_SECONDS: int = 60 * 60 * 24 * 7
    MEDIA_STORAGE_FORCE_PATH_STYLE: bool = True
    UPLOAD_MAX_BYTES: int = 500 * 1024 * 1024

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def gemini_api_key(self) -> str | None:
        return self.GEMINI_API_KEY or self.GOOGLE_API_KEY

    model_config = SettingsConfigDict(env_file=".env", env_json_loads=_coerce_json, extra="ignore")


settings = Settings()
