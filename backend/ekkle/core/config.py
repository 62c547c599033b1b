# Central place for all configurable settings. We use Pydantic's
# BaseSettings so values can be read from env vars or a .env file.
# Tenant hostnames, rate limit backends and provider keys live here.

import json
from typing import Annotated, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def safe_json_loads(value):
    try:
        return json.loads(value)
    except Exception:
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection string for the live stream tables, like sqlite:///./ekkle.db
    # or a Postgres URL.
    DATABASE_URL: str = "sqlite:///./ekkle.db"

    # Toggle SQLAlchemy echo logs. Useful for debugging queries locally.
    DB_ECHO: bool = False

    LOG_LEVEL: str = "INFO"

    # Tenancy: hostnames that never carry a church subdomain. Matched
    # exactly against the request host with the port stripped.
    ROOT_HOSTNAMES: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "ekkle.com.br",
            "www.ekkle.com.br",
            "admin.ekkle.com.br",
            "ekkle.up.railway.app",
            "localhost",
            "127.0.0.1",
        ]
    )
    # Namespace that tenant-scoped paths are rewritten into.
    TENANT_SITE_PREFIX: str = "/site"
    # Known church ids by slug. Lets the resolver attach x-church-id
    # without a database round trip.
    CHURCH_IDS: Annotated[Dict[str, str], NoDecode] = Field(default_factory=dict)

    # Proxy/client IP extraction settings. When enabled the forwarded
    # host header is also trusted for tenant resolution.
    TRUST_PROXY_HEADERS: bool = False
    TRUSTED_PROXY_IPS: Annotated[List[str], NoDecode] = Field(default_factory=list)
    TRUSTED_IP_HEADERS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "CF-Connecting-IP",
            "X-Forwarded-For",
            "X-Real-IP",
        ]
    )

    # Rate limiting backend: "memory" or "redis".
    RATE_LIMIT_BACKEND: str = "memory"
    RATE_LIMIT_NAMESPACE: str = "ekkle:ratelimit"
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: int = Field(default=300, gt=0)
    REDIS_URL: Optional[str] = None

    # LiveKit credentials, also used to verify webhook signatures.
    LIVEKIT_API_KEY: Optional[str] = None
    LIVEKIT_API_SECRET: Optional[str] = None

    @field_validator("ROOT_HOSTNAMES", "TRUSTED_PROXY_IPS", "TRUSTED_IP_HEADERS", mode="before")
    @classmethod
    def _split_comma_list(cls, value, info):
        if not isinstance(value, str):
            return value
        parsed = safe_json_loads(value)
        if isinstance(parsed, list):
            items = [str(item).strip() for item in parsed if str(item).strip()]
        else:
            items = [item.strip() for item in value.split(",") if item.strip()]
        if info.field_name == "ROOT_HOSTNAMES":
            # Hosts are compared lowercased.
            items = [item.lower() for item in items]
        return items

    @field_validator("CHURCH_IDS", mode="before")
    @classmethod
    def _parse_church_ids(cls, value):
        # Accepts JSON or "slug=id,slug=id".
        if not isinstance(value, str):
            return value
        parsed = safe_json_loads(value)
        if isinstance(parsed, dict):
            return {str(slug).strip().lower(): str(church_id) for slug, church_id in parsed.items()}
        pairs = {}
        for part in value.split(","):
            slug, sep, church_id = part.partition("=")
            if sep and slug.strip() and church_id.strip():
                pairs[slug.strip().lower()] = church_id.strip()
        return pairs


# Instantiate a single settings object for app-wide import.
# Any module can just `from ekkle.core.config import settings`.
settings = Settings()
