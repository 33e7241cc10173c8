"""Configuration management for grocerease."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store Configuration
    store_backend: Literal["sqlite", "firebase"] = Field(
        default="sqlite", description="Hierarchical store backend for groups, lists and notifications"
    )
    sqlite_db_path: str = Field(default="./data/grocerease.db", description="SQLite database file path")
    firebase_credentials_path: str | None = Field(
        default=None, description="Path to the Firebase service account JSON file"
    )
    firebase_database_url: str | None = Field(default=None, description="Firebase Realtime Database URL")
    transaction_max_retries: int = Field(
        default=25, description="Maximum optimistic transaction attempts before giving up"
    )

    # Identity Configuration
    identity_backend: Literal["signed", "firebase"] = Field(
        default="signed", description="Bearer token verifier (signed tokens for local use, Firebase ID tokens)"
    )
    secret_key: str = Field(default="dev-secret-change-me", description="Secret used to sign local bearer tokens")
    token_max_age_seconds: int = Field(default=86400, description="Maximum age of signed bearer tokens")

    # OpenRouter Configuration
    openrouter_api_key: str | None = Field(default=None, description="OpenRouter API key for LLM access")
    model_id: str = Field(
        default="openai/gpt-4o-mini",
        description="Model ID for OpenRouter used by the item categorizer",
    )
    model_provider: str | None = Field(default=None, description="Restrict OpenRouter routing to one provider")
    category_cache_ttl_seconds: int = Field(
        default=0, description="TTL for cached item categories (0 keeps entries for the process lifetime)"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Week Configuration
    default_timezone: str = Field(default="UTC", description="Timezone used when a caller does not send one")
    week_starts_on: Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"] = Field(
        default="sunday", description="First day of the calendar week"
    )

    # Push Notification Configuration
    enable_push_notifications: bool = Field(default=False, description="Deliver push notifications to devices")
    push_api_url: str = Field(
        default="https://exp.host/--/api/v2/push/send", description="Push notification gateway endpoint"
    )

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # API Configuration
    API_TIMEOUT_SECONDS: int = 30

    # Groups
    DEFAULT_GROUP_NAME: str = "My Lists"

    # Categorization
    FALLBACK_SECTION_NAME: str = "Other"
    SECTION_CATALOGUE: tuple[str, ...] = (
        "Produce",
        "Meat & Poultry",
        "Seafood",
        "Deli",
        "Bakery",
        "Dairy & Eggs",
        "Frozen Foods",
        "Pantry",
        "Canned Goods",
        "Baking",
        "Beverages",
        "Snacks & Candy",
        "Health & Beauty",
        "Household Essentials",
        "Pet Supplies",
        "International",
        "Floral",
        "Alcohol",
    )

    # WebSocket close codes
    WS_CLOSE_POLICY_VIOLATION: int = 1008
    WS_CLOSE_INTERNAL_ERROR: int = 1011
