from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("BOT_TOKEN", "BRIDGE_BOT_TOKEN", "BRIDGE_TELEGRAM_TOKEN"),
    )
    staff_group_id: str = ""

    airtable_api_key: str = ""
    airtable_base_id: str = ""
    airtable_table_pwa: str = ""
    airtable_table_pwa_messages: str = ""

    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "pwa_bridge_media"

    alert_bot_token: str = ""
    alert_chat_id: str = ""

    cors_allow_origins: str = "*"
    telegram_webhook_secret: str = ""
    admin_token: str = ""

    history_limit: int = 30
    history_max_limit: int = 100
    note_capture_ttl_seconds: float = 0
    ignored_command_prefixes: str = "/env"
    http_timeout_seconds: float = 30.0

    log_level: str = "INFO"
    port: int = 10000

    @property
    def cors_origins(self) -> list[str]:
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]
        return origins or ["*"]

    @property
    def command_prefixes(self) -> tuple[str, ...]:
        return tuple(p.strip().lower() for p in self.ignored_command_prefixes.split(",") if p.strip())


REQUIRED_SETTINGS = {
    "bot_token": "BOT_TOKEN (or BRIDGE_BOT_TOKEN)",
    "staff_group_id": "STAFF_GROUP_ID",
    "airtable_api_key": "AIRTABLE_API_KEY",
    "airtable_base_id": "AIRTABLE_BASE_ID",
    "airtable_table_pwa": "AIRTABLE_TABLE_PWA",
    "airtable_table_pwa_messages": "AIRTABLE_TABLE_PWA_MESSAGES",
}


def missing_settings(current: Settings) -> list[str]:
    """Names of required environment variables that are empty."""
    return [env_name for attr, env_name in REQUIRED_SETTINGS.items() if not getattr(current, attr)]


settings = Settings()
