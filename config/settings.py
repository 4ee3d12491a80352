from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_ROOT = "data"


class LoggingSettings(BaseSettings):
    """Logging settings"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    file_path: str | None = Field(default=None, description="Log file (console only if None)")


class HistorySettings(BaseSettings):
    """Upload history storage"""

    file_path: str = Field(default=f"{DATA_ROOT}/history.json", description="History JSON file")
    max_items: int = Field(default=500, ge=1, description="Oldest items beyond this are pruned")


class UserConfigSettings(BaseSettings):
    """Where the user configuration is kept"""

    file_path: str = Field(default="config/user_config.json", description="User config store file")
    key: str = Field(default="config", description="Key of the active configuration in the store")


class AppSettings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    user_config: UserConfigSettings = Field(default_factory=UserConfigSettings)

    app_name: str = Field(default="Image Uploader", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    timezone: str = Field(default="UTC", description="Timezone used to display timestamps")


settings = AppSettings()
