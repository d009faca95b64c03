# config.py
# Settings read from the environment and an optional .env file

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_ids(value: str) -> frozenset[int]:
    ids = set()
    for part in str(value).split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            ids.add(int(part))
    return frozenset(ids)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Telegram client
    API_ID: int = Field(default=0)
    API_HASH: str = Field(default="")
    BOT_TOKEN: str = Field(default="")
    SESSION_NAME: str = Field(default="bot_session")

    # JSON store location
    DATA_DIR: str = Field(default="data")

    # Comma-separated administrator ids, e.g. "111,222"
    ADMIN_IDS: str = Field(default="")

    # Channels every user must join during onboarding
    CHANNEL_1_ID: str = Field(default="")
    CHANNEL_1_LINK: str = Field(default="")
    CHANNEL_2_ID: str = Field(default="")
    CHANNEL_2_LINK: str = Field(default="")

    # Gated reveal
    WHATSAPP_GROUP_LINK: str = Field(default="")
    WHATSAPP_LINK_DISPLAY_SECONDS: int = Field(default=60, ge=1)
    REVEAL_TICK_SECONDS: int = Field(default=10, ge=1)

    # Broadcast throttle
    BROADCAST_DELAY_MS: int = Field(default=50, ge=0)
    BROADCAST_PROGRESS_EVERY: int = Field(default=50, ge=1)

    LOG_LEVEL: str = Field(default="INFO")
    USE_UVLOOP: bool = Field(default=True)

    @property
    def admin_ids(self) -> frozenset[int]:
        return _parse_ids(self.ADMIN_IDS)

    @property
    def required_channels(self) -> list[tuple[str, str]]:
        pairs = [
            (self.CHANNEL_1_ID, self.CHANNEL_1_LINK),
            (self.CHANNEL_2_ID, self.CHANNEL_2_LINK),
        ]
        return [(cid.strip(), link.strip() or cid.strip()) for cid, link in pairs if cid.strip()]

    @property
    def broadcast_delay(self) -> float:
        return self.BROADCAST_DELAY_MS / 1000.0

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids

    def missing_required(self) -> list[str]:
        required = {
            "API_ID": self.API_ID,
            "API_HASH": self.API_HASH,
            "BOT_TOKEN": self.BOT_TOKEN,
            "CHANNEL_1_ID": self.CHANNEL_1_ID,
            "CHANNEL_1_LINK": self.CHANNEL_1_LINK,
            "CHANNEL_2_ID": self.CHANNEL_2_ID,
            "CHANNEL_2_LINK": self.CHANNEL_2_LINK,
            "WHATSAPP_GROUP_LINK": self.WHATSAPP_GROUP_LINK,
        }
        return [name for name, value in required.items() if not value]


def load_settings() -> Settings:
    return Settings()
