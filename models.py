# models.py
# User records, allow-list entries and the onboarding/action state enums

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class OnboardingState(str, Enum):
    STARTED = "started"
    PHONE_SHARED = "phone_shared"
    CHANNELS_JOINED = "channels_joined"
    AWAITING_FIRST_NAME = "awaiting_first_name"
    AWAITING_LAST_NAME = "awaiting_last_name"
    AWAITING_NAME_CONFIRMATION = "awaiting_name_confirmation"
    COMPLETED = "completed"


# Declaration order is the onboarding order.
ONBOARDING_ORDER: list[OnboardingState] = list(OnboardingState)


class ActionState(str, Enum):
    NONE = "none"
    AWAITING_PHONE_CONFIRMATION = "awaiting_phone_confirmation"
    AWAITING_SECONDARY_PHONE = "awaiting_secondary_phone"
    AWAITING_WHATSAPP_FIRST_NAME = "awaiting_whatsapp_first_name"
    AWAITING_WHATSAPP_LAST_NAME = "awaiting_whatsapp_last_name"
    AWAITING_WHATSAPP_CONFIRMATION = "awaiting_whatsapp_confirmation"


REVEAL_STATES = frozenset({
    ActionState.AWAITING_WHATSAPP_FIRST_NAME,
    ActionState.AWAITING_WHATSAPP_LAST_NAME,
    ActionState.AWAITING_WHATSAPP_CONFIRMATION,
})


class ServiceType(str, Enum):
    WORK_TRAVEL = "work_travel"
    STUDY = "study"
    AUSBILDUNG = "ausbildung"
    ARBEITSVISUM = "arbeitsvisum"


class UserRecord(BaseModel):
    """One Telegram user and their progress through the bot."""

    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    primary_phone: str | None = None
    secondary_phone: str | None = None

    passport_first_name: str | None = None
    passport_last_name: str | None = None
    # Set once on the first confirmation, never overwritten
    original_passport_first_name: str | None = None
    original_passport_last_name: str | None = None

    onboarding_state: OnboardingState = OnboardingState.STARTED
    is_onboarded: bool = False

    action_state: ActionState = ActionState.NONE
    current_service: ServiceType | None = None
    whatsapp_first_name: str | None = None
    whatsapp_last_name: str | None = None

    registered_at: datetime = Field(default_factory=utcnow)
    onboarded_at: datetime | None = None
    last_activity_at: datetime = Field(default_factory=utcnow)

    def full_passport_name(self) -> str | None:
        if not self.passport_first_name or not self.passport_last_name:
            return None
        return f"{self.passport_first_name} {self.passport_last_name}".upper()

    def touch(self) -> None:
        self.last_activity_at = utcnow()


class AllowlistEntry(BaseModel):
    """A full name an administrator cleared for the gated reveal."""

    full_name: str
    original_entry: str
    added_by: int
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class BulkInsertResult(BaseModel):
    added: int = 0
    duplicates: int = 0


class UserStats(BaseModel):
    total: int = 0
    onboarded: int = 0
    pending: int = 0
    today: int = 0
