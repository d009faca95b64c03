# machine.py
# Conversation state machine for onboarding and the per-user action flows.
#
# advance() only mutates the UserRecord it is given and returns a Transition
# describing the new states and the prompts to render. Lookups that need
# collaborators (channel membership, the allow-list) are resolved by
# dispatch() before advance() runs.
#
# Callers must serialize events for one user id; no locking happens here.

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from membership import MembershipResult
from models import REVEAL_STATES, ActionState, OnboardingState, ServiceType, UserRecord, utcnow
from validation import normalize_phone, validate_name

logger = logging.getLogger(__name__)


# ─── Events ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ContactShared:
    owner_id: int | None
    phone: str


@dataclass(frozen=True)
class MembershipCheckRequested:
    result: MembershipResult | None = None


@dataclass(frozen=True)
class TextEntered:
    text: str


@dataclass(frozen=True)
class NameConfirmed:
    pass


@dataclass(frozen=True)
class NameReentryRequested:
    pass


@dataclass(frozen=True)
class CancelRequested:
    pass


@dataclass(frozen=True)
class ServiceSelected:
    service: ServiceType


@dataclass(frozen=True)
class PhoneConfirmed:
    pass


@dataclass(frozen=True)
class DifferentPhoneRequested:
    pass


@dataclass(frozen=True)
class RevealRequested:
    pass


@dataclass(frozen=True)
class RevealConfirmed:
    allowed: bool | None = None


@dataclass(frozen=True)
class RevealReentryRequested:
    pass


@dataclass(frozen=True)
class RevealCancelled:
    pass


# ─── Effects ───────────────────────────────────────────────────────────

class Prompt(str, Enum):
    WELCOME = "welcome"
    FOREIGN_CONTACT = "foreign_contact"
    PHONE_SAVED = "phone_saved"
    JOIN_CHANNELS = "join_channels"
    NOT_SUBSCRIBED = "not_subscribed"
    MEMBERSHIP_UNVERIFIED = "membership_unverified"
    CHANNELS_VERIFIED = "channels_verified"
    ASK_FIRST_NAME = "ask_first_name"
    ASK_LAST_NAME = "ask_last_name"
    CONFIRM_NAME = "confirm_name"
    INVALID_NAME = "invalid_name"
    NAME_REENTRY = "name_reentry"
    ONBOARDED = "onboarded"
    MAIN_MENU = "main_menu"
    CANCELLED = "cancelled"
    NOT_ONBOARDED = "not_onboarded"
    WRONG_STATE = "wrong_state"
    CONFIRM_PHONE = "confirm_phone"
    ASK_SECONDARY_PHONE = "ask_secondary_phone"
    INVALID_PHONE = "invalid_phone"
    SERVICE_REQUESTED = "service_requested"
    REVEAL_ASK_FIRST_NAME = "reveal_ask_first_name"
    REVEAL_ASK_LAST_NAME = "reveal_ask_last_name"
    REVEAL_CONFIRM = "reveal_confirm"
    REVEAL_DENIED = "reveal_denied"
    REVEAL_GRANTED = "reveal_granted"
    REVEAL_CANCELLED = "reveal_cancelled"


@dataclass(frozen=True)
class Effect:
    prompt: Prompt
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Transition:
    onboarding_state: OnboardingState
    action_state: ActionState
    effects: tuple[Effect, ...] = ()
    handled: bool = True
    changed: bool = False

    @property
    def prompts(self) -> list[Prompt]:
        return [e.prompt for e in self.effects]


# ─── Machine ───────────────────────────────────────────────────────────

class ConversationStateMachine:
    def __init__(self, checker=None, store=None):
        self.checker = checker
        self.store = store
        self._handlers = {
            ContactShared: self._on_contact,
            MembershipCheckRequested: self._on_membership_check,
            TextEntered: self._on_text,
            NameConfirmed: self._on_name_confirmed,
            NameReentryRequested: self._on_name_reentry,
            CancelRequested: self._on_cancel,
            ServiceSelected: self._on_service_selected,
            PhoneConfirmed: self._on_phone_confirmed,
            DifferentPhoneRequested: self._on_different_phone,
            RevealRequested: self._on_reveal_requested,
            RevealConfirmed: self._on_reveal_confirmed,
            RevealReentryRequested: self._on_reveal_reentry,
            RevealCancelled: self._on_reveal_cancelled,
        }

    async def dispatch(self, user: UserRecord, event) -> Transition:
        """Resolve collaborator lookups the event needs, then advance."""
        if isinstance(event, MembershipCheckRequested) and event.result is None:
            if user.primary_phone and user.onboarding_state == OnboardingState.PHONE_SHARED:
                event = MembershipCheckRequested(await self.checker.check(user.id))
        elif isinstance(event, RevealConfirmed) and event.allowed is None:
            if user.action_state == ActionState.AWAITING_WHATSAPP_CONFIRMATION:
                full_name = f"{user.whatsapp_first_name} {user.whatsapp_last_name}"
                event = RevealConfirmed(self.store.find_allowlist_entry(full_name))
        return self.advance(user, event)

    def advance(self, user: UserRecord, event) -> Transition:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event: {event!r}")
        return handler(user, event)

    def current_step(self, user: UserRecord) -> Effect:
        """Prompt that re-renders wherever the user currently is in onboarding."""
        state = user.onboarding_state
        if state == OnboardingState.STARTED:
            return Effect(Prompt.WELCOME)
        if state == OnboardingState.PHONE_SHARED:
            return Effect(Prompt.JOIN_CHANNELS)
        if state in (OnboardingState.CHANNELS_JOINED, OnboardingState.AWAITING_FIRST_NAME):
            return Effect(Prompt.ASK_FIRST_NAME)
        if state == OnboardingState.AWAITING_LAST_NAME:
            return Effect(Prompt.ASK_LAST_NAME, {"first_name": user.passport_first_name})
        if state == OnboardingState.AWAITING_NAME_CONFIRMATION:
            return Effect(Prompt.CONFIRM_NAME, self._passport_names(user))
        return Effect(Prompt.MAIN_MENU)

    # Helpers ---------------------------------------------------------------
    @staticmethod
    def _passport_names(user):
        return {"first_name": user.passport_first_name, "last_name": user.passport_last_name}

    @staticmethod
    def _set_onboarding(user, state):
        user.onboarding_state = state
        user.is_onboarded = state == OnboardingState.COMPLETED

    @staticmethod
    def _reset_action(user, state=ActionState.NONE):
        user.action_state = state
        user.whatsapp_first_name = None
        user.whatsapp_last_name = None

    def _result(self, user, *effects, handled=True, changed=False):
        return Transition(
            onboarding_state=user.onboarding_state,
            action_state=user.action_state,
            effects=tuple(effects),
            handled=handled,
            changed=changed,
        )

    def _declined(self, user):
        return self._result(user, handled=False)

    def _wrong_state(self, user, expected):
        logger.info(f"User {user.id} sent an event for {expected.value} while in {user.action_state.value}")
        return self._result(user, Effect(Prompt.WRONG_STATE))

    def _require_onboarded(self, user):
        if user.is_onboarded:
            return None
        return self._result(user, Effect(Prompt.NOT_ONBOARDED), self.current_step(user))

    # Onboarding ------------------------------------------------------------
    def _on_contact(self, user, event):
        if event.owner_id != user.id:
            return self._result(user, Effect(Prompt.FOREIGN_CONTACT))

        phone = normalize_phone(event.phone)
        if phone is None:
            return self._result(user, Effect(Prompt.INVALID_PHONE), self.current_step(user))

        user.primary_phone = phone
        if user.onboarding_state == OnboardingState.STARTED:
            self._set_onboarding(user, OnboardingState.PHONE_SHARED)
            return self._result(user, Effect(Prompt.PHONE_SAVED), Effect(Prompt.JOIN_CHANNELS), changed=True)
        return self._result(user, Effect(Prompt.PHONE_SAVED), self.current_step(user), changed=True)

    def _on_membership_check(self, user, event):
        if not user.primary_phone:
            return self._result(user, Effect(Prompt.WELCOME))
        if user.onboarding_state != OnboardingState.PHONE_SHARED:
            return self._result(user, self.current_step(user))

        result = event.result
        if result is None:
            raise ValueError("membership result must be resolved before advance()")
        if result.could_not_verify:
            return self._result(user, Effect(Prompt.MEMBERSHIP_UNVERIFIED))
        if not result.is_subscribed:
            return self._result(user, Effect(Prompt.NOT_SUBSCRIBED, {"missing": list(result.missing)}))

        # CHANNELS_JOINED is a pass-through on the way to the first name
        self._set_onboarding(user, OnboardingState.CHANNELS_JOINED)
        self._set_onboarding(user, OnboardingState.AWAITING_FIRST_NAME)
        return self._result(user, Effect(Prompt.CHANNELS_VERIFIED), Effect(Prompt.ASK_FIRST_NAME), changed=True)

    def _on_text(self, user, event):
        state = user.onboarding_state
        if not user.is_onboarded:
            if state == OnboardingState.AWAITING_FIRST_NAME:
                return self._on_passport_name(user, event.text, last=False)
            if state == OnboardingState.AWAITING_LAST_NAME:
                return self._on_passport_name(user, event.text, last=True)
            return self._declined(user)

        action = user.action_state
        if action == ActionState.AWAITING_SECONDARY_PHONE:
            return self._on_secondary_phone(user, event.text)
        if action == ActionState.AWAITING_WHATSAPP_FIRST_NAME:
            return self._on_reveal_name(user, event.text, last=False)
        if action == ActionState.AWAITING_WHATSAPP_LAST_NAME:
            return self._on_reveal_name(user, event.text, last=True)
        return self._declined(user)

    def _on_passport_name(self, user, text, last):
        check = validate_name(text)
        if not check.ok:
            return self._result(user, Effect(Prompt.INVALID_NAME, {"error": check.error}))

        if not last:
            user.passport_first_name = check.value
            self._set_onboarding(user, OnboardingState.AWAITING_LAST_NAME)
            return self._result(user, Effect(Prompt.ASK_LAST_NAME, {"first_name": check.value}), changed=True)

        user.passport_last_name = check.value
        self._set_onboarding(user, OnboardingState.AWAITING_NAME_CONFIRMATION)
        return self._result(user, Effect(Prompt.CONFIRM_NAME, self._passport_names(user)), changed=True)

    def _on_name_confirmed(self, user, event):
        if user.onboarding_state != OnboardingState.AWAITING_NAME_CONFIRMATION:
            return self._result(user, self.current_step(user))

        if not user.original_passport_first_name:
            user.original_passport_first_name = user.passport_first_name
        if not user.original_passport_last_name:
            user.original_passport_last_name = user.passport_last_name

        self._set_onboarding(user, OnboardingState.COMPLETED)
        user.onboarded_at = utcnow()
        return self._result(user, Effect(Prompt.ONBOARDED), changed=True)

    def _on_name_reentry(self, user, event):
        if user.onboarding_state not in (
            OnboardingState.AWAITING_LAST_NAME,
            OnboardingState.AWAITING_NAME_CONFIRMATION,
            OnboardingState.COMPLETED,
        ):
            return self._result(user, self.current_step(user))

        user.passport_first_name = None
        user.passport_last_name = None
        self._reset_action(user)
        user.current_service = None
        self._set_onboarding(user, OnboardingState.AWAITING_FIRST_NAME)
        return self._result(user, Effect(Prompt.NAME_REENTRY), Effect(Prompt.ASK_FIRST_NAME), changed=True)

    def _on_cancel(self, user, event):
        self._reset_action(user)
        user.current_service = None
        if not user.is_onboarded:
            return self._result(user, self.current_step(user), changed=True)
        return self._result(user, Effect(Prompt.CANCELLED), changed=True)

    # Service request -------------------------------------------------------
    def _on_service_selected(self, user, event):
        refused = self._require_onboarded(user)
        if refused:
            return refused

        self._reset_action(user, ActionState.AWAITING_PHONE_CONFIRMATION)
        user.current_service = event.service
        return self._result(
            user,
            Effect(Prompt.CONFIRM_PHONE, {"service": event.service, "phone": user.primary_phone}),
            changed=True,
        )

    def _on_phone_confirmed(self, user, event):
        if user.action_state != ActionState.AWAITING_PHONE_CONFIRMATION:
            return self._wrong_state(user, ActionState.AWAITING_PHONE_CONFIRMATION)

        user.action_state = ActionState.NONE
        return self._result(
            user,
            Effect(Prompt.SERVICE_REQUESTED, {"service": user.current_service, "phone": user.primary_phone}),
            changed=True,
        )

    def _on_different_phone(self, user, event):
        if user.action_state != ActionState.AWAITING_PHONE_CONFIRMATION:
            return self._wrong_state(user, ActionState.AWAITING_PHONE_CONFIRMATION)

        user.action_state = ActionState.AWAITING_SECONDARY_PHONE
        return self._result(user, Effect(Prompt.ASK_SECONDARY_PHONE), changed=True)

    def _on_secondary_phone(self, user, text):
        phone = normalize_phone(text)
        if phone is None:
            return self._result(user, Effect(Prompt.INVALID_PHONE))

        user.secondary_phone = phone
        user.action_state = ActionState.NONE
        return self._result(
            user,
            Effect(Prompt.SERVICE_REQUESTED, {"service": user.current_service, "phone": phone}),
            changed=True,
        )

    # Gated reveal ----------------------------------------------------------
    def _on_reveal_requested(self, user, event):
        refused = self._require_onboarded(user)
        if refused:
            return refused

        self._reset_action(user, ActionState.AWAITING_WHATSAPP_FIRST_NAME)
        user.current_service = None
        return self._result(user, Effect(Prompt.REVEAL_ASK_FIRST_NAME), changed=True)

    def _on_reveal_reentry(self, user, event):
        if user.action_state not in REVEAL_STATES and user.action_state != ActionState.NONE:
            return self._wrong_state(user, ActionState.AWAITING_WHATSAPP_CONFIRMATION)
        return self._on_reveal_requested(user, event)

    def _on_reveal_name(self, user, text, last):
        check = validate_name(text)
        if not check.ok:
            return self._result(user, Effect(Prompt.INVALID_NAME, {"error": check.error}))

        if not last:
            user.whatsapp_first_name = check.value
            user.action_state = ActionState.AWAITING_WHATSAPP_LAST_NAME
            return self._result(user, Effect(Prompt.REVEAL_ASK_LAST_NAME, {"first_name": check.value}), changed=True)

        user.whatsapp_last_name = check.value
        user.action_state = ActionState.AWAITING_WHATSAPP_CONFIRMATION
        names = {"first_name": user.whatsapp_first_name, "last_name": user.whatsapp_last_name}
        return self._result(user, Effect(Prompt.REVEAL_CONFIRM, names), changed=True)

    def _on_reveal_confirmed(self, user, event):
        if user.action_state != ActionState.AWAITING_WHATSAPP_CONFIRMATION:
            return self._wrong_state(user, ActionState.AWAITING_WHATSAPP_CONFIRMATION)
        if event.allowed is None:
            raise ValueError("allow-list lookup must be resolved before advance()")

        names = {"first_name": user.whatsapp_first_name, "last_name": user.whatsapp_last_name}
        user.action_state = ActionState.NONE
        prompt = Prompt.REVEAL_GRANTED if event.allowed else Prompt.REVEAL_DENIED
        return self._result(user, Effect(prompt, names), changed=True)

    def _on_reveal_cancelled(self, user, event):
        if user.action_state not in REVEAL_STATES and user.action_state != ActionState.NONE:
            return self._wrong_state(user, ActionState.AWAITING_WHATSAPP_CONFIRMATION)

        self._reset_action(user)
        return self._result(user, Effect(Prompt.REVEAL_CANCELLED), changed=True)
