# router.py
# Routes inbound messages and button presses to the right flow.
#
# Text routing precedence, first match wins:
#   1. pending admin sub-flow (bulk names, broadcast content, /cancel)
#   2. slash commands and admin panel buttons
#   3. onboarding text steps
#   4. action-flow text steps (secondary phone, reveal names)
#   5. main menu buttons
#   6. "not understood" fallback

import asyncio
import logging
from dataclasses import dataclass

import messages as msgs
from broadcast import BroadcastEngine, SourceMessage
from errors import MessageNotModified, StoreError, TransportError
from machine import (
    CancelRequested,
    ContactShared,
    ConversationStateMachine,
    DifferentPhoneRequested,
    MembershipCheckRequested,
    NameConfirmed,
    NameReentryRequested,
    PhoneConfirmed,
    Prompt,
    RevealCancelled,
    RevealConfirmed,
    RevealReentryRequested,
    RevealRequested,
    ServiceSelected,
    TextEntered,
)
from membership import MembershipChecker
from models import utcnow
from state import AdminSession, admin_sessions
from timer import EphemeralRevealTimer
from validation import parse_name_list

logger = logging.getLogger(__name__)

MESSAGE_CHUNK = 3500  # stay clear of Telegram's 4096-char limit

ADMIN_LABELS = frozenset({msgs.EXPORT_USERS, msgs.ADD_NAMES, msgs.VIEW_NAMES, msgs.BROADCAST, msgs.BACK})

CALLBACK_EVENTS = {
    msgs.CHECK_SUBSCRIPTION: MembershipCheckRequested,
    msgs.CONFIRM_NAME: NameConfirmed,
    msgs.REENTER_NAME: NameReentryRequested,
    msgs.CONFIRM_PHONE: PhoneConfirmed,
    msgs.DIFFERENT_PHONE: DifferentPhoneRequested,
    msgs.WHATSAPP_CONFIRM: RevealConfirmed,
    msgs.WHATSAPP_REENTER: RevealReentryRequested,
    msgs.WHATSAPP_CANCEL: RevealCancelled,
}

TOASTS = {
    Prompt.WELCOME: "❌ Share your phone number first.",
    Prompt.NOT_SUBSCRIBED: "❌ Please join all channels.",
    Prompt.MEMBERSHIP_UNVERIFIED: "⚠️ Could not verify, try again.",
    Prompt.CHANNELS_VERIFIED: "✅ Subscription confirmed!",
    Prompt.ONBOARDED: "✅ Details saved!",
    Prompt.NAME_REENTRY: "🔄 Enter your name again.",
    Prompt.SERVICE_REQUESTED: "✅ Number confirmed!",
    Prompt.ASK_SECONDARY_PHONE: "📱 Enter your phone number",
    Prompt.REVEAL_GRANTED: "✅ Access granted",
    Prompt.REVEAL_DENIED: "❌ Access denied",
    Prompt.REVEAL_ASK_FIRST_NAME: "🔄 Re-enter your details",
    Prompt.REVEAL_CANCELLED: "❌ Cancelled",
    Prompt.WRONG_STATE: "❌ Invalid action.",
}


@dataclass(frozen=True)
class Sender:
    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class IncomingMessage:
    sender: Sender
    chat_id: int
    message_id: int
    text: str | None = None
    contact_user_id: int | None = None
    contact_phone: str | None = None
    has_media: bool = False


@dataclass(frozen=True)
class ButtonPress:
    sender: Sender
    chat_id: int
    message_id: int
    data: str


def chunk_lines(lines, limit=MESSAGE_CHUNK):
    chunks, current = [], ""
    for line in lines:
        candidate = f"{current}\n{line}" if current else line
        if current and len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class Router:
    def __init__(self, transport, store, settings, *, sessions=None, checker=None, sleep_fn=None):
        self.transport = transport
        self.store = store
        self.settings = settings
        self.sessions = sessions if sessions is not None else admin_sessions
        checker = checker or MembershipChecker(transport, settings.required_channels)
        self.machine = ConversationStateMachine(checker, store)
        self._sleep = sleep_fn
        self._shutdown = asyncio.Event()
        self._tasks = set()

    # ─── lifecycle ─────────────────────────────────────────────────────

    def shutdown(self):
        """Ask running reveal timers and broadcasts to stop at their next sleep."""
        self._shutdown.set()

    async def wait_idle(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro, what):
        async def runner():
            try:
                return await coro
            except Exception:
                logger.exception(f"❌ Background {what} failed")

        task = asyncio.create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ─── entry points ──────────────────────────────────────────────────

    async def on_message(self, msg: IncomingMessage):
        try:
            await self._route_message(msg)
        except Exception:
            logger.exception(f"❌ Error handling message from {msg.sender.id}")
            await self._safe_send(msg.chat_id, msgs.GENERIC_ERROR)

    async def on_callback(self, press: ButtonPress):
        """Handle an inline button; returns the toast text to answer with."""
        event_cls = CALLBACK_EVENTS.get(press.data)
        if event_cls is None:
            return "❓ Unknown action"
        try:
            user = self._load_user(press.sender)
            transition = await self._apply(user, press.chat_id, event_cls(), edit_message_id=press.message_id)
        except Exception:
            logger.exception(f"❌ Error handling button {press.data} from {press.sender.id}")
            await self._safe_send(press.chat_id, msgs.GENERIC_ERROR)
            return None
        for prompt in transition.prompts:
            if prompt in TOASTS:
                return TOASTS[prompt]
        return None

    # ─── routing ───────────────────────────────────────────────────────

    def _load_user(self, sender):
        return self.store.get_or_create_user(sender.id, sender.username, sender.first_name, sender.last_name)

    async def _route_message(self, msg):
        user = self._load_user(msg.sender)
        chat = msg.chat_id
        is_admin = self.settings.is_admin(user.id)
        text = (msg.text or "").strip()

        if msg.contact_phone is not None:
            await self._apply(user, chat, ContactShared(msg.contact_user_id, msg.contact_phone))
            return

        # 1. pending admin sub-flow
        if is_admin and self.sessions.is_pending(user.id):
            await self._admin_session_input(user, msg, text)
            return

        if msg.has_media:
            if user.is_onboarded and not is_admin:
                await self.transport.send_message(chat, msgs.TEXT_ONLY, msgs.MAIN_MENU_KEYBOARD)
            return
        if not text:
            return

        # 2. commands and admin panel
        if text.startswith("/"):
            command = text.split()[0].split("@")[0].lower()
            if await self._command(user, chat, command, is_admin):
                return
        if is_admin and text in ADMIN_LABELS:
            await self._admin_button(user, chat, text)
            return

        # 3. onboarding text steps
        if not user.is_onboarded:
            transition = await self._apply(user, chat, TextEntered(text))
            if not transition.handled:
                await self._render(chat, [self.machine.current_step(user)])
            return

        # 4. action-flow text steps
        transition = await self._apply(user, chat, TextEntered(text))
        if transition.handled:
            return

        # 5. main menu
        if text == msgs.WHATSAPP_LINK:
            await self._apply(user, chat, RevealRequested())
            return
        if text in msgs.SERVICE_BY_LABEL:
            await self._apply(user, chat, ServiceSelected(msgs.SERVICE_BY_LABEL[text]))
            return

        # 6. fallback
        await self.transport.send_message(chat, msgs.NOT_UNDERSTOOD, msgs.MAIN_MENU_KEYBOARD)

    async def _command(self, user, chat, command, is_admin):
        if command == "/start":
            hint = "\n\n🔐 You are an admin. Send /admin to open the admin panel." if is_admin else ""
            if user.is_onboarded:
                await self.transport.send_message(
                    chat, "👋 Welcome back! Choose from the menu below:" + hint, msgs.MAIN_MENU_KEYBOARD
                )
            else:
                if is_admin:
                    await self.transport.send_message(chat, hint.strip())
                await self._render(chat, [self.machine.current_step(user)])
            return True
        if command == "/menu":
            await self._render(chat, [self.machine.current_step(user)])
            return True
        if command == "/cancel":
            await self._apply(user, chat, CancelRequested())
            return True
        if command == "/admin":
            if not is_admin:
                logger.warning(f"⚠️ Unauthorized admin access attempt by user {user.id}")
                await self.transport.send_message(chat, msgs.ADMIN_ONLY)
            else:
                await self.transport.send_message(chat, msgs.admin_panel(self.store.stats()), msgs.ADMIN_PANEL_KEYBOARD)
            return True
        return False

    # ─── state machine plumbing ────────────────────────────────────────

    async def _apply(self, user, chat, event, edit_message_id=None):
        transition = await self.machine.dispatch(user, event)
        if transition.changed:
            self.store.save_user(user)
        await self._render(chat, transition.effects, edit_message_id, user=user)
        return transition

    async def _render(self, chat, effects, edit_message_id=None, user=None):
        for i, effect in enumerate(effects):
            text, keyboard = msgs.render(effect, self.settings)
            in_place = i == 0 and edit_message_id is not None and (keyboard is None or keyboard.inline)
            if in_place:
                try:
                    await self.transport.edit_message(chat, edit_message_id, text, keyboard)
                except MessageNotModified:
                    pass
            else:
                await self.transport.send_message(chat, text, keyboard)

            if effect.prompt == Prompt.REVEAL_GRANTED:
                self._start_reveal(chat)
            elif effect.prompt == Prompt.SERVICE_REQUESTED and user is not None:
                await self._notify_admins(user, effect.data.get("service"), effect.data.get("phone"))

    def _start_reveal(self, chat):
        link = self.settings.WHATSAPP_GROUP_LINK
        timer = EphemeralRevealTimer(
            self.transport,
            duration=self.settings.WHATSAPP_LINK_DISPLAY_SECONDS,
            tick=self.settings.REVEAL_TICK_SECONDS,
            sleep_fn=self._sleep,
            cancel=self._shutdown,
        )
        return self._spawn(
            timer.reveal(
                chat,
                lambda remaining: (msgs.reveal_countdown(remaining), msgs.reveal_link_keyboard(link)),
                msgs.LINK_EXPIRED_EDIT,
                msgs.LINK_EXPIRED,
            ),
            "reveal timer",
        )

    async def _notify_admins(self, user, service, phone):
        text = msgs.admin_service_notification(user, service, phone, utcnow())
        for admin_id in sorted(self.settings.admin_ids):
            try:
                await self.transport.send_message(admin_id, text)
            except TransportError as e:
                logger.error(f"Failed to notify admin {admin_id}: {e}")

    async def _safe_send(self, chat, text, keyboard=None):
        try:
            await self.transport.send_message(chat, text, keyboard)
        except TransportError as e:
            logger.error(f"Failed to send error message to {chat}: {e}")

    # ─── admin panel ───────────────────────────────────────────────────

    async def _admin_button(self, user, chat, label):
        if label == msgs.EXPORT_USERS:
            await self._export_users(chat)
        elif label == msgs.ADD_NAMES:
            self.sessions.set(user.id, AdminSession.AWAITING_NAMES)
            await self.transport.send_message(chat, msgs.ADD_NAMES_PROMPT, msgs.REMOVE_KEYBOARD)
        elif label == msgs.VIEW_NAMES:
            await self._send_allowlist(chat)
        elif label == msgs.BROADCAST:
            self.sessions.set(user.id, AdminSession.AWAITING_BROADCAST)
            onboarded = self.store.stats().onboarded
            await self.transport.send_message(chat, msgs.broadcast_prompt(onboarded), msgs.REMOVE_KEYBOARD)
        elif label == msgs.BACK:
            self.sessions.reset(user.id)
            await self.transport.send_message(chat, "📋 Returning to main menu...", msgs.MAIN_MENU_KEYBOARD)

    async def _export_users(self, chat):
        await self.transport.send_message(chat, msgs.EXPORT_STARTED)
        now = utcnow()
        try:
            data = self.store.export_users()
            onboarded = self.store.stats().onboarded
            await self.transport.send_file(
                chat, data, msgs.export_filename(now), caption=msgs.export_caption(onboarded, now)
            )
        except (StoreError, TransportError) as e:
            logger.error(f"❌ Error exporting users: {e}")
            await self.transport.send_message(chat, msgs.EXPORT_FAILED, msgs.ADMIN_PANEL_KEYBOARD)
            return
        logger.info(f"📊 Exported {onboarded} users to admin chat {chat}")

    async def _send_allowlist(self, chat):
        entries = self.store.list_allowlist()
        if not entries:
            await self.transport.send_message(
                chat,
                f"📋 **Allowed Names List**\n\nNo names have been added yet.\n\nUse \"{msgs.ADD_NAMES}\" to add names.",
            )
            return

        lines = [f"{i}. {entry.full_name}" for i, entry in enumerate(entries, 1)]
        chunks = chunk_lines(lines)
        header = f"📋 **Allowed Names List** ({len(entries)} total)"
        if len(chunks) == 1:
            await self.transport.send_message(chat, f"{header}\n\n{chunks[0]}")
            return
        await self.transport.send_message(chat, f"{header}\n\nSending in multiple messages...")
        for chunk in chunks:
            await self.transport.send_message(chat, chunk)

    async def _admin_session_input(self, user, msg, text):
        chat = msg.chat_id
        session = self.sessions.get(user.id)

        if text == "/cancel":
            self.sessions.reset(user.id)
            await self.transport.send_message(chat, "❌ Operation cancelled.", msgs.ADMIN_PANEL_KEYBOARD)
            return

        if session == AdminSession.AWAITING_NAMES:
            if not text:
                await self.transport.send_message(chat, "❌ Please send text containing the names.")
                return
            names = parse_name_list(text)
            if not names:
                await self.transport.send_message(chat, msgs.NO_NAMES_FOUND)
                return
            try:
                result = self.store.bulk_insert_allowlist(names, user.id)
            except StoreError as e:
                logger.error(f"Error adding names: {e}")
                await self.transport.send_message(chat, "❌ Failed to add names. Please try again.", msgs.ADMIN_PANEL_KEYBOARD)
                return
            self.sessions.reset(user.id)
            await self.transport.send_message(chat, msgs.names_added(result, len(names)), msgs.ADMIN_PANEL_KEYBOARD)
            return

        if session == AdminSession.AWAITING_BROADCAST:
            self.sessions.reset(user.id)
            await self.transport.send_message(chat, msgs.BROADCAST_STARTED, msgs.ADMIN_PANEL_KEYBOARD)
            summary = await self.run_broadcast(SourceMessage(chat, msg.message_id), chat)
            await self.transport.send_message(chat, msgs.broadcast_done(summary))

    async def run_broadcast(self, source, report_chat):
        engine = BroadcastEngine(
            self.transport,
            delay=self.settings.broadcast_delay,
            progress_every=self.settings.BROADCAST_PROGRESS_EVERY,
            sleep_fn=self._sleep,
            cancel=self._shutdown,
        )

        async def progress(summary):
            await self.transport.send_message(report_chat, msgs.broadcast_progress(summary))

        return await engine.broadcast(source, self.store.list_onboarded_user_ids(), progress)
