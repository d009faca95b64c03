# handlers.py
# Telethon event registration; every update is handed to the Router

import logging

from telethon import events
from telethon.errors import RPCError

from router import ButtonPress, IncomingMessage, Sender

logger = logging.getLogger(__name__)


def _sender(entity, sender_id):
    return Sender(
        id=sender_id,
        username=getattr(entity, "username", None),
        first_name=getattr(entity, "first_name", None),
        last_name=getattr(entity, "last_name", None),
    )


def register_handlers(bot, router):

    # ─── Messages, contacts and broadcast media ───────────────────────

    @bot.on(events.NewMessage(incoming=True, func=lambda e: e.is_private))
    async def on_message(event):
        msg = event.message
        contact = msg.contact
        sender = await event.get_sender()
        await router.on_message(IncomingMessage(
            sender=_sender(sender, event.sender_id),
            chat_id=event.chat_id,
            message_id=msg.id,
            text=msg.raw_text or None,
            contact_user_id=contact.user_id if contact else None,
            contact_phone=contact.phone_number if contact else None,
            # link previews also arrive as media; only real attachments count
            has_media=bool(msg.photo or msg.document),
        ))

    # ─── Inline buttons ───────────────────────────────────────────────

    @bot.on(events.CallbackQuery())
    async def on_button(event):
        sender = await event.get_sender()
        toast = await router.on_callback(ButtonPress(
            sender=_sender(sender, event.sender_id),
            chat_id=event.chat_id,
            message_id=event.message_id,
            data=event.data.decode("utf-8", errors="ignore"),
        ))
        try:
            await event.answer(toast)
        except RPCError as e:
            logger.warning(f"⚠️ Could not answer button press from {event.sender_id}: {e}")
