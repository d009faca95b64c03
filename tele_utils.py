# tele_utils.py
# Telethon-backed Transport with FloodWait handling and error translation

import asyncio
import logging

from telethon import Button, TelegramClient
from telethon.errors import (
    FloodWaitError,
    ForbiddenError,
    InputUserDeactivatedError,
    MessageIdInvalidError,
    MessageNotModifiedError,
    RPCError,
    UserIsBlockedError,
    UserNotParticipantError,
)
from telethon.tl.types import DocumentAttributeFilename

from errors import MessageGone, MessageNotModified, RecipientBlocked, TransportError
from transport import ButtonKind, Keyboard, MemberStatus, Transport

logger = logging.getLogger(__name__)


def to_buttons(keyboard):
    """Render a transport-neutral Keyboard as Telethon buttons."""
    if keyboard is None:
        return None
    if keyboard.remove:
        return Button.clear()

    rows = []
    for row in keyboard.rows:
        out = []
        for btn in row:
            if btn.kind == ButtonKind.CALLBACK:
                out.append(Button.inline(btn.label, data=btn.value.encode()))
            elif btn.kind == ButtonKind.URL:
                out.append(Button.url(btn.label, btn.value))
            elif btn.kind == ButtonKind.REQUEST_PHONE:
                out.append(Button.request_phone(btn.label, resize=True, single_use=True))
            else:
                out.append(Button.text(btn.label, resize=True))
        rows.append(out)
    return rows


def _peer(group_id):
    """Channel ids arrive from config as text: '@name' or '-100…'."""
    text = str(group_id).strip()
    return int(text) if text.lstrip("-").isdigit() else text


class TelethonTransport(Transport):
    def __init__(self, client: TelegramClient):
        self.client = client

    async def _call(self, factory):
        """Run one API call, sleeping out a single FloodWait before retrying."""
        try:
            try:
                return await factory()
            except FloodWaitError as e:
                logger.warning(f"⚠️ FloodWait {e.seconds}s")
                await asyncio.sleep(e.seconds + 1)
                return await factory()
        except (UserIsBlockedError, InputUserDeactivatedError, ForbiddenError) as e:
            raise RecipientBlocked(str(e)) from e
        except MessageNotModifiedError as e:
            raise MessageNotModified(str(e)) from e
        except MessageIdInvalidError as e:
            raise MessageGone(str(e)) from e
        except RPCError as e:
            raise TransportError(str(e)) from e
        except (ConnectionError, asyncio.TimeoutError) as e:
            raise TransportError(str(e)) from e

    async def send_message(self, chat_id, text, keyboard=None):
        msg = await self._call(lambda: self.client.send_message(
            chat_id, text, buttons=to_buttons(keyboard), parse_mode="md", link_preview=False
        ))
        return msg.id

    async def edit_message(self, chat_id, message_id, text, keyboard=None):
        await self._call(lambda: self.client.edit_message(
            chat_id, message_id, text, buttons=to_buttons(keyboard), parse_mode="md", link_preview=False
        ))

    async def delete_message(self, chat_id, message_id):
        affected = await self._call(lambda: self.client.delete_messages(chat_id, [message_id]))
        # Telethon reports a missing message as zero affected rows, not an error
        if not affected or not any(getattr(a, "pts_count", 0) for a in affected):
            raise MessageGone(f"message {message_id} in {chat_id} was not deleted")

    async def copy_message(self, to_id, from_chat, message_id):
        await self._call(lambda: self.client.forward_messages(
            to_id, message_id, from_chat, drop_author=True
        ))

    async def send_file(self, chat_id, data, filename, caption=None):
        await self._call(lambda: self.client.send_file(
            chat_id,
            data,
            caption=caption,
            force_document=True,
            attributes=[DocumentAttributeFilename(filename)],
        ))

    async def get_membership(self, group_id, user_id):
        try:
            perms = await self._call(lambda: self.client.get_permissions(_peer(group_id), user_id))
        except TransportError as e:
            if isinstance(e.__cause__, UserNotParticipantError):
                return MemberStatus.LEFT
            raise

        if perms.is_creator:
            return MemberStatus.CREATOR
        if perms.is_admin:
            return MemberStatus.ADMINISTRATOR
        if perms.is_banned:
            return MemberStatus.KICKED
        if perms.has_left:
            return MemberStatus.LEFT
        return MemberStatus.MEMBER
