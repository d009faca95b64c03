import pytest

from config import Settings
from errors import TransportError
from router import Router, Sender
from state import AdminSessionTracker
from store import JsonStore
from transport import MemberStatus, Transport

ADMIN_ID = 900


class FakeTransport(Transport):
    """Records every call; failures are scripted per test."""

    def __init__(self):
        self.sent = []       # (chat_id, text, keyboard)
        self.edits = []      # (chat_id, message_id, text)
        self.deletes = []    # (chat_id, message_id)
        self.copies = []     # (to_id, from_chat, message_id)
        self.membership = {}            # (group_id, user_id) -> MemberStatus
        self.membership_errors = set()  # group ids whose lookup fails
        self.copy_errors = {}           # recipient -> exception
        self.edit_errors = []           # consumed one per edit; None means success
        self.delete_error = None
        self.files = []       # (chat_id, data, filename, caption)
        self.file_error = None
        self._next_id = 100

    async def send_message(self, chat_id, text, keyboard=None):
        self._next_id += 1
        self.sent.append((chat_id, text, keyboard))
        return self._next_id

    async def edit_message(self, chat_id, message_id, text, keyboard=None):
        if self.edit_errors:
            error = self.edit_errors.pop(0)
            if error is not None:
                raise error
        self.edits.append((chat_id, message_id, text))

    async def delete_message(self, chat_id, message_id):
        if self.delete_error is not None:
            raise self.delete_error
        self.deletes.append((chat_id, message_id))

    async def copy_message(self, to_id, from_chat, message_id):
        if to_id in self.copy_errors:
            raise self.copy_errors[to_id]
        self.copies.append((to_id, from_chat, message_id))

    async def send_file(self, chat_id, data, filename, caption=None):
        if self.file_error is not None:
            raise self.file_error
        self.files.append((chat_id, data, filename, caption))

    async def get_membership(self, group_id, user_id):
        if group_id in self.membership_errors:
            raise TransportError("CHAT_ADMIN_REQUIRED")
        return self.membership.get((group_id, user_id), MemberStatus.LEFT)

    def join_all(self, user_id):
        self.membership[("@c1", user_id)] = MemberStatus.MEMBER
        self.membership[("@c2", user_id)] = MemberStatus.MEMBER

    def texts(self, chat_id=None):
        return [text for chat, text, _ in self.sent if chat_id is None or chat == chat_id]


async def no_sleep(_seconds):
    return None


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ADMIN_IDS=str(ADMIN_ID),
        CHANNEL_1_ID="@c1",
        CHANNEL_1_LINK="https://t.me/c1",
        CHANNEL_2_ID="@c2",
        CHANNEL_2_LINK="https://t.me/c2",
        WHATSAPP_GROUP_LINK="https://chat.whatsapp.com/GROUP",
        WHATSAPP_LINK_DISPLAY_SECONDS=30,
        REVEAL_TICK_SECONDS=10,
        BROADCAST_DELAY_MS=0,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


@pytest.fixture
def sessions():
    return AdminSessionTracker()


@pytest.fixture
def router(transport, store, settings, sessions):
    return Router(transport, store, settings, sessions=sessions, sleep_fn=no_sleep)


@pytest.fixture
def sender():
    return Sender(id=1, username="ali", first_name="Ali", last_name="Valiyev")
