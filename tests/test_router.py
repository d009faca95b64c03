import asyncio

import messages as msgs
from errors import StoreError, TransportError
from models import OnboardingState, UserRecord
from router import ButtonPress, IncomingMessage, Sender, chunk_lines
from state import AdminSession

ADMIN_ID = 900
ADMIN = Sender(id=ADMIN_ID, username="boss", first_name="Admin")


def text_msg(sender, text, message_id=10):
    return IncomingMessage(sender=sender, chat_id=sender.id, message_id=message_id, text=text)


def press(sender, data, message_id=55):
    return ButtonPress(sender=sender, chat_id=sender.id, message_id=message_id, data=data)


def save_onboarded(store, user_id=1):
    store.save_user(UserRecord(
        id=user_id,
        username="ali",
        first_name="Ali",
        primary_phone="+998901234567",
        passport_first_name="JOHN",
        passport_last_name="DOE",
        original_passport_first_name="JOHN",
        original_passport_last_name="DOE",
        onboarding_state=OnboardingState.COMPLETED,
        is_onboarded=True,
    ))


def test_onboarding_end_to_end(router, transport, store, sender):
    async def scenario():
        await router.on_message(IncomingMessage(
            sender=sender, chat_id=1, message_id=1, contact_user_id=1, contact_phone="+998 90 123 45 67",
        ))
        not_yet = await router.on_callback(press(sender, msgs.CHECK_SUBSCRIPTION))
        transport.join_all(1)
        joined = await router.on_callback(press(sender, msgs.CHECK_SUBSCRIPTION))
        await router.on_message(text_msg(sender, "john"))
        await router.on_message(text_msg(sender, "doe"))
        done = await router.on_callback(press(sender, msgs.CONFIRM_NAME, message_id=56))
        return not_yet, joined, done

    not_yet, joined, done = asyncio.run(scenario())

    assert (not_yet, joined, done) == ("❌ Please join all channels.", "✅ Subscription confirmed!", "✅ Details saved!")
    user = store.find_user(1)
    assert user.is_onboarded
    assert user.primary_phone == "+998901234567"
    assert (user.passport_first_name, user.passport_last_name) == ("JOHN", "DOE")
    assert transport.edits[1] == (1, 55, "✅ Great! Both channels are verified.")
    assert transport.sent[-1][2] == msgs.MAIN_MENU_KEYBOARD


def test_unrelated_text_during_onboarding_rerenders_step(router, transport, sender):
    asyncio.run(router.on_message(text_msg(sender, "hello")))

    assert transport.texts(1) == [msgs.WELCOME]


def test_menu_text_is_not_understood_when_unmatched(router, transport, store, sender):
    save_onboarded(store)

    asyncio.run(router.on_message(text_msg(sender, "hello")))

    assert transport.texts(1) == [msgs.NOT_UNDERSTOOD]


def test_media_gets_text_only_reply(router, transport, store, sender):
    save_onboarded(store)

    asyncio.run(router.on_message(IncomingMessage(sender=sender, chat_id=1, message_id=3, has_media=True)))

    assert transport.texts(1) == [msgs.TEXT_ONLY]


def test_reveal_flow_runs_timer(router, transport, store, sender):
    save_onboarded(store)
    store.bulk_insert_allowlist(["JANE SMITH"], added_by=ADMIN_ID)

    async def scenario():
        await router.on_message(text_msg(sender, msgs.WHATSAPP_LINK))
        await router.on_message(text_msg(sender, "jane"))
        await router.on_message(text_msg(sender, "smith"))
        toast = await router.on_callback(press(sender, msgs.WHATSAPP_CONFIRM))
        await router.wait_idle()
        return toast

    assert asyncio.run(scenario()) == "✅ Access granted"

    countdown = [text for _, _, text in transport.edits if "seconds**" in text]
    assert len(countdown) == 2
    assert "**20 seconds**" in countdown[0]
    assert len(transport.deletes) == 1
    assert transport.texts(1)[-1] == msgs.LINK_EXPIRED
    user = store.find_user(1)
    assert user.passport_first_name == "JOHN"
    assert user.whatsapp_first_name == "JANE"


def test_reveal_denied_for_unknown_name(router, transport, store, sender):
    save_onboarded(store)

    async def scenario():
        await router.on_message(text_msg(sender, msgs.WHATSAPP_LINK))
        await router.on_message(text_msg(sender, "jane"))
        await router.on_message(text_msg(sender, "smith"))
        return await router.on_callback(press(sender, msgs.WHATSAPP_CONFIRM))

    assert asyncio.run(scenario()) == "❌ Access denied"
    assert transport.deletes == []


def test_service_request_notifies_admins(router, transport, store, sender):
    save_onboarded(store)

    async def scenario():
        await router.on_message(text_msg(sender, msgs.STUDY))
        return await router.on_callback(press(sender, msgs.CONFIRM_PHONE))

    assert asyncio.run(scenario()) == "✅ Number confirmed!"
    admin_texts = transport.texts(ADMIN_ID)
    assert len(admin_texts) == 1
    assert "New Service Request" in admin_texts[0]
    assert "Study (Germany)" in admin_texts[0]
    assert "+998901234567" in admin_texts[0]


def test_stale_button_is_refused(router, transport, store, sender):
    save_onboarded(store)

    toast = asyncio.run(router.on_callback(press(sender, msgs.CONFIRM_PHONE)))

    assert toast == "❌ Invalid action."


def test_non_admin_cannot_open_panel(router, transport, sender):
    asyncio.run(router.on_message(text_msg(sender, "/admin")))

    assert transport.texts(1) == [msgs.ADMIN_ONLY]


def test_admin_adds_names(router, transport, store, sessions):
    async def scenario():
        await router.on_message(text_msg(ADMIN, "/admin"))
        await router.on_message(text_msg(ADMIN, msgs.ADD_NAMES))
        await router.on_message(text_msg(ADMIN, "john doe\n\nJane Smith\nJOHN   DOE"))

    asyncio.run(scenario())

    assert "Admin Panel" in transport.texts(ADMIN_ID)[0]
    assert "• Added: 2" in transport.texts(ADMIN_ID)[-1]
    assert "• Duplicates skipped: 1" in transport.texts(ADMIN_ID)[-1]
    assert [e.full_name for e in store.list_allowlist()] == ["JANE SMITH", "JOHN DOE"]
    assert sessions.get(ADMIN_ID) == AdminSession.NONE


def test_pending_broadcast_consumes_menu_labels(router, transport, store, sessions):
    save_onboarded(store, 1)
    save_onboarded(store, 2)

    async def scenario():
        await router.on_message(text_msg(ADMIN, msgs.BROADCAST))
        await router.on_message(text_msg(ADMIN, msgs.WHATSAPP_LINK, message_id=77))

    asyncio.run(scenario())

    assert sorted(transport.copies) == [(1, ADMIN_ID, 77), (2, ADMIN_ID, 77)]
    assert msgs.BROADCAST_STARTED in transport.texts(ADMIN_ID)
    assert "Broadcast Complete" in transport.texts(ADMIN_ID)[-1]
    assert sessions.get(ADMIN_ID) == AdminSession.NONE
    assert store.find_user(ADMIN_ID).action_state.value == "none"


def test_cancel_in_admin_session_only_ends_session(router, transport, sessions):
    async def scenario():
        await router.on_message(text_msg(ADMIN, msgs.ADD_NAMES))
        await router.on_message(text_msg(ADMIN, "/cancel"))

    asyncio.run(scenario())

    assert transport.texts(ADMIN_ID)[-1] == "❌ Operation cancelled."
    assert not sessions.is_pending(ADMIN_ID)


def test_store_failure_sends_generic_error(router, transport, store, sender, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "get_or_create_user", broken)

    asyncio.run(router.on_message(text_msg(sender, "hello")))

    assert transport.texts(1) == [msgs.GENERIC_ERROR]


def test_chunk_lines_respects_limit():
    lines = [f"{i}. NAME NUMBER {i}" for i in range(1, 400)]

    chunks = chunk_lines(lines, limit=500)

    assert all(len(c) <= 500 for c in chunks)
    assert "\n".join(chunks).splitlines() == lines


def test_admin_exports_onboarded_users(router, transport, store):
    save_onboarded(store, 1)

    asyncio.run(router.on_message(text_msg(ADMIN, msgs.EXPORT_USERS)))

    assert transport.texts(ADMIN_ID)[0] == msgs.EXPORT_STARTED
    [(chat, data, filename, caption)] = transport.files
    assert chat == ADMIN_ID
    assert data[:2] == b"PK"
    assert filename.startswith("users_export_") and filename.endswith(".xlsx")
    assert "Total onboarded users: 1" in caption


def test_failed_export_reports_to_admin(router, transport, store):
    transport.file_error = TransportError("FILE_PARTS_INVALID")

    asyncio.run(router.on_message(text_msg(ADMIN, msgs.EXPORT_USERS)))

    assert transport.texts(ADMIN_ID)[-1] == msgs.EXPORT_FAILED


def test_non_admin_export_label_is_not_understood(router, transport, store, sender):
    save_onboarded(store)

    asyncio.run(router.on_message(text_msg(sender, msgs.EXPORT_USERS)))

    assert transport.files == []
    assert transport.texts(1) == [msgs.NOT_UNDERSTOOD]
