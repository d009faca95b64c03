# messages.py
# User-facing texts, button labels and keyboards

from machine import Prompt
from models import ServiceType
from transport import ButtonKind, Keyboard, KeyButton

# ─── Button labels ─────────────────────────────────────────────────────

SHARE_PHONE = "📱 Share phone number"

WHATSAPP_LINK = "💬 WhatsApp group"
WORK_TRAVEL = "✈️ Work & Travel"
STUDY = "🎓 Study"
AUSBILDUNG = "🛠 Ausbildung"
ARBEITSVISUM = "💼 Arbeitsvisum"

EXPORT_USERS = "📊 Export users"
ADD_NAMES = "➕ Add allowed names"
VIEW_NAMES = "📋 View allowed names"
BROADCAST = "📢 Broadcast"
BACK = "🔙 Back to menu"

SERVICE_BY_LABEL = {
    WORK_TRAVEL: ServiceType.WORK_TRAVEL,
    STUDY: ServiceType.STUDY,
    AUSBILDUNG: ServiceType.AUSBILDUNG,
    ARBEITSVISUM: ServiceType.ARBEITSVISUM,
}

SERVICE_NAMES = {
    ServiceType.WORK_TRAVEL: "Work & Travel (Germany)",
    ServiceType.STUDY: "Study (Germany)",
    ServiceType.AUSBILDUNG: "Ausbildung (Germany)",
    ServiceType.ARBEITSVISUM: "Arbeitsvisum (Germany)",
}

# Callback payloads
CHECK_SUBSCRIPTION = "check_subscription"
CONFIRM_NAME = "confirm_name"
REENTER_NAME = "reenter_name"
CONFIRM_PHONE = "confirm_phone"
DIFFERENT_PHONE = "different_phone"
WHATSAPP_CONFIRM = "whatsapp_confirm"
WHATSAPP_REENTER = "whatsapp_reenter"
WHATSAPP_CANCEL = "whatsapp_cancel"

# ─── Keyboards ─────────────────────────────────────────────────────────


def _reply(*rows):
    return Keyboard(rows=tuple(tuple(KeyButton(label) for label in row) for row in rows))


def _inline(*rows):
    return Keyboard(
        rows=tuple(tuple(KeyButton(label, ButtonKind.CALLBACK, data) for label, data in row) for row in rows),
        inline=True,
    )


REMOVE_KEYBOARD = Keyboard(remove=True)
PHONE_REQUEST_KEYBOARD = Keyboard(rows=((KeyButton(SHARE_PHONE, ButtonKind.REQUEST_PHONE),),))
MAIN_MENU_KEYBOARD = _reply([WHATSAPP_LINK], [WORK_TRAVEL, STUDY], [AUSBILDUNG, ARBEITSVISUM])
ADMIN_PANEL_KEYBOARD = _reply([EXPORT_USERS], [ADD_NAMES, VIEW_NAMES], [BROADCAST], [BACK])
NAME_CONFIRMATION_KEYBOARD = _inline([("✅ Confirm", CONFIRM_NAME), ("🔄 Re-enter", REENTER_NAME)])
PHONE_CONFIRMATION_KEYBOARD = _inline([("✅ Yes, this number", CONFIRM_PHONE)], [("📱 Another number", DIFFERENT_PHONE)])
REVEAL_CONFIRM_KEYBOARD = _inline(
    [("✅ Confirm", WHATSAPP_CONFIRM), ("🔄 Re-enter", WHATSAPP_REENTER)],
    [("❌ Cancel", WHATSAPP_CANCEL)],
)
REVEAL_DENIED_KEYBOARD = _inline([("🔄 Re-enter", WHATSAPP_REENTER)], [("❌ Cancel", WHATSAPP_CANCEL)])


def channel_check_keyboard(channels):
    rows = [(KeyButton(f"📢 Channel {i}", ButtonKind.URL, link),) for i, (_, link) in enumerate(channels, 1)]
    rows.append((KeyButton("✅ Check subscription", ButtonKind.CALLBACK, CHECK_SUBSCRIPTION),))
    return Keyboard(rows=tuple(rows), inline=True)


def reveal_link_keyboard(link):
    return Keyboard(rows=((KeyButton("💬 Join the WhatsApp group", ButtonKind.URL, link),),), inline=True)


# ─── Texts ─────────────────────────────────────────────────────────────

WELCOME = (
    "🇩🇪 Welcome to the Go Germany bot!\n\n"
    "Tap the button below to share your phone number.\n"
    "This is required to use our services."
)
JOIN_CHANNELS = "📢 Please join both channels below, then tap **Check subscription**:"
ASK_FIRST_NAME = "Type your **first name** exactly as written in your international passport:"
NOT_ONBOARDED = "❌ Please finish registration first."
WRONG_STATE = "❌ This action is no longer available."
GENERIC_ERROR = "❌ Something went wrong. Please try again later or send /start."
NOT_UNDERSTOOD = "❓ Sorry, I didn't understand. Please use the menu buttons."
TEXT_ONLY = "❓ I only understand text commands. Please use the menu buttons."
ADMIN_ONLY = "❌ This command is for administrators only."
LINK_EXPIRED = "⏱ The WhatsApp link message has expired.\n\nYou can request it again from the main menu."
LINK_EXPIRED_EDIT = "⏱ **Link expired**\n\nThis link is no longer available. Request a new one from the main menu."


def reveal_countdown(seconds):
    return (
        "✅ **Access granted!**\n\n"
        "Tap the button below to join the WhatsApp group.\n\n"
        f"⏱ This message will be deleted in **{seconds} seconds**.\n\n"
        "⚠️ _This link is for your personal use only._"
    )


def _service_name(service):
    return SERVICE_NAMES.get(service, str(service.value if service else "-"))


def service_request_sent(service, phone):
    return (
        "✅ **Request sent**\n\n"
        f"Service: {_service_name(service)}\n"
        f"Phone: {phone}\n\n"
        "📞 An administrator will contact you on this number soon.\n\n"
        "Thank you for your interest!"
    )


def admin_service_notification(user, service, phone, when):
    username = f"@{user.username}" if user.username else "N/A"
    return (
        "🔔 **New Service Request**\n\n"
        f"📋 **Service:** {_service_name(service)}\n"
        f"👤 **User:** {user.first_name or ''} {user.last_name or ''}\n"
        f"🆔 **Username:** {username}\n"
        f"📱 **Contact Phone:** {phone}\n"
        f"🪪 **Passport Name:** {user.full_passport_name() or '-'}\n"
        f"📅 **Time:** {when.isoformat()}\n\n"
        "Please contact the user to proceed."
    )


def admin_panel(stats):
    return (
        "🔐 **Admin Panel**\n\n"
        "📊 **Statistics:**\n"
        f"• Total users: {stats.total}\n"
        f"• Onboarded: {stats.onboarded}\n"
        f"• Pending onboarding: {stats.pending}\n"
        f"• Registered today: {stats.today}\n\n"
        "Select an action below:"
    )


EXPORT_STARTED = "⏳ Generating Excel file..."
EXPORT_FAILED = "❌ Failed to export users. Please try again later."


def export_filename(when):
    return f"users_export_{when.date().isoformat()}.xlsx"


def export_caption(onboarded, when):
    return f"📊 User Export\n\nTotal onboarded users: {onboarded}\nGenerated: {when.isoformat()}"


ADD_NAMES_PROMPT = (
    "📝 **Add Allowed Names**\n\n"
    "Send me a list of full names (first name and last name), one per line.\n\n"
    "Example:\n```\nJOHN DOE\nJANE SMITH\n```\n"
    "Names are converted to uppercase automatically.\n\n"
    "Send /cancel to cancel this operation."
)
NO_NAMES_FOUND = "❌ No valid names found. Please send names on separate lines."


def names_added(result, processed):
    return (
        "✅ **Names Added**\n\n"
        f"• Added: {result.added}\n"
        f"• Duplicates skipped: {result.duplicates}\n"
        f"• Total processed: {processed}"
    )


def broadcast_prompt(onboarded):
    return (
        "📢 **Broadcast Message**\n\n"
        f"Send me the message you want to broadcast to all {onboarded} onboarded users.\n"
        "Text, photos, videos and documents are all supported.\n\n"
        "Send /cancel to cancel this operation."
    )


BROADCAST_STARTED = "⏳ Starting broadcast...\n\nThis may take a while depending on the number of users."


def broadcast_progress(summary):
    return (
        f"📢 Broadcast progress: {summary.processed}/{summary.total}\n"
        f"✅ Sent: {summary.success}\n❌ Failed: {summary.failed}\n🚫 Blocked: {summary.blocked}"
    )


def broadcast_done(summary):
    title = "⚠️ **Broadcast Stopped**" if summary.cancelled else "✅ **Broadcast Complete**"
    return (
        f"{title}\n\n📊 Results:\n"
        f"• Total users: {summary.total}\n"
        f"• Successfully sent: {summary.success}\n"
        f"• Failed: {summary.failed}\n"
        f"• Users who blocked bot: {summary.blocked}"
    )


# ─── Effect rendering ──────────────────────────────────────────────────


def render(effect, settings):
    """Return (text, keyboard) for a state-machine effect."""
    p, d = effect.prompt, effect.data

    if p == Prompt.WELCOME:
        return WELCOME, PHONE_REQUEST_KEYBOARD
    if p == Prompt.FOREIGN_CONTACT:
        return "❌ Please share your own phone number, not someone else's.", PHONE_REQUEST_KEYBOARD
    if p == Prompt.PHONE_SAVED:
        return "✅ Thank you! Your phone number has been saved.", REMOVE_KEYBOARD
    if p == Prompt.JOIN_CHANNELS:
        return JOIN_CHANNELS, channel_check_keyboard(settings.required_channels)
    if p == Prompt.NOT_SUBSCRIBED:
        return (
            "❌ You have not joined all required channels yet.\n\nPlease join both channels and try again:",
            channel_check_keyboard(settings.required_channels),
        )
    if p == Prompt.MEMBERSHIP_UNVERIFIED:
        return (
            "⚠️ We could not verify your subscription right now. Please try again in a minute.",
            channel_check_keyboard(settings.required_channels),
        )
    if p == Prompt.CHANNELS_VERIFIED:
        return "✅ Great! Both channels are verified.", None
    if p == Prompt.ASK_FIRST_NAME:
        return ASK_FIRST_NAME, REMOVE_KEYBOARD
    if p == Prompt.ASK_LAST_NAME:
        return (
            f"✅ First name saved: **{d.get('first_name')}**\n\n"
            "Now type your **last name** exactly as written in your international passport:",
            None,
        )
    if p == Prompt.CONFIRM_NAME:
        return (
            "📋 Please confirm your passport details:\n\n"
            f"**First name:** {d.get('first_name')}\n**Last name:** {d.get('last_name')}\n\nIs this correct?",
            NAME_CONFIRMATION_KEYBOARD,
        )
    if p == Prompt.INVALID_NAME:
        return f"❌ {d.get('error')}\n\nPlease try again:", None
    if p == Prompt.NAME_REENTRY:
        return "🔄 Let's enter your passport name again.", None
    if p == Prompt.ONBOARDED:
        return "✅ Your details have been saved!\n\nYou can now use all of our services.", MAIN_MENU_KEYBOARD
    if p == Prompt.MAIN_MENU:
        return "📋 **Main Menu**\n\nChoose one of the options below:", MAIN_MENU_KEYBOARD
    if p == Prompt.CANCELLED:
        return "❌ Action cancelled.", MAIN_MENU_KEYBOARD
    if p == Prompt.NOT_ONBOARDED:
        return NOT_ONBOARDED, None
    if p == Prompt.WRONG_STATE:
        return WRONG_STATE, None
    if p == Prompt.CONFIRM_PHONE:
        return (
            f"📋 **{_service_name(d.get('service'))}**\n\n"
            "Before we continue, please confirm your phone number:\n\n"
            f"📱 **Current number:** {d.get('phone') or 'Not available'}\n\n"
            "Is this the right number to contact you on?",
            PHONE_CONFIRMATION_KEYBOARD,
        )
    if p == Prompt.ASK_SECONDARY_PHONE:
        return (
            "📱 **Enter a phone number**\n\n"
            "Type the number we should contact you on.\n\nFormat: +998901234567 (with country code)",
            None,
        )
    if p == Prompt.INVALID_PHONE:
        return "❌ Invalid phone number format.\n\nPlease enter a number with country code (e.g. +998901234567):", None
    if p == Prompt.SERVICE_REQUESTED:
        return service_request_sent(d.get("service"), d.get("phone")), MAIN_MENU_KEYBOARD
    if p == Prompt.REVEAL_ASK_FIRST_NAME:
        return (
            "📝 **Enter your details to join the WhatsApp group**\n\n"
            "Please type your **first name** as written in your passport:\n\n_Example: ABDURAHMON_",
            MAIN_MENU_KEYBOARD,
        )
    if p == Prompt.REVEAL_ASK_LAST_NAME:
        return (
            f"✅ First name: **{d.get('first_name')}**\n\n"
            "Now type your **last name** as written in your passport:\n\n_Example: ABDULLAYEV_",
            None,
        )
    if p == Prompt.REVEAL_CONFIRM:
        return (
            "📋 **Please confirm your details:**\n\n"
            f"👤 **First name:** {d.get('first_name')}\n👤 **Last name:** {d.get('last_name')}\n\nIs this correct?",
            REVEAL_CONFIRM_KEYBOARD,
        )
    if p == Prompt.REVEAL_DENIED:
        return (
            "❌ **Access denied**\n\n"
            f"Your name ({d.get('first_name')} {d.get('last_name')}) is not on the approved list.\n\n"
            "If you think this is a mistake, contact an administrator or re-enter your details.",
            REVEAL_DENIED_KEYBOARD,
        )
    if p == Prompt.REVEAL_GRANTED:
        return "✅ Access granted! Preparing your link...", None
    if p == Prompt.REVEAL_CANCELLED:
        return "❌ Cancelled.", MAIN_MENU_KEYBOARD
    raise ValueError(f"No message for {p}")
