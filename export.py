# export.py
# Spreadsheet export of onboarded users for the admin panel

import io

from openpyxl import Workbook

SHEET_TITLE = "Users"
MAX_COLUMN_WIDTH = 50

COLUMNS = [
    "#",
    "Telegram ID",
    "Username",
    "Telegram Name",
    "Primary Phone",
    "Secondary Phone",
    "Passport First Name",
    "Passport Last Name",
    "Original Passport First Name",
    "Original Passport Last Name",
    "Registered At",
    "Onboarded At",
    "Last Activity",
]


def _day(value):
    return value.date().isoformat() if value else "N/A"


def user_row(index, user):
    telegram_name = " ".join(p for p in (user.first_name, user.last_name) if p)
    return [
        index,
        user.id,
        f"@{user.username}" if user.username else "N/A",
        telegram_name or "N/A",
        user.primary_phone or "N/A",
        user.secondary_phone or "N/A",
        user.passport_first_name or "N/A",
        user.passport_last_name or "N/A",
        user.original_passport_first_name or "Same",
        user.original_passport_last_name or "Same",
        _day(user.registered_at),
        _day(user.onboarded_at),
        _day(user.last_activity_at),
    ]


def users_to_xlsx(users) -> bytes:
    """One header row plus one row per user, newest registration first."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(COLUMNS)

    ordered = sorted(users, key=lambda u: u.registered_at, reverse=True)
    for i, user in enumerate(ordered, 1):
        ws.append(user_row(i, user))

    for column in ws.columns:
        width = max(len(str(cell.value)) for cell in column)
        ws.column_dimensions[column[0].column_letter].width = min(width + 2, MAX_COLUMN_WIDTH)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
