# store.py
# User records and the reveal allow-list, persisted as JSON files

import json
import logging
import os
from abc import ABC, abstractmethod

from pydantic import ValidationError

from errors import StoreError
from export import users_to_xlsx
from models import AllowlistEntry, BulkInsertResult, UserRecord, UserStats, utcnow
from validation import normalize_full_name

logger = logging.getLogger(__name__)


class Store(ABC):
    """Persistence capabilities the bot core relies on."""

    @abstractmethod
    def find_user(self, user_id: int) -> UserRecord | None: ...

    @abstractmethod
    def save_user(self, user: UserRecord) -> None: ...

    @abstractmethod
    def list_onboarded_user_ids(self) -> list[int]: ...

    @abstractmethod
    def list_onboarded_users(self) -> list[UserRecord]: ...

    @abstractmethod
    def find_allowlist_entry(self, full_name: str) -> bool: ...

    @abstractmethod
    def bulk_insert_allowlist(self, names: list[str], added_by: int) -> BulkInsertResult: ...

    @abstractmethod
    def list_allowlist(self) -> list[AllowlistEntry]: ...

    @abstractmethod
    def stats(self) -> UserStats: ...

    def export_users(self) -> bytes:
        """Spreadsheet (xlsx) of every onboarded user."""
        return users_to_xlsx(self.list_onboarded_users())

    def get_or_create_user(self, user_id, username=None, first_name=None, last_name=None) -> UserRecord:
        """Load the user, registering them on first contact and refreshing display fields."""
        user = self.find_user(user_id)
        if user is None:
            user = UserRecord(id=user_id, username=username, first_name=first_name, last_name=last_name)
            logger.info(f"📝 New user registered: {user_id} (@{username})")
        else:
            user.username = username
            user.first_name = first_name
            user.last_name = last_name
            user.touch()
        self.save_user(user)
        return user


class JsonStore(Store):
    """users.json + allowlist.json under ``data_dir``; whole file rewritten on each change."""

    def __init__(self, data_dir):
        self.data_dir = str(data_dir)
        self.users_file = os.path.join(self.data_dir, "users.json")
        self.allowlist_file = os.path.join(self.data_dir, "allowlist.json")
        self._users: dict[int, UserRecord] = {}
        self._allowlist: dict[str, AllowlistEntry] = {}
        self._load()

    # ─── file I/O ──────────────────────────────────────────────────────

    def _read(self, path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise StoreError(f"Could not load {path}: {e}") from e

    def _write(self, path, payload):
        tmp = path + ".tmp"
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            logger.error(f"⚠️ Could not save {path}: {e}")
            raise StoreError(f"Could not save {path}: {e}") from e

    def _load(self):
        try:
            for uid, raw in self._read(self.users_file).items():
                self._users[int(uid)] = UserRecord.model_validate(raw)
            for key, raw in self._read(self.allowlist_file).items():
                self._allowlist[key] = AllowlistEntry.model_validate(raw)
        except (ValidationError, ValueError) as e:
            raise StoreError(f"Corrupt data in {self.data_dir}: {e}") from e

    # Writers take the would-be contents; callers swap them in only after a successful write.
    def _save_users(self, users):
        self._write(self.users_file, {
            str(uid): user.model_dump(mode="json") for uid, user in users.items()
        })

    def _save_allowlist(self, allowlist):
        self._write(self.allowlist_file, {
            key: entry.model_dump(mode="json") for key, entry in allowlist.items()
        })

    # ─── users ─────────────────────────────────────────────────────────

    def find_user(self, user_id):
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    def save_user(self, user):
        users = {**self._users, user.id: user.model_copy(deep=True)}
        self._save_users(users)
        self._users = users

    def list_onboarded_user_ids(self):
        return [uid for uid, user in self._users.items() if user.is_onboarded]

    def list_onboarded_users(self):
        return [user.model_copy(deep=True) for user in self._users.values() if user.is_onboarded]

    def stats(self):
        today = utcnow().date()
        users = list(self._users.values())
        onboarded = sum(1 for u in users if u.is_onboarded)
        return UserStats(
            total=len(users),
            onboarded=onboarded,
            pending=len(users) - onboarded,
            today=sum(1 for u in users if u.registered_at.date() == today),
        )

    # ─── allow-list ────────────────────────────────────────────────────

    def find_allowlist_entry(self, full_name):
        entry = self._allowlist.get(normalize_full_name(full_name))
        return bool(entry and entry.is_active)

    def bulk_insert_allowlist(self, names, added_by):
        result = BulkInsertResult()
        added = {}
        for name in names:
            original = name.strip()
            if not original:
                continue
            key = normalize_full_name(original)
            if key in self._allowlist or key in added:
                result.duplicates += 1
                continue
            added[key] = AllowlistEntry(full_name=key, original_entry=original, added_by=added_by)
            result.added += 1
        if added:
            allowlist = {**self._allowlist, **added}
            self._save_allowlist(allowlist)
            self._allowlist = allowlist
        return result

    def list_allowlist(self):
        return sorted((e for e in self._allowlist.values() if e.is_active), key=lambda e: e.full_name)
