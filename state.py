# state.py
# In-memory admin sub-flow state, keyed by administrator id.
# Lost on restart; an interrupted admin flow simply starts over from NONE.

from enum import Enum


class AdminSession(str, Enum):
    NONE = "none"
    AWAITING_NAMES = "awaiting_names"
    AWAITING_BROADCAST = "awaiting_broadcast"


class AdminSessionTracker:
    def __init__(self):
        self._sessions = {}  # admin_id -> AdminSession

    def get(self, admin_id: int) -> AdminSession:
        return self._sessions.get(admin_id, AdminSession.NONE)

    def set(self, admin_id: int, session: AdminSession):
        if session == AdminSession.NONE:
            self._sessions.pop(admin_id, None)
        else:
            self._sessions[admin_id] = session

    def reset(self, admin_id: int):
        self.set(admin_id, AdminSession.NONE)

    def is_pending(self, admin_id: int) -> bool:
        return self.get(admin_id) != AdminSession.NONE


admin_sessions = AdminSessionTracker()
