# membership.py
# Required-channel membership checks

import logging
from dataclasses import dataclass, field

from errors import TransportError
from transport import JOINED_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequiredGroup:
    group_id: str
    link: str


@dataclass(frozen=True)
class MembershipResult:
    """Outcome of one subscription check.

    ``missing`` holds links of groups the user has not joined, ``unverified``
    links of groups whose membership could not be queried.
    """

    missing: tuple[str, ...] = field(default_factory=tuple)
    unverified: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_subscribed(self) -> bool:
        return not self.missing and not self.unverified

    @property
    def could_not_verify(self) -> bool:
        return bool(self.unverified) and not self.missing


class MembershipChecker:
    def __init__(self, transport, groups):
        self.transport = transport
        self.groups = [g if isinstance(g, RequiredGroup) else RequiredGroup(*g) for g in groups]

    async def is_member(self, group: RequiredGroup, user_id: int) -> bool:
        status = await self.transport.get_membership(group.group_id, user_id)
        return status in JOINED_STATUSES

    async def check(self, user_id: int) -> MembershipResult:
        missing, unverified = [], []
        for group in self.groups:
            try:
                if not await self.is_member(group, user_id):
                    missing.append(group.link)
            except TransportError as e:
                logger.error(f"❌ Could not check membership of {user_id} in {group.group_id}: {e}")
                unverified.append(group.link)
        return MembershipResult(missing=tuple(missing), unverified=tuple(unverified))
