"""
Group change events.

Mutating services return a ``GroupEvent`` describing what changed; the
caller publishes it once the write has committed so connected clients can
refetch the group. Transport (websockets, push) subscribes to the
``group_updated`` signal and is not part of this package.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from django.db import transaction
from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# Sent with ``event=<GroupEvent>`` after the originating transaction commits
group_updated = Signal()


class GroupEventType:
    GROUP_UPDATED = 'group_updated'
    MEMBER_ADDED = 'member_added'
    MEMBER_INVITED = 'member_invited'
    INVITATION_REVOKED = 'invitation_revoked'
    MEMBER_JOINED = 'member_joined'
    MEMBER_REMOVED = 'member_removed'
    MEMBER_LEFT = 'member_left'
    MEMBER_ROLE_UPDATED = 'member_role_updated'
    EXPENSE_CREATED = 'expense_created'
    EXPENSE_UPDATED = 'expense_updated'
    EXPENSE_DELETED = 'expense_deleted'


@dataclass(frozen=True)
class GroupEvent:
    type: str
    group_id: UUID

    def as_payload(self) -> dict:
        """Wire shape broadcast to the group's room."""
        return {'type': self.type, 'groupId': str(self.group_id)}


def publish_group_event(event: GroupEvent) -> None:
    """
    Broadcast ``event`` once the current transaction commits.

    Outside a transaction the signal fires immediately. Delivery is
    best-effort: a failing receiver is logged and never breaks the request.
    """
    def _send():
        results = group_updated.send_robust(sender=GroupEvent, event=event)
        for handler, result in results:
            if isinstance(result, Exception):
                logger.error(
                    "group_updated receiver %r failed for %s: %s",
                    handler, event.type, result
                )

    transaction.on_commit(_send)


@receiver(group_updated)
def log_group_event(sender, event, **kwargs):
    logger.debug("group %s: %s", event.group_id, event.type)
