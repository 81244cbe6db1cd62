# ==========================================
# apps/groups/models.py
# ==========================================

from django.conf import settings
from django.db import models
import uuid

from apps.expenses.currencies import CURRENCY_CHOICES


def default_settlement_currency():
    return settings.DEFAULT_SETTLEMENT_CURRENCY


class GroupRole(models.TextChoices):
    OWNER = 'owner', 'Owner'
    ADMIN = 'admin', 'Admin'
    MEMBER = 'member', 'Member'
    PENDING = 'pending', 'Pending'


# Roles that take part in splits and balances
ACTIVE_ROLES = (GroupRole.OWNER, GroupRole.ADMIN, GroupRole.MEMBER)


class Group(models.Model):
    """Group sharing expenses in a single settlement currency."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    currency = models.CharField(
        max_length=3,
        choices=CURRENCY_CHOICES,
        default=default_settlement_currency,
    )
    owner = models.ForeignKey('accounts.User', on_delete=models.CASCADE, related_name='owned_groups')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'groups'
        indexes = [
            models.Index(fields=['owner', 'created_at'], name='groups_owner_created_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    def active_memberships(self):
        return self.memberships.filter(role__in=ACTIVE_ROLES)

    def has_member(self, user):
        """True for joined members; pending invitation slots do not count."""
        return self.active_memberships().filter(user=user).exists()

    def get_user_role(self, user):
        try:
            return self.memberships.get(user=user).role
        except GroupMembership.DoesNotExist:
            return None

    def is_admin(self, user):
        role = self.get_user_role(user)
        return role in [GroupRole.OWNER, GroupRole.ADMIN]


class GroupMembership(models.Model):
    """
    A user's membership in a group with role.

    A pending membership is an invitation slot: it carries the invited email
    and no user until the invitation is accepted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='group_memberships'
    )
    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name='memberships')
    role = models.CharField(max_length=20, choices=GroupRole.choices, default=GroupRole.MEMBER)
    invited_email = models.EmailField(null=True, blank=True)
    invited_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_invitations'
    )
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'group_memberships'
        unique_together = [['user', 'group'], ['group', 'invited_email']]
        indexes = [
            models.Index(fields=['group', 'role'], name='memberships_group_role_idx'),
            models.Index(fields=['user', 'joined_at'], name='memberships_user_joined_idx'),
        ]
        ordering = ['joined_at']

    def __str__(self):
        who = self.user.get_display_name() if self.user else self.invited_email
        return f"{who} in {self.group.name} ({self.role})"

    @property
    def is_pending(self):
        return self.role == GroupRole.PENDING

    def save(self, *args, **kwargs):
        if self.user_id and self.group.owner_id == self.user_id:
            self.role = GroupRole.OWNER
        super().save(*args, **kwargs)
