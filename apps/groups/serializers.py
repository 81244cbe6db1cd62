from rest_framework import serializers
from .models import Group, GroupMembership
from apps.accounts.models import User


class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'display_name']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class GroupSerializer(serializers.ModelSerializer):
    """Main serializer for groups."""

    owner = UserMinimalSerializer(read_only=True)
    member_count = serializers.SerializerMethodField()
    user_role = serializers.SerializerMethodField()

    class Meta:
        model = Group
        fields = [
            'id',
            'name',
            'description',
            'currency',
            'owner',
            'member_count',
            'user_role',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'owner', 'created_at', 'updated_at']

    def get_member_count(self, obj):
        """Number of joined members; pending invitations are not counted."""
        return obj.active_memberships().count()

    def get_user_role(self, obj):
        """Get current user's role in the group."""
        request = self.context.get('request')
        if request and request.user.is_authenticated:
            return obj.get_user_role(request.user)
        return None


class GroupCreateSerializer(serializers.Serializer):
    """Serializer for creating groups."""

    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    currency = serializers.CharField(max_length=3, required=False)


class GroupUpdateSerializer(serializers.Serializer):
    """Serializer for updating groups; every field is optional."""

    name = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    currency = serializers.CharField(max_length=3, required=False)


class GroupListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views."""

    owner = UserMinimalSerializer(read_only=True)
    member_count = serializers.SerializerMethodField()

    class Meta:
        model = Group
        fields = [
            'id',
            'name',
            'description',
            'currency',
            'owner',
            'member_count',
            'created_at',
        ]
        read_only_fields = fields

    def get_member_count(self, obj):
        return obj.active_memberships().count()


class GroupMemberSerializer(serializers.ModelSerializer):
    """Detailed member information."""

    user = UserMinimalSerializer(read_only=True)
    invited_by = UserMinimalSerializer(read_only=True)

    class Meta:
        model = GroupMembership
        fields = ['id', 'user', 'role', 'invited_email', 'invited_by', 'joined_at']
        read_only_fields = fields


class AddMemberSerializer(serializers.Serializer):
    """Serializer for adding an existing user by id or email."""

    user_id = serializers.UUIDField(required=False)
    email = serializers.EmailField(required=False)

    def validate(self, attrs):
        if not attrs.get('user_id') and not attrs.get('email'):
            raise serializers.ValidationError('Either user_id or email is required.')
        return attrs


class InviteMemberSerializer(serializers.Serializer):
    """Serializer for inviting a member by email."""

    email = serializers.EmailField(required=True)


class UpdateMemberRoleSerializer(serializers.Serializer):
    """Serializer for updating member role."""

    user_id = serializers.UUIDField(required=True)
    role = serializers.ChoiceField(choices=['admin', 'member'], required=True)


class RemoveMemberSerializer(serializers.Serializer):
    """Serializer for removing a member."""

    user_id = serializers.UUIDField(required=True)


class RevokeInvitationSerializer(serializers.Serializer):
    """Serializer for revoking a pending invitation."""

    invitation_id = serializers.UUIDField(required=True)


class ReconciliationSerializer(serializers.Serializer):
    """Outcome of recomputing equal splits after a roster change."""

    recomputed_expense_ids = serializers.ListField(child=serializers.UUIDField())
    untouched_percentage_expense_ids = serializers.ListField(child=serializers.UUIDField())
