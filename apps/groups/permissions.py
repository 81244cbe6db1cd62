from rest_framework import permissions


class IsGroupAdmin(permissions.BasePermission):
    """
    Permission: User must be group admin or owner.
    """

    message = 'Only group admins can perform this action.'

    def has_object_permission(self, request, view, obj):
        # obj is a Group instance
        return obj.is_admin(request.user)


class IsGroupMember(permissions.BasePermission):
    """
    Permission: User must be an active member of the group.
    """

    def has_object_permission(self, request, view, obj):
        # obj is a Group instance
        return obj.has_member(request.user)


class IsGroupOwner(permissions.BasePermission):
    """
    Permission: User must be the group owner.
    """

    message = 'Only the group owner can perform this action.'

    def has_object_permission(self, request, view, obj):
        # obj is a Group instance
        return obj.owner_id == request.user.id
