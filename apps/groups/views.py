from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema

from .events import publish_group_event
from .models import ACTIVE_ROLES, Group
from .permissions import IsGroupAdmin, IsGroupMember, IsGroupOwner
from .serializers import (
    GroupSerializer,
    GroupCreateSerializer,
    GroupUpdateSerializer,
    GroupListSerializer,
    GroupMemberSerializer,
    AddMemberSerializer,
    InviteMemberSerializer,
    UpdateMemberRoleSerializer,
    RemoveMemberSerializer,
    RevokeInvitationSerializer,
    ReconciliationSerializer,
)

from apps.groups.services import (
    create_group,
    update_group,
    delete_group,
    add_member,
    invite_member,
    accept_invitation,
    revoke_invitation,
    leave_group,
    remove_member,
    get_group_members,
    get_group_for_member,
    update_member_role,
    # Exceptions
    GroupNotFoundError,
    UserNotFoundError,
    AlreadyMemberError,
    NotMemberError,
    InvitationNotFoundError,
    OwnerCannotLeaveError,
    CannotRemoveOwnerError,
    CannotChangeOwnerRoleError,
    InvalidRoleError,
    InvalidCurrencyError,
    CurrencyLockedError,
    InsufficientPermissionsError,
    MemberHasExpensesError,
)
from apps.expenses.serializers import BalanceSummarySerializer
from apps.expenses.services import balance_summary


class GroupPagination(PageNumberPagination):
    """Custom pagination for groups."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


def _not_found(e):
    return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)


def _membership_response(membership, reconciliation, response_status=status.HTTP_200_OK):
    data = {
        'member': GroupMemberSerializer(membership).data,
        'reconciliation': ReconciliationSerializer(reconciliation).data,
    }
    if reconciliation.has_untouched_percentage_expenses:
        data['warning'] = (
            'Percentage-split expenses were not changed and may not include '
            'every current member.'
        )
    return Response(data, status=response_status)


class GroupViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Group CRUD operations.

    All business logic is handled by services.
    Views are thin HTTP handlers only.

    list: Get all groups (user is member of)
    create: Create a new group
    retrieve: Get a specific group
    update: Update a group (admin only)
    partial_update: Partially update a group (admin only)
    destroy: Delete a group (owner only)
    """

    serializer_class = GroupSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = GroupPagination
    lookup_value_regex = '[0-9a-f-]{36}'

    def get_queryset(self):
        """Return only groups where user is an active member."""
        user = self.request.user
        return Group.objects.filter(
            memberships__user=user,
            memberships__role__in=ACTIVE_ROLES
        ).select_related('owner').prefetch_related('memberships').distinct()

    def get_serializer_class(self):
        """Use different serializers for different actions."""
        if self.action == 'list':
            return GroupListSerializer
        elif self.action == 'create':
            return GroupCreateSerializer
        elif self.action in ['update', 'partial_update']:
            return GroupUpdateSerializer
        return GroupSerializer

    def get_permissions(self):
        """Set permissions based on action."""
        if self.action in ['update', 'partial_update']:
            return [IsAuthenticated(), IsGroupAdmin()]
        if self.action == 'destroy':
            return [IsAuthenticated(), IsGroupOwner()]
        return [IsAuthenticated(), IsGroupMember()]

    def create(self, request, *args, **kwargs):
        """Create a new group."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            group = create_group(
                name=serializer.validated_data['name'],
                owner=request.user,
                description=serializer.validated_data.get('description', ''),
                currency=serializer.validated_data.get('currency')
            )
        except InvalidCurrencyError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        output_serializer = GroupSerializer(group, context={'request': request})
        return Response(output_serializer.data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        """Update group details (admin only)."""
        self.get_object()
        serializer = GroupUpdateSerializer(data=request.data, partial=kwargs.pop('partial', False))
        serializer.is_valid(raise_exception=True)

        try:
            group, event = update_group(
                group_id=self.kwargs['pk'],
                user=request.user,
                **serializer.validated_data
            )
        except GroupNotFoundError as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except (InvalidCurrencyError, CurrencyLockedError) as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return Response(GroupSerializer(group, context={'request': request}).data)

    def destroy(self, request, *args, **kwargs):
        """Delete a group (owner only)."""
        self.get_object()

        try:
            delete_group(group_id=self.kwargs['pk'], user=request.user)
            return Response(status=status.HTTP_204_NO_CONTENT)
        except GroupNotFoundError as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)

    @action(detail=True, methods=['get'])
    def members(self, request, pk=None):
        """Get all members of the group, including pending invitations."""
        try:
            memberships = get_group_members(group_id=pk, user=request.user)
        except GroupNotFoundError as e:
            return _not_found(e)

        serializer = GroupMemberSerializer(memberships, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'])
    def add_member(self, request, pk=None):
        """Add an existing user to the group (admin only)."""
        serializer = AddMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            membership, reconciliation, event = add_member(
                group_id=pk,
                added_by=request.user,
                user_id=serializer.validated_data.get('user_id'),
                email=serializer.validated_data.get('email')
            )
        except (GroupNotFoundError, UserNotFoundError) as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except AlreadyMemberError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return _membership_response(membership, reconciliation, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def invite(self, request, pk=None):
        """Invite a member by email (admin only)."""
        serializer = InviteMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            membership, event = invite_member(
                group_id=pk,
                email=serializer.validated_data['email'],
                invited_by=request.user
            )
        except GroupNotFoundError as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except AlreadyMemberError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return Response(GroupMemberSerializer(membership).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def accept_invite(self, request, pk=None):
        """Accept a pending invitation to the group."""
        try:
            membership, reconciliation, event = accept_invitation(group_id=pk, user=request.user)
        except (GroupNotFoundError, InvitationNotFoundError) as e:
            return _not_found(e)
        except AlreadyMemberError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return _membership_response(membership, reconciliation)

    @action(detail=True, methods=['delete'])
    def revoke_invite(self, request, pk=None):
        """Revoke a pending invitation by its id (admin only)."""
        serializer = RevokeInvitationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            event = revoke_invitation(
                group_id=pk,
                invitation_id=serializer.validated_data['invitation_id'],
                revoked_by=request.user
            )
        except (GroupNotFoundError, InvitationNotFoundError) as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)

        publish_group_event(event)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def leave(self, request, pk=None):
        """Leave a group."""
        try:
            reconciliation, event = leave_group(group_id=pk, user=request.user)
        except GroupNotFoundError as e:
            return _not_found(e)
        except (OwnerCannotLeaveError, MemberHasExpensesError) as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def update_member_role(self, request, pk=None):
        """Update member's role (admin only)."""
        serializer = UpdateMemberRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            membership, event = update_member_role(
                group_id=pk,
                user_id=serializer.validated_data['user_id'],
                new_role=serializer.validated_data['role'],
                updated_by=request.user
            )
        except (GroupNotFoundError, NotMemberError) as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except (CannotChangeOwnerRoleError, InvalidRoleError) as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return Response(GroupMemberSerializer(membership).data)

    @action(detail=True, methods=['delete'])
    def remove_member(self, request, pk=None):
        """Remove a member from the group (admin only)."""
        serializer = RemoveMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            reconciliation, event = remove_member(
                group_id=pk,
                user_id=serializer.validated_data['user_id'],
                removed_by=request.user
            )
        except (GroupNotFoundError, NotMemberError) as e:
            return _not_found(e)
        except InsufficientPermissionsError as e:
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        except (CannotRemoveOwnerError, MemberHasExpensesError) as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        publish_group_event(event)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(responses={200: BalanceSummarySerializer})
    @action(detail=True, methods=['get'])
    def balances(self, request, pk=None):
        """Per-member paid, share and net balance in the group's currency."""
        try:
            group = get_group_for_member(group_id=pk, user=request.user)
        except GroupNotFoundError as e:
            return _not_found(e)

        summary = balance_summary(group_id=group.id)
        serializer = BalanceSummarySerializer({'currency': group.currency, **summary})
        return Response(serializer.data)
