import datetime

from rest_framework import viewsets, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema, OpenApiParameter

from apps.groups.events import publish_group_event
from .currencies import is_supported_currency, normalize_currency
from .serializers import (
    ExpenseSerializer,
    ExpenseWriteSerializer,
    ExchangeRateSerializer,
)
from .services import (
    create_expense,
    update_expense,
    delete_expense,
    get_expense,
    list_group_expenses,
    get_rate_resolver,
    # Exceptions
    ExpenseNotFoundError,
    GroupNotFoundError,
    InsufficientPermissionsError,
    InvalidCurrencyError,
    InvalidExpenseError,
    InvalidSplitError,
)

VALIDATION_ERRORS = (InvalidSplitError, InvalidExpenseError, InvalidCurrencyError)


class ExpensePagination(PageNumberPagination):
    """Pagination for group expenses."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 200


class GroupExpenseViewSet(viewsets.ViewSet):
    """
    Expenses of one group, nested under /api/groups/{group_id}/expenses/.

    list: Get the group's expenses, newest first
    create: Record an expense (any active member)
    retrieve: Get an expense with its splits
    update: Edit an expense (group owner only)
    partial_update: Partially edit an expense (group owner only)
    destroy: Delete an expense (group owner only)
    """

    permission_classes = [IsAuthenticated]
    pagination_class = ExpensePagination
    serializer_class = ExpenseSerializer
    lookup_value_regex = '[0-9a-f-]{36}'

    def _error(self, e):
        if isinstance(e, (GroupNotFoundError, ExpenseNotFoundError)):
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        if isinstance(e, InsufficientPermissionsError):
            return Response({'error': str(e)}, status=status.HTTP_403_FORBIDDEN)
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    def list(self, request, group_id=None):
        try:
            expenses = list_group_expenses(group_id=group_id, user=request.user)
        except GroupNotFoundError as e:
            return self._error(e)

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(expenses, request, view=self)
        serializer = ExpenseSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    @extend_schema(request=ExpenseWriteSerializer, responses={201: ExpenseSerializer})
    def create(self, request, group_id=None):
        serializer = ExpenseWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            expense, event = create_expense(
                group_id=group_id,
                user=request.user,
                title=data['title'],
                amount=data['amount'],
                currency=data.get('currency'),
                split_type=data['split_type'],
                paid_by_id=data.get('paid_by'),
                expense_date=data.get('expense_date') or datetime.date.today(),
                allocations=serializer.get_allocations(),
                receipt_reference=data.get('receipt_reference', ''),
            )
        except (GroupNotFoundError,) + VALIDATION_ERRORS as e:
            return self._error(e)

        publish_group_event(event)
        expense = get_expense(group_id=group_id, expense_id=expense.id, user=request.user)
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, group_id=None, pk=None):
        try:
            expense = get_expense(group_id=group_id, expense_id=pk, user=request.user)
        except (GroupNotFoundError, ExpenseNotFoundError) as e:
            return self._error(e)

        return Response(ExpenseSerializer(expense).data)

    @extend_schema(request=ExpenseWriteSerializer, responses={200: ExpenseSerializer})
    def update(self, request, group_id=None, pk=None, partial=False):
        serializer = ExpenseWriteSerializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            expense, event = update_expense(
                group_id=group_id,
                expense_id=pk,
                user=request.user,
                title=data.get('title'),
                amount=data.get('amount'),
                currency=data.get('currency'),
                split_type=data.get('split_type'),
                paid_by_id=data.get('paid_by'),
                expense_date=data.get('expense_date'),
                allocations=serializer.get_allocations(),
                receipt_reference=data.get('receipt_reference'),
            )
        except (
            GroupNotFoundError,
            ExpenseNotFoundError,
            InsufficientPermissionsError,
        ) + VALIDATION_ERRORS as e:
            return self._error(e)

        publish_group_event(event)
        expense = get_expense(group_id=group_id, expense_id=expense.id, user=request.user)
        return Response(ExpenseSerializer(expense).data)

    @extend_schema(request=ExpenseWriteSerializer, responses={200: ExpenseSerializer})
    def partial_update(self, request, group_id=None, pk=None):
        return self.update(request, group_id=group_id, pk=pk, partial=True)

    def destroy(self, request, group_id=None, pk=None):
        try:
            event = delete_expense(group_id=group_id, expense_id=pk, user=request.user)
        except (GroupNotFoundError, ExpenseNotFoundError, InsufficientPermissionsError) as e:
            return self._error(e)

        publish_group_event(event)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    parameters=[
        OpenApiParameter('from', str, required=True, description='Source currency code'),
        OpenApiParameter('to', str, required=True, description='Target currency code'),
    ],
    responses={200: ExchangeRateSerializer},
    description="Conversion rate between two supported currencies.",
    tags=['currency'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def exchange_rate(request):
    """Get the rate converting one unit of ``from`` into ``to``."""
    from_currency = normalize_currency(request.query_params.get('from'))
    to_currency = normalize_currency(request.query_params.get('to'))

    if not from_currency or not to_currency:
        return Response(
            {'error': 'Missing from or to currency parameters'},
            status=status.HTTP_400_BAD_REQUEST
        )

    for code in (from_currency, to_currency):
        if not is_supported_currency(code):
            return Response(
                {'error': f'Unsupported currency code: {code}'},
                status=status.HTTP_400_BAD_REQUEST
            )

    rate = get_rate_resolver().resolve_rate(from_currency, to_currency)
    serializer = ExchangeRateSerializer({'from': from_currency, 'to': to_currency, 'rate': rate})
    return Response(serializer.data)
