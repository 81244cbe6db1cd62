from rest_framework import serializers

from apps.groups.serializers import UserMinimalSerializer
from .models import Expense, ExpenseSplit, SplitType


class ExpenseSplitSerializer(serializers.ModelSerializer):
    """A member's share of an expense."""

    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = ExpenseSplit
        fields = ['id', 'user', 'amount_due', 'percentage']
        read_only_fields = fields


class ExpenseSerializer(serializers.ModelSerializer):
    """Expense with its splits."""

    paid_by = UserMinimalSerializer(read_only=True)
    created_by = UserMinimalSerializer(read_only=True)
    splits = ExpenseSplitSerializer(many=True, read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id',
            'group',
            'title',
            'amount',
            'currency',
            'settlement_amount',
            'exchange_rate',
            'split_type',
            'paid_by',
            'created_by',
            'expense_date',
            'receipt_reference',
            'splits',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class PercentageAllocationSerializer(serializers.Serializer):
    """One member's percentage of a percentage-split expense."""

    user_id = serializers.UUIDField()
    percentage = serializers.DecimalField(max_digits=6, decimal_places=3)


class ExpenseWriteSerializer(serializers.Serializer):
    """
    Input for creating and editing expenses.

    Amount and currency are checked by the expense services, which report
    invalid values with a specific message.
    """

    title = serializers.CharField(max_length=200)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False)
    split_type = serializers.ChoiceField(choices=SplitType.choices, default=SplitType.EQUAL)
    paid_by = serializers.UUIDField(required=False)
    expense_date = serializers.DateField(required=False)
    receipt_reference = serializers.CharField(max_length=500, required=False, allow_blank=True)
    allocations = PercentageAllocationSerializer(many=True, required=False)

    def validate(self, attrs):
        if attrs.get('split_type') == SplitType.PERCENTAGE and not self.partial:
            if not attrs.get('allocations'):
                raise serializers.ValidationError(
                    {'allocations': 'Percentage split requires allocations.'}
                )
        return attrs

    def get_allocations(self):
        """Validated allocations as (user_id, percentage) pairs, or None."""
        allocations = self.validated_data.get('allocations')
        if allocations is None:
            return None
        return [(a['user_id'], a['percentage']) for a in allocations]


class MemberBalanceSerializer(serializers.Serializer):
    """Computed balance of one member."""

    user_id = serializers.UUIDField()
    display_name = serializers.CharField()
    total_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_share = serializers.DecimalField(max_digits=14, decimal_places=2)
    net_balance = serializers.DecimalField(max_digits=14, decimal_places=2)


class BalanceSummarySerializer(serializers.Serializer):
    """Balances of all active members plus group totals."""

    currency = serializers.CharField()
    balances = MemberBalanceSerializer(many=True)
    total_spent = serializers.DecimalField(max_digits=14, decimal_places=2)
    imbalance = serializers.DecimalField(max_digits=14, decimal_places=2)


class ExchangeRateSerializer(serializers.Serializer):
    """Rate converting one unit of ``from`` into ``to``."""

    rate = serializers.DecimalField(max_digits=24, decimal_places=8)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        return {'from': instance['from'], 'to': instance['to'], **data}
