from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid

from apps.expenses.currencies import CURRENCY_CHOICES


class SplitType(models.TextChoices):
    EQUAL = 'equal', 'Equal'
    PERCENTAGE = 'percentage', 'Percentage'


class Expense(models.Model):
    """Expense paid by one member and shared by the group."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    group = models.ForeignKey(
        'groups.Group',
        on_delete=models.CASCADE,
        related_name='expenses'
    )
    paid_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='expenses_paid'
    )
    created_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='expenses_created'
    )

    title = models.CharField(max_length=200)

    # Native amount as entered
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES)

    # Amount in the group's settlement currency; null until converted
    settlement_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True
    )
    # Null when the expense is already in the settlement currency
    exchange_rate = models.DecimalField(
        max_digits=18,
        decimal_places=8,
        null=True,
        blank=True
    )

    split_type = models.CharField(
        max_length=20,
        choices=SplitType.choices,
        default=SplitType.EQUAL
    )
    expense_date = models.DateField()
    receipt_reference = models.CharField(max_length=500, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'expenses'
        indexes = [
            models.Index(fields=['group', 'expense_date'], name='expenses_group_date_idx'),
            models.Index(fields=['group', 'split_type'], name='expenses_group_split_idx'),
            models.Index(fields=['paid_by', 'expense_date'], name='expenses_payer_date_idx'),
        ]
        ordering = ['-expense_date', '-created_at']

    def __str__(self):
        return f"{self.title} - {self.amount} {self.currency}"

    def get_settlement_amount(self):
        """Settlement amount, falling back to the native amount before conversion."""
        if self.settlement_amount is None:
            return self.amount
        return self.settlement_amount


class ExpenseSplit(models.Model):
    """A member's share of an expense, in the group's settlement currency."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    expense = models.ForeignKey(
        Expense,
        on_delete=models.CASCADE,
        related_name='splits'
    )
    user = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='expense_splits'
    )

    amount_due = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    # Only set for percentage splits
    percentage = models.DecimalField(
        max_digits=6,
        decimal_places=3,
        null=True,
        blank=True
    )

    class Meta:
        db_table = 'expense_splits'
        unique_together = [['expense', 'user']]
        indexes = [
            models.Index(fields=['user', 'expense'], name='splits_user_expense_idx'),
        ]

    def __str__(self):
        return f"{self.user.get_display_name()} owes {self.amount_due} for {self.expense.title}"
