from django.contrib import admin
from .models import Expense, ExpenseSplit


class ExpenseSplitInline(admin.TabularInline):
    """Inline admin for expense splits."""
    model = ExpenseSplit
    extra = 0
    fields = ['user', 'amount_due', 'percentage']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    """Admin interface for Expenses."""

    list_display = [
        'title',
        'group',
        'paid_by',
        'amount',
        'currency',
        'settlement_amount',
        'split_type',
        'expense_date',
    ]
    list_filter = ['split_type', 'currency', 'expense_date']
    search_fields = ['title', 'group__name', 'paid_by__email']
    readonly_fields = ['settlement_amount', 'exchange_rate', 'created_at', 'updated_at']
    inlines = [ExpenseSplitInline]
    date_hierarchy = 'expense_date'
    ordering = ['-expense_date', '-created_at']

    fieldsets = (
        ('Expense', {
            'fields': ('group', 'title', 'paid_by', 'created_by', 'expense_date', 'receipt_reference')
        }),
        ('Amount', {
            'fields': ('amount', 'currency', 'settlement_amount', 'exchange_rate', 'split_type')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related('group', 'paid_by')


@admin.register(ExpenseSplit)
class ExpenseSplitAdmin(admin.ModelAdmin):
    """Admin interface for Expense Splits."""

    list_display = ['expense', 'user', 'amount_due', 'percentage']
    search_fields = ['expense__title', 'user__email']

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        return qs.select_related('expense', 'user')
