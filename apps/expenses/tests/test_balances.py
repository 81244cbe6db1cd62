from decimal import Decimal
from uuid import uuid4

import pytest

from apps.expenses.models import SplitType
from apps.expenses.services import (
    aggregate_balances,
    balance_summary,
    compute_balances,
    create_expense,
    delete_expense,
    GroupNotFoundError,
)
from apps.groups.services import add_member, create_group, leave_group, remove_member, MemberHasExpensesError


def nets(balances):
    return {b.user_id: b.net_balance for b in balances}


class TestAggregateBalances:
    """Tests for the pure aggregation step."""

    def test_combines_paid_and_shares(self):
        a, b = uuid4(), uuid4()

        balances = aggregate_balances(
            [(a, 'A'), (b, 'B')],
            {a: Decimal('30.00')},
            {a: Decimal('15.00'), b: Decimal('15.00')},
        )

        assert [(x.display_name, x.total_paid, x.total_share, x.net_balance) for x in balances] == [
            ('A', Decimal('30.00'), Decimal('15.00'), Decimal('15.00')),
            ('B', Decimal('0.00'), Decimal('15.00'), Decimal('-15.00')),
        ]

    def test_ignores_users_outside_roster(self):
        a = uuid4()

        balances = aggregate_balances([(a, 'A')], {uuid4(): Decimal('5.00')}, {uuid4(): Decimal('5.00')})

        assert balances[0].net_balance == Decimal('0.00')


@pytest.mark.django_db
class TestComputeBalances:
    """Tests for balances computed from stored expenses."""

    def test_three_way_dinner(self, trip, alice, bob, carol, resolver, today):
        """Alice pays 50.00 split three ways."""
        create_expense(
            group_id=trip.id, user=alice, title='Dinner', amount=Decimal('50.00'),
            expense_date=today, resolver=resolver,
        )

        balances = compute_balances(group_id=trip.id)

        assert [b.display_name for b in balances] == ['Alice', 'Bob', 'Carol']
        assert nets(balances) == {
            alice.id: Decimal('33.33'),
            bob.id: Decimal('-16.67'),
            carol.id: Decimal('-16.67'),
        }

    def test_dinner_then_third_member_joins(self, alice, bob, carol, resolver, today):
        """Dinner split by two, then Carol is added and the split widens to three."""
        group = create_group(name='Dinner Club', owner=alice, currency='USD')
        add_member(group_id=group.id, added_by=alice, user_id=bob.id)
        dinner, _ = create_expense(
            group_id=group.id, user=alice, title='Dinner', amount=Decimal('50.00'),
            expense_date=today, resolver=resolver,
        )
        assert set(dinner.splits.values_list('amount_due', flat=True)) == {Decimal('25.00')}

        add_member(group_id=group.id, added_by=alice, user_id=carol.id)

        shares = dict(dinner.splits.values_list('user_id', 'amount_due'))
        assert shares == {alice.id: Decimal('16.67'), bob.id: Decimal('16.67'), carol.id: Decimal('16.67')}

        balances = {b.user_id: b for b in compute_balances(group_id=group.id)}
        assert balances[alice.id].total_paid == Decimal('50.00')
        assert nets(balances.values()) == {
            alice.id: Decimal('33.33'),
            bob.id: Decimal('-16.67'),
            carol.id: Decimal('-16.67'),
        }
        assert abs(sum(b.net_balance for b in balances.values())) <= Decimal('0.01')

    def test_settling_round_trip(self, trip, alice, bob, carol, resolver, today):
        """Bob and Carol each pay back their share as a single-member expense."""
        create_expense(
            group_id=trip.id, user=alice, title='Dinner', amount=Decimal('60.00'),
            expense_date=today, resolver=resolver,
        )
        for debtor in (bob, carol):
            create_expense(
                group_id=trip.id,
                user=debtor,
                title='Settle up',
                amount=Decimal('20.00'),
                split_type=SplitType.PERCENTAGE,
                allocations=[(alice.id, Decimal('100'))],
                expense_date=today,
                resolver=resolver,
            )

        assert set(nets(compute_balances(group_id=trip.id)).values()) == {Decimal('0.00')}

    def test_foreign_currency_uses_settlement_amount(self, trip, alice, bob, resolver, today):
        create_expense(
            group_id=trip.id, user=bob, title='Tapas', amount=Decimal('90.00'),
            currency='EUR', expense_date=today, resolver=resolver,
        )

        balances = {b.user_id: b for b in compute_balances(group_id=trip.id)}

        assert balances[bob.id].total_paid == Decimal('100.00')
        assert balances[alice.id].total_share == Decimal('33.33')

    def test_net_balances_conserve(self, trip, alice, bob, carol, resolver, today, settings):
        settings.SPLIT_REMAINDER_POLICY = 'distribute'
        for payer, amount in [(alice, '10.00'), (bob, '7.01'), (carol, '99.99')]:
            create_expense(
                group_id=trip.id, user=payer, title='x', amount=Decimal(amount),
                expense_date=today, resolver=resolver,
            )

        summary = balance_summary(group_id=trip.id)

        assert summary['total_spent'] == Decimal('117.00')
        assert summary['imbalance'] == Decimal('0.00')

    def test_deleted_expense_no_longer_counted(self, trip, alice, resolver, today):
        expense, _ = create_expense(
            group_id=trip.id, user=alice, title='Dinner', amount=Decimal('30.00'),
            expense_date=today, resolver=resolver,
        )

        delete_expense(group_id=trip.id, expense_id=expense.id, user=alice)

        assert set(nets(compute_balances(group_id=trip.id)).values()) == {Decimal('0.00')}

    def test_removed_member_not_listed(self, trip, alice, carol, resolver, today):
        remove_member(group_id=trip.id, user_id=carol.id, removed_by=alice)

        balances = compute_balances(group_id=trip.id)

        assert carol.id not in nets(balances)

    def test_leaving_member_keeps_balances_conserved(self, trip, alice, bob, carol, resolver, today):
        """Carol only owed equal shares, so her leaving re-divides them between Alice and Bob."""
        create_expense(
            group_id=trip.id, user=alice, title='Dinner', amount=Decimal('60.00'),
            expense_date=today, resolver=resolver,
        )

        leave_group(group_id=trip.id, user=carol)

        summary = balance_summary(group_id=trip.id)
        assert nets(summary['balances']) == {alice.id: Decimal('30.00'), bob.id: Decimal('-30.00')}
        assert summary['imbalance'] == Decimal('0.00')

    def test_payer_cannot_be_removed(self, trip, alice, bob, resolver, today):
        create_expense(
            group_id=trip.id, user=bob, title='Taxi', amount=Decimal('30.00'),
            expense_date=today, resolver=resolver,
        )

        with pytest.raises(MemberHasExpensesError):
            remove_member(group_id=trip.id, user_id=bob.id, removed_by=alice)

        assert sum(b.net_balance for b in compute_balances(group_id=trip.id)) == Decimal('0.00')

    def test_group_not_found(self, db):
        with pytest.raises(GroupNotFoundError):
            compute_balances(group_id=uuid4())
