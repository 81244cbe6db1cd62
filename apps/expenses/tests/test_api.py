from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.urls import reverse
from rest_framework import status

from apps.expenses.models import Expense
from apps.expenses.services import create_expense


def list_url(group):
    return reverse('expenses:expense-list', kwargs={'group_id': group.id})


def detail_url(group, expense):
    return reverse('expenses:expense-detail', kwargs={'group_id': group.id, 'pk': expense.id})


@pytest.fixture(autouse=True)
def static_rates(resolver):
    """Route every view through the static-rate resolver."""
    with patch('apps.expenses.services.expense_management.get_rate_resolver', return_value=resolver), \
            patch('apps.expenses.views.get_rate_resolver', return_value=resolver):
        yield resolver


@pytest.fixture
def dinner(trip, alice, resolver, today):
    expense, _ = create_expense(
        group_id=trip.id, user=alice, title='Dinner', amount=Decimal('30.00'),
        expense_date=today, resolver=resolver,
    )
    return expense


# =============================================================================
# Expense Endpoints
# =============================================================================

@pytest.mark.django_db
class TestExpenseList:
    """Tests for GET /api/groups/{group_id}/expenses/"""

    def test_list_expenses(self, bob_client, trip, dinner):
        response = bob_client.get(list_url(trip))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['title'] == 'Dinner'
        assert len(response.data['results'][0]['splits']) == 3

    def test_list_non_member_404(self, outsider_client, trip):
        response = outsider_client.get(list_url(trip))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_unauthenticated(self, api_client, trip):
        response = api_client.get(list_url(trip))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestExpenseCreate:
    """Tests for POST /api/groups/{group_id}/expenses/"""

    def test_create_equal_expense(self, bob_client, trip, bob):
        data = {'title': 'Groceries', 'amount': '45.00', 'expense_date': '2024-03-01'}

        with patch('apps.expenses.views.publish_group_event') as publish:
            response = bob_client.post(list_url(trip), data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['paid_by']['id'] == str(bob.id)
        assert response.data['settlement_amount'] == '45.00'
        assert [s['amount_due'] for s in response.data['splits']] == ['15.00', '15.00', '15.00']
        assert publish.call_args[0][0].as_payload() == {'type': 'expense_created', 'groupId': str(trip.id)}

    def test_create_foreign_currency(self, bob_client, trip):
        data = {'title': 'Tapas', 'amount': '90.00', 'currency': 'EUR'}

        response = bob_client.post(list_url(trip), data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['currency'] == 'EUR'
        assert response.data['exchange_rate'] == '1.11111111'
        assert response.data['settlement_amount'] == '100.00'

    def test_create_percentage_expense(self, alice_client, trip, alice, bob):
        data = {
            'title': 'Hotel',
            'amount': '100.00',
            'split_type': 'percentage',
            'allocations': [
                {'user_id': str(alice.id), 'percentage': '60'},
                {'user_id': str(bob.id), 'percentage': '40'},
            ],
        }

        response = alice_client.post(list_url(trip), data, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        amounts = {s['user']['id']: s['amount_due'] for s in response.data['splits']}
        assert amounts == {str(alice.id): '60.00', str(bob.id): '40.00'}

    def test_percentage_requires_allocations(self, alice_client, trip):
        data = {'title': 'Hotel', 'amount': '100.00', 'split_type': 'percentage'}

        response = alice_client.post(list_url(trip), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'allocations' in response.data

    def test_percentages_must_sum_to_100(self, alice_client, trip, alice):
        data = {
            'title': 'Hotel',
            'amount': '100.00',
            'split_type': 'percentage',
            'allocations': [{'user_id': str(alice.id), 'percentage': '90'}],
        }

        response = alice_client.post(list_url(trip), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert not Expense.objects.exists()

    def test_zero_amount(self, alice_client, trip):
        response = alice_client.post(list_url(trip), {'title': 'x', 'amount': '0'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unsupported_currency(self, alice_client, trip):
        data = {'title': 'x', 'amount': '5.00', 'currency': 'XYZ'}

        response = alice_client.post(list_url(trip), data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_non_member_404(self, outsider_client, trip):
        response = outsider_client.post(list_url(trip), {'title': 'x', 'amount': '5.00'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestExpenseDetail:
    """Tests for GET/PATCH/DELETE /api/groups/{group_id}/expenses/{id}/"""

    def test_retrieve(self, bob_client, trip, dinner):
        response = bob_client.get(detail_url(trip, dinner))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['id'] == str(dinner.id)

    def test_retrieve_missing_404(self, bob_client, trip):
        url = reverse('expenses:expense-detail', kwargs={'group_id': trip.id, 'pk': uuid4()})

        response = bob_client.get(url)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_owner_patches(self, alice_client, trip, dinner):
        response = alice_client.patch(detail_url(trip, dinner), {'amount': '60.00'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['settlement_amount'] == '60.00'
        assert {s['amount_due'] for s in response.data['splits']} == {'20.00'}

    def test_member_cannot_patch(self, bob_client, trip, dinner):
        response = bob_client.patch(detail_url(trip, dinner), {'title': 'Mine'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_owner_deletes(self, alice_client, trip, dinner):
        response = alice_client.delete(detail_url(trip, dinner))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Expense.objects.filter(id=dinner.id).exists()

    def test_member_cannot_delete(self, bob_client, trip, dinner):
        response = bob_client.delete(detail_url(trip, dinner))

        assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# Exchange Rate Endpoint
# =============================================================================

@pytest.mark.django_db
class TestExchangeRate:
    """Tests for GET /api/currency/rate/"""

    def test_rate(self, bob_client):
        response = bob_client.get(reverse('currency-rate'), {'from': 'usd', 'to': 'GBP'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'from': 'USD', 'to': 'GBP', 'rate': '0.80000000'}

    def test_same_currency(self, bob_client, rates_client):
        response = bob_client.get(reverse('currency-rate'), {'from': 'EUR', 'to': 'EUR'})

        assert response.data['rate'] == '1.00000000'
        assert rates_client.calls == 0

    def test_missing_parameter(self, bob_client):
        response = bob_client.get(reverse('currency-rate'), {'from': 'USD'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unsupported_code(self, bob_client):
        response = bob_client.get(reverse('currency-rate'), {'from': 'USD', 'to': 'ZZZ'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'ZZZ' in response.data['error']
