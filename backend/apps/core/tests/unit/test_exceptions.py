# apps/core/tests/unit/test_exceptions.py
from decimal import Decimal

import pytest
from rest_framework.exceptions import NotAuthenticated

from apps.core.exceptions import (
    InvalidStateTransition, NotFoundError, OperationFailedError, ValidationError,
    service_exception_handler,
)
from apps.core.utils import money_str, quantize_money, to_date, to_datetime, to_decimal


class TestExceptionHandler:
    """Test the REST rendering of service errors."""

    def test_not_found(self):
        response = service_exception_handler(NotFoundError('Invoice', 12), {'view': None})

        assert response.status_code == 404
        assert response.data == {
            'error': {
                'code': 'NOT_FOUND',
                'message': "Invoice with id '12' not found",
                'details': {'resource': 'Invoice', 'id': 12},
            }
        }

    def test_invalid_transition(self):
        exc = InvalidStateTransition('Job', 'completed', 'new', entity_id=3)

        response = service_exception_handler(exc, {'view': None})

        assert response.status_code == 422
        assert response.data['error']['code'] == 'INVALID_STATUS_TRANSITION'
        assert response.data['error']['details']['current_status'] == 'completed'

    def test_validation_with_field(self):
        response = service_exception_handler(ValidationError('Amount is required', field='amount'), {})

        assert response.status_code == 400
        assert response.data['error']['details'] == [{'field': 'amount', 'message': 'Amount is required'}]

    def test_operation_failed(self):
        response = service_exception_handler(OperationFailedError('Try again'), {'view': None})

        assert response.status_code == 503
        assert response.data['error']['code'] == 'OPERATION_FAILED'

    def test_framework_errors_share_the_envelope(self):
        response = service_exception_handler(NotAuthenticated(), {'view': None})

        assert response.data['error']['code'] == 'NOT_AUTHENTICATED'
        assert response.data['error']['message']


class TestMoneyUtils:
    """Test exact decimal conversion."""

    @pytest.mark.parametrize('value, expected', [
        ('519.09', Decimal('519.09')),
        (' 12 ', Decimal('12')),
        (7, Decimal('7')),
        (Decimal('0.10'), Decimal('0.10')),
    ])
    def test_to_decimal(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize('value', [0.1, True, '', None, 'ten', 'NaN', 'Infinity'])
    def test_to_decimal_rejects(self, value):
        with pytest.raises(ValidationError):
            to_decimal(value)

    def test_quantize_half_up(self):
        assert quantize_money(Decimal('38.4512')) == Decimal('38.45')
        assert quantize_money(Decimal('0.005')) == Decimal('0.01')
        assert quantize_money(Decimal('-0.005')) == Decimal('-0.01')

    def test_money_str(self):
        assert money_str(Decimal('0')) == '0.00'
        assert money_str(None) == '0.00'
        assert money_str(Decimal('219.09')) == '219.09'


class TestDateUtils:
    def test_to_datetime_is_aware(self):
        value = to_datetime('2024-03-01T09:30:00')

        assert value.tzinfo is not None
        assert (value.hour, value.minute) == (9, 30)

    def test_to_datetime_accepts_date_only(self):
        assert to_datetime('2024-03-01').day == 1

    @pytest.mark.parametrize('value', ['yesterday', '2024-13-45T99:00:00', 42])
    def test_to_datetime_rejects(self, value):
        with pytest.raises(ValidationError):
            to_datetime(value)

    def test_to_date(self):
        assert to_date('2024-02-29').isoformat() == '2024-02-29'
        assert to_date(None) is None
        with pytest.raises(ValidationError):
            to_date('2023-02-29')
