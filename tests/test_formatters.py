"""
Tests for display and normalisation helpers
"""
import pytest
from datetime import date, datetime
from app.utils.formatters import (
    format_phone_number,
    is_valid_phone_number,
    format_phone_display,
    format_currency,
    format_date,
    full_name,
    format_address
)


@pytest.mark.unit
class TestPhoneNumbers:
    """Tests for phone normalisation"""

    @pytest.mark.parametrize('phone', ['5551234567', '(555) 123-4567', '555.123.4567', '1-555-123-4567'])
    def test_us_numbers_become_e164(self, phone):
        assert format_phone_number(phone) == '+15551234567'

    def test_other_numbers_unchanged(self):
        assert format_phone_number('12345') == '12345'
        assert format_phone_number('+44 20 7946 0958') == '+44 20 7946 0958'

    def test_empty_phone(self):
        assert format_phone_number('') == ''
        assert format_phone_number(None) is None

    def test_valid_e164(self):
        assert is_valid_phone_number('+15551234567') is True
        assert is_valid_phone_number('5551234567') is False
        assert is_valid_phone_number('') is False

    def test_display_format(self):
        assert format_phone_display('+15551234567') == '(555) 123-4567'
        assert format_phone_display('5551234567') == '(555) 123-4567'
        assert format_phone_display('123') == '123'
        assert format_phone_display(None) == ''


@pytest.mark.unit
class TestCurrencyAndDates:
    """Tests for money and date formatting"""

    def test_currency(self):
        assert format_currency(1234.5) == '$1,234.50'
        assert format_currency(0) == '$0.00'
        assert format_currency(None) == '$0.00'

    def test_negative_currency(self):
        assert format_currency(-12.3) == '-$12.30'

    def test_date_from_iso_string(self):
        assert format_date('2024-03-05') == '03/05/2024'

    def test_date_objects(self):
        assert format_date(date(2024, 12, 31)) == '12/31/2024'
        assert format_date(datetime(2024, 1, 2, 15, 30), '%Y-%m-%d') == '2024-01-02'

    def test_empty_date(self):
        assert format_date(None) == ''
        assert format_date('') == ''


@pytest.mark.unit
class TestNamesAndAddresses:

    def test_full_name(self):
        assert full_name('Jane', 'Doe') == 'Jane Doe'
        assert full_name('Jane', None) == 'Jane'

    def test_address_lines(self):
        assert format_address('12 Elm Street', 'Austin', 'TX', '78701') == '12 Elm Street\nAustin, TX 78701'

    def test_address_with_second_line(self):
        address = format_address('12 Elm Street', 'Austin', 'TX', '78701', 'Unit 4')
        assert address.split('\n') == ['12 Elm Street', 'Unit 4', 'Austin, TX 78701']
