"""
Tests for invoices, payments and overdue tracking
"""
import re
import pytest
from datetime import date
from conftest import make_customer, make_completed_schedule, make_schedule, service_type_id
from database.models import Invoice, Property, ServiceSchedule, ServiceType
from services.estimate_repository import EstimateRepository
from services.schedule_repository import ScheduleRepository
from services.errors import NotFoundError, ServiceError
from services.invoice_repository import InvoiceRepository, generate_invoice_number, refresh_status
from validators import ValidationError


@pytest.fixture
def repo(db_session, settings):
    return InvoiceRepository(db_session, 'user-1', settings)


@pytest.fixture
def manual_invoice(repo, customer, property_id):
    return repo.create_invoice({
        'customer_id': customer['id'],
        'property_id': property_id,
        'invoice_date': '2030-03-01',
        'items': [
            {'description': 'Hedge trimming', 'quantity': 2, 'unit_price': 50},
            {'description': 'Disposal fee', 'quantity': 1, 'unit_price': 20, 'tax_rate': 0},
        ],
    })


@pytest.mark.unit
class TestInvoiceHelpers:
    """Tests for invoice numbering and status derivation"""

    def test_invoice_number_format(self):
        number = generate_invoice_number(date(2030, 3, 1))
        assert re.fullmatch(r'20300301-\d{3}', number)

    def test_refresh_status_paid(self):
        invoice = Invoice(total=100, amount_paid=100, status='pending', due_date=date(2030, 1, 1))
        assert refresh_status(invoice, today=date(2030, 2, 1)) == 'paid'
        assert invoice.balance == 0

    def test_refresh_status_overdue(self):
        invoice = Invoice(total=100, amount_paid=40, status='sent', due_date=date(2030, 1, 1))
        assert refresh_status(invoice, today=date(2030, 1, 2)) == 'overdue'
        assert invoice.balance == 60

    def test_refresh_status_due_today_is_not_overdue(self):
        invoice = Invoice(total=100, amount_paid=0, status='pending', due_date=date(2030, 1, 1))
        assert refresh_status(invoice, today=date(2030, 1, 1)) == 'pending'

    def test_cancelled_untouched(self):
        invoice = Invoice(total=100, amount_paid=0, status='cancelled', due_date=date(2030, 1, 1))
        assert refresh_status(invoice, today=date(2031, 1, 1)) == 'cancelled'

    def test_number_collisions_give_up(self, repo, manual_invoice, monkeypatch):
        monkeypatch.setattr('services.invoice_repository.generate_invoice_number',
                            lambda invoice_date=None: manual_invoice['invoice_number'])
        with pytest.raises(ServiceError):
            repo._next_invoice_number(date(2030, 3, 1))


@pytest.mark.unit
class TestInvoiceFromSchedule:
    """Tests for invoicing completed services"""

    def test_invoice_completed_service(self, db_session, repo, property_id, settings):
        schedule = make_completed_schedule(db_session, property_id, settings)
        invoice = repo.create_invoice_from_schedule(schedule['id'], {'invoice_date': '2030-03-01'})

        assert invoice['subtotal'] == 65.0
        assert invoice['tax_amount'] == 0.0
        assert invoice['total'] == 65.0
        assert invoice['balance'] == 65.0
        assert invoice['due_date'] == '2030-03-31'
        assert invoice['status'] == 'pending'
        assert invoice['items'][0]['tax_rate'] == 0.0
        assert db_session.get(ServiceSchedule, schedule['id']).invoice_id == invoice['id']

    def test_only_completed(self, db_session, repo, property_id, settings):
        schedule = make_schedule(db_session, property_id, settings)
        with pytest.raises(ValidationError) as exc:
            repo.create_invoice_from_schedule(schedule['id'])
        assert exc.value.message == 'Only completed services can be invoiced'

    def test_only_once(self, db_session, repo, property_id, settings):
        schedule = make_completed_schedule(db_session, property_id, settings)
        repo.create_invoice_from_schedule(schedule['id'])
        with pytest.raises(ValidationError) as exc:
            repo.create_invoice_from_schedule(schedule['id'])
        assert exc.value.message == 'This service has already been invoiced'

    def test_tax_exempt_customer(self, db_session, repo, settings):
        customer = make_customer(db_session, tax_exempt=True)
        schedule = make_completed_schedule(db_session, customer['properties'][0]['id'], settings)
        invoice = repo.create_invoice_from_schedule(schedule['id'])
        assert invoice['tax_amount'] == 0.0
        assert invoice['tax_exempt'] is True

    @pytest.mark.parametrize('rate,tax_amount', [(0.1, 6.5), (0, 0.0)])
    def test_service_type_rate_wins_over_default(self, db_session, repo, property_id, settings, rate, tax_amount):
        ScheduleRepository(db_session, settings=settings).update_service_type(
            service_type_id(db_session), {'tax_rate': rate}
        )
        schedule = make_completed_schedule(db_session, property_id, settings)
        assert repo.create_invoice_from_schedule(schedule['id'])['tax_amount'] == tax_amount

    def test_default_rate_when_service_type_has_none(self, db_session, repo, property_id, settings):
        db_session.get(ServiceType, service_type_id(db_session)).tax_rate = None
        schedule = make_completed_schedule(db_session, property_id, settings)
        invoice = repo.create_invoice_from_schedule(schedule['id'])
        assert invoice['tax_amount'] == 4.55
        assert invoice['total'] == 69.55

    def test_estimate_and_invoice_agree_on_tax(self, db_session, repo, property_id, settings):
        customer_id = db_session.get(Property, property_id).customer_id
        estimate = EstimateRepository(db_session, settings=settings).create_estimate({
            'customer_id': customer_id,
            'property_id': property_id,
            'title': 'Weekly mowing',
            'items': [{'service_type_id': service_type_id(db_session)}],
        })
        schedule = make_completed_schedule(db_session, property_id, settings)
        invoice = repo.create_invoice_from_schedule(schedule['id'])
        assert estimate['tax_amount'] == invoice['tax_amount']

    def test_unknown_schedule(self, repo):
        with pytest.raises(NotFoundError):
            repo.create_invoice_from_schedule('missing')


@pytest.mark.unit
class TestManualInvoice:

    def test_item_rates(self, manual_invoice):
        assert manual_invoice['subtotal'] == 120.0
        assert manual_invoice['tax_amount'] == 7.0
        assert manual_invoice['total'] == 127.0

    def test_requires_items(self, repo, customer):
        with pytest.raises(ValidationError):
            repo.create_invoice({'customer_id': customer['id'], 'items': []})

    def test_past_due_date_rejected(self, repo, customer):
        with pytest.raises(ValidationError) as exc:
            repo.create_invoice({
                'customer_id': customer['id'],
                'invoice_date': '2030-03-01',
                'due_date': '2030-02-01',
                'items': [{'description': 'Mowing', 'unit_price': 40}],
            })
        assert exc.value.field == 'due_date'

    def test_property_of_other_customer(self, db_session, repo, customer):
        other = make_customer(db_session, email='other@example.com', billing_address='5 Birch Lane')
        with pytest.raises(ValidationError):
            repo.create_invoice({
                'customer_id': customer['id'],
                'property_id': other['properties'][0]['id'],
                'items': [{'description': 'Mowing', 'unit_price': 40}],
            })

    def test_old_invoice_starts_overdue(self, repo, customer):
        invoice = repo.create_invoice({
            'customer_id': customer['id'],
            'invoice_date': '2020-01-01',
            'items': [{'description': 'Mowing', 'unit_price': 40}],
        })
        assert invoice['status'] == 'overdue'


@pytest.mark.unit
class TestPayments:
    """Tests for recording payments"""

    def test_partial_payment(self, repo, manual_invoice):
        invoice = repo.record_payment(manual_invoice['id'], 27, 'check', '2030-03-05')
        assert invoice['amount_paid'] == 27.0
        assert invoice['balance'] == 100.0
        assert invoice['status'] == 'pending'
        assert invoice['payment_date'] == '2030-03-05'

    def test_full_payment(self, repo, manual_invoice):
        repo.record_payment(manual_invoice['id'], 100, 'cash')
        invoice = repo.record_payment(manual_invoice['id'], 27, 'cash')
        assert invoice['status'] == 'paid'
        assert invoice['balance'] == 0.0

    def test_overpayment_rejected(self, repo, manual_invoice):
        with pytest.raises(ValidationError) as exc:
            repo.record_payment(manual_invoice['id'], 127.01, 'cash')
        assert exc.value.message == 'Amount paid cannot exceed the invoice total'

    @pytest.mark.parametrize('amount', [0, -5, 'abc'])
    def test_invalid_amount(self, repo, manual_invoice, amount):
        with pytest.raises(ValidationError):
            repo.record_payment(manual_invoice['id'], amount, 'cash')

    def test_invalid_method(self, repo, manual_invoice):
        with pytest.raises(ValidationError) as exc:
            repo.record_payment(manual_invoice['id'], 10, 'bitcoin')
        assert exc.value.field == 'payment_method'

    def test_cancelled_invoice(self, repo, manual_invoice):
        repo.cancel_invoice(manual_invoice['id'])
        with pytest.raises(ValidationError):
            repo.record_payment(manual_invoice['id'], 10, 'cash')


@pytest.mark.unit
class TestInvoiceLifecycle:

    def test_mark_sent(self, repo, manual_invoice):
        assert repo.mark_sent(manual_invoice['id'])['status'] == 'sent'

    def test_mark_sent_keeps_paid(self, repo, manual_invoice):
        repo.record_payment(manual_invoice['id'], 127, 'cash')
        assert repo.mark_sent(manual_invoice['id'])['status'] == 'paid'

    def test_extend_due_date_clears_overdue(self, repo, customer):
        invoice = repo.create_invoice({
            'customer_id': customer['id'],
            'invoice_date': '2020-01-01',
            'items': [{'description': 'Mowing', 'unit_price': 40}],
        })
        updated = repo.update_invoice(invoice['id'], {'due_date': '2099-01-01'})
        assert updated['status'] == 'pending'

    def test_mark_overdue(self, repo, manual_invoice):
        assert repo.mark_overdue_invoices(today=date(2030, 4, 1)) == 1
        assert repo.get_invoice(manual_invoice['id'])['status'] == 'overdue'
        assert repo.mark_overdue_invoices(today=date(2030, 4, 2)) == 0

    def test_paid_invoices_never_overdue(self, repo, manual_invoice):
        repo.record_payment(manual_invoice['id'], 127, 'cash')
        assert repo.mark_overdue_invoices(today=date(2031, 1, 1)) == 0

    def test_cancel_releases_service(self, db_session, repo, property_id, settings):
        schedule = make_completed_schedule(db_session, property_id, settings)
        invoice = repo.create_invoice_from_schedule(schedule['id'])

        assert repo.cancel_invoice(invoice['id'])['status'] == 'cancelled'
        assert db_session.get(ServiceSchedule, schedule['id']).invoice_id is None
        assert repo.create_invoice_from_schedule(schedule['id'])['id'] != invoice['id']

    def test_cancel_through_update_releases_service(self, db_session, repo, property_id, settings):
        schedule = make_completed_schedule(db_session, property_id, settings)
        invoice = repo.create_invoice_from_schedule(schedule['id'])

        assert repo.update_invoice(invoice['id'], {'status': 'cancelled'})['status'] == 'cancelled'
        assert db_session.get(ServiceSchedule, schedule['id']).invoice_id is None
        assert repo.create_invoice_from_schedule(schedule['id'])['service_schedule_id'] == schedule['id']

    def test_paid_cannot_be_cancelled_through_update(self, repo, manual_invoice):
        repo.record_payment(manual_invoice['id'], 127, 'cash')
        with pytest.raises(ValidationError):
            repo.update_invoice(manual_invoice['id'], {'status': 'cancelled'})

    def test_paid_cannot_be_cancelled(self, repo, manual_invoice):
        repo.record_payment(manual_invoice['id'], 127, 'cash')
        with pytest.raises(ValidationError):
            repo.cancel_invoice(manual_invoice['id'])

    def test_delete_unpaid(self, db_session, repo, manual_invoice):
        repo.delete_invoice(manual_invoice['id'])
        assert db_session.get(Invoice, manual_invoice['id']) is None

    def test_delete_with_payment_blocked(self, repo, manual_invoice):
        repo.record_payment(manual_invoice['id'], 10, 'cash')
        with pytest.raises(ValidationError):
            repo.delete_invoice(manual_invoice['id'])


@pytest.mark.unit
class TestInvoiceQueries:

    def test_list_and_search(self, repo, manual_invoice):
        records = repo.list_invoices(search=manual_invoice['invoice_number'])
        assert [r['id'] for r in records] == [manual_invoice['id']]
        assert repo.list_invoices(status='paid') == []

    def test_summaries(self, db_session, repo, manual_invoice):
        make_customer(db_session, first_name='Al', last_name='Zed', email='al@example.com',
                      billing_address='1 Last Road')
        repo.record_payment(manual_invoice['id'], 27, 'cash')

        summaries = repo.get_invoice_summaries()
        assert [s['customer_name'] for s in summaries] == ['Jane Doe', 'Al Zed']
        jane = summaries[0]
        assert jane['total_invoices'] == 1
        assert jane['pending_invoices'] == 1
        assert jane['total_billed'] == 127.0
        assert jane['total_paid'] == 27.0
        assert jane['total_outstanding'] == 100.0
        assert jane['next_due_date'] == '2030-03-31'
        assert summaries[1]['total_invoices'] == 0
        assert summaries[1]['next_due_date'] is None


@pytest.mark.unit
class TestInvoiceContent:

    def test_sms(self, repo, manual_invoice):
        sms = repo.build_invoice_sms(manual_invoice)
        assert sms == (f"New invoice #{manual_invoice['invoice_number']} for $127.00 has been created. "
                       f"Due date: 03/31/2030.")

    def test_email(self, repo, manual_invoice):
        content = repo.build_invoice_email(manual_invoice)
        assert content['subject'] == f"Invoice #{manual_invoice['invoice_number']} from LawnBoss"
        assert 'Hedge trimming' in content['text']
        assert 'Tax (7.0%)' in content['text']
        assert f"/invoices/{manual_invoice['id']}/view" in content['html']
