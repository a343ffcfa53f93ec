"""
Tests for invoice and estimate PDF rendering
"""
import pytest
from conftest import make_completed_schedule
from services.estimate_repository import EstimateRepository
from services.invoice_repository import InvoiceRepository
from services.pdf_service import build_estimate_pdf, build_invoice_pdf


@pytest.mark.unit
class TestInvoicePdf:

    def test_renders_pdf(self, db_session, settings, property_id):
        schedule = make_completed_schedule(db_session, property_id, settings)
        repo = InvoiceRepository(db_session, settings=settings)
        invoice = repo.get_invoice(repo.create_invoice_from_schedule(schedule['id'])['id'])

        pdf = build_invoice_pdf(invoice, settings)
        assert pdf.startswith(b'%PDF')
        assert len(pdf) > 1000

    def test_minimal_invoice(self, settings):
        invoice = {
            'id': 'inv-1',
            'invoice_number': '20300301-001',
            'invoice_date': '2030-03-01',
            'due_date': '2030-03-31',
            'status': 'pending',
            'items': [],
            'notes': 'Gate code 1234\nBeware of dog',
        }
        assert build_invoice_pdf(invoice, settings).startswith(b'%PDF')


@pytest.mark.unit
class TestEstimatePdf:

    def test_renders_pdf(self, db_session, settings, customer, property_id):
        estimate = EstimateRepository(db_session, settings=settings).create_estimate({
            'customer_id': customer['id'],
            'property_id': property_id,
            'title': 'Spring cleanup',
            'description': 'Beds and borders',
            'valid_until': '2030-05-01',
            'items': [{'description': 'Mulch', 'quantity': 3, 'unit_price': 25, 'tax_rate': 8.25}],
        })
        settings['COMPANY_PHONE'] = '5551112222'
        assert build_estimate_pdf(estimate, settings).startswith(b'%PDF')
