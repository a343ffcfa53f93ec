"""
Services package for LawnBoss Admin.
Contains repository classes for database access and the outbound integrations.
"""

from services.crew_repository import CrewRepository
from services.customer_repository import CustomerRepository
from services.dashboard_service import DashboardService
from services.estimate_repository import EstimateRepository
from services.invoice_repository import InvoiceRepository
from services.messaging_service import MessagingService
from services.schedule_repository import ScheduleRepository
from services.tax_service import TaxService

__all__ = [
    'CrewRepository',
    'CustomerRepository',
    'DashboardService',
    'EstimateRepository',
    'InvoiceRepository',
    'MessagingService',
    'ScheduleRepository',
    'TaxService'
]
