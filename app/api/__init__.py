"""
API Blueprints Package

All HTTP route handlers for the application, organized by domain.
Each module defines a Flask Blueprint registered in app/__init__.py.

BLUEPRINT REFERENCE:
====================

Customers & Field Work:
- customers.py  : Customers and their properties, property service history
- crews.py      : Technicians, crews, crew members, crew assignments
- schedules.py  : Service types, service schedules, recurring instances

Billing:
- estimates.py  : Estimates, status changes, PDF, sending
- invoices.py   : Invoices, payments, invoicing completed services, PDF, sending
- tax.py        : Tax configurations and tax calculation

Communication:
- messages.py   : Composed email/SMS, message history, delivery logs, providers

Other:
- auth_routes.py: Authentication (/api/auth/*) and staff accounts
- dashboard.py  : Dashboard metrics and activity feed
- live.py       : Server-Sent Events streams of live lists
- scheduler.py  : Background job status and manual runs
"""

# All blueprints are imported and registered in app/__init__.py
# This file serves as documentation only

__all__ = []
