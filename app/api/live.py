"""
Live Data Routes Blueprint

- /api/live/<resource>: Server-Sent Events stream of a resource list

The stream sends the full list on connect and again after every committed
change to the resource's table (debounced). Comment lines keep idle
connections open.
"""

import json
import logging
import queue

from flask import Blueprint, Response, jsonify, current_app, stream_with_context

from auth import login_required, has_permission
from database.connection import get_db_session
from services.customer_repository import CustomerRepository
from services.crew_repository import CrewRepository
from services.estimate_repository import EstimateRepository
from services.invoice_repository import InvoiceRepository
from services.live_data import LiveCollection
from services.schedule_repository import ScheduleRepository

logger = logging.getLogger(__name__)

# Create blueprint
live_bp = Blueprint('live_bp', __name__)

# resource -> (table, permission, fetch(session, settings))
LIVE_RESOURCES = {
    'customers': ('customers', 'customers.read',
                  lambda db, settings: CustomerRepository(db).list_customers()),
    'properties': ('properties', 'customers.read',
                   lambda db, settings: CustomerRepository(db).list_properties()),
    'technicians': ('technicians', 'crews.read',
                    lambda db, settings: CrewRepository(db).list_technicians()),
    'crews': ('crews', 'crews.read',
              lambda db, settings: CrewRepository(db).list_crews()),
    'schedules': ('service_schedules', 'schedules.read',
                  lambda db, settings: ScheduleRepository(db, settings=settings).list_schedules()),
    'estimates': ('estimates', 'estimates.read',
                  lambda db, settings: EstimateRepository(db, settings=settings).list_estimates()),
    'invoices': ('invoices', 'invoices.read',
                 lambda db, settings: InvoiceRepository(db, settings=settings).list_invoices()),
}


def _event(event_type, payload):
    return f"event: {event_type}\ndata: {json.dumps(payload, default=str)}\n\n"


def _fetcher(resource, settings):
    _, _, fetch = LIVE_RESOURCES[resource]

    def load():
        with get_db_session() as db:
            return fetch(db, settings)
    return load


@live_bp.route('/api/live', methods=['GET'])
@login_required
def list_live_resources():
    return jsonify({'success': True, 'resources': sorted(LIVE_RESOURCES)})


@live_bp.route('/api/live/<resource>', methods=['GET'])
@login_required
def stream_resource(resource):
    """Stream a resource list. Events: snapshot (full list), error (refetch failed)."""
    if resource not in LIVE_RESOURCES:
        return jsonify({'success': False, 'error': f'Unknown live resource: {resource}'}), 404

    table, permission, _ = LIVE_RESOURCES[resource]
    if not has_permission(permission):
        return jsonify({'success': False, 'error': 'Permission denied'}), 403

    settings = dict(current_app.config)
    keepalive = settings.get('REALTIME_KEEPALIVE_SECONDS', 15)
    updates = queue.Queue()

    collection = LiveCollection(
        table,
        _fetcher(resource, settings),
        debounce_seconds=settings.get('REALTIME_DEBOUNCE_SECONDS', 0.1)
    )
    collection.on_change(updates.put)

    def generate():
        collection.start(initial_fetch=False)
        logger.info(f"Live stream opened for {resource}")
        try:
            items = collection.refresh()
            if collection.error:
                yield _event('error', {'resource': resource, 'error': collection.error})
            else:
                # refresh() already queued this list for listeners
                updates.get_nowait()
                yield _event('snapshot', {'resource': resource, 'items': items})

            while True:
                try:
                    items = updates.get(timeout=keepalive)
                except queue.Empty:
                    yield ': keepalive\n\n'
                    continue
                yield _event('snapshot', {'resource': resource, 'items': items})
        finally:
            collection.stop()
            logger.info(f"Live stream closed for {resource}")

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no'
        }
    )
