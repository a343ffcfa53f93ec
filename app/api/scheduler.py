"""
Scheduler Routes Blueprint

Handles background job scheduler:
- /api/scheduler/status: Get scheduler status
- /api/scheduler/run/<job_id>: Manually trigger a job
"""

import logging
from flask import Blueprint, jsonify

from auth import login_required, permission_required
from services.scheduler import get_scheduler

logger = logging.getLogger(__name__)

# Create blueprint
scheduler_bp = Blueprint('scheduler_bp', __name__)


@scheduler_bp.route('/api/scheduler/status', methods=['GET'])
@login_required
def get_scheduler_status():
    """Get the status of background jobs."""
    scheduler = get_scheduler()
    return jsonify({
        'success': True,
        'running': scheduler.running,
        'jobs': scheduler.get_job_status()
    })


@scheduler_bp.route('/api/scheduler/run/<job_id>', methods=['POST'])
@permission_required('scheduler.run')
def run_scheduler_job(job_id):
    """Run a registered job on the request thread."""
    scheduler = get_scheduler()
    jobs = scheduler.get_job_status()
    if job_id not in jobs:
        return jsonify({'success': False, 'error': 'Job not found'}), 404

    if scheduler.run_job_now(job_id):
        result = scheduler.get_job_status()[job_id]['last_result']
        return jsonify({'success': True, 'message': f'Job {job_id} executed', 'result': result})

    error = scheduler.get_job_status()[job_id]['last_error']
    logger.error(f"Manual run of job {job_id} failed: {error}")
    return jsonify({'success': False, 'error': error}), 500
