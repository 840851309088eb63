"""
Main Routes Blueprint - Dashboard and health check
"""

import logging

from flask import Blueprint, current_app, jsonify

from portal import database as db
from portal.startup import get_health_status

logger = logging.getLogger(__name__)

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def dashboard():
    """
    Recruitment dashboard: every application with its status and progress.

    Route: GET /

    Returns:
        JSON: {organisation, total_steps, applications: [...]}
    """
    config = current_app.config["PORTAL_CONFIG"]
    steps = config.steps

    conn = db.get_db()
    try:
        applications = []
        for applicant in db.list_applicants(conn):
            progress = db.get_progress(conn, applicant['id']) or {'current_step': 0, 'completed_steps': []}
            current = progress['current_step'] if 0 <= progress['current_step'] < len(steps) else 0
            applications.append({
                'id': applicant['id'],
                'name': f"{applicant['first_name']} {applicant['last_name']}",
                'email': applicant['email'],
                'position_applied_for': applicant['position_applied_for'],
                'status': applicant['status'],
                'current_step': steps[current]['label'],
                'completed_steps': len(progress['completed_steps']),
                'created_at': applicant['created_at'],
                'completed_at': applicant['completed_at'],
            })
    finally:
        conn.close()

    return jsonify({
        'organisation': config.organisation_name,
        'total_steps': len(steps),
        'applications': applications,
    })


@main_bp.route("/api/health")
def health():
    """
    Health check.

    Route: GET /api/health
    """
    status = get_health_status(current_app.config["DATABASE_PATH"])
    code = 200 if status["status"] == "healthy" else 503
    return jsonify(status), code
