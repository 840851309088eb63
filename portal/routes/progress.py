"""
Progress Blueprint - Step navigation and submission

Navigation that the stepper refuses (out of range, failed validation,
busy) is not an HTTP error: the response is 200 with success false and
the unchanged progress, and the client decides what to show.
"""

import asyncio
import logging
from datetime import datetime

from flask import Blueprint, jsonify

from portal import database as db
from portal.controller import EMPLOYMENT_STEP, REFERENCES_STEP
from portal.logging_config import LogContext
from .sessions import SUBMITTED, editable_error, json_object, load_session, not_an_object, save_session

logger = logging.getLogger(__name__)

progress_bp = Blueprint("progress", __name__)

GAPS_UNEXPLAINED = 'Every employment gap of 31 days or more needs an explanation'
REFERENCE_CONTACTS_MISSING = 'Every required reference needs a name and email address'


def _blocking_reason(session):
    """Explain why the current step cannot be left, for the client."""
    step = session.steps[session.navigator.current_step]
    if step.id == EMPLOYMENT_STEP and not session.all_gaps_explained:
        return GAPS_UNEXPLAINED
    if step.id == REFERENCES_STEP and session.missing_reference_contacts:
        return REFERENCE_CONTACTS_MISSING
    return None


@progress_bp.route('/applicants/<int:applicant_id>/progress', methods=['GET'])
def get_progress(applicant_id):
    """
    Current position in the application.

    Route: GET /api/applicants/{applicant_id}/progress

    Returns:
        JSON: {current_step, current_step_id, total_steps, is_first_step,
               is_last_step, completed_steps, is_finished, steps}
    """
    conn = db.get_db()
    try:
        session = load_session(conn, applicant_id)
    finally:
        conn.close()

    if session is None:
        return jsonify({'error': 'Applicant not found'}), 404
    return jsonify(session.progress_record())


@progress_bp.route('/applicants/<int:applicant_id>/progress/navigate', methods=['POST'])
def navigate(applicant_id):
    """
    Move to another step.

    Route: POST /api/applicants/{applicant_id}/progress/navigate

    Request Body (JSON), one of:
        - target: Step index to move to
        - direction: "next" or "previous"

    Returns:
        JSON: {success, progress, reason}

    Examples:
        POST /api/applicants/1/progress/navigate
        {"direction": "next"}
    """
    data = json_object()
    if data is None:
        return not_an_object()

    target = data.get('target')
    direction = data.get('direction')

    if target is None and direction not in ('next', 'previous'):
        return jsonify({'error': 'Provide a target step or a direction of next/previous'}), 400
    if target is not None and (isinstance(target, bool) or not isinstance(target, int)):
        return jsonify({'error': 'target must be an integer step index'}), 400

    conn = db.get_db()
    try:
        locked = editable_error(db.get_applicant(conn, applicant_id))
        if locked:
            return locked

        session = load_session(conn, applicant_id)

        with LogContext(logger, applicant_id=applicant_id):
            if target is not None:
                moved = asyncio.run(session.go_to_step(target))
            elif direction == 'next':
                moved = asyncio.run(session.next_step())
            else:
                moved = asyncio.run(session.previous_step())

            reason = None
            if moved:
                save_session(conn, applicant_id, session)
            else:
                reason = _blocking_reason(session) or 'Step is not available'
    finally:
        conn.close()

    return jsonify({
        'success': moved,
        'progress': session.progress_record(),
        'reason': reason,
    })


@progress_bp.route('/applicants/<int:applicant_id>/progress/complete', methods=['POST'])
def complete_step(applicant_id):
    """
    Mark a step complete without moving.

    Route: POST /api/applicants/{applicant_id}/progress/complete

    Request Body (JSON):
        - step: Step index
    """
    data = json_object()
    if data is None:
        return not_an_object()

    step = data.get('step')
    if isinstance(step, bool) or not isinstance(step, int):
        return jsonify({'error': 'step must be an integer step index'}), 400

    conn = db.get_db()
    try:
        locked = editable_error(db.get_applicant(conn, applicant_id))
        if locked:
            return locked

        session = load_session(conn, applicant_id)
        marked = session.mark_step_complete(step)
        if marked:
            save_session(conn, applicant_id, session)
    finally:
        conn.close()

    return jsonify({'success': marked, 'progress': session.progress_record()})


@progress_bp.route('/applicants/<int:applicant_id>/progress/reset', methods=['POST'])
def reset_progress(applicant_id):
    """
    Start the application again from the first step.

    Route: POST /api/applicants/{applicant_id}/progress/reset

    Entered data is kept; only the progress is cleared.
    Once submitted, an application can no longer be navigated or reset.
    """
    conn = db.get_db()
    try:
        locked = editable_error(db.get_applicant(conn, applicant_id))
        if locked:
            return locked

        session = load_session(conn, applicant_id)
        session.reset()
        save_session(conn, applicant_id, session)
    finally:
        conn.close()

    logger.info(f"Progress reset for applicant {applicant_id}")
    return jsonify({'success': True, 'progress': session.progress_record()})


@progress_bp.route('/applicants/<int:applicant_id>/submit', methods=['POST'])
def submit_application(applicant_id):
    """
    Submit the completed application.

    Route: POST /api/applicants/{applicant_id}/submit

    The applicant must be on the final step, the final step must validate,
    and every employment gap must be explained.

    Returns:
        JSON: {success, applicant, progress, reason}
    """
    conn = db.get_db()
    try:
        applicant = db.get_applicant(conn, applicant_id)
        locked = editable_error(applicant)
        if locked:
            return locked

        session = load_session(conn, applicant_id)

        reason = None
        if not session.all_gaps_explained:
            reason = GAPS_UNEXPLAINED
        elif session.missing_reference_contacts:
            reason = REFERENCE_CONTACTS_MISSING
        elif not session.submit():
            reason = 'Complete every step before submitting'

        if reason is None:
            save_session(conn, applicant_id, session)
            applicant = db.update_applicant(conn, applicant_id, {
                'status': SUBMITTED,
                'completed_at': datetime.now().isoformat(),
            })
            logger.info(f"Application {applicant_id} submitted")
    finally:
        conn.close()

    return jsonify({
        'success': reason is None,
        'applicant': applicant,
        'progress': session.progress_record(),
        'reason': reason,
    })
