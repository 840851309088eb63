"""
Applications Blueprint - Applicants, employment history, gaps and references

Employment edits recompute the applicant's gaps and required references
through the ApplicationSession; the resolved references are written back
after every change so the recruitment team always sees the current set.
"""

import logging
import sqlite3
from typing import Any, Dict, Optional

from flask import Blueprint, jsonify

from portal import database as db
from portal.logging_config import LogContext
from portal.timeline import parse_date
from .sessions import editable_error, json_object, load_session, not_an_object, save_session

logger = logging.getLogger(__name__)

applications_bp = Blueprint("applications", __name__)

REQUIRED_APPLICANT_FIELDS = ('first_name', 'last_name', 'email')

TEXT_EMPLOYMENT_FIELDS = tuple(
    f for f in db.EMPLOYMENT_FIELDS if f not in db.BOOLEAN_EMPLOYMENT_FIELDS
)


def _non_text_field(data: Dict[str, Any], fields) -> Optional[str]:
    """Name of the first field holding something other than a string or null."""
    for field in fields:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            return field
    return None


def _validate_employment(data: Dict[str, Any], partial: bool = False) -> Optional[str]:
    """Return an error message for an invalid employment payload, else None."""
    field = _non_text_field(data, TEXT_EMPLOYMENT_FIELDS)
    if field:
        return f'{field} must be a string'
    if not partial and not (data.get('employer') or '').strip():
        return 'Employer required'
    if not partial and not data.get('start_date'):
        return 'Start date required'

    for field in ('start_date', 'end_date'):
        if data.get(field) and parse_date(data[field]) is None:
            return f'Invalid {field}: expected YYYY-MM-DD'

    start = parse_date(data.get('start_date'))
    end = parse_date(data.get('end_date'))
    if start and end and end < start:
        return 'End date cannot be before start date'
    return None


def _normalize_employment(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = {k: v for k, v in data.items() if k in db.EMPLOYMENT_FIELDS}
    for field in ('start_date', 'end_date'):
        if field in fields:
            parsed = parse_date(fields[field])
            fields[field] = parsed.isoformat() if parsed else None
    for field in db.BOOLEAN_EMPLOYMENT_FIELDS:
        if field in fields:
            fields[field] = 1 if fields[field] else 0
    # A current job has no end date
    if fields.get('is_current'):
        fields['end_date'] = None
    return fields


def _refresh_references(conn, applicant_id: int) -> None:
    session = load_session(conn, applicant_id)
    save_session(conn, applicant_id, session)


# ============== Applicants ==============

@applications_bp.route('/applicants', methods=['POST'])
def create_applicant():
    """
    Start a new application.

    Route: POST /api/applicants

    Request Body (JSON):
        - first_name, last_name, email (required)
        - middle_name, phone, address, city, postcode,
          position_applied_for (optional)

    Returns:
        JSON: Applicant record, 201

    Raises:
        400: If a required field is missing
        409: If the email is already registered
    """
    data = json_object()
    if data is None:
        return not_an_object()

    field = _non_text_field(data, db.APPLICANT_FIELDS)
    if field:
        return jsonify({'error': f'{field} must be a string'}), 400

    missing = [f for f in REQUIRED_APPLICANT_FIELDS if not (data.get(f) or '').strip()]
    if missing:
        return jsonify({'error': f"Missing required field(s): {', '.join(missing)}"}), 400

    conn = db.get_db()
    try:
        applicant_id = db.create_applicant(conn, data)
        applicant = db.get_applicant(conn, applicant_id)
    except sqlite3.IntegrityError:
        return jsonify({'error': 'An application with this email already exists'}), 409
    finally:
        conn.close()

    return jsonify(applicant), 201


@applications_bp.route('/applicants/<int:applicant_id>', methods=['GET'])
def get_applicant(applicant_id):
    """
    Fetch an applicant.

    Route: GET /api/applicants/{applicant_id}
    """
    conn = db.get_db()
    try:
        applicant = db.get_applicant(conn, applicant_id)
    finally:
        conn.close()

    if applicant is None:
        return jsonify({'error': 'Applicant not found'}), 404
    return jsonify(applicant)


@applications_bp.route('/applicants/<int:applicant_id>', methods=['PATCH'])
def update_applicant(applicant_id):
    """
    Update personal details.

    Route: PATCH /api/applicants/{applicant_id}

    Only personal detail fields can be changed here; status changes go
    through submission. A submitted application is read-only.
    """
    data = json_object()
    if data is None:
        return not_an_object()

    field = _non_text_field(data, db.APPLICANT_FIELDS)
    if field:
        return jsonify({'error': f'{field} must be a string'}), 400
    fields = {k: v for k, v in data.items() if k in db.APPLICANT_FIELDS}

    conn = db.get_db()
    try:
        error = editable_error(db.get_applicant(conn, applicant_id))
        if error:
            return error
        applicant = db.update_applicant(conn, applicant_id, fields)
    except sqlite3.IntegrityError:
        return jsonify({'error': 'An application with this email already exists'}), 409
    finally:
        conn.close()

    return jsonify(applicant)


# ============== Employment ==============

@applications_bp.route('/applicants/<int:applicant_id>/employment', methods=['GET'])
def list_employment(applicant_id):
    """
    List employment history entries.

    Route: GET /api/applicants/{applicant_id}/employment

    Returns:
        JSON: {items: List of employment entries}
    """
    conn = db.get_db()
    try:
        if db.get_applicant(conn, applicant_id) is None:
            return jsonify({'error': 'Applicant not found'}), 404
        items = db.list_employment(conn, applicant_id)
    finally:
        conn.close()

    return jsonify({'items': items})


@applications_bp.route('/applicants/<int:applicant_id>/employment', methods=['POST'])
def add_employment(applicant_id):
    """
    Add an employment history entry.

    Route: POST /api/applicants/{applicant_id}/employment

    Request Body (JSON):
        - employer: Employer name (required)
        - start_date: YYYY-MM-DD (required)
        - end_date: YYYY-MM-DD (omit for the current job)
        - is_current, worked_with_vulnerable_people: booleans
        - position, duties, reason_for_leaving, employer_address,
          employer_phone, reference_name, reference_email,
          reference_phone (optional)

    Returns:
        JSON: {entry, gaps, required_references}, 201

    Examples:
        POST /api/applicants/1/employment
        {"employer": "County Care", "start_date": "2022-04-15", "is_current": true}
    """
    data = json_object()
    if data is None:
        return not_an_object()

    error = _validate_employment(data)
    if error:
        return jsonify({'error': error}), 400

    conn = db.get_db()
    try:
        locked = editable_error(db.get_applicant(conn, applicant_id))
        if locked:
            return locked

        with LogContext(logger, applicant_id=applicant_id):
            entry_id = db.create_employment(conn, applicant_id, _normalize_employment(data))
            session = load_session(conn, applicant_id)
            save_session(conn, applicant_id, session)
            snapshot = session.snapshot()
            entry = db.get_employment(conn, entry_id)
    finally:
        conn.close()

    return jsonify({
        'entry': entry,
        'gaps': snapshot['gaps'],
        'required_references': snapshot['required_references'],
    }), 201


@applications_bp.route('/employment/<int:entry_id>', methods=['PATCH'])
def update_employment(entry_id):
    """
    Edit an employment history entry.

    Route: PATCH /api/employment/{entry_id}

    Moving dates can orphan a saved gap explanation: the explanation stays
    stored but no longer counts towards the new gap.
    """
    data = json_object()
    if data is None:
        return not_an_object()

    error = _validate_employment(data, partial=True)
    if error:
        return jsonify({'error': error}), 400

    conn = db.get_db()
    try:
        existing = db.get_employment(conn, entry_id)
        if existing is None:
            return jsonify({'error': 'Employment entry not found'}), 404

        locked = editable_error(db.get_applicant(conn, existing['applicant_id']))
        if locked:
            return locked

        merged = {**existing, **data}
        if merged.get('is_current'):
            merged['end_date'] = None
        error = _validate_employment(merged)
        if error:
            return jsonify({'error': error}), 400

        fields = _normalize_employment(data)
        if merged.get('is_current'):
            fields['end_date'] = None
        entry = db.update_employment(conn, entry_id, fields)
        _refresh_references(conn, existing['applicant_id'])
    finally:
        conn.close()

    return jsonify(entry)


@applications_bp.route('/employment/<int:entry_id>', methods=['DELETE'])
def delete_employment(entry_id):
    """
    Remove an employment history entry.

    Route: DELETE /api/employment/{entry_id}

    Returns:
        JSON: {success: true}
    """
    conn = db.get_db()
    try:
        existing = db.get_employment(conn, entry_id)
        if existing is None:
            return jsonify({'error': 'Employment entry not found'}), 404

        locked = editable_error(db.get_applicant(conn, existing['applicant_id']))
        if locked:
            return locked

        db.delete_employment(conn, entry_id)
        _refresh_references(conn, existing['applicant_id'])
    finally:
        conn.close()

    return jsonify({'success': True})


# ============== Gaps ==============

@applications_bp.route('/applicants/<int:applicant_id>/gaps', methods=['GET'])
def get_gaps(applicant_id):
    """
    Employment gaps with the applicant's explanations.

    Route: GET /api/applicants/{applicant_id}/gaps

    Returns:
        JSON: {gaps, all_gaps_explained, orphaned_explanations}
    """
    conn = db.get_db()
    try:
        session = load_session(conn, applicant_id)
    finally:
        conn.close()

    if session is None:
        return jsonify({'error': 'Applicant not found'}), 404

    snapshot = session.snapshot()
    return jsonify({
        'gaps': snapshot['gaps'],
        'all_gaps_explained': snapshot['all_gaps_explained'],
        'orphaned_explanations': snapshot['orphaned_explanations'],
    })


@applications_bp.route('/applicants/<int:applicant_id>/gaps', methods=['PUT'])
def explain_gaps(applicant_id):
    """
    Save gap explanations.

    Route: PUT /api/applicants/{applicant_id}/gaps

    Request Body (JSON):
        - explanations: List of {start_date, end_date, explanation}

    Explanations are matched to gaps by their exact dates.

    Examples:
        PUT /api/applicants/1/gaps
        {"explanations": [{"start_date": "2020-07-01", "end_date": "2021-01-01",
                           "explanation": "Caring for a relative"}]}
    """
    data = json_object()
    if data is None:
        return not_an_object()

    explanations = data.get('explanations')
    if not isinstance(explanations, list):
        return jsonify({'error': 'explanations must be a list'}), 400

    parsed = []
    for item in explanations:
        start = parse_date(item.get('start_date')) if isinstance(item, dict) else None
        end = parse_date(item.get('end_date')) if isinstance(item, dict) else None
        if start is None or end is None:
            return jsonify({'error': 'Each explanation needs start_date and end_date'}), 400
        text = item.get('explanation')
        if text is not None and not isinstance(text, str):
            return jsonify({'error': 'explanation must be a string'}), 400
        parsed.append(((start, end), text or ''))

    conn = db.get_db()
    try:
        locked = editable_error(db.get_applicant(conn, applicant_id))
        if locked:
            return locked

        session = load_session(conn, applicant_id)
        for dates, text in parsed:
            session.explain_gap(dates, text)
        save_session(conn, applicant_id, session)
    finally:
        conn.close()

    logger.info(f"Saved {len(parsed)} gap explanation(s) for applicant {applicant_id}")
    snapshot = session.snapshot()
    return jsonify({
        'gaps': snapshot['gaps'],
        'all_gaps_explained': snapshot['all_gaps_explained'],
        'orphaned_explanations': snapshot['orphaned_explanations'],
    })


# ============== References ==============

@applications_bp.route('/applicants/<int:applicant_id>/references', methods=['GET'])
def get_references(applicant_id):
    """
    Employers that must supply a reference.

    Route: GET /api/applicants/{applicant_id}/references

    Returns:
        JSON: {required_references, last_two_employers, reference_policy,
               missing_contacts, tracking}

    tracking holds the stored reference rows with their lifecycle status.
    """
    conn = db.get_db()
    try:
        session = load_session(conn, applicant_id)
        tracking = db.list_required_references(conn, applicant_id)
    finally:
        conn.close()

    if session is None:
        return jsonify({'error': 'Applicant not found'}), 404

    snapshot = session.snapshot()
    return jsonify({
        'required_references': snapshot['required_references'],
        'last_two_employers': snapshot['last_two_employers'],
        'reference_policy': snapshot['reference_policy'],
        'missing_contacts': [p.id for p in session.missing_reference_contacts],
        'tracking': tracking,
    })


@applications_bp.route('/applicants/<int:applicant_id>/reference-policy', methods=['PATCH'])
def update_reference_policy(applicant_id):
    """
    Change which reference rules apply to this applicant.

    Route: PATCH /api/applicants/{applicant_id}/reference-policy

    Request Body (JSON): any of require_current_employer,
    require_previous_employer, require_vulnerable_work_employers

    Raises:
        400: Unknown setting or non-boolean value
    """
    data = json_object()
    if data is None:
        return not_an_object()

    conn = db.get_db()
    try:
        applicant = db.get_applicant(conn, applicant_id)
        locked = editable_error(applicant)
        if locked:
            return locked

        session = load_session(conn, applicant_id)
        try:
            policy = session.update_policy(data)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        db.save_reference_policy(conn, applicant_id, {**applicant['reference_policy'], **data})
        save_session(conn, applicant_id, session)
    finally:
        conn.close()

    logger.info(f"Reference policy for applicant {applicant_id} now {policy.to_dict()}")
    return jsonify({
        'reference_policy': policy.to_dict(),
        'required_references': [p.to_record() for p in session.required_references],
    })


@applications_bp.route('/references/<int:reference_id>', methods=['PATCH'])
def update_reference_status(reference_id):
    """
    Track a reference request through the recruitment team's checks.

    Route: PATCH /api/references/{reference_id}

    Request Body (JSON):
        - status: "requested", "received" or "verified"

    Status only moves forward (pending, requested, received, verified);
    steps may be skipped. Allowed after submission, since references are
    chased once the application is in.

    Raises:
        400: Unknown status or a move backwards
        404: Reference not found

    Examples:
        PATCH /api/references/3
        {"status": "received"}
    """
    data = json_object()
    if data is None:
        return not_an_object()

    status = data.get('status')
    if status not in db.REFERENCE_STATUSES:
        return jsonify({'error': f"status must be one of: {', '.join(db.REFERENCE_STATUSES)}"}), 400

    conn = db.get_db()
    try:
        reference = db.get_required_reference(conn, reference_id)
        if reference is None:
            return jsonify({'error': 'Reference not found'}), 404

        current = reference['status'] or 'pending'
        if db.REFERENCE_STATUSES.index(status) < db.REFERENCE_STATUSES.index(current):
            return jsonify({'error': f"Reference status cannot move from {current} back to {status}"}), 400

        if status != current:
            reference = db.update_reference_status(conn, reference_id, status)
    finally:
        conn.close()

    return jsonify(reference)
