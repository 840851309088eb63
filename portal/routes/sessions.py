"""
Session loading and saving for API requests.

Each request rebuilds an ApplicationSession from the database, runs one
operation on it, and writes the resulting records back. The helpers here
also cover what every mutating endpoint checks first: a JSON object body
and an application that has not been submitted yet.
"""

import logging
from typing import Any, Dict, Optional

from flask import current_app, jsonify, request

from portal import database as db
from portal.controller import ApplicationSession
from portal.stepper import ApplicationStep
from portal.timeline import EmploymentPeriod, ReferencePolicy

logger = logging.getLogger(__name__)

SUBMITTED = 'submitted'


def json_object() -> Optional[Dict[str, Any]]:
    """
    Request body as a dict.

    Returns:
        The parsed object, {} for an empty or unparseable body, or None
        when the body is JSON but not an object (a list, a number, ...)
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def not_an_object():
    return jsonify({'error': 'Request body must be a JSON object'}), 400


def editable_error(applicant: Optional[Dict[str, Any]]):
    """404 for a missing applicant, 409 once submitted, else None."""
    if applicant is None:
        return jsonify({'error': 'Applicant not found'}), 404
    if applicant['status'] == SUBMITTED:
        return jsonify({'error': 'Application already submitted'}), 409
    return None


def configured_steps():
    config = current_app.config["PORTAL_CONFIG"]
    return [ApplicationStep(id=step['id'], label=step['label']) for step in config.steps]


def load_session(conn, applicant_id: int) -> Optional[ApplicationSession]:
    """
    Build the session for an applicant.

    Returns:
        ApplicationSession, or None if the applicant does not exist
    """
    applicant = db.get_applicant(conn, applicant_id)
    if applicant is None:
        return None

    config = current_app.config["PORTAL_CONFIG"]
    policy = ReferencePolicy.from_dict({
        **config.reference_policy,
        **applicant['reference_policy'],
    })

    return ApplicationSession(
        steps=configured_steps(),
        periods=[EmploymentPeriod.from_record(r) for r in db.list_employment(conn, applicant_id)],
        persisted_explanations=db.list_gap_explanations(conn, applicant_id),
        policy=policy,
        progress=db.get_progress(conn, applicant_id),
    )


def save_session(conn, applicant_id: int, session: ApplicationSession) -> None:
    """Persist explanations, resolved references and progress."""
    records = session.save_records()
    db.save_gap_explanations(conn, applicant_id, records['explanations'])
    db.sync_required_references(conn, applicant_id, records['required_references'])
    db.save_progress(conn, applicant_id, records['progress'])
    logger.debug(f"Saved session for applicant {applicant_id}")
