"""
Pytest configuration and shared fixtures for the Carer Application Portal tests.
"""

import os
import sys
import pytest
import sqlite3
import yaml
from datetime import date

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


STEPS = [
    {"id": "privacy_notice", "label": "Privacy Notice"},
    {"id": "personal_info", "label": "Personal Info"},
    {"id": "education", "label": "Education"},
    {"id": "employment", "label": "Employment"},
    {"id": "skills", "label": "Skills"},
    {"id": "references", "label": "References"},
    {"id": "disciplinary", "label": "Disciplinary"},
    {"id": "declaration", "label": "Declaration"},
]


@pytest.fixture
def valid_config_dict():
    """
    A complete, valid configuration.

    Returns:
        dict: Configuration as it would appear in config.yaml
    """
    return {
        "organisation": {"name": "Test Foster Care", "contact_email": "jobs@example.org"},
        "application": {"steps": [dict(step) for step in STEPS]},
        "references": {
            "require_current_employer": True,
            "require_previous_employer": True,
            "require_vulnerable_work_employers": True,
        },
        "database": {"path": "applications.db"},
        "logging": {"level": "WARNING", "json": False},
    }


@pytest.fixture
def config_file(tmp_path, valid_config_dict):
    """
    Write the valid configuration to a temporary config.yaml.

    Yields:
        Path: Config file path
    """
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(valid_config_dict))
    yield path


@pytest.fixture
def db_path(tmp_path):
    """Temporary SQLite database path, initialized with the portal schema."""
    from portal.database import init_db

    path = tmp_path / "applications.db"
    init_db(path)
    return path


@pytest.fixture
def temp_db(db_path):
    """
    Open connection to a temporary database.

    Yields:
        sqlite3.Connection: Database connection with Row factory
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


@pytest.fixture
def app(config_file, tmp_path):
    """Flask app backed by a temporary database."""
    from portal import create_app

    app = create_app(config_path=config_file, database_path=tmp_path / "api.db")
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def applicant(client):
    """
    Create an applicant through the API.

    Returns:
        dict: The created applicant record
    """
    response = client.post("/api/applicants", json={
        "first_name": "Jane",
        "last_name": "Smith",
        "email": "jane.smith@example.com",
        "position_applied_for": "Foster Carer",
    })
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def application_steps():
    """Default application steps as ApplicationStep objects."""
    from portal.stepper import ApplicationStep

    return [ApplicationStep(**step) for step in STEPS]


@pytest.fixture
def sample_history():
    """
    Employment history with one unexplained gap.

    Social worker until mid-2020, six months off, then a current job
    from January 2021.

    Returns:
        list: EmploymentPeriod instances
    """
    from portal.timeline import EmploymentPeriod

    return [
        EmploymentPeriod(
            id=1,
            employer="City Social Services",
            start_date=date(2018, 7, 1),
            end_date=date(2020, 6, 30),
            worked_with_vulnerable_people=True,
            reference_name="Jane Wilson",
            reference_email="jane.wilson@citysocial.example",
        ),
        EmploymentPeriod(
            id=2,
            employer="County Care Services",
            start_date=date(2021, 1, 1),
            is_current=True,
            reference_name="Michael Roberts",
            reference_email="m.roberts@countycare.example",
        ),
    ]

