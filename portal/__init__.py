"""
Carer Application Portal - Application Factory

Back end for the multi-step carer job application: employment history
checks, reference requirements and application progress.
"""

import logging
from flask import Flask
from flask_cors import CORS

from portal.config import get_config
from portal.database import init_db

logger = logging.getLogger(__name__)


def create_app(config_path=None, database_path=None):
    """
    Application factory for creating Flask app instances.

    Args:
        config_path: Optional path to config.yaml file
        database_path: Optional SQLite path overriding the configured one

    Returns:
        Configured Flask application instance
    """
    # Load environment variables
    from dotenv import load_dotenv

    load_dotenv()

    # Load configuration
    try:
        config = get_config(config_path)
    except FileNotFoundError as e:
        logger.error(f"Configuration Error: {e}")
        raise

    app = Flask(__name__)

    CORS(app)

    app.config["PORTAL_CONFIG"] = config
    app.config["DATABASE_PATH"] = str(database_path or config.database_path)

    init_db(app.config["DATABASE_PATH"])

    register_blueprints(app)

    return app


def register_blueprints(app):
    """Register all Flask blueprints."""
    from portal.routes import register_all_blueprints

    register_all_blueprints(app)
