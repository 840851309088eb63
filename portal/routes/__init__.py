"""
Routes Package - Flask Blueprints for the Carer Application Portal

This module registers all Flask blueprints with the application.

Blueprint structure:
- main_bp: Dashboard and health check
- applications_bp: Applicants, employment history, gaps and references
- progress_bp: Step navigation and submission
"""

import logging

logger = logging.getLogger(__name__)


def register_all_blueprints(app):
    """
    Register all Flask blueprints with the application.

    Args:
        app: Flask application instance
    """
    from .main import main_bp
    from .applications import applications_bp
    from .progress import progress_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(applications_bp, url_prefix="/api")
    app.register_blueprint(progress_bp, url_prefix="/api")
    logger.info("Registered blueprints: main, applications, progress")


__all__ = [
    "register_all_blueprints",
]
