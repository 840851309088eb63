#!/usr/bin/env python3
"""
Carer Application Portal - Main Entry Point

Uses the application factory pattern via portal.create_app().

Usage:
    python run.py

Environment Variables:
    FLASK_ENV: development (default), production, testing
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (optional)
    PORT: Port to listen on (default 5000)
"""

import os
import sys
from pathlib import Path

APP_DIR = Path(__file__).parent

# Load environment variables from .env file
from dotenv import load_dotenv

load_dotenv(APP_DIR / ".env")

# Initialize logging first
from portal.logging_config import setup_logging, get_logger

flask_env = os.environ.get("FLASK_ENV", "development")
log_level = os.environ.get("LOG_LEVEL")
json_logs = flask_env == "production"

setup_logging(level=log_level, json_logs=json_logs)
logger = get_logger(__name__)


def main():
    """Main entry point for the Carer Application Portal."""

    logger.info("=" * 60)
    logger.info("Carer Application Portal - Starting Up")
    logger.info("=" * 60)

    from portal.startup import run_startup_validation
    from portal.config import get_config

    config_path = APP_DIR / "config.yaml"

    logger.info("Running startup validation...")
    try:
        db_path = get_config(config_path).database_path
    except (FileNotFoundError, ValueError):
        db_path = None  # reported by the configuration check below

    validation_passed, results = run_startup_validation(
        strict=False, log_results=True, config_path=config_path, db_path=db_path
    )

    if not validation_passed:
        logger.error("Startup validation failed. Please fix the errors above.")
        sys.exit(1)

    from portal import create_app

    app = create_app(config_path)
    config = app.config["PORTAL_CONFIG"]

    # LOG_LEVEL from the environment wins over config.yaml
    if not log_level and (config.log_level or config.json_logs):
        setup_logging(level=config.log_level, json_logs=json_logs or config.json_logs)

    port = int(os.environ.get("PORT", 5000))

    logger.info("")
    logger.info("=" * 60)
    logger.info(f"  {config.organisation_name} - Application Portal")
    logger.info("=" * 60)
    logger.info(f"  Environment: {flask_env}")
    logger.info(f"  Configuration: {config.config_path}")
    logger.info(f"  Database: {app.config['DATABASE_PATH']}")
    logger.info(f"  Steps: {', '.join(step['label'] for step in config.steps)}")
    logger.info("")
    logger.info(f"  Dashboard: http://localhost:{port}")
    logger.info(f"  Health Check: http://localhost:{port}/api/health")
    logger.info("=" * 60)
    logger.info("")

    debug_mode = flask_env != "production"
    app.run(debug=debug_mode, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
