"""
Startup validation and health checks for the Carer Application Portal.

Validates configuration, database and dependencies before the
application starts.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from portal.logging_config import get_logger

logger = get_logger(__name__)

CRITICAL_TABLES = [
    "applicants",
    "employment_entries",
    "employment_gaps",
    "required_references",
    "application_progress",
]


class ValidationResult:
    """Result of a validation check."""

    def __init__(
        self,
        name: str,
        passed: bool,
        message: str,
        severity: str = "error",  # error, warning, info
        fix_hint: Optional[str] = None,
    ):
        self.name = name
        self.passed = passed
        self.message = message
        self.severity = severity
        self.fix_hint = fix_hint

    def __str__(self) -> str:
        status = "PASS" if self.passed else self.severity.upper()
        return f"[{status}] {self.name}: {self.message}"


def validate_configuration(config_path: Optional[Path] = None) -> List[ValidationResult]:
    """
    Validate that config.yaml exists and is well formed.

    Returns:
        List of validation results
    """
    from portal.config import Config

    results = []

    try:
        config = Config(config_path)
        results.append(
            ValidationResult(
                name="Configuration",
                passed=True,
                message=f"Loaded {config.config_path} ({len(config.steps)} application steps)",
                severity="info",
            )
        )
    except FileNotFoundError as e:
        results.append(
            ValidationResult(
                name="Configuration",
                passed=False,
                message=str(e).splitlines()[0],
                severity="error",
                fix_hint="Copy config.example.yaml to config.yaml",
            )
        )
    except ValueError as e:
        results.append(
            ValidationResult(
                name="Configuration",
                passed=False,
                message=f"Invalid configuration: {e}",
                severity="error",
            )
        )

    flask_env = os.environ.get("FLASK_ENV", "development")
    results.append(
        ValidationResult(
            name="Flask Environment",
            passed=True,
            message=f"Running in {flask_env} mode",
            severity="info",
        )
    )

    return results


def validate_database(db_path=None) -> List[ValidationResult]:
    """
    Validate database connection and schema.

    Returns:
        List of validation results
    """
    from portal.database import init_db, get_db

    results = []

    try:
        init_db(db_path)

        results.append(
            ValidationResult(
                name="Database Connection",
                passed=True,
                message="Database initialized successfully",
                severity="info",
            )
        )

        conn = get_db(db_path)
        try:
            for table in CRITICAL_TABLES:
                row = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
                ).fetchone()
                if row:
                    results.append(
                        ValidationResult(
                            name=f"Table: {table}",
                            passed=True,
                            message=f"Table '{table}' exists",
                            severity="info",
                        )
                    )
                else:
                    results.append(
                        ValidationResult(
                            name=f"Table: {table}",
                            passed=False,
                            message=f"Critical table '{table}' missing",
                            severity="error",
                        )
                    )
        finally:
            conn.close()

    except Exception as e:
        results.append(
            ValidationResult(
                name="Database Connection",
                passed=False,
                message=f"Database error: {e}",
                severity="error",
                fix_hint="Check database file permissions and integrity",
            )
        )

    return results


def validate_dependencies() -> List[ValidationResult]:
    """
    Validate Python package dependencies.

    Returns:
        List of validation results
    """
    results = []

    critical_packages = [
        ("flask", "Flask web framework"),
        ("flask_cors", "Flask CORS extension"),
        ("yaml", "PyYAML configuration parser"),
        ("dotenv", "python-dotenv environment loader"),
    ]

    for package, description in critical_packages:
        try:
            __import__(package)
            results.append(
                ValidationResult(
                    name=f"Package: {package}",
                    passed=True,
                    message=f"{description} available",
                    severity="info",
                )
            )
        except ImportError:
            results.append(
                ValidationResult(
                    name=f"Package: {package}",
                    passed=False,
                    message=f"{description} not installed",
                    severity="error",
                    fix_hint=f"Run: pip install {package}",
                )
            )

    return results


def run_startup_validation(
    strict: bool = False,
    log_results: bool = True,
    config_path: Optional[Path] = None,
    db_path=None,
) -> Tuple[bool, List[ValidationResult]]:
    """
    Run all startup validations.

    Args:
        strict: If True, treat warnings as errors
        log_results: If True, log validation results
        config_path: Config file to validate (default config.yaml)
        db_path: Database to validate (default from portal.database)

    Returns:
        Tuple of (all_passed, results)
    """
    all_results = []

    validators = [
        ("Configuration", lambda: validate_configuration(config_path)),
        ("Database", lambda: validate_database(db_path)),
        ("Dependencies", validate_dependencies),
    ]

    for category, validator in validators:
        try:
            all_results.extend(validator())
        except Exception as e:
            all_results.append(
                ValidationResult(
                    name=f"{category} Validation",
                    passed=False,
                    message=f"Validation failed with error: {e}",
                    severity="error",
                )
            )

    if log_results:
        logger.info("=" * 60)
        logger.info("STARTUP VALIDATION RESULTS")
        logger.info("=" * 60)

        for result in all_results:
            if result.passed:
                logger.info(str(result))
            elif result.severity == "error":
                logger.error(str(result))
                if result.fix_hint:
                    logger.error(f"  Hint: {result.fix_hint}")
            elif result.severity == "warning":
                logger.warning(str(result))
                if result.fix_hint:
                    logger.warning(f"  Hint: {result.fix_hint}")
            else:
                logger.info(str(result))

        logger.info("=" * 60)

    errors = [r for r in all_results if not r.passed and r.severity == "error"]
    warnings = [r for r in all_results if not r.passed and r.severity == "warning"]

    if errors:
        logger.error(f"Startup validation failed with {len(errors)} error(s)")
        return False, all_results

    if strict and warnings:
        logger.error(f"Startup validation failed with {len(warnings)} warning(s) (strict mode)")
        return False, all_results

    logger.info("Startup validation passed")
    return True, all_results


def get_health_status(db_path=None) -> Dict:
    """
    Get current health status for health check endpoint.

    Returns:
        Health status dictionary
    """
    status = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "checks": {},
    }

    try:
        from portal.database import get_db

        conn = get_db(db_path)
        try:
            applicant_count = conn.execute("SELECT COUNT(*) FROM applicants").fetchone()[0]
            in_progress = conn.execute(
                "SELECT COUNT(*) FROM applicants WHERE status = 'in_progress'"
            ).fetchone()[0]
        finally:
            conn.close()
        status["checks"]["database"] = {
            "status": "healthy",
            "applicant_count": applicant_count,
            "in_progress": in_progress,
        }
    except Exception as e:
        status["status"] = "unhealthy"
        status["checks"]["database"] = {
            "status": "unhealthy",
            "error": str(e),
        }

    return status
