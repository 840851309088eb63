"""
Configuration Loader for the Carer Application Portal
Loads and validates portal configuration from config.yaml
"""

import yaml
from pathlib import Path
from typing import Dict, List, Any, Optional

PROJECT_DIR = Path(__file__).parent.parent

DEFAULT_STEPS = [
    {"id": "privacy_notice", "label": "Privacy Notice"},
    {"id": "personal_info", "label": "Personal Info"},
    {"id": "education", "label": "Education"},
    {"id": "employment", "label": "Employment"},
    {"id": "skills", "label": "Skills"},
    {"id": "references", "label": "References"},
    {"id": "disciplinary", "label": "Disciplinary"},
    {"id": "declaration", "label": "Declaration"},
]

POLICY_KEYS = (
    "require_current_employer",
    "require_previous_employer",
    "require_vulnerable_work_employers",
)


class Config:
    """Configuration manager for the Carer Application Portal."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration from YAML file.

        Args:
            config_path: Path to config.yaml (defaults to ./config.yaml)
        """
        if config_path is None:
            config_path = PROJECT_DIR / "config.yaml"

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {self.config_path}\n"
                f"Copy config.example.yaml to config.yaml and fill in your information."
            )

        with open(self.config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        self._validate_config(config)

        return config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate that required configuration fields are present."""
        required_sections = ['organisation']
        for section in required_sections:
            if section not in config:
                raise ValueError(f"Missing required config section: {section}")

        if not (config['organisation'] or {}).get('name'):
            raise ValueError("Missing required organisation field: name")

        steps = (config.get('application') or {}).get('steps', DEFAULT_STEPS)
        if not steps or not isinstance(steps, list):
            raise ValueError("No application steps configured in 'application.steps'")

        seen = set()
        for step in steps:
            if not isinstance(step, dict) or not step.get('id') or not step.get('label'):
                raise ValueError(f"Application step needs an id and a label: {step!r}")
            if step['id'] in seen:
                raise ValueError(f"Duplicate application step id: {step['id']}")
            seen.add(step['id'])

        references = config.get('references') or {}
        for key, value in references.items():
            if key not in POLICY_KEYS:
                raise ValueError(f"Unknown reference policy setting: {key}")
            if not isinstance(value, bool):
                raise ValueError(f"Reference policy setting '{key}' must be true or false")

    # ===== ORGANISATION =====

    @property
    def organisation_name(self) -> str:
        """Get the organisation running the application process."""
        return self._config['organisation']['name']

    @property
    def contact_email(self) -> str:
        """Get the recruitment contact email address."""
        return self._config['organisation'].get('contact_email', '')

    # ===== APPLICATION STEPS =====

    @property
    def steps(self) -> List[Dict[str, str]]:
        """Get the ordered application steps."""
        return (self._config.get('application') or {}).get('steps', DEFAULT_STEPS)

    @property
    def step_ids(self) -> List[str]:
        """Get the ordered application step ids."""
        return [step['id'] for step in self.steps]

    # ===== REFERENCE POLICY =====

    @property
    def reference_policy(self) -> Dict[str, bool]:
        """Get the default reference policy toggles."""
        references = self._config.get('references') or {}
        return {key: references.get(key, True) for key in POLICY_KEYS}

    # ===== DATABASE =====

    @property
    def database_path(self) -> Path:
        """Get the SQLite database path (relative paths resolve against the project)."""
        path = Path((self._config.get('database') or {}).get('path', 'applications.db'))
        if not path.is_absolute():
            path = PROJECT_DIR / path
        return path

    # ===== LOGGING =====

    @property
    def log_level(self) -> Optional[str]:
        """Get the configured log level, if any."""
        return (self._config.get('logging') or {}).get('level')

    @property
    def json_logs(self) -> bool:
        """Get whether logs should be written as JSON."""
        return (self._config.get('logging') or {}).get('json', False)

    # ===== UTILITY METHODS =====

    def reload(self) -> None:
        """Reload configuration from file."""
        self._config = self._load_config()

    def to_dict(self) -> Dict[str, Any]:
        """
        Return a copy of the raw configuration dictionary.

        Returns:
            Dict containing all configuration values
        """
        return dict(self._config)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Example: config.get('organisation.name')
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value


# Global config instance
_config: Optional[Config] = None


def get_config(config_path: Optional[Path] = None) -> Config:
    """
    Get global configuration instance.
    Creates instance on first call (or when a new path is given),
    then returns cached instance.
    """
    global _config
    if _config is None or (config_path is not None and Path(config_path) != _config.config_path):
        _config = Config(config_path)
    return _config


def reload_config() -> None:
    """Reload configuration from file."""
    global _config
    if _config is not None:
        _config.reload()
    else:
        _config = Config()
