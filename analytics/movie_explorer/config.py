"""
Configuration management for the Movie Explorer pipeline.

Loads environment variables (optionally from a .env file) and validates them
eagerly, so a bad configuration fails before any connection is attempted.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
from dotenv import load_dotenv

from .errors import ConfigError

# Load environment variables from .env file
load_dotenv()

SUPPORTED_DRIVERS = ("postgresql", "sqlite")
SESSION_MODES = ("read_only", "read_write")

DRIVER_ALIASES = {
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "psycopg2": "postgresql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}


@dataclass
class Config:
    """Configuration settings for the movie explorer."""

    # Database configuration
    database: str
    driver: str = "postgresql"
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    use_views: bool = False
    session_mode: str = "read_only"
    options: Dict[str, str] = field(default_factory=dict)

    # Dataset
    table: str = "movies"
    id_columns: Tuple[str, ...] = ("name", "year")

    # Modeling
    max_condition_number: float = 1e10

    # Output
    output_dir: str = "output"

    # Logging
    log_level: str = "INFO"
    verbose: bool = True

    def __post_init__(self):
        self.driver = DRIVER_ALIASES.get(str(self.driver).lower(), str(self.driver).lower())

    def validate(self) -> "Config":
        """
        Check that every required field is present and every value is recognized.

        Returns:
            Config: self, to allow chaining

        Raises:
            ConfigError: On the first missing or invalid field
        """
        if self.driver not in SUPPORTED_DRIVERS:
            raise ConfigError(
                f"Unsupported driver '{self.driver}'. "
                f"Expected one of: {', '.join(SUPPORTED_DRIVERS)}"
            )

        if not self.database:
            raise ConfigError(
                "The 'database' setting is required. "
                "Set MOVIES_DB_NAME to the database name (or SQLite file path)."
            )

        if self.driver == "postgresql":
            if not self.host:
                raise ConfigError("The 'host' setting is required for the postgresql driver (MOVIES_DB_HOST)")
            if not self.username:
                raise ConfigError("The 'username' setting is required for the postgresql driver (MOVIES_DB_USER)")

        if self.session_mode not in SESSION_MODES:
            raise ConfigError(
                f"Unknown session mode '{self.session_mode}'. "
                f"Expected one of: {', '.join(SESSION_MODES)}"
            )

        try:
            if self.port is not None:
                self.port = int(self.port)
            self.max_condition_number = float(self.max_condition_number)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        if self.port is not None and not (0 < self.port < 65536):
            raise ConfigError(f"Invalid port: {self.port}")

        if not self.table:
            raise ConfigError("The 'table' setting must not be empty")

        if isinstance(self.id_columns, str):
            self.id_columns = (self.id_columns,)
        self.id_columns = tuple(self.id_columns)
        if not self.id_columns or not all(self.id_columns):
            raise ConfigError("The 'id_columns' setting must name at least one column")

        if self.max_condition_number <= 1:
            raise ConfigError("max_condition_number must be greater than 1")

        return self

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Config":
        """
        Create a validated Config from a plain mapping of recognized fields.

        Unknown keys are rejected so that typos do not silently fall back to defaults.
        """
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration fields: {', '.join(unknown)}")

        if not values.get("database"):
            raise ConfigError("The 'database' setting is required.")

        return cls(**dict(values)).validate()

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create a Config instance from environment variables.

        Required environment variables:
        - MOVIES_DB_NAME: Database name (or SQLite file path)

        Required for the postgresql driver:
        - MOVIES_DB_HOST, MOVIES_DB_USER

        Returns:
            Config: Validated configuration instance
        """
        database = os.getenv("MOVIES_DB_NAME")
        if not database:
            raise ConfigError(
                "MOVIES_DB_NAME environment variable is required. "
                "Please set it to the database name (or SQLite file path)."
            )

        port = os.getenv("MOVIES_DB_PORT")
        try:
            port_value = int(port) if port else None
            max_condition = float(os.getenv("MAX_CONDITION_NUMBER", "1e10"))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        return cls(
            database=database,
            driver=os.getenv("MOVIES_DB_DRIVER", "postgresql"),
            host=os.getenv("MOVIES_DB_HOST"),
            port=port_value,
            username=os.getenv("MOVIES_DB_USER"),
            password=os.getenv("MOVIES_DB_PASSWORD"),
            use_views=_parse_bool(os.getenv("MOVIES_DB_USE_VIEWS", "false")),
            session_mode=os.getenv("MOVIES_DB_SESSION_MODE", "read_only"),
            options=_parse_options(os.getenv("MOVIES_DB_OPTIONS", "")),
            table=os.getenv("MOVIES_TABLE", "movies"),
            id_columns=_parse_columns(os.getenv("MOVIES_ID_COLUMNS", "name,year")),
            max_condition_number=max_condition,
            output_dir=os.getenv("OUTPUT_DIR", "output"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            verbose=_parse_bool(os.getenv("VERBOSE", "true")),
        ).validate()


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _parse_columns(raw: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_options(raw: str) -> Dict[str, str]:
    """Parse extra driver flags written as 'key=value,key=value'."""
    options = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ConfigError(f"Malformed driver option '{item}' (expected key=value)")
        key, value = item.split("=", 1)
        options[key.strip()] = value.strip()
    return options


# Global config instance (lazy loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config: Global configuration object
    """
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config():
    """Forget the cached global configuration (used after changing the environment)."""
    global _config
    _config = None
