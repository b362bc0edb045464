"""
Unit tests for the config module.
"""

import pytest

# Import functions to test
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from analytics.movie_explorer.config import Config, get_config, reset_config
from analytics.movie_explorer.errors import ConfigError

ENV_VARS = [
    "MOVIES_DB_DRIVER", "MOVIES_DB_HOST", "MOVIES_DB_PORT", "MOVIES_DB_NAME",
    "MOVIES_DB_USER", "MOVIES_DB_PASSWORD", "MOVIES_DB_USE_VIEWS",
    "MOVIES_DB_SESSION_MODE", "MOVIES_DB_OPTIONS", "MOVIES_TABLE", "MOVIES_ID_COLUMNS",
    "MAX_CONDITION_NUMBER",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


def test_from_mapping_requires_database():
    """A config without a database is rejected."""
    with pytest.raises(ConfigError):
        Config.from_mapping({"driver": "sqlite"})


def test_config_error_is_value_error():
    """ConfigError can be caught as a ValueError."""
    with pytest.raises(ValueError):
        Config.from_mapping({"driver": "sqlite", "database": ""})


def test_from_mapping_rejects_unknown_fields():
    with pytest.raises(ConfigError, match="dbname"):
        Config.from_mapping({"database": "movies.db", "driver": "sqlite", "dbname": "x"})


def test_postgres_requires_host_and_username():
    with pytest.raises(ConfigError, match="host"):
        Config(database="movies").validate()

    with pytest.raises(ConfigError, match="username"):
        Config(database="movies", host="localhost").validate()

    config = Config(database="movies", host="localhost", username="analyst").validate()
    assert config.driver == "postgresql"


def test_unknown_driver_and_session_mode():
    with pytest.raises(ConfigError, match="driver"):
        Config(database="movies", driver="oracle").validate()

    with pytest.raises(ConfigError, match="session mode"):
        Config(database="movies.db", driver="sqlite", session_mode="exclusive").validate()


def test_driver_aliases():
    assert Config(database="movies", driver="postgres").driver == "postgresql"
    assert Config(database="movies.db", driver="SQLite3").driver == "sqlite"


def test_from_env(monkeypatch):
    """All recognized settings are read from the environment."""
    monkeypatch.setenv("MOVIES_DB_DRIVER", "postgresql")
    monkeypatch.setenv("MOVIES_DB_HOST", "db.internal")
    monkeypatch.setenv("MOVIES_DB_PORT", "5433")
    monkeypatch.setenv("MOVIES_DB_NAME", "cinema")
    monkeypatch.setenv("MOVIES_DB_USER", "analyst")
    monkeypatch.setenv("MOVIES_DB_PASSWORD", "secret")
    monkeypatch.setenv("MOVIES_DB_USE_VIEWS", "yes")
    monkeypatch.setenv("MOVIES_DB_SESSION_MODE", "read_write")
    monkeypatch.setenv("MOVIES_DB_OPTIONS", "sslmode=require, connect_timeout=10")
    monkeypatch.setenv("MOVIES_TABLE", "movies_v")

    config = Config.from_env()

    assert config.host == "db.internal"
    assert config.port == 5433
    assert config.database == "cinema"
    assert config.username == "analyst"
    assert config.password == "secret"
    assert config.use_views is True
    assert config.session_mode == "read_write"
    assert config.options == {"sslmode": "require", "connect_timeout": "10"}
    assert config.table == "movies_v"


def test_from_env_missing_database():
    with pytest.raises(ConfigError, match="MOVIES_DB_NAME"):
        Config.from_env()


def test_from_env_malformed_values(monkeypatch):
    monkeypatch.setenv("MOVIES_DB_DRIVER", "sqlite")
    monkeypatch.setenv("MOVIES_DB_NAME", "movies.db")
    monkeypatch.setenv("MOVIES_DB_PORT", "not-a-port")
    with pytest.raises(ConfigError):
        Config.from_env()

    monkeypatch.delenv("MOVIES_DB_PORT")
    monkeypatch.setenv("MOVIES_DB_OPTIONS", "sslmode")
    with pytest.raises(ConfigError, match="sslmode"):
        Config.from_env()

    monkeypatch.delenv("MOVIES_DB_OPTIONS")
    monkeypatch.setenv("MOVIES_ID_COLUMNS", " , ")
    with pytest.raises(ConfigError, match="id_columns"):
        Config.from_env()


def test_from_mapping_malformed_numbers():
    """Numeric fields that do not convert fail as configuration errors."""
    with pytest.raises(ConfigError, match="numeric"):
        Config.from_mapping({"driver": "sqlite", "database": "movies.db", "port": "abc"})

    with pytest.raises(ConfigError, match="numeric"):
        Config.from_mapping({"driver": "sqlite", "database": "movies.db", "max_condition_number": "huge"})

    with pytest.raises(ConfigError, match="port"):
        Config.from_mapping({"driver": "sqlite", "database": "movies.db", "port": 70000})


def test_from_mapping_converts_numeric_strings():
    config = Config.from_mapping({
        "driver": "sqlite",
        "database": "movies.db",
        "port": "5432",
        "max_condition_number": "1e8",
    })

    assert config.port == 5432
    assert config.max_condition_number == 1e8


def test_id_columns(monkeypatch):
    assert Config(database="movies.db", driver="sqlite").validate().id_columns == ("name", "year")
    assert Config(database="movies.db", driver="sqlite", id_columns="name").validate().id_columns == ("name",)

    monkeypatch.setenv("MOVIES_DB_DRIVER", "sqlite")
    monkeypatch.setenv("MOVIES_DB_NAME", "movies.db")
    monkeypatch.setenv("MOVIES_ID_COLUMNS", "name, year, director")

    assert Config.from_env().id_columns == ("name", "year", "director")


def test_get_config_is_cached(monkeypatch):
    monkeypatch.setenv("MOVIES_DB_DRIVER", "sqlite")
    monkeypatch.setenv("MOVIES_DB_NAME", "movies.db")

    first = get_config()
    monkeypatch.setenv("MOVIES_DB_NAME", "other.db")

    assert get_config() is first
    reset_config()
    assert get_config().database == "other.db"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
