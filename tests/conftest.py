import logging

import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.dialects import sqlite

from datapipe.core import copy as core_copy
from datapipe.core.config import ENV_VARS
from datapipe.core.logger import LOGGER_NAME
from datapipe.datapipe_utils import variables

SOURCE_ROWS = 23


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests independent of the caller's environment and config file."""
    for env_name in ENV_VARS.values():
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setattr(variables, "CONFIG_FILE", str(tmp_path / "home" / "datapipe.ini"))

    yield

    # CliRunner streams are closed after each invoke
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def source_url(tmp_path):
    """SQLite source database holding an 'orders' table with SOURCE_ROWS rows."""
    url = f"sqlite:///{tmp_path / 'source.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE orders (id INTEGER, label TEXT, amount REAL)")
        conn.exec_driver_sql(
            "INSERT INTO orders (id, label, amount) VALUES (?, ?, ?)",
            [(i, f"order-{i}", i * 1.5) for i in range(1, SOURCE_ROWS + 1)]
        )
    engine.dispose()
    return url


@pytest.fixture
def target_url(tmp_path):
    """SQLite destination database with an empty 'orders_copy' table."""
    url = f"sqlite:///{tmp_path / 'target.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE orders_copy (id INTEGER, label TEXT, amount REAL)")
    engine.dispose()
    return url


@pytest.fixture
def source_engine(source_url):
    engine = create_engine(source_url)
    yield engine
    engine.dispose()


@pytest.fixture
def target_engine(target_url):
    engine = create_engine(target_url)
    yield engine
    engine.dispose()


@pytest.fixture
def mock_conn():
    """Destination connection double with a real SQLite dialect."""
    conn = MagicMock()
    conn.dialect = sqlite.dialect()
    conn.in_transaction.return_value = False
    return conn


@pytest.fixture
def read_rows():
    """Return a reader for the id, label, amount columns of a table."""
    def _read(engine, table="orders_copy"):
        with engine.connect() as conn:
            result = conn.exec_driver_sql(f"SELECT id, label, amount FROM {table} ORDER BY id")
            return [tuple(r) for r in result]
    return _read


@pytest.fixture
def expected_rows():
    """Rows the source fixture holds, in id order."""
    return [(i, f"order-{i}", i * 1.5) for i in range(1, SOURCE_ROWS + 1)]


@pytest.fixture
def uninstalled_driver(monkeypatch):
    """Make create_engine fail for one URL scheme as it does when the DBAPI module is absent."""
    real_create_engine = core_copy.create_engine

    def _uninstall(scheme_prefix, module_name):
        def fake_create_engine(url, *args, **kwargs):
            if str(url).startswith(scheme_prefix):
                raise ModuleNotFoundError(f"No module named '{module_name}'")
            return real_create_engine(url, *args, **kwargs)
        monkeypatch.setattr(core_copy, "create_engine", fake_create_engine)

    return _uninstall
