"""Root conftest: test environment, structlog routed through stdlib, and a throwaway ledger store."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.db import Database, SqliteLedgerRepository
from shared.logging import _serialize_values

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Route structlog through stdlib logging so caplog sees every event.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _serialize_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent viewer context leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def ledger_db(tmp_path):
    db = Database(tmp_path / "ledger.db")
    db.connect()
    yield db
    db.close()


@pytest.fixture
def ledger_repo(ledger_db):
    return SqliteLedgerRepository(ledger_db)
