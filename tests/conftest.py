"""
Pytest fixtures for the rule engine test suite.

Provides:
- A fresh in-memory SQLite database per test (StaticPool, foreign keys on)
- Structured logging configured once per session, plus log capture
- Engine configuration from the packaged adapter YAML
- The CalculationRuleEngine facade and the underlying services

Environment Variables:
- HOSTMETRICS_TEST_DATABASE_URL: run the suite against another database
  (e.g. postgresql://...).  Defaults to in-memory SQLite.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from hostmetrics_config import EngineConfig, EngineSettings, get_engine_config
from hostmetrics_engines.formula.compiler import FormulaCompiler
from hostmetrics_engines.resolution import ResolutionEngine
from hostmetrics_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from hostmetrics_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from hostmetrics_services.engine import CalculationRuleEngine
from hostmetrics_services.rule_service import RuleService
from hostmetrics_services.template_service import TemplateService

DEFAULT_TEST_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("HOSTMETRICS_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture hostmetrics logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, rule_engine):
            rule_engine.create_rule(...)
            logs = captured_logs()
            assert any(r["message"] == "rule_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("hostmetrics")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """A fresh database per test; in-memory SQLite vanishes with the engine."""
    eng = init_engine_from_url(get_database_url())
    create_tables()
    yield eng
    if eng.dialect.name != "sqlite":
        drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Database session; rolled back at teardown (services only flush)."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Identity fixtures
# =============================================================================


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def test_actor_id() -> UUID:
    return uuid4()


# =============================================================================
# Configuration and service fixtures
# =============================================================================


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(custom_channels=("cottagesdirect",))


@pytest.fixture
def engine_config(engine_settings) -> EngineConfig:
    """Configuration from the packaged adapter YAML."""
    return get_engine_config(engine_settings)


@pytest.fixture
def compiler() -> FormulaCompiler:
    """A private compiler so cache statistics are per test."""
    return FormulaCompiler(max_size=64)


@pytest.fixture
def resolution_engine(engine_config, compiler) -> ResolutionEngine:
    return ResolutionEngine(engine_config.adapters, engine_config.catalog, compiler)


@pytest.fixture
def rule_service(session, engine_config, compiler) -> RuleService:
    return RuleService(session, engine_config.catalog, compiler)


@pytest.fixture
def template_service(session, rule_service) -> TemplateService:
    return TemplateService(session, rule_service)


@pytest.fixture
def rule_engine(session, engine_config) -> CalculationRuleEngine:
    """The public facade over one session."""
    return CalculationRuleEngine(session, engine_config)
