"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that
`import code_converter` works consistently in all tests, and keeps the
test run away from the on-disk development database.
"""

import os
import sys
from pathlib import Path

import pytest


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("MAX_REQUESTS_PER_MINUTE", "1000")
os.environ.setdefault("LOG_REQUESTS", "false")


@pytest.fixture()
def app_with_inmemory_db():
    from code_converter.routes import create_app
    from tests.utils import install_inmemory_db

    app = create_app()
    session_factory = install_inmemory_db(app)
    yield app, session_factory
    app.dependency_overrides.clear()
