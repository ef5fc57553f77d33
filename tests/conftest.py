# /tests/conftest.py
import sys
import os
import tempfile

import pytest
from flask import Flask

# --- Path Fix: project root for `zork_app`, this folder for `fakes` ---
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

# Must be set before zork_app is imported: the package configures logging at import time.
os.environ['FLASK_ENV'] = 'testing'
os.environ.setdefault('LOG_DIR', os.path.join(tempfile.gettempdir(), 'zork_app_test_logs'))

from zork_app import create_app
from zork_app.utils import db_utils
from fakes import FakeAssistantClient, TestConfig


@pytest.fixture
def assistant() -> FakeAssistantClient:
    return FakeAssistantClient()


@pytest.fixture
def app(assistant) -> Flask:
    """ Creates the test application instance with a fresh in-memory database. """
    test_app = create_app(TestConfig, assistant_client=assistant)
    yield test_app
    db_utils.dispose_db()


@pytest.fixture
def client(app: Flask):
    """ Provides a Flask test client. """
    return app.test_client()


@pytest.fixture
def chat_service(app: Flask):
    return app.chat_service
