"""
Main conftest file that imports and re-exports all fixtures from modular files.
"""

import os

from dotenv import load_dotenv

# Load the test environment before any app module reads its settings
dotenv_path = os.path.join(os.path.dirname(__file__), "..", ".env.test")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path, override=True)
else:
    print(f"Warning: .env.test file not found at {dotenv_path}")

from importlib import reload

from malawi_properties_service import config

reload(config)

import pytest

from tests.fixtures.client import client, login_as
from tests.fixtures.helpers import FIXED_NOW, make_profile, property_row
from tests.fixtures.mocks import (
    MockResponse,
    MockSupabaseClient,
    api_error,
    mock_storage,
    mock_supabase_client,
)


@pytest.fixture
def fixed_clock():
    """A clock that always answers FIXED_NOW."""
    return lambda: FIXED_NOW
