# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Environment variables are set BEFORE importing app.*: app.core.settings and
# app.main build their module-level objects at import time.
# =============================================================================

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest

from app.core.settings import Settings
from app.main import create_app

from .fixture_routes import fixture_router


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {"DATABASE_URL": "sqlite+aiosqlite:///:memory:", "ENV": "test"}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def make_app(make_settings):
    def _make(**overrides):
        settings = make_settings(**overrides)
        app = create_app(settings)
        app.include_router(fixture_router, prefix=settings.API_PREFIX)
        return app

    return _make
