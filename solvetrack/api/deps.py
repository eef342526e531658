"""Shared FastAPI dependencies; tests swap them via app.dependency_overrides."""
from datetime import datetime

from solvetrack.core.clock import utc_now
from solvetrack.features.stats import provider as provider_module
from solvetrack.features.stats import store as store_module


def get_stores():
    return store_module.get_stores()


def get_provider():
    return provider_module.get_provider()


def get_now() -> datetime:
    return utc_now()
