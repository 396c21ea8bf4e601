"""
Root conftest.py — shared pytest configuration.

The `pythonpath = src` setting in pyproject.toml adds `src/` to sys.path for
all tests, so the flat modules (`config`, `pipeline`, ...) import by name.
"""
import pytest


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested."""
    if not config.getoption("--run-integration", default=False):
        skip_integration = pytest.mark.skip(reason="requires live MongoDB (pass --run-integration to enable)")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that require a live MongoDB server",
    )
