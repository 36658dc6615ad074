# conftest.py
import shutil

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-optional",
        action="store_true",
        default=False,
        help="Run tests that start the real ElasticMQ server (needs java and the jar)",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-optional"):
        if shutil.which("java") is None:
            skip_marker = pytest.mark.skip(reason="java is not installed")
        else:
            return
    else:
        skip_marker = pytest.mark.skip(reason="Optional test, use --run-optional to include")

    for item in items:
        if "optional" in item.keywords:
            item.add_marker(skip_marker)
