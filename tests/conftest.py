"""Shared test fixtures for Metrics Reporter tests."""

import os
import shutil
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures" / "calc"


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture
def fixtures_dir():
    """Directory holding the Calc sample documents and sources."""
    return FIXTURES_DIR


@pytest.fixture
def calc_workspace(tmp_path):
    """Writable copy of the Calc samples: inputs, src/ tree and an out/ directory."""
    workspace = tmp_path / "calc"
    shutil.copytree(FIXTURES_DIR, workspace)
    (workspace / "out").mkdir()
    return workspace


@pytest.fixture
def opencover_xml(fixtures_dir):
    return fixtures_dir / "calc.opencover.xml"


@pytest.fixture
def roslyn_xml(fixtures_dir):
    return fixtures_dir / "calc.roslyn.xml"


@pytest.fixture
def sarif_log(fixtures_dir):
    return fixtures_dir / "calc.sarif"


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Run with an empty home and working directory so no config files leak in."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("METRICS_REPORTER_"):
            monkeypatch.delenv(key)
    return tmp_path
