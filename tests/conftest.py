"""Shared fixtures."""

import pytest

from tinyflow.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config lookups at an empty temp location so a real ~/.tinyflow never leaks in."""
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("TINYFLOW_CONFIG", str(path))
    return path


@pytest.fixture(autouse=True)
def reset_trace_context():
    yield
    clear_trace_context()
