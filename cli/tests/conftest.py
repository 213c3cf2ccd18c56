"""Shared fixtures for CLI tests."""

from __future__ import annotations

import logging
import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_cli(monkeypatch, tmp_path):
    """Run each CLI test in a scratch directory with a clean environment.

    Commands install a stderr log handler on the root logger; it is removed
    again so later tests do not write to a closed capture stream.
    """
    for name in list(os.environ):
        if name.startswith("MERGE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
