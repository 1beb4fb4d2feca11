"""Shared fixtures for mtk-uartboot tests."""

import pytest


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Skip settle delays and drain polling; records requested delays."""
    sleeps = []
    monkeypatch.setattr("time.sleep", sleeps.append)
    return sleeps
