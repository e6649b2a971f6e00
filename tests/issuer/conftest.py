"""Shared fixtures for issuer tests: a stand-in ``acmeow`` package."""

from __future__ import annotations

import sys
import types
from unittest.mock import MagicMock

import pytest


@pytest.fixture()
def fake_acmeow(monkeypatch):
    """Install mock ``acmeow`` and ``acmeow.handlers`` modules.

    Returns the top-level module; ``.AcmeClient`` and the handler
    classes are MagicMocks whose calls the tests can inspect.
    """
    root = types.ModuleType("acmeow")
    handlers = types.ModuleType("acmeow.handlers")
    root.AcmeClient = MagicMock(name="AcmeClient")
    handlers.CallbackDnsHandler = MagicMock(name="CallbackDnsHandler")
    handlers.FileHttpHandler = MagicMock(name="FileHttpHandler")
    handlers.CallbackHttpHandler = MagicMock(name="CallbackHttpHandler")
    root.handlers = handlers
    monkeypatch.setitem(sys.modules, "acmeow", root)
    monkeypatch.setitem(sys.modules, "acmeow.handlers", handlers)
    return root
