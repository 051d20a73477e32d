"""
Shared pytest fixtures for the Citadel Keychain test suite.

Autouse fixtures below isolate tests from live application data:
  - Audit logger -> temp directory (prevents test events in ./audit_logs)
  - Settings     -> temp keychain path and audit directory
  - API state    -> no keychain carried over between tests
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path, monkeypatch):
    """Point CITADEL_* settings at the test's temp directory."""
    from citadel_keychain.core import config

    monkeypatch.setenv("CITADEL_KEYCHAIN_PATH", str(tmp_path / "keychain.json"))
    monkeypatch.setenv("CITADEL_AUDIT_DIR", str(tmp_path / "audit_logs"))
    config.reset_settings()

    yield

    config.reset_settings()


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import citadel_keychain.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger

    # Detach this test's file handlers so they don't pile up on the root logger
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, logging.FileHandler) and handler.baseFilename.startswith(str(tmp_path)):
            root_logger.removeHandler(handler)
            handler.close()


@pytest.fixture(autouse=True)
def _isolate_api_keychain():
    """Drop the API's process-wide keychain before and after each test."""
    from citadel_keychain.api import keychain_routes

    keychain_routes.configure(None)
    yield
    keychain_routes.configure(None)


@pytest.fixture
def master_password():
    return "password123!"
