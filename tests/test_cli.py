"""Tests for the citadel-keychain command line."""

import json
import os
import stat

import pytest

from citadel_keychain.__main__ import EXIT_ERROR, EXIT_NOT_FOUND, EXIT_OK, main
from citadel_keychain.core import get_audit_logger
from citadel_keychain.vault import Keychain

PASSWORD = "password123!"


@pytest.fixture
def prompts(monkeypatch):
    """Queue of answers for getpass prompts."""
    answers = []

    def fake_getpass(prompt=""):
        return answers.pop(0)

    monkeypatch.setattr("getpass.getpass", fake_getpass)
    return answers


@pytest.fixture
def keychain_path(tmp_path):
    return tmp_path / "cli" / "keychain.json"


def _run(path, *argv):
    return main(["--file", str(path), *argv])


@pytest.fixture
def initialized(keychain_path, prompts):
    prompts.extend([PASSWORD, PASSWORD])
    assert _run(keychain_path, "init") == EXIT_OK
    return keychain_path


class TestCli:
    def test_init_creates_file(self, keychain_path, prompts, capsys):
        prompts.extend([PASSWORD, PASSWORD])
        assert _run(keychain_path, "init") == EXIT_OK
        assert keychain_path.exists()
        assert "Keychain created" in capsys.readouterr().out

    def test_init_password_mismatch(self, keychain_path, prompts, capsys):
        prompts.extend([PASSWORD, "different"])
        assert _run(keychain_path, "init") == EXIT_ERROR
        assert "do not match" in capsys.readouterr().err
        assert not keychain_path.exists()

    def test_init_existing(self, initialized, prompts):
        prompts.extend([PASSWORD, PASSWORD])
        assert _run(initialized, "init") == EXIT_ERROR

    def test_set_then_get(self, initialized, prompts, capsys):
        prompts.extend([PASSWORD, "secretpw"])
        assert _run(initialized, "set", "www.example.com") == EXIT_OK
        capsys.readouterr()

        prompts.append(PASSWORD)
        assert _run(initialized, "get", "www.example.com") == EXIT_OK
        assert capsys.readouterr().out.strip() == "secretpw"

    def test_get_missing(self, initialized, prompts):
        prompts.append(PASSWORD)
        assert _run(initialized, "get", "nothing.here") == EXIT_NOT_FOUND

    def test_remove(self, initialized, prompts):
        prompts.extend([PASSWORD, "secretpw"])
        _run(initialized, "set", "svc")

        prompts.append(PASSWORD)
        assert _run(initialized, "remove", "svc") == EXIT_OK
        prompts.append(PASSWORD)
        assert _run(initialized, "remove", "svc") == EXIT_NOT_FOUND
        prompts.append(PASSWORD)
        assert _run(initialized, "get", "svc") == EXIT_NOT_FOUND

    def test_wrong_password(self, initialized, prompts, capsys):
        prompts.append("wrong")
        assert _run(initialized, "get", "svc") == EXIT_ERROR
        assert "Invalid master password" in capsys.readouterr().err

    def test_missing_file(self, keychain_path, prompts):
        prompts.append(PASSWORD)
        assert _run(keychain_path, "get", "svc") == EXIT_ERROR

    def test_export_to_file(self, initialized, prompts, tmp_path):
        prompts.extend([PASSWORD, "secretpw"])
        _run(initialized, "set", "www.example.com")

        out = tmp_path / "export.json"
        prompts.append(PASSWORD)
        assert _run(initialized, "export", "--output", str(out)) == EXIT_OK

        record = out.read_text(encoding="utf-8")
        checksum = (tmp_path / "export.json.sha256").read_text(encoding="utf-8").strip()
        assert "secretpw" not in record
        assert Keychain.load(PASSWORD, record, checksum).get("www.example.com") == "secretpw"

    def test_export_to_stdout(self, initialized, prompts, capsys):
        capsys.readouterr()
        prompts.append(PASSWORD)
        assert _run(initialized, "export") == EXIT_OK
        record, checksum = capsys.readouterr().out.strip().split("\n")
        assert "kvs" in json.loads(record)
        Keychain.load(PASSWORD, record, checksum)

    def test_default_path_from_settings(self, prompts, tmp_path):
        prompts.extend([PASSWORD, PASSWORD])
        assert main(["init"]) == EXIT_OK
        assert (tmp_path / "keychain.json").exists()

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])

    @pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
    def test_export_files_owner_only(self, initialized, prompts, tmp_path):
        out = tmp_path / "export.json"
        prompts.append(PASSWORD)
        assert _run(initialized, "export", "--output", str(out)) == EXIT_OK

        for path in (out, tmp_path / "export.json.sha256"):
            assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert not [p for p in tmp_path.iterdir() if p.name.endswith(".tmp")]

    def test_serve_logs_start(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            "citadel_keychain.api.main.start_api_server",
            lambda host=None, port=None: calls.append((host, port)),
        )
        assert main(["serve", "--port", "9005"]) == EXIT_OK
        assert calls == [(None, 9005)]

        log_text = get_audit_logger().log_file.read_text(encoding="utf-8")
        assert "system.start" in log_text
