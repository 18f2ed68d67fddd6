"""
Tests for the bitguard command-line front end.

Each test points the CLI at a fresh file store via environment variables
and feeds passwords / phrases through a patched getpass.
"""

from __future__ import annotations

import getpass
import logging

import pytest

from bitguard_core.cli import build_parser, main

PASSWORD = "correcthorsebattery"
ABANDON_ABOUT = "abandon " * 11 + "about"
BIP84_ADDRESS = "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"


@pytest.fixture(autouse=True)
def cli_env(tmp_path, monkeypatch):
    """Isolated storage, cheap KDF, and root logger restored afterwards."""
    monkeypatch.setenv("BITGUARD_STORAGE_BACKEND", "file")
    monkeypatch.setenv("BITGUARD_STORAGE_PATH", str(tmp_path / "wallet"))
    monkeypatch.setenv("BITGUARD_KDF_ITERATIONS", "1000")
    monkeypatch.delenv("BITGUARD_NETWORK", raising=False)
    monkeypatch.delenv("BITGUARD_LOG_FILE", raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield tmp_path
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def answers(monkeypatch):
    """Queue the replies getpass will hand back, in order."""
    queue: list[str] = []

    def fake_getpass(prompt=""):
        return queue.pop(0)

    monkeypatch.setattr(getpass, "getpass", fake_getpass)
    return queue


def _run(capsys, *argv):
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_network_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--network", "regtest", "status"])

    def test_words_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["generate-mnemonic", "--words", "13"])


class TestStateless:
    def test_generate_default(self, capsys):
        code, out, _ = _run(capsys, "generate-mnemonic")
        assert code == 0
        assert len(out.split()) == 12

    def test_generate_24(self, capsys):
        code, out, _ = _run(capsys, "generate-mnemonic", "--words", "24")
        assert code == 0
        assert len(out.split()) == 24

    def test_validate_good(self, capsys, answers):
        answers.append(ABANDON_ABOUT)
        code, out, _ = _run(capsys, "validate")
        assert code == 0
        assert out.strip() == "valid"

    def test_validate_bad(self, capsys, answers):
        answers.append("abandon " * 12)
        code, out, _ = _run(capsys, "validate")
        assert code == 1
        assert out.strip() == "invalid"


class TestWalletCommands:
    def test_status_uninitialized(self, capsys):
        code, out, _ = _run(capsys, "status")
        assert code == 0
        assert out.strip() == "uninitialized"

    def test_create_then_status_locked(self, capsys, answers, cli_env):
        answers.extend([PASSWORD, PASSWORD])
        code, out, _ = _run(capsys, "create")
        assert code == 0
        assert "Address:    bc1q" in out
        assert "Recovery phrase" in out
        assert (cli_env / "wallet" / "bitguard_wallet.vault").exists()

        code, out, _ = _run(capsys, "status")
        assert out.strip() == "locked"

    def test_restore_and_unlock(self, capsys, answers):
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD])
        code, out, _ = _run(capsys, "restore")
        assert code == 0
        assert BIP84_ADDRESS in out
        assert "abandon" not in out

        answers.append(PASSWORD)
        code, out, _ = _run(capsys, "unlock")
        assert code == 0
        assert BIP84_ADDRESS in out
        assert "abandon" not in out

        answers.append(PASSWORD)
        code, out, _ = _run(capsys, "unlock", "--show-mnemonic")
        assert ABANDON_ABOUT in out

    def test_restore_testnet(self, capsys, answers):
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD])
        code, out, _ = _run(capsys, "--network", "test", "restore")
        assert code == 0
        assert "Address:    tb1q" in out
        assert "Network:    test" in out

    def test_unlock_wrong_password(self, capsys, answers):
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD, "wrong-password"])
        _run(capsys, "restore")
        code, out, err = _run(capsys, "unlock")
        assert code == 1
        assert BIP84_ADDRESS not in out
        assert "Error: Incorrect password or corrupted wallet data." in err

    def test_unlock_without_wallet(self, capsys, answers):
        answers.append(PASSWORD)
        code, _, err = _run(capsys, "unlock")
        assert code == 1
        assert err.startswith("Error:")

    def test_short_password(self, capsys, answers):
        answers.extend(["short", "short"])
        code, _, err = _run(capsys, "create")
        assert code == 1
        assert "at least 8 characters" in err

    def test_password_mismatch(self, capsys, answers):
        answers.extend([PASSWORD, PASSWORD + "!"])
        code, _, err = _run(capsys, "create")
        assert code == 1
        assert "Passwords do not match" in err

    def test_invalid_phrase(self, capsys, answers):
        answers.extend(["abandon " * 12, PASSWORD, PASSWORD])
        code, _, err = _run(capsys, "restore")
        assert code == 1
        assert "recovery phrase is not valid" in err

    def test_change_password(self, capsys, answers):
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD])
        _run(capsys, "restore")

        answers.extend([PASSWORD, "another-password", "another-password"])
        code, out, _ = _run(capsys, "change-password")
        assert code == 0
        assert "Password changed." in out

        answers.append(PASSWORD)
        assert _run(capsys, "unlock")[0] == 1
        answers.append("another-password")
        code, out, _ = _run(capsys, "unlock")
        assert code == 0
        assert BIP84_ADDRESS in out


class TestWipe:
    def test_wipe_nothing_stored(self, capsys):
        code, out, _ = _run(capsys, "wipe")
        assert code == 0
        assert "No wallet stored." in out

    def test_wipe_requires_yes(self, capsys, answers):
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD])
        _run(capsys, "restore")
        code, _, err = _run(capsys, "wipe")
        assert code == 1
        assert "--yes" in err
        assert _run(capsys, "status")[1].strip() == "locked"

    def test_wipe_yes(self, capsys, answers, cli_env):
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD])
        _run(capsys, "restore")
        code, out, _ = _run(capsys, "wipe", "--yes")
        assert code == 0
        assert "Wallet wiped." in out
        assert not (cli_env / "wallet" / "bitguard_wallet.vault").exists()
        assert _run(capsys, "status")[1].strip() == "uninitialized"


class TestConfigFile:
    def test_config_file_storage(self, capsys, answers, tmp_path, monkeypatch):
        monkeypatch.delenv("BITGUARD_STORAGE_PATH")
        monkeypatch.delenv("BITGUARD_STORAGE_BACKEND")
        db = tmp_path / "cfg" / "bitguard.db"
        cfg = tmp_path / "bitguard.toml"
        cfg.write_text(
            "[storage]\n"
            'backend = "sqlite"\n'
            f'path = "{db.as_posix()}"\n'
            "\n[wallet]\n"
            'network = "test"\n',
            encoding="utf-8",
        )
        answers.extend([ABANDON_ABOUT, PASSWORD, PASSWORD])
        code, out, _ = _run(capsys, "--config", str(cfg), "restore")
        assert code == 0
        assert "tb1q" in out
        assert db.exists()
