"""
BitGuard command-line front end.

Usage:
    bitguard create                     # new wallet, prints the phrase once
    bitguard restore                    # import an existing phrase
    bitguard unlock [--show-mnemonic]   # print address / public key
    bitguard status
    bitguard change-password
    bitguard wipe --yes
    bitguard generate-mnemonic [--words 24]
    bitguard validate

Global flags: --config FILE, --network main|test, --log-level LEVEL.
Passwords are always read with getpass, never from argv.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Sequence

from bitguard_core.config import BitGuardConfig, load_config
from bitguard_core.errors import BitGuardError
from bitguard_core.logging_config import setup_logging
from bitguard_core.manager import WalletManager, WalletState
from bitguard_core.wallet import WalletRecord, generate_mnemonic, validate_mnemonic

logger = logging.getLogger("bitguard.cli")

_WORDS_TO_STRENGTH = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}


def _read_secret(prompt: str) -> str:
    return getpass.getpass(prompt)


def _read_new_password() -> tuple[str, str]:
    return _read_secret("New password: "), _read_secret("Confirm password: ")


def _print_record(record: WalletRecord, show_mnemonic: bool = False) -> None:
    print(f"Network:    {record.network}")
    print(f"Address:    {record.address}")
    print(f"Public key: {record.public_key}")
    if show_mnemonic:
        print()
        print("Recovery phrase (write it down, keep it offline):")
        print(f"  {record.mnemonic}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_create(manager: WalletManager, args: argparse.Namespace) -> int:
    password, confirm = _read_new_password()
    record = manager.create(password, confirm)
    _print_record(record, show_mnemonic=True)
    return 0


def cmd_restore(manager: WalletManager, args: argparse.Namespace) -> int:
    phrase = _read_secret("Recovery phrase: ")
    password, confirm = _read_new_password()
    record = manager.restore(phrase, password, confirm)
    _print_record(record)
    return 0


def cmd_unlock(manager: WalletManager, args: argparse.Namespace) -> int:
    record = manager.unlock(_read_secret("Password: "))
    _print_record(record, show_mnemonic=args.show_mnemonic)
    return 0


def cmd_status(manager: WalletManager, args: argparse.Namespace) -> int:
    print(manager.state.value)
    return 0


def cmd_change_password(manager: WalletManager, args: argparse.Namespace) -> int:
    old = _read_secret("Current password: ")
    manager.unlock(old)
    password, confirm = _read_new_password()
    manager.change_password(old, password, confirm)
    manager.lock()
    print("Password changed.")
    return 0


def cmd_wipe(manager: WalletManager, args: argparse.Namespace) -> int:
    if manager.state is WalletState.UNINITIALIZED:
        print("No wallet stored.")
        return 0
    if not args.yes:
        print("Refusing to wipe without --yes. Make sure the recovery phrase is backed up.",
              file=sys.stderr)
        return 1
    manager.wipe()
    print("Wallet wiped.")
    return 0


def cmd_generate_mnemonic(args: argparse.Namespace) -> int:
    print(generate_mnemonic(_WORDS_TO_STRENGTH[args.words]))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    ok = validate_mnemonic(_read_secret("Recovery phrase: "))
    print("valid" if ok else "invalid")
    return 0 if ok else 1


_MANAGER_COMMANDS = {
    "create": cmd_create,
    "restore": cmd_restore,
    "unlock": cmd_unlock,
    "status": cmd_status,
    "change-password": cmd_change_password,
    "wipe": cmd_wipe,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bitguard", description="BitGuard wallet vault")
    parser.add_argument("--config", default=None, help="path to a TOML config file")
    parser.add_argument("--network", choices=["main", "test"], default=None)
    parser.add_argument("--log-level", default=None)

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("create", help="create a new wallet")
    sub.add_parser("restore", help="restore a wallet from its recovery phrase")
    p_unlock = sub.add_parser("unlock", help="unlock and show the wallet identity")
    p_unlock.add_argument("--show-mnemonic", action="store_true")
    sub.add_parser("status", help="print the wallet state")
    sub.add_parser("change-password", help="re-encrypt under a new password")
    p_wipe = sub.add_parser("wipe", help="delete the stored wallet")
    p_wipe.add_argument("--yes", action="store_true")
    p_gen = sub.add_parser("generate-mnemonic", help="print a fresh recovery phrase")
    p_gen.add_argument("--words", type=int, choices=sorted(_WORDS_TO_STRENGTH), default=12)
    sub.add_parser("validate", help="check a recovery phrase")
    return parser


def _apply_overrides(cfg: BitGuardConfig, args: argparse.Namespace) -> BitGuardConfig:
    if args.network:
        cfg.wallet.network = args.network
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    return cfg


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = _apply_overrides(load_config(args.config), args)
    setup_logging(level=cfg.logging.level, fmt=cfg.logging.format,
                  log_file=cfg.logging.file)

    try:
        if args.command == "generate-mnemonic":
            return cmd_generate_mnemonic(args)
        if args.command == "validate":
            return cmd_validate(args)
        manager = WalletManager.from_config(cfg)
        return _MANAGER_COMMANDS[args.command](manager, args)
    except BitGuardError as exc:
        logger.debug("%s failed: %s", args.command, exc)
        print(f"Error: {exc.user_message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
