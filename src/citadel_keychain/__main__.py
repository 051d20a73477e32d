# Main Entry Point - Keychain command line
#
# Operates on a keychain file (default from CITADEL_KEYCHAIN_PATH).
# Master passwords and values are always prompted for, never taken from
# argv, so they do not end up in shell history or process listings.

import sys
import argparse
import getpass
from pathlib import Path

from . import __version__
from .core import get_settings, log_security_event, EventType, EventSeverity
from .vault import KeychainError, KeychainFile
from .vault.storage import CHECKSUM_SUFFIX, atomic_write

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FOUND = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="citadel-keychain",
        description="Citadel Keychain - password-derived encrypted keychain",
    )
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Keychain file (default: CITADEL_KEYCHAIN_PATH or data/keychain.json)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Citadel Keychain v{__version__}"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create a new keychain file")

    p_set = sub.add_parser("set", help="Store a credential for a service")
    p_set.add_argument("name", help="Service name (e.g. www.example.com)")

    p_get = sub.add_parser("get", help="Print the credential for a service")
    p_get.add_argument("name")

    p_remove = sub.add_parser("remove", help="Remove the credential for a service")
    p_remove.add_argument("name")

    p_export = sub.add_parser("export", help="Export the record and its checksum")
    p_export.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the record here and the checksum to <output>.sha256 (default: stdout)"
    )

    p_serve = sub.add_parser("serve", help="Run the local keychain API")
    p_serve.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: 8000)")

    return parser


def _prompt_password(confirm: bool = False) -> str:
    password = getpass.getpass("Master password: ")
    if confirm and getpass.getpass("Confirm master password: ") != password:
        raise ValueError("Passwords do not match")
    return password


def _run(args, keychain_file: KeychainFile) -> int:
    if args.command == "init":
        keychain_file.create(_prompt_password(confirm=True))
        print(f"Keychain created: {keychain_file.path}")
        return EXIT_OK

    keychain = keychain_file.load(_prompt_password())

    if args.command == "set":
        value = getpass.getpass(f"Value for {args.name}: ")
        keychain.set(args.name, value)
        keychain_file.save(keychain)
        print(f"Stored credential for {args.name}")
        return EXIT_OK

    if args.command == "get":
        value = keychain.get(args.name)
        if value is None:
            print(f"No credential for {args.name}", file=sys.stderr)
            return EXIT_NOT_FOUND
        print(value)
        return EXIT_OK

    if args.command == "remove":
        if not keychain.remove(args.name):
            print(f"No credential for {args.name}", file=sys.stderr)
            return EXIT_NOT_FOUND
        keychain_file.save(keychain)
        print(f"Removed credential for {args.name}")
        return EXIT_OK

    if args.command == "export":
        record, checksum = keychain.dump()
        if args.output is None:
            print(record)
            print(checksum)
        else:
            atomic_write(args.output, record)
            atomic_write(args.output.with_name(args.output.name + CHECKSUM_SUFFIX), checksum + "\n")
            print(f"Exported to {args.output}")
        return EXIT_OK

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    """
    Main entry point for Citadel Keychain.

    Returns the process exit code: 0 on success, 1 on errors, 2 when the
    requested entry does not exist.
    """
    args = _build_parser().parse_args(argv)

    if args.command == "serve":
        log_security_event(
            EventType.SYSTEM_START,
            EventSeverity.INFO,
            "Citadel Keychain API starting",
            details={"version": __version__}
        )
        from .api.main import start_api_server
        start_api_server(host=args.host, port=args.port)
        return EXIT_OK

    keychain_file = KeychainFile(args.file or get_settings().keychain_path)

    try:
        return _run(args, keychain_file)
    except (KeychainError, FileNotFoundError, FileExistsError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
