"""Validate recruitsync configuration and detect drift in its ``.env`` file.

Run it before starting the API or the sync sweep:

1. ``AppSettings`` is instantiated from the given ``.env`` file, so missing
   secrets surface here rather than on the first OAuth callback.
2. A SHA256 baseline of the file can be recorded and later compared, so an
   unexpected edit (a rotated vault secret, for instance) is caught before
   stored credentials become unreadable.

Example usages::

    python -m scripts.check_env record --env-file /srv/recruitsync/.env \
        --hash-file /srv/recruitsync/.env.sha256

    python -m scripts.check_env verify --env-file /srv/recruitsync/.env \
        --hash-file /srv/recruitsync/.env.sha256

    python -m scripts.check_env check --env-file .env
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from recruitsync.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


class SettingsConflictError(ValueError):
    """Raised when individually valid settings cannot be used together."""


@dataclass(frozen=True)
class EnvChecksum:
    env_file: Path
    hash_file: Path

    def current(self) -> str:
        return hashlib.sha256(self.env_file.read_bytes()).hexdigest()

    def record(self) -> int:
        digest = self.current()
        self.hash_file.write_text(f"{digest}\n", encoding="utf-8")
        print(f"Baseline for {self.env_file} written to {self.hash_file} ({digest})")
        return EXIT_OK

    def verify(self) -> int:
        if not self.hash_file.exists():
            print(
                f"No baseline at {self.hash_file}; run 'record' first.",
                file=sys.stderr,
            )
            return EXIT_RUNTIME_ERROR

        baseline = self.hash_file.read_text(encoding="utf-8").strip()
        digest = self.current()
        if baseline == digest:
            print(f"{self.env_file} matches its recorded baseline.")
            return EXIT_OK

        print(
            f"{self.env_file} changed since the baseline was recorded.\n"
            f"  baseline: {baseline}\n"
            f"  current:  {digest}\n"
            "A changed VAULT_ENCRYPTION_SECRET makes stored tokens and API keys "
            "unreadable unless the old value is listed in VAULT_PREVIOUS_SECRETS.",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR


def _load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    settings = AppSettings()  # type: ignore[call-arg]
    security = settings.security
    if security.encryption_secret == security.session_secret:
        raise SettingsConflictError(
            "VAULT_ENCRYPTION_SECRET and SESSION_SIGNING_SECRET must differ."
        )
    return settings


def _describe(settings: AppSettings) -> int:
    """Print which integrations are configured, never the secrets themselves."""
    jobadder_client = "configured" if settings.jobadder.client_id else "fallback identifier"
    rows = (
        ("environment", settings.environment),
        ("database", settings.database_path),
        ("data source mode", settings.data_source_mode),
        ("JobAdder client id", jobadder_client),
        ("JobAdder redirect", settings.jobadder.redirect_uri),
        ("JazzHR API key", "set" if settings.jazzhr.api_key else "not set"),
        ("retired secrets", len(settings.security.retired_secrets)),
    )
    print("Settings OK.")
    for label, value in rows:
        print(f"{label + ':':<20}{value}")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate recruitsync settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    commands = {
        "record": "Validate settings and write the checksum baseline.",
        "verify": "Validate settings and compare against the checksum baseline.",
        "check": "Validate settings and print a redacted summary.",
    }
    for name, help_text in commands.items():
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: ./.env).",
        )
        if name != "check":
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Checksum baseline location.",
            )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = _load_settings(args.env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            f"Settings validation failed:\n{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except SettingsConflictError as exc:
        print(f"Settings validation failed: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    if args.command == "check":
        return _describe(settings)

    checksum = EnvChecksum(env_file=args.env_file, hash_file=args.hash_file)
    return checksum.record() if args.command == "record" else checksum.verify()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
