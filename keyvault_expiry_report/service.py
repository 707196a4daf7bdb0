"""CLI entry point for sending the Key Vault expiration report."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from .classifier import RequestMode
from .client import KeyVaultClient
from .config import InvalidConfiguration, KeyVaultConfig, NotificationConfig, ReportSettings
from .notification import build_mailer
from .reporter import ExpiryReporter

LOGGER = logging.getLogger("keyvault_expiry_report.service")

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_INVALID_CONFIG = 2


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be an integer; got {raw!r}") from None


def _required(value: Optional[str], name: str) -> str:
    if not value:
        raise InvalidConfiguration(f"Environment variable {name} is required")
    return value


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="keyvault-expiry-report",
        description="Email a report of expired and expiring Azure Key Vault items.",
    )
    parser.add_argument("--vault", help="Key Vault name (default: $KEYVAULT_NAME)")
    parser.add_argument(
        "--range",
        dest="range",
        help="0 = expired only, 1 = all upcoming, 30/60/90 = one window (default: $REPORT_RANGE or 1)",
    )
    parser.add_argument("--to", help="Report recipient (default: $REPORT_RECIPIENT)")
    parser.add_argument("--admin", help="Failure alert recipient (default: $REPORT_ADMIN_RECIPIENT)")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Build the report without sending it")
    parser.add_argument("--output", help="Also write the rendered HTML to this file")
    return parser.parse_args(argv)


def build_reporter_from_env(args: Optional[argparse.Namespace] = None) -> ExpiryReporter:
    load_dotenv(find_dotenv(), override=False)
    if args is None:
        args = parse_args([])

    vault_name = _required(args.vault or os.getenv("KEYVAULT_NAME"), "KEYVAULT_NAME")
    vault_config = KeyVaultConfig(
        vault_name=vault_name,
        tenant_id=_required(os.getenv("AZURE_TENANT_ID"), "AZURE_TENANT_ID"),
        client_id=_required(os.getenv("AZURE_CLIENT_ID"), "AZURE_CLIENT_ID"),
        client_secret=_required(os.getenv("AZURE_CLIENT_SECRET"), "AZURE_CLIENT_SECRET"),
        authority_host=os.getenv("AZURE_AUTHORITY_HOST") or "https://login.microsoftonline.com",
        include_managed=_bool_env("KEYVAULT_INCLUDE_MANAGED", default=False),
    )

    notification_config = NotificationConfig(
        sender=_required(os.getenv("REPORT_SENDER"), "REPORT_SENDER"),
        transport=(os.getenv("REPORT_MAIL_TRANSPORT") or "smtp").lower(),
        smtp_host=os.getenv("SMTP_HOST"),
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_username=os.getenv("SMTP_USERNAME"),
        smtp_password=os.getenv("SMTP_PASSWORD"),
        smtp_starttls=_bool_env("SMTP_STARTTLS", default=True),
        smtp_ssl=_bool_env("SMTP_SSL", default=False),
        region=os.getenv("AWS_SES_REGION"),
        access_key=os.getenv("AWS_SES_ACCESS_KEY_ID"),
        secret_key=os.getenv("AWS_SES_SECRET_ACCESS_KEY"),
        subject_prefix=os.getenv("REPORT_SUBJECT_PREFIX"),
    )

    settings = ReportSettings(
        vault_name=vault_name,
        recipient=args.to or os.getenv("REPORT_RECIPIENT", ""),
        admin_recipient=args.admin or os.getenv("REPORT_ADMIN_RECIPIENT", ""),
        mode=RequestMode.parse(args.range if args.range is not None else os.getenv("REPORT_RANGE")),
        subject_prefix=notification_config.subject_prefix,
        output_file=args.output or os.getenv("REPORT_OUTPUT_FILE"),
    )

    client = KeyVaultClient(vault_config)
    mailer = build_mailer(notification_config)
    return ExpiryReporter(client=client, mailer=mailer, settings=settings)


def main(argv: Optional[Sequence[str]] = None) -> int:  # noqa: D401
    """Entry point when executing the module with `python -m`."""

    logging.basicConfig(level=os.getenv("REPORT_LOG_LEVEL", "INFO"))
    args = parse_args(argv)
    try:
        reporter = build_reporter_from_env(args)
    except InvalidConfiguration as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_INVALID_CONFIG

    dry_run = args.dry_run if args.dry_run is not None else _bool_env("REPORT_DRY_RUN", default=False)
    outcome = reporter.run_once(send=not dry_run)
    LOGGER.info("Run complete. status=%s entries=%s", outcome.status, outcome.entry_count)
    return EXIT_OK if outcome.ok else EXIT_RUN_FAILED


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
