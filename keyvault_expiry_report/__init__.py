"""Expiration reporting for Azure Key Vault keys, secrets and certificates."""

from .config import InvalidConfiguration, KeyVaultConfig, NotificationConfig, ReportSettings
from .classifier import ClassifiedEntry, ItemKind, RangeSelector, RequestMode, VaultItem, classify
from .client import KeyVaultClient
from .report import DEFAULT_STYLE, RenderedReport, ReportStyle, build_report
from .notification import MailResult, SESMailer, SMTPMailer, build_mailer
from .reporter import ExpiryReporter, RunOutcome

__all__ = [
    "InvalidConfiguration",
    "KeyVaultConfig",
    "NotificationConfig",
    "ReportSettings",
    "ClassifiedEntry",
    "ItemKind",
    "RangeSelector",
    "RequestMode",
    "VaultItem",
    "classify",
    "KeyVaultClient",
    "DEFAULT_STYLE",
    "RenderedReport",
    "ReportStyle",
    "build_report",
    "MailResult",
    "SESMailer",
    "SMTPMailer",
    "build_mailer",
    "ExpiryReporter",
    "RunOutcome",
]
