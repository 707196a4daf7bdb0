"""Configuration dataclasses for the Key Vault expiration report."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .classifier import RequestMode


class InvalidConfiguration(ValueError):
    """Raised when a setting is missing or malformed before a run starts."""


_ADDRESS_RE = re.compile(r"^[^@\s<>,;]+@[^@\s<>,;]+\.[^@\s<>,;]+$")


def validate_address(value: Optional[str], setting: str = "address") -> str:
    candidate = (value or "").strip()
    if not candidate:
        raise InvalidConfiguration(f"{setting} is required")
    if not _ADDRESS_RE.match(candidate):
        raise InvalidConfiguration(f"{setting} is not a valid email address: {candidate!r}")
    return candidate


@dataclass(frozen=True)
class KeyVaultConfig:
    """Connection details for the Azure Key Vault REST API."""

    vault_name: str
    tenant_id: str
    client_id: str
    client_secret: str
    authority_host: str = "https://login.microsoftonline.com"
    api_version: str = "7.4"
    timeout_seconds: int = 10
    include_managed: bool = False

    @property
    def vault_url(self) -> str:
        return f"https://{self.vault_name}.vault.azure.net"


@dataclass(frozen=True)
class NotificationConfig:
    """Configuration for outbound report and alert mail."""

    sender: str
    transport: str = "smtp"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_starttls: bool = True
    smtp_ssl: bool = False
    timeout_seconds: int = 30
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    subject_prefix: Optional[str] = None

    def __post_init__(self) -> None:
        if self.transport not in {"smtp", "ses"}:
            raise InvalidConfiguration(f"Unsupported mail transport {self.transport!r}; expected 'smtp' or 'ses'")
        if self.transport == "smtp" and not self.smtp_host:
            raise InvalidConfiguration("SMTP_HOST is required for the smtp transport")
        if self.transport == "ses" and not self.region:
            raise InvalidConfiguration("AWS_SES_REGION is required for the ses transport")


@dataclass(frozen=True)
class ReportSettings:
    """What to report and who receives it."""

    vault_name: str
    recipient: str
    admin_recipient: str
    mode: RequestMode
    subject_prefix: Optional[str] = None
    output_file: Optional[str] = None

    def __post_init__(self) -> None:
        validate_address(self.recipient, "REPORT_RECIPIENT")
        validate_address(self.admin_recipient, "REPORT_ADMIN_RECIPIENT")

    @property
    def prefix(self) -> str:
        return self.subject_prefix or "Key Vault"
