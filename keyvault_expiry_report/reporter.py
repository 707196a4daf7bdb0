"""Run orchestration: fetch, report, dispatch, and alert the admin on failure."""

from __future__ import annotations

import html
import logging
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import ReportSettings
from .report import RenderedReport, build_report

LOGGER = logging.getLogger("keyvault_expiry_report.reporter")

STATUS_SENT = "sent"
STATUS_ALERTED = "alerted"
STATUS_DRY_RUN = "dry_run"
STATUS_FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RunOutcome:
    """What a single run ended up doing."""

    status: str
    recipient: Optional[str] = None
    entry_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {STATUS_SENT, STATUS_DRY_RUN}


def render_admin_alert(vault_name: str, error: BaseException, now: datetime) -> str:
    detail = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return "\n".join(
        [
            "<!DOCTYPE html>",
            "<html>",
            '<head><meta charset="utf-8"></head>',
            "<body>",
            f"<h1>Key Vault expiration report failed: {html.escape(vault_name)}</h1>",
            f"<p>Run started {now.astimezone(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}.</p>",
            f"<p><strong>{html.escape(type(error).__name__)}</strong>: {html.escape(str(error))}</p>",
            f"<pre>{html.escape(detail)}</pre>",
            "</body>",
            "</html>",
        ]
    )


class ExpiryReporter:
    """Fetches vault contents, builds the report and sends it to the right person."""

    def __init__(
        self,
        client,
        mailer,
        settings: ReportSettings,
        now_factory: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._mailer = mailer
        self._settings = settings
        self._now_factory = now_factory

    def run_once(self, send: bool = True) -> RunOutcome:
        now = self._now_factory()
        try:
            report = self._build(now)
            if not send:
                LOGGER.info(
                    "Dry run: report has %s entries; not sending (output file: %s)",
                    len(report.entries),
                    self._settings.output_file or "none",
                )
                LOGGER.debug("Dry run report:\n%s", report.html)
                return RunOutcome(status=STATUS_DRY_RUN, entry_count=len(report.entries))
            self._mailer.send(self._settings.recipient, self.report_subject(), report.html)
            return RunOutcome(
                status=STATUS_SENT,
                recipient=self._settings.recipient,
                entry_count=len(report.entries),
            )
        except Exception as exc:
            LOGGER.exception("Expiration report run for %s failed", self._settings.vault_name)
            if not send:
                # Dry runs never mail anyone, including the admin.
                return RunOutcome(status=STATUS_FAILED, error=str(exc))
            return self._alert_admin(exc, now)

    # ---- helpers ----------------------------------------------------------------
    def _build(self, now: datetime) -> RenderedReport:
        keys, secrets, certificates = self._client.fetch_items()
        report = build_report(
            keys,
            secrets,
            certificates,
            self._settings.mode,
            now,
            vault_name=self._settings.vault_name,
        )
        if self._settings.output_file:
            Path(self._settings.output_file).write_text(report.html, encoding="utf-8")
            LOGGER.info("Wrote report to %s", self._settings.output_file)
        return report

    def _alert_admin(self, error: Exception, now: datetime) -> RunOutcome:
        admin = self._settings.admin_recipient
        body = render_admin_alert(self._settings.vault_name, error, now)
        try:
            self._mailer.send(admin, self.alert_subject(), body)
        except Exception:
            LOGGER.exception("Could not deliver failure alert to %s", admin)
            return RunOutcome(status=STATUS_FAILED, recipient=admin, error=str(error))
        return RunOutcome(status=STATUS_ALERTED, recipient=admin, error=str(error))

    def report_subject(self) -> str:
        return f"{self._settings.prefix} expiration report: {self._settings.vault_name}"

    def alert_subject(self) -> str:
        return f"{self._settings.prefix} expiration report FAILED: {self._settings.vault_name}"
