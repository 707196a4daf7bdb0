import logging
from unittest.mock import MagicMock

import pytest
import requests

from keyvault_expiry_report.classifier import ItemKind, RequestMode
from keyvault_expiry_report.config import InvalidConfiguration, ReportSettings
from keyvault_expiry_report.reporter import (
    STATUS_ALERTED,
    STATUS_DRY_RUN,
    STATUS_FAILED,
    STATUS_SENT,
    ExpiryReporter,
)

from .conftest import NOW, make_item


class StubClient:
    def __init__(self, items=None, error=None):
        self.items = items or ([], [], [])
        self.error = error
        self.calls = 0

    def fetch_items(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.items


def _settings(**overrides):
    values = dict(
        vault_name="contoso-kv",
        recipient="team@example.com",
        admin_recipient="admin@example.com",
        mode=RequestMode.ALL_UPCOMING,
    )
    values.update(overrides)
    return ReportSettings(**values)


def _items():
    return (
        [make_item("K1", kind=ItemKind.KEY, days=-1)],
        [make_item("S1", kind=ItemKind.SECRET, days=10)],
        [make_item("C1", kind=ItemKind.CERTIFICATE, days=45)],
    )


def test_report_is_sent_to_recipient():
    mailer = MagicMock()
    reporter = ExpiryReporter(StubClient(_items()), mailer, _settings(), now_factory=lambda: NOW)

    outcome = reporter.run_once()

    assert outcome.status == STATUS_SENT
    assert outcome.entry_count == 3
    mailer.send.assert_called_once()
    recipient, subject, body = mailer.send.call_args.args
    assert recipient == "team@example.com"
    assert subject == "Key Vault expiration report: contoso-kv"
    assert "S1" in body and "C1" in body


def test_fetch_failure_alerts_admin_only():
    mailer = MagicMock()
    client = StubClient(error=requests.HTTPError("403 Forbidden: caller lacks list permission"))
    reporter = ExpiryReporter(client, mailer, _settings(), now_factory=lambda: NOW)

    outcome = reporter.run_once()

    assert outcome.status == STATUS_ALERTED
    assert client.calls == 1
    mailer.send.assert_called_once()
    recipient, subject, body = mailer.send.call_args.args
    assert recipient == "admin@example.com"
    assert "FAILED" in subject
    assert "403 Forbidden: caller lacks list permission" in body
    assert "HTTPError" in body
    assert all(call.args[0] != "team@example.com" for call in mailer.send.call_args_list)


def test_send_failure_alerts_admin():
    mailer = MagicMock()
    mailer.send.side_effect = [ConnectionError("smtp down"), None]
    reporter = ExpiryReporter(StubClient(_items()), mailer, _settings(), now_factory=lambda: NOW)

    outcome = reporter.run_once()

    assert outcome.status == STATUS_ALERTED
    assert [call.args[0] for call in mailer.send.call_args_list] == ["team@example.com", "admin@example.com"]
    assert "smtp down" in mailer.send.call_args_list[1].args[2]


def test_failed_alert_is_reported_not_raised(caplog):
    mailer = MagicMock()
    mailer.send.side_effect = ConnectionError("smtp down")
    reporter = ExpiryReporter(StubClient(error=RuntimeError("boom")), mailer, _settings(), now_factory=lambda: NOW)

    outcome = reporter.run_once()

    assert outcome.status == STATUS_FAILED
    assert outcome.error == "boom"
    assert not outcome.ok
    assert "Could not deliver failure alert" in caplog.text


def test_dry_run_does_not_send(tmp_path):
    mailer = MagicMock()
    output = tmp_path / "report.html"
    reporter = ExpiryReporter(
        StubClient(_items()),
        mailer,
        _settings(output_file=str(output)),
        now_factory=lambda: NOW,
    )

    outcome = reporter.run_once(send=False)

    assert outcome.status == STATUS_DRY_RUN
    assert outcome.ok
    mailer.send.assert_not_called()
    assert "K1" in output.read_text(encoding="utf-8")


def test_dry_run_failure_mails_nobody():
    mailer = MagicMock()
    reporter = ExpiryReporter(
        StubClient(error=RuntimeError("vault down")),
        mailer,
        _settings(),
        now_factory=lambda: NOW,
    )

    outcome = reporter.run_once(send=False)

    assert outcome.status == STATUS_FAILED
    assert outcome.error == "vault down"
    assert not outcome.ok
    mailer.send.assert_not_called()


def test_dry_run_logs_rendered_report(caplog):
    reporter = ExpiryReporter(StubClient(_items()), MagicMock(), _settings(), now_factory=lambda: NOW)

    with caplog.at_level(logging.DEBUG, logger="keyvault_expiry_report.reporter"):
        reporter.run_once(send=False)

    assert "Dry run report:" in caplog.text
    assert "<td>S1</td>" in caplog.text


def test_now_is_captured_once_per_run():
    calls = []

    def now_factory():
        calls.append(1)
        return NOW

    reporter = ExpiryReporter(StubClient(_items()), MagicMock(), _settings(), now_factory=now_factory)
    reporter.run_once()

    assert len(calls) == 1


def test_subject_prefix():
    reporter = ExpiryReporter(StubClient(), MagicMock(), _settings(subject_prefix="[prod]"))

    assert reporter.report_subject() == "[prod] expiration report: contoso-kv"
    assert reporter.alert_subject() == "[prod] expiration report FAILED: contoso-kv"


@pytest.mark.parametrize("field", ["recipient", "admin_recipient"])
@pytest.mark.parametrize("value", ["", "not-an-address", "a@b", "two@example.com,three@example.com"])
def test_settings_reject_bad_addresses(field, value):
    with pytest.raises(InvalidConfiguration):
        _settings(**{field: value})
