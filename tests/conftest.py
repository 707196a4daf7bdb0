from datetime import datetime, timedelta, timezone

import pytest

from keyvault_expiry_report.classifier import ItemKind, VaultItem

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_item(name, kind=ItemKind.KEY, days=None, at=None):
    if at is None and days is not None:
        at = NOW + timedelta(days=days)
    return VaultItem(name=name, kind=kind, expires=at)


@pytest.fixture
def now():
    return NOW
