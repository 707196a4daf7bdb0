"""Expiration classification for Key Vault keys, secrets and certificates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from .config import InvalidConfiguration


class ItemKind(Enum):
    KEY = "Key"
    SECRET = "Secret"
    CERTIFICATE = "Certificate"

    @property
    def label(self) -> str:
        return self.value

    @property
    def collection(self) -> str:
        """Path segment of the Key Vault collection holding this kind."""
        return {"Key": "keys", "Secret": "secrets", "Certificate": "certificates"}[self.value]


class RangeSelector(Enum):
    """A single expiration window, as (start offset, end offset, label)."""

    EXPIRED = (None, 0, "Expired")
    WITHIN_30 = (0, 30, "30 Days")
    WITHIN_60 = (30, 60, "60 Days")
    WITHIN_90 = (60, 90, "90 Days")

    @property
    def label(self) -> str:
        return self.value[2]

    def matches(self, expires: datetime, now: datetime) -> bool:
        start_days, end_days, _ = self.value
        if start_days is not None and expires < now + timedelta(days=start_days):
            return False
        return expires <= now + timedelta(days=end_days)


class RequestMode(Enum):
    """The reporting scope a caller asks for."""

    EXPIRED_ONLY = 0
    ALL_UPCOMING = 1
    WITHIN_30_ONLY = 30
    WITHIN_60_ONLY = 60
    WITHIN_90_ONLY = 90

    @classmethod
    def parse(cls, raw: Union["RequestMode", int, str, None]) -> "RequestMode":
        if isinstance(raw, RequestMode):
            return raw
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.ALL_UPCOMING
        try:
            return cls(int(raw))
        except (TypeError, ValueError):
            allowed = ", ".join(str(mode.value) for mode in cls)
            raise InvalidConfiguration(f"Range must be one of {allowed}; got {raw!r}") from None

    @property
    def selectors(self) -> List[RangeSelector]:
        """Windows collected in addition to the always-present expired set."""
        return list(_MODE_SELECTORS[self])


_MODE_SELECTORS: Dict[RequestMode, tuple] = {
    RequestMode.EXPIRED_ONLY: (),
    RequestMode.ALL_UPCOMING: (RangeSelector.WITHIN_30, RangeSelector.WITHIN_60, RangeSelector.WITHIN_90),
    RequestMode.WITHIN_30_ONLY: (RangeSelector.WITHIN_30,),
    RequestMode.WITHIN_60_ONLY: (RangeSelector.WITHIN_60,),
    RequestMode.WITHIN_90_ONLY: (RangeSelector.WITHIN_90,),
}


def _parse_epoch(raw: object) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    try:
        return datetime.fromtimestamp(int(float(raw)), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        raise ValueError(f"Unparseable expiration timestamp {raw!r}") from None


def _name_from_identifier(identifier: str) -> str:
    # https://{vault}.vault.azure.net/{collection}/{name}[/{version}]
    parts = [part for part in identifier.split("/") if part]
    if len(parts) >= 4:
        return parts[3]
    return parts[-1] if parts else ""


@dataclass(frozen=True)
class VaultItem:
    """Metadata the report cares about for a key, secret or certificate."""

    name: str
    kind: ItemKind
    expires: Optional[datetime]
    enabled: bool = True
    managed: bool = False

    @classmethod
    def from_api(cls, kind: ItemKind, payload: Dict[str, object]) -> "VaultItem":
        identifier = payload.get("kid") if kind is ItemKind.KEY else payload.get("id")
        if not identifier:
            identifier = payload.get("id") or payload.get("kid")
        if not identifier:
            raise ValueError(f"{kind.label} payload has no identifier")
        attributes = payload.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise ValueError(f"{kind.label} payload has malformed attributes")
        return cls(
            name=_name_from_identifier(str(identifier)),
            kind=kind,
            expires=_parse_epoch(attributes.get("exp")),
            enabled=bool(attributes.get("enabled", True)),
            managed=bool(payload.get("managed", False)),
        )


@dataclass(frozen=True)
class ClassifiedEntry:
    """A vault item labeled with the expiration window it fell into."""

    name: str
    kind: ItemKind
    expiration_range: str
    expires: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires < now


def classify(items: Iterable[VaultItem], selector: RangeSelector, now: datetime) -> List[ClassifiedEntry]:
    """Return the items whose expiration falls inside ``selector``'s window.

    Both window edges are inclusive, so an item expiring exactly on a shared
    edge matches the windows on either side of it. Items without an
    expiration never match. Input order is preserved.
    """

    matched: List[ClassifiedEntry] = []
    for item in items:
        if item.expires is None:
            continue
        if selector.matches(item.expires, now):
            matched.append(
                ClassifiedEntry(
                    name=item.name,
                    kind=item.kind,
                    expiration_range=selector.label,
                    expires=item.expires,
                )
            )
    return matched
