"""Aggregation and HTML rendering of the expiration report."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from .classifier import ClassifiedEntry, RangeSelector, RequestMode, VaultItem, classify

LOGGER = logging.getLogger("keyvault_expiry_report.report")

EMPTY_MESSAGE = "No expiring items on record"
TABLE_HEADERS: Tuple[str, ...] = ("Name", "Type", "ExpirationRange", "Expires")


@dataclass(frozen=True)
class ReportStyle:
    """Fixed document chrome wrapped around the dynamic table."""

    title: str
    css: str


DEFAULT_STYLE = ReportStyle(
    title="Key Vault expiration report",
    css=(
        "body { font-family: 'Segoe UI', Arial, sans-serif; color: #1f2933; }\n"
        "h1 { font-size: 20px; margin-bottom: 4px; }\n"
        "p.meta { color: #52606d; margin-top: 0; }\n"
        "table { border-collapse: collapse; margin-top: 12px; }\n"
        "th { background: #0b69a3; color: #ffffff; text-align: left; padding: 6px 10px; }\n"
        "td { border-bottom: 1px solid #d9e2ec; padding: 6px 10px; }\n"
        "tr.expired td { background: #fde8e8; color: #9b1c1c; font-weight: 600; }\n"
    ),
)


@dataclass(frozen=True)
class RenderedReport:
    html: str
    entries: Tuple[ClassifiedEntry, ...]
    generated_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.entries


def collect_entries(
    key_items: Sequence[VaultItem],
    secret_items: Sequence[VaultItem],
    cert_items: Sequence[VaultItem],
    mode: RequestMode,
    now: datetime,
) -> List[ClassifiedEntry]:
    """Classify each list for ``mode`` and return the merged entries sorted by expiry."""

    if not isinstance(mode, RequestMode):
        raise ValueError(f"Unsupported request mode {mode!r}")

    selectors = [RangeSelector.EXPIRED] + mode.selectors
    merged: List[ClassifiedEntry] = []
    for items in (key_items, secret_items, cert_items):
        missing = sum(1 for item in items if item.expires is None)
        if missing:
            LOGGER.debug("Skipping %s item(s) without an expiration date", missing)
        for selector in selectors:
            merged.extend(classify(items, selector, now))

    # sorted() is stable: equal expiries keep key, secret, certificate order
    return sorted(merged, key=lambda entry: entry.expires)


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _summary(entries: Sequence[ClassifiedEntry]) -> str:
    counts = {}
    for entry in entries:
        counts[entry.expiration_range] = counts.get(entry.expiration_range, 0) + 1
    order = [selector.label for selector in RangeSelector]
    return ", ".join(f"{label}: {counts[label]}" for label in order if label in counts)


def render_html(
    entries: Sequence[ClassifiedEntry],
    now: datetime,
    vault_name: Optional[str] = None,
    style: ReportStyle = DEFAULT_STYLE,
) -> str:
    heading = style.title
    if vault_name:
        heading = f"{heading}: {vault_name}"

    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{html.escape(heading)}</title>",
        f"<style>\n{style.css}</style>",
        "</head>",
        "<body>",
        f"<h1>{html.escape(heading)}</h1>",
        f'<p class="meta">Generated {_format_timestamp(now)}</p>',
    ]

    if not entries:
        parts.append(f"<p>{EMPTY_MESSAGE}</p>")
    else:
        parts.append(f'<p class="meta">{html.escape(_summary(entries))}</p>')
        parts.append("<table>")
        parts.append("<tr>" + "".join(f"<th>{name}</th>" for name in TABLE_HEADERS) + "</tr>")
        for entry in entries:
            row_class = ' class="expired"' if entry.is_expired(now) else ""
            cells = (
                entry.name,
                entry.kind.label,
                entry.expiration_range,
                _format_timestamp(entry.expires),
            )
            parts.append(f"<tr{row_class}>" + "".join(f"<td>{html.escape(c)}</td>" for c in cells) + "</tr>")
        parts.append("</table>")

    parts.extend(["</body>", "</html>"])
    return "\n".join(parts)


def build_report(
    key_items: Sequence[VaultItem],
    secret_items: Sequence[VaultItem],
    cert_items: Sequence[VaultItem],
    mode: RequestMode,
    now: datetime,
    vault_name: Optional[str] = None,
    style: ReportStyle = DEFAULT_STYLE,
) -> RenderedReport:
    """Build the complete HTML report for already-fetched vault items.

    Performs no I/O. The only failure is a ``ValueError`` for an unknown mode.
    """

    entries = collect_entries(key_items, secret_items, cert_items, mode, now)
    LOGGER.debug("Report for %s has %s entries (mode=%s)", vault_name or "vault", len(entries), mode.name)
    return RenderedReport(
        html=render_html(entries, now, vault_name=vault_name, style=style),
        entries=tuple(entries),
        generated_at=now,
    )

