"""Report request models.

A ``ReportRequest`` is what the report-generation layer asks for: a report
kind, an output format, an optional template, a filter set and an options
set.  The same shape is replayed by scheduled runs, so it round-trips
through plain dicts (``to_dict`` / ``from_dict``) for JSON storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass
class ReportFilters:
    """Data-set filters (read statuses, date range, publisher, author, genre)."""

    statuses: list[str] = field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None
    publisher: str | None = None
    author: str | None = None
    genre: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "statuses": list(self.statuses),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "publisher": self.publisher,
            "author": self.author,
            "genre": self.genre,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ReportFilters:
        data = data or {}
        return cls(
            statuses=list(data.get("statuses") or []),
            start_date=_parse_date(data.get("start_date")),
            end_date=_parse_date(data.get("end_date")),
            publisher=data.get("publisher"),
            author=data.get("author"),
            genre=data.get("genre"),
        )


@dataclass
class ReportOptions:
    """Rendering options.

    Only ``sort_by``, ``sort_order`` and the allow-listed keys of
    ``custom_options`` change report content; ``include_images`` is
    cosmetic.
    """

    sort_by: str = "created_at"
    sort_order: str = "DESC"
    include_images: bool = False
    custom_options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            "include_images": self.include_images,
            "custom_options": dict(self.custom_options),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ReportOptions:
        data = data or {}
        return cls(
            sort_by=data.get("sort_by", "created_at"),
            sort_order=data.get("sort_order", "DESC"),
            include_images=bool(data.get("include_images", False)),
            custom_options=dict(data.get("custom_options") or {}),
        )


@dataclass
class ReportRequest:
    """A single report generation request."""

    report_kind: str
    output_format: str = "PDF"
    template_ref: str | None = None
    filters: ReportFilters = field(default_factory=ReportFilters)
    options: ReportOptions = field(default_factory=ReportOptions)

    def __post_init__(self) -> None:
        self.report_kind = self.report_kind.upper()
        self.output_format = self.output_format.upper()

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_kind": self.report_kind,
            "output_format": self.output_format,
            "template_ref": self.template_ref,
            "filters": self.filters.to_dict(),
            "options": self.options.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReportRequest:
        return cls(
            report_kind=data["report_kind"],
            output_format=data.get("output_format", "PDF"),
            template_ref=data.get("template_ref"),
            filters=ReportFilters.from_dict(data.get("filters")),
            options=ReportOptions.from_dict(data.get("options")),
        )
