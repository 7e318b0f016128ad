"""
Fingerprint derivation - the cache key of a report request.

A fingerprint is a 32-character prefix of the base64-encoded SHA-256
digest of a canonical request string.  Two requests share a fingerprint
exactly when they agree on owner-or-scope, report kind, output format,
template, filters and the content-relevant options.

Canonical string (fixed order, ``|``-separated)::

    user:42|type:READING_STATS|format:PDF|template:null
        |filters:{"author":null,...,"statuses":["READ","READING"]}
        |options:{"sortBy":"title","sortOrder":"ASC"}

* ``SYSTEM`` reports use ``scope:ALL_USERS`` instead of the owner, so every
  administrator shares one cache line.
* Filters and options are JSON with sorted keys and compact separators;
  the status list is de-duplicated and sorted.
* ``options`` is omitted when no content-relevant option is set.
  ``include_images`` never participates.

Owner keys are built the same way for storage (``user:<id>`` /
``scope:ALL_USERS``).  Owners are integers and the system scope is a
``CacheScope`` member, so a real owner can never produce the scope key.

If canonicalisation fails (e.g. an unserialisable custom option) the
builder returns a random fingerprint, which can only ever miss.

Tags:
    caching, fingerprint, sha256, canonical-json, folio
"""

from __future__ import annotations

import base64
import hashlib
import json
import uuid
from collections.abc import Iterable
from enum import Enum
from typing import Any

from folio.core.errors import FingerprintError
from folio.core.logging import get_logger
from folio.core.models.request import ReportFilters, ReportOptions, ReportRequest
from folio.core.settings import SYSTEM_KIND

logger = get_logger(__name__)

FINGERPRINT_LENGTH = 32

#: Custom option keys that change report content.
DEFAULT_RELEVANT_CUSTOM_OPTIONS = ("includeStatistics", "groupBy")


class CacheScope(Enum):
    """Owner-less cache scopes."""

    ALL_OWNERS = "ALL_USERS"


Owner = int | CacheScope


def owner_key(owner: Owner, request: ReportRequest | None = None) -> str:
    """Storage key for *owner* (``SYSTEM`` requests always map to the scope).

    Raises:
        FingerprintError: *owner* is neither an ``int`` nor a ``CacheScope``.
    """
    if request is not None and request.report_kind == SYSTEM_KIND:
        return f"scope:{CacheScope.ALL_OWNERS.value}"
    if isinstance(owner, CacheScope):
        return f"scope:{owner.value}"
    if isinstance(owner, bool) or not isinstance(owner, int):
        raise FingerprintError(f"Owner must be an int or CacheScope, got {owner!r}").with_context(
            operation="owner_key"
        )
    return f"user:{owner}"


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class FingerprintBuilder:
    """Derives fingerprints from report requests.

    Args:
        relevant_custom_options: keys of ``ReportOptions.custom_options``
            that participate in the fingerprint.
    """

    def __init__(self, relevant_custom_options: Iterable[str] = DEFAULT_RELEVANT_CUSTOM_OPTIONS):
        self.relevant_custom_options = tuple(relevant_custom_options)

    def relevant_options(self, options: ReportOptions) -> dict[str, Any]:
        relevant: dict[str, Any] = {}
        if options.sort_by is not None:
            relevant["sortBy"] = options.sort_by
        if options.sort_order is not None:
            relevant["sortOrder"] = options.sort_order.upper()
        for key in self.relevant_custom_options:
            if key in options.custom_options:
                relevant[key] = options.custom_options[key]
        return relevant

    @staticmethod
    def canonical_filters(filters: ReportFilters) -> dict[str, Any]:
        data = filters.to_dict()
        data["statuses"] = sorted({s.upper() for s in filters.statuses})
        return data

    def canonical_string(self, owner: Owner, request: ReportRequest) -> str:
        parts = [
            owner_key(owner, request),
            f"type:{request.report_kind}",
            f"format:{request.output_format}",
            f"template:{request.template_ref if request.template_ref is not None else 'null'}",
            f"filters:{_canonical_json(self.canonical_filters(request.filters))}",
        ]
        options = self.relevant_options(request.options)
        if options:
            parts.append(f"options:{_canonical_json(options)}")
        return "|".join(parts)

    def build(self, owner: Owner, request: ReportRequest) -> str:
        """Fingerprint for *request*; a random one if canonicalisation fails."""
        try:
            canonical = self.canonical_string(owner, request)
        except (TypeError, ValueError, AttributeError, FingerprintError) as e:
            logger.error(
                "cache.fingerprint_failed",
                report_kind=getattr(request, "report_kind", None),
                error=str(e),
            )
            return uuid.uuid4().hex[:FINGERPRINT_LENGTH]
        digest = hashlib.sha256(canonical.encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")[:FINGERPRINT_LENGTH]


__all__ = [
    "CacheScope",
    "DEFAULT_RELEVANT_CUSTOM_OPTIONS",
    "FINGERPRINT_LENGTH",
    "FingerprintBuilder",
    "Owner",
    "owner_key",
]
