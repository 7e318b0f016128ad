"""Tests for folio.core.caching.fingerprint."""

from __future__ import annotations

from datetime import date

import pytest

from folio.core.caching.fingerprint import CacheScope, FingerprintBuilder, owner_key
from folio.core.errors import FingerprintError
from folio.core.models.request import ReportFilters, ReportOptions, ReportRequest


@pytest.fixture()
def builder() -> FingerprintBuilder:
    return FingerprintBuilder()


def _request(**overrides) -> ReportRequest:
    base = dict(
        report_kind="BOOK_LIST",
        output_format="PDF",
        template_ref=None,
        filters=ReportFilters(statuses=["READ", "READING"], publisher="Shinchosha"),
        options=ReportOptions(sort_by="title", sort_order="asc"),
    )
    base.update(overrides)
    return ReportRequest(**base)


class TestOwnerKey:
    def test_user_and_scope_keys_never_collide(self):
        assert owner_key(42) == "user:42"
        assert owner_key(CacheScope.ALL_OWNERS) == "scope:ALL_USERS"

    def test_system_kind_maps_to_scope(self):
        assert owner_key(42, ReportRequest("SYSTEM")) == "scope:ALL_USERS"

    @pytest.mark.parametrize("owner", ["42", None, True, 4.2])
    def test_rejects_other_owner_types(self, owner):
        with pytest.raises(FingerprintError):
            owner_key(owner)


class TestDeterminism:
    def test_same_request_same_fingerprint(self, builder):
        assert builder.build(7, _request()) == builder.build(7, _request())

    def test_fingerprint_shape(self, builder):
        fp = builder.build(7, _request())
        assert len(fp) == 32

    def test_status_order_and_duplicates_do_not_matter(self, builder):
        a = _request(filters=ReportFilters(statuses=["READING", "READ"], publisher="Shinchosha"))
        b = _request(filters=ReportFilters(statuses=["read", "READ", "READING"], publisher="Shinchosha"))
        assert builder.build(7, a) == builder.build(7, b)

    def test_sort_order_case_does_not_matter(self, builder):
        a = _request(options=ReportOptions(sort_by="title", sort_order="asc"))
        b = _request(options=ReportOptions(sort_by="title", sort_order="ASC"))
        assert builder.build(7, a) == builder.build(7, b)

    def test_cosmetic_options_are_ignored(self, builder):
        a = _request(options=ReportOptions(sort_by="title", sort_order="asc", include_images=True))
        b = _request(options=ReportOptions(sort_by="title", sort_order="asc", custom_options={"theme": "dark"}))
        assert builder.build(7, a) == builder.build(7, b) == builder.build(7, _request())


class TestSensitivity:
    @pytest.mark.parametrize(
        "change",
        [
            {"report_kind": "READING_STATS"},
            {"output_format": "EXCEL"},
            {"template_ref": "tpl-1"},
            {"filters": ReportFilters(statuses=["READ"], publisher="Shinchosha")},
            {"filters": ReportFilters(statuses=["READ", "READING"], publisher="Kodansha")},
            {"filters": ReportFilters(statuses=["READ", "READING"], publisher="Shinchosha", start_date=date(2024, 1, 1))},
            {"options": ReportOptions(sort_by="author", sort_order="asc")},
            {"options": ReportOptions(sort_by="title", sort_order="asc", custom_options={"groupBy": "genre"})},
        ],
    )
    def test_changing_one_field_changes_fingerprint(self, builder, change):
        assert builder.build(7, _request(**change)) != builder.build(7, _request())

    def test_owner_changes_fingerprint(self, builder):
        assert builder.build(7, _request()) != builder.build(8, _request())
        assert builder.build(7, _request()) != builder.build(CacheScope.ALL_OWNERS, _request())

    def test_custom_allow_list(self):
        builder = FingerprintBuilder(relevant_custom_options=("theme",))
        a = _request(options=ReportOptions(custom_options={"theme": "dark"}))
        b = _request(options=ReportOptions(custom_options={"theme": "light"}))
        assert builder.build(7, a) != builder.build(7, b)


class TestCanonicalString:
    def test_layout(self, builder):
        canonical = builder.canonical_string(7, _request())
        parts = canonical.split("|")
        assert parts[0] == "user:7"
        assert parts[1] == "type:BOOK_LIST"
        assert parts[2] == "format:PDF"
        assert parts[3] == "template:null"
        assert parts[4].startswith("filters:")
        assert parts[5] == 'options:{"sortBy":"title","sortOrder":"ASC"}'

    def test_failure_falls_back_to_random_fingerprint(self, builder):
        first = builder.build("not-an-owner", _request())
        second = builder.build("not-an-owner", _request())
        assert len(first) == 32
        assert first != second
