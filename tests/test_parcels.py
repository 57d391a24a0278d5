"""Tests for parcel number handling and the parcel resolver."""

from __future__ import annotations

import pytest

from zoninglens.core.config import EndpointConfig
from zoninglens.gis.cache import TTLCache
from zoninglens.gis.errors import InvalidParcelNumberError, RetriesExhaustedError
from zoninglens.gis.parcels import (
    ParcelResolver,
    escape_literal,
    looks_like_parcel_number,
    parcel_where,
    parse_parcel_number,
)

from conftest import PARCEL_URL, FakeQueryClient, parcel_feature, square


def _resolver(client: FakeQueryClient, cache: TTLCache | None = None) -> ParcelResolver:
    return ParcelResolver(client, EndpointConfig(parcel_query=PARCEL_URL), cache=cache)


class TestParcelNumbers:
    @pytest.mark.parametrize(
        "raw", ["5843004015", "5843-004-015", " 5843 004 015 ", "5843.004.015"]
    )
    def test_forms_normalize_identically(self, raw):
        number = parse_parcel_number(raw)
        assert number.digits == "5843004015"
        assert number.dashed == "5843-004-015"

    @pytest.mark.parametrize("raw", ["", "584300401", "58430040155", "abc", "5843-004-01"])
    def test_rejects_wrong_digit_count(self, raw):
        with pytest.raises(InvalidParcelNumberError):
            parse_parcel_number(raw)

    def test_looks_like_parcel_number(self):
        assert looks_like_parcel_number("5843-004-015")
        assert looks_like_parcel_number("5843004015")
        assert not looks_like_parcel_number("1234 N Lake Ave")
        assert not looks_like_parcel_number("58430040155")

    def test_where_clause_covers_both_fields_and_forms(self):
        where = parcel_where(parse_parcel_number("5843004015"), "AIN", "APN")
        assert where == (
            "AIN='5843004015' OR AIN='5843-004-015' OR APN='5843004015' OR APN='5843-004-015'"
        )

    def test_where_clause_single_field(self):
        where = parcel_where(parse_parcel_number("5843004015"), "AIN", "AIN")
        assert where == "AIN='5843004015' OR AIN='5843-004-015'"

    def test_escape_literal(self):
        assert escape_literal("O'Neil St") == "O''Neil St"


class TestResolve:
    @pytest.mark.asyncio
    async def test_digit_and_dashed_forms_issue_same_query(self):
        client = FakeQueryClient().on(PARCEL_URL, [parcel_feature()])
        resolver = _resolver(client)

        a = await resolver.resolve("5843004015")
        b = await resolver.resolve("5843-004-015")

        assert a == b
        first, second = client.calls_to(PARCEL_URL)
        assert first == second
        assert first["returnGeometry"] is True
        assert first["outSR"] == 102100

    @pytest.mark.asyncio
    async def test_builds_feature(self):
        client = FakeQueryClient().on(PARCEL_URL, [parcel_feature()])
        parcel = await _resolver(client).resolve("5843-004-015")

        assert parcel.ain == "5843004015"
        assert parcel.apn == "5843-004-015"
        assert parcel.situs_address == "1234 N LAKE AVE"
        assert parcel.situs_city == "ALTADENA CA"
        assert parcel.situs_zip == "91001"
        assert parcel.geometry is not None
        assert parcel.geometry.spatial_reference == 3857

    @pytest.mark.asyncio
    async def test_largest_area_wins(self):
        small = parcel_feature(ring=square(0, 0, (10) ** 0.5), SitusAddress="UNIT A")
        large = parcel_feature(ring=square(100, 100, (50) ** 0.5), SitusAddress="UNIT B")
        client = FakeQueryClient().on(PARCEL_URL, [small, large])

        parcel = await _resolver(client).resolve("5843004015")
        assert parcel.situs_address == "UNIT B"

    @pytest.mark.asyncio
    async def test_tie_goes_to_first_seen(self):
        first = parcel_feature(ring=square(0, 0, 5), SitusAddress="FIRST")
        second = parcel_feature(ring=square(50, 50, 5), SitusAddress="SECOND")
        client = FakeQueryClient().on(PARCEL_URL, [first, second])

        parcel = await _resolver(client).resolve("5843004015")
        assert parcel.situs_address == "FIRST"

    @pytest.mark.asyncio
    async def test_non_mapping_attributes_use_queried_number(self):
        feature = parcel_feature()
        feature["attributes"] = "5843004015"
        client = FakeQueryClient().on(PARCEL_URL, [feature])

        parcel = await _resolver(client).resolve("5843-004-015")
        assert parcel.ain == "5843004015"
        assert parcel.attributes == {}
        assert parcel.situs_address is None

    @pytest.mark.asyncio
    async def test_no_match_returns_none(self):
        client = FakeQueryClient().on(PARCEL_URL, [])
        assert await _resolver(client).resolve("5843004015") is None

    @pytest.mark.asyncio
    async def test_query_failure_returns_none(self):
        client = FakeQueryClient().on(PARCEL_URL, RetriesExhaustedError(PARCEL_URL, 3))
        assert await _resolver(client).resolve("5843004015") is None

    @pytest.mark.asyncio
    async def test_invalid_identifier_makes_no_query(self):
        client = FakeQueryClient()
        assert await _resolver(client).resolve("12345") is None
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_cached_by_digits(self):
        client = FakeQueryClient().on(PARCEL_URL, [parcel_feature()])
        resolver = _resolver(client, cache=TTLCache("parcel"))

        await resolver.resolve("5843004015")
        await resolver.resolve("5843-004-015")
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_misses_are_not_cached(self):
        client = FakeQueryClient().on(PARCEL_URL, [])
        resolver = _resolver(client, cache=TTLCache("parcel"))

        await resolver.resolve("5843004015")
        await resolver.resolve("5843004015")
        assert len(client.calls) == 2


class TestAddressSearch:
    @pytest.mark.asyncio
    async def test_where_clause(self):
        client = FakeQueryClient().on(PARCEL_URL, [parcel_feature()])
        resolver = _resolver(client)
        results, note = await resolver.search_by_address("  1234  N Lake ", city="Altadena")

        assert note is None
        assert [p.apn for p in results] == ["5843-004-015"]
        (params,) = client.calls_to(PARCEL_URL)
        assert params["where"] == (
            "UPPER(SitusAddress) LIKE UPPER('%1234 N Lake%') "
            "AND UPPER(SitusCity) = UPPER('Altadena')"
        )
        assert params["resultRecordCount"] == 10

    @pytest.mark.asyncio
    async def test_quotes_are_escaped(self):
        client = FakeQueryClient()
        await _resolver(client).search_by_address("12 O'Neil St")
        (params,) = client.calls_to(PARCEL_URL)
        assert "O''Neil" in params["where"]

    @pytest.mark.asyncio
    async def test_no_results_has_note(self):
        client = FakeQueryClient().on(PARCEL_URL, [])
        results, note = await _resolver(client).search_by_address("999 Nowhere Rd")
        assert results == []
        assert "No parcels matched" in note

    @pytest.mark.asyncio
    async def test_failure_has_note(self):
        client = FakeQueryClient().on(PARCEL_URL, RetriesExhaustedError(PARCEL_URL, 3))
        results, note = await _resolver(client).search_by_address("1234 N Lake Ave")
        assert results == []
        assert note.startswith("Address search failed")

    @pytest.mark.asyncio
    async def test_resolve_address_picks_largest(self):
        client = FakeQueryClient().on(
            PARCEL_URL,
            [
                parcel_feature("5843004015", ring=square(0, 0, 2)),
                parcel_feature("5843004016", ring=square(10, 10, 9)),
            ],
        )
        parcel = await _resolver(client).resolve_address("1234 N Lake Ave")
        assert parcel.ain == "5843004016"
