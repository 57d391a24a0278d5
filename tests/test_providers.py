"""Tests for the city provider registry."""

from __future__ import annotations

import json

import pytest

from zoninglens.core.config import ProviderConfig
from zoninglens.gis.providers import (
    ProviderRegistry,
    QueryProvider,
    ViewerProvider,
    normalize_jurisdiction_name,
)


class TestNormalizeName:
    @pytest.mark.parametrize(
        "raw",
        ["Pasadena", "  PASADENA ", "City of Pasadena", "Pasadena City", "city of  pasadena"],
    )
    def test_variants_collapse(self, raw):
        assert normalize_jurisdiction_name(raw) == "pasadena"

    def test_multiword_names(self):
        assert normalize_jurisdiction_name("City of  Long   Beach") == "long beach"

    def test_trailing_city_is_stripped(self):
        assert normalize_jurisdiction_name("Culver City") == "culver"
        assert normalize_jurisdiction_name("Industry") == "industry"


class TestProviderParsing:
    def test_viewer_link(self):
        registry = ProviderRegistry.from_mapping(
            {"Pasadena": {"method": "viewer_link", "viewer": "https://pasadena.example/map"}}
        )
        provider = registry.resolve("City of Pasadena")
        assert isinstance(provider, ViewerProvider)
        assert provider.viewer == "https://pasadena.example/map"

    def test_query_with_csv_fields(self):
        registry = ProviderRegistry.from_mapping(
            {
                "Glendale": {
                    "method": "query",
                    "endpoint": "https://glendale.example/MapServer/3",
                    "outFields": "ZONE, ZONE_DESC",
                    "nameFields": "ZONE",
                    "descFields": ["ZONE_DESC"],
                }
            }
        )
        provider = registry.resolve("glendale")
        assert isinstance(provider, QueryProvider)
        assert provider.endpoint == "https://glendale.example/MapServer/3"
        assert provider.out_fields == ["ZONE", "ZONE_DESC"]
        assert provider.name_fields == ["ZONE"]
        assert provider.desc_fields == ["ZONE_DESC"]
        assert provider.category_fields == []

    def test_arcgis_query_alias_with_nested_zoning_block(self):
        registry = ProviderRegistry.from_mapping(
            {
                "Burbank": {
                    "method": "arcgis_query",
                    "zoning": {
                        "url": "https://burbank.example/MapServer/0",
                        "outFields": "*",
                        "fields": {"zone": "ZONE_CODE", "description": "ZONE_NAME"},
                    },
                }
            }
        )
        provider = registry.resolve("Burbank")
        assert isinstance(provider, QueryProvider)
        assert provider.endpoint == "https://burbank.example/MapServer/0"
        assert provider.out_fields == ["*"]
        assert provider.name_fields == ["ZONE_CODE"]
        assert provider.desc_fields == ["ZONE_NAME"]

    def test_city_overlays_get_labels(self):
        registry = ProviderRegistry.from_mapping(
            {
                "Glendale": {
                    "method": "query",
                    "url": "https://glendale.example/MapServer/3",
                    "overlays": [
                        {"url": "https://glendale.example/MapServer/7"},
                        {"url": "https://glendale.example/MapServer/8", "label": "Historic"},
                    ],
                }
            }
        )
        overlays = registry.resolve("Glendale").overlays
        assert [layer.label for layer in overlays] == ["City overlay 1", "Historic"]

    def test_invalid_entries_are_skipped(self):
        registry = ProviderRegistry.from_mapping(
            {
                "Pasadena": {"method": "viewer_link", "viewer": "https://pasadena.example"},
                "Nowhere": {"method": "carrier_pigeon"},
                "Glendale": {"method": "query"},
            }
        )
        assert len(registry) == 1
        assert "Pasadena" in registry
        assert "Nowhere" not in registry
        assert "Glendale" not in registry

    def test_unknown_city_resolves_to_none(self):
        assert ProviderRegistry().resolve("Atlantis") is None


class TestLoading:
    @pytest.mark.parametrize("text", ["", "   ", "{not json", "[1, 2]", '"Pasadena"'])
    def test_bad_json_is_empty_registry(self, text):
        assert len(ProviderRegistry.from_json(text)) == 0

    def test_inline_json_wins_over_file(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(json.dumps({"Glendale": {"method": "viewer_link", "viewer": "g"}}))
        inline = json.dumps({"Burbank": {"method": "viewer_link", "viewer": "b"}})

        registry = ProviderRegistry.from_config(
            ProviderConfig(registry_json=inline, config_path=str(path))
        )
        assert "Burbank" in registry
        assert "Glendale" not in registry

    def test_reads_file(self, tmp_path):
        path = tmp_path / "providers.json"
        path.write_text(json.dumps({"Glendale": {"method": "viewer_link", "viewer": "g"}}))
        registry = ProviderRegistry.from_config(ProviderConfig(config_path=str(path)))
        assert registry.resolve("City of Glendale").viewer == "g"

    def test_missing_file_is_empty(self, tmp_path):
        config = ProviderConfig(config_path=str(tmp_path / "absent.json"))
        assert len(ProviderRegistry.from_config(config)) == 0

    def test_registry_is_read_only(self):
        registry = ProviderRegistry.from_mapping(
            {"Pasadena": {"method": "viewer_link", "viewer": "p"}}
        )
        with pytest.raises(TypeError):
            registry.providers["glendale"] = ViewerProvider(viewer="g")
