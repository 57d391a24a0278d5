"""City data-source providers and the registry that maps jurisdictions to them.

Provider configuration is a JSON object keyed by city name::

    {
      "Pasadena": {"method": "viewer_link", "viewer": "https://..."},
      "Glendale": {"method": "query", "endpoint": "https://.../MapServer/3",
                   "outFields": "ZONE,ZONE_DESC", "nameFields": ["ZONE"]}
    }

``arcgis_query`` is accepted as a synonym for ``query``, and a nested
``zoning: {url, outFields, fields}`` block is flattened onto the entry.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from zoninglens.core.config import ProviderConfig
from zoninglens.gis.models import LayerSpec, split_fields

logger = logging.getLogger(__name__)

_DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parents[3] / "config" / "city_providers.json"


def normalize_jurisdiction_name(name: str) -> str:
    """Lowercase, collapse whitespace, drop a leading "city of" and trailing "city"."""
    norm = re.sub(r"\s+", " ", (name or "").lower()).strip()
    norm = re.sub(r"^city of\s+", "", norm)
    norm = re.sub(r"\s+city$", "", norm)
    return norm


class ViewerProvider(BaseModel):
    """A city with no machine-queryable zoning layer; only a viewer link."""

    method: Literal["viewer_link"] = "viewer_link"
    viewer: str


class QueryProvider(BaseModel):
    """A city exposing its own zoning feature layer."""

    model_config = {"populate_by_name": True}

    method: Literal["query", "arcgis_query"] = "query"
    endpoint: str = Field(validation_alias=AliasChoices("endpoint", "url"))
    out_fields: list[str] = Field(
        default_factory=lambda: ["*"], validation_alias=AliasChoices("out_fields", "outFields")
    )
    name_fields: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("name_fields", "nameFields")
    )
    desc_fields: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("desc_fields", "descFields")
    )
    category_fields: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("category_fields", "categoryFields"),
    )
    overlays: list[LayerSpec] = Field(default_factory=list)
    viewer: str | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_zoning_block(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("zoning"), dict):
            return data
        data = dict(data)
        zoning = data.pop("zoning")
        data.setdefault("endpoint", zoning.get("url") or zoning.get("endpoint"))
        if "outFields" in zoning:
            data.setdefault("outFields", zoning["outFields"])
        fields = zoning.get("fields") or {}
        for source, target in (
            ("zone", "nameFields"),
            ("description", "descFields"),
            ("category", "categoryFields"),
        ):
            if source in fields:
                data.setdefault(target, fields[source])
        return data

    @field_validator("out_fields", "name_fields", "desc_fields", "category_fields", mode="before")
    @classmethod
    def split_csv(cls, value: Any) -> Any:
        return split_fields(value)

    @field_validator("overlays", mode="before")
    @classmethod
    def label_overlays(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        labelled = []
        for i, item in enumerate(value):
            if isinstance(item, dict) and not item.get("label"):
                item = {**item, "label": f"City overlay {i + 1}"}
            labelled.append(item)
        return labelled


Provider = Annotated[ViewerProvider | QueryProvider, Field(discriminator="method")]

_provider_adapter: TypeAdapter[ViewerProvider | QueryProvider] = TypeAdapter(Provider)


class ProviderRegistry:
    """Read-only mapping of normalized jurisdiction name to provider.

    Built once at startup and injected into whatever needs it. Unknown
    jurisdictions resolve to ``None``, meaning "viewer links only".
    """

    def __init__(
        self, providers: Mapping[str, ViewerProvider | QueryProvider] | None = None
    ) -> None:
        normalized = {
            normalize_jurisdiction_name(name): provider
            for name, provider in (providers or {}).items()
        }
        self._providers = MappingProxyType(normalized)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ProviderRegistry:
        """Validate each entry; invalid entries are logged and skipped."""
        providers: dict[str, ViewerProvider | QueryProvider] = {}
        for name, entry in raw.items():
            try:
                providers[name] = _provider_adapter.validate_python(entry)
            except ValidationError as exc:
                logger.warning("Skipping provider %r: %s", name, exc.errors()[0]["msg"])
        return cls(providers)

    @classmethod
    def from_json(cls, text: str) -> ProviderRegistry:
        """Parse a JSON object. Malformed input yields an empty registry."""
        if not text or not text.strip():
            return cls()
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.error("Provider registry JSON is malformed: %s", exc)
            return cls()
        if not isinstance(raw, dict):
            logger.error("Provider registry must be a JSON object, got %s", type(raw).__name__)
            return cls()
        return cls.from_mapping(raw)

    @classmethod
    def from_config(cls, config: ProviderConfig | None = None) -> ProviderRegistry:
        cfg = config or ProviderConfig()
        if cfg.registry_json.strip():
            return cls.from_json(cfg.registry_json)

        path = Path(cfg.config_path) if cfg.config_path else _DEFAULT_REGISTRY_PATH
        if not path.exists():
            logger.info("No provider registry at %s; city lookups use viewer links", path)
            return cls()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.error("Could not read provider registry %s: %s", path, exc)
            return cls()
        return cls.from_json(text)

    def resolve(self, jurisdiction: str) -> ViewerProvider | QueryProvider | None:
        return self._providers.get(normalize_jurisdiction_name(jurisdiction))

    @property
    def providers(self) -> Mapping[str, ViewerProvider | QueryProvider]:
        return self._providers

    def __contains__(self, jurisdiction: object) -> bool:
        return isinstance(jurisdiction, str) and self.resolve(jurisdiction) is not None

    def __len__(self) -> int:
        return len(self._providers)
