"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ArcGISConfig(BaseSettings):
    """Feature-service transport configuration."""

    model_config = {"env_prefix": "ZONINGLENS_ARCGIS_"}

    timeout_seconds: float = 8.0
    max_retries: int = 2
    backoff_seconds: float = 0.25
    post_threshold_chars: int = 1800
    spatial_reference: int = 102100
    user_agent: str = "zoninglens/0.1"


class EndpointConfig(BaseSettings):
    """County feature layers, their field names, and human viewer links."""

    model_config = {"env_prefix": "ZONINGLENS_ENDPOINTS_"}

    parcel_query: str = ""
    jurisdiction_query: str = ""
    zoning_query: str = ""
    assessor_query: str = ""

    ain_field: str = "AIN"
    apn_field: str = "APN"
    situs_address_field: str = "SitusAddress"
    situs_city_field: str = "SitusCity"
    situs_zip_field: str = "SitusZIP"

    name_field: str = "CITY_NAME"
    type_field: str = "CITY_TYPE"

    znet_viewer: str = "https://experience.arcgis.com/experience/0eecc2d2d0b944a787f282420c8b290c"
    gisnet_viewer: str = "https://planning.lacounty.gov/gisnet"
    title_22: str = (
        "https://library.municode.com/ca/los_angeles_county/codes/"
        "code_of_ordinances?nodeId=TIT22PLZO"
    )
    assessor_portal: str = "https://portal.assessor.lacounty.gov/parceldetail"

    overlay_config_path: str | None = None

    def configured(self) -> bool:
        """Parcel and zoning layers are required; assessor is optional."""
        return bool(self.parcel_query and self.zoning_query)

    def county_links(self) -> dict[str, str]:
        return {
            "znet": self.znet_viewer,
            "gisnet": self.gisnet_viewer,
            "title22": self.title_22,
        }

    def assessor_link(self, digits: str) -> str:
        return f"{self.assessor_portal.rstrip('/')}/{digits}"


class ProviderConfig(BaseSettings):
    """City provider registry source. Inline JSON wins over the file."""

    model_config = {"env_prefix": "ZONINGLENS_PROVIDERS_"}

    registry_json: str = ""
    config_path: str | None = None


class CacheConfig(BaseSettings):
    """Per-category cache sizing and time-to-live."""

    model_config = {"env_prefix": "ZONINGLENS_CACHE_"}

    max_entries: int = 100
    parcel_ttl_minutes: float = 10
    jurisdiction_ttl_minutes: float = 60
    zoning_ttl_minutes: float = 10
    overlay_ttl_minutes: float = 5
    assessor_ttl_minutes: float = 10


class RateLimitConfig(BaseSettings):
    """In-memory request rate limiting for the HTTP surface."""

    model_config = {"env_prefix": "ZONINGLENS_RATELIMIT_"}

    enabled: bool = True
    tools_max_requests: int = 30
    tools_window_seconds: float = 60.0
    burst_max_requests: int = 5
    burst_window_seconds: float = 5.0


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "ZONINGLENS_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    arcgis: ArcGISConfig = Field(default_factory=ArcGISConfig)
    endpoints: EndpointConfig = Field(default_factory=EndpointConfig)
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    ratelimit: RateLimitConfig = Field(default_factory=RateLimitConfig)
