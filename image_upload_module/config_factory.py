"""Per-service configuration variants and the user configuration they live in."""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models import ServiceId

DEFAULT_PROXY_PREFIX = "https://image.baidu.com/search/down?thumburl="


class ServiceConfigBase(BaseModel):
    """Common part of every service configuration."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    enabled: bool = Field(default=True, description="Service participates in uploads")


class WeiboConfig(ServiceConfigBase):
    """Weibo picture upload, authenticated by a browser session cookie."""

    service: Literal["weibo"] = "weibo"
    cookie: str = Field(default="", description="Weibo session cookie")


class R2Config(ServiceConfigBase):
    """Cloudflare R2 (S3-compatible) bucket."""

    service: Literal["r2"] = "r2"
    account_id: str = Field(default="", description="Cloudflare account ID")
    access_key_id: str = Field(default="", description="R2 access key ID")
    secret_access_key: str = Field(default="", description="R2 secret access key")
    bucket_name: str = Field(default="", description="Bucket name")
    path: str = Field(default="", description="Key prefix, e.g. images/")
    public_domain: str = Field(default="", description="Public domain, e.g. https://cdn.example.com")


class SmmsConfig(ServiceConfigBase):
    """SM.MS public image host, authenticated by an API token."""

    service: Literal["smms"] = "smms"
    token: str = Field(default="", description="SM.MS API token")


ServiceConfig = Annotated[WeiboConfig | R2Config | SmmsConfig, Field(discriminator="service")]

CONFIG_TYPES: dict[ServiceId, type[ServiceConfigBase]] = {
    ServiceId.WEIBO: WeiboConfig,
    ServiceId.R2: R2Config,
    ServiceId.SMMS: SmmsConfig,
}


def _service_tag(key) -> str:
    try:
        return ServiceId(key).value
    except ValueError:
        return str(key)


class OutputFormat(str, Enum):
    """Transform applied to the primary URL before it is handed out."""

    DIRECT = "direct"
    PROXIED = "proxied"


class BackupPolicy(BaseModel):
    """Which services receive a best-effort copy after the primary upload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    enabled: bool = False
    services: list[ServiceId] = Field(default_factory=list)

    @field_validator("services")
    @classmethod
    def dedupe_services(cls, v: list[ServiceId]) -> list[ServiceId]:
        """Keep first occurrence of every service, preserving order."""
        return list(dict.fromkeys(v))


class UserConfig(BaseModel):
    """User configuration consumed by the orchestrator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    primary_service: ServiceId
    services: dict[ServiceId, ServiceConfig] = Field(default_factory=dict)
    output_format: OutputFormat = OutputFormat.DIRECT
    proxy_prefix: str = Field(default=DEFAULT_PROXY_PREFIX, description="Prefix used for proxied links")
    backup: BackupPolicy | None = None

    @model_validator(mode="before")
    @classmethod
    def tag_service_entries(cls, data):
        """Fill the discriminator from the map key when a stored entry omits it."""
        if isinstance(data, dict):
            services = data.get("services")
            if isinstance(services, dict):
                tagged = {}
                for key, value in services.items():
                    if isinstance(value, dict) and "service" not in value:
                        value = {**value, "service": _service_tag(key)}
                    tagged[key] = value
                data = {**data, "services": tagged}
        return data

    @model_validator(mode="after")
    def check_service_keys(self) -> "UserConfig":
        for key, service_config in self.services.items():
            if service_config.service != key:
                raise ValueError(f"services[{key.value}] holds a {service_config.service} configuration")
        return self

    def service_config(self, service_id: ServiceId) -> ServiceConfigBase | None:
        return self.services.get(service_id)

    def backup_targets(self) -> list[ServiceId]:
        """Backup services to attempt: enabled policy only, primary excluded."""
        if not self.backup or not self.backup.enabled:
            return []
        return [s for s in self.backup.services if s != self.primary_service]

    def backup_policy_errors(self) -> list[str]:
        """Backups listed without an enabled configuration."""
        errors = []
        for service_id in self.backup_targets():
            service_config = self.services.get(service_id)
            if service_config is None:
                errors.append(f"backup service {service_id.value} has no configuration")
            elif not service_config.enabled:
                errors.append(f"backup service {service_id.value} is disabled")
        return errors
