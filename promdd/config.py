"""Configuration models using Pydantic for validation."""
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import os

from promdd.errors import ConfigurationError

DATADOG_SITES = frozenset({
    "datadoghq.com",
    "us3.datadoghq.com",
    "us5.datadoghq.com",
    "ap1.datadoghq.com",
    "ap2.datadoghq.com",
    "datadoghq.eu",
    "ddog-gov.com",
})


class PrometheusConfig(BaseModel):
    """Prometheus query API connection settings."""
    model_config = ConfigDict(frozen=True)

    url: str = "http://localhost:9090"
    timeout_s: float = 10.0
    retries: int = Field(default=2, ge=0)


class DatadogConfig(BaseModel):
    """Datadog metrics intake settings."""
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None
    site: str = "datadoghq.com"
    max_series_per_request: int = Field(default=500, ge=1)

    @field_validator('site')
    @classmethod
    def validate_site(cls, v):
        """Site must be one the Datadog API client can address."""
        if v not in DATADOG_SITES:
            raise ValueError(f"Unknown Datadog site '{v}', expected one of {sorted(DATADOG_SITES)}")
        return v


class WorkerConfig(BaseModel):
    """Sampling window and translation settings."""
    model_config = ConfigDict(frozen=True)

    metric_prefix: str
    target_prefix: str = ""
    quantiles: List[float] = Field(default_factory=lambda: [0.5, 0.9, 0.95, 0.99])
    histogram_group_by: List[str] = Field(
        default_factory=lambda: ["temporal_namespace", "operation"]
    )
    query_interval_s: float = Field(default=60, gt=0)
    step_s: int = Field(default=60, ge=1)
    sleep_s: float = Field(default=60, ge=1)
    retry_backoff_s: float = Field(default=3, ge=0)
    skip_overlapping_ticks: bool = False

    @field_validator('metric_prefix')
    @classmethod
    def validate_prefix(cls, v):
        if not v.strip():
            raise ValueError("metric_prefix must not be empty")
        return v

    @field_validator('quantiles')
    @classmethod
    def validate_quantiles(cls, v):
        """Quantiles must be unique and within (0, 1]."""
        if not v:
            raise ValueError("At least one quantile must be defined")
        for q in v:
            if not 0 < q <= 1:
                raise ValueError(f"Quantile {q} is outside (0, 1]")
        if len(v) != len(set(v)):
            raise ValueError("Quantiles must be unique")
        return v


class SelfMetricsConfig(BaseModel):
    """Prometheus endpoint exposing the forwarder's own metrics."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    port: int = 8000
    bind_address: str = "0.0.0.0"
    prefix: str = "promdd_"


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    model_config = ConfigDict(frozen=True)

    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"
    control_api_host: str = "0.0.0.0"
    control_api_port: int = 8081  # 0 disables the status API


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    prometheus: PrometheusConfig = Field(default_factory=PrometheusConfig)
    datadog: DatadogConfig = Field(default_factory=DatadogConfig)
    worker: WorkerConfig
    self_metrics: SelfMetricsConfig = Field(default_factory=SelfMetricsConfig)


def _override(raw_config: dict, section: str, key: str, env_name: str):
    if env_value := os.getenv(env_name):
        raw_config.setdefault(section, {})
        raw_config[section][key] = env_value


def parse_config(raw_config: dict) -> Config:
    """Validate a raw configuration mapping, applying environment overrides."""
    raw_config = dict(raw_config or {})
    for section in ('global', 'prometheus', 'datadog'):
        if section in raw_config:
            raw_config[section] = dict(raw_config[section] or {})

    _override(raw_config, 'prometheus', 'url', 'PROMETHEUS_URL')
    _override(raw_config, 'datadog', 'api_key', 'DD_API_KEY')
    _override(raw_config, 'datadog', 'site', 'DD_SITE')
    _override(raw_config, 'global', 'log_level', 'LOG_LEVEL')

    try:
        return Config(**raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if raw_config is not None and not isinstance(raw_config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    return parse_config(raw_config)
