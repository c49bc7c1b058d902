"""Configuration models using Pydantic for validation."""
from pathlib import Path
from typing import Dict, List, Optional, Literal, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import os

CONFIG_SUFFIXES = (".yaml", ".yml", ".json")


class Strict(BaseModel):
    """Base model rejecting unknown fields."""
    model_config = ConfigDict(extra="forbid")


class KeySpec(Strict):
    """Specification for decomposition key generation."""
    values: Optional[List[str]] = None
    range: Optional[List[int]] = None  # [start, end]
    fmt: Optional[str] = None  # Format string for range values


class MixtureComponent(Strict):
    """Component of a mixture distribution."""
    type: Literal["lognormal", "exponential"]
    weight: float
    mu: Optional[float] = None
    sigma: Optional[float] = None
    lam: Optional[float] = None  # For exponential


class SourceConfig(Strict):
    """Instrumentation source configuration."""
    kind: Literal["synthetic", "command"] = "synthetic"

    # Command source
    command: List[str] = Field(default_factory=lambda: ["/bin/sh"])

    # Synthetic source: key space
    keys: KeySpec = Field(default_factory=lambda: KeySpec(range=[0, 7], fmt="cpu{}"))
    key_cap: Optional[int] = None
    sampling_strategy: Literal["first_n", "hash"] = "first_n"
    zipf_alpha: Optional[float] = None  # For hot/cold skew

    # Synthetic source: event rate per key per tick
    base_rate: float = 50.0
    diurnal_amp: Optional[float] = None
    diurnal_phase: Optional[float] = 0.0

    # Synthetic source: value distribution
    algorithm: Literal["lognormal", "exponential", "mixture"] = "lognormal"
    mu: Optional[float] = None
    sigma: Optional[float] = None
    lam: Optional[float] = None
    components: Optional[List[MixtureComponent]] = None

    # Quantization of drawn values
    quantize: Literal["log2", "linear"] = "log2"
    step: int = 1000

    seed: Optional[int] = None

    @field_validator('command')
    @classmethod
    def validate_command(cls, v):
        """The command must name an executable."""
        if not v:
            raise ValueError("command must not be empty")
        return v

    @field_validator('step')
    @classmethod
    def validate_step(cls, v):
        """Linear quantization needs a positive step."""
        if v <= 0:
            raise ValueError("step must be positive")
        return v


class PrometheusExporterConfig(Strict):
    """Self-metrics exporter configuration."""
    enabled: bool = True
    port: int = 8000
    prefix: str = "heatscope_"
    bind_address: str = "0.0.0.0"


class ExportersConfig(Strict):
    """Configuration for all exporters."""
    prometheus: PrometheusExporterConfig = Field(default_factory=PrometheusExporterConfig)


class ServerConfig(Strict):
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8001
    static_dir: str = "."
    index: str = "heatscope.html"


class GlobalConfig(Strict):
    """Global configuration settings."""
    tick_interval_s: int = Field(default=1, gt=0)
    window_s: int = Field(default=3600, gt=0)
    seed: int = 42
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(Strict):
    """Root configuration model."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    server: ServerConfig = Field(default_factory=ServerConfig)
    exporters: ExportersConfig = Field(default_factory=ExportersConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)

    program: Optional[str] = None
    script: Optional[str] = None
    min: int = 0
    max: int = 100000

    @model_validator(mode='after')
    def validate_range(self):
        """Default value range must be non-empty."""
        if self.max <= self.min:
            raise ValueError(f"max ({self.max}) must be greater than min ({self.min})")
        return self

    @model_validator(mode='after')
    def validate_program(self):
        """A command source needs a program to run."""
        if self.source.kind == "command" and not (self.program or self.script):
            raise ValueError("did not find script or program for the command source")
        return self

    def conf_view(self) -> Dict[str, Any]:
        """Configuration as published to clients."""
        return {
            "program": self.program,
            "script": self.script,
            "min": self.min,
            "max": self.max,
        }


def read_text(path: str, what: str) -> str:
    """Read a required text file."""
    try:
        return Path(path).read_text()
    except OSError as e:
        raise FileNotFoundError(f"could not open {what} \"{path}\": {e}")


def load_config(config_path: str) -> Config:
    """
    Load and validate configuration.

    YAML or JSON files are parsed as configuration; any other file is taken to
    be the instrumentation program itself, run by the command source with
    default settings.
    """
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    if config_path.endswith(CONFIG_SUFFIXES):
        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f)

        if not isinstance(raw_config, dict):
            raise ValueError(
                f"configuration file \"{config_path}\" did not define a mapping"
            )
    else:
        raw_config = {
            "program": read_text(config_path, "program"),
            "script": config_path,
            "source": {"kind": "command"},
        }

    # Apply environment variable overrides
    if env_port := os.getenv('PORT'):
        raw_config.setdefault('server', {})['port'] = env_port

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    try:
        config = Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    if config.program is None and config.script:
        script = Path(config.script)
        if not script.is_absolute():
            script = Path(config_path).parent / script
        config.program = read_text(str(script), "specified script")

    return config
