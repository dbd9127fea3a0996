from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from deg_ora.errors import ConfigError

CONFIG_ENV_VAR = "DEG_ORA_CONFIG_PATH"

DEFAULT_SOURCES = ["GO:BP", "GO:MF", "GO:CC", "KEGG", "REAC", "WP"]
DIRECTIONS = ("combined", "split", "all")
SIGNIFICANCE_METHODS = ("g_SCS", "fdr", "bonferroni")


@dataclass
class FilterConfig:
    gene_column: str = "gene"
    padj_column: str = "padj"
    log2fc_column: str = "log2FoldChange"
    padj_threshold: float = 0.05
    log2fc_threshold: float = 1.0
    background_gene_column: Optional[str] = None

    @property
    def background_column(self) -> str:
        return self.background_gene_column or self.gene_column


@dataclass
class GostConfig:
    """Fixed query parameters sent to g:GOSt."""

    organism: str = "hsapiens"
    sources: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    user_threshold: float = 0.05
    significance_threshold_method: str = "g_SCS"
    ordered: bool = False
    all_results: bool = False
    no_iea: bool = False
    measure_underrepresentation: bool = False
    no_evidences: bool = False
    numeric_ns: str = ""
    base_url: str = "https://biit.cs.ut.ee/gprofiler"
    timeout: float = 120.0
    user_agent: str = "deg-ora"


@dataclass
class OutputConfig:
    output_dir: str = "results"
    name: Optional[str] = None
    timestamped: bool = True
    top_n: int = 10
    capped: bool = True
    include_plotlyjs: str = "cdn"
    dpi: int = 300


@dataclass
class RunConfig:
    de_path: Optional[str] = None
    background_path: Optional[str] = None
    direction: str = "combined"
    filter: FilterConfig = field(default_factory=FilterConfig)
    gost: GostConfig = field(default_factory=GostConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @property
    def run_name(self) -> str:
        if self.output.name:
            return self.output.name
        if self.de_path:
            return Path(self.de_path).stem
        return "deg_ora"

    def validate(self) -> "RunConfig":
        """
        Check thresholds and enumerated options.

        :returns: The same config, for chaining
        :raises ConfigError: When a value is out of range
        """
        if not 0 < self.filter.padj_threshold <= 1:
            raise ConfigError(
                f"padj_threshold must be in (0, 1], got {self.filter.padj_threshold}"
            )
        if self.filter.log2fc_threshold < 0:
            raise ConfigError(
                f"log2fc_threshold must be >= 0, got {self.filter.log2fc_threshold}"
            )
        if not 0 < self.gost.user_threshold <= 1:
            raise ConfigError(
                f"user_threshold must be in (0, 1], got {self.gost.user_threshold}"
            )
        if self.direction not in DIRECTIONS:
            raise ConfigError(
                f"direction must be one of {', '.join(DIRECTIONS)}, got '{self.direction}'"
            )
        if self.gost.significance_threshold_method not in SIGNIFICANCE_METHODS:
            raise ConfigError(
                "significance_threshold_method must be one of "
                f"{', '.join(SIGNIFICANCE_METHODS)}, got '{self.gost.significance_threshold_method}'"
            )
        if not self.gost.sources:
            raise ConfigError("At least one annotation source is required.")
        if self.output.top_n < 0:
            raise ConfigError(f"top_n must be >= 0, got {self.output.top_n}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def override(section: Any, **values: Any) -> Any:
    """Return a copy of a config section with every non-None value replaced."""
    changes = {key: value for key, value in values.items() if value is not None}
    return replace(section, **changes) if changes else section


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(
            f"Config file not found at '{path}'. "
            f"Pass --config or set {CONFIG_ENV_VAR} to a valid YAML config."
        )
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config YAML at '{path}': {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config at '{path}' must be a YAML mapping/object.")
    return data


def _coerce_value(value: Any, default: Any, key: str) -> Any:
    if value is None:
        return default
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"'{key}' must be true or false, got {value!r}.")
        return value
    if isinstance(default, list):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if not isinstance(value, list):
            raise ConfigError(f"'{key}' must be a list.")
        return [str(item) for item in value]
    if isinstance(default, (int, float)):
        try:
            return type(default)(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"'{key}' must be a number, got {value!r}.") from exc
    return str(value)


def _coerce_section(cls: type, section: Any, key: str) -> Any:
    if section is None:
        return cls()
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' section must be a mapping/object.")

    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in '{key}': {', '.join(unknown)}")

    values = {
        name: _coerce_value(value, getattr(defaults, name), f"{key}.{name}")
        for name, value in section.items()
    }
    return cls(**values)


def config_from_dict(raw: Dict[str, Any]) -> RunConfig:
    """Build a validated RunConfig from a parsed YAML mapping."""
    top_level = {"de_path", "background_path", "direction", "filter", "gost", "output"}
    unknown = sorted(set(raw) - top_level)
    if unknown:
        raise ConfigError(f"Unknown top-level config keys: {', '.join(unknown)}")

    config = RunConfig(
        de_path=str(raw["de_path"]) if raw.get("de_path") else None,
        background_path=str(raw["background_path"]) if raw.get("background_path") else None,
        direction=str(raw.get("direction", "combined")),
        filter=_coerce_section(FilterConfig, raw.get("filter"), "filter"),
        gost=_coerce_section(GostConfig, raw.get("gost"), "gost"),
        output=_coerce_section(OutputConfig, raw.get("output"), "output"),
    )
    return config.validate()


def load_config(path: Optional[Union[str, Path]] = None) -> RunConfig:
    """
    Load the run configuration.

    Precedence:
    1. The explicit ``path`` argument.
    2. The path in DEG_ORA_CONFIG_PATH, if set.
    3. Built-in defaults.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return RunConfig()
        path = env_path

    return config_from_dict(_load_yaml(Path(path).expanduser()))
