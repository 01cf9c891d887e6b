"""
Configuration management for npm-license-report.

The configuration is assembled once per run from defaults, an optional config
file, environment variables and CLI options (in increasing precedence), then
passed explicitly to every component. All sections are frozen dataclasses.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import toml
import yaml
from rich.console import Console

console = Console(stderr=True)

ENV_PREFIX = "NPM_LICENSE_REPORT_"
CONFIG_FILE_NAMES = (
    ".npm-license-report.json",
    ".npm-license-report.yaml",
    ".npm-license-report.yml",
    ".npm-license-report.toml",
)
DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"
DEFAULT_SPDX_TEXT_URL = (
    "https://raw.githubusercontent.com/spdx/license-list-data/master/text"
)


def parse_ignored(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """Accept a semicolon-separated string or a list of package names."""
    if value is None:
        return ()
    items = value.split(";") if isinstance(value, str) else list(value)
    return tuple(item.strip() for item in items if item and item.strip())


@dataclass(frozen=True)
class ReportConfig:
    """What to resolve, how to resolve it and where the report goes."""

    project_root: str = "."
    monorepo_root: Optional[str] = None
    out_path: str = "licenses.html"
    scratch_dir_name: str = ".license-gen-tmp"
    template_path: Optional[str] = None

    # appearance
    group: bool = True
    external_links: bool = True
    add_index: bool = False
    title: Optional[str] = None

    # dependency selection
    ignored: Tuple[str, ...] = ()
    only_prod: bool = False
    include_dev: bool = True
    include_optional: bool = True
    use_lock_file: bool = False

    # cache and optimization
    keep_scratch: bool = False
    checksum_path: Optional[str] = None
    checksum_embed: bool = False
    avoid_registry: bool = True
    no_spdx: bool = False
    only_spdx: bool = False
    only_local_tar: bool = True

    fail_on_missing: bool = False

    def __post_init__(self):
        if not isinstance(self.ignored, tuple):
            object.__setattr__(self, "ignored", parse_ignored(self.ignored))

    @property
    def root_path(self) -> Path:
        return Path(self.project_root).resolve()

    @property
    def monorepo_path(self) -> Optional[Path]:
        return Path(self.monorepo_root).resolve() if self.monorepo_root else None

    @property
    def scratch_dir(self) -> Path:
        return self.root_path / self.scratch_dir_name

    @property
    def tarball_download_enabled(self) -> bool:
        return not self.only_spdx and not self.only_local_tar


@dataclass(frozen=True)
class NetworkConfig:
    """Network and registry configuration."""

    registry_url: str = DEFAULT_REGISTRY_URL
    spdx_text_url: str = DEFAULT_SPDX_TEXT_URL
    registry_token: Optional[str] = field(default=None, repr=False)
    user_agent: str = "npm-license-report/1.0.0"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_concurrent: int = 16


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "warn"
    enable_json: bool = False


@dataclass(frozen=True)
class PerformanceConfig:
    """HTTP response cache configuration."""

    enable_caching: bool = True
    cache_ttl_seconds: int = 3600
    max_cache_size: int = 1000


@dataclass(frozen=True)
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    report: ReportConfig = field(default_factory=ReportConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)

    def with_overrides(self, section: str, **values: Any) -> "ComprehensiveConfig":
        """Return a copy with non-None values applied to one section."""
        current = getattr(self, section)
        updates = {key: value for key, value in values.items() if value is not None}
        if not updates:
            return self
        return replace(self, **{section: replace(current, **updates)})


SECTIONS = ("report", "network", "logging", "performance")


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    def check_positive(name: str, value: Any, types: tuple) -> None:
        if isinstance(value, bool) or not isinstance(value, types):
            kind = "an integer" if types == (int,) else "a number"
            errors.append(f"{name} must be {kind}, got {value!r}")
        elif value <= 0:
            errors.append(f"{name} must be positive")

    check_positive("network.max_concurrent", config.network.max_concurrent, (int,))
    check_positive("network.connect_timeout", config.network.connect_timeout, (int, float))
    check_positive("network.read_timeout", config.network.read_timeout, (int, float))
    if not isinstance(config.network.registry_url, str) or not config.network.registry_url.startswith(
        ("http://", "https://")
    ):
        errors.append("network.registry_url must be an http(s) URL")

    check_positive("performance.cache_ttl_seconds", config.performance.cache_ttl_seconds, (int, float))
    check_positive("performance.max_cache_size", config.performance.max_cache_size, (int,))

    log_level = config.logging.log_level
    if not isinstance(log_level, str) or log_level.lower() not in (
        "error", "warn", "warning", "info", "verbose", "debug"
    ):
        errors.append(f"logging.log_level is not a known level: {log_level!r}")

    for name, value in (
        ("performance.enable_caching", config.performance.enable_caching),
        ("report.only_spdx", config.report.only_spdx),
        ("report.no_spdx", config.report.no_spdx),
        ("report.fail_on_missing", config.report.fail_on_missing),
    ):
        if not isinstance(value, bool):
            errors.append(f"{name} must be true or false, got {value!r}")

    if config.report.only_spdx is True and config.report.no_spdx is True:
        errors.append("report.only_spdx and report.no_spdx are mutually exclusive")
    scratch_dir_name = config.report.scratch_dir_name
    if (
        not isinstance(scratch_dir_name, str)
        or not scratch_dir_name
        or Path(scratch_dir_name).is_absolute()
    ):
        errors.append("report.scratch_dir_name must be a relative directory name")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON, YAML or TOML file."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            suffix = config_path.suffix.lower()
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".toml":
                data = toml.load(f)
            else:
                data = json.load(f)
    except (OSError, ValueError, yaml.YAMLError, toml.TomlDecodeError) as e:
        console.print(f"⚠️  Error loading config from {config_path}: {e}", style="yellow")
        return None

    if not isinstance(data, dict):
        console.print(f"⚠️  Config file {config_path} is not a mapping", style="yellow")
        return None
    return data


def find_config_file(project_root: Optional[Path] = None) -> Optional[Path]:
    """Find config file in standard locations."""
    base = project_root or Path.cwd()
    locations = [base / name for name in CONFIG_FILE_NAMES] + [
        Path.home() / ".config" / "npm-license-report" / "config.json",
        Path.home() / ".config" / "npm-license-report" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def apply_config_section(section: Any, section_data: Mapping[str, Any], section_name: str) -> Any:
    """Return a copy of a config section with known keys from a mapping applied."""
    known = {f.name for f in fields(section)}
    updates = {}
    for key, value in section_data.items():
        if key in known:
            updates[key] = value
        else:
            console.print(f"⚠️  Unknown config key in {section_name}: {key}", style="yellow")
    return replace(section, **updates) if updates else section


def load_environment_overrides(
    config: ComprehensiveConfig, environ: Optional[Mapping[str, str]] = None
) -> ComprehensiveConfig:
    """Apply NPM_LICENSE_REPORT_* environment variables."""
    env = os.environ if environ is None else environ

    def get_env_int(key: str) -> Optional[int]:
        raw = env.get(ENV_PREFIX + key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {ENV_PREFIX + key}, using default", style="yellow")
            return None

    def get_env_float(key: str) -> Optional[float]:
        raw = env.get(ENV_PREFIX + key)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            console.print(f"⚠️  Invalid float value for {ENV_PREFIX + key}, using default", style="yellow")
            return None

    config = config.with_overrides(
        "network",
        registry_url=env.get(ENV_PREFIX + "REGISTRY"),
        registry_token=env.get(ENV_PREFIX + "REGISTRY_TOKEN") or env.get("NPM_TOKEN"),
        user_agent=env.get(ENV_PREFIX + "USER_AGENT"),
        max_concurrent=get_env_int("MAX_CONCURRENT"),
        read_timeout=get_env_float("TIMEOUT"),
    )
    config = config.with_overrides(
        "logging",
        log_level=env.get(ENV_PREFIX + "LOG_LEVEL"),
    )
    config = config.with_overrides(
        "performance",
        cache_ttl_seconds=get_env_int("CACHE_TTL_SECONDS"),
    )
    return config


def load_config(
    project_root: Optional[str] = None,
    config_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    config = ComprehensiveConfig()
    if project_root is not None:
        config = config.with_overrides("report", project_root=project_root)

    path = Path(config_file) if config_file else find_config_file(config.report.root_path)
    if path:
        file_config = load_config_file(path)
        if file_config:
            sections = {}
            for name in SECTIONS:
                if name in file_config and isinstance(file_config[name], dict):
                    sections[name] = apply_config_section(
                        getattr(config, name), file_config[name], name
                    )
            if sections:
                config = replace(config, **sections)

    return load_environment_overrides(config, environ)


def create_sample_config() -> str:
    """Generate a sample configuration file."""
    sample_config = {
        "report": {
            "out_path": "licenses.html",
            "group": True,
            "external_links": True,
            "add_index": False,
            "ignored": [],
            "only_prod": False,
            "use_lock_file": True,
            "checksum_path": None,
            "checksum_embed": False,
            "avoid_registry": True,
            "no_spdx": False,
            "only_spdx": False,
            "only_local_tar": True,
            "fail_on_missing": False,
        },
        "network": {
            "registry_url": DEFAULT_REGISTRY_URL,
            "spdx_text_url": DEFAULT_SPDX_TEXT_URL,
            "connect_timeout": 10.0,
            "read_timeout": 30.0,
            "max_concurrent": 16,
        },
        "logging": {"log_level": "warn", "enable_json": False},
        "performance": {
            "enable_caching": True,
            "cache_ttl_seconds": 3600,
            "max_cache_size": 1000,
        },
    }

    return json.dumps(sample_config, indent=2)
