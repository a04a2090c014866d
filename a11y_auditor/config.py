"""
Scanner configuration

Defaults, overridden by an optional TOML file, overridden by environment
variables prefixed with ``A11Y_AUDITOR_``. CLI flags are applied last by the
caller via :func:`apply_overrides`.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Dict, List, Mapping, Optional

import toml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "A11Y_AUDITOR_"
DEFAULT_CONFIG_FILENAME = "a11y-auditor.toml"
SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")

DEFAULT_FRAMEWORK_PATTERNS = [
    # Next.js
    "ServerRoot",
    "AppRouter",
    "RootErrorBoundary",
    "ErrorBoundary",
    "ErrorBoundaryHandler",
    "NotFoundErrorBoundary",
    "RedirectErrorBoundary",
    "RedirectBoundary",
    "InnerLayoutRouter",
    "OuterLayoutRouter",
    "ScrollAndFocusHandler",
    "StaticGenerationSearchParamsBailoutProvider",
    # React Router
    "RouterProvider",
    "DataRouterContext",
    "LocationContext",
    "RouteContext",
    # Common HOCs
    "Context.Provider",
    "Context.Consumer",
    "ForwardRef",
    "Memo",
    # Generic
    "Root",
    "App",
    "Fragment",
    "StrictMode",
    "Suspense",
    "Profiler",
]


@dataclass
class BrowserConfig:
    """Browser launch and page stability settings (milliseconds)"""
    browser_type: str = "chromium"
    headless: bool = True
    timeout: int = 30000
    stabilization_delay: int = 3000
    max_navigation_waits: int = 3
    navigation_check_interval: int = 1000
    network_idle_timeout: int = 5000
    post_navigation_delay: int = 2000


@dataclass
class ScanSettings:
    """Accessibility checker invocation settings"""
    max_retries: int = 3
    retry_delay_base: int = 2000
    tags: Optional[List[str]] = None
    axe_script: Optional[str] = None
    require_react: bool = False
    ci_mode: bool = False
    ci_threshold: int = 0
    scan_timeout: Optional[float] = None


@dataclass
class KeyboardConfig:
    """Keyboard engine settings"""
    enabled: bool = False
    max_tab_presses: int = 100
    tab_delay: int = 100
    focus_trap_threshold: int = 3
    test_skip_links: bool = True


@dataclass
class FrameworkConfig:
    """Component attribution settings"""
    patterns: List[str] = field(default_factory=lambda: list(DEFAULT_FRAMEWORK_PATTERNS))
    attribute_passes: bool = True


@dataclass
class ScannerConfig:
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    scan: ScanSettings = field(default_factory=ScanSettings)
    keyboard: KeyboardConfig = field(default_factory=KeyboardConfig)
    framework: FrameworkConfig = field(default_factory=FrameworkConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> "ScannerConfig":
        if self.browser.browser_type not in SUPPORTED_BROWSERS:
            raise ConfigurationError(
                f"Unsupported browser '{self.browser.browser_type}'. "
                f"Choose one of: {', '.join(SUPPORTED_BROWSERS)}",
                "browser.browser_type",
            )
        if self.scan.max_retries < 1:
            raise ConfigurationError("scan.max_retries must be at least 1", "scan.max_retries")
        if self.browser.max_navigation_waits < 1:
            raise ConfigurationError(
                "browser.max_navigation_waits must be at least 1",
                "browser.max_navigation_waits",
            )
        if self.keyboard.focus_trap_threshold < 2:
            raise ConfigurationError(
                "keyboard.focus_trap_threshold must be at least 2",
                "keyboard.focus_trap_threshold",
            )
        for section, name in (
            ("browser", "timeout"),
            ("scan", "retry_delay_base"),
            ("scan", "ci_threshold"),
            ("keyboard", "max_tab_presses"),
            ("keyboard", "tab_delay"),
        ):
            if getattr(getattr(self, section), name) < 0:
                raise ConfigurationError(f"{section}.{name} must not be negative", f"{section}.{name}")
        return self


def _parse_env_value(raw: str, current: Any, name: str) -> Any:
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        raise ConfigurationError(f"{name} must be a boolean, got '{raw}'", name)
    if isinstance(current, int):
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be an integer, got '{raw}'", name)
    if isinstance(current, float) or current is None and name.endswith("SCAN_TIMEOUT"):
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number, got '{raw}'", name)
    if isinstance(current, list) or current is None and name.endswith("TAGS"):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def _merge_section(section: Any, values: Mapping[str, Any], prefix: str):
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key not in known:
            raise ConfigurationError(f"Unknown configuration key '{prefix}.{key}'", f"{prefix}.{key}")
        setattr(section, key, value)


def apply_overrides(config: ScannerConfig, overrides: Mapping[str, Mapping[str, Any]]) -> ScannerConfig:
    """Apply a nested mapping such as ``{"browser": {"headless": False}}``.

    ``None`` values are ignored so unset CLI flags do not clobber lower layers.
    """
    for section_name, values in overrides.items():
        section = getattr(config, section_name, None)
        if section is None or not is_dataclass(section):
            raise ConfigurationError(f"Unknown configuration section '{section_name}'", section_name)
        if not isinstance(values, Mapping):
            raise ConfigurationError(f"Configuration section '{section_name}' must be a table", section_name)
        _merge_section(
            section,
            {k: v for k, v in values.items() if v is not None},
            section_name,
        )
    return config


def load_env_overrides(config: ScannerConfig, environ: Optional[Mapping[str, str]] = None) -> ScannerConfig:
    """Apply ``A11Y_AUDITOR_<SECTION>_<FIELD>`` environment variables"""
    environ = os.environ if environ is None else environ
    for section_field in fields(config):
        section = getattr(config, section_field.name)
        for f in fields(section):
            name = f"{ENV_PREFIX}{section_field.name.upper()}_{f.name.upper()}"
            if name in environ:
                value = _parse_env_value(environ[name], getattr(section, f.name), name)
                setattr(section, f.name, value)
                logger.debug(f"Config override from environment: {name}")
    return config


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> ScannerConfig:
    """
    Build the effective configuration

    Args:
        path: Optional TOML file. When omitted, ``a11y-auditor.toml`` in the
            working directory is used if it exists.
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        Validated ScannerConfig
    """
    config = ScannerConfig()

    if path is None and os.path.exists(DEFAULT_CONFIG_FILENAME):
        path = DEFAULT_CONFIG_FILENAME

    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = toml.load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {path}", "config")
        except toml.TomlDecodeError as e:
            raise ConfigurationError(f"Config file {path} is not valid TOML: {e}", "config")
        apply_overrides(config, data)
        logger.info(f"Loaded configuration from {path}")

    load_env_overrides(config, environ)
    return config.validate()
