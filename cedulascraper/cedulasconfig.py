"""
cedulascraper.cedulasconfig
=================================

Configuration dataclasses and helpers used to coerce a JSON configuration
into Python objects consumed by the lookup runtime.

The primary public surface is :class:`Config`, which mirrors the JSON
structure operators author. The module also exposes :func:`load_config`,
which reads a JSON file and returns a typed :class:`Config` instance, and
:func:`apply_env`, which layers the environment overrides used by the
deployed service on top of it.

Selector strings and label patterns live here as data. The runtime in
:mod:`cedulascraper.cedulascraper` only knows *how* to look for a control,
never *where* it is.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Literal, Union, get_args, get_origin

PORTAL_URL = "https://cedulaprofesional.sep.gob.mx/"

# Flags that keep Chromium alive on PaaS containers (Render/Fly/Docker).
DEFAULT_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--single-process",
    "--no-zygote",
    "--disable-gpu",
    "--disable-web-security",
    "--window-size=1280,900",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

FIELD_NAMES = ("nombre", "paterno", "materno", "curp")


@dataclass(frozen=True)
class ControlSpec:
    """
    How to find one form control.

    Fields
    ------
    label_pattern: regular expression matched case-insensitively against the
        accessible label of the control. Tried first, in every frame.
    fallback_selectors: ordered CSS selectors tried after the label sweep
        failed in every frame.
    """

    label_pattern: str = ""
    fallback_selectors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ButtonSpec:
    """
    How to find an action button.

    ``name_pattern`` is matched against the accessible name of elements with
    ``role``; ``text`` is the text-contains fallback on ``<button>`` elements.
    """

    name_pattern: str = "buscar"
    text: str = "Buscar"
    role: str = "button"


@dataclass
class TimeoutConfig:
    """
    Timeouts in milliseconds.

    ``probe_ms`` and ``button_probe_ms`` bound a single visibility check,
    ``selector_ms`` bounds the readiness wait and is also the page default
    timeout, ``outcome_ms`` bounds the rows-vs-empty race after submit.
    ``queue_ms`` is how long a lookup may wait for the shared browser
    before its own budget starts. Probe budgets below 1 ms are raised to
    1 ms because Playwright reads 0 as "no timeout".
    """

    navigation_ms: int = 180000
    selector_ms: int = 90000
    outcome_ms: int = 45000
    poll_interval_ms: int = 250
    probe_ms: int = 300
    button_probe_ms: int = 500
    queue_ms: int = 60000

    def __post_init__(self) -> None:
        self.probe_ms = max(1, self.probe_ms)
        self.button_probe_ms = max(1, self.button_probe_ms)

    def lookup_budget_ms(self) -> int:
        """Upper bound for one lookup once it holds the browser."""
        return self.navigation_ms + self.selector_ms + self.outcome_ms


@dataclass
class BrowserConfig:
    """Browser process and per-request context settings."""

    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    launch_args: list[str] = field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    locale: str = "es-MX"
    timezone_id: str = "America/Mexico_City"
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 900
    ignore_https_errors: bool = True
    # Requests whose URL matches are aborted before they hit the network.
    blocked_resources: str = r"\.(mp4|avi|m3u8|webm|mov|woff2?|ttf|otf)$"
    navigation_timeout_ms: int = 180000
    default_timeout_ms: int = 90000
    # How long PageProvider.run waits for a job, queueing included.
    job_timeout_ms: int = 375000


def _default_controls() -> dict[str, ControlSpec]:
    return {
        "nombre": ControlSpec(
            r"Nombre\(s\)*",
            ("input#nombre", 'input[formcontrolname="nombre"]'),
        ),
        "paterno": ControlSpec(
            "Primer Apellido",
            ("input#primerApellido", 'input[formcontrolname="primerApellido"]'),
        ),
        "materno": ControlSpec(
            "Segundo Apellido",
            ("input#segundoApellido", 'input[formcontrolname="segundoApellido"]'),
        ),
        "curp": ControlSpec(
            "CURP",
            ("input#curp", 'input[formcontrolname="curp"]'),
        ),
    }


@dataclass
class Config:
    """
    Top-level runtime configuration.

    This dataclass mirrors the keys accepted by the JSON configuration
    files read with :func:`load_config`. Every field has a default that
    targets the SEP portal, so an empty JSON object is a valid config.
    """

    portal_url: str = PORTAL_URL

    browser: BrowserConfig = field(default_factory=BrowserConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    controls: dict[str, ControlSpec] = field(default_factory=_default_controls)
    search_button: ButtonSpec = field(default_factory=ButtonSpec)

    row_selector: str = "table tbody tr"
    cell_selector: str = "td"
    empty_result_pattern: str = "sin resultados|no se encontraron"

    # Raise instead of skipping when a non-empty field cannot be located.
    strict_fill: bool = False

    def control(self, name: str) -> ControlSpec | None:
        return self.controls.get(name)


def _unwrap_optional(t: Any) -> Any:
    """
    Return the inner type if ``t`` is Optional[...] else ``t``.

    This helper is used when coercing JSON values into typed dataclass
    fields so Optional[...] annotations are handled correctly.
    """
    if get_origin(t) is Union:
        non_none = [a for a in get_args(t) if a is not type(None)]
        if len(non_none) == 1:
            return non_none[0]
    return t


def coerce_value(val: Any, target_type: type[Any]) -> Any:
    inner_type = _unwrap_optional(target_type)

    if is_dataclass(inner_type) and isinstance(val, dict):
        return coerce_nested(val, inner_type)

    origin = get_origin(inner_type)
    args = get_args(inner_type)

    # JSON only has lists; tuple fields keep frozen specs hashable
    if origin is tuple and args:
        return tuple(coerce_value(v, args[0]) for v in val)

    if origin is list and args:
        return [coerce_value(v, args[0]) for v in val]

    # Dict[..., SomeDataclass]
    if origin is dict and len(args) == 2:
        key_type, value_type = args
        return {
            coerce_value(k, key_type): coerce_value(v, value_type)
            for k, v in val.items()
        }

    return val


def coerce_nested(obj: dict, cls: type[Any]) -> Any:
    if not is_dataclass(cls):
        return obj

    kwargs = {}
    for f in fields(cls):
        if f.name not in obj:
            continue
        val = obj[f.name]
        if val is MISSING:
            continue
        kwargs[f.name] = coerce_value(val, f.type)

    return cls(**kwargs)


def load_config(path: str | Path) -> Config:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    cfg = coerce_nested(raw, Config)
    # A partial controls table only overrides the fields it names
    if "controls" in raw:
        cfg.controls = {**_default_controls(), **cfg.controls}
    return cfg


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def apply_env(cfg: Config, environ: Mapping[str, str] | None = None) -> Config:
    """
    Override timeouts and switches from environment variables.

    Recognised variables: ``NAV_TIMEOUT_MS``, ``SEL_TIMEOUT_MS``,
    ``ROW_TIMEOUT_MS``, ``QUEUE_TIMEOUT_MS``, ``HEADLESS`` and ``STRICT_FILL``.
    Navigation and selector timeouts are mirrored onto the page defaults in
    :class:`BrowserConfig`, and the whole budget onto its job timeout.
    Returns ``cfg`` for chaining.
    """
    env = os.environ if environ is None else environ

    if env.get("NAV_TIMEOUT_MS"):
        cfg.timeouts.navigation_ms = int(env["NAV_TIMEOUT_MS"])
    if env.get("SEL_TIMEOUT_MS"):
        cfg.timeouts.selector_ms = int(env["SEL_TIMEOUT_MS"])
    if env.get("ROW_TIMEOUT_MS"):
        cfg.timeouts.outcome_ms = int(env["ROW_TIMEOUT_MS"])
    if env.get("QUEUE_TIMEOUT_MS"):
        cfg.timeouts.queue_ms = int(env["QUEUE_TIMEOUT_MS"])
    if env.get("HEADLESS"):
        cfg.browser.headless = _env_bool(env["HEADLESS"])
    if env.get("STRICT_FILL"):
        cfg.strict_fill = _env_bool(env["STRICT_FILL"])

    cfg.browser.navigation_timeout_ms = cfg.timeouts.navigation_ms
    cfg.browser.default_timeout_ms = cfg.timeouts.selector_ms
    cfg.browser.job_timeout_ms = cfg.timeouts.queue_ms + cfg.timeouts.lookup_budget_ms()
    return cfg
