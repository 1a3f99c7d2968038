from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import yaml

from difflens_core.models import SEVERITIES
from difflens_core.utils.code import DEFAULT_MAX_SIZE
from difflens_core.utils.ignore import DEFAULT_IGNORE_FILENAME

logger = logging.getLogger(__name__)

CLIENT_LMSTUDIO = "lmstudio"
CLIENT_OPENAI = "openai"

_CLIENT_ALIASES = {
    "lmstudio": CLIENT_LMSTUDIO,
    "lmstudioclient": CLIENT_LMSTUDIO,
    "openai": CLIENT_OPENAI,
    "openaicompatibleclient": CLIENT_OPENAI,
}

DEFAULT_CONFIG: dict = {
    "directory": None,
    "start_commit": None,
    "end_commit": None,
    "output": "index.html",
    "ignore_file": None,  # None = ./.reviewignore, then <repo>/.reviewignore, then defaults only
    "rules_file": None,  # None = built-in rules
    "url": "http://localhost:1234",
    "model": "gpt-oss-20b",
    "temperature": 0.7,
    "max_size": DEFAULT_MAX_SIZE,
    "include_diff": True,
    "client": CLIENT_LMSTUDIO,
    "stream": False,
    "exclude": [],  # extra ignore patterns, same syntax as .reviewignore
    "severities": list(SEVERITIES),
}

BUILTIN_RULES_DIR = Path(__file__).parent / "rules"
_BUILTIN_RULES = BUILTIN_RULES_DIR / "default.md"


class ConfigurationError(ValueError):
    """Invalid run options; raised before any repository work starts."""


@dataclass(frozen=True)
class RunConfiguration:
    """Validated options for one review run. Built by build_run_config."""

    directory: str
    start_commit: Optional[str] = None
    end_commit: Optional[str] = None
    output: str = "index.html"
    ignore_file: Optional[str] = None
    rules_file: Optional[str] = None
    url: str = "http://localhost:1234"
    model: str = "gpt-oss-20b"
    temperature: float = 0.7
    max_size: int = DEFAULT_MAX_SIZE
    include_diff: bool = True
    client: str = CLIENT_LMSTUDIO
    stream: bool = False
    exclude: tuple[str, ...] = ()
    severities: tuple[str, ...] = SEVERITIES
    openai_api_key: Optional[str] = field(default=None, repr=False)


def load_config(config_path: str = ".difflens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. The YAML config file, if it exists
      3. CLI argument overrides (None values are ignored)
    """
    config = {
        **DEFAULT_CONFIG,
        "exclude": list(DEFAULT_CONFIG["exclude"]),
        "severities": list(DEFAULT_CONFIG["severities"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path, encoding="utf-8") as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        config.update({str(k).replace("-", "_"): v for k, v in file_config.items()})

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def resolve_client_type(value: Optional[str]) -> str:
    """Map a client name to a known client type, falling back to LM Studio."""
    client = _CLIENT_ALIASES.get((value or "").strip().lower())
    if client is None:
        logger.warning("Unknown client type %r, defaulting to %s", value, CLIENT_LMSTUDIO)
        return CLIENT_LMSTUDIO
    return client


def _validate_url(url) -> str:
    parsed = urlparse(str(url or ""))
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Invalid base URL {url!r}: expected http(s)://host[:port]")
    return str(url)


def _as_tuple(value, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'{name}' must be a list")
    return tuple(str(v) for v in value)


def build_run_config(config: dict) -> RunConfiguration:
    """Validate a merged config dict and freeze it into a RunConfiguration."""
    directory = config.get("directory")
    if not directory or not str(directory).strip():
        raise ConfigurationError("Directory path is required. Use -d or --directory to specify the repository.")
    if not Path(directory).is_dir():
        raise ConfigurationError(f"Directory not found: {directory}")

    try:
        temperature = float(config.get("temperature", DEFAULT_CONFIG["temperature"]))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Temperature must be a number, got {config.get('temperature')!r}")
    if not 0.0 <= temperature <= 1.0:
        raise ConfigurationError("Temperature must be between 0.0 and 1.0")

    try:
        max_size = int(config.get("max_size", DEFAULT_CONFIG["max_size"]))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Max file size must be an integer, got {config.get('max_size')!r}")
    if max_size <= 0:
        raise ConfigurationError("Max file size must be positive")

    severities = _as_tuple(config.get("severities"), "severities") or SEVERITIES
    unknown = [s for s in severities if s not in SEVERITIES]
    if unknown:
        raise ConfigurationError(f"Unknown severities {unknown}; choose from {', '.join(SEVERITIES)}")

    return RunConfiguration(
        directory=str(directory),
        start_commit=config.get("start_commit") or None,
        end_commit=config.get("end_commit") or None,
        output=str(config.get("output") or DEFAULT_CONFIG["output"]),
        ignore_file=config.get("ignore_file") or None,
        rules_file=config.get("rules_file") or None,
        url=_validate_url(config.get("url")),
        model=str(config.get("model") or DEFAULT_CONFIG["model"]),
        temperature=temperature,
        max_size=max_size,
        include_diff=bool(config.get("include_diff", True)),
        client=resolve_client_type(config.get("client")),
        stream=bool(config.get("stream", False)),
        exclude=_as_tuple(config.get("exclude"), "exclude"),
        severities=severities,
        openai_api_key=config.get("openai_api_key"),
    )


def load_rules(rules_file: Optional[str] = None) -> str:
    """
    Load the review rules text.

    A custom rules file is read when given; if it cannot be read a warning is
    logged and the built-in rules are used instead.
    """
    if rules_file:
        try:
            return Path(rules_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read custom review rules at %s: %s", rules_file, e)
    return _BUILTIN_RULES.read_text(encoding="utf-8")


def resolve_ignore_file(ignore_file: Optional[str], directory: str, cwd=None) -> Optional[Path]:
    """
    Pick the ignore file for a run.

    An explicit path is resolved against the current directory. Without one,
    ``./.reviewignore`` is tried, then ``<directory>/.reviewignore``. Returns
    None when no file applies and only the default patterns should be used.
    """
    base = Path(cwd) if cwd is not None else Path.cwd()
    if ignore_file:
        path = Path(ignore_file)
        return path if path.is_absolute() else base / path

    for candidate in (base / DEFAULT_IGNORE_FILENAME, Path(directory) / DEFAULT_IGNORE_FILENAME):
        if candidate.is_file():
            return candidate
    return None
