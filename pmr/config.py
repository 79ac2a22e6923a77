"""Home directory layout, diagnostic logging and program config loading."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from pmr.errors import ConfigParseError
from pmr.registry.models import ProgramConfig

PMR_HOME = Path.home() / ".pmr"
REGISTRY_FILENAME = "dump.json"
LOG_DIRNAME = "logs"
DIAGNOSTIC_LOG_FILENAME = "pmr.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_logging_configured = False


def resolve_home() -> Path:
    """Return the pmr home directory, honoring the PMR_HOME override."""
    override = str(os.getenv("PMR_HOME", "")).strip()
    if override:
        return Path(override).expanduser()
    return PMR_HOME


def registry_path(home: Path | None = None) -> Path:
    return (home or resolve_home()) / REGISTRY_FILENAME


def log_root(home: Path | None = None) -> Path:
    return (home or resolve_home()) / LOG_DIRNAME


def ensure_home(home: Path | None = None) -> Path:
    root = home or resolve_home()
    root.mkdir(parents=True, exist_ok=True)
    return root


def configure_logging(home: Path | None = None, *, verbose: bool = False) -> None:
    """Send diagnostics to <home>/pmr.log, and also to stderr when verbose."""
    global _logging_configured
    if _logging_configured:
        return
    root = ensure_home(home)
    logger = logging.getLogger("pmr")
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(root / DIAGNOSTIC_LOG_FILENAME, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if verbose:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.DEBUG)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
    logger.propagate = False
    _logging_configured = True


def load_program_config(path: Path) -> ProgramConfig:
    """Parse a {name, program, args} config descriptor."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigParseError(f"cannot read config file {path}: {exc}", path=str(path)) from exc
    except json.JSONDecodeError as exc:
        raise ConfigParseError(f"config file {path} is not valid JSON: {exc}", path=str(path)) from exc
    if not isinstance(raw, dict):
        raise ConfigParseError(f"config file {path} must contain an object", path=str(path))
    try:
        config = ProgramConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigParseError(f"config file {path} is invalid: {exc}", path=str(path)) from exc
    if not config.program.strip():
        raise ConfigParseError(f"config file {path} has an empty program", path=str(path))
    return config
