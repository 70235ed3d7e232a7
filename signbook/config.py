"""
Service configuration.

Settings come from a Java-style ``.properties`` file (``key=value`` lines,
``#`` or ``!`` comments). The database URL can be overridden with the
``DB_URL`` environment variable and the file location with
``SIGNBOOK_CONFIG``.
"""

from __future__ import annotations

import codecs
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from .processing.markers import STRATEGY_NAMES
from .processing.splitter import MatchMode

DEFAULT_CONFIG_PATH = Path("config/config.properties")
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./data/signbook.db"

REQUIRED_KEYS = ("input.dir", "output.dir", "processed.dir", "error.dir")


class ConfigurationError(Exception):
    """Missing or malformed settings. Fatal at startup."""


@dataclass
class ProcessorConfig:
    input_dir: Path
    output_dir: Path
    processed_dir: Path
    error_dir: Path
    temp_extension: str = ".tmp"
    final_extension: str = ".txt"
    char_to_insert: str = "1"
    input_encoding: str = "ISO-8859-1"
    output_encoding: str = "UTF-8"
    polling_interval_ms: int = 10000
    input_file_pattern: str = ".*"
    database_url: str = DEFAULT_DATABASE_URL
    log_file: str = "signBook.preprocessor.log"
    log_level: str = "INFO"
    log_rotation_hours: int = 24
    marker_strategy: str = "auto"
    fixed_marker: str = "1"
    marker_match: MatchMode = MatchMode.EXACT
    page_batch_size: int = 50

    @property
    def polling_interval_seconds(self) -> float:
        return self.polling_interval_ms / 1000.0


def parse_properties(text: str) -> Dict[str, str]:
    """Parse ``key=value`` / ``key: value`` lines. Line continuations are not supported."""
    properties: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line[0] in "#!":
            continue
        match = re.match(r"([^=:\s]+)\s*[=:\s]\s*(.*)$", line)
        if match:
            properties[match.group(1)] = match.group(2).strip()
        else:
            properties[line] = ""
    return properties


def _int(props: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = props.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _encoding(props: Mapping[str, str], key: str, default: str) -> str:
    value = props.get(key) or default
    try:
        codecs.lookup(value)
    except LookupError as exc:
        raise ConfigurationError(f"{key}: unknown encoding {value!r}") from exc
    return value


def config_from_properties(props: Mapping[str, str], environ: Optional[Mapping[str, str]] = None) -> ProcessorConfig:
    environ = os.environ if environ is None else environ

    missing = [key for key in REQUIRED_KEYS if not props.get(key)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    pattern = props.get("input.file.pattern") or ".*"
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"input.file.pattern is not a valid regular expression: {exc}") from exc

    strategy = (props.get("marker.strategy") or "auto").lower()
    if strategy not in STRATEGY_NAMES:
        raise ConfigurationError(f"marker.strategy must be one of {', '.join(STRATEGY_NAMES)}, got {strategy!r}")

    try:
        match = MatchMode((props.get("marker.match") or MatchMode.EXACT.value).lower())
    except ValueError as exc:
        raise ConfigurationError(f"marker.match must be 'exact' or 'contains', got {props.get('marker.match')!r}") from exc

    fixed_marker = props.get("marker.fixed") or "1"
    database_url = environ.get("DB_URL") or props.get("db.url") or DEFAULT_DATABASE_URL

    return ProcessorConfig(
        input_dir=Path(props["input.dir"]),
        output_dir=Path(props["output.dir"]),
        processed_dir=Path(props["processed.dir"]),
        error_dir=Path(props["error.dir"]),
        temp_extension=props.get("temp.extension") or ".tmp",
        final_extension=props.get("final.extension") or ".txt",
        char_to_insert=props.get("char.to.insert") or "1",
        input_encoding=_encoding(props, "input.encoding", "ISO-8859-1"),
        output_encoding=_encoding(props, "output.encoding", "UTF-8"),
        polling_interval_ms=_int(props, "polling.interval", 10000),
        input_file_pattern=pattern,
        database_url=database_url,
        log_file=props.get("log.file") or "signBook.preprocessor.log",
        log_level=(props.get("log.level") or "INFO").upper(),
        log_rotation_hours=_int(props, "log.rotation.hours", 24),
        marker_strategy=strategy,
        fixed_marker=fixed_marker,
        marker_match=match,
        page_batch_size=_int(props, "page.batch.size", 50),
    )


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> ProcessorConfig:
    environ = os.environ if environ is None else environ
    config_path = Path(path or environ.get("SIGNBOOK_CONFIG") or DEFAULT_CONFIG_PATH)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {exc}") from exc
    return config_from_properties(parse_properties(text), environ)
