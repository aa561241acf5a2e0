from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, validator

from ..errors import ConfigError

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}


class SyslogConfig(BaseModel):
    address: Union[str, Tuple[str, int]] = "/dev/log"
    facility: str = "USER"
    tag: str = "buoy"

    class Config:
        extra = "forbid"
        frozen = True


class LoggingConfig(BaseModel):
    """
    Brief: Validated `logging:` section.

    Inputs:
      - level: debug, info, warn, error, crit (default: info)
      - stderr: log to stderr (default: True)
      - file: optional log file path
      - syslog: False, True (defaults) or a SyslogConfig mapping
      - library_level: optional level applied to the `buoy` logger only

    Outputs:
      - LoggingConfig instance
    """

    level: str = "info"
    stderr: bool = True
    file: Optional[str] = None
    syslog: Union[bool, SyslogConfig] = False
    library_level: Optional[str] = None

    class Config:
        extra = "forbid"
        frozen = True

    @validator("level", "library_level", pre=True)
    def _known_level(cls, v):
        if v is None:
            return v
        text = str(v).strip().lower()
        if text not in _LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return text


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def __init__(self, tag: str = "buoy") -> None:
        super().__init__()
        self.tag = tag

    def format(self, record):
        """Add level_tag attribute and format without timestamp."""
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return f"{self.tag}: {record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        """Format the record's creation time as UTC ISO-8601 with Z suffix."""
        created = datetime.fromtimestamp(record.created, timezone.utc)
        return created.strftime(datefmt or "%Y-%m-%dT%H:%M:%SZ")

    def format(self, record):
        record.level_tag = _TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def init_logging(cfg: Union[None, Dict[str, Any], LoggingConfig]) -> LoggingConfig:
    """
    Initialize application logging from a `logging:` config section.

    Args:
        cfg: LoggingConfig, a mapping accepted by LoggingConfig, or None
            for the defaults (info to stderr).

    Returns:
        The validated LoggingConfig.

    Example config:
        {
            "level": "info",
            "stderr": True,
            "file": "./buoy.log",
            "syslog": {"address": "/dev/log", "tag": "buoy"},
        }
    """
    if not isinstance(cfg, LoggingConfig):
        try:
            cfg = LoggingConfig(**(cfg or {}))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid logging configuration: {e}") from e

    formatter = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")

    root = logging.getLogger()
    root.setLevel(_LEVELS[cfg.level])

    # Remove existing handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.stderr:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    if cfg.file and cfg.file.strip():
        path = os.path.abspath(os.path.expanduser(cfg.file.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if cfg.syslog:
        syslog_cfg = cfg.syslog if isinstance(cfg.syslog, SyslogConfig) else SyslogConfig()
        facility = getattr(
            logging.handlers.SysLogHandler,
            f"LOG_{syslog_cfg.facility.upper()}",
            logging.handlers.SysLogHandler.LOG_USER,
        )
        try:
            address = syslog_cfg.address
            if isinstance(address, tuple):
                address = (address[0], int(address[1]))
            syslog_handler = logging.handlers.SysLogHandler(address=address, facility=facility)
            syslog_handler.setFormatter(SyslogFormatter(syslog_cfg.tag))
            root.addHandler(syslog_handler)
        except OSError as e:
            root.warning("Failed to configure syslog: %s", e)

    library = logging.getLogger("buoy")
    library.setLevel(_LEVELS[cfg.library_level] if cfg.library_level else logging.NOTSET)

    # Capture warnings to use the same logging configuration
    logging.captureWarnings(True)
    return cfg
