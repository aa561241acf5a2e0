"""Configuration file parsing for buoy.

Brief:
  Reads a YAML file with top-level `vars`, `resolver` and `logging` keys,
  merges variables from the file, the environment and CLI-style `KEY=YAML`
  assignments, expands `${KEY}` references and validates the result into
  a ResolverConfig and a LoggingConfig.

Inputs:
  - YAML config files or already-parsed mappings

Outputs:
  - BuoyConfig(resolver=ResolverConfig, logging=LoggingConfig)
"""

from __future__ import annotations

import copy
import json
import os
import re
from typing import Any, Dict, List, NamedTuple, Optional

import yaml

from ..errors import ConfigError
from .config import ResolverConfig
from .logging_config import LoggingConfig

_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")
_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")
_TOP_LEVEL = frozenset({"vars", "resolver", "logging"})


class BuoyConfig(NamedTuple):
    resolver: ResolverConfig
    logging: LoggingConfig


def _is_var_key(key: str) -> bool:
    """Brief: True when key is ALL_UPPERCASE and matches [A-Z_][A-Z0-9_]*."""
    return bool(key) and bool(_VAR_KEY.fullmatch(key))


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML.

    Inputs:
      - text: String containing YAML scalar/list/dict.

    Outputs:
      - Any: Parsed value (falls back to original string on parse errors).
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI overrides environment overrides config-file variables.

    Notes:
      - Only ALL_UPPERCASE keys matching [A-Z_][A-Z0-9_]* are considered.
      - Values are parsed as YAML so list/dict/int/bool values can be provided.

    Example:
      >>> cfg = {'vars': {'TTL': 100}}
      >>> parse_config_variables(cfg, cli_vars=['TTL=300'], environ={})['TTL']
      300
    """
    base = cfg.get("vars")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ConfigError("config.vars must be a mapping when present")

    for k in merged:
        if not isinstance(k, str) or not _is_var_key(k):
            raise ConfigError(f"config.vars key {k!r} must be ALL_UPPERCASE")

    env = os.environ if environ is None else environ
    for k, v in env.items():
        if isinstance(k, str) and _is_var_key(k):
            merged[k] = _parse_yaml_value(str(v))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ConfigError(f"Invalid variable assignment (expected KEY=YAML), got: {assignment!r}")
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ConfigError(
                f"Invalid variable name {k!r} (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
            )
        merged[k] = _parse_yaml_value(raw)

    cfg["vars"] = merged
    return merged


def expand_variables(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Brief: Replace `${KEY}` references outside of `vars` and drop `vars`.

    Inputs:
      - cfg: mapping with an optional `vars` mapping (mutated in-place).

    Outputs:
      - cfg

    Behavior:
      - A string that is exactly `${KEY}` becomes the variable's YAML value
        (list, dict, int ...); embedded references are substituted as text.
      - Variables may reference other variables; cycles and unknown names
        raise ConfigError.
    """
    variables: Dict[str, Any] = cfg.get("vars") or {}
    resolved: Dict[str, Any] = {}

    def _resolve(key: str, stack: List[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            raise ConfigError(f"config.vars contains a cycle: {' -> '.join(stack + [key])}")
        if key not in variables:
            raise ConfigError(f"undefined variable ${{{key}}}")
        resolved[key] = _expand(variables[key], stack + [key])
        return resolved[key]

    def _expand_string(text: str, stack: List[str]) -> Any:
        whole = _VAR_PATTERN.fullmatch(text)
        if whole:
            return copy.deepcopy(_resolve(whole.group(1), stack))

        def _repl(match: "re.Match[str]") -> str:
            value = _resolve(match.group(1), stack)
            if isinstance(value, bool):
                return "true" if value else "false"
            if value is None:
                return "null"
            if isinstance(value, (int, float, str)):
                return str(value)
            return json.dumps(value)

        return _VAR_PATTERN.sub(_repl, text)

    def _expand(obj: Any, stack: List[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            return [_expand(item, stack) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand(v, stack) for k, v in obj.items()}
        return obj

    for top_key in list(cfg):
        if top_key != "vars":
            cfg[top_key] = _expand(cfg[top_key], [])
    cfg.pop("vars", None)
    return cfg


def build_config(cfg: Dict[str, Any], *, config_path: Optional[str] = None) -> BuoyConfig:
    """Brief: Validate an expanded mapping into model objects.

    Inputs:
      - cfg: mapping with optional `resolver` and `logging` sections
      - config_path: file name used in error messages

    Outputs:
      - BuoyConfig

    Raises:
      - ConfigError: unknown top-level keys or model validation failures.
    """
    where = f" in {config_path}" if config_path else ""
    unknown = sorted(set(cfg) - _TOP_LEVEL)
    if unknown:
        raise ConfigError(f"unknown top-level config keys{where}: {', '.join(unknown)}")
    try:
        resolver = ResolverConfig(**(cfg.get("resolver") or {}))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid resolver configuration{where}: {exc}") from exc
    try:
        logging_cfg = LoggingConfig(**(cfg.get("logging") or {}))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid logging configuration{where}: {exc}") from exc
    return BuoyConfig(resolver, logging_cfg)


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> BuoyConfig:
    """Brief: Read, variable-merge, expand and validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - BuoyConfig

    Raises:
      - ConfigError: unreadable file, bad YAML, bad variables or invalid values.

    Example file:
      vars:
        UPSTREAM: 9.9.9.9
      resolver:
        servers: ["${UPSTREAM}", "1.1.1.1:53"]
        edns: {payload: 4096, do_bit: true, options: [NSID]}
      logging:
        level: debug
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"cannot read {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigError("Configuration root must be a mapping")

    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    expand_variables(cfg)
    return build_config(cfg, config_path=config_path)
