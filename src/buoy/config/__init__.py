from .config import EdnsConfig, ResolverConfig, ServerConfig, TsigConfig
from .config_parser import BuoyConfig, parse_config_file
from .logging_config import LoggingConfig, init_logging

__all__ = [
    "BuoyConfig",
    "EdnsConfig",
    "LoggingConfig",
    "ResolverConfig",
    "ServerConfig",
    "TsigConfig",
    "init_logging",
    "parse_config_file",
]
