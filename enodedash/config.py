"""
ENODE-DASH - Configuration
Defaults, optional config file, command line overrides
"""

import argparse
from pathlib import Path
from typing import Optional

# ═══════════════════════════════════════════════════════════════════════════════
# DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_ADDR = "localhost:8080"
DEFAULT_MMDB = "GeoLite2-City_20210928/GeoLite2-City.mmdb"
DEFAULT_LOG_LEVEL = "WARNING"

DATA_DIR = Path('data')
CONFIG_FILE = DATA_DIR / 'config.conf'


class ConfigError(Exception):
    """Config file given explicitly but unreadable"""


class Config:
    """Dashboard configuration (feed address, GeoIP database, logging)"""

    def __init__(self):
        self.addr = DEFAULT_ADDR
        self.mmdb = DEFAULT_MMDB
        self.log_file = ""
        self.log_level = DEFAULT_LOG_LEVEL

    @property
    def endpoint(self) -> str:
        """Websocket URL of the peer feed"""
        return f"ws://{self.addr}/"

    def load(self, path: Path = CONFIG_FILE, required: bool = False) -> bool:
        """Load KEY=value pairs from a config file. Returns False if absent."""
        path = Path(path)
        if not path.exists():
            if required:
                raise ConfigError(f"Config file not found: {path}")
            return False

        try:
            with open(path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line.startswith('#') or '=' not in line:
                        continue
                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")

                    if key == 'ENODEDASH_ADDR':
                        self.addr = value
                    elif key == 'ENODEDASH_MMDB':
                        self.mmdb = value
                    elif key == 'ENODEDASH_LOG_FILE':
                        self.log_file = value
                    elif key == 'ENODEDASH_LOG_LEVEL':
                        self.log_level = value.upper()
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        return True

    def apply_args(self, args: argparse.Namespace):
        """Command line flags win over the config file"""
        if args.addr:
            self.addr = args.addr
        if args.mmdb:
            self.mmdb = args.mmdb
        if args.log_file:
            self.log_file = args.log_file
        if args.log_level:
            self.log_level = args.log_level.upper()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="enodedash",
        description="Live terminal table of peers reported by a node's peer feed",
    )
    parser.add_argument("--addr", help=f"feed service address host:port (default {DEFAULT_ADDR})")
    parser.add_argument("--mmdb", help=f"path to MaxMind db file (default {DEFAULT_MMDB})")
    parser.add_argument("--config", help=f"config file (default {CONFIG_FILE}, if present)")
    parser.add_argument("--log-file", help="write diagnostics to this file")
    parser.add_argument("--log-level", help=f"log level for --log-file (default {DEFAULT_LOG_LEVEL})")
    return parser


def load_config(argv: Optional[list] = None) -> Config:
    """Parse argv, read the config file, apply overrides"""
    args = build_parser().parse_args(argv)

    config = Config()
    if args.config:
        config.load(Path(args.config), required=True)
    else:
        config.load()
    config.apply_args(args)
    return config
