import os
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

from freshwallet.nansen_client import NansenClient, PLACEHOLDER_API_KEY


class ConfigurationError(Exception):
    """Missing or invalid settings. Raised before anything starts scanning."""

    def __init__(self, problems: List[str]):
        super().__init__("Configuration validation failed: " + "; ".join(problems))
        self.problems = problems


# Chains the Nansen API knows about
SUPPORTED_CHAINS = [
    'ethereum', 'solana', 'arbitrum', 'avalanche', 'base', 'berachain', 'bnb',
    'blast', 'fantom', 'hyperevm', 'iotaevm', 'linea', 'mantle', 'optimism',
    'polygon', 'ronin', 'scroll', 'sei', 'sonic', 'ton', 'tron', 'unichain',
    'zksync',
]

# Multi-chain configuration (used when CHAINS is not set)
CHAINS_CONFIG_PATH = Path(__file__).parent / "chains.yaml"

DEFAULT_SYMBOLS_FILE = "symbols.json"


def load_chain_configs(path: Path = CHAINS_CONFIG_PATH) -> Dict:
    """Load chain configurations from chains.yaml"""
    if path.exists():
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {"chains": {}}
    return {"chains": {}}


def get_enabled_chains(path: Path = CHAINS_CONFIG_PATH) -> List[str]:
    """Return list of enabled chain names"""
    configs = load_chain_configs(path)
    return [name for name, config in (configs.get('chains') or {}).items()
            if (config or {}).get('enabled', False)]


# ================================================
# SETTINGS
# ================================================

@dataclass(frozen=True)
class NansenConfig:
    api_key: str
    base_url: str = NansenClient.DEFAULT_BASE_URL
    max_requests_per_second: int = 20
    max_requests_per_minute: int = 500
    retry_attempts: int = 3
    timeout_ms: int = 30000


@dataclass(frozen=True)
class ScannerConfig:
    chains: List[str]
    interval_seconds: int
    min_deposit_usd: float = 1000
    window_floor_seconds: int = 7200
    scan_timeout_seconds: int = 1800
    token_cache_ttl_seconds: int = 3600
    symbols_file: str = DEFAULT_SYMBOLS_FILE


@dataclass(frozen=True)
class FreshnessConfig:
    check_balances: bool = False
    check_historical_balances: bool = False


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str = ""
    chat_id: str = ""
    thread_id: Optional[int] = None

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)


@dataclass(frozen=True)
class AppConfig:
    nansen: NansenConfig
    scanner: ScannerConfig
    freshness: FreshnessConfig = field(default_factory=FreshnessConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    log_level: str = "INFO"

    def pipeline_config(self) -> Dict:
        """Flat dict consumed by FreshWalletService.from_config()."""
        return {
            'chains': list(self.scanner.chains),
            'min_deposit_usd': self.scanner.min_deposit_usd,
            'interval_seconds': self.scanner.interval_seconds,
            'window_floor_seconds': self.scanner.window_floor_seconds,
            'cache_ttl_seconds': self.scanner.token_cache_ttl_seconds,
            'check_balances': self.freshness.check_balances,
            'check_historical_balances': self.freshness.check_historical_balances,
        }


# ================================================
# LOADING / VALIDATION
# ================================================

class _Reader:
    """Reads typed values from an env mapping and collects every problem."""

    def __init__(self, env: Mapping[str, str]):
        self.env = env
        self.problems: List[str] = []

    def raw(self, name: str) -> Optional[str]:
        value = self.env.get(name)
        if value is None:
            return None
        value = value.strip().strip('"').strip("'")
        return value or None

    def string(self, name: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
        value = self.raw(name)
        if value is None:
            if required:
                self.problems.append(f"{name} is required")
            return default
        return value

    def integer(self, name: str, default: Optional[int] = None, minimum: Optional[int] = None,
                maximum: Optional[int] = None, required: bool = False) -> Optional[int]:
        value = self.raw(name)
        if value is None:
            if required:
                self.problems.append(f"{name} is required")
            return default
        try:
            number = int(value)
        except ValueError:
            self.problems.append(f"{name} must be an integer, got {value!r}")
            return default
        return self._check_range(name, number, minimum, maximum, default)

    def number(self, name: str, default: Optional[float] = None, minimum: Optional[float] = None) -> Optional[float]:
        value = self.raw(name)
        if value is None:
            return default
        try:
            number = float(value)
        except ValueError:
            self.problems.append(f"{name} must be a number, got {value!r}")
            return default
        return self._check_range(name, number, minimum, None, default)

    def boolean(self, name: str, default: bool = False) -> bool:
        value = self.raw(name)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
        self.problems.append(f"{name} must be a boolean, got {value!r}")
        return default

    def _check_range(self, name, number, minimum, maximum, default):
        if minimum is not None and number < minimum:
            self.problems.append(f"{name} must be >= {minimum}, got {number}")
            return default
        if maximum is not None and number > maximum:
            self.problems.append(f"{name} must be <= {maximum}, got {number}")
            return default
        return number


def _parse_chains(reader: _Reader, chains_path: Path) -> List[str]:
    raw = reader.raw('CHAINS')
    if raw is None:
        chains = get_enabled_chains(chains_path)
        if not chains:
            reader.problems.append("CHAINS is required (or enable chains in chains.yaml)")
    else:
        chains = [chain.strip().lower() for chain in raw.split(',') if chain.strip()]
        if not chains:
            reader.problems.append("CHAINS must list at least one chain")

    unknown = [chain for chain in chains if chain not in SUPPORTED_CHAINS]
    if unknown:
        reader.problems.append(f"Unsupported chains: {', '.join(unknown)}")

    # Keep order, drop repeats
    return list(dict.fromkeys(chains))


def load_config(env: Optional[Mapping[str, str]] = None, chains_path: Path = CHAINS_CONFIG_PATH) -> AppConfig:
    """
    Build and validate the application config.

    Args:
        env: Variables to read (defaults to os.environ after loading .env)
        chains_path: chains.yaml used when CHAINS is not set

    Raises:
        ConfigurationError: listing every problem found
    """
    if env is None:
        load_dotenv()
        env = os.environ

    reader = _Reader(env)

    chains = _parse_chains(reader, chains_path)
    interval = reader.integer('INTERVAL_SECONDS', minimum=60, required=True)

    base_url = reader.string('NANSEN_BASE_URL', default=NansenClient.DEFAULT_BASE_URL)
    parsed = urlparse(base_url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        reader.problems.append(f"NANSEN_BASE_URL must be an http(s) URL, got {base_url!r}")

    api_key = reader.string('NANSEN_API_KEY', required=True)
    if api_key is not None:
        if api_key == PLACEHOLDER_API_KEY:
            reader.problems.append("NANSEN_API_KEY is still the placeholder value")
        elif len(api_key) < 10:
            reader.problems.append("NANSEN_API_KEY must be at least 10 characters")

    nansen = NansenConfig(
        api_key=api_key or "",
        base_url=base_url,
        max_requests_per_second=reader.integer('NANSEN_MAX_REQUESTS_PER_SECOND', 20, minimum=1, maximum=100),
        max_requests_per_minute=reader.integer('NANSEN_MAX_REQUESTS_PER_MINUTE', 500, minimum=10, maximum=1000),
        retry_attempts=reader.integer('NANSEN_RETRY_ATTEMPTS', 3, minimum=1, maximum=10),
        timeout_ms=reader.integer('NANSEN_TIMEOUT_MS', 30000, minimum=5000, maximum=60000),
    )

    scanner = ScannerConfig(
        chains=chains,
        interval_seconds=interval or 60,
        min_deposit_usd=reader.number('FRESH_WALLET_MIN_DEPOSIT_USD', 1000, minimum=1),
        window_floor_seconds=reader.integer('SCAN_WINDOW_FLOOR_SECONDS', 7200, minimum=0),
        scan_timeout_seconds=reader.integer('SCAN_TIMEOUT_SECONDS', 1800, minimum=60),
        token_cache_ttl_seconds=reader.integer('TOKEN_CACHE_TTL_SECONDS', 3600, minimum=1),
        symbols_file=reader.string('SYMBOLS_FILE', default=DEFAULT_SYMBOLS_FILE),
    )

    freshness = FreshnessConfig(
        check_balances=reader.boolean('FRESHNESS_CHECK_BALANCES'),
        check_historical_balances=reader.boolean('FRESHNESS_CHECK_HISTORICAL_BALANCES'),
    )

    telegram = TelegramConfig(
        bot_token=reader.string('TELEGRAM_BOT_TOKEN', default=""),
        chat_id=reader.string('TELEGRAM_CHAT_ID', default=""),
        thread_id=reader.integer('TELEGRAM_THREAD_ID'),
    )

    log_level = reader.string('LOG_LEVEL', default="INFO").upper()
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        reader.problems.append(f"LOG_LEVEL must be a logging level name, got {log_level!r}")

    if reader.problems:
        raise ConfigurationError(reader.problems)

    return AppConfig(
        nansen=nansen,
        scanner=scanner,
        freshness=freshness,
        telegram=telegram,
        log_level=log_level,
    )
