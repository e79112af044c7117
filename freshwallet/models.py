"""
DATA MODEL

Typed records for everything that crosses the Nansen boundary plus the
pipeline's own intermediate/final records.

Each upstream record has exactly one parser (`from_api`). Parsers check the
fields the pipeline consumes and raise SchemaError on a mismatch instead of
guessing a default.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .errors import SchemaError


def parse_timestamp(value: Any, endpoint: str = "") -> datetime:
    """
    Parse an upstream ISO-8601 timestamp ("2025-08-01T06:46:35Z").

    Naive values are taken as UTC.
    """
    if not isinstance(value, str) or not value:
        raise SchemaError(f"{endpoint}: expected ISO timestamp, got {value!r}", path=endpoint)
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise SchemaError(f"{endpoint}: unparseable timestamp {value!r}", path=endpoint)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require(raw: Dict, key: str, endpoint: str) -> Any:
    if not isinstance(raw, dict):
        raise SchemaError(f"{endpoint}: expected object record, got {type(raw).__name__}", path=endpoint)
    if key not in raw:
        raise SchemaError(f"{endpoint}: record missing '{key}'", path=endpoint)
    return raw[key]


def _require_str(raw: Dict, key: str, endpoint: str) -> str:
    value = _require(raw, key, endpoint)
    if not isinstance(value, str) or not value:
        raise SchemaError(f"{endpoint}: '{key}' must be a non-empty string, got {value!r}", path=endpoint)
    return value


def _number_or_none(raw: Dict, key: str, endpoint: str) -> Optional[float]:
    """Nullable numeric field. Absent and null both mean "unknown"."""
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(f"{endpoint}: '{key}' must be numeric, got {value!r}", path=endpoint)
    return float(value)


def _optional_str(raw: Dict, key: str) -> Optional[str]:
    value = raw.get(key)
    return value if isinstance(value, str) else None


# ================================================================
# PIPELINE RECORDS
# ================================================================

@dataclass(frozen=True)
class TokenDescriptor:
    """Resolved on-chain identity of a watched symbol on one chain."""
    symbol: str
    chain: str
    address: str

    def to_dict(self) -> Dict:
        return {'symbol': self.symbol, 'chain': self.chain, 'address': self.address}


@dataclass(frozen=True)
class ScanWindow:
    """Half-open time range [start, end) of transfers to scan."""
    start: datetime
    end: datetime

    @classmethod
    def ending_now(cls, length_seconds: float, now: Optional[datetime] = None) -> 'ScanWindow':
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(seconds=length_seconds), end=end)

    @property
    def length_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


@dataclass
class WalletCandidate:
    """A transfer that passed the candidate filter, pending verification."""
    address: str
    chain: str
    deposit_usd: float
    timestamp: datetime
    symbol: str
    token_address: str = ""
    tx_hash: str = ""


@dataclass(frozen=True)
class FreshWallet:
    """
    Verified fresh wallet.

    Identity is (wallet, chain); symbol/deposit_at/tx_hash are only context
    for the alert.
    """
    wallet: str
    chain: str
    init_deposit_usd: float
    symbol: Optional[str] = None
    deposit_at: Optional[datetime] = None
    tx_hash: Optional[str] = None

    @property
    def key(self):
        return (self.wallet.lower(), self.chain)

    def to_dict(self) -> Dict:
        return {
            'wallet': self.wallet,
            'chain': self.chain,
            'initDepositUSD': self.init_deposit_usd,
        }


# ================================================================
# UPSTREAM RECORDS
# ================================================================

@dataclass(frozen=True)
class ScreenerToken:
    """One row of /token-screener."""
    chain: str
    token_address: str
    symbol: str
    volume: Optional[float] = None
    market_cap: Optional[float] = None

    ENDPOINT = '/token-screener'

    @classmethod
    def from_api(cls, raw: Dict) -> 'ScreenerToken':
        return cls(
            chain=_require_str(raw, 'chain', cls.ENDPOINT).lower(),
            token_address=_require_str(raw, 'tokenAddressHex', cls.ENDPOINT),
            symbol=_require_str(raw, 'tokenSymbol', cls.ENDPOINT),
            volume=_number_or_none(raw, 'volume', cls.ENDPOINT),
            market_cap=_number_or_none(raw, 'marketCap', cls.ENDPOINT),
        )


@dataclass(frozen=True)
class TransferRecord:
    """One row of /tgm/transfers, stamped with the token it was fetched for."""
    chain: str
    tx_hash: str
    timestamp: datetime
    from_address: Optional[str]
    from_label: Optional[str]
    to_address: str
    to_label: Optional[str]
    token_address: str
    symbol: str
    usd_value: Optional[float]
    tx_type: str

    ENDPOINT = '/tgm/transfers'

    @classmethod
    def from_api(cls, raw: Dict, token: TokenDescriptor) -> 'TransferRecord':
        endpoint = cls.ENDPOINT
        _require(raw, 'valueUsd', endpoint)
        _require(raw, 'toLabel', endpoint)
        to_label = raw['toLabel']
        if to_label is not None and not isinstance(to_label, str):
            raise SchemaError(f"{endpoint}: 'toLabel' must be a string or null, got {to_label!r}", path=endpoint)

        return cls(
            chain=token.chain,
            tx_hash=_require_str(raw, 'transactionHash', endpoint),
            timestamp=parse_timestamp(_require(raw, 'blockTimestamp', endpoint), endpoint),
            from_address=_optional_str(raw, 'fromAddress'),
            from_label=_optional_str(raw, 'fromLabel'),
            to_address=_require_str(raw, 'toAddress', endpoint),
            to_label=to_label,
            token_address=token.address,
            symbol=token.symbol,
            usd_value=_number_or_none(raw, 'valueUsd', endpoint),
            tx_type=_require_str(raw, 'txType', endpoint),
        )


@dataclass(frozen=True)
class TokenMovement:
    """A token leg of a wallet transaction (tokenReceived / tokenSent entries)."""
    symbol: str
    address: Optional[str] = None
    amount: Optional[float] = None
    usd_value: Optional[float] = None

    ENDPOINT = '/profiler/address/transactions'

    @classmethod
    def from_api(cls, raw: Dict) -> 'TokenMovement':
        return cls(
            symbol=_require_str(raw, 'tokenSymbol', cls.ENDPOINT),
            address=_optional_str(raw, 'tokenAddress'),
            amount=_number_or_none(raw, 'tokenAmount', cls.ENDPOINT),
            usd_value=_number_or_none(raw, 'valueUsd', cls.ENDPOINT),
        )


def _movements(raw: Dict, key: str, endpoint: str) -> List[TokenMovement]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise SchemaError(f"{endpoint}: '{key}' must be a list or null, got {type(value).__name__}", path=endpoint)
    return [TokenMovement.from_api(item) for item in value]


@dataclass(frozen=True)
class AddressTransaction:
    """One row of /profiler/address/transactions."""
    chain: str
    timestamp: datetime
    tx_hash: Optional[str]
    volume_usd: Optional[float]
    tokens_received: List[TokenMovement] = field(default_factory=list)
    tokens_sent: List[TokenMovement] = field(default_factory=list)

    ENDPOINT = '/profiler/address/transactions'

    @classmethod
    def from_api(cls, raw: Dict) -> 'AddressTransaction':
        endpoint = cls.ENDPOINT
        return cls(
            chain=_require_str(raw, 'chain', endpoint).lower(),
            timestamp=parse_timestamp(_require(raw, 'blockTimestamp', endpoint), endpoint),
            tx_hash=_optional_str(raw, 'transactionHash'),
            volume_usd=_number_or_none(raw, 'volumeUsd', endpoint),
            tokens_received=_movements(raw, 'tokenReceived', endpoint),
            tokens_sent=_movements(raw, 'tokenSent', endpoint),
        )

    def received_only(self, symbol: str) -> bool:
        """True when something was received and every received token is `symbol`."""
        if not self.tokens_received:
            return False
        wanted = symbol.lower()
        return all(movement.symbol.lower() == wanted for movement in self.tokens_received)


@dataclass(frozen=True)
class AddressBalance:
    """One row of /profiler/address/balances (and historical-balances)."""
    chain: str
    token_address: str
    symbol: str
    amount: Optional[float]
    usd_value: Optional[float]

    ENDPOINT = '/profiler/address/balances'

    @classmethod
    def from_api(cls, raw: Dict) -> 'AddressBalance':
        endpoint = cls.ENDPOINT
        return cls(
            chain=_require_str(raw, 'chain', endpoint).lower(),
            token_address=_require_str(raw, 'tokenAddress', endpoint),
            symbol=_require_str(raw, 'symbol', endpoint),
            amount=_number_or_none(raw, 'tokenAmount', endpoint),
            usd_value=_number_or_none(raw, 'usdValue', endpoint),
        )

    def is_token(self, token_address: Optional[str], symbol: str) -> bool:
        """Match by address when known, else by symbol."""
        if token_address:
            return self.token_address.lower() == token_address.lower()
        return self.symbol.lower() == symbol.lower()
