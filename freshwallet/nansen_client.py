"""
NANSEN API CLIENT (RATE-LIMITED GATEWAY)

Every upstream call goes through `dispatch()`:
- global sliding-window budget (per second + per minute)
- bounded exponential backoff on timeout / 429 / 5xx
- no retry on other 4xx

Nansen answers with a bare JSON array and no envelope, so the HTTP status is
the only error signal. Records are parsed into typed models right here.

Endpoints used:
- /token-screener                        - token discovery
- /tgm/transfers                         - token transfers in a date range
- /profiler/address/transactions         - wallet history
- /profiler/address/balances             - current balances
- /profiler/address/historical-balances  - balance snapshots
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp

from .errors import (
    ClientError,
    NansenError,
    RateLimitedError,
    RequestTimeout,
    SchemaError,
    ServerError,
    TransientNetworkError,
)
from .models import (
    AddressBalance,
    AddressTransaction,
    ScreenerToken,
    TokenDescriptor,
    TransferRecord,
)
from .rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = 'your_api_key_here'


class NansenClient:
    """
    Nansen API client.

    Single flow: the scan orchestrator never runs two scans at once, so the
    rate-limit windows see one caller at a time.
    """

    DEFAULT_BASE_URL = "https://api.nansen.ai/api/beta"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        max_per_second: int = 20,
        max_per_minute: int = 500,
        retry_attempts: int = 3,
        timeout_ms: int = 30000,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            api_key: Nansen API key (sent as the `apiKey` header)
            base_url: API root, without trailing slash
            max_per_second: Per-second dispatch ceiling
            max_per_minute: Per-minute dispatch ceiling
            retry_attempts: Total attempts per call (1 = no retry)
            timeout_ms: Per-request timeout
            rate_limiter: Shared limiter (built from the ceilings if omitted)
            sleep: Awaitable sleep used for backoff (injectable for tests)
        """
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")

        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.retry_attempts = retry_attempts
        self.timeout_ms = timeout_ms
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(max_per_second, max_per_minute)
        self._sleep = sleep
        self.session: Optional[aiohttp.ClientSession] = None

        # Stats
        self.request_count = 0
        self.retry_count = 0
        self.failure_count = 0
        self.last_request_time: Optional[datetime] = None

    # ================================================================
    # SESSION
    # ================================================================

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                headers={
                    'Content-Type': 'application/json',
                    'Accept': 'application/json',
                    'apiKey': self.api_key,
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout_ms / 1000),
            )

    async def close(self):
        """Close aiohttp session."""
        if self.session:
            await self.session.close()
            self.session = None

    def is_api_key_valid(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_API_KEY and len(self.api_key) >= 10

    # ================================================================
    # GATEWAY
    # ================================================================

    async def _send(self, path: str, body: Dict) -> Tuple[int, Any]:
        """
        Single HTTP round trip.

        Returns:
            (status, payload) - payload is parsed JSON on 2xx, response text otherwise

        Raises:
            RequestTimeout, TransientNetworkError (connection failure), SchemaError (non-JSON 2xx)
        """
        await self._ensure_session()
        url = f"{self.base_url}{path}"

        try:
            async with self.session.post(url, json=body) as response:
                if response.status >= 400:
                    return response.status, await response.text()
                try:
                    return response.status, await response.json(content_type=None)
                except ValueError as e:
                    raise SchemaError(f"{path}: response is not JSON ({e})", status=response.status, path=path)
        except asyncio.TimeoutError:
            raise RequestTimeout(f"{path}: timed out after {self.timeout_ms}ms", path=path)
        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"{path}: connection error: {e}", path=path)

    @staticmethod
    def _check_status(status: int, path: str, payload: Any):
        if 200 <= status < 300:
            return
        detail = str(payload)[:200] if payload else ''
        message = f"{path}: HTTP {status} {detail}".strip()
        if status == 429:
            raise RateLimitedError(message, status=status, path=path)
        if 500 <= status < 600:
            raise ServerError(message, status=status, path=path)
        raise ClientError(message, status=status, path=path)

    async def dispatch(self, path: str, body: Dict) -> List[Dict]:
        """
        Rate-limited POST with bounded retries.

        Args:
            path: Endpoint path, e.g. '/tgm/transfers'
            body: Request body ({parameters, pagination, ...})

        Returns:
            List of raw records

        Raises:
            TransientNetworkError subclass once attempts are exhausted,
            ClientError immediately, SchemaError when the body is not an array
        """
        for attempt in range(1, self.retry_attempts + 1):
            await self.rate_limiter.acquire()
            self.request_count += 1
            self.last_request_time = datetime.now()
            logger.debug(f"[NANSEN] POST {path} (attempt {attempt}/{self.retry_attempts})")

            try:
                status, payload = await self._send(path, body)
                self._check_status(status, path, payload)
            except TransientNetworkError as e:
                if attempt >= self.retry_attempts:
                    self.failure_count += 1
                    logger.error(f"[NANSEN] {path} failed after {attempt} attempts: {e}")
                    raise
                wait = 2 ** attempt
                self.retry_count += 1
                logger.warning(
                    f"[NANSEN] {e} - retrying (attempt {attempt + 1}/{self.retry_attempts}) in {wait}s"
                )
                await self._sleep(wait)
                continue
            except NansenError as e:
                self.failure_count += 1
                logger.error(f"[NANSEN] {path} failed: {e}")
                raise

            if not isinstance(payload, list):
                self.failure_count += 1
                raise SchemaError(
                    f"{path}: expected JSON array, got {type(payload).__name__}", status=status, path=path
                )
            logger.debug(f"[NANSEN] {path} -> {len(payload)} records")
            return payload

        # range() is non-empty because retry_attempts >= 1
        raise AssertionError("unreachable")

    @staticmethod
    def _parse(records: List[Dict], parser: Callable) -> List:
        return [parser(record) for record in records]

    # ================================================================
    # ENDPOINTS
    # ================================================================

    async def get_token_screener(
        self,
        chain: str,
        date_from: str,
        date_to: str,
        min_volume: float = 1000,
        min_market_cap: float = 10000,
        page: int = 1,
        records_per_page: int = 500,
    ) -> List[ScreenerToken]:
        """
        Active tokens on one chain, ordered by volume (desc).

        Args:
            chain: Chain name
            date_from: 'YYYY-MM-DD'
            date_to: 'YYYY-MM-DD'
        """
        path = '/token-screener'
        body = {
            'parameters': {
                'chains': [chain],
                'date': {'from': date_from, 'to': date_to},
                'watchlistFilter': [],
                'sectorsFilter': [],
                'onlySmartMoney': False,
            },
            'filters': {
                'volume': {'from': min_volume},
                'marketCap': {'from': min_market_cap},
            },
            'order': {'orderBy': 'volume', 'order': 'desc'},
            'pagination': {'page': page, 'recordsPerPage': records_per_page},
        }
        records = await self.dispatch(path, body)
        return self._parse(records, ScreenerToken.from_api)

    async def get_token_transfers(
        self,
        token: TokenDescriptor,
        date_from: datetime,
        date_to: datetime,
        page: int = 1,
        records_per_page: int = 500,
    ) -> List[TransferRecord]:
        """One page of transfers of `token`, DEX and CEX flows included."""
        path = '/tgm/transfers'
        body = {
            'parameters': {
                'chain': token.chain,
                'tokenAddress': token.address,
                'date': {'from': date_from.isoformat(), 'to': date_to.isoformat()},
                'dexIncluded': True,
                'cexIncluded': True,
                'onlySmartMoney': False,
            },
            'pagination': {'page': page, 'recordsPerPage': records_per_page},
        }
        records = await self.dispatch(path, body)
        return self._parse(records, lambda raw: TransferRecord.from_api(raw, token))

    async def get_address_transactions(
        self,
        wallet: str,
        chain: str = 'all',
        min_volume_usd: float = 100,
        page: int = 1,
        records_per_page: int = 100,
    ) -> List[AddressTransaction]:
        """One page of wallet history above the volume noise floor, spam tokens hidden."""
        path = '/profiler/address/transactions'
        body = {
            'parameters': {
                'walletAddresses': [wallet],
                'chain': chain,
                'hideSpamToken': True,
            },
            'filters': {
                'volumeUsd': {'from': min_volume_usd},
            },
            'pagination': {'page': page, 'recordsPerPage': records_per_page},
        }
        records = await self.dispatch(path, body)
        return self._parse(records, AddressTransaction.from_api)

    async def get_address_balances(
        self,
        wallet: str,
        chain: str = 'all',
        records_per_page: int = 100,
    ) -> List[AddressBalance]:
        path = '/profiler/address/balances'
        body = {
            'parameters': {
                'walletAddresses': [wallet],
                'chain': chain,
                'suspiciousFilter': 'off',
            },
            'pagination': {'page': 1, 'recordsPerPage': records_per_page},
        }
        records = await self.dispatch(path, body)
        return self._parse(records, AddressBalance.from_api)

    async def get_address_historical_balances(
        self,
        wallet: str,
        days: int = 30,
        chain: str = 'all',
        records_per_page: int = 100,
    ) -> List[AddressBalance]:
        """Balance snapshots over the last `days` days."""
        path = '/profiler/address/historical-balances'
        body = {
            'parameters': {
                'walletAddresses': [wallet],
                'chain': chain,
                'timeFrame': days,
                'suspiciousFilter': 'off',
            },
            'pagination': {'page': 1, 'recordsPerPage': records_per_page},
        }
        records = await self.dispatch(path, body)
        return self._parse(records, AddressBalance.from_api)

    # ================================================================
    # STATS
    # ================================================================

    def get_rate_limit_info(self) -> Dict:
        return self.rate_limiter.get_stats()

    def get_stats(self) -> Dict:
        return {
            'request_count': self.request_count,
            'retry_count': self.retry_count,
            'failure_count': self.failure_count,
            'last_request': self.last_request_time.isoformat() if self.last_request_time else None,
            'rate_limit': self.get_rate_limit_info(),
        }
