"""
TOKEN RESOLVER

Maps watched symbols to on-chain tokens, per chain, using the Nansen token
screener (24h activity, volume >= $1k, market cap >= $10k, top 500 by volume).

Chains are walked in batches of 3 with a short pause between calls so the
shared rate budget is not burned in a burst. A failing chain is logged and
skipped; the rest still resolve.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List

from .cache import TTLCache
from .errors import NansenError, TokenResolutionError
from .models import TokenDescriptor
from .nansen_client import NansenClient

logger = logging.getLogger(__name__)

TokenMap = Dict[str, List[TokenDescriptor]]


def chunk(items: List, size: int) -> List[List]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class TokenResolver:
    """Symbol -> [TokenDescriptor] lookup, memoized in the TTL cache."""

    CHAIN_BATCH_SIZE = 3
    LOOKBACK_HOURS = 24
    MIN_VOLUME_USD = 1000
    MIN_MARKET_CAP_USD = 10000
    RECORDS_PER_PAGE = 500

    def __init__(
        self,
        client: NansenClient,
        cache: TTLCache,
        cache_ttl_seconds: float = 3600,
        inter_call_delay: float = 0.2,
    ):
        """
        Args:
            client: Nansen gateway
            cache: Shared TTL cache
            cache_ttl_seconds: How long a resolution stays valid
            inter_call_delay: Pause between chain calls (seconds)
        """
        self.client = client
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds
        self.inter_call_delay = inter_call_delay

    @staticmethod
    def cache_key(symbols: Iterable[str], chains: Iterable[str]) -> str:
        return TTLCache.create_key(
            'tokens',
            ','.join(sorted({s.lower() for s in symbols})),
            ','.join(sorted({c.lower() for c in chains})),
        )

    async def resolve(self, symbols: List[str], chains: List[str]) -> TokenMap:
        """
        Resolve symbols on the given chains.

        Returns:
            {lowercase symbol: [TokenDescriptor, ...]} - symbols with no match are absent

        Raises:
            TokenResolutionError: every chain failed (nothing is cached)
        """
        if not symbols or not chains:
            return {}

        key = self.cache_key(symbols, chains)
        return await self.cache.get_or_set(
            key,
            lambda: self._resolve_uncached(symbols, chains),
            self.cache_ttl_seconds,
        )

    async def _resolve_uncached(self, symbols: List[str], chains: List[str]) -> TokenMap:
        wanted = {s.lower() for s in symbols}
        allowed_chains = {c.lower() for c in chains}
        token_map: TokenMap = {}
        seen = set()

        now = datetime.now(timezone.utc)
        date_from = (now - timedelta(hours=self.LOOKBACK_HOURS)).strftime('%Y-%m-%d')
        date_to = now.strftime('%Y-%m-%d')

        failed_chains = []
        first_call = True

        for batch in chunk(list(chains), self.CHAIN_BATCH_SIZE):
            for chain in batch:
                if not first_call:
                    await asyncio.sleep(self.inter_call_delay)
                first_call = False

                try:
                    logger.debug(f"[RESOLVER] Searching tokens on {chain}")
                    tokens = await self.client.get_token_screener(
                        chain,
                        date_from,
                        date_to,
                        min_volume=self.MIN_VOLUME_USD,
                        min_market_cap=self.MIN_MARKET_CAP_USD,
                        records_per_page=self.RECORDS_PER_PAGE,
                    )
                except NansenError as e:
                    failed_chains.append(chain)
                    logger.warning(f"[RESOLVER] Token search failed on {chain}: {e}")
                    continue

                logger.debug(f"[RESOLVER] {len(tokens)} active tokens on {chain}")

                for token in tokens:
                    symbol = token.symbol.lower()
                    if symbol not in wanted or token.chain not in allowed_chains:
                        continue
                    identity = (token.chain, token.token_address.lower(), symbol)
                    if identity in seen:
                        continue
                    seen.add(identity)
                    token_map.setdefault(symbol, []).append(
                        TokenDescriptor(symbol=token.symbol, chain=token.chain, address=token.token_address)
                    )

        if failed_chains and len(failed_chains) == len(chains):
            raise TokenResolutionError(f"token screener failed on every chain: {', '.join(failed_chains)}")

        logger.info(
            f"[RESOLVER] Token search completed: "
            f"{sum(len(tokens) for tokens in token_map.values())} tokens for "
            f"{sorted(token_map.keys()) or 'no symbols'}"
            + (f" (failed chains: {', '.join(failed_chains)})" if failed_chains else "")
        )
        return token_map
