"""
FRESH WALLET PIPELINE

Main integration module that wires the detection components together.

ARCHITECTURE:
  watch-list symbols
          ↓
  TOKEN RESOLVER (token screener, TTL-cached)
          ↓
  TRANSFER SCANNER (per token, sequential)
          ↓
  CANDIDATE FILTER (deposit size / tx type / private recipient)
          ↓
  FRESHNESS VERIFIER (per candidate)
          ↓
  MERGE & RANK
          ↓
  FreshWallet[]

Everything runs sequentially on purpose: all calls share one global rate
budget, so fan-out would only queue up inside the limiter.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from .cache import TTLCache
from .deduplicator import merge
from .errors import NansenError
from .filters import CandidateFilter
from .freshness import FreshnessVerifier
from .models import FreshWallet, ScanWindow, TokenDescriptor
from .nansen_client import NansenClient
from .token_resolver import TokenResolver
from .transfer_scanner import TransferScanner, scan_window_seconds

logger = logging.getLogger(__name__)


class FreshWalletService:
    """
    One full detection pass: symbols in, ranked fresh wallets out.

    Usage:
        service = FreshWalletService.from_config(client, config)
        wallets = await service.find_fresh_wallets(['pepe'])
    """

    def __init__(
        self,
        resolver: TokenResolver,
        scanner: TransferScanner,
        verifier: FreshnessVerifier,
        chains: List[str],
        window_seconds: float,
        token_delay: float = 0.2,
    ):
        """
        Args:
            resolver: Symbol -> token lookup
            scanner: Transfer scanner (owns the candidate filter)
            verifier: Freshness verifier
            chains: Chains to search
            window_seconds: Transfer lookback for every scan
            token_delay: Pause between tokens (seconds)
        """
        self.resolver = resolver
        self.scanner = scanner
        self.verifier = verifier
        self.chains = list(chains)
        self.window_seconds = window_seconds
        self.token_delay = token_delay

        # Stats
        self.stats = {
            'runs': 0,
            'tokens_scanned': 0,
            'token_errors': 0,
            'candidates': 0,
            'verified_fresh': 0,
            'last_run_at': None,
        }

    @classmethod
    def from_config(cls, client: NansenClient, config: Dict, cache: Optional[TTLCache] = None) -> 'FreshWalletService':
        """
        Build the pipeline around a shared client.

        Args:
            client: Nansen gateway
            config: {chains, min_deposit_usd, interval_seconds, window_floor_seconds,
                     cache_ttl_seconds, check_balances, check_historical_balances}
            cache: Shared TTL cache (a fresh one if omitted)
        """
        cache = cache or TTLCache({'ttl_seconds': config.get('cache_ttl_seconds', 3600)})
        resolver = TokenResolver(client, cache, cache_ttl_seconds=config.get('cache_ttl_seconds', 3600))
        scanner = TransferScanner(client, CandidateFilter(config.get('min_deposit_usd', 1000)))
        verifier = FreshnessVerifier(
            client,
            check_balances=config.get('check_balances', False),
            check_historical_balances=config.get('check_historical_balances', False),
        )
        window = scan_window_seconds(
            config['interval_seconds'],
            floor_seconds=config.get('window_floor_seconds', 7200),
        )
        return cls(resolver, scanner, verifier, config['chains'], window)

    async def find_fresh_wallets(self, symbols: List[str], now: Optional[datetime] = None) -> List[FreshWallet]:
        """
        Run the whole pipeline once.

        Args:
            symbols: Watch-list snapshot
            now: End of the scan window (defaults to current UTC time)

        Returns:
            Fresh wallets, unique per (wallet, chain), largest deposit first

        Raises:
            TokenResolutionError: token screener failed on every chain
        """
        self.stats['runs'] += 1
        self.stats['last_run_at'] = datetime.now().isoformat()

        if not symbols:
            logger.info("[PIPELINE] Watch-list is empty, nothing to scan")
            return []

        token_map = await self.resolver.resolve(symbols, self.chains)
        tokens = [token for descriptors in token_map.values() for token in descriptors]
        if not tokens:
            logger.info(f"[PIPELINE] No active tokens found for {symbols} on {self.chains}")
            return []

        window = ScanWindow.ending_now(self.window_seconds, now)
        logger.info(
            f"[PIPELINE] Scanning {len(tokens)} tokens, window "
            f"{window.start.isoformat()} -> {window.end.isoformat()}"
        )

        found: List[FreshWallet] = []
        for index, token in enumerate(tokens):
            if index:
                await asyncio.sleep(self.token_delay)
            found.extend(await self._scan_token(token, window))

        results = merge(found)
        logger.info(f"[PIPELINE] Scan complete: {len(results)} fresh wallets")
        return results

    async def _scan_token(self, token: TokenDescriptor, window: ScanWindow) -> List[FreshWallet]:
        """Scan + verify one token. Upstream errors stay inside this token."""
        try:
            candidates = await self.scanner.scan(token, window)
        except NansenError as e:
            self.stats['token_errors'] += 1
            logger.error(f"[PIPELINE] ❌ {token.symbol} on {token.chain} ({token.address}) failed: {e}")
            return []

        self.stats['tokens_scanned'] += 1
        self.stats['candidates'] += len(candidates)

        fresh: List[FreshWallet] = []
        for candidate in candidates:
            is_fresh = await self.verifier.is_fresh(
                candidate.address,
                candidate.chain,
                candidate.timestamp,
                candidate.symbol,
                token_address=candidate.token_address,
            )
            if not is_fresh:
                continue

            self.stats['verified_fresh'] += 1
            logger.info(
                f"[PIPELINE] 🆕 Fresh wallet {candidate.address} on {candidate.chain}: "
                f"${candidate.deposit_usd:,.0f} {candidate.symbol}"
            )
            fresh.append(FreshWallet(
                wallet=candidate.address,
                chain=candidate.chain,
                init_deposit_usd=candidate.deposit_usd,
                symbol=candidate.symbol,
                deposit_at=candidate.timestamp,
                tx_hash=candidate.tx_hash,
            ))
        return fresh

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'window_seconds': self.window_seconds,
            'filter': self.scanner.filter.get_stats(),
            'freshness': self.verifier.get_stats(),
            'cache': self.resolver.cache.get_stats(),
        }
