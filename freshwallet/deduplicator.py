"""
DEDUPLICATOR

Two levels:
- merge(): per scan, collapses results to one entry per (wallet, chain),
  keeping the larger deposit, ranked by deposit descending
- AlertDeduplicator: across scans, suppresses re-notifying a wallet inside
  the cooldown (scan windows overlap, so a wallet can be found twice)
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Tuple

from .models import FreshWallet


def merge(wallets: Iterable[FreshWallet]) -> List[FreshWallet]:
    """
    Dedupe and rank fresh wallets.

    Keys by (lowercase wallet, chain). On collision the larger
    init_deposit_usd wins; ties keep the first seen.
    """
    best: Dict[Tuple[str, str], FreshWallet] = {}
    for wallet in wallets:
        current = best.get(wallet.key)
        if current is None or wallet.init_deposit_usd > current.init_deposit_usd:
            best[wallet.key] = wallet

    return sorted(best.values(), key=lambda w: w.init_deposit_usd, reverse=True)


class AlertDeduplicator:
    """
    Tracks notified wallets to prevent repeat alerts.
    """

    def __init__(self, config: Dict = None, clock: Callable[[], datetime] = datetime.now):
        self.config = config or {}

        # Cooldown (in seconds)
        self.cooldown_seconds = self.config.get('cooldown_seconds', 7200)

        # State: {chain: {wallet: last notified}}
        self._seen: Dict[str, Dict[str, datetime]] = {}
        self._clock = clock

        self._lock = threading.Lock()

        # Stats
        self.stats = {
            'wallet_duplicates': 0,
            'recorded': 0,
        }

    def is_duplicate(self, wallet: str, chain: str) -> bool:
        """Check if wallet was notified within the cooldown."""
        with self._lock:
            last_seen = self._seen.get(chain, {}).get(wallet.lower())
            if last_seen and self._clock() - last_seen < timedelta(seconds=self.cooldown_seconds):
                self.stats['wallet_duplicates'] += 1
                return True
            return False

    def record(self, wallet: str, chain: str):
        """Start the cooldown for a wallet whose alert was delivered."""
        with self._lock:
            self._seen.setdefault(chain, {})[wallet.lower()] = self._clock()
            self.stats['recorded'] += 1

    def cleanup_expired(self) -> int:
        """Remove expired entries."""
        with self._lock:
            now = self._clock()
            cooldown = timedelta(seconds=self.cooldown_seconds)
            removed = 0

            for chain in self._seen:
                to_remove = [addr for addr, ts in self._seen[chain].items() if now - ts >= cooldown]
                for addr in to_remove:
                    del self._seen[chain][addr]
                    removed += 1

            return removed

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                **self.stats,
                'tracked': sum(len(bucket) for bucket in self._seen.values()),
                'cooldown_seconds': self.cooldown_seconds,
            }
