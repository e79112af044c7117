"""
FRESHNESS VERIFIER

A wallet is fresh when nothing disqualifying happened strictly before the
deposit under evaluation.

PRIMARY SIGNAL (always on):
  wallet history (volume >= $100, every chain, spam hidden)
  -> keep transactions earlier than the deposit
  -> ignore ones whose received tokens are all the deposited symbol (trickle)
  -> anything left = NOT fresh

SECONDARY SIGNALS (opt-in):
  - current balances hold nothing but the deposited token above dust
  - no historical balance snapshot of another token above dust

Any failed upstream call makes the result indeterminate, and indeterminate
resolves to NOT fresh. A missed lead is cheaper than a false one.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Union

from .errors import NansenError, VerificationIndeterminate
from .models import AddressBalance, AddressTransaction, parse_timestamp
from .nansen_client import NansenClient

logger = logging.getLogger(__name__)


class FreshnessVerifier:
    """Multi-signal "first ever deposit" check for one wallet."""

    def __init__(
        self,
        client: NansenClient,
        min_volume_usd: float = 100,
        check_balances: bool = False,
        check_historical_balances: bool = False,
        dust_usd: float = 1.0,
        history_days: int = 30,
        records_per_page: int = 100,
        max_pages: int = 20,
    ):
        """
        Args:
            client: Nansen gateway
            min_volume_usd: Noise floor for wallet history
            check_balances: Enable the current-balance signal
            check_historical_balances: Enable the historical-balance signal
            dust_usd: Balances at or below this are ignored
            history_days: Lookback of the historical-balance signal
            records_per_page: History page size
            max_pages: History pages fetched before giving up (indeterminate)
        """
        self.client = client
        self.min_volume_usd = min_volume_usd
        self.check_balances = check_balances
        self.check_historical_balances = check_historical_balances
        self.dust_usd = dust_usd
        self.history_days = history_days
        self.records_per_page = records_per_page
        self.max_pages = max_pages

        # Stats
        self.stats = {
            'checked': 0,
            'fresh': 0,
            'prior_activity': 0,
            'other_balances': 0,
            'historical_balances': 0,
            'indeterminate': 0,
        }

    async def is_fresh(
        self,
        wallet: str,
        chain: str,
        transfer_timestamp: Union[datetime, str],
        current_symbol: str,
        token_address: Optional[str] = None,
    ) -> bool:
        """
        Args:
            wallet: Recipient address
            chain: Chain of the deposit (history is checked across all chains)
            transfer_timestamp: When the deposit landed
            current_symbol: Symbol of the deposited token
            token_address: Deposited token address (sharpens the balance signals)

        Returns:
            True only when every enabled signal says fresh
        """
        self.stats['checked'] += 1
        if isinstance(transfer_timestamp, str):
            transfer_timestamp = parse_timestamp(transfer_timestamp)

        try:
            verdict = await self._verify(wallet, transfer_timestamp, current_symbol, token_address)
        except VerificationIndeterminate as e:
            self.stats['indeterminate'] += 1
            logger.warning(f"[FRESHNESS] {wallet} on {chain}: indeterminate ({e.reason}) - treating as not fresh")
            return False

        if verdict:
            self.stats['fresh'] += 1
            logger.debug(f"[FRESHNESS] ✅ {wallet} on {chain} verified fresh")
        return verdict

    async def _verify(
        self,
        wallet: str,
        transfer_timestamp: datetime,
        current_symbol: str,
        token_address: Optional[str],
    ) -> bool:
        prior = await self._prior_activity(wallet, transfer_timestamp, current_symbol)
        if prior:
            self.stats['prior_activity'] += 1
            logger.debug(f"[FRESHNESS] {wallet} had {len(prior)} earlier transactions - not fresh")
            return False

        if self.check_balances:
            balances = await self._call(wallet, 'balances', self.client.get_address_balances(wallet))
            others = self._other_tokens(balances, token_address, current_symbol)
            if others:
                self.stats['other_balances'] += 1
                logger.debug(f"[FRESHNESS] {wallet} holds {len(others)} other tokens - not fresh")
                return False

        if self.check_historical_balances:
            snapshots = await self._call(
                wallet,
                'historical balances',
                self.client.get_address_historical_balances(wallet, days=self.history_days),
            )
            others = self._other_tokens(snapshots, token_address, current_symbol)
            if others:
                self.stats['historical_balances'] += 1
                logger.debug(f"[FRESHNESS] {wallet} held other tokens in the last {self.history_days}d - not fresh")
                return False

        return True

    async def _prior_activity(
        self,
        wallet: str,
        transfer_timestamp: datetime,
        current_symbol: str,
    ) -> List[AddressTransaction]:
        """
        Disqualifying transactions before the deposit.

        Stops paging as soon as one page contains any.
        """
        page = 1
        while True:
            transactions = await self._call(
                wallet,
                'transactions',
                self.client.get_address_transactions(
                    wallet,
                    min_volume_usd=self.min_volume_usd,
                    page=page,
                    records_per_page=self.records_per_page,
                ),
            )
            disqualifying = [
                tx for tx in transactions
                if tx.timestamp < transfer_timestamp and not tx.received_only(current_symbol)
            ]
            if disqualifying:
                return disqualifying
            if len(transactions) < self.records_per_page:
                return []
            if page >= self.max_pages:
                raise VerificationIndeterminate(wallet, f"history longer than {self.max_pages} pages")
            page += 1

    async def _call(self, wallet: str, what: str, request):
        try:
            return await request
        except NansenError as e:
            raise VerificationIndeterminate(wallet, f"{what} lookup failed: {e}")

    def _other_tokens(
        self,
        balances: List[AddressBalance],
        token_address: Optional[str],
        symbol: str,
    ) -> List[AddressBalance]:
        return [
            balance for balance in balances
            if not balance.is_token(token_address, symbol) and (balance.usd_value or 0) > self.dust_usd
        ]

    def get_stats(self) -> Dict:
        return dict(self.stats)
