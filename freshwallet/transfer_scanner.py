"""
TRANSFER SCANNER

Pages through /tgm/transfers for one token over the scan window and hands
each transfer to the CandidateFilter.

Pagination stops on the first short page (< 500 records). Windows of
consecutive scans overlap on purpose; the same transfer may be seen twice and
is collapsed later by the deduplicator.
"""

import logging
from typing import List

from .filters import CandidateFilter
from .models import ScanWindow, TokenDescriptor, TransferRecord, WalletCandidate
from .nansen_client import NansenClient

logger = logging.getLogger(__name__)


def scan_window_seconds(interval_seconds: float, floor_seconds: float = 7200, margin_seconds: float = 60) -> float:
    """Window length that covers at least one full interval plus margin."""
    return max(interval_seconds + margin_seconds, floor_seconds)


class TransferScanner:
    """Token transfers -> wallet candidates."""

    RECORDS_PER_PAGE = 500

    def __init__(self, client: NansenClient, candidate_filter: CandidateFilter, max_pages: int = 200):
        """
        Args:
            client: Nansen gateway
            candidate_filter: Economic/classification gate
            max_pages: Runaway guard on pagination
        """
        self.client = client
        self.filter = candidate_filter
        self.max_pages = max_pages

    async def fetch_transfers(self, token: TokenDescriptor, window: ScanWindow) -> List[TransferRecord]:
        """All transfers of token inside window."""
        transfers: List[TransferRecord] = []
        page = 1
        while True:
            chunk = await self.client.get_token_transfers(
                token,
                window.start,
                window.end,
                page=page,
                records_per_page=self.RECORDS_PER_PAGE,
            )
            transfers.extend(chunk)

            if len(chunk) < self.RECORDS_PER_PAGE:
                break
            if page >= self.max_pages:
                logger.warning(
                    f"[SCANNER] {token.symbol} on {token.chain}: stopped at page limit "
                    f"{self.max_pages} ({len(transfers)} transfers), window may be truncated"
                )
                break
            page += 1

        return transfers

    async def scan(self, token: TokenDescriptor, window: ScanWindow) -> List[WalletCandidate]:
        """
        Candidates for one token, earliest deposit first.

        Every qualifying transfer is its own candidate, so a recipient with
        several deposits is verified once per deposit.
        """
        transfers = await self.fetch_transfers(token, window)

        candidates: List[WalletCandidate] = []
        for transfer in transfers:
            passed, reason = self.filter.apply_filters(transfer)
            if not passed:
                logger.debug(f"[SCANNER] drop {transfer.tx_hash[:12]} -> {transfer.to_address[:10]}: {reason}")
                continue

            candidates.append(WalletCandidate(
                address=transfer.to_address,
                chain=transfer.chain,
                deposit_usd=transfer.usd_value,
                timestamp=transfer.timestamp,
                symbol=transfer.symbol,
                token_address=transfer.token_address,
                tx_hash=transfer.tx_hash,
            ))

        candidates.sort(key=lambda c: c.timestamp)
        logger.info(
            f"[SCANNER] {token.symbol} on {token.chain}: {len(transfers)} transfers, "
            f"{len(candidates)} candidates"
        )
        return candidates
