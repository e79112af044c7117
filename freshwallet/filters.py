"""
CANDIDATE FILTER

Decides which transfers are worth a freshness check.

A transfer passes only if:
1. DEPOSIT SIZE: usd value >= min_deposit_usd
2. TX TYPE: transfer / swap / simpleSwap (multicall & friends are ambiguous)
3. RECIPIENT: classifies as a PRIVATE wallet

Recipient classification (AddressKind):
- CONTRACT        - >=10 leading/trailing zero hex digits, or a known router
- LABELED_ENTITY  - Nansen attached a label (exchange, protocol, fund...)
- PRIVATE         - everything else

The sender is never inspected: deposits from a CEX or DEX are fine.
"""

import logging
import re
from enum import Enum
from typing import Dict, Optional, Tuple

from .models import TransferRecord

logger = logging.getLogger(__name__)


class AddressKind(Enum):
    PRIVATE = "PRIVATE"
    CONTRACT = "CONTRACT"
    LABELED_ENTITY = "LABELED_ENTITY"


ALLOWED_TX_TYPES = frozenset({'transfer', 'swap', 'simpleswap'})

# What Nansen puts in toLabel when it knows nothing about the address
UNLABELED_MARKERS = frozenset({'', 'unlabeled', 'unlabeled address'})

KNOWN_CONTRACTS = frozenset({
    '0x7a250d5630b4cf539739df2c5dacb4c659f2488d',  # Uniswap V2 router
    '0xe592427a0aece92de3edee1f18e0157c05861564',  # Uniswap V3 router
})

_LEADING_ZEROS = re.compile(r'^0x0{10,}')
_TRAILING_ZEROS = re.compile(r'0{10,}$')


def is_unlabeled(label: Optional[str]) -> bool:
    return label is None or label.strip().lower() in UNLABELED_MARKERS


def classify_address(address: str, label: Optional[str]) -> AddressKind:
    """
    Classify a recipient address.

    Args:
        address: Recipient address
        label: Nansen label for it (None/marker = unlabeled)
    """
    lowered = address.lower()
    if lowered in KNOWN_CONTRACTS or _LEADING_ZEROS.search(lowered) or _TRAILING_ZEROS.search(lowered):
        return AddressKind.CONTRACT
    if not is_unlabeled(label):
        return AddressKind.LABELED_ENTITY
    return AddressKind.PRIVATE


class CandidateFilter:
    """Economic + classification gate in front of the freshness verifier."""

    def __init__(self, min_deposit_usd: float):
        self.min_deposit_usd = min_deposit_usd

        # Stats
        self.stats = {
            'total_evaluated': 0,
            'below_min_deposit': 0,
            'excluded_tx_type': 0,
            'contract_recipient': 0,
            'labeled_recipient': 0,
            'passed': 0,
        }

    def apply_filters(self, transfer: TransferRecord) -> Tuple[bool, Optional[str]]:
        """
        Returns:
            (passed, reason) - reason is None when passed
        """
        self.stats['total_evaluated'] += 1

        usd_value = transfer.usd_value
        if usd_value is None or usd_value < self.min_deposit_usd:
            self.stats['below_min_deposit'] += 1
            return False, f"BELOW_MIN_DEPOSIT (${usd_value or 0:,.0f} < ${self.min_deposit_usd:,.0f})"

        if transfer.tx_type.lower() not in ALLOWED_TX_TYPES:
            self.stats['excluded_tx_type'] += 1
            return False, f"TX_TYPE ({transfer.tx_type})"

        kind = classify_address(transfer.to_address, transfer.to_label)
        if kind is AddressKind.CONTRACT:
            self.stats['contract_recipient'] += 1
            return False, "CONTRACT_RECIPIENT"
        if kind is AddressKind.LABELED_ENTITY:
            self.stats['labeled_recipient'] += 1
            return False, f"LABELED_RECIPIENT ({transfer.to_label})"

        self.stats['passed'] += 1
        return True, None

    def get_stats(self) -> Dict:
        return dict(self.stats)
