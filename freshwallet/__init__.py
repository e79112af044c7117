"""
FRESH WALLET DETECTION MODULE

Finds wallets that just received a large first-ever deposit of a watched
token, using the Nansen API.

GOAL:
- Surface new wallets loading up on watched tokens
- No false leads: anything uncertain is dropped
- Stay inside one global API rate budget

Architecture:
  SCAN ORCHESTRATOR (timer + overlap guard)
          ↓
  TOKEN RESOLVER (cached)
          ↓
  TRANSFER SCANNER + CANDIDATE FILTER
          ↓
  FRESHNESS VERIFIER
          ↓
  MERGE & RANK → NOTIFIER

All upstream calls go through the rate-limited NansenClient.
"""

from .base import BaseNotifier, BaseSymbolStore, NotificationContext
from .cache import TTLCache
from .deduplicator import AlertDeduplicator, merge
from .errors import (
    ClientError,
    NansenError,
    RateLimitedError,
    RequestTimeout,
    SchemaError,
    ServerError,
    TokenResolutionError,
    TransientNetworkError,
    VerificationIndeterminate,
)
from .filters import AddressKind, CandidateFilter, classify_address
from .freshness import FreshnessVerifier
from .integration import FreshWalletService
from .models import FreshWallet, ScanWindow, TokenDescriptor, TransferRecord, WalletCandidate
from .nansen_client import NansenClient
from .rate_limiter import SlidingWindowRateLimiter
from .scheduler import ScanOrchestrator, quantize_interval
from .token_resolver import TokenResolver
from .transfer_scanner import TransferScanner, scan_window_seconds

__all__ = [
    'BaseNotifier',
    'BaseSymbolStore',
    'NotificationContext',
    'TTLCache',
    'AlertDeduplicator',
    'merge',
    'NansenError',
    'TransientNetworkError',
    'RequestTimeout',
    'RateLimitedError',
    'ServerError',
    'ClientError',
    'SchemaError',
    'TokenResolutionError',
    'VerificationIndeterminate',
    'AddressKind',
    'CandidateFilter',
    'classify_address',
    'FreshnessVerifier',
    'FreshWalletService',
    'FreshWallet',
    'ScanWindow',
    'TokenDescriptor',
    'TransferRecord',
    'WalletCandidate',
    'NansenClient',
    'SlidingWindowRateLimiter',
    'ScanOrchestrator',
    'quantize_interval',
    'TokenResolver',
    'TransferScanner',
    'scan_window_seconds',
]
