"""
BASE COLLABORATORS - Abstract interfaces the pipeline talks to

The scan core only reads the watch-list and hands results to a notifier.
Concrete implementations (JSON symbol file, Telegram, console) live at the
application level.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import FreshWallet


@dataclass(frozen=True)
class NotificationContext:
    """What produced a batch of results."""
    trigger: str  # 'scheduled' or 'manual'
    window_seconds: float
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rank: Optional[int] = None
    total: Optional[int] = None


class BaseSymbolStore(ABC):
    """
    Watch-list source.

    The pipeline reads the list once per scan and never mutates it.
    """

    @abstractmethod
    def get_symbols(self) -> List[str]:
        """
        Returns:
            Snapshot of watched symbols (lowercase)
        """
        pass


class BaseNotifier(ABC):
    """Sink for verified fresh wallets. Failures are logged by the caller."""

    @abstractmethod
    async def notify(self, wallet: FreshWallet, context: NotificationContext) -> bool:
        """
        Deliver one fresh wallet.

        Args:
            wallet: Verified fresh wallet
            context: Scan that found it

        Returns:
            True when the alert was delivered
        """
        pass

    def get_stats(self) -> Dict:
        return {}
