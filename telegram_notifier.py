"""
Telegram Notifier - Fresh wallet alerts
Dispatch alerts to Telegram with:
- Markdown formatting
- Optional forum thread (TELEGRAM_THREAD_ID)
- Explorer links for common chains

ConsoleNotifier is the colorama fallback when Telegram is not configured.
"""
import logging
from typing import Dict, Optional

from colorama import Fore, Style
from telegram import Bot
from telegram.error import TelegramError

from config import TelegramConfig
from freshwallet.base import BaseNotifier, NotificationContext
from freshwallet.models import FreshWallet

logger = logging.getLogger(__name__)

EXPLORERS = {
    'ethereum': 'https://etherscan.io/address/',
    'base': 'https://basescan.org/address/',
    'arbitrum': 'https://arbiscan.io/address/',
    'optimism': 'https://optimistic.etherscan.io/address/',
    'polygon': 'https://polygonscan.com/address/',
    'bnb': 'https://bscscan.com/address/',
    'avalanche': 'https://snowtrace.io/address/',
    'linea': 'https://lineascan.build/address/',
    'scroll': 'https://scrollscan.com/address/',
    'blast': 'https://blastscan.io/address/',
    'solana': 'https://solscan.io/account/',
    'tron': 'https://tronscan.org/#/address/',
}


def explorer_url(chain: str, address: str) -> Optional[str]:
    base = EXPLORERS.get(chain.lower())
    return f"{base}{address}" if base else None


def format_fresh_wallet_alert(wallet: FreshWallet, context: Optional[NotificationContext] = None) -> str:
    """Markdown body of one fresh wallet alert."""
    symbol = (wallet.symbol or '?').upper()

    message = f"🆕 *FRESH WALLET* | {wallet.chain.upper()}\n\n"
    message += f"💰 Deposit: *${wallet.init_deposit_usd:,.0f}* {symbol}\n"
    message += f"👛 Wallet: `{wallet.wallet}`\n"
    if wallet.deposit_at:
        message += f"🕒 At: {wallet.deposit_at.strftime('%Y-%m-%d %H:%M:%S')} UTC\n"

    url = explorer_url(wallet.chain, wallet.wallet)
    if url:
        message += f"🔗 [Explorer]({url})\n"

    if context and context.rank and context.total and context.total > 1:
        message += f"\n_#{context.rank} of {context.total} in this {context.trigger} scan_"

    return message


class TelegramNotifier(BaseNotifier):
    """
    Telegram alert sink.

    Disabled (every send returns False) when token or chat id is missing.
    """

    def __init__(self, config: TelegramConfig):
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id
        self.thread_id = config.thread_id
        self.enabled = config.enabled

        if self.enabled:
            self.bot = Bot(token=self.bot_token)
        else:
            self.bot = None

        # Stats
        self.stats = {
            'sent': 0,
            'failed': 0,
        }

    async def send_message_async(self, message: str) -> bool:
        """
        Send a simple text message to Telegram.
        """
        if not self.enabled:
            return False

        kwargs = {}
        if self.thread_id:
            kwargs['message_thread_id'] = self.thread_id

        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=message,
                parse_mode='Markdown',
                disable_web_page_preview=True,
                **kwargs
            )
            self.stats['sent'] += 1
            return True
        except TelegramError as e:
            self.stats['failed'] += 1
            logger.error(f"[TELEGRAM] Send error: {e}")
            return False

    async def notify(self, wallet: FreshWallet, context: NotificationContext) -> bool:
        return await self.send_message_async(format_fresh_wallet_alert(wallet, context))

    def get_stats(self) -> Dict:
        return {**self.stats, 'enabled': self.enabled}


class ConsoleNotifier(BaseNotifier):
    """Prints alerts to the terminal."""

    def __init__(self):
        self.printed = 0

    async def notify(self, wallet: FreshWallet, context: NotificationContext) -> bool:
        symbol = (wallet.symbol or '?').upper()
        print(f"\n{Fore.CYAN}{'='*50}")
        print(f"🆕 {Fore.MAGENTA}[{wallet.chain.upper()}] FRESH WALLET{Style.RESET_ALL}")
        print(f"{Fore.YELLOW}Wallet: {Fore.WHITE}{wallet.wallet}")
        print(f"{Fore.YELLOW}Deposit: {Fore.GREEN}${wallet.init_deposit_usd:,.0f} {symbol}")
        if wallet.deposit_at:
            print(f"{Fore.YELLOW}At: {Fore.WHITE}{wallet.deposit_at.isoformat()}")
        if wallet.tx_hash:
            print(f"{Fore.YELLOW}Tx: {Fore.WHITE}{wallet.tx_hash}")
        print(f"{Fore.CYAN}{'='*50}\n")
        self.printed += 1
        return True

    def get_stats(self) -> Dict:
        return {'printed': self.printed}
