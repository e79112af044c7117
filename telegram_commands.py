"""
Telegram Command Handler
Handles watch-list and scan commands from the authorized chat
"""

import asyncio
import aiohttp
import logging
import re
from typing import Optional, Set

from freshwallet.scheduler import ScanOrchestrator
from symbols_store import SymbolsStore
from telegram_notifier import TelegramNotifier

logger = logging.getLogger(__name__)

_ADD_PATTERN = re.compile(r'^/?add\s+([A-Za-z0-9]+)$', re.IGNORECASE)
_RM_PATTERN = re.compile(r'^/?rm\s+([A-Za-z0-9]+)$', re.IGNORECASE)

HELP_TEXT = (
    "Available commands:\n"
    "• add <symbol>\n"
    "• rm <symbol>\n"
    "• list\n"
    "• scan\n"
    "• status"
)


class TelegramCommandHandler:
    """Handle Telegram bot commands for the fresh wallet scanner."""

    def __init__(self, symbols_store: SymbolsStore, orchestrator: ScanOrchestrator,
                 telegram_notifier: TelegramNotifier):
        """
        Initialize command handler.

        Args:
            symbols_store: Watch-list the add/rm/list commands edit
            orchestrator: Scan orchestrator for scan/status
            telegram_notifier: TelegramNotifier for sending responses
        """
        self.symbols_store = symbols_store
        self.orchestrator = orchestrator
        self.telegram = telegram_notifier

        self.bot_token = telegram_notifier.bot_token
        self.authorized_chat_id = str(telegram_notifier.chat_id or '')

        if not telegram_notifier.enabled:
            logger.warning("Telegram bot token or chat ID missing. Commands disabled.")
            self.enabled = False
        else:
            self.enabled = True
            logger.info(f"Telegram commands enabled for chat {self.authorized_chat_id}")

        # Track last update ID to avoid processing duplicates
        self.last_update_id = 0
        self.poll_interval = 2.0  # Poll every 2 seconds

        self.scan_task: Optional[asyncio.Task] = None
        self._scan_tasks: Set[asyncio.Task] = set()

    async def start_polling(self):
        """Start polling for commands (runs as background task)."""
        if not self.enabled:
            logger.info("Command handler disabled (missing config)")
            return

        logger.info("📱 Telegram command handler started")

        while True:
            try:
                await self._poll_updates()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Command polling error: {e}")
                await asyncio.sleep(5)  # Back off on error

    async def _poll_updates(self):
        """Poll Telegram for new messages."""
        url = f"https://api.telegram.org/bot{self.bot_token}/getUpdates"
        params = {
            'offset': self.last_update_id + 1,
            'timeout': 1,
            'allowed_updates': '["message"]'
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=5)) as resp:
                    if resp.status != 200:
                        logger.debug(f"getUpdates returned HTTP {resp.status}")
                        return

                    data = await resp.json()
        except asyncio.TimeoutError:
            return  # Normal timeout, continue polling
        except aiohttp.ClientError as e:
            logger.debug(f"Poll update error: {e}")
            return

        if not data.get('ok'):
            return

        for update in data.get('result', []):
            self.last_update_id = max(self.last_update_id, update['update_id'])
            await self._process_update(update)

    async def _process_update(self, update: dict):
        """Process a single update."""
        message = update.get('message')
        if not message:
            return

        chat_id = str(message.get('chat', {}).get('id', ''))
        text = (message.get('text') or '').strip()

        # Security: Only respond to authorized chat
        if chat_id != self.authorized_chat_id:
            logger.warning(f"Ignored command from unauthorized chat: {chat_id}")
            return

        if not text:
            return

        logger.info(f"📨 Received command: {text}")
        try:
            response = await self.handle_text(text)
        except Exception as e:
            logger.error(f"Error processing command {text!r}: {e}")
            response = f"❌ Error processing command: {e}"

        await self._send_response(response)

    async def handle_text(self, text: str) -> str:
        """
        Route one command.

        Returns:
            Reply text
        """
        text = text.strip()

        match = _ADD_PATTERN.match(text)
        if match:
            return self._handle_add(match.group(1))

        match = _RM_PATTERN.match(text)
        if match:
            return self._handle_rm(match.group(1))

        command = text.lower().lstrip('/')
        if command == 'list':
            return self._handle_list()
        if command == 'scan':
            return await self._handle_scan()
        if command == 'status':
            return self._handle_status()

        return HELP_TEXT

    def _handle_add(self, symbol: str) -> str:
        if not self.symbols_store.add_symbol(symbol):
            return f"Symbol \"{symbol.upper()}\" already exists in the list."
        logger.info(f"Added symbol via Telegram: {symbol.lower()}")
        return f"✅ Added \"{symbol.upper()}\" to the symbols list."

    def _handle_rm(self, symbol: str) -> str:
        if not self.symbols_store.remove_symbol(symbol):
            return f"Symbol \"{symbol.upper()}\" not found in the list."
        logger.info(f"Removed symbol via Telegram: {symbol.lower()}")
        return f"✅ Removed \"{symbol.upper()}\" from the symbols list."

    def _handle_list(self) -> str:
        symbols = self.symbols_store.get_symbols()
        if not symbols:
            return "No symbols in the list."
        return f"Current symbols: {', '.join(s.upper() for s in symbols)}"

    async def _handle_scan(self) -> str:
        if self.orchestrator.is_running:
            return "⏳ A scan is already running, try again later."

        # Runs outside the polling loop
        self.scan_task = asyncio.create_task(self._run_scan(), name="telegram-manual-scan")
        self._scan_tasks.add(self.scan_task)
        self.scan_task.add_done_callback(self._scan_tasks.discard)
        return "🔍 Scan started, results will follow."

    async def _run_scan(self):
        await self._send_response(await self._scan_summary())

    async def _scan_summary(self) -> str:
        try:
            results = await self.orchestrator.run_manual_scan()
        except Exception as e:
            logger.error(f"Manual scan failed: {e}")
            return f"❌ Scan failed: {e}"

        if results is None:
            return "⏳ A scan is already running, try again later."
        if not results:
            return "✅ Scan complete: no fresh wallets found."
        return f"✅ Scan complete: {len(results)} fresh wallet(s) found."

    async def stop(self):
        """Cancel manual scans still in flight."""
        tasks = list(self._scan_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _handle_status(self) -> str:
        status = self.orchestrator.get_status()
        pipeline = status.get('pipeline', {})

        response = "📊 *SCANNER STATUS*\n\n"
        response += f"State: {'🔄 scanning' if status['running'] else '💤 idle'}\n"
        response += f"Schedule: {status['schedule']}\n"
        response += f"Watch-list: {len(self.symbols_store.get_symbols())} symbols\n"
        response += f"Last scan: {status['last_finished_at'] or 'never'}"
        if status['last_trigger']:
            response += f" ({status['last_trigger']})"
        response += "\n"
        if status['last_result_count'] is not None:
            response += f"Last result: {status['last_result_count']} fresh wallets\n"
        if status['last_error']:
            response += f"Last error: {status['last_error']}\n"
        response += (
            f"Scans: {status['scans_completed']} ok / {status['scans_failed']} failed / "
            f"{status['scans_skipped']} skipped\n"
        )
        response += f"Alerts sent: {status['wallets_notified']}\n"
        if pipeline:
            response += f"Candidates checked: {pipeline.get('candidates', 0)}"
        return response

    async def _send_response(self, message: str):
        """Send command response via Telegram."""
        sent = await self.telegram.send_message_async(message)
        if not sent:
            logger.error("Failed to send command response")
