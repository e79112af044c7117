import argparse
import asyncio
import logging
import signal
import sys

from colorama import init, Fore, Style

from config import AppConfig, ConfigurationError, load_config
from freshwallet import (
    AlertDeduplicator,
    FreshWalletService,
    NansenClient,
    ScanOrchestrator,
    TTLCache,
)
from symbols_store import SymbolsStore
from telegram_commands import TelegramCommandHandler
from telegram_notifier import ConsoleNotifier, TelegramNotifier

logger = logging.getLogger(__name__)

init(autoreset=True)


def build_client(config: AppConfig) -> NansenClient:
    return NansenClient(
        api_key=config.nansen.api_key,
        base_url=config.nansen.base_url,
        max_per_second=config.nansen.max_requests_per_second,
        max_per_minute=config.nansen.max_requests_per_minute,
        retry_attempts=config.nansen.retry_attempts,
        timeout_ms=config.nansen.timeout_ms,
    )


def print_banner(config: AppConfig, once: bool):
    print(f"{Fore.GREEN}🚀 Fresh Wallet Scanner")
    print(f"{Fore.CYAN}📡 Chains: {', '.join(c.upper() for c in config.scanner.chains)}")
    print(f"{Fore.CYAN}💰 Min deposit: ${config.scanner.min_deposit_usd:,.0f}")
    if once:
        print(f"{Fore.CYAN}⏱️  Mode: single scan\n")
    else:
        print(f"{Fore.CYAN}⏱️  Interval: {config.scanner.interval_seconds}s")
    print(f"{Fore.CYAN}📱 Telegram: {'ENABLED' if config.telegram.enabled else 'DISABLED (console alerts)'}\n")


async def run(config: AppConfig, once: bool = False) -> int:
    client = build_client(config)
    if not client.is_api_key_valid():
        print(f"{Fore.RED}❌ Invalid Nansen API key. Please check your configuration.")
        return 1

    cache = TTLCache({'ttl_seconds': config.scanner.token_cache_ttl_seconds})
    service = FreshWalletService.from_config(client, config.pipeline_config(), cache=cache)

    store = SymbolsStore(config.scanner.symbols_file)
    telegram = TelegramNotifier(config.telegram)
    notifier = telegram if telegram.enabled else ConsoleNotifier()

    orchestrator = ScanOrchestrator(
        service,
        store,
        notifier,
        interval_seconds=config.scanner.interval_seconds,
        scan_timeout=config.scanner.scan_timeout_seconds,
        alert_dedup=AlertDeduplicator({'cooldown_seconds': service.window_seconds}),
    )

    print_banner(config, once)

    if once:
        try:
            results = await orchestrator.run_manual_scan()
        except Exception as e:
            print(f"{Fore.RED}❌ Scan failed: {e}")
            return 1
        finally:
            await client.close()

        print(f"{Fore.GREEN}✅ {len(results or [])} fresh wallets")
        for wallet in results or []:
            print(f"  {wallet.chain:<10} {wallet.wallet}  ${wallet.init_deposit_usd:,.0f}")
        return 0

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still ends asyncio.run()
            pass

    tasks = [asyncio.create_task(cache.run_sweeper(), name="cache-sweeper")]
    commands = TelegramCommandHandler(store, orchestrator, telegram)
    if commands.enabled:
        tasks.append(asyncio.create_task(commands.start_polling(), name="telegram-commands"))

    await orchestrator.start()
    try:
        await stop_event.wait()
    finally:
        print(f"\n{Fore.YELLOW}Monitoring stopped.")
        await orchestrator.stop()
        await commands.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await client.close()

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Fresh Wallet Scanner")
    parser.add_argument("--once", action="store_true",
                        help="Run a single scan, print the results and exit")
    args = parser.parse_args()

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"{Fore.RED}❌ {e}{Style.RESET_ALL}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        return asyncio.run(run(config, once=args.once))
    except KeyboardInterrupt:
        print(f"\n{Fore.YELLOW}Monitoring stopped.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
