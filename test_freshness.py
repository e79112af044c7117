import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from freshwallet.errors import ClientError, ServerError
from freshwallet.freshness import FreshnessVerifier
from freshwallet.models import AddressBalance, AddressTransaction, TokenMovement

DEPOSIT_AT = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
WALLET = '0xBEEF'


def make_tx(minutes_before, received=('USDC',), sent=()):
    return AddressTransaction(
        chain='ethereum',
        timestamp=DEPOSIT_AT - timedelta(minutes=minutes_before),
        tx_hash=f'0xtx{minutes_before}',
        volume_usd=500,
        tokens_received=[TokenMovement(symbol=s) for s in received],
        tokens_sent=[TokenMovement(symbol=s) for s in sent],
    )


def make_balance(symbol, usd_value, address=None):
    return AddressBalance(
        chain='ethereum',
        token_address=address or f'0x{symbol.lower()}',
        symbol=symbol,
        amount=1,
        usd_value=usd_value,
    )


class TestFreshnessVerifier(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.get_address_transactions = AsyncMock(return_value=[])
        self.client.get_address_balances = AsyncMock(return_value=[])
        self.client.get_address_historical_balances = AsyncMock(return_value=[])
        self.verifier = FreshnessVerifier(self.client)

    async def test_no_history_is_fresh(self):
        self.assertTrue(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))

    async def test_prior_transaction_with_other_token_is_not_fresh(self):
        self.client.get_address_transactions.return_value = [make_tx(60, received=('USDC',))]

        self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))
        self.assertEqual(self.verifier.stats['prior_activity'], 1)

    async def test_prior_outgoing_transaction_is_not_fresh(self):
        self.client.get_address_transactions.return_value = [make_tx(60, received=(), sent=('ETH',))]

        self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))

    async def test_same_symbol_trickle_is_ignored(self):
        self.client.get_address_transactions.return_value = [
            make_tx(60, received=('TOK',)),
            make_tx(120, received=('tok', 'TOK')),
        ]

        self.assertTrue(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))

    async def test_mixed_receipt_counts_as_prior_activity(self):
        self.client.get_address_transactions.return_value = [make_tx(60, received=('TOK', 'WETH'))]

        self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))

    async def test_transactions_at_or_after_deposit_are_ignored(self):
        self.client.get_address_transactions.return_value = [
            make_tx(0, received=('USDC',)),
            make_tx(-30, received=('WETH',)),
        ]

        self.assertTrue(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))

    async def test_accepts_iso_timestamp(self):
        self.client.get_address_transactions.return_value = [make_tx(60)]

        self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', '2026-01-01T12:00:00Z', 'TOK'))

    async def test_history_is_paginated(self):
        quiet_page = [make_tx(-10 - i, received=('WETH',)) for i in range(100)]
        self.client.get_address_transactions.side_effect = [quiet_page, [make_tx(600)]]

        self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))
        pages = [call.kwargs['page'] for call in self.client.get_address_transactions.await_args_list]
        self.assertEqual(pages, [1, 2])

    async def test_stops_paging_once_disqualified(self):
        busy_page = [make_tx(60 + i) for i in range(100)]
        self.client.get_address_transactions.return_value = busy_page

        self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))
        self.assertEqual(self.client.get_address_transactions.await_count, 1)

    async def test_history_call_failure_is_not_fresh(self):
        for error in (ServerError('HTTP 503', status=503), ClientError('HTTP 404', status=404)):
            self.client.get_address_transactions.side_effect = error
            self.assertFalse(await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))

        self.assertEqual(self.verifier.stats['indeterminate'], 2)

    async def test_too_long_history_is_not_fresh(self):
        verifier = FreshnessVerifier(self.client, max_pages=2)
        self.client.get_address_transactions.return_value = [make_tx(-10, received=('WETH',))] * 100

        self.assertFalse(await verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))
        self.assertEqual(self.client.get_address_transactions.await_count, 2)

    async def test_secondary_signals_are_off_by_default(self):
        await self.verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK')

        self.client.get_address_balances.assert_not_awaited()
        self.client.get_address_historical_balances.assert_not_awaited()

    async def test_other_balance_above_dust_is_not_fresh(self):
        verifier = FreshnessVerifier(self.client, check_balances=True)
        self.client.get_address_balances.return_value = [
            make_balance('TOK', 5000, '0xAAA'),
            make_balance('USDC', 250),
        ]

        self.assertFalse(await verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK', token_address='0xaaa'))
        self.assertEqual(verifier.stats['other_balances'], 1)

    async def test_dust_and_deposited_token_balances_are_fine(self):
        verifier = FreshnessVerifier(self.client, check_balances=True, check_historical_balances=True)
        self.client.get_address_balances.return_value = [
            make_balance('TOK', 5000, '0xAAA'),
            make_balance('SPAM', 0.5),
        ]
        self.client.get_address_historical_balances.return_value = [make_balance('TOK', 4800, '0xAAA')]

        self.assertTrue(await verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK', token_address='0xAAA'))

    async def test_historical_balance_of_other_token_is_not_fresh(self):
        verifier = FreshnessVerifier(self.client, check_historical_balances=True)
        self.client.get_address_historical_balances.return_value = [make_balance('WETH', 3000)]

        self.assertFalse(await verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))
        kwargs = self.client.get_address_historical_balances.await_args.kwargs
        self.assertEqual(kwargs['days'], 30)

    async def test_balance_call_failure_is_not_fresh(self):
        verifier = FreshnessVerifier(self.client, check_balances=True)
        self.client.get_address_balances.side_effect = ServerError('HTTP 500', status=500)

        self.assertFalse(await verifier.is_fresh(WALLET, 'ethereum', DEPOSIT_AT, 'TOK'))
        self.assertEqual(verifier.stats['indeterminate'], 1)


if __name__ == '__main__':
    unittest.main()
