import unittest
from datetime import datetime, timedelta

from freshwallet.deduplicator import AlertDeduplicator, merge
from freshwallet.models import FreshWallet


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12)

    def __call__(self):
        return self.now


class TestMerge(unittest.TestCase):

    def test_unique_per_wallet_and_chain_keeping_larger_deposit(self):
        wallets = [
            FreshWallet('0xAAA', 'ethereum', 1000),
            FreshWallet('0xaaa', 'ethereum', 3000),
            FreshWallet('0xAAA', 'base', 2000),
            FreshWallet('0xBBB', 'ethereum', 1500),
            FreshWallet('0xAAA', 'ethereum', 2500),
        ]

        merged = merge(wallets)

        self.assertEqual(
            [(w.wallet.lower(), w.chain, w.init_deposit_usd) for w in merged],
            [('0xaaa', 'ethereum', 3000), ('0xaaa', 'base', 2000), ('0xbbb', 'ethereum', 1500)],
        )
        self.assertEqual(len({w.key for w in merged}), len(merged))

    def test_sorted_by_deposit_descending(self):
        merged = merge([
            FreshWallet('0x1', 'ethereum', 10),
            FreshWallet('0x2', 'ethereum', 30),
            FreshWallet('0x3', 'ethereum', 20),
        ])

        self.assertEqual([w.init_deposit_usd for w in merged], [30, 20, 10])

    def test_empty(self):
        self.assertEqual(merge([]), [])

    def test_output_shape(self):
        wallet = FreshWallet('0xBEEF', 'ethereum', 5000, symbol='TOK')
        self.assertEqual(wallet.to_dict(), {'wallet': '0xBEEF', 'chain': 'ethereum', 'initDepositUSD': 5000})


class TestAlertDeduplicator(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.dedup = AlertDeduplicator({'cooldown_seconds': 600}, clock=self.clock)

    def test_second_alert_within_cooldown_is_duplicate(self):
        self.assertFalse(self.dedup.is_duplicate('0xBEEF', 'ethereum'))
        self.dedup.record('0xBEEF', 'ethereum')
        self.clock.now += timedelta(seconds=300)
        self.assertTrue(self.dedup.is_duplicate('0xbeef', 'ethereum'))
        self.assertEqual(self.dedup.get_stats()['wallet_duplicates'], 1)

    def test_check_alone_does_not_start_cooldown(self):
        self.assertFalse(self.dedup.is_duplicate('0xBEEF', 'ethereum'))
        self.assertFalse(self.dedup.is_duplicate('0xBEEF', 'ethereum'))
        self.assertEqual(self.dedup.get_stats()['tracked'], 0)

    def test_other_chain_is_not_duplicate(self):
        self.dedup.record('0xBEEF', 'ethereum')
        self.assertFalse(self.dedup.is_duplicate('0xBEEF', 'base'))

    def test_alert_again_after_cooldown(self):
        self.dedup.record('0xBEEF', 'ethereum')
        self.clock.now += timedelta(seconds=600)
        self.assertFalse(self.dedup.is_duplicate('0xBEEF', 'ethereum'))

    def test_cleanup_expired(self):
        self.dedup.record('0x1', 'ethereum')
        self.clock.now += timedelta(seconds=400)
        self.dedup.record('0x2', 'ethereum')
        self.clock.now += timedelta(seconds=300)

        self.assertEqual(self.dedup.cleanup_expired(), 1)
        self.assertEqual(self.dedup.get_stats()['tracked'], 1)


if __name__ == '__main__':
    unittest.main()
