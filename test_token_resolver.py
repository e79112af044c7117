import unittest
from unittest.mock import AsyncMock, MagicMock

from freshwallet.cache import TTLCache
from freshwallet.errors import ClientError, ServerError, TokenResolutionError
from freshwallet.models import ScreenerToken, TokenDescriptor
from freshwallet.token_resolver import TokenResolver, chunk


def screener_row(symbol, address, chain):
    return ScreenerToken(chain=chain, token_address=address, symbol=symbol)


class TestTokenResolver(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.get_token_screener = AsyncMock()
        self.cache = TTLCache({'ttl_seconds': 3600})
        self.resolver = TokenResolver(self.client, self.cache, inter_call_delay=0)

    async def test_matches_symbols_case_insensitively(self):
        self.client.get_token_screener.return_value = [
            screener_row('TOK', '0xAAA', 'ethereum'),
            screener_row('OTHER', '0xBBB', 'ethereum'),
            screener_row('tok', '0xAAA', 'ethereum'),
        ]

        result = await self.resolver.resolve(['Tok'], ['ethereum'])

        self.assertEqual(result, {'tok': [TokenDescriptor('TOK', 'ethereum', '0xAAA')]})

    async def test_same_symbol_on_several_chains(self):
        def by_chain(chain, *args, **kwargs):
            return [screener_row('TOK', f'0x{chain}', chain)]

        self.client.get_token_screener.side_effect = by_chain

        result = await self.resolver.resolve(['tok'], ['ethereum', 'base'])

        self.assertEqual([t.chain for t in result['tok']], ['ethereum', 'base'])

    async def test_chain_failure_is_skipped(self):
        def by_chain(chain, *args, **kwargs):
            if chain == 'base':
                raise ServerError('/token-screener: HTTP 502', status=502)
            return [screener_row('TOK', '0xAAA', chain)]

        self.client.get_token_screener.side_effect = by_chain

        result = await self.resolver.resolve(['tok'], ['base', 'ethereum', 'arbitrum', 'bnb'])

        self.assertEqual(sorted(t.chain for t in result['tok']), ['arbitrum', 'bnb', 'ethereum'])
        self.assertEqual(self.client.get_token_screener.await_count, 4)

    async def test_all_chains_failing_raises_and_caches_nothing(self):
        self.client.get_token_screener.side_effect = ClientError('/token-screener: HTTP 403', status=403)

        with self.assertRaises(TokenResolutionError):
            await self.resolver.resolve(['tok'], ['ethereum', 'base'])

        self.assertEqual(self.cache.keys(), [])

    async def test_result_is_cached(self):
        self.client.get_token_screener.return_value = [screener_row('TOK', '0xAAA', 'ethereum')]

        first = await self.resolver.resolve(['tok'], ['ethereum'])
        second = await self.resolver.resolve(['TOK'], ['ethereum'])

        self.assertEqual(first, second)
        self.assertEqual(self.client.get_token_screener.await_count, 1)

    async def test_cache_key_ignores_order(self):
        self.assertEqual(
            TokenResolver.cache_key(['b', 'a'], ['base', 'ethereum']),
            TokenResolver.cache_key(['A', 'B'], ['ethereum', 'base']),
        )

    async def test_empty_inputs_skip_the_api(self):
        self.assertEqual(await self.resolver.resolve([], ['ethereum']), {})
        self.assertEqual(await self.resolver.resolve(['tok'], []), {})
        self.client.get_token_screener.assert_not_awaited()

    async def test_unknown_symbols_are_absent(self):
        self.client.get_token_screener.return_value = [screener_row('OTHER', '0xBBB', 'ethereum')]

        self.assertEqual(await self.resolver.resolve(['tok'], ['ethereum']), {})

    async def test_screener_called_with_activity_filters(self):
        self.client.get_token_screener.return_value = []

        await self.resolver.resolve(['tok'], ['ethereum'])

        kwargs = self.client.get_token_screener.await_args.kwargs
        self.assertEqual(kwargs['min_volume'], 1000)
        self.assertEqual(kwargs['min_market_cap'], 10000)
        self.assertEqual(kwargs['records_per_page'], 500)

    def test_chunk(self):
        self.assertEqual(chunk([1, 2, 3, 4, 5, 6, 7], 3), [[1, 2, 3], [4, 5, 6], [7]])
        self.assertEqual(chunk([], 3), [])


if __name__ == '__main__':
    unittest.main()
