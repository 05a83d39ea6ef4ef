import unittest
from unittest.mock import AsyncMock, patch

from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from quote_hub.errors import UpstreamUnavailable
from quote_hub.main import app

RECORD = {"SymbolID": "TXFB5-F", "CLastPrice": "18000", "CDiff": "50", "CTotalVolume": "98765"}


class StubRestClient:
    def __init__(self, record=None, error=None) -> None:
        self.record = record
        self.error = error

    def get_quote_record(self, now=None) -> dict:
        if self.error is not None:
            raise self.error
        return dict(self.record)


class QuoteRoutesTest(unittest.TestCase):
    def setUp(self):
        self.fetcher = app.state.quote_fetcher
        self.hub = app.state.broadcast_hub
        self._original_client = self.fetcher.rest_client
        self._original_poll = self.hub.poll_interval_sec
        self.fetcher.rest_client = StubRestClient(RECORD)
        self.fetcher.last_known = None
        self.hub.poll_interval_sec = 3600
        self.client = TestClient(app)

    def tearDown(self):
        self.fetcher.rest_client = self._original_client
        self.fetcher.last_known = None
        self.hub.poll_interval_sec = self._original_poll
        app.state.chart_feed.replace([])

    def test_one_shot_quote_returns_snapshot_json(self):
        r = self.client.get('/v1/quote')

        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body['price'], '18000')
        self.assertEqual(body['change'], '50')
        self.assertEqual(body['changePercent'], '0.28')
        self.assertEqual(body['volume'], '98765')
        self.assertIn('updateTime', body)
        self.assertIn('isMarketOpen', body)

    def test_unsupported_method_is_client_error(self):
        r = self.client.post('/v1/quote', json={})

        self.assertEqual(r.status_code, 405)

    def test_upstream_failure_on_cold_start_returns_sentinel(self):
        self.fetcher.rest_client = StubRestClient(error=UpstreamUnavailable('down'))

        r = self.client.get('/v1/quote')

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()['price'], '---')
        self.assertFalse(r.json()['isMarketOpen'])

    def test_unexpected_failure_without_fallback_is_server_error(self):
        self.fetcher.rest_client = StubRestClient(error=RuntimeError('boom'))

        r = self.client.get('/v1/quote')

        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json(), {'detail': 'QUOTE_UNAVAILABLE'})

    def test_unexpected_failure_with_cached_snapshot_serves_it(self):
        self.client.get('/v1/quote')
        self.fetcher.rest_client = StubRestClient(error=RuntimeError('boom'))

        r = self.client.get('/v1/quote')

        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()['price'], '18000')
        self.assertEqual(r.json()['source'], 'fallback')

    def test_stream_pushes_initial_snapshot_and_answers_ping(self):
        with self.client.websocket_connect('/v1/stream') as ws:
            first = ws.receive_json()
            self.assertEqual(first['price'], '18000')

            ws.send_json({'type': 'ping'})
            self.assertEqual(ws.receive_json(), {'type': 'pong'})

            ws.send_text('not json')
            ws.send_json({'type': 'ping'})
            self.assertEqual(ws.receive_json(), {'type': 'pong'})

    def test_chart_upload_feeds_quote_signal(self):
        closes = list(range(1, 26))
        volumes = [100.0] * 24 + [300.0]
        bars = [
            {'time': 1700000000 + i * 60, 'open': c, 'high': c + 1, 'low': c - 1, 'close': c, 'volume': v}
            for i, (c, v) in enumerate(zip(closes, volumes))
        ]

        r = self.client.put('/v1/chart', json=bars)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {'bars': 25})

        body = self.client.get('/v1/quote').json()
        self.assertEqual(len(body['chartData']), 25)
        self.assertEqual(body['chartData'][-1]['close'], 25)
        self.assertEqual(body['signal']['type'], 'ENTRY')
        self.assertEqual(body['signal']['reason'], 'price rise with volume surge')

    def test_invalid_chart_body_is_rejected(self):
        r = self.client.put('/v1/chart', json=[{'time': 'soon', 'close': 1}])

        self.assertEqual(r.status_code, 422)
        self.assertEqual(len(app.state.chart_feed), 0)

    def test_stream_registration_failure_closes_socket(self):
        with patch.object(self.hub, 'register_connection', new=AsyncMock(side_effect=RuntimeError('boom'))):
            with self.client.websocket_connect('/v1/stream') as ws:
                with self.assertRaises(WebSocketDisconnect):
                    ws.receive_json()

        self.assertEqual(self.hub.connections, frozenset())

    def test_hub_metrics_contract(self):
        r = self.client.get('/v1/metrics/hub')

        self.assertEqual(r.status_code, 200)
        body = r.json()
        for key in ('state', 'subscribers', 'ticks', 'pushes', 'send_failures', 'fetch_count', 'fetch_fallback_count'):
            self.assertIn(key, body)


class AppLifecycleTest(unittest.TestCase):
    def test_shutdown_closes_hub(self):
        with patch.object(app.state.broadcast_hub, 'shutdown', new=AsyncMock()) as shutdown:
            with TestClient(app):
                shutdown.assert_not_awaited()
            shutdown.assert_awaited_once_with()


if __name__ == '__main__':
    unittest.main()
