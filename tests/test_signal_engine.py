import unittest
from datetime import datetime
from zoneinfo import ZoneInfo

from quote_hub.schemas.signal import IndicatorWindow
from quote_hub.services.signal_engine import HOLD_REASON, evaluate, evaluate_series

NOW = datetime(2026, 1, 7, 9, 30, tzinfo=ZoneInfo("Asia/Taipei"))


def _window(**overrides) -> IndicatorWindow:
    values = {
        "price": 100.0,
        "prev_price": 100.0,
        "ma5": 100.0,
        "ma20": 100.0,
        "rsi": 50.0,
        "volume": 100.0,
        "avg_volume": 100.0,
    }
    values.update(overrides)
    return IndicatorWindow(**values)


class TestSignalEngine(unittest.TestCase):
    def test_no_matching_rule_returns_hold_moderate(self):
        signal = evaluate(_window(), NOW)

        self.assertEqual(signal.type, "HOLD")
        self.assertEqual(signal.strength, "moderate")
        self.assertEqual(signal.reason, HOLD_REASON)
        self.assertEqual(signal.timestamp, NOW)

    def test_breakout_above_long_average(self):
        signal = evaluate(_window(price=110.0, ma5=105.0, ma20=100.0, rsi=60.0), NOW)

        self.assertEqual((signal.type, signal.strength), ("ENTRY", "strong"))
        self.assertEqual(signal.reason, "breakout above 20-period average with rising 5-period average")

    def test_first_strong_rule_in_table_order_wins(self):
        # rules 1 and 2 both match
        signal = evaluate(
            _window(price=110.0, prev_price=100.0, ma5=105.0, ma20=100.0, rsi=60.0, volume=200.0),
            NOW,
        )

        self.assertEqual(signal.reason, "breakout above 20-period average with rising 5-period average")

    def test_entry_strong_beats_exit_moderate(self):
        # volume surge entry and breakdown-with-volume exit both hold
        signal = evaluate(
            _window(price=100.0, prev_price=99.0, ma5=101.0, ma20=100.0, rsi=50.0, volume=200.0),
            NOW,
        )

        self.assertEqual((signal.type, signal.strength), ("ENTRY", "strong"))
        self.assertEqual(signal.reason, "price rise with volume surge")

    def test_later_strong_rule_beats_earlier_moderate_rule(self):
        # oversold rebound (moderate) precedes breakdown (strong) in the table
        signal = evaluate(
            _window(price=100.0, prev_price=101.0, ma5=95.0, ma20=110.0, rsi=20.0),
            NOW,
        )

        self.assertEqual((signal.type, signal.strength), ("EXIT", "strong"))
        self.assertEqual(signal.reason, "breakdown below 20-period average with falling 5-period average")

    def test_overbought_reversal(self):
        signal = evaluate(_window(price=99.0, prev_price=100.0, rsi=80.0), NOW)

        self.assertEqual((signal.type, signal.strength), ("EXIT", "strong"))
        self.assertEqual(signal.reason, "overbought reversal")

    def test_moderate_only_match_is_returned(self):
        signal = evaluate(
            _window(price=99.0, prev_price=100.0, ma5=100.0, ma20=99.0, volume=140.0),
            NOW,
        )

        self.assertEqual((signal.type, signal.strength), ("EXIT", "moderate"))
        self.assertEqual(signal.reason, "breakdown below 5-period average with volume")

    def test_oversold_rebound_moderate(self):
        signal = evaluate(_window(price=101.0, ma5=100.0, ma20=101.0, rsi=25.0), NOW)

        self.assertEqual((signal.type, signal.strength), ("ENTRY", "moderate"))

    def test_evaluate_is_deterministic(self):
        window = _window(price=110.0, ma5=105.0, ma20=100.0)
        self.assertEqual(evaluate(window, NOW), evaluate(window, NOW))


class TestEvaluateSeries(unittest.TestCase):
    def test_insufficient_history_surfaces_hold(self):
        signal = evaluate_series([18000.0], [10.0], NOW)

        self.assertEqual((signal.type, signal.strength), ("HOLD", "moderate"))

    def test_series_with_volume_surge_enters(self):
        prices = [float(p) for p in range(1, 26)]
        volumes = [100.0] * 24 + [300.0]

        signal = evaluate_series(prices, volumes, NOW)

        self.assertEqual((signal.type, signal.strength), ("ENTRY", "strong"))
        self.assertEqual(signal.reason, "price rise with volume surge")


if __name__ == "__main__":
    unittest.main()
