from __future__ import annotations

import pytest

from src.ai.regime import MarketRegime, RegimeDetector
from src.core.config import RegimeConfig
from src.core.exceptions import UnknownStrategyError
from src.strategies.registry import StrategyID
from tests.conftest import make_window, ranging_window, trending_window, volatile_window


class TestRegimeDetector:

    def setup_method(self):
        self.detector = RegimeDetector()

    def test_short_window_is_ranging(self):
        assert self.detector.detect(trending_window(49)) is MarketRegime.RANGING

    def test_linear_rise_is_bullish(self):
        reading = self.detector.read(trending_window(60))
        assert reading.regime is MarketRegime.TRENDING_BULLISH
        assert reading.r_squared == pytest.approx(1.0)
        assert reading.slope > 0
        assert reading.bars == 60

    def test_linear_fall_is_bearish(self):
        assert self.detector.detect(trending_window(60, slope=-0.1)) is MarketRegime.TRENDING_BEARISH

    def test_alternating_closes_are_ranging(self):
        reading = self.detector.read(ranging_window(60))
        assert reading.regime is MarketRegime.RANGING
        assert reading.r_squared < 0.5
        assert reading.volatility < 0.02

    def test_wide_swings_are_volatile(self):
        reading = self.detector.read(volatile_window(60))
        assert reading.regime is MarketRegime.VOLATILE
        assert reading.volatility > 0.02

    def test_volatility_takes_precedence_over_trend(self):
        window = make_window([100.0 + 3.0 * i for i in range(60)], spread=5.0)
        reading = self.detector.read(window)
        assert reading.r_squared == pytest.approx(1.0)
        assert reading.regime is MarketRegime.VOLATILE

    def test_thresholds_come_from_config(self):
        detector = RegimeDetector(RegimeConfig(volatility_threshold=0.2))
        assert detector.detect(volatile_window(60)) is not MarketRegime.VOLATILE

    def test_detection_is_pure(self):
        window = ranging_window(80)
        assert self.detector.read(window) == self.detector.read(window)

    def test_labels(self):
        assert MarketRegime.TRENDING_BULLISH.label == "bullish trend"
        assert MarketRegime.RANGING.label == "ranging market"
        assert MarketRegime.TRENDING_BEARISH.is_trending
        assert not MarketRegime.VOLATILE.is_trending


class TestRecommendedStrategies:

    def test_default_recommendations(self):
        detector = RegimeDetector()
        assert detector.recommended_strategies(MarketRegime.TRENDING_BULLISH) == {
            StrategyID.EMA, StrategyID.MACD, StrategyID.BREAKOUT,
        }
        assert detector.recommended_strategies(MarketRegime.RANGING) == {
            StrategyID.MEAN_REVERSION, StrategyID.RSI,
        }

    def test_unknown_strategy_in_config_rejected(self):
        with pytest.raises(UnknownStrategyError):
            RegimeDetector(RegimeConfig(recommended={"ranging": ["Momentum"]}))

    def test_unlisted_regime_recommends_nothing(self):
        detector = RegimeDetector(RegimeConfig(recommended={"ranging": ["RSI"]}))
        assert detector.recommended_strategies(MarketRegime.VOLATILE) == frozenset()
