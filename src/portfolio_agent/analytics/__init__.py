"""Indicator and cross-asset analytics."""

from .cross_asset import CrossAssetAnalyzer, CrossAssetSignals, MarketRegime, pearson_correlation
from .indicators import IndicatorEngine, IndicatorSnapshot, IndicatorWindows

__all__ = [
    'CrossAssetAnalyzer',
    'CrossAssetSignals',
    'MarketRegime',
    'pearson_correlation',
    'IndicatorEngine',
    'IndicatorSnapshot',
    'IndicatorWindows',
]
