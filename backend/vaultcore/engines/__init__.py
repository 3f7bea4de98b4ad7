# Analysis engines: indicators, patterns, divergence, regime, prediction, setups, risk
from vaultcore.engines.divergence_engine import DivergenceDetector
from vaultcore.engines.indicator_engine import IndicatorEngine
from vaultcore.engines.pattern_engine import PatternEngine
from vaultcore.engines.prediction_adapter import PredictionAdapter
from vaultcore.engines.regime_engine import RegimeClassifier
from vaultcore.engines.risk_engine import RiskEngine
from vaultcore.engines.setup_engine import SetupDetector

__all__ = [
    "DivergenceDetector",
    "IndicatorEngine",
    "PatternEngine",
    "PredictionAdapter",
    "RegimeClassifier",
    "RiskEngine",
    "SetupDetector",
]
