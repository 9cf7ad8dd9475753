from .rates import RateEngine, utilization, weighted_average
from .risk import RiskEngine, classify, scan_for_liquidatable

__all__ = [
    "RateEngine",
    "RiskEngine",
    "classify",
    "scan_for_liquidatable",
    "utilization",
    "weighted_average",
]
