# Extract version for this package from the environment package metadata.
import importlib.metadata
try:
    __version__ = importlib.metadata.version("xbar-arbiter")
except importlib.metadata.PackageNotFoundError:
    # No importlib metadata for this package, e.g. when running from a source checkout.
    __version__ = "unknown" # :nocov:
del importlib


from .model import (RequestRangeError, RequestRangeWarning, Phase, Decision, Observation,
                    ArbiterState, CrossbarArbiterModel)
from .classifier import RequestClassifier
from .selector import RoundRobinSelector
from .arbiter import CrossbarAnnotation, CrossbarArbiter


__all__ = [
    "RequestRangeError", "RequestRangeWarning",
    "Phase", "Decision", "Observation", "ArbiterState", "CrossbarArbiterModel",
    "RequestClassifier", "RoundRobinSelector",
    "CrossbarAnnotation", "CrossbarArbiter",
]
