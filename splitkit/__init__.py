from .common_types import (
    Experiment,
    Feature,
    FeatureResult,
    FeatureRule,
    Filter,
    Result,
    TrackData,
    VariationMeta,
)
from .conditions import evalCondition
from .context import Context
from .core import (
    chooseVariation,
    gbhash,
    getBucketRanges,
    getEqualWeights,
    getQueryStringOverride,
    inNamespace,
)
from .payload import PayloadError, decrypt, parse_features

__version__ = "0.1.0"
