import logging

from urllib.parse import urlparse, parse_qs
from typing import Any, Callable, List, Optional, Tuple

from .common_types import (
    EvaluationContext,
    Experiment,
    FeatureResult,
    Filter,
    Result,
)
from .conditions import evalCondition

logger = logging.getLogger("splitkit.core")


def fnv1a32(str: str) -> int:
    hval = 0x811C9DC5
    prime = 0x01000193
    uint32_max = 2 ** 32
    for s in str:
        hval = hval ^ ord(s)
        hval = (hval * prime) % uint32_max
    return hval


def gbhash(seed: str, value: str, version: int) -> Optional[float]:
    """Map ``value`` to a float in [0, 1), scoped by ``seed``.

    Version 1 hashes ``value + seed`` into 1000 buckets. Version 2 re-hashes
    the decimal form of ``fnv1a32(seed + value)`` into 10000 buckets for a
    more even spread. Unknown versions return None.
    """
    if version == 2:
        n = fnv1a32(str(fnv1a32(seed + value)))
        return (n % 10000) / 10000
    if version == 1:
        n = fnv1a32(value + seed)
        return (n % 1000) / 1000
    return None


def inRange(n: float, range: Tuple[float, float]) -> bool:
    return range[0] <= n < range[1]


def inNamespace(userId: str, namespace: Tuple[str, float, float]) -> bool:
    n = gbhash("__" + namespace[0], userId, 1)
    if n is None:
        return False
    return namespace[1] <= n < namespace[2]


def getEqualWeights(numVariations: int) -> List[float]:
    if numVariations < 1:
        return []
    return [1 / numVariations for _ in range(numVariations)]


def getBucketRanges(
    numVariations: int, coverage: float = 1, weights: List[float] = None
) -> List[Tuple[float, float]]:
    coverage = min(max(coverage, 0), 1)

    if weights is None:
        weights = getEqualWeights(numVariations)
    elif len(weights) != numVariations:
        logger.warning(
            "Expected %d weights, got %d, using equal weights", numVariations, len(weights)
        )
        weights = getEqualWeights(numVariations)
    elif not 0.99 <= sum(weights) <= 1.01:
        logger.warning("Weights sum to %s instead of 1, using equal weights", sum(weights))
        weights = getEqualWeights(numVariations)

    # Ranges are packed from 0, the uncovered tail [coverage, 1) enrolls nobody
    cumulative: float = 0
    ranges = []
    for w in weights:
        start = cumulative
        cumulative += coverage * w
        ranges.append((start, cumulative))

    return ranges


def chooseVariation(n: float, ranges: List[Tuple[float, float]]) -> int:
    for i, r in enumerate(ranges):
        if inRange(n, r):
            return i
    return -1


def getQueryStringOverride(id: str, url: str, numVariations: int) -> Optional[int]:
    if not url:
        return None
    res = urlparse(url)
    if not res.query:
        return None
    qs = parse_qs(res.query)
    if id not in qs:
        return None
    variation = qs[id][0]
    if not variation.isdigit():
        return None
    varId = int(variation)
    if varId >= numVariations:
        return None
    return varId


def _getOrigHashValue(attr: str, evalContext: EvaluationContext) -> Tuple[str, Any]:
    attr = attr or "id"
    val = evalContext.user.attributes.get(attr)
    return (attr, "" if val is None else val)


def _getHashValue(attr: str, evalContext: EvaluationContext) -> Tuple[str, str]:
    (attr, val) = _getOrigHashValue(attr, evalContext)
    return (attr, str(val))


def _conditionPasses(condition: dict, evalContext: EvaluationContext) -> bool:
    evaluate = evalContext.global_ctx.options.condition_evaluator or evalCondition
    return evaluate(evalContext.user.attributes, condition)


def _isIncludedInRollout(
    seed: str,
    hashAttribute: str = None,
    range: Tuple[float, float] = None,
    coverage: float = None,
    hashVersion: int = None,
    evalContext: EvaluationContext = None,
) -> bool:
    if coverage is None and range is None:
        return True

    (_, hash_value) = _getHashValue(hashAttribute, evalContext)
    if hash_value == "":
        return False

    n = gbhash(seed, hash_value, hashVersion or 1)
    if n is None:
        return False

    if range:
        return inRange(n, range)
    return coverage is None or n <= coverage


def _isFilteredOut(filters: List[Filter], evalContext: EvaluationContext) -> bool:
    for filter in filters:
        (_, hash_value) = _getHashValue(filter.get("attribute", "id"), evalContext)
        if hash_value == "":
            return True

        n = gbhash(filter.get("seed", ""), hash_value, filter.get("hashVersion", 2))
        if n is None:
            return True

        if not any(inRange(n, r) for r in filter["ranges"]):
            return True
    return False


def eval_feature(
    key: str,
    evalContext: EvaluationContext,
    tracking_cb: Callable[[Experiment, Result], None] = None,
) -> FeatureResult:
    feature = evalContext.global_ctx.features.get(key)
    if feature is None:
        logger.warning("Unknown feature %s", key)
        return FeatureResult(None, "unknownFeature")

    for rule in feature.rules:
        if rule.condition and not _conditionPasses(rule.condition, evalContext):
            logger.debug("Skip rule because of failed condition, feature %s", key)
            continue

        if rule.filters and _isFilteredOut(rule.filters, evalContext):
            logger.debug("Skip rule because of filters, feature %s", key)
            continue

        if rule.is_force():
            # Rollouts always hash on the feature key with version 1
            if not _isIncludedInRollout(
                seed=key,
                hashAttribute=rule.hashAttribute,
                range=rule.range,
                coverage=rule.coverage,
                hashVersion=1,
                evalContext=evalContext,
            ):
                logger.debug(
                    "Skip rule because user not included in percentage rollout, feature %s",
                    key,
                )
                continue

            logger.debug("Force value from rule, feature %s", key)
            return FeatureResult(rule.force, "force")

        exp = rule.to_experiment(key)
        if exp is None:
            logger.warning("Skip invalid rule, feature %s", key)
            continue

        result = run_experiment(
            experiment=exp, featureId=key, evalContext=evalContext, tracking_cb=tracking_cb
        )

        if not result.inExperiment:
            logger.debug("Skip rule because user not included in experiment, feature %s", key)
            continue

        if result.passthrough:
            logger.debug("Continue to next rule, feature %s", key)
            continue

        logger.debug("Assign value from experiment, feature %s", key)
        return FeatureResult(result.value, "experiment", exp, result)

    logger.debug("Use default value for feature %s", key)
    return FeatureResult(feature.defaultValue, "defaultValue")


def run_experiment(
    experiment: Experiment,
    featureId: Optional[str] = None,
    evalContext: EvaluationContext = None,
    tracking_cb: Callable[[Experiment, Result], None] = None,
) -> Result:
    if evalContext is None:
        raise ValueError("evalContext is required - run_experiment")

    options = evalContext.global_ctx.options

    # 1. Not enough variations to split traffic
    if len(experiment.variations) < 2:
        logger.warning("Experiment %s has less than 2 variations, skip", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 2. Evaluation is globally disabled
    if not options.enabled:
        logger.debug("Skip experiment %s because evaluation is disabled", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 3. Forced via a querystring in the url
    qs = getQueryStringOverride(experiment.key, evalContext.user.url, len(experiment.variations))
    if qs is not None:
        logger.debug("Force variation %d from URL querystring, experiment %s", qs, experiment.key)
        return _getExperimentResult(
            experiment, variationId=qs, featureId=featureId, evalContext=evalContext
        )

    # 4. Forced in the context
    forced = evalContext.user.forced_variations.get(experiment.key)
    if forced is not None:
        logger.debug("Force variation %d from context, experiment %s", forced, experiment.key)
        return _getExperimentResult(
            experiment, variationId=forced, featureId=featureId, evalContext=evalContext
        )

    # 5. Inactive experiments exclude everyone
    if not experiment.active:
        logger.debug("Experiment %s is not active, skip", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 6. Nothing to hash
    (_, hashValue) = _getHashValue(experiment.hashAttribute, evalContext)
    if not hashValue:
        logger.debug(
            "Skip experiment %s because user's hashAttribute value is empty", experiment.key
        )
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 7. Filtered out / not in namespace
    if experiment.filters:
        if _isFilteredOut(experiment.filters, evalContext):
            logger.debug("Skip experiment %s because of filters", experiment.key)
            return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)
    elif experiment.namespace and not inNamespace(hashValue, experiment.namespace):
        logger.debug("Skip experiment %s because of namespace", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 8. Targeting condition
    if experiment.condition and not _conditionPasses(experiment.condition, evalContext):
        logger.debug("Skip experiment %s because user failed the condition", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 9. Hash and choose a variation
    n = gbhash(experiment.seed or experiment.key, hashValue, experiment.hashVersion)
    if n is None:
        logger.warning("Skip experiment %s because of invalid hashVersion", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    coverage = experiment.coverage
    ranges = experiment.ranges or getBucketRanges(
        len(experiment.variations), 1 if coverage is None else coverage, experiment.weights
    )
    assigned = chooseVariation(n, ranges)

    # 10. Hash fell outside every range
    if assigned < 0:
        logger.debug("Skip experiment %s because user is not included in the rollout", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 11. Experiment pins a variation
    if experiment.force is not None:
        logger.debug("Force variation %d in experiment %s", experiment.force, experiment.key)
        return _getExperimentResult(
            experiment, variationId=experiment.force, featureId=featureId, evalContext=evalContext
        )

    # 12. QA mode never enrolls
    if options.qa_mode:
        logger.debug("Skip experiment %s because of QA Mode", experiment.key)
        return _getExperimentResult(experiment, featureId=featureId, evalContext=evalContext)

    # 13. Enrolled
    result = _getExperimentResult(
        experiment,
        variationId=assigned,
        inExperiment=True,
        hashUsed=True,
        featureId=featureId,
        bucket=n,
        evalContext=evalContext,
    )

    if tracking_cb:
        try:
            tracking_cb(experiment, result)
        except Exception:
            logger.warning(
                "Tracking callback failed for experiment %s", experiment.key, exc_info=True
            )

    logger.debug("Assigned variation %d in experiment %s", assigned, experiment.key)
    return result


def _getExperimentResult(
    experiment: Experiment,
    variationId: int = 0,
    inExperiment: bool = False,
    hashUsed: bool = False,
    featureId: Optional[str] = None,
    bucket: Optional[float] = None,
    evalContext: EvaluationContext = None,
) -> Result:
    if variationId < 0 or variationId >= len(experiment.variations):
        variationId = 0
        inExperiment = False

    (hashAttribute, hashValue) = _getOrigHashValue(experiment.hashAttribute, evalContext)

    meta = {}
    if experiment.meta and variationId < len(experiment.meta):
        meta = experiment.meta[variationId] or {}

    return Result(
        variationId=variationId,
        inExperiment=inExperiment,
        value=experiment.variations[variationId] if experiment.variations else None,
        hashUsed=hashUsed,
        hashAttribute=hashAttribute,
        hashValue=hashValue,
        featureId=featureId or None,
        bucket=bucket,
        key=meta.get("key", str(variationId)),
        name=meta.get("name", ""),
        passthrough=meta.get("passthrough", False),
    )
