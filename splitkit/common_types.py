#!/usr/bin/env python

import logging

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from typing_extensions import Literal, NotRequired, TypedDict

logger = logging.getLogger("splitkit.common_types")

FeatureSource = Literal["unknownFeature", "defaultValue", "force", "experiment"]


class VariationMeta(TypedDict):
    key: NotRequired[str]
    name: NotRequired[str]
    passthrough: NotRequired[bool]


class Filter(TypedDict):
    seed: str
    ranges: List[Tuple[float, float]]
    hashVersion: NotRequired[int]
    attribute: NotRequired[str]


class TrackData(TypedDict):
    experiment: Dict[str, Any]
    result: Dict[str, Any]


class Experiment(object):
    def __init__(
        self,
        key: str,
        variations: list,
        weights: List[float] = None,
        active: bool = True,
        coverage: float = None,
        condition: dict = None,
        namespace: Tuple[str, float, float] = None,
        force: int = None,
        hashAttribute: str = "id",
        hashVersion: int = None,
        ranges: List[Tuple[float, float]] = None,
        meta: List[VariationMeta] = None,
        filters: List[Filter] = None,
        seed: str = None,
        name: str = None,
        phase: str = None,
    ) -> None:
        self.key = key
        self.variations = variations
        self.weights = weights
        self.active = active
        self.coverage = coverage
        self.condition = condition
        self.namespace = namespace
        self.force = force
        self.hashAttribute = hashAttribute or "id"
        self.hashVersion = hashVersion or 1
        self.ranges = ranges
        self.meta = meta
        self.filters = filters
        self.seed = seed
        self.name = name
        self.phase = phase

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "variations": self.variations,
            "weights": self.weights,
            "active": self.active,
            "coverage": 1 if self.coverage is None else self.coverage,
            "condition": self.condition,
            "namespace": self.namespace,
            "force": self.force,
            "hashAttribute": self.hashAttribute,
            "hashVersion": self.hashVersion,
            "ranges": self.ranges,
            "meta": self.meta,
            "filters": self.filters,
            "seed": self.seed,
            "name": self.name,
            "phase": self.phase,
        }


@dataclass(frozen=True)
class Result:
    """Outcome of running one experiment for one subject.

    ``variationId`` is always a valid index into the experiment's variations.
    ``hashAttribute``/``hashValue`` record what was consulted even when the
    subject was not enrolled.
    """

    variationId: int
    inExperiment: bool
    value: Any
    hashUsed: bool
    hashAttribute: str
    hashValue: Any
    featureId: Optional[str] = None
    bucket: Optional[float] = None
    key: str = ""
    name: str = ""
    passthrough: bool = False

    def to_dict(self) -> dict:
        obj = {
            "featureId": self.featureId,
            "variationId": self.variationId,
            "inExperiment": self.inExperiment,
            "value": self.value,
            "hashUsed": self.hashUsed,
            "hashAttribute": self.hashAttribute,
            "hashValue": self.hashValue,
            "key": self.key,
        }

        if self.bucket is not None:
            obj["bucket"] = self.bucket
        if self.name:
            obj["name"] = self.name
        if self.passthrough:
            obj["passthrough"] = True

        return obj


@dataclass(frozen=True)
class FeatureResult:
    value: Any
    source: FeatureSource
    experiment: Optional[Experiment] = None
    experimentResult: Optional[Result] = None

    @property
    def on(self) -> bool:
        return bool(self.value)

    @property
    def off(self) -> bool:
        return not bool(self.value)

    def to_dict(self) -> dict:
        data = {
            "value": self.value,
            "source": self.source,
            "on": self.on,
            "off": self.off,
        }
        if self.experiment:
            data["experiment"] = self.experiment.to_dict()
        if self.experimentResult:
            data["experimentResult"] = self.experimentResult.to_dict()

        return data


# Accepted spellings for each rule field, first one is canonical
_RULE_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "key": ("key",),
    "variations": ("variations",),
    "weights": ("weights",),
    "coverage": ("coverage",),
    "condition": ("condition",),
    "namespace": ("namespace",),
    "force": ("force",),
    "hashAttribute": ("hashAttribute", "hash_attribute"),
    "hashVersion": ("hashVersion", "hash_version"),
    "range": ("range",),
    "ranges": ("ranges",),
    "meta": ("meta",),
    "filters": ("filters",),
    "seed": ("seed",),
    "name": ("name",),
    "phase": ("phase",),
    "tracks": ("tracks",),
}


class FeatureRule(object):
    def __init__(
        self,
        key: str = "",
        variations: list = None,
        weights: List[float] = None,
        coverage: float = None,
        condition: dict = None,
        namespace: Tuple[str, float, float] = None,
        force=None,
        hashAttribute: str = "id",
        hashVersion: int = None,
        range: Tuple[float, float] = None,
        ranges: List[Tuple[float, float]] = None,
        meta: List[VariationMeta] = None,
        filters: List[Filter] = None,
        seed: str = None,
        name: str = None,
        phase: str = None,
        tracks: List[TrackData] = None,
    ) -> None:
        self.key = key
        self.variations = variations
        self.weights = weights
        self.coverage = coverage
        self.condition = condition
        self.namespace = namespace
        self.force = force
        self.hashAttribute = hashAttribute or "id"
        self.hashVersion = hashVersion or 1
        self.range = range
        self.ranges = ranges
        self.meta = meta
        self.filters = filters
        self.seed = seed
        self.name = name
        self.phase = phase
        self.tracks = tracks

    @classmethod
    def from_dict(cls, data: dict) -> "FeatureRule":
        kwargs: Dict[str, Any] = {}
        known = set()
        for attr, aliases in _RULE_FIELD_ALIASES.items():
            known.update(aliases)
            for alias in aliases:
                if data.get(alias) is not None:
                    kwargs[attr] = data[alias]
                    break

        for unknown in sorted(set(data.keys()) - known):
            logger.debug("Ignoring unknown feature rule field %s", unknown)

        return cls(**kwargs)

    def is_experiment(self) -> bool:
        return self.variations is not None

    def is_force(self) -> bool:
        return not self.is_experiment() and self.force is not None

    def to_experiment(self, feature_key: str) -> Optional[Experiment]:
        if not self.is_experiment():
            return None

        return Experiment(
            key=self.key or feature_key,
            variations=self.variations,
            coverage=self.coverage,
            weights=self.weights,
            hashAttribute=self.hashAttribute,
            hashVersion=self.hashVersion,
            namespace=self.namespace,
            meta=self.meta,
            ranges=self.ranges,
            filters=self.filters,
            seed=self.seed,
            name=self.name,
            phase=self.phase,
        )

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {}
        if self.condition is not None:
            data["condition"] = self.condition
        if self.coverage is not None:
            data["coverage"] = self.coverage
        if self.force is not None:
            data["force"] = self.force
        if self.variations is not None:
            data["variations"] = self.variations
        if self.key:
            data["key"] = self.key
        if self.weights is not None:
            data["weights"] = self.weights
        if self.namespace is not None:
            data["namespace"] = self.namespace
        if self.hashAttribute != "id":
            data["hashAttribute"] = self.hashAttribute
        if self.hashVersion != 1:
            data["hashVersion"] = self.hashVersion
        if self.range is not None:
            data["range"] = self.range
        if self.ranges is not None:
            data["ranges"] = self.ranges
        if self.meta is not None:
            data["meta"] = self.meta
        if self.filters is not None:
            data["filters"] = self.filters
        if self.seed is not None:
            data["seed"] = self.seed
        if self.name is not None:
            data["name"] = self.name
        if self.phase is not None:
            data["phase"] = self.phase
        if self.tracks is not None:
            data["tracks"] = self.tracks

        return data


class Feature(object):
    def __init__(self, defaultValue=None, rules: list = None) -> None:
        self.defaultValue = defaultValue
        self.rules: List[FeatureRule] = []
        for rule in rules or []:
            if isinstance(rule, FeatureRule):
                self.rules.append(rule)
            else:
                self.rules.append(FeatureRule.from_dict(rule))

    @classmethod
    def from_dict(cls, data: dict) -> "Feature":
        return cls(
            defaultValue=data.get("defaultValue", data.get("default_value")),
            rules=data.get("rules", []),
        )

    def to_dict(self) -> dict:
        return {
            "defaultValue": self.defaultValue,
            "rules": [rule.to_dict() for rule in self.rules],
        }


ConditionEvaluator = Callable[[dict, dict], bool]
TrackingCallback = Callable[[Experiment, Result], None]


@dataclass(frozen=True)
class Options:
    enabled: bool = True
    qa_mode: bool = False
    condition_evaluator: Optional[ConditionEvaluator] = None


@dataclass(frozen=True)
class UserContext:
    url: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict)
    forced_variations: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class GlobalContext:
    options: Options
    features: Dict[str, Feature] = field(default_factory=dict)


@dataclass(frozen=True)
class EvaluationContext:
    user: UserContext
    global_ctx: GlobalContext
