#!/usr/bin/env python
"""
Evaluation context for feature flags and A/B tests.

A ``Context`` captures everything needed to evaluate features for one
subject (attributes, url, forced variations) together with the feature
definitions. It is built once and only read afterwards, so a single
instance can be shared across threads. To change anything, build a new one.
"""

import logging
import threading

from typing import Any, Dict, Set

from .common_types import (
    ConditionEvaluator,
    EvaluationContext,
    Experiment,
    Feature,
    FeatureResult,
    GlobalContext,
    Options,
    Result,
    TrackingCallback,
    UserContext,
)
from .core import eval_feature as core_eval_feature, run_experiment


class Context(object):
    def __init__(
        self,
        enabled: bool = True,
        attributes: dict = None,
        url: str = "",
        features: dict = None,
        forced_variations: dict = None,
        qa_mode: bool = False,
        on_experiment_viewed: TrackingCallback = None,
        condition_evaluator: ConditionEvaluator = None,
        logger: logging.Logger = None,
        # camelCase aliases
        forcedVariations: dict = None,
        qaMode: bool = False,
        trackingCallback: TrackingCallback = None,
        **unknown_options: Any,
    ):
        self._logger = logger or logging.getLogger("splitkit")
        for option in unknown_options:
            self._logger.warning("Unknown context option: %s", option)

        self._trackingCallback = on_experiment_viewed or trackingCallback
        self._tracked: Set[str] = set()
        self._tracked_lock = threading.Lock()

        self._eval_ctx = EvaluationContext(
            user=UserContext(
                url=url or "",
                attributes={str(k): v for k, v in (attributes or {}).items()},
                forced_variations=dict(forced_variations or forcedVariations or {}),
            ),
            global_ctx=GlobalContext(
                options=Options(
                    enabled=enabled,
                    qa_mode=qa_mode or qaMode,
                    condition_evaluator=condition_evaluator,
                ),
                features=self._build_features(features or {}),
            ),
        )

    @staticmethod
    def _build_features(features: dict) -> Dict[str, Feature]:
        built: Dict[str, Feature] = {}
        for key, feature in features.items():
            if isinstance(feature, Feature):
                built[str(key)] = feature
            else:
                built[str(key)] = Feature.from_dict(feature)
        return built

    @property
    def enabled(self) -> bool:
        return self._eval_ctx.global_ctx.options.enabled

    @property
    def qa_mode(self) -> bool:
        return self._eval_ctx.global_ctx.options.qa_mode

    @property
    def url(self) -> str:
        return self._eval_ctx.user.url

    def get_attributes(self) -> dict:
        return dict(self._eval_ctx.user.attributes)

    def get_attribute(self, key: str, default=None):
        return self._eval_ctx.user.attributes.get(key, default)

    def get_features(self) -> Dict[str, Feature]:
        return dict(self._eval_ctx.global_ctx.features)

    def get_forced_variations(self) -> Dict[str, int]:
        return dict(self._eval_ctx.user.forced_variations)

    def eval_feature(self, key: str) -> FeatureResult:
        return core_eval_feature(key=key, evalContext=self._eval_ctx, tracking_cb=self._track)

    # camelCase alias of eval_feature
    def evalFeature(self, key: str) -> FeatureResult:
        return self.eval_feature(key)

    def is_on(self, key: str) -> bool:
        return self.eval_feature(key).on

    # camelCase alias of is_on
    def isOn(self, key: str) -> bool:
        return self.is_on(key)

    def is_off(self, key: str) -> bool:
        return self.eval_feature(key).off

    # camelCase alias of is_off
    def isOff(self, key: str) -> bool:
        return self.is_off(key)

    def get_feature_value(self, key: str, fallback):
        res = self.eval_feature(key)
        return res.value if res.value is not None else fallback

    # camelCase alias of get_feature_value
    def getFeatureValue(self, key: str, fallback):
        return self.get_feature_value(key, fallback)

    def run(self, experiment: Experiment) -> Result:
        return run_experiment(
            experiment=experiment, evalContext=self._eval_ctx, tracking_cb=self._track
        )

    def _track(self, experiment: Experiment, result: Result) -> None:
        if not self._trackingCallback:
            return None
        key = (
            result.hashAttribute
            + str(result.hashValue)
            + experiment.key
            + str(result.variationId)
        )
        with self._tracked_lock:
            if key in self._tracked:
                return None
            self._tracked.add(key)

        self._trackingCallback(experiment, result)
