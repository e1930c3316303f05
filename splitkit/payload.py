import json
import logging

from base64 import b64decode
from typing import Any, Dict, Union

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives import padding

from .common_types import Feature, FeatureRule

logger = logging.getLogger("splitkit.payload")


class PayloadError(ValueError):
    """Raised when a features payload cannot be decrypted or decoded."""


def decrypt(encrypted_str: str, key_str: str) -> str:
    """Decrypt an ``<iv>.<ciphertext>`` string (both base64) with an AES-128 key."""
    parts = encrypted_str.split(".") if isinstance(encrypted_str, str) else []
    if len(parts) != 2:
        raise PayloadError("Encrypted features must look like '<iv>.<ciphertext>'")

    try:
        key, iv, ct = (b64decode(part) for part in (key_str, *parts))
        decryptor = Cipher(algorithms.AES128(key), modes.CBC(iv)).decryptor()
        unpadder = padding.PKCS7(algorithms.AES128.block_size).unpadder()
        plain = unpadder.update(decryptor.update(ct) + decryptor.finalize())
        return (plain + unpadder.finalize()).decode("utf-8")
    except ValueError as e:
        # covers bad base64, key or iv sizes, padding and utf-8 errors
        raise PayloadError(f"Failed to decrypt features payload: {e}") from e


def _loads(text: str, what: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise PayloadError(f"{what} is not valid JSON: {e}") from e


def _build_feature(key: str, feature: Any) -> Feature:
    if isinstance(feature, Feature):
        return feature
    if not isinstance(feature, dict):
        raise PayloadError(f"Feature {key} must be an object")

    rules = feature.get("rules") or []
    if not isinstance(rules, list) or not all(
        isinstance(rule, (dict, FeatureRule)) for rule in rules
    ):
        raise PayloadError(f"Feature {key} rules must be a list of objects")
    return Feature.from_dict(feature)


def parse_features(payload: Union[str, dict], decryption_key: str = "") -> Dict[str, Feature]:
    """Build ``Feature`` objects from a features payload.

    ``payload`` is either the decoded dict or its JSON text, holding a
    ``features`` map or an ``encryptedFeatures`` string. Anything that cannot
    be decrypted or does not have that shape raises ``PayloadError``.
    """
    if isinstance(payload, str):
        payload = _loads(payload, "Features payload")

    if not isinstance(payload, dict):
        raise PayloadError("Features payload must be an object")

    if "encryptedFeatures" in payload:
        if not decryption_key:
            raise ValueError("Must specify decryption_key")
        features = _loads(
            decrypt(payload["encryptedFeatures"], decryption_key), "Decrypted features"
        )
    elif "features" in payload:
        features = payload["features"]
    else:
        logger.warning("Features payload missing features")
        features = {}

    if not isinstance(features, dict):
        raise PayloadError("Features payload 'features' must be an object")

    return {key: _build_feature(key, feature) for key, feature in features.items()}
