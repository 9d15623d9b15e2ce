"""Classifier capability and the default Keras-backed implementation.

An endpoint is a base URL (or local directory) holding a hosted
Teachable Machine TF.js export (model.json plus weight shards) and its
metadata file.
"""

import hashlib
import json
from pathlib import Path
from typing import Protocol

import numpy as np
import requests
from loguru import logger

from .config import METADATA_FILENAME, MODEL_CACHE_DIR, MODEL_FILENAME, format_model_url
from .exceptions import InferenceError, ModelLoadError
from .models import Prediction


class Classifier(Protocol):
    def predict(self, buffer: np.ndarray) -> list[Prediction]: ...


def endpoint_urls(base_url: str) -> tuple[str, str]:
    base = format_model_url(base_url)
    return f"{base}{MODEL_FILENAME}", f"{base}{METADATA_FILENAME}"


def _fetch(url: str, cache_dir: Path) -> Path:
    """Local path for ``url``, downloading remote files into ``cache_dir``.

    Files sharing a parent URL land in the same directory, so a model.json
    sits next to its weight shards.
    """
    if not url.startswith(("http://", "https://")):
        path = Path(url.removeprefix("file://"))
        if not path.exists():
            raise ModelLoadError(f"Cannot find {path}")
        return path

    parent, name = url.rsplit("/", 1)
    target = cache_dir / hashlib.md5(parent.encode()).hexdigest() / name
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        resp = requests.get(url, timeout=60)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ModelLoadError(f"Failed to download {url}: {e}") from e
    target.write_bytes(resp.content)
    return target


def weight_files(model_json: dict) -> list[str]:
    """Shard file names listed in a TF.js ``weightsManifest``."""
    return [path for group in model_json.get("weightsManifest", []) for path in group.get("paths", [])]


def read_labels(metadata: dict) -> list[str]:
    # Teachable Machine writes "labels"; older exports carry a "classes" index map
    if "labels" in metadata:
        return [str(label) for label in metadata["labels"]]
    classes = metadata.get("classes", {})
    if isinstance(classes, dict):
        return [str(classes[k]) for k in sorted(classes, key=int)]
    return [str(c) for c in classes]


class KerasClassifier:
    def __init__(self, model, labels: list[str]):
        self.model = model
        self.labels = labels

    @staticmethod
    def preprocess(buffer: np.ndarray) -> np.ndarray:
        # Teachable Machine models expect pixels scaled to [-1, 1]
        x = buffer.astype(np.float32) / 127.5 - 1.0
        return np.expand_dims(x, axis=0)

    def predict(self, buffer: np.ndarray) -> list[Prediction]:
        try:
            preds = self.model.predict(self.preprocess(buffer), verbose=0)[0]
        except Exception as e:
            raise InferenceError(f"Prediction failed: {e}") from e
        return [
            Prediction(label=self.labels[i] if i < len(self.labels) else f"Class {i}", probability=float(p))
            for i, p in enumerate(preds)
        ]


def _load_layers_model(model_url: str, cache_dir: Path):
    if model_url.endswith(".h5"):
        from tensorflow.keras.models import load_model

        return load_model(_fetch(model_url, cache_dir), compile=False)

    import tensorflowjs as tfjs

    model_path = _fetch(model_url, cache_dir)
    base = model_url.rsplit("/", 1)[0]
    for name in weight_files(json.loads(model_path.read_text(encoding="utf-8"))):
        _fetch(f"{base}/{name}", cache_dir)
    return tfjs.converters.load_keras_model(str(model_path))


def load_keras_classifier(model_url: str, metadata_url: str, cache_dir: Path = MODEL_CACHE_DIR) -> KerasClassifier:
    cache_dir = Path(cache_dir)
    metadata_path = _fetch(metadata_url, cache_dir)
    try:
        metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        model = _load_layers_model(model_url, cache_dir)
    except ModelLoadError:
        raise
    except ImportError as e:
        raise ModelLoadError("TensorFlow is not installed; install visionquest[classifier]") from e
    except Exception as e:
        raise ModelLoadError(f"Failed to load model from {model_url}: {e}") from e

    labels = read_labels(metadata)
    logger.info("Loaded classifier {} with {} labels", model_url, len(labels))
    return KerasClassifier(model, labels)
