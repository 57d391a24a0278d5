"""County overlay layer definitions loaded from YAML."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from zoninglens.gis.models import LayerSpec

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / "config" / "overlay_layers.yml"


def load_overlay_layers(config_path: str | Path | None = None) -> list[LayerSpec]:
    """Read ``overlays: [...]`` from the YAML file.

    A missing file means no overlay layers. A malformed file, or a malformed
    entry, is logged and skipped.
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    if not path.exists():
        return []
    try:
        with open(path) as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Could not load overlay layers from %s: %s", path, exc)
        return []
    if not isinstance(data, dict):
        logger.error("Overlay config %s must be a mapping", path)
        return []

    layers: list[LayerSpec] = []
    for i, entry in enumerate(data.get("overlays") or []):
        try:
            layer = LayerSpec.model_validate(entry)
        except ValidationError as exc:
            logger.warning("Skipping overlay entry %d in %s: %s", i, path, exc.errors()[0]["msg"])
            continue
        if not layer.label:
            layer = layer.model_copy(update={"label": f"Overlay {i + 1}"})
        layers.append(layer)
    return layers
