"""Model loading for the image embedding backend.

Loading is explicit: callers own the returned processor/model pair (see
:class:`photo_ingest.ml.embedding.EmbeddingService`) instead of sharing
module-level singletons.
"""

from __future__ import annotations

import torch
from torch import device as TorchDevice
from transformers import AutoModel, AutoProcessor, PreTrainedModel

from photo_ingest.config import EmbeddingModelConfig
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def _mps_available() -> bool:
    return getattr(torch.backends, "mps", None) is not None and torch.backends.mps.is_available()


def _select_device(config_device: str = "auto") -> TorchDevice:
    """Select a torch device based on configuration, preferring CPU-safe fallbacks.

    The resolution strategy is:

    - ``auto``: CUDA → MPS → CPU.
    - Explicit values (``cuda``, ``mps``, ``cpu``): use when available, otherwise fall back to CPU.
    """

    normalized = (config_device or "auto").lower()

    if normalized == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        if _mps_available():
            return torch.device("mps")
        return torch.device("cpu")

    if normalized.startswith("cuda") and torch.cuda.is_available():
        return torch.device(normalized)
    if normalized == "mps" and _mps_available():
        return torch.device("mps")

    if normalized != "cpu":
        LOGGER.warning("device_unavailable_fallback_cpu", extra={"requested_device": normalized})
    return torch.device("cpu")


def load_embedding_model(config: EmbeddingModelConfig) -> tuple[AutoProcessor, PreTrainedModel, TorchDevice]:
    """Load the configured CLIP checkpoint and move it to the selected device."""

    model_name = config.resolved_model_name()
    device = _select_device(config.device)

    LOGGER.info("embedding_model_load_start", extra={"model_name": model_name, "device": str(device)})
    processor = AutoProcessor.from_pretrained(model_name, use_fast=True)
    model = AutoModel.from_pretrained(model_name).to(device)
    model.eval()
    LOGGER.info("embedding_model_load_complete", extra={"model_name": model_name, "device": str(device)})

    return processor, model, device


__all__ = ["load_embedding_model"]
