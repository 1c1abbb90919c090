"""Tests for the embedding model loader and the lock-serialised EmbeddingService."""

from __future__ import annotations

from io import BytesIO

import pytest
import torch
from PIL import Image

from photo_ingest.config import EmbeddingModelConfig
from photo_ingest.errors import EmbeddingUnavailableError
from photo_ingest.ml import embedding as embedding_module
from photo_ingest.ml import models
from photo_ingest.ml.embedding import EmbeddingService


class FakeBatch(dict):
    def to(self, device):
        self["device"] = device
        return {"pixel_values": self["pixel_values"]}


class FakeProcessor:
    def __init__(self) -> None:
        self.batch_sizes: list[int] = []

    def __call__(self, images, return_tensors="pt"):
        self.batch_sizes.append(len(images))
        assert all(image.mode == "RGB" for image in images)
        return FakeBatch(pixel_values=torch.zeros(len(images), 3))


class FakeModel:
    def __init__(self, dim: int = 512) -> None:
        self.dim = dim

    def get_image_features(self, pixel_values):
        return torch.full((pixel_values.shape[0], self.dim), 3.0)


def _install_fakes(monkeypatch: pytest.MonkeyPatch, dim: int = 512) -> FakeProcessor:
    processor = FakeProcessor()

    def fake_loader(config):
        return processor, FakeModel(dim), torch.device("cpu")

    monkeypatch.setattr(embedding_module, "load_embedding_model", fake_loader)
    return processor


def _png_bytes(color=(10, 20, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_embeddings_are_normalised_and_batched(monkeypatch: pytest.MonkeyPatch) -> None:
    processor = _install_fakes(monkeypatch)
    service = EmbeddingService(EmbeddingModelConfig(batch_size=2))
    items = [Image.new("RGB", (4, 4)) for _ in range(4)] + [_png_bytes()]

    vectors = service.embed_images(items)

    assert processor.batch_sizes == [2, 2, 1]
    assert len(vectors) == 5
    for vector in vectors:
        assert vector is not None
        assert len(vector) == 512
        assert sum(component * component for component in vector) == pytest.approx(1.0, rel=1e-5)


def test_undecodable_bytes_yield_none_in_place(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fakes(monkeypatch)
    service = EmbeddingService(EmbeddingModelConfig())

    vectors = service.embed_images([b"definitely not an image", Image.new("RGBA", (4, 4))])

    assert vectors[0] is None
    assert vectors[1] is not None


def test_dimension_mismatch_is_discarded(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fakes(monkeypatch, dim=768)
    service = EmbeddingService(EmbeddingModelConfig(expected_dim=512))

    assert service.embed(Image.new("RGB", (4, 4))) is None


def test_inference_errors_yield_none(monkeypatch: pytest.MonkeyPatch) -> None:
    class ExplodingModel(FakeModel):
        def get_image_features(self, pixel_values):
            raise RuntimeError("CUDA out of memory")

    monkeypatch.setattr(
        embedding_module,
        "load_embedding_model",
        lambda config: (FakeProcessor(), ExplodingModel(), torch.device("cpu")),
    )
    service = EmbeddingService(EmbeddingModelConfig())

    assert service.embed_images([Image.new("RGB", (4, 4))]) == [None]


def test_load_failure_raises_at_construction(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_loader(config):
        raise OSError("model not found")

    monkeypatch.setattr(embedding_module, "load_embedding_model", failing_loader)

    with pytest.raises(EmbeddingUnavailableError):
        EmbeddingService(EmbeddingModelConfig())


def test_load_embedding_model_wires_processor_and_model(monkeypatch: pytest.MonkeyPatch) -> None:
    """The loader resolves presets, moves the model to the device and switches to eval mode."""

    captured: dict[str, object] = {}

    class FakeAutoModel:
        def __init__(self) -> None:
            self.received_device = None

        @classmethod
        def from_pretrained(cls, name):
            captured["model_name"] = name
            return cls()

        def to(self, device):
            self.received_device = device
            return self

        def eval(self):
            captured["eval_called"] = True

    class FakeProcessorLoader:
        @staticmethod
        def from_pretrained(name, use_fast=True):
            captured["processor_name"] = name
            captured["use_fast"] = use_fast
            return FakeProcessor()

    monkeypatch.setattr(models, "AutoProcessor", FakeProcessorLoader)
    monkeypatch.setattr(models, "AutoModel", FakeAutoModel)

    config = EmbeddingModelConfig(preset="clip_b16", device="cpu")
    processor, model, device = models.load_embedding_model(config)

    assert isinstance(processor, FakeProcessor)
    assert isinstance(model, FakeAutoModel)
    assert device.type == "cpu"
    assert model.received_device.type == "cpu"
    assert captured["model_name"] == "openai/clip-vit-base-patch16"
    assert captured["processor_name"] == "openai/clip-vit-base-patch16"
    assert captured["use_fast"] is True
    assert captured["eval_called"] is True


def test_unavailable_device_falls_back_to_cpu(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(models.torch.cuda, "is_available", lambda: False)

    assert models._select_device("cuda").type == "cpu"
    assert models._select_device("tpu").type == "cpu"


def test_large_preset_keeps_768_dim_vectors_without_explicit_width(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_fakes(monkeypatch, dim=768)
    service = EmbeddingService(EmbeddingModelConfig(preset="clip_l14"))

    vector = service.embed(Image.new("RGB", (4, 4)))

    assert service.expected_dim == 768
    assert vector is not None and len(vector) == 768
