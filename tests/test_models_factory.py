'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-10-31 11:25:00
 #  Modified time: 2025-11-05 16:00:00
 #  Description: Tests for the YOLOv3 model factory and configuration helpers.
 #  Description (Legacy): Ensures the model creation workflow generates valid
 #       modules, performs forward passes, and computes losses without errors.
'''

from __future__ import annotations

from pathlib import Path

import pytest
import torch

from models import ModelConfig, create_model
from models.factory import block_state_dicts, load_block_state_dicts


def _base_model_dict(tmp_path: Path | None = None) -> dict[str, object]:
    model_section: dict[str, object] = {
        "name": "yolov3-small",
        "num_classes": 2,
        "input_channels": 3,
        "input_size": [64, 64],
        "class_names": ["cat", "dog"],
        "backbone": "darknet53",
        "backbone_params": {"base_channels": 4, "depths": [1, 1, 1, 1, 1]},
        "loss": {"type": "giou", "lambda_coord": 5.0, "lambda_noobj": 0.5},
        "inference": {"threshold": 0.0, "iou_threshold": 0.3},
    }
    if tmp_path is not None:
        model_section["checkpoint_path"] = str(tmp_path / "missing.pt")
    return {"model": model_section}


def test_model_config_from_dict_defaults() -> None:
    config = ModelConfig.from_config({"model": {"num_classes": 3}})
    assert config.name == "yolov3"
    assert config.backbone == "darknet53"
    assert config.num_classes == 3
    assert config.input_size == (416, 416)
    assert config.class_names == ("0", "1", "2")
    assert config.checkpoint_path is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"num_classes": 0},
        {"num_classes": 2, "input_size": [100, 100]},
        {"num_classes": 2, "class_names": ["only-one"]},
        {"num_classes": 2, "loss": {"type": "hinge"}},
        {"num_classes": 2, "inference": {"threshold": 1.5}},
    ],
)
def test_invalid_model_config_raises(overrides: dict) -> None:
    with pytest.raises(ValueError):
        ModelConfig.from_config({"model": overrides})


def test_model_factory_forward_and_loss() -> None:
    bundle = create_model(_base_model_dict())
    assert bundle.metadata["num_parameters"] > 0
    assert bundle.metadata["loss_type"] == "giou"
    assert bundle.metadata["blocks"][0] == "backbone"

    model = bundle.model
    loss_fn = bundle.loss

    inputs = torch.randn(2, 3, 64, 64)
    outputs = model(inputs)

    assert len(outputs) == 3
    assert outputs[0].decoded.shape[0] == 2
    assert outputs[0].decoded.shape[-1] == 5 + bundle.metadata["num_classes"]

    ground_truth = torch.tensor([[0.0, 0.5, 0.5, 0.3, 0.3], [1.0, 0.25, 0.7, 0.1, 0.2]])
    loss = loss_fn(outputs, ground_truth)
    assert torch.isfinite(loss).item() == 1
    assert loss.item() >= 0.0


def test_predictor_uses_configured_names_and_thresholds() -> None:
    bundle = create_model(_base_model_dict())
    predictor = bundle.predictor
    assert predictor.class_names == ["cat", "dog"]
    assert predictor.iou_threshold == pytest.approx(0.3)

    results = predictor(torch.rand(1, 3, 64, 64))
    assert len(results) == 1
    assert all(detection.class_label in {"cat", "dog"} for detection in results[0])


def test_missing_checkpoint_keeps_default_weights(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="yolov3.models"):
        bundle = create_model(_base_model_dict(tmp_path))
    assert "checkpoint" not in bundle.metadata
    assert "No weights found" in caplog.text


def test_mismatched_checkpoint_keeps_default_weights(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    source = create_model(_base_model_dict(), load_checkpoint=False).model
    with torch.no_grad():
        source.backbone.stem.block[0].weight.fill_(0.5)
    checkpoint = tmp_path / "two_classes.pt"
    torch.save(source.state_dict(), checkpoint)

    config = _base_model_dict()
    config["model"]["num_classes"] = 3  # type: ignore[index]
    config["model"]["class_names"] = ["cat", "dog", "bird"]  # type: ignore[index]
    config["model"]["checkpoint_path"] = str(checkpoint)  # type: ignore[index]
    with caplog.at_level("WARNING", logger="yolov3.models"):
        bundle = create_model(config)

    assert "checkpoint" not in bundle.metadata
    assert "does not match" in caplog.text
    # shape-compatible tensors copied before the failure are rolled back
    assert not torch.all(bundle.model.backbone.stem.block[0].weight == 0.5)
    outputs = bundle.model(torch.rand(1, 3, 64, 64))
    assert outputs[0].decoded.shape[-1] == 5 + 3


def test_checkpoint_round_trip_restores_weights(tmp_path: Path) -> None:
    source = create_model(_base_model_dict()).model
    checkpoint = tmp_path / "weights.pt"
    torch.save({"state_dict": source.state_dict()}, checkpoint)

    config = _base_model_dict()
    config["model"]["checkpoint_path"] = str(checkpoint)  # type: ignore[index]
    bundle = create_model(config)

    assert bundle.metadata["checkpoint"] == str(checkpoint)
    for name, tensor in source.state_dict().items():
        assert torch.equal(tensor, bundle.model.state_dict()[name])


def test_block_state_dicts_load_into_a_fresh_model() -> None:
    source = create_model(_base_model_dict(), load_checkpoint=False).model
    target = create_model(_base_model_dict(), load_checkpoint=False).model

    states = dict(block_state_dicts(source))
    states.pop("head_fine")
    loaded = load_block_state_dicts(target, states)

    assert loaded == ["backbone", "head_coarse", "upsample_mid", "head_mid", "upsample_fine"]
    first_conv = "body.0.block.0.weight"
    assert torch.equal(target.head_coarse.state_dict()[first_conv], source.head_coarse.state_dict()[first_conv])
