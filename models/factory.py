'''
 # @ Copyright: @copyright (c) 2025 Gahan AI Private Limited
 # @ Author: Pallab Maji
 # @ Create Time: 2025-11-04 16:00:00
 # @ Modified time: 2025-11-04 16:00:00
 # @ Description: Factory utilities to construct the YOLOv3 model stack.
 # @ Description (Legacy): This module defines configuration data structures and
 #      helpers to build the model, loss and predictor objects from YAML config.
'''

from __future__ import annotations

import logging
import pickle
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import torch
from torch import nn

from .backbones import build_backbone
from .losses import LossType, YoloV3Loss, build_loss
from .postprocess import YoloPredictor
from .yolov3 import DEFAULT_ANCHORS, YoloV3

LOGGER = logging.getLogger("yolov3.models")


def _as_anchor_tuple(anchors: Sequence[Sequence[Sequence[float]]]) -> Tuple[Tuple[Tuple[float, float], ...], ...]:
    return tuple(tuple((float(pair[0]), float(pair[1])) for pair in group) for group in anchors)


@dataclass(frozen=True)
class ModelConfig:
    """Normalized configuration for constructing the YOLOv3 model."""

    name: str
    num_classes: int
    input_channels: int = 3
    input_size: Tuple[int, int] = (416, 416)
    anchors: Tuple[Tuple[Tuple[float, float], ...], ...] = DEFAULT_ANCHORS
    backbone: str = "darknet53"
    backbone_params: Dict[str, Any] = field(default_factory=dict)
    loss_config: Dict[str, Any] = field(default_factory=dict)
    class_names: Tuple[str, ...] = ()
    threshold: float = 0.2
    iou_threshold: float = 0.2
    rescale_size: Optional[Tuple[float, float]] = None
    checkpoint_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.num_classes <= 0:
            raise ValueError("num_classes must be a positive integer")
        if self.input_channels <= 0:
            raise ValueError("input_channels must be a positive integer")
        if any(int(size) % 32 != 0 or int(size) <= 0 for size in self.input_size):
            raise ValueError("input_size must be positive multiples of 32")
        if self.class_names and len(self.class_names) != self.num_classes:
            raise ValueError("class_names must list exactly num_classes entries")
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError("threshold must lie in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must lie in [0, 1]")
        LossType.parse(self.loss_config.get("type", LossType.STANDARD))
        if not self.class_names:
            object.__setattr__(self, "class_names", tuple(str(index) for index in range(self.num_classes)))
        if self.checkpoint_path is not None and not isinstance(self.checkpoint_path, Path):
            object.__setattr__(self, "checkpoint_path", Path(self.checkpoint_path))

    @classmethod
    def from_config(cls, raw_config: Dict[str, Any]) -> "ModelConfig":
        model_section = raw_config.get("model", {}) if "model" in raw_config else raw_config
        inference_section = dict(model_section.get("inference", {}))
        name = str(model_section.get("name", "yolov3"))
        num_classes = int(model_section.get("num_classes", 0))
        input_channels = int(model_section.get("input_channels", 3))
        input_size = model_section.get("input_size", (416, 416))
        if isinstance(input_size, (int, float)):
            input_size = (input_size, input_size)
        anchors = model_section.get("anchors") or DEFAULT_ANCHORS
        backbone = str(model_section.get("backbone", "darknet53"))
        backbone_params = dict(model_section.get("backbone_params", {}))
        loss_config = dict(model_section.get("loss", {}))
        checkpoint = model_section.get("checkpoint_path")
        rescale = inference_section.get("rescale_size")
        return cls(
            name=name,
            num_classes=num_classes,
            input_channels=input_channels,
            input_size=(int(input_size[0]), int(input_size[1])),
            anchors=_as_anchor_tuple(anchors),
            backbone=backbone,
            backbone_params=backbone_params,
            loss_config=loss_config,
            class_names=tuple(str(label) for label in model_section.get("class_names", ())),
            threshold=float(inference_section.get("threshold", 0.2)),
            iou_threshold=float(inference_section.get("iou_threshold", 0.2)),
            rescale_size=(float(rescale[0]), float(rescale[1])) if rescale else None,
            checkpoint_path=Path(checkpoint).expanduser() if checkpoint else None,
        )


@dataclass
class ModelBundle:
    """Container for the assembled model components."""

    model: YoloV3
    loss: YoloV3Loss
    predictor: YoloPredictor
    metadata: Dict[str, Any]


def create_model(config: Dict[str, Any] | ModelConfig, *, load_checkpoint: bool = True) -> ModelBundle:
    """Build the model, loss and predictor objects from configuration data.

    Args:
        config: Either a mapping representing the model configuration or an existing
            :class:`ModelConfig` instance.
        load_checkpoint: When ``True`` and a checkpoint path is provided, attempt to
            load weights into the instantiated model. Failures keep the default weights.

    Returns:
        A :class:`ModelBundle` containing the model, loss function, predictor and metadata.
    """

    model_config = config if isinstance(config, ModelConfig) else ModelConfig.from_config(config)

    model = _build_model(model_config)
    loss_fn = build_loss(model_config.loss_config)
    predictor = YoloPredictor(
        model,
        model_config.class_names,
        threshold=model_config.threshold,
        iou_threshold=model_config.iou_threshold,
        rescale_size=model_config.rescale_size,
    )

    metadata: Dict[str, Any] = {
        "model_name": model_config.name,
        "backbone": model_config.backbone,
        "num_classes": model_config.num_classes,
        "input_size": list(model_config.input_size),
        "loss_type": loss_fn.loss_type.value,
        "num_parameters": sum(param.numel() for param in model.parameters()),
        "blocks": [name for name, _ in model.named_blocks()],
    }

    if load_checkpoint and model_config.checkpoint_path is not None:
        if _maybe_load_checkpoint(model, model_config.checkpoint_path):
            metadata["checkpoint"] = str(model_config.checkpoint_path)

    LOGGER.info(
        "Built %s | backbone=%s | classes=%d | parameters=%d",
        model_config.name,
        model_config.backbone,
        model_config.num_classes,
        metadata["num_parameters"],
    )
    return ModelBundle(model=model, loss=loss_fn, predictor=predictor, metadata=metadata)


def _build_model(model_config: ModelConfig) -> YoloV3:
    backbone_spec = build_backbone(
        name=model_config.backbone,
        input_channels=model_config.input_channels,
        **model_config.backbone_params,
    )
    return YoloV3(
        num_classes=model_config.num_classes,
        anchors=model_config.anchors,
        input_size=model_config.input_size,
        input_channels=model_config.input_channels,
        backbone=backbone_spec.module,
    )


def block_state_dicts(model: YoloV3) -> List[Tuple[str, Dict[str, torch.Tensor]]]:
    """State dicts of the named sub-blocks, in persistence order."""
    return [(name, block.state_dict()) for name, block in model.named_blocks()]


def load_block_state_dicts(model: YoloV3, states: Dict[str, Dict[str, torch.Tensor]]) -> List[str]:
    """Load whichever named sub-blocks are present in ``states``; returns the loaded names."""
    loaded: List[str] = []
    for name, block in model.named_blocks():
        if name in states:
            block.load_state_dict(states[name])
            loaded.append(name)
    return loaded


def _maybe_load_checkpoint(model: nn.Module, checkpoint_path: Path) -> bool:
    if not checkpoint_path.is_file():
        LOGGER.warning("No weights found at %s, using default initialization", checkpoint_path)
        return False
    try:
        checkpoint = torch.load(checkpoint_path, map_location="cpu")
    except (OSError, RuntimeError, pickle.UnpicklingError) as exc:
        LOGGER.warning("Failed to load checkpoint %s: %s", checkpoint_path, exc)
        return False

    state_dict = checkpoint.get("state_dict") if isinstance(checkpoint, dict) and "state_dict" in checkpoint else checkpoint
    if not isinstance(state_dict, dict):
        LOGGER.warning("Invalid checkpoint format at %s", checkpoint_path)
        return False

    defaults = {name: tensor.clone() for name, tensor in model.state_dict().items()}
    try:
        missing, unexpected = model.load_state_dict(state_dict, strict=False)
    except RuntimeError as exc:
        LOGGER.warning("Checkpoint %s does not match the model, using default initialization: %s", checkpoint_path, exc)
        model.load_state_dict(defaults)
        return False
    if missing:
        LOGGER.info("Missing keys while loading checkpoint: %s", sorted(missing))
    if unexpected:
        LOGGER.info("Unexpected keys while loading checkpoint: %s", sorted(unexpected))
    LOGGER.info("Loaded checkpoint from %s", checkpoint_path)
    return True
