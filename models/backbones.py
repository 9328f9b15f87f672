'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-03 10:20:00
 #  Modified time: 2025-11-03 10:20:00
 #  Description: Darknet-53 backbone and backbone registry for the YOLOv3 detector.
 #  Description (Legacy): Provides the residual feature extractor feeding the
 #       three detection heads. Additional backbones can be registered for experiments.
'''

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

import torch
from torch import nn

LOGGER = logging.getLogger("yolov3.models")

DARKNET53_DEPTHS: Tuple[int, ...] = (1, 2, 8, 8, 4)


@dataclass
class BackboneSpec:
    """Descriptor holding a backbone module and its skip/output channel counts."""

    module: nn.Module
    feature_channels: Tuple[int, int, int]


class ConvBlock(nn.Module):
    """Convolution followed by optional BatchNorm and LeakyReLU."""

    def __init__(
        self,
        in_channels: int,
        out_channels: int,
        *,
        kernel_size: int = 3,
        stride: int = 1,
        batch_norm: bool = True,
        activation: bool = True,
    ) -> None:
        super().__init__()
        padding = kernel_size // 2
        layers: list[nn.Module] = [
            nn.Conv2d(
                in_channels,
                out_channels,
                kernel_size=kernel_size,
                stride=stride,
                padding=padding,
                bias=not batch_norm,
            )
        ]
        if batch_norm:
            layers.append(nn.BatchNorm2d(out_channels, eps=1e-3))
        if activation:
            layers.append(nn.LeakyReLU(0.1, inplace=True))
        self.block = nn.Sequential(*layers)

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:  # noqa: D401 - inherits docs
        return self.block(tensor)


class ShortcutBlock(nn.Module):
    """Residual unit: bottleneck convolutions added back onto the input."""

    def __init__(self, channels: int) -> None:
        super().__init__()
        hidden_channels = max(channels // 2, 1)
        self.conv1 = ConvBlock(channels, hidden_channels, kernel_size=1)
        self.conv2 = ConvBlock(hidden_channels, channels)

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:  # noqa: D401
        out = self.conv2(self.conv1(tensor))
        return torch.relu(out + tensor)


class Darknet53Backbone(nn.Module):
    """Darknet-53 feature extractor with a total downsampling factor of 32.

    The forward pass returns ``(skip_fine, skip_mid, features)`` taken at strides
    8, 16 and 32.
    """

    def __init__(
        self,
        in_channels: int = 3,
        base_channels: int = 32,
        depths: Sequence[int] = DARKNET53_DEPTHS,
    ) -> None:
        super().__init__()
        depths = tuple(int(depth) for depth in depths)
        if len(depths) != 5:
            raise ValueError("Darknet backbone requires exactly 5 stage depths")
        if base_channels < 2:
            raise ValueError("base_channels must be at least 2")

        self.stem = ConvBlock(in_channels, base_channels)
        channels = base_channels
        stages = []
        stage_channels = []
        for depth in depths:
            out_channels = channels * 2
            layers: list[nn.Module] = [ConvBlock(channels, out_channels, stride=2)]
            layers.extend(ShortcutBlock(out_channels) for _ in range(depth))
            stages.append(nn.Sequential(*layers))
            stage_channels.append(out_channels)
            channels = out_channels
        self.stages = nn.ModuleList(stages)
        self._feature_channels = (stage_channels[2], stage_channels[3], stage_channels[4])

    @property
    def feature_channels(self) -> Tuple[int, int, int]:
        return self._feature_channels

    def forward(self, tensor: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:  # noqa: D401
        x = self.stem(tensor)
        outputs = []
        for stage in self.stages:
            x = stage(x)
            outputs.append(x)
        return outputs[2], outputs[3], outputs[4]


_BACKBONE_REGISTRY: Dict[str, Any] = {
    "darknet53": Darknet53Backbone,
}


def register_backbone(name: str, constructor: Any) -> None:
    if name in _BACKBONE_REGISTRY:
        raise ValueError(f"Backbone '{name}' already registered")
    _BACKBONE_REGISTRY[name] = constructor
    LOGGER.info("Registered backbone '%s'", name)


def build_backbone(*, name: str, input_channels: int, **kwargs: Any) -> BackboneSpec:
    constructor = _BACKBONE_REGISTRY.get(name)
    if constructor is None:
        raise ValueError(f"Unknown backbone '{name}'")

    if name == "darknet53":
        base_channels = int(kwargs.get("base_channels", 32))
        depths = tuple(kwargs.get("depths", DARKNET53_DEPTHS))
        module = constructor(in_channels=input_channels, base_channels=base_channels, depths=depths)
    else:
        module = constructor(in_channels=input_channels, **kwargs)

    if not hasattr(module, "feature_channels"):
        raise AttributeError(f"Backbone '{name}' must expose a 'feature_channels' attribute")
    feature_channels = tuple(int(channels) for channels in getattr(module, "feature_channels"))
    if len(feature_channels) != 3:
        raise ValueError(f"Backbone '{name}' must expose exactly 3 feature maps")
    return BackboneSpec(module=module, feature_channels=feature_channels)  # type: ignore[arg-type]
