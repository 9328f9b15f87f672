'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-03 12:00:00
 #  Modified time: 2025-11-03 12:00:00
 #  Description: Core network definition for the YOLOv3 detector.
 #  Description (Legacy): Wires the Darknet backbone into three detection heads
 #       through upsample/concatenate neck blocks and decodes every head.
'''

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import torch
from torch import nn

from .backbones import Darknet53Backbone
from .decode import decode_output
from .heads import DetectionHead, UpsampleProjection

LOGGER = logging.getLogger("yolov3.models")

NUM_SCALES = 3
ANCHORS_PER_SCALE = 3

# (width, height) in input pixels, coarsest scale first
DEFAULT_ANCHORS: Tuple[Tuple[Tuple[float, float], ...], ...] = (
    ((116.0, 90.0), (156.0, 198.0), (373.0, 326.0)),
    ((30.0, 61.0), (62.0, 45.0), (59.0, 119.0)),
    ((10.0, 13.0), (16.0, 30.0), (33.0, 23.0)),
)
DEFAULT_STRIDES: Tuple[int, int, int] = (32, 16, 8)


@dataclass
class DetectionScaleOutput:
    """Raw and decoded tensors for one detection scale."""

    raw: torch.Tensor  # shape: (B, A * (5 + C), H, W)
    decoded: torch.Tensor  # shape: (B, A, H, W, 5 + C)
    stride: int
    anchors: torch.Tensor  # shape: (A, 2), normalized by the input size
    grid_size: Tuple[int, int]


class YoloV3(nn.Module):
    """YOLOv3 detection network with three heads ordered coarse to fine."""

    def __init__(
        self,
        *,
        num_classes: int,
        anchors: Sequence[Sequence[Sequence[float]]] = DEFAULT_ANCHORS,
        input_size: Tuple[int, int] = (416, 416),
        input_channels: int = 3,
        backbone: Optional[nn.Module] = None,
    ) -> None:
        super().__init__()
        if num_classes < 1:
            raise ValueError("num_classes must be a positive integer")
        if len(anchors) != NUM_SCALES:
            raise ValueError(f"Expected {NUM_SCALES} anchor groups, got {len(anchors)}")
        for group in anchors:
            if len(group) != ANCHORS_PER_SCALE or any(len(pair) != 2 for pair in group):
                raise ValueError(f"Each anchor group must hold {ANCHORS_PER_SCALE} (width, height) pairs")

        self.num_classes = num_classes
        self.input_size = (int(input_size[0]), int(input_size[1]))
        self.strides = DEFAULT_STRIDES

        # anchors are kept in pixels; normalization happens per forward pass
        for idx, group in enumerate(anchors):
            self.register_buffer(f"_anchors_{idx}", torch.tensor(group, dtype=torch.float32), persistent=True)

        self.backbone = backbone if backbone is not None else Darknet53Backbone(in_channels=input_channels)
        fine_channels, mid_channels, coarse_channels = self._resolve_feature_channels(self.backbone)

        self.head_coarse = DetectionHead(coarse_channels, coarse_channels // 2, ANCHORS_PER_SCALE, num_classes)
        self.upsample_mid = UpsampleProjection(self.head_coarse.feature_channels, coarse_channels // 4)
        self.head_mid = DetectionHead(
            coarse_channels // 4 + mid_channels, mid_channels // 2, ANCHORS_PER_SCALE, num_classes
        )
        self.upsample_fine = UpsampleProjection(self.head_mid.feature_channels, mid_channels // 4)
        self.head_fine = DetectionHead(
            mid_channels // 4 + fine_channels, fine_channels // 2, ANCHORS_PER_SCALE, num_classes
        )

        expected = ANCHORS_PER_SCALE * (5 + num_classes)
        for head in (self.head_coarse, self.head_mid, self.head_fine):
            if head.out_channels != expected:
                raise ValueError(f"Head emits {head.out_channels} channels, expected {expected}")

    @staticmethod
    def _resolve_feature_channels(backbone: nn.Module) -> Tuple[int, int, int]:
        if not hasattr(backbone, "feature_channels"):
            raise AttributeError("Backbone must expose a feature_channels attribute")
        channels = tuple(int(value) for value in getattr(backbone, "feature_channels"))
        if len(channels) != NUM_SCALES:
            raise ValueError("Backbone must expose exactly 3 feature maps")
        return channels  # type: ignore[return-value]

    @property
    def anchors(self) -> List[torch.Tensor]:
        """Anchor groups in pixels, coarsest scale first."""
        return [getattr(self, f"_anchors_{idx}") for idx in range(NUM_SCALES)]

    def normalized_anchors(self, input_size: Optional[Tuple[int, int]] = None) -> List[torch.Tensor]:
        """Anchors divided by the (width, height) of the input, the configured size by default."""
        input_w, input_h = input_size if input_size is not None else self.input_size
        scale = self._anchors_0.new_tensor([input_w, input_h])
        return [group / scale for group in self.anchors]

    def named_blocks(self) -> List[Tuple[str, nn.Module]]:
        """Independently serializable sub-blocks in a fixed order."""
        return [
            ("backbone", self.backbone),
            ("head_coarse", self.head_coarse),
            ("upsample_mid", self.upsample_mid),
            ("head_mid", self.head_mid),
            ("upsample_fine", self.upsample_fine),
            ("head_fine", self.head_fine),
        ]

    def reset_parameters(self) -> None:
        """Re-initialize every block with its default weights."""
        for module in self.modules():
            if module is not self and hasattr(module, "reset_parameters"):
                module.reset_parameters()

    def forward(self, images: torch.Tensor) -> List[DetectionScaleOutput]:  # noqa: D401
        input_size = (int(images.shape[-1]), int(images.shape[-2]))
        skip_fine, skip_mid, features = self.backbone(images)

        raw_coarse, branch = self.head_coarse(features)
        x = torch.cat([self.upsample_mid(branch), skip_mid], dim=1)
        raw_mid, branch = self.head_mid(x)
        x = torch.cat([self.upsample_fine(branch), skip_fine], dim=1)
        raw_fine, _ = self.head_fine(x)

        outputs: List[DetectionScaleOutput] = []
        for raw, anchors, stride in zip(
            (raw_coarse, raw_mid, raw_fine), self.normalized_anchors(input_size), self.strides
        ):
            outputs.append(
                DetectionScaleOutput(
                    raw=raw,
                    decoded=decode_output(raw, anchors, self.num_classes),
                    stride=stride,
                    anchors=anchors,
                    grid_size=(raw.shape[2], raw.shape[3]),
                )
            )
        return outputs


__all__ = ["DEFAULT_ANCHORS", "DetectionScaleOutput", "YoloV3"]
