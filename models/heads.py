'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-03 11:00:00
 #  Modified time: 2025-11-03 11:00:00
 #  Description: Detection head and upsampling neck blocks for the YOLOv3 detector.
'''

from __future__ import annotations

from typing import Tuple

import torch
from torch import nn

from .backbones import ConvBlock


class DetectionHead(nn.Module):
    """Conv stack ending in a plain 1x1 projection to ``anchors * (5 + classes)`` channels."""

    def __init__(self, in_channels: int, mid_channels: int, num_anchors: int, num_classes: int) -> None:
        super().__init__()
        self.num_anchors = num_anchors
        self.num_outputs = num_classes + 5
        wide_channels = mid_channels * 2
        self.body = nn.Sequential(
            ConvBlock(in_channels, mid_channels, kernel_size=1),
            ConvBlock(mid_channels, wide_channels),
            ConvBlock(wide_channels, mid_channels, kernel_size=1),
            ConvBlock(mid_channels, wide_channels),
            ConvBlock(wide_channels, mid_channels, kernel_size=1),
            ConvBlock(mid_channels, wide_channels),
        )
        self.feature_channels = wide_channels
        self.out_channels = num_anchors * self.num_outputs
        self.output = ConvBlock(
            wide_channels,
            self.out_channels,
            kernel_size=1,
            batch_norm=False,
            activation=False,
        )

    def forward(self, tensor: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """Return the raw head tensor and the branch feature map feeding it."""
        features = self.body(tensor)
        return self.output(features), features


class UpsampleProjection(nn.Module):
    """1x1 projection followed by nearest-neighbour upsampling by a factor of 2."""

    def __init__(self, in_channels: int, out_channels: int) -> None:
        super().__init__()
        self.project = ConvBlock(in_channels, out_channels, kernel_size=1)
        self.upsample = nn.Upsample(scale_factor=2, mode="nearest")

    def forward(self, tensor: torch.Tensor) -> torch.Tensor:  # noqa: D401
        return self.upsample(self.project(tensor))
