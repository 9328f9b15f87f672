'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-03 10:05:00
 #  Modified time: 2025-11-03 10:05:00
 #  Description: Box overlap metrics shared by decoding, loss and NMS.
 #  Description (Legacy): Provides shape-only IoU for anchor matching and the
 #       IoU / GIoU / DIoU / CIoU family for localization losses.
'''

from __future__ import annotations

import math
from enum import Enum
from typing import Sequence, Tuple, Union

import torch

EPSILON = 1e-16
_CIOU_FACTOR = 4.0 / (math.pi ** 2)


class IoUType(str, Enum):
    """Supported box similarity metrics."""

    IOU = "iou"
    GIOU = "giou"
    DIOU = "diou"
    CIOU = "ciou"

    @classmethod
    def parse(cls, value: Union["IoUType", str]) -> "IoUType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Invalid IoU type '{value}'") from None


def wh_iou(wh1: torch.Tensor, wh2: torch.Tensor) -> torch.Tensor:
    """IoU of boxes that share a center point.

    Args:
        wh1: Widths and heights of shape (M, 2).
        wh2: Widths and heights of shape (N, 2).

    Returns:
        Tensor of shape (M, N).
    """
    wh1 = wh1.unsqueeze(1)
    wh2 = wh2.unsqueeze(0)
    inter = torch.minimum(wh1, wh2).prod(dim=2)
    return inter / (wh1.prod(dim=2) + wh2.prod(dim=2) - inter + EPSILON)


def _center_to_corners(boxes: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    half_w = boxes[..., 2] / 2
    half_h = boxes[..., 3] / 2
    return (
        boxes[..., 0] - half_w,
        boxes[..., 0] + half_w,
        boxes[..., 1] - half_h,
        boxes[..., 1] + half_h,
    )


def bbox_iou(
    boxes1: torch.Tensor,
    boxes2: torch.Tensor,
    iou_type: Union[IoUType, str] = IoUType.IOU,
) -> torch.Tensor:
    """Elementwise overlap between center based ``(x, y, w, h)`` boxes.

    Args:
        boxes1: Tensor of shape (..., 4).
        boxes2: Tensor broadcastable against ``boxes1``.
        iou_type: Metric to compute.

    Returns:
        Tensor of shape (...) holding the requested metric.
    """
    iou_type = IoUType.parse(iou_type)
    b1x1, b1x2, b1y1, b1y2 = _center_to_corners(boxes1)
    b2x1, b2x2, b2y1, b2y2 = _center_to_corners(boxes2)

    inter_w = (torch.minimum(b1x2, b2x2) - torch.maximum(b1x1, b2x1)).clamp(min=0)
    inter_h = (torch.minimum(b1y2, b2y2) - torch.maximum(b1y1, b2y1)).clamp(min=0)
    inter = inter_w * inter_h

    w1 = b1x2 - b1x1
    h1 = b1y2 - b1y1
    w2 = b2x2 - b2x1
    h2 = b2y2 - b2y1
    union = w1 * h1 + w2 * h2 - inter + EPSILON

    iou = inter / union
    if iou_type is IoUType.IOU:
        return iou

    # smallest enclosing box
    cw = torch.maximum(b1x2, b2x2) - torch.minimum(b1x1, b2x1)
    ch = torch.maximum(b1y2, b2y2) - torch.minimum(b1y1, b2y1)

    if iou_type is IoUType.GIOU:
        enclosing_area = cw * ch + EPSILON
        return iou - (enclosing_area - union) / enclosing_area

    diagonal = cw.pow(2) + ch.pow(2) + EPSILON
    center_distance = ((b2x1 + b2x2 - b1x1 - b1x2).pow(2) + (b2y1 + b2y2 - b1y1 - b1y2).pow(2)) / 4
    diou = iou - center_distance / diagonal
    if iou_type is IoUType.DIOU:
        return diou

    # aspect ratio term carries no gradient
    v = (_CIOU_FACTOR * (torch.atan(w2 / (h2 + EPSILON)) - torch.atan(w1 / (h1 + EPSILON))).pow(2)).detach()
    alpha = (v / ((1 - iou) + v + EPSILON)).detach()
    return diou - alpha * v


def scalar_bbox_iou(box1: Union[Sequence[float], torch.Tensor], box2: Union[Sequence[float], torch.Tensor]) -> float:
    """Standard IoU for a single pair of center based boxes, clamped to [0, 1]."""
    x1, y1, w1, h1 = (float(value) for value in box1)
    x2, y2, w2, h2 = (float(value) for value in box2)

    inter_w = max(min(x1 + w1 / 2, x2 + w2 / 2) - max(x1 - w1 / 2, x2 - w2 / 2), 0.0)
    inter_h = max(min(y1 + h1 / 2, y2 + h2 / 2) - max(y1 - h1 / 2, y2 - h2 / 2), 0.0)
    inter = inter_w * inter_h
    union = w1 * h1 + w2 * h2 - inter + EPSILON
    return max(0.0, min(1.0, inter / union))


__all__ = ["EPSILON", "IoUType", "bbox_iou", "scalar_bbox_iou", "wh_iou"]
