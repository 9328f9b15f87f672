'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-05 09:10:00
 #  Modified time: 2025-11-05 09:10:00
 #  Description: Label format conversions into center based (class, x, y, w, h) records.
'''

from __future__ import annotations

import torch
from torchvision.ops import box_convert

_SUPPORTED_FORMATS = ("xyxy", "xywh", "cxcywh")


def xyxy_to_xywh(labels: torch.Tensor) -> torch.Tensor:
    """Turn ``(class, xmin, ymin, xmax, ymax)`` rows into ``(class, x, y, w, h)`` with a top-left origin."""
    boxes = box_convert(labels[..., 1:5], in_fmt="xyxy", out_fmt="xywh")
    return torch.cat([labels[..., 0:1], boxes], dim=-1)


def top_left_to_center(labels: torch.Tensor) -> torch.Tensor:
    """Turn top-left ``(class, x, y, w, h)`` rows into center based rows."""
    boxes = box_convert(labels[..., 1:5], in_fmt="xywh", out_fmt="cxcywh")
    return torch.cat([labels[..., 0:1], boxes], dim=-1)


def to_center_labels(labels: torch.Tensor, fmt: str = "xyxy") -> torch.Tensor:
    """Convert label rows in any supported box format into center based records.

    Args:
        labels: Tensor of shape (..., 5) holding ``(class, box...)`` rows.
        fmt: One of ``xyxy``, ``xywh`` (top-left origin) or ``cxcywh``.
    """
    if labels.shape[-1] != 5:
        raise ValueError(f"Label rows must have 5 values, got shape {tuple(labels.shape)}")
    if fmt not in _SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported box format '{fmt}', expected one of {_SUPPORTED_FORMATS}")
    if fmt == "cxcywh":
        return labels.clone()
    if fmt == "xyxy":
        labels = xyxy_to_xywh(labels)
    return top_left_to_center(labels)
