'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-03 11:30:00
 #  Modified time: 2025-11-03 11:30:00
 #  Description: Grid decoding of raw YOLOv3 head activations.
 #  Description (Legacy): Turns channel-major head tensors into image-normalized
 #       boxes with objectness and independent per-class probabilities.
'''

from __future__ import annotations

from typing import Tuple

import torch


def make_grid(height: int, width: int, like: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
    """Column and row offsets of shape (1, 1, H, W) on the device/dtype of ``like``."""
    rows = torch.arange(height, device=like.device, dtype=like.dtype)
    cols = torch.arange(width, device=like.device, dtype=like.dtype)
    grid_y, grid_x = torch.meshgrid(rows, cols, indexing="ij")
    return grid_x.view(1, 1, height, width), grid_y.view(1, 1, height, width)


def decode_output(raw: torch.Tensor, anchors: torch.Tensor, num_classes: int) -> torch.Tensor:
    """Decode one detection head.

    Args:
        raw: Head output of shape (B, A * (5 + C), H, W).
        anchors: Anchor sizes of shape (A, 2), normalized by the input resolution.
        num_classes: Number of object classes ``C``.

    Returns:
        Tensor of shape (B, A, H, W, 5 + C) holding ``[x, y, w, h, obj, classes...]``
        with x, y, w, h normalized to the input image.
    """
    if raw.dim() != 4:
        raise ValueError(f"Expected a 4D head tensor, got shape {tuple(raw.shape)}")
    num_anchors = anchors.shape[0]
    num_outputs = 5 + num_classes
    batch_size, channels, height, width = raw.shape
    if channels != num_anchors * num_outputs:
        raise ValueError(
            f"Head produced {channels} channels but {num_anchors} anchors x (5 + {num_classes}) "
            f"= {num_anchors * num_outputs} were expected"
        )

    # (B, A, H, W, 5 + C)
    prediction = raw.reshape(batch_size, num_anchors, num_outputs, height, width).permute(0, 1, 3, 4, 2)
    grid_x, grid_y = make_grid(height, width, prediction)
    anchors = anchors.to(device=prediction.device, dtype=prediction.dtype)
    anchor_w = anchors[:, 0].view(1, num_anchors, 1, 1)
    anchor_h = anchors[:, 1].view(1, num_anchors, 1, 1)

    x = (torch.sigmoid(prediction[..., 0]) + grid_x) / width
    y = (torch.sigmoid(prediction[..., 1]) + grid_y) / height
    w = torch.exp(prediction[..., 2]) * anchor_w
    h = torch.exp(prediction[..., 3]) * anchor_h
    objectness = torch.sigmoid(prediction[..., 4])
    class_scores = torch.sigmoid(prediction[..., 5:])

    return torch.cat(
        [x.unsqueeze(-1), y.unsqueeze(-1), w.unsqueeze(-1), h.unsqueeze(-1), objectness.unsqueeze(-1), class_scores],
        dim=-1,
    )


__all__ = ["decode_output", "make_grid"]
