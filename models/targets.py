'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-04 09:30:00
 #  Modified time: 2025-11-04 09:30:00
 #  Description: Anchor matching and per-scale target tensors for YOLOv3 training.
 #  Description (Legacy): Provides structured containers for multi-scale
 #       target tensors used by the anchor-based training pipeline.
'''

from __future__ import annotations

import logging
from dataclasses import dataclass

import torch

from .geometry import wh_iou

LOGGER = logging.getLogger("yolov3.targets")


@dataclass
class YoloScaleTargets:
    """Targets for a single detection scale.

    Attributes:
        obj_mask: Bool tensor of shape (B, A, H, W) marking assigned anchors.
        noobj_mask: Bool tensor of shape (B, A, H, W) marking anchors penalized as background.
        tx: Fractional x offset of the ground truth inside its cell, shape (B, A, H, W).
        ty: Fractional y offset of the ground truth inside its cell, shape (B, A, H, W).
        tw: Normalized ground-truth width, shape (B, A, H, W).
        th: Normalized ground-truth height, shape (B, A, H, W).
        tcls: One-hot class targets of shape (B, A, H, W, C).
        tbox: Normalized center based ground-truth boxes of shape (B, A, H, W, 4).
    """

    obj_mask: torch.Tensor
    noobj_mask: torch.Tensor
    tx: torch.Tensor
    ty: torch.Tensor
    tw: torch.Tensor
    th: torch.Tensor
    tcls: torch.Tensor
    tbox: torch.Tensor

    @property
    def num_assigned(self) -> int:
        return int(self.obj_mask.sum().item())


def flatten_ground_truth(ground_truth: torch.Tensor) -> torch.Tensor:
    """Return valid ``(batch_index, class, x, y, w, h)`` rows.

    ``ground_truth`` is either (B, 5) with one record per image or (B, N, 5) with
    padding rows marked by a negative class id.
    """
    if ground_truth.dim() == 2:
        ground_truth = ground_truth.unsqueeze(1)
    if ground_truth.dim() != 3 or ground_truth.shape[-1] != 5:
        raise ValueError(f"Ground truth must have shape (B, 5) or (B, N, 5), got {tuple(ground_truth.shape)}")
    batch_size, num_boxes, _ = ground_truth.shape
    batch_index = torch.arange(batch_size, device=ground_truth.device, dtype=ground_truth.dtype)
    batch_index = batch_index.view(batch_size, 1, 1).expand(batch_size, num_boxes, 1)
    rows = torch.cat([batch_index, ground_truth], dim=-1).reshape(-1, 6)
    return rows[rows[:, 1] >= 0]


@torch.no_grad()
def build_targets(
    decoded: torch.Tensor,
    anchors: torch.Tensor,
    ground_truth: torch.Tensor,
    ignore_threshold: float = 0.5,
) -> YoloScaleTargets:
    """Assign ground-truth boxes to the best matching anchor of one scale.

    Args:
        decoded: Decoded head tensor of shape (B, A, H, W, 5 + C).
        anchors: Normalized anchor sizes of shape (A, 2).
        ground_truth: Normalized ``(class, x, y, w, h)`` records, see :func:`flatten_ground_truth`.
        ignore_threshold: Width/height IoU above which an anchor is excluded from the no-object loss.

    Returns:
        A :class:`YoloScaleTargets` for this scale.
    """
    batch_size, num_anchors, grid_h, grid_w, num_outputs = decoded.shape
    num_classes = num_outputs - 5
    mask_shape = (batch_size, num_anchors, grid_h, grid_w)

    obj_mask = torch.zeros(mask_shape, dtype=torch.bool, device=decoded.device)
    noobj_mask = torch.ones(mask_shape, dtype=torch.bool, device=decoded.device)
    tx = decoded.new_zeros(mask_shape)
    ty = decoded.new_zeros(mask_shape)
    tw = decoded.new_zeros(mask_shape)
    th = decoded.new_zeros(mask_shape)
    tcls = decoded.new_zeros(mask_shape + (num_classes,))
    tbox = decoded.new_zeros(mask_shape + (4,))

    rows = flatten_ground_truth(ground_truth.to(device=decoded.device, dtype=decoded.dtype))
    if rows.shape[0] == 0:
        return YoloScaleTargets(obj_mask, noobj_mask, tx, ty, tw, th, tcls, tbox)

    b = rows[:, 0].long()
    labels = rows[:, 1].round().long()
    if bool((labels >= num_classes).any()):
        raise ValueError(f"Ground-truth class id out of range for {num_classes} classes")
    boxes = rows[:, 2:6]

    grid_scale = boxes.new_tensor([grid_w, grid_h])
    gxy = boxes[:, 0:2] * grid_scale
    gwh = boxes[:, 2:4] * grid_scale
    anchors_grid = anchors.to(device=decoded.device, dtype=decoded.dtype) * grid_scale

    ious = wh_iou(anchors_grid, gwh)  # (A, N)
    best_anchor = ious.argmax(dim=0)

    gi = torch.floor(gxy[:, 0] + 0.5).long().clamp(0, grid_w - 1)
    gj = torch.floor(gxy[:, 1] + 0.5).long().clamp(0, grid_h - 1)

    obj_mask[b, best_anchor, gj, gi] = True
    noobj_mask[b, best_anchor, gj, gi] = False

    ignored_anchor, ignored_box = torch.nonzero(ious > ignore_threshold, as_tuple=True)
    noobj_mask[b[ignored_box], ignored_anchor, gj[ignored_box], gi[ignored_box]] = False

    tx[b, best_anchor, gj, gi] = gxy[:, 0] - torch.floor(gxy[:, 0])
    ty[b, best_anchor, gj, gi] = gxy[:, 1] - torch.floor(gxy[:, 1])
    tw[b, best_anchor, gj, gi] = boxes[:, 2]
    th[b, best_anchor, gj, gi] = boxes[:, 3]
    tcls[b, best_anchor, gj, gi, labels] = 1.0
    tbox[b, best_anchor, gj, gi] = boxes

    LOGGER.debug("Assigned %d ground-truth boxes on a %dx%d grid", rows.shape[0], grid_h, grid_w)
    return YoloScaleTargets(obj_mask, noobj_mask, tx, ty, tw, th, tcls, tbox)


__all__ = ["YoloScaleTargets", "build_targets", "flatten_ground_truth"]
