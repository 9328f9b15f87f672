'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-04 10:15:00
 #  Modified time: 2025-11-04 10:15:00
 #  Description: Loss builders for the YOLOv3 detection model.
 #  Description (Legacy): Implements the multi-scale YOLOv3 loss with best-anchor
 #       assignment, ignore-threshold masking and IoU-family localization terms.
'''

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Union

import torch
import torch.nn.functional as F
from torch import nn

from .decode import make_grid
from .geometry import IoUType, bbox_iou
from .targets import YoloScaleTargets, build_targets
from .yolov3 import DetectionScaleOutput

LOGGER = logging.getLogger("yolov3.losses")

_PROBABILITY_EPS = 1e-7

DEFAULT_LOSS_CONFIG: Dict[str, Any] = {
    "type": "standard",
    "ignore_threshold": 0.5,
    "lambda_coord": 5.0,
    "lambda_noobj": 0.5,
    "focal_gamma": 0.0,
    "focal_alpha": 0.5,
}


class LossType(str, Enum):
    """Localization loss formulation."""

    STANDARD = "standard"
    IOU = "iou"
    GIOU = "giou"
    DIOU = "diou"
    CIOU = "ciou"

    @classmethod
    def parse(cls, value: Union["LossType", str]) -> "LossType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Invalid loss type '{value}'") from None

    @property
    def iou_type(self) -> Optional[IoUType]:
        if self is LossType.STANDARD:
            return None
        return IoUType(self.value)


class YoloV3Loss(nn.Module):
    """Sum over scales of coordinate, objectness, no-object and classification terms."""

    def __init__(
        self,
        *,
        ignore_threshold: float = 0.5,
        lambda_coord: float = 5.0,
        lambda_noobj: float = 0.5,
        loss_type: Union[LossType, str] = LossType.STANDARD,
        focal_gamma: float = 0.0,
        focal_alpha: float = 0.5,
    ) -> None:
        super().__init__()
        if not 0.0 <= focal_alpha <= 1.0:
            raise ValueError("focal_alpha must lie in [0, 1]")
        if focal_gamma < 0.0:
            raise ValueError("focal_gamma must be non-negative")
        self.ignore_threshold = float(ignore_threshold)
        self.lambda_coord = float(lambda_coord)
        self.lambda_noobj = float(lambda_noobj)
        self.loss_type = LossType.parse(loss_type)
        self.focal_gamma = float(focal_gamma)
        self.focal_alpha = float(focal_alpha)

    def forward(self, outputs: Sequence[DetectionScaleOutput], ground_truth: torch.Tensor) -> torch.Tensor:  # noqa: D401
        return self.components(outputs, ground_truth)["total"]

    def components(
        self,
        outputs: Sequence[DetectionScaleOutput],
        ground_truth: torch.Tensor,
    ) -> Dict[str, torch.Tensor]:
        """Per-term losses summed over all scales, plus their ``total``."""
        if not outputs:
            raise ValueError("At least one detection scale is required for YOLO loss")

        zero = outputs[0].decoded.new_zeros(())
        totals = {"coord": zero, "obj": zero, "noobj": zero, "cls": zero}
        for scale_index, scale_output in enumerate(outputs):
            targets = build_targets(
                scale_output.decoded,
                scale_output.anchors,
                ground_truth,
                ignore_threshold=self.ignore_threshold,
            )
            terms = self._scale_terms(scale_output.decoded, targets)
            if LOGGER.isEnabledFor(logging.DEBUG):
                LOGGER.debug(
                    "Scale %d | assigned=%d coord=%.4f obj=%.4f noobj=%.4f cls=%.4f",
                    scale_index,
                    targets.num_assigned,
                    terms["coord"].item(),
                    terms["obj"].item(),
                    terms["noobj"].item(),
                    terms["cls"].item(),
                )
            totals = {name: totals[name] + terms[name] for name in totals}

        totals["total"] = totals["coord"] + totals["obj"] + totals["noobj"] + totals["cls"]
        return totals

    def _scale_terms(self, decoded: torch.Tensor, targets: YoloScaleTargets) -> Dict[str, torch.Tensor]:
        obj_mask = targets.obj_mask
        noobj_mask = targets.noobj_mask
        objectness = decoded[..., 4]
        zero = decoded.new_zeros(())

        noobj_loss = zero
        if noobj_mask.any():
            noobj_loss = self.lambda_noobj * self._objectness_bce(
                objectness[noobj_mask], torch.zeros_like(objectness[noobj_mask])
            )

        if not obj_mask.any():
            return {"coord": zero, "obj": zero, "noobj": noobj_loss, "cls": zero}

        coord_loss = self._coordinate_loss(decoded, targets)
        obj_loss = self._objectness_bce(objectness[obj_mask], torch.ones_like(objectness[obj_mask]))
        cls_loss = _bce(decoded[..., 5:][obj_mask], targets.tcls[obj_mask]).mean()
        return {"coord": coord_loss, "obj": obj_loss, "noobj": noobj_loss, "cls": cls_loss}

    def _coordinate_loss(self, decoded: torch.Tensor, targets: YoloScaleTargets) -> torch.Tensor:
        mask = targets.obj_mask
        iou_type = self.loss_type.iou_type
        if iou_type is not None:
            target_area = targets.tw[mask] * targets.th[mask]
            iou = bbox_iou(decoded[..., 0:4][mask], targets.tbox[mask], iou_type)
            return self.lambda_coord * ((1.0 - iou) * (2.0 - target_area)).mean()

        _, _, grid_h, grid_w, _ = decoded.shape
        grid_x, grid_y = make_grid(grid_h, grid_w, decoded)
        # offsets inside the cell, i.e. sigmoid of the raw activations
        offset_x = decoded[..., 0] * grid_w - grid_x
        offset_y = decoded[..., 1] * grid_h - grid_y
        return (
            F.mse_loss(offset_x[mask], targets.tx[mask])
            + F.mse_loss(offset_y[mask], targets.ty[mask])
            + F.mse_loss(decoded[..., 2][mask].sqrt(), targets.tw[mask].sqrt())
            + F.mse_loss(decoded[..., 3][mask].sqrt(), targets.th[mask].sqrt())
        )

    def _objectness_bce(self, probabilities: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
        loss = _bce(probabilities, target)
        if self.focal_gamma > 0.0:
            p_t = probabilities * target + (1.0 - probabilities) * (1.0 - target)
            alpha_t = self.focal_alpha * target + (1.0 - self.focal_alpha) * (1.0 - target)
            loss = alpha_t * (1.0 - p_t).pow(self.focal_gamma) * loss
        return loss.mean()


def _bce(probabilities: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    clamped = probabilities.clamp(min=_PROBABILITY_EPS, max=1.0 - _PROBABILITY_EPS)
    return F.binary_cross_entropy(clamped, target, reduction="none")


def build_loss(config: Optional[Dict[str, Any]] = None) -> YoloV3Loss:
    merged_config: Dict[str, Any] = {**DEFAULT_LOSS_CONFIG, **(config or {})}
    return YoloV3Loss(
        ignore_threshold=float(merged_config["ignore_threshold"]),
        lambda_coord=float(merged_config["lambda_coord"]),
        lambda_noobj=float(merged_config["lambda_noobj"]),
        loss_type=LossType.parse(merged_config["type"]),
        focal_gamma=float(merged_config["focal_gamma"]),
        focal_alpha=float(merged_config["focal_alpha"]),
    )


__all__ = ["DEFAULT_LOSS_CONFIG", "LossType", "YoloV3Loss", "build_loss"]
