'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-04 14:40:00
 #  Modified time: 2025-11-04 14:40:00
 #  Description: Inference post-processing for the YOLOv3 detector.
 #  Description (Legacy): Filters decoded predictions by objectness, drops
 #       out-of-range boxes and applies per-class non-maximum suppression.
'''

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import torch
from torch import nn

from .geometry import scalar_bbox_iou
from .yolov3 import DetectionScaleOutput

LOGGER = logging.getLogger("yolov3.postprocess")


@dataclass(frozen=True)
class Detection:
    """Final detection with a top-left based ``(x, y, w, h)`` rectangle."""

    class_label: str
    class_id: int
    probability: float
    rectangle: Tuple[float, float, float, float]

    def center_box(self) -> Tuple[float, float, float, float]:
        x, y, w, h = self.rectangle
        return (x + w / 2, y + h / 2, w, h)

    def iou(self, other: "Detection") -> float:
        return scalar_bbox_iou(self.center_box(), other.center_box())

    def to_dict(self) -> Dict[str, object]:
        return {
            "class_label": self.class_label,
            "class_id": self.class_id,
            "probability": self.probability,
            "rectangle": list(self.rectangle),
        }


def _in_unit_range(values: Sequence[float]) -> bool:
    return all(0.0 <= value <= 1.0 for value in values)


def collect_detections(
    decoded_outputs: Sequence[torch.Tensor],
    class_names: Sequence[str],
    threshold: float = 0.2,
    rescale_size: Optional[Tuple[float, float]] = None,
) -> List[List[Detection]]:
    """Flatten decoded heads into per-image candidate detections.

    Args:
        decoded_outputs: Decoded tensors of shape (B, A, H, W, 5 + C), one per scale.
        class_names: Label for every class index.
        threshold: Objectness above which a cell/anchor becomes a candidate.
        rescale_size: Optional ``(width, height)`` multiplied into the rectangles.

    Returns:
        One list of detections per image, before NMS.
    """
    if not decoded_outputs:
        return []
    batch_size = decoded_outputs[0].shape[0]
    results: List[List[Detection]] = [[] for _ in range(batch_size)]
    scale_w, scale_h = rescale_size if rescale_size else (1.0, 1.0)

    for decoded in decoded_outputs:
        num_classes = decoded.shape[-1] - 5
        if num_classes > len(class_names):
            raise ValueError(f"{num_classes} classes predicted but only {len(class_names)} class names given")
        flat = decoded.detach().reshape(batch_size, -1, decoded.shape[-1]).cpu()
        for batch_index in range(batch_size):
            rows = flat[batch_index]
            candidates = rows[rows[:, 4] > threshold]
            if candidates.shape[0] == 0:
                continue
            class_ids = candidates[:, 5:].argmax(dim=1)
            for row, class_id in zip(candidates.tolist(), class_ids.tolist()):
                cx, cy, w, h, probability = row[:5]
                rectangle = (cx - w / 2, cy - h / 2, w, h)
                if not _in_unit_range(rectangle):
                    continue
                x, y, w, h = rectangle
                results[batch_index].append(
                    Detection(
                        class_label=str(class_names[class_id]),
                        class_id=int(class_id),
                        probability=float(probability),
                        rectangle=(x * scale_w, y * scale_h, w * scale_w, h * scale_h),
                    )
                )
    return results


def nms(detections: Sequence[Detection], iou_threshold: float = 0.2) -> List[Detection]:
    """Greedy per-class non-maximum suppression.

    Repeatedly keeps the most probable remaining detection and drops every other
    detection of the same class whose IoU with it is at least ``iou_threshold``.
    """
    remaining = list(detections)
    kept: List[Detection] = []
    while remaining:
        best = max(remaining, key=lambda detection: detection.probability)
        kept.append(best)
        remaining = [
            detection
            for detection in remaining
            if detection is not best
            and not (detection.class_label == best.class_label and detection.iou(best) >= iou_threshold)
        ]
    return kept


class YoloPredictor:
    """Runs the detector and post-processing on a batch of images."""

    def __init__(
        self,
        model: nn.Module,
        class_names: Sequence[str],
        *,
        threshold: float = 0.2,
        iou_threshold: float = 0.2,
        rescale_size: Optional[Tuple[float, float]] = None,
    ) -> None:
        if not class_names:
            raise ValueError("class_names must not be empty")
        self.model = model
        self.class_names = list(class_names)
        self.threshold = float(threshold)
        self.iou_threshold = float(iou_threshold)
        self.rescale_size = rescale_size

    def __call__(self, images: torch.Tensor) -> List[List[Detection]]:
        if images.dim() == 3:
            images = images.unsqueeze(0)
        was_training = self.model.training
        self.model.eval()
        try:
            with torch.inference_mode():
                outputs: List[DetectionScaleOutput] = self.model(images)
                candidates = collect_detections(
                    [output.decoded for output in outputs],
                    self.class_names,
                    threshold=self.threshold,
                    rescale_size=self.rescale_size,
                )
        finally:
            self.model.train(was_training)

        results = [nms(image_detections, self.iou_threshold) for image_detections in candidates]
        LOGGER.debug(
            "Kept %d of %d candidate detections",
            sum(len(result) for result in results),
            sum(len(candidate) for candidate in candidates),
        )
        return results


__all__ = ["Detection", "YoloPredictor", "collect_detections", "nms"]
