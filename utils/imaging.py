'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-05 09:40:00
 #  Modified time: 2025-11-05 09:40:00
 #  Description: Image loading and detection drawing helpers for the inference entry point.
'''

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence, Tuple

import cv2
import numpy as np
import torch

from models.postprocess import Detection

LOGGER = logging.getLogger("yolov3.utils")


def load_image(path: str | Path) -> np.ndarray:
    """Read an image from disk as an RGB uint8 array."""
    image_path = Path(path)
    if not image_path.is_file():
        raise FileNotFoundError(f"Image not found: {image_path}")
    image = cv2.imread(str(image_path))
    if image is None:
        raise ValueError(f"Failed to read image: {image_path}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def image_to_tensor(image: np.ndarray, size: Tuple[int, int]) -> torch.Tensor:
    """Resize an RGB array to ``(width, height)`` and return a (3, H, W) float tensor in [0, 1]."""
    resized = cv2.resize(image, (int(size[0]), int(size[1])), interpolation=cv2.INTER_LINEAR)
    return torch.from_numpy(np.ascontiguousarray(resized)).permute(2, 0, 1).float() / 255.0


def draw_detections(image: np.ndarray, detections: Sequence[Detection]) -> np.ndarray:
    """Draw detections whose rectangles are expressed in pixels of ``image``; returns a BGR copy."""
    canvas = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    height, width = canvas.shape[:2]
    for detection in detections:
        x, y, w, h = detection.rectangle
        x1, y1 = max(0, int(x)), max(0, int(y))
        x2, y2 = min(width - 1, int(x + w)), min(height - 1, int(y + h))
        cv2.rectangle(canvas, (x1, y1), (x2, y2), (0, 0, 255), 2)
        cv2.putText(
            canvas,
            f"{detection.class_label} ({detection.probability:.2f})",
            (x1, max(y1 - 10, 10)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            (0, 0, 255),
            1,
        )
    LOGGER.debug("Drew %d detections", len(detections))
    return canvas
