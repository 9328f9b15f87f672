'''
 # @ Copyright: @copyright (c) 2025 Gahan AI Private Limited
 # @ Author: Pallab Maji
 # @ Create Time: 2025-11-04 16:30:00
 # @ Modified time: 2025-11-04 16:30:00
 # @ Description: Public interface for the YOLOv3 model, loss and inference utilities.
 # @ Description (Legacy): This module exposes helper functions to create and configure
 #      YOLOv3 model instances along with the associated loss and post-processing.
'''

from .factory import ModelBundle, ModelConfig, create_model
from .geometry import IoUType, bbox_iou, scalar_bbox_iou, wh_iou
from .losses import LossType, YoloV3Loss
from .postprocess import Detection, YoloPredictor, nms
from .targets import YoloScaleTargets, build_targets
from .yolov3 import DetectionScaleOutput, YoloV3

__all__ = [
    "ModelBundle",
    "ModelConfig",
    "create_model",
    "Detection",
    "DetectionScaleOutput",
    "IoUType",
    "LossType",
    "YoloPredictor",
    "YoloScaleTargets",
    "YoloV3",
    "YoloV3Loss",
    "bbox_iou",
    "build_targets",
    "nms",
    "scalar_bbox_iou",
    "wh_iou",
]
