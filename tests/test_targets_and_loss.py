'''
 #  Copyright (c) 2025 Gahan AI Private Limited
 #  Author: Pallab Maji
 #  Create Time: 2025-11-05 14:10:00
 #  Modified time: 2025-11-05 14:10:00
 #  Description: Tests for anchor assignment and the multi-scale YOLOv3 loss.
 #  Description (Legacy): Ensures targets land on the best anchor/cell, ignored
 #       anchors leave the no-object mask, and every loss variant backpropagates.
'''

from __future__ import annotations

from typing import List

import pytest
import torch

from models.backbones import Darknet53Backbone
from models.decode import decode_output
from models.geometry import bbox_iou
from models.losses import LossType, YoloV3Loss, build_loss
from models.targets import build_targets, flatten_ground_truth
from models.yolov3 import DetectionScaleOutput, YoloV3


def _synthetic_outputs(num_classes: int = 2, seed: int = 0) -> List[DetectionScaleOutput]:
    generator = torch.Generator().manual_seed(seed)
    anchor_groups = [
        torch.tensor([[0.6, 0.5], [0.7, 0.8], [0.9, 0.9]]),
        torch.tensor([[0.2, 0.3], [0.3, 0.2], [0.3, 0.5]]),
        torch.tensor([[0.05, 0.06], [0.08, 0.14], [0.16, 0.11]]),
    ]
    outputs = []
    for grid, stride, anchors in zip((2, 4, 8), (32, 16, 8), anchor_groups):
        raw = torch.randn(2, 3 * (5 + num_classes), grid, grid, generator=generator) * 0.5
        outputs.append(
            DetectionScaleOutput(
                raw=raw,
                decoded=decode_output(raw, anchors, num_classes),
                stride=stride,
                anchors=anchors,
                grid_size=(grid, grid),
            )
        )
    return outputs


def _ground_truth() -> torch.Tensor:
    return torch.tensor(
        [
            [[0.0, 0.30, 0.60, 0.25, 0.25], [1.0, 0.70, 0.20, 0.10, 0.15]],
            [[1.0, 0.50, 0.50, 0.40, 0.30], [-1.0, 0.0, 0.0, 0.0, 0.0]],
        ]
    )


def test_flatten_ground_truth_drops_padding_rows() -> None:
    rows = flatten_ground_truth(_ground_truth())
    assert rows.shape == (3, 6)
    assert rows[:, 0].tolist() == [0.0, 0.0, 1.0]


def test_single_record_per_image_is_accepted() -> None:
    rows = flatten_ground_truth(torch.tensor([[0.0, 0.5, 0.5, 0.2, 0.2], [1.0, 0.4, 0.4, 0.1, 0.1]]))
    assert rows.shape == (2, 6)


def test_build_targets_assigns_best_anchor_and_rounded_cell() -> None:
    decoded = torch.zeros(1, 3, 4, 4, 7)
    anchors = torch.tensor([[0.25, 0.25], [0.5, 0.5], [1.0, 1.0]])
    ground_truth = torch.tensor([[1.0, 0.3, 0.6, 0.25, 0.25]])

    targets = build_targets(decoded, anchors, ground_truth, ignore_threshold=0.5)

    # scaled center (1.2, 2.4) -> column 1, row 2; anchor 0 matches the 1x1 cell box
    assert targets.num_assigned == 1
    assert bool(targets.obj_mask[0, 0, 2, 1])
    assert not bool(targets.noobj_mask[0, 0, 2, 1])
    assert int(targets.noobj_mask.sum()) == 3 * 4 * 4 - 1
    assert targets.tx[0, 0, 2, 1].item() == pytest.approx(0.2, abs=1e-5)
    assert targets.ty[0, 0, 2, 1].item() == pytest.approx(0.4, abs=1e-5)
    assert targets.tw[0, 0, 2, 1].item() == pytest.approx(0.25)
    assert targets.th[0, 0, 2, 1].item() == pytest.approx(0.25)
    assert targets.tcls[0, 0, 2, 1].tolist() == [0.0, 1.0]
    assert torch.allclose(targets.tbox[0, 0, 2, 1], ground_truth[0, 1:])


def test_anchors_above_ignore_threshold_leave_noobj_mask() -> None:
    decoded = torch.zeros(1, 3, 4, 4, 6)
    anchors = torch.tensor([[0.25, 0.25], [0.3, 0.3], [1.0, 1.0]])
    ground_truth = torch.tensor([[0.0, 0.5, 0.5, 0.275, 0.275]])

    targets = build_targets(decoded, anchors, ground_truth, ignore_threshold=0.5)

    # anchor 1 is the best match, anchor 0 is ambiguous, anchor 2 stays a negative
    assert bool(targets.obj_mask[0, 1, 2, 2])
    assert not bool(targets.obj_mask[0, 0, 2, 2])
    assert not bool(targets.noobj_mask[0, 0, 2, 2])
    assert not bool(targets.noobj_mask[0, 1, 2, 2])
    assert bool(targets.noobj_mask[0, 2, 2, 2])


def test_anchor_ties_pick_the_first_anchor() -> None:
    decoded = torch.zeros(1, 3, 2, 2, 6)
    anchors = torch.tensor([[0.5, 0.5], [0.5, 0.5], [1.0, 1.0]])
    targets = build_targets(decoded, anchors, torch.tensor([[0.0, 0.25, 0.25, 0.5, 0.5]]))
    assert bool(targets.obj_mask[0, 0].any())
    assert not bool(targets.obj_mask[0, 1].any())


def test_center_on_the_border_is_clamped_into_the_grid() -> None:
    decoded = torch.zeros(1, 3, 4, 4, 6)
    anchors = torch.tensor([[0.25, 0.25], [0.5, 0.5], [1.0, 1.0]])
    targets = build_targets(decoded, anchors, torch.tensor([[0.0, 0.95, 0.99, 0.1, 0.1]]))
    assert bool(targets.obj_mask[0, :, 3, 3].any())


def test_out_of_range_class_id_raises() -> None:
    decoded = torch.zeros(1, 3, 2, 2, 6)
    with pytest.raises(ValueError, match="class id"):
        build_targets(decoded, torch.ones(3, 2), torch.tensor([[3.0, 0.5, 0.5, 0.2, 0.2]]))


@pytest.mark.parametrize("loss_type", list(LossType))
def test_every_loss_variant_backpropagates_through_the_model(loss_type: LossType) -> None:
    torch.manual_seed(0)
    backbone = Darknet53Backbone(base_channels=4, depths=(1, 1, 1, 1, 1))
    model = YoloV3(num_classes=2, input_size=(64, 64), backbone=backbone)
    loss_fn = YoloV3Loss(loss_type=loss_type)

    outputs = model(torch.rand(2, 3, 64, 64))
    loss = loss_fn(outputs, _ground_truth())

    assert loss.dim() == 0
    assert torch.isfinite(loss).item()
    assert loss.item() >= 0.0
    loss.backward()
    grad = model.head_fine.output.block[0].weight.grad
    assert grad is not None
    assert torch.isfinite(grad).all()


def _single_scale(decoded: torch.Tensor, anchors: torch.Tensor) -> List[DetectionScaleOutput]:
    batch_size, num_anchors, grid_h, grid_w, num_outputs = decoded.shape
    raw = decoded.new_zeros(batch_size, num_anchors * num_outputs, grid_h, grid_w)
    return [DetectionScaleOutput(raw=raw, decoded=decoded, stride=16, anchors=anchors, grid_size=(grid_h, grid_w))]


def test_standard_coordinate_loss_is_zero_for_an_exact_prediction() -> None:
    anchors = torch.tensor([[0.25, 0.25], [0.5, 0.5], [1.0, 1.0]])
    ground_truth = torch.tensor([[1.0, 0.3, 0.6, 0.25, 0.25]])
    decoded = torch.full((1, 3, 4, 4, 7), 0.5)
    # column 1 + offset 0.2, row 2 + offset 0.4 on a 4x4 grid
    decoded[0, 0, 2, 1, 0:4] = torch.tensor([(1 + 0.2) / 4, (2 + 0.4) / 4, 0.25, 0.25])

    components = YoloV3Loss(loss_type="standard").components(_single_scale(decoded, anchors), ground_truth)
    assert components["coord"].item() == pytest.approx(0.0, abs=1e-10)

    # a shifted width is measured on square roots
    decoded[0, 0, 2, 1, 2] = 0.36
    components = YoloV3Loss(loss_type="standard").components(_single_scale(decoded, anchors), ground_truth)
    assert components["coord"].item() == pytest.approx((0.6 - 0.5) ** 2, rel=1e-4)


@pytest.mark.parametrize("loss_type", [LossType.IOU, LossType.GIOU, LossType.DIOU, LossType.CIOU])
def test_iou_coordinate_loss_matches_weighted_overlap(loss_type: LossType) -> None:
    anchors = torch.tensor([[0.25, 0.25], [0.5, 0.5], [1.0, 1.0]])
    ground_truth = torch.tensor([[0.0, 0.3, 0.6, 0.25, 0.25]])
    decoded = torch.full((1, 3, 4, 4, 6), 0.5)
    prediction = torch.tensor([0.32, 0.57, 0.3, 0.2])
    decoded[0, 0, 2, 1, 0:4] = prediction

    loss_fn = YoloV3Loss(loss_type=loss_type, lambda_coord=5.0)
    components = loss_fn.components(_single_scale(decoded, anchors), ground_truth)

    iou = bbox_iou(prediction.unsqueeze(0), ground_truth[:, 1:], loss_type.iou_type).item()
    expected = 5.0 * (1.0 - iou) * (2.0 - 0.25 * 0.25)
    assert components["coord"].item() == pytest.approx(expected, rel=1e-5)


def test_components_sum_to_total() -> None:
    components = YoloV3Loss(loss_type="giou").components(_synthetic_outputs(), _ground_truth())
    assert set(components) == {"coord", "obj", "noobj", "cls", "total"}
    expected = components["coord"] + components["obj"] + components["noobj"] + components["cls"]
    assert torch.isclose(components["total"], expected)


def test_no_object_term_scales_with_lambda() -> None:
    outputs = _synthetic_outputs()
    half = YoloV3Loss(lambda_noobj=0.5).components(outputs, _ground_truth())
    full = YoloV3Loss(lambda_noobj=1.0).components(outputs, _ground_truth())
    assert torch.isclose(full["noobj"], 2.0 * half["noobj"])
    assert torch.isclose(full["obj"], half["obj"])


def test_focal_modulation_shrinks_objectness_terms() -> None:
    outputs = _synthetic_outputs()
    plain = YoloV3Loss().components(outputs, _ground_truth())
    focal = YoloV3Loss(focal_gamma=2.0, focal_alpha=0.5).components(outputs, _ground_truth())
    assert focal["noobj"] < plain["noobj"]
    assert focal["obj"] < plain["obj"]
    assert torch.isclose(focal["cls"], plain["cls"])


def test_images_without_objects_only_pay_the_no_object_term() -> None:
    ground_truth = torch.full((2, 1, 5), -1.0)
    components = YoloV3Loss().components(_synthetic_outputs(), ground_truth)
    assert components["coord"].item() == 0.0
    assert components["obj"].item() == 0.0
    assert components["cls"].item() == 0.0
    assert components["noobj"].item() > 0.0


def test_unknown_loss_type_raises() -> None:
    with pytest.raises(ValueError, match="Invalid loss type"):
        YoloV3Loss(loss_type="focal")


def test_build_loss_merges_defaults() -> None:
    loss_fn = build_loss({"type": "CIOU", "lambda_coord": 2.0})
    assert loss_fn.loss_type is LossType.CIOU
    assert loss_fn.lambda_coord == 2.0
    assert loss_fn.lambda_noobj == 0.5
    assert loss_fn.ignore_threshold == 0.5
