'''
 # @ Copyright: @copyright (c) 2025 Gahan AI Private Limited
 # @ Author: Pallab Maji
 # @ Create Time: 2025-10-30 17:25:00
 # @ Modified time: 2025-11-05 11:00:00
 # @ Description: Command-line entry point for configuration-driven YOLOv3 inference.
'''
import argparse
import logging
from pathlib import Path
from typing import Optional

import cv2

from models import create_model
from utils.imaging import draw_detections, image_to_tensor, load_image
from utils.utils import ensure_dir, load_yaml_config, write_json

LOGGER = logging.getLogger("yolov3.main")


def _setup_logging(log_level: str) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="YOLOv3 inference entry point",
        epilog="""
Examples:
  python main.py --image test.jpg                          # Detect objects with config.yaml
  python main.py --config my_config.yaml --image test.jpg  # Use a custom config
  python main.py --image test.jpg --output output.png      # Save an annotated copy
  python main.py --image test.jpg --json detections.json   # Dump detections as JSON
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to the YAML configuration file",
    )
    parser.add_argument(
        "--image",
        type=str,
        required=True,
        help="Image to run detection on",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Optional path for an annotated copy of the image",
    )
    parser.add_argument(
        "--json",
        type=str,
        default=None,
        help="Optional path for a JSON dump of the detections",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> None:
    args = parse_args(argv)
    _setup_logging(args.log_level)

    config_path = Path(args.config)
    LOGGER.info("Loading configuration from %s", config_path)
    config = load_yaml_config(config_path)
    bundle = create_model(config)

    image = load_image(args.image)
    height, width = image.shape[:2]
    input_size = tuple(bundle.metadata["input_size"])
    tensor = image_to_tensor(image, input_size)

    # rectangles come back in original image pixels unless the config fixes a size
    if bundle.predictor.rescale_size is None:
        bundle.predictor.rescale_size = (float(width), float(height))
    detections = bundle.predictor(tensor)[0]

    if not detections:
        LOGGER.info("No objects detected in %s", args.image)
    for index, detection in enumerate(detections, start=1):
        x, y, w, h = detection.rectangle
        LOGGER.info(
            "%d. %s | probability=%.3f | box=(%.1f, %.1f, %.1f, %.1f)",
            index,
            detection.class_label,
            detection.probability,
            x,
            y,
            w,
            h,
        )

    if args.json:
        write_json(args.json, [detection.to_dict() for detection in detections])
        LOGGER.info("Detections saved to %s", args.json)
    if args.output:
        output_path = Path(args.output)
        ensure_dir(output_path.parent)
        cv2.imwrite(str(output_path), draw_detections(image, detections))
        LOGGER.info("Annotated image saved to %s", output_path)


if __name__ == "__main__":
    main()
