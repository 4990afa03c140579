"""
SCRFD Face Detection CLI Entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, run the
    detector on one image, and report the results as JSON telemetry plus
    a console summary.

Usage:
    python main.py --image photo.jpg --model models/scrfd_500m_bnkps.onnx
    python main.py --image photo.jpg --confidence 0.6 --output result.json
    python main.py --image photo.jpg --preset aggressive --visualize out.jpg
    python main.py --image photo.jpg --config my_config.yaml
    python main.py --list-models
    python main.py --download-model scrfd_10g --image photo.jpg

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import logging
import sys
import time
from typing import Optional

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

import cv2

from scrfd_face.config import DETECTION_PRESETS, AppConfig, load_config, with_overrides
from scrfd_face.detector import Detector
from scrfd_face.model_downloader import MODEL_CATALOG, download_model, format_model_list
from scrfd_face.serializer import Telemetry, format_summary, save_image, save_json, to_json
from scrfd_face.visualizer import draw_detections


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="SCRFD Face Detection Inference Tool",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--image",
        type=str,
        help="Path to the input image file.",
    )
    parser.add_argument(
        "--model",
        type=str,
        help="Path to the SCRFD ONNX model file. Overrides config.",
    )
    parser.add_argument(
        "--download-model",
        type=str,
        choices=list(MODEL_CATALOG),
        help="Download a SCRFD model into models/ (skipped if present) and use it.",
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List the downloadable SCRFD models and exit.",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--confidence",
        type=float,
        help="Detection confidence threshold (0.0 - 1.0). Overrides config.",
    )
    parser.add_argument(
        "--nms",
        type=float,
        help="NMS IoU threshold (0.0 - 1.0, exclusive). Overrides config and preset.",
    )
    parser.add_argument(
        "--preset",
        type=str,
        choices=sorted(DETECTION_PRESETS),
        help="Detection threshold preset. Overrides config.",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Path to save detection results as JSON (defaults to console).",
    )
    parser.add_argument(
        "--visualize",
        type=str,
        help="Save the image with detections drawn (e.g. output.jpg).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging (per-level decode traces).",
    )

    return parser.parse_args(argv)


def _configure(args: argparse.Namespace, model_path: Optional[str] = None) -> AppConfig:
    """Load configuration and apply CLI overrides (CLI > ENV > YAML > Defaults).

    ``model_path`` (a freshly downloaded model) wins over ``--model``.
    """
    config = load_config(args.config)
    return with_overrides(
        config,
        model={"model_path": model_path or args.model},
        detection={
            "preset": args.preset,
            "confidence_threshold": args.confidence,
            "nms_threshold": args.nms,
        },
        output={"save_json": args.output, "visualize": args.visualize},
    )


def run(config: AppConfig, image_path: str) -> Telemetry:
    """Run detection on one image and return the filled-in telemetry.

    Never raises for detection failures; they are recorded in the
    telemetry instead.
    """
    telemetry = Telemetry(
        image_path=image_path,
        model_path=config.model.model_path,
        confidence_threshold=config.detection.confidence_threshold,
        nms_threshold=config.detection.nms_threshold,
    )
    start = time.perf_counter()

    try:
        logger.info("Starting SCRFD face detection...")
        logger.info("Image: %s", image_path)

        frame = cv2.imread(image_path)
        if frame is None:
            raise FileNotFoundError(f"Could not read image: {image_path}")

        detector = Detector(config)
        telemetry.model_path = detector.model.path or telemetry.model_path
        result = detector.detect(frame)
        telemetry.record_result(result)

        if config.output.visualize and result.detections:
            annotated = draw_detections(frame, result.detections, config.visualization)
            save_image(annotated, config.output.visualize)

    except (FileNotFoundError, ValueError, TypeError, OSError) as e:
        logger.error("Error during face detection: %s", e)
        telemetry.record_failure(e)
    except Exception as e:
        logger.exception("Unexpected error during face detection: %s", e)
        telemetry.record_failure(e)
    finally:
        telemetry.finish((time.perf_counter() - start) * 1000.0)

    return telemetry


def main(argv=None) -> int:
    """Main execution."""
    args = parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_models:
        print(format_model_list())
        return 0

    # 1. Fetch the model, if asked to
    model_path = None
    if args.download_model:
        try:
            model_path = download_model(args.download_model)
        except (ValueError, OSError) as e:
            logger.error("Error downloading model: %s", e)
            return 1
        print(f"Model ready at: {model_path}")
        if not args.image:
            return 0

    if not args.image:
        logger.error("Please specify an image file with --image")
        return 1

    # 2. Load Configuration
    try:
        config = _configure(args, model_path)
        logger.info("Configuration active for this run.")
    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    # 3. Detect
    telemetry = run(config, args.image)

    # 4. Report
    try:
        if config.output.save_json:
            save_json(telemetry, config.output.save_json)
        else:
            print("=== FACE DETECTION RESULTS ===")
            print(to_json(telemetry))
    except OSError as e:
        logger.error("Failed to write results: %s", e)
        return 1

    print()
    print(format_summary(telemetry))

    return 0 if telemetry.success else 1


if __name__ == "__main__":
    sys.exit(main())
