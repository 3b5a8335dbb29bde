"""
RetinaFace post-processing CLI entrypoint.

Responsibility:
    Parse command-line arguments, build the configuration, and run one of
    two modes:

    --image   Run the ONNX model on an image and parse its outputs.
    --raw     Parse a dump of raw network outputs (.npz with 'loc',
              'landms' and 'conf' arrays) without any model.

Usage:
    python main.py --image face.jpg --formats json,image
    python main.py --raw outputs.npz --input-size 640 640 --formats csv
    python main.py --config my_config.yaml --image face.jpg

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

import cv2
import numpy as np

from retinaface_post.config import AppConfig, load_config, validate_config
from retinaface_post.detector import Detector
from retinaface_post.errors import RetinaFaceParseError
from retinaface_post.parser import NetworkInfo, OutputLayer, RetinaFaceParser
from retinaface_post.serializer import save_csv, save_json
from retinaface_post.visualizer import draw_detections


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="RetinaFace output decoding and NMS",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=str, help="Image to run the ONNX model on.")
    source.add_argument(
        "--raw",
        type=str,
        help="Raw output dump (.npz) with 'loc', 'landms' and 'conf' arrays.",
    )

    parser.add_argument("--config", type=str, help="Path to YAML configuration file.")
    parser.add_argument(
        "--input-size",
        type=int,
        nargs=2,
        metavar=("WIDTH", "HEIGHT"),
        help="Network input size the raw dump was produced at. Overrides config.",
    )
    parser.add_argument("--confidence", type=float, help="Face probability threshold (0.0 - 1.0).")
    parser.add_argument("--nms", type=float, help="NMS IoU threshold (0.0 - 1.0).")
    parser.add_argument("--min-size", type=float, help="Minimum box side in pixels.")
    parser.add_argument("--backend", type=str, choices=["cpu", "cuda"], help="Compute backend.")
    parser.add_argument(
        "--formats",
        type=str,
        help="Comma-separated outputs: json, csv, image. Overrides config.",
    )
    parser.add_argument("--output-path", type=str, help="Directory for output artifacts.")

    return parser.parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Layer CLI arguments on top of the loaded configuration."""
    detection = config.detection
    if args.confidence is not None:
        detection = replace(detection, confidence_threshold=args.confidence)
    if args.nms is not None:
        detection = replace(detection, nms_threshold=args.nms)
    if args.min_size is not None:
        detection = replace(detection, min_box_size=args.min_size)

    model = config.model
    if args.backend is not None:
        model = replace(model, backend=args.backend)
    if args.input_size is not None:
        model = replace(model, input_size=tuple(args.input_size))

    output = config.output
    if args.formats is not None:
        output = replace(output, formats=args.formats.lower())
    if args.output_path is not None:
        output = replace(output, save_path=args.output_path)

    merged = replace(config, model=model, detection=detection, output=output)
    validate_config(merged)
    return merged


def run_raw(config: AppConfig, raw_path: str):
    """Parse a raw output dump. Returns one face list per batch item."""
    with np.load(raw_path) as dump:
        missing = {"loc", "landms", "conf"} - set(dump.files)
        if missing:
            raise ValueError(f"Raw dump {raw_path} is missing arrays: {sorted(missing)}")
        arrays = {name: dump[name] for name in ("loc", "landms", "conf")}

    # (B, N, C) dumps carry a batch axis; (N, C) dumps are a single item
    batched = arrays["loc"].ndim > 2
    batch_size = arrays["loc"].shape[0] if batched else 1
    layers = [OutputLayer.from_array(name, arr, batched=batched) for name, arr in arrays.items()]

    width, height = config.model.input_size
    parser = RetinaFaceParser(config.priors, config.detection)
    return parser.parse(layers, NetworkInfo(width=width, height=height), batch_size=batch_size)


def write_outputs(config: AppConfig, stem: str, faces_by_frame, frame=None) -> None:
    formats = set(f.strip() for f in config.output.formats.split(",") if f.strip())
    out_dir = Path(config.output.save_path)

    if "json" in formats:
        save_json(faces_by_frame, str(out_dir / f"{stem}.json"))
    if "csv" in formats:
        save_csv(faces_by_frame, str(out_dir / f"{stem}.csv"))
    if "image" in formats:
        if frame is None:
            logger.warning("Output format 'image' needs --image; skipping.")
        else:
            out_dir.mkdir(parents=True, exist_ok=True)
            annotated = draw_detections(frame, faces_by_frame[0], config.visualization)
            target = out_dir / f"{stem}_annotated.jpg"
            cv2.imwrite(str(target), annotated)
            logger.info("Annotated image saved: %s", target)


def main(argv=None) -> int:
    """Main execution."""
    args = parse_args(argv)

    try:
        config = apply_cli_overrides(load_config(args.config), args)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        return 1

    try:
        if args.raw is not None:
            results = run_raw(config, args.raw)
            faces_by_frame = dict(enumerate(results))
            write_outputs(config, Path(args.raw).stem, faces_by_frame)
        else:
            frame = cv2.imread(args.image)
            if frame is None:
                logger.error("Could not read image: %s", args.image)
                return 1
            detector = Detector(config)
            faces_by_frame = {0: detector.detect(frame)}
            write_outputs(config, Path(args.image).stem, faces_by_frame, frame)
    except RetinaFaceParseError as e:
        logger.error("Could not parse network outputs: %s", e)
        return 1
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error("Run failed: %s", e)
        return 1

    total = sum(len(faces) for faces in faces_by_frame.values())
    logger.info("Done. %d face(s) across %d image(s).", total, len(faces_by_frame))
    return 0


if __name__ == "__main__":
    sys.exit(main())
