"""
Serialization of face detections to JSON and CSV.

Non-goals:
    - No rendering or detection logic.
    - No streaming output; each call writes one complete file.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, List

from retinaface_post.detection import FaceObject

logger = logging.getLogger(__name__)

_LANDMARK_COLUMNS = [f"lm{i}" for i in range(10)]
CSV_FIELDS = ["frame_id", "left", "top", "width", "height", "confidence", "class_id"] + _LANDMARK_COLUMNS


def save_json(faces_by_frame: Dict[int, List[FaceObject]], output_path: str) -> None:
    """Write all detections to a JSON file.

    Output schema:
        {
            "frames": [
                {"frame_id": 0, "faces": [{"left": ..., "top": ..., ...}]}
            ],
            "total_frames": N,
            "total_faces": M
        }
    """
    _ensure_parent_dir(output_path)

    frames = []
    total = 0
    for frame_id in sorted(faces_by_frame):
        faces = faces_by_frame[frame_id]
        total += len(faces)
        frames.append({
            "frame_id": frame_id,
            "faces": [f.to_dict() for f in faces],
        })

    payload = {
        "frames": frames,
        "total_frames": len(frames),
        "total_faces": total,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info("JSON output saved: %s (%d frames, %d faces)", output_path, len(frames), total)


def save_csv(faces_by_frame: Dict[int, List[FaceObject]], output_path: str) -> None:
    """Write all detections to a CSV file, one row per face.

    Landmark columns are left empty for faces without landmarks.
    """
    _ensure_parent_dir(output_path)

    total = 0
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()

        for frame_id in sorted(faces_by_frame):
            for face in faces_by_frame[frame_id]:
                row = face.to_dict()
                landmarks = row.pop("landmarks", None) or []
                row.update(zip(_LANDMARK_COLUMNS, landmarks))
                writer.writerow({"frame_id": frame_id, **row})
                total += 1

    logger.info("CSV output saved: %s (%d rows)", output_path, total)


def _ensure_parent_dir(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
