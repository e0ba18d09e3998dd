"""
Class label table for COCO-trained single-stage detectors.

Index in the list is the class id emitted by the model.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

import yaml


COCO_CLASSES: List[str] = [
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck",
    "boat", "traffic light", "fire hydrant", "stop sign", "parking meter", "bench",
    "bird", "cat", "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra",
    "giraffe", "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee",
    "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove",
    "skateboard", "surfboard", "tennis racket", "bottle", "wine glass", "cup",
    "fork", "knife", "spoon", "bowl", "banana", "apple", "sandwich", "orange",
    "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch",
    "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
    "refrigerator", "book", "clock", "vase", "scissors", "teddy bear", "hair drier",
    "toothbrush",
]


def load_labels(labels_path: Optional[str] = None) -> Sequence[str]:
    """
    Load the label table.

    Args:
        labels_path: Optional YAML file holding a flat list of class names.
            When omitted (or missing on disk) the COCO table is returned.

    Raises:
        ValueError: If the file does not contain a non-empty list of strings.
    """
    if not labels_path:
        return tuple(COCO_CLASSES)

    if not os.path.exists(labels_path):
        logging.warning(f"Labels file not found: {labels_path}, using COCO labels")
        return tuple(COCO_CLASSES)

    with open(labels_path, "r") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, list) or not data or not all(isinstance(x, str) for x in data):
        raise ValueError(f"Labels file must contain a list of class names: {labels_path}")

    logging.info(f"Loaded {len(data)} labels from {labels_path}")
    return tuple(data)
