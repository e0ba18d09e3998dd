"""
Tests for the detection extractor.
"""

import numpy as np
import pytest

from inference.errors import DecodeError
from inference.extractor import extract_detections
from inference.labels import COCO_CLASSES
from inference.tensor import OutputTensor
from preprocess.letterbox import compute_letterbox

LABELS = ["cat", "dog", "bird"]


def anchor(cx, cy, w, h, obj, scores):
    return [cx, cy, w, h, obj] + list(scores)


def output(*anchors):
    return OutputTensor(np.array([anchors], dtype=np.float32))


def key(d):
    return (d.label, round(d.score, 6), round(d.xmin, 6), round(d.ymin, 6), round(d.xmax, 6), round(d.ymax, 6))


class TestExtractDetections:
    """Decoding anchors into normalized detections."""

    def test_single_centered_box(self):
        """640x640 source, box 100px wide centered at (320, 320)."""
        out = output(anchor(320, 320, 100, 100, 0.9, [0.1, 0.9]))
        info = compute_letterbox(640, 640, 640)

        dets = extract_detections(out, info, ["first", "second"])

        assert len(dets) == 1
        d = dets[0]
        assert d.label == "second"
        assert d.score == pytest.approx(0.81, abs=1e-6)
        assert d.xmin == pytest.approx(0.421875)
        assert d.ymin == pytest.approx(0.421875)
        assert d.xmax == pytest.approx(0.578125)
        assert d.ymax == pytest.approx(0.578125)

    def test_low_objectness_dropped(self):
        out = output(anchor(320, 320, 100, 100, 0.2, [0.1, 0.9]))
        info = compute_letterbox(640, 640, 640)

        assert extract_detections(out, info, ["first", "second"]) == []

    def test_low_confidence_dropped(self):
        """Objectness passes but objectness * class score does not."""
        out = output(anchor(320, 320, 100, 100, 0.5, [0.4, 0.1]))
        info = compute_letterbox(640, 640, 640)

        assert extract_detections(out, info, ["first", "second"]) == []

    def test_threshold_is_inclusive(self):
        out = output(anchor(320, 320, 100, 100, 0.25, [1.0, 0.0]))
        info = compute_letterbox(640, 640, 640)

        assert len(extract_detections(out, info, ["first", "second"])) == 1

    def test_ties_resolve_to_lowest_index(self):
        out = output(anchor(320, 320, 100, 100, 1.0, [0.2, 0.6, 0.6]))
        info = compute_letterbox(640, 640, 640)

        dets = extract_detections(out, info, LABELS)

        assert dets[0].label == "dog"

    def test_letterbox_inversion_non_square(self):
        """1280x720 source: scale 0.5, offset_y 140."""
        out = output(anchor(320, 320, 100, 100, 0.9, [0.9, 0.1, 0.0]))
        info = compute_letterbox(1280, 720, 640)

        d = extract_detections(out, info, LABELS)[0]

        assert d.xmin == pytest.approx(540 / 1280)
        assert d.xmax == pytest.approx(740 / 1280)
        assert d.ymin == pytest.approx(260 / 720)
        assert d.ymax == pytest.approx(460 / 720)

    def test_box_clamped_to_frame(self):
        out = output(anchor(10, 320, 100, 100, 0.9, [0.9, 0.0, 0.0]))
        info = compute_letterbox(640, 640, 640)

        d = extract_detections(out, info, LABELS)[0]

        assert d.xmin == 0.0
        assert d.xmax == pytest.approx(60 / 640)

    def test_box_in_padding_dropped(self):
        """A box entirely inside the top letterbox band has no area in the frame."""
        out = output(anchor(320, 50, 100, 20, 0.9, [0.9, 0.0, 0.0]))
        info = compute_letterbox(1280, 720, 640)

        assert extract_detections(out, info, LABELS) == []

    def test_anchor_order_preserved_without_suppression(self):
        """Overlapping boxes are all kept, in anchor order."""
        out = output(
            anchor(300, 300, 100, 100, 0.9, [0.0, 0.0, 0.9]),
            anchor(305, 305, 100, 100, 0.9, [0.9, 0.0, 0.0]),
            anchor(310, 310, 100, 100, 0.1, [0.9, 0.0, 0.0]),
            anchor(315, 315, 100, 100, 0.9, [0.0, 0.9, 0.0]),
        )
        info = compute_letterbox(640, 640, 640)

        dets = extract_detections(out, info, LABELS)

        assert [d.label for d in dets] == ["bird", "cat", "dog"]

    def test_metadata_copied(self):
        out = output(anchor(320, 320, 100, 100, 0.9, [0.9, 0.0, 0.0]))
        info = compute_letterbox(640, 640, 640)

        d = extract_detections(out, info, LABELS, frame_id=42, capture_ts=100.0, recv_ts=100.5)[0]

        assert d.frame_id == 42
        assert d.capture_ts == 100.0
        assert d.recv_ts == 100.5
        assert d.inference_ts is not None and d.inference_ts >= d.recv_ts

    def test_class_without_label_raises(self):
        out = output(anchor(320, 320, 100, 100, 0.9, [0.0, 0.0, 0.9]))
        info = compute_letterbox(640, 640, 640)

        with pytest.raises(DecodeError):
            extract_detections(out, info, ["cat", "dog"])


class TestExtractorProperties:
    """Invariants over random model outputs."""

    @pytest.fixture
    def random_output(self):
        rng = np.random.default_rng(1234)
        n = 500
        raw = np.empty((1, n, 5 + len(COCO_CLASSES)), dtype=np.float32)
        raw[0, :, 0:2] = rng.uniform(-100, 740, size=(n, 2))
        raw[0, :, 2:4] = rng.uniform(0, 300, size=(n, 2))
        raw[0, :, 4] = rng.uniform(0, 1, size=n)
        raw[0, :, 5:] = rng.uniform(0, 1, size=(n, len(COCO_CLASSES)))
        return OutputTensor(raw)

    @pytest.mark.parametrize("w,h", [(640, 640), (1280, 720), (480, 640)])
    def test_boxes_always_valid(self, random_output, w, h):
        info = compute_letterbox(w, h, 640)

        dets = extract_detections(random_output, info, COCO_CLASSES)

        assert dets
        for d in dets:
            assert 0.0 <= d.xmin < d.xmax <= 1.0
            assert 0.0 <= d.ymin < d.ymax <= 1.0
            assert d.score >= 0.25

    def test_raising_threshold_only_removes(self, random_output):
        info = compute_letterbox(1280, 720, 640)

        low = {key(d) for d in extract_detections(random_output, info, COCO_CLASSES, conf_threshold=0.25)}
        high = {key(d) for d in extract_detections(random_output, info, COCO_CLASSES, conf_threshold=0.5)}

        assert high <= low
        assert len(high) < len(low)
