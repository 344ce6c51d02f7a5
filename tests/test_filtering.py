"""Tests for client-side confidence filtering."""

import pytest

from xr_zeroshot.models import BoundingBoxGroup, DetectionContent, DetectionPayload, Rect
from xr_zeroshot.pipeline.filtering import DetectionFilter


def make_payload(groups: list[dict]) -> DetectionPayload:
    content = DetectionContent(
        frame_width=640,
        frame_height=480,
        bounding_boxes=[BoundingBoxGroup(**group) for group in groups],
    )
    return DetectionPayload(response_id="resp-1", content=content, entry_name="a.response")


@pytest.fixture
def detection_filter():
    return DetectionFilter()


class TestThreshold:
    """Test the inclusive confidence threshold."""

    @pytest.mark.parametrize(
        "confidence,threshold,kept",
        [
            (0.42, 0.3, True),
            (0.3, 0.3, True),
            (0.29, 0.3, False),
            (0.0, 0.0, True),
            (1.0, 1.0, True),
            (0.99, 1.0, False),
        ],
    )
    def test_keeps_iff_confidence_at_least_threshold(
        self, detection_filter, confidence, threshold, kept
    ):
        payload = make_payload(
            [{"phrase": "cat", "bboxes": [[1, 2, 3, 4]], "confidence": [confidence]}]
        )

        records = detection_filter.filter(payload, threshold)

        assert (len(records) == 1) is kept

    def test_missing_confidences_count_as_one(self, detection_filter):
        payload = make_payload([{"phrase": "cat", "bboxes": [[1, 2, 3, 4], [5, 6, 7, 8]]}])

        records = detection_filter.filter(payload, 1.0)

        assert [record.confidence for record in records] == [1.0, 1.0]

    def test_short_confidence_list_defaults_remaining_boxes(self, detection_filter):
        payload = make_payload(
            [{"phrase": "cat", "bboxes": [[1, 2, 3, 4], [5, 6, 7, 8]], "confidence": [0.1]}]
        )

        records = detection_filter.filter(payload, 0.5)

        assert len(records) == 1
        assert records[0].box == Rect(5, 6, 7, 8)
        assert records[0].confidence == 1.0


class TestBoxes:
    """Test box validation and record construction."""

    @pytest.mark.parametrize("bbox", [[], [1], [1, 2], [1, 2, 3]])
    def test_short_boxes_are_skipped_regardless_of_confidence(self, detection_filter, bbox):
        payload = make_payload([{"phrase": "cat", "bboxes": [bbox], "confidence": [1.0]}])

        assert detection_filter.filter(payload, 0.0) == []

    def test_extra_components_are_ignored(self, detection_filter):
        payload = make_payload([{"phrase": "cat", "bboxes": [[1, 2, 3, 4, 99]]}])

        records = detection_filter.filter(payload, 0.0)

        assert records[0].box == Rect(1, 2, 3, 4)

    def test_record_fields(self, detection_filter):
        payload = make_payload(
            [{"phrase": "cat", "bboxes": [[10, 20, 100, 80]], "confidence": [0.42]}]
        )

        (record,) = detection_filter.filter(payload, 0.3)

        assert record.label == "cat"
        assert record.confidence == pytest.approx(0.42)
        assert record.box == Rect(10, 20, 100, 80)
        assert record.display_label == "cat (0.42)"

    def test_output_preserves_group_then_index_order(self, detection_filter):
        payload = make_payload(
            [
                {"phrase": "cat", "bboxes": [[0, 0, 1, 1], [1, 1, 1, 1]], "confidence": [0.5, 0.9]},
                {"phrase": "dog", "bboxes": [[2, 2, 1, 1]], "confidence": [0.7]},
                {"phrase": "car", "bboxes": [[3, 3, 1, 1], [4, 4, 1, 1]], "confidence": [0.8, 0.6]},
            ]
        )

        records = detection_filter.filter(payload, 0.0)

        assert [(r.label, r.box.x) for r in records] == [
            ("cat", 0),
            ("cat", 1),
            ("dog", 2),
            ("car", 3),
            ("car", 4),
        ]

    def test_payload_is_not_mutated(self, detection_filter):
        payload = make_payload(
            [{"phrase": "cat", "bboxes": [[1, 2], [1, 2, 3, 4]], "confidence": [0.9, 0.1]}]
        )
        before = payload.content.model_dump()

        detection_filter.filter(payload, 0.5)

        assert payload.content.model_dump() == before

    def test_empty_payload(self, detection_filter):
        assert detection_filter.filter(make_payload([]), 0.3) == []
