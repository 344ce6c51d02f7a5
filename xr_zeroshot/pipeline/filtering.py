"""Client-side confidence filtering."""

from ..core.logging import ZeroShotLogger
from ..models import DetectionPayload, DetectionRecord, Rect

logger = ZeroShotLogger(__name__)


class DetectionFilter:
    """Flattens detection groups into records, keeping ``confidence >= threshold``.

    Boxes with fewer than four components are dropped. A missing confidence
    counts as 1.0. Output follows group order, then box order. The payload
    is never modified.
    """

    def filter(self, payload: DetectionPayload, threshold: float) -> list[DetectionRecord]:
        records: list[DetectionRecord] = []
        for group in payload.groups:
            for index, bbox in enumerate(group.bboxes):
                if len(bbox) < 4:
                    continue
                confidence = group.confidence_at(index)
                if confidence < threshold:
                    continue
                x, y, width, height = bbox[:4]
                records.append(
                    DetectionRecord(
                        label=group.phrase,
                        confidence=confidence,
                        box=Rect(x=x, y=y, width=width, height=height),
                    )
                )

        logger.info(
            "Filtered detections",
            kept=len(records),
            total=payload.total_boxes,
            threshold=threshold,
        )
        return records
