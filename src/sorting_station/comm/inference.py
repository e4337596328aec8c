"""
Inference client - object detection via the hosted model API.

POSTs one JPEG frame as multipart field "file" to
    <inference_url>/<model_id>/<version>?api_key=..&confidence=..&overlap=..&format=json
and converts the center-based predictions to top-left Detection boxes.
"""

from __future__ import annotations

import logging
import time

import aiohttp
import cv2
import numpy as np

from sorting_station.config import UPLOAD_JPEG_QUALITY
from sorting_station.errors import DecodeError, InferenceNotConfigured, StationError
from sorting_station.perception.readings import Detection

from .client import RemoteClient

logger = logging.getLogger(__name__)


def parse_predictions(data) -> list[Detection]:
    """Detections from an inference response body."""
    if not isinstance(data, dict):
        raise DecodeError(f"Expected JSON object from inference API, got {type(data).__name__}")
    predictions = data.get("predictions")
    if predictions is None:
        logger.warning("No predictions in inference response")
        return []
    if not isinstance(predictions, list):
        raise DecodeError("Inference 'predictions' is not a list")
    return [Detection.from_prediction(p) for p in predictions]


def encode_frame(frame: np.ndarray, quality: int = UPLOAD_JPEG_QUALITY) -> bytes:
    ret, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ret:
        raise DecodeError("Failed to encode frame as JPEG")
    return jpeg.tobytes()


class InferenceClient:
    """
    Detection requests against the configured model endpoint.

    Usage:
        inference = InferenceClient(client, params)
        if inference.is_configured():
            detections = await inference.detect(frame)
    """

    def __init__(self, client: RemoteClient, params):
        self.client = client
        self.params = params

    def missing_settings(self) -> list[str]:
        p = self.params
        return [
            name
            for name, value in (("api_key", p.api_key), ("model_id", p.model_id), ("model_version", p.model_version))
            if not value
        ]

    def is_configured(self) -> bool:
        return not self.missing_settings()

    @property
    def endpoint_url(self) -> str:
        p = self.params
        return f"{p.inference_url.rstrip('/')}/{p.model_id}/{p.model_version}"

    def query(self) -> dict:
        p = self.params
        return {
            "api_key": p.api_key,
            "confidence": str(p.confidence_floor),
            "overlap": str(p.overlap_threshold),
            "format": "json",
        }

    async def detect(self, frame: np.ndarray) -> list[Detection]:
        """
        Run detection on one BGR frame.

        Returns:
            Every prediction the API returned, boxes converted to top-left.

        Raises:
            InferenceNotConfigured: API key / model / version missing.
            RemoteError: Request or decoding failed.
        """
        missing = self.missing_settings()
        if missing:
            raise InferenceNotConfigured(missing)

        jpeg = encode_frame(frame)
        form = aiohttp.FormData()
        form.add_field("file", jpeg, filename="image.jpg", content_type="image/jpeg")

        start = time.monotonic()
        data = await self.client.request(
            self.endpoint_url,
            method="POST",
            data=form,
            params=self.query(),
            headers={"Accept": "application/json"},
        )
        detections = parse_predictions(data)
        logger.debug(
            f"Inference returned {len(detections)} predictions in "
            f"{(time.monotonic() - start) * 1000:.0f}ms ({len(jpeg) // 1024}KB upload)"
        )
        return detections

    async def test_connection(self) -> bool:
        """Run one detection on a synthetic frame. True if the API answered."""
        if not self.is_configured():
            logger.error(f"Inference test skipped: missing {', '.join(self.missing_settings())}")
            return False

        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        cv2.rectangle(frame, (100, 100), (300, 250), (87, 139, 46), -1)
        cv2.rectangle(frame, (350, 200), (530, 320), (107, 107, 255), -1)
        cv2.rectangle(frame, (200, 300), (360, 400), (180, 130, 70), -1)

        try:
            detections = await self.detect(frame)
        except StationError as e:
            logger.error(f"Inference connection test failed: {e}")
            return False

        summary = ", ".join(f"{d.label} ({d.confidence * 100:.1f}%)" for d in detections)
        logger.info(f"Inference API working. Detected: {summary or 'nothing'}")
        return True
