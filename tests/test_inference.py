import numpy as np
import pytest

from sorting_station.comm.client import RemoteClient
from sorting_station.comm.inference import InferenceClient, parse_predictions
from sorting_station.errors import DecodeError, HttpError, InferenceNotConfigured


@pytest.fixture
async def inference(params, inference_server):
    params.inference_url = str(inference_server.make_url("/"))
    client = RemoteClient(params)
    yield InferenceClient(client, params)
    await client.close()


def test_parse_predictions():
    detections = parse_predictions(
        {"predictions": [{"class": "Carrots", "confidence": 0.7, "x": 50, "y": 50, "width": 20, "height": 10}]}
    )
    assert len(detections) == 1
    assert (detections[0].x, detections[0].y) == (40, 45)


def test_missing_predictions_is_empty(caplog):
    assert parse_predictions({"image": {}}) == []
    assert "No predictions" in caplog.text


def test_malformed_predictions():
    with pytest.raises(DecodeError):
        parse_predictions({"predictions": "none"})
    with pytest.raises(DecodeError):
        parse_predictions(["not", "an", "object"])


def test_configuration(params):
    inference = InferenceClient(RemoteClient(params), params)
    assert inference.is_configured()
    params.api_key = ""
    params.model_version = ""
    assert inference.missing_settings() == ["api_key", "model_version"]
    assert not inference.is_configured()


async def test_detect_uploads_frame(inference, fake_inference):
    fake_inference.predictions = [
        {"class": "Plastic", "confidence": 0.91, "x": 320, "y": 240, "width": 100, "height": 50},
        {"class": "Rice", "confidence": 0.15, "x": 10, "y": 10, "width": 4, "height": 4},
    ]
    frame = np.zeros((48, 64, 3), dtype=np.uint8)
    detections = await inference.detect(frame)

    assert [d.label for d in detections] == ["Plastic", "Rice"]
    assert detections[0].box == (270, 215, 100, 50)

    upload = fake_inference.uploads[0]
    assert (upload["model"], upload["version"]) == ("waste", "3")
    assert upload["filename"] == "image.jpg"
    assert upload["size"] > 0
    assert upload["query"] == {"api_key": "test-key", "confidence": "0.2", "overlap": "0.5", "format": "json"}


async def test_detect_requires_configuration(inference, params, fake_inference):
    params.api_key = ""
    with pytest.raises(InferenceNotConfigured) as exc:
        await inference.detect(np.zeros((8, 8, 3), dtype=np.uint8))
    assert exc.value.missing == ["api_key"]
    assert fake_inference.uploads == []


async def test_detect_http_error(inference, fake_inference):
    fake_inference.status = 403
    with pytest.raises(HttpError):
        await inference.detect(np.zeros((8, 8, 3), dtype=np.uint8))


async def test_connection_check(inference, fake_inference):
    assert await inference.test_connection()
    assert fake_inference.uploads[0]["size"] > 0
    fake_inference.status = 500
    assert not await inference.test_connection()
