from sorting_station.sensors.stream import MjpegParser

from conftest import jpeg_bytes


def multipart(*jpegs):
    return b"".join(b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + j + b"\r\n" for j in jpegs)


def test_splits_whole_frames():
    a, b = jpeg_bytes(color=(1, 2, 3)), jpeg_bytes(color=(200, 100, 0))
    frames = MjpegParser().feed(multipart(a, b))
    assert frames == [a, b]


def test_frames_across_chunk_boundaries():
    a, b = jpeg_bytes(), jpeg_bytes(32, 32)
    body = multipart(a, b)
    parser = MjpegParser()
    frames = []
    for i in range(0, len(body), 7):
        frames.extend(parser.feed(body[i:i + 7]))
    assert frames == [a, b]


def test_marker_split_between_chunks():
    a = jpeg_bytes()
    body = multipart(a)
    split = body.index(b"\xff\xd8") + 1
    parser = MjpegParser()
    assert parser.feed(body[:split]) == []
    assert parser.feed(body[split:]) == [a]


def test_overflow_drops_buffer():
    parser = MjpegParser(max_buffer=16)
    assert parser.feed(b"\xff\xd8" + b"\x00" * 32) == []
    assert parser._buffer == b""
