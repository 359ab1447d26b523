import asyncio
import sys

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from homecinema.main import create_app
from homecinema.services.tools import ToolError, spawn
from homecinema.services.transcode import TranscodeResponse, build_command, detect_device, needs_transcoding

from conftest import OWNER

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"
ANDROID = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36"
DESKTOP = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


def test_detect_device():
    iphone = detect_device(IPHONE)
    assert iphone.is_mobile and iphone.is_ios and not iphone.is_android
    android = detect_device(ANDROID)
    assert android.is_mobile and android.is_android
    assert not detect_device(DESKTOP).is_mobile
    assert not detect_device(None).is_mobile


@pytest.mark.parametrize("user_agent, extension, expected", [
    (IPHONE, ".mkv", True),
    (ANDROID, ".AVI", True),
    (IPHONE, ".mp4", False),
    (DESKTOP, ".mkv", False),
    (None, ".wmv", False),
])
def test_needs_transcoding(user_agent, extension, expected):
    assert needs_transcoding(user_agent, extension) is expected


def test_build_command_writes_fragmented_mp4_to_stdout(tmp_path):
    args = build_command("ffmpeg", tmp_path / "in.mkv")
    assert args[0] == "ffmpeg"
    assert args[args.index("-i") + 1] == str(tmp_path / "in.mkv")
    assert args[args.index("-c:v") + 1] == "libx264"
    assert "+frag_keyframe+empty_moov+faststart" in args
    assert args[-1] == "pipe:1"


def test_transcode_info_for_mobile(client):
    response = client.get("/api/transcode-info/Series/Show/ep1.mkv",
                          headers={"User-Agent": IPHONE}, auth=OWNER)
    assert response.status_code == 200
    assert response.json() == {
        "needsTranscoding": True,
        "isMobile": True,
        "originalFormat": ".mkv",
        "reason": "Mobile device detected with incompatible format",
    }


def test_transcode_info_for_desktop(client):
    response = client.get("/api/transcode-info/Series/Show/ep1.mkv",
                          headers={"User-Agent": DESKTOP}, auth=OWNER)
    assert response.json()["needsTranscoding"] is False
    assert response.json()["reason"] == "Format compatible"


def test_transcode_info_missing_file(client):
    response = client.get("/api/transcode-info/Movies/missing.mkv", auth=OWNER)
    assert response.status_code == 404


def test_transcode_without_encoder(make_settings, tmp_path):
    settings = make_settings(FFMPEG_BIN=str(tmp_path / "no-such-ffmpeg"))
    with TestClient(create_app(settings)) as client:
        response = client.get("/api/transcode/Series/Show/ep1.mkv", auth=OWNER)
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to initialize video transcoding"


def _scope():
    return {"type": "http", "method": "GET", "path": "/", "headers": [], "query_string": b""}


def test_encoder_is_stopped_when_client_disconnects():
    encoder = (
        "import sys, time\n"
        "while True:\n"
        "    sys.stdout.buffer.write(b'v' * 65536)\n"
        "    sys.stdout.buffer.flush()\n"
        "    time.sleep(0.01)\n"
    )
    received = []

    async def receive():
        # The viewer leaves after a short while
        await asyncio.sleep(0.3)
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.body":
            received.append(len(message.get("body", b"")))

    async def run():
        proc = await spawn([sys.executable, "-c", encoder])
        response = TranscodeResponse(proc, "clip.mkv", Request(_scope(), receive), grace=1.0)
        await response(_scope(), receive, send)
        await asyncio.wait_for(proc.wait(), timeout=10)
        return proc

    proc = asyncio.run(run())
    assert proc.returncode != 0
    assert sum(received) > 0


def test_encoder_diagnostics_do_not_stall_output():
    # Far more stderr than a pipe buffer holds, written before any video
    encoder = (
        "import sys\n"
        "sys.stderr.write('w' * 262144)\n"
        "sys.stderr.flush()\n"
        "sys.stdout.buffer.write(b'v' * 1000)\n"
    )

    async def run():
        proc = await spawn([sys.executable, "-c", encoder])
        response = TranscodeResponse(proc, "noisy.mkv")
        return b"".join([chunk async for chunk in response.body_iterator])

    assert asyncio.run(asyncio.wait_for(run(), timeout=20)) == b"v" * 1000


def test_encoder_failure_reports_stderr():
    encoder = "import sys\nsys.stderr.write('Invalid data found')\nsys.exit(1)\n"

    async def run():
        proc = await spawn([sys.executable, "-c", encoder])
        response = TranscodeResponse(proc, "broken.mkv")
        return [chunk async for chunk in response.body_iterator]

    with pytest.raises(ToolError) as exc_info:
        asyncio.run(run())
    assert exc_info.value.returncode == 1
    assert exc_info.value.stderr == "Invalid data found"
