"""
Best-effort fallback for clients that cannot play a container natively.

The re-encoded stream always starts at the beginning of the file: there is
no Content-Length and no seeking.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

from starlette.requests import Request
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from homecinema.core.errors import UpstreamToolFailure
from homecinema.models.media import TranscodeInfo
from homecinema.services.tools import ToolError, read_tail, spawn, stop_process

logger = logging.getLogger(__name__)

MOBILE_RE = re.compile(r"Mobile|Android|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini|Windows Phone", re.I)
IOS_RE = re.compile(r"iPhone|iPad|iPod", re.I)
ANDROID_RE = re.compile(r"Android", re.I)

# Containers most mobile browsers cannot play
TRANSCODE_FORMATS = {".mkv", ".avi", ".wmv"}

READ_SIZE = 64 * 1024


@dataclass(frozen=True)
class Device:
    is_mobile: bool
    is_ios: bool
    is_android: bool


def detect_device(user_agent: Optional[str]) -> Device:
    user_agent = user_agent or ""
    return Device(
        is_mobile=bool(MOBILE_RE.search(user_agent)),
        is_ios=bool(IOS_RE.search(user_agent)),
        is_android=bool(ANDROID_RE.search(user_agent)),
    )


def needs_transcoding(user_agent: Optional[str], extension: str) -> bool:
    return detect_device(user_agent).is_mobile and extension.lower() in TRANSCODE_FORMATS


def transcode_info(user_agent: Optional[str], extension: str) -> TranscodeInfo:
    device = detect_device(user_agent)
    needed = needs_transcoding(user_agent, extension)
    return TranscodeInfo(
        needs_transcoding=needed,
        is_mobile=device.is_mobile,
        original_format=extension.lower(),
        reason="Mobile device detected with incompatible format" if needed else "Format compatible",
    )


def build_command(ffmpeg_bin: str, input_path: Path) -> list[str]:
    """
    ffmpeg arguments producing a fragmented H.264/AAC MP4 on stdout,
    limited to 720p and about 1.1 Mbit/s.
    """
    return [
        ffmpeg_bin, "-v", "error", "-nostats",
        "-fflags", "+genpts",
        "-i", str(input_path),
        "-c:v", "libx264", "-preset", "veryfast", "-crf", "28",
        "-profile:v", "main", "-level", "4.0", "-pix_fmt", "yuv420p",
        "-vf", "scale=-2:'min(720,ih)'",
        "-b:v", "1000k",
        "-c:a", "aac", "-b:a", "128k",
        "-max_muxing_queue_size", "1024",
        "-avoid_negative_ts", "make_zero",
        "-movflags", "+frag_keyframe+empty_moov+faststart",
        "-threads", "0",
        "-f", "mp4", "pipe:1",
    ]


class TranscodeResponse(StreamingResponse):
    """
    Streams ffmpeg's stdout. Whatever ends the response (completion, error,
    client disconnect) leaves no encoder behind.
    """

    def __init__(self, proc, label: str, request: Optional[Request] = None, grace: float = 2.0):
        self.proc = proc
        self.label = label
        self.grace = grace
        super().__init__(self._iter_output(request), media_type="video/mp4",
                         headers={"Cache-Control": "no-cache"})

    async def _iter_output(self, request: Optional[Request]) -> AsyncIterator[bytes]:
        # stderr is drained alongside stdout, a full pipe would stall the encoder
        stderr_task = asyncio.ensure_future(read_tail(self.proc.stderr))
        sent = 0
        try:
            while True:
                if request is not None and await request.is_disconnected():
                    logger.info("Client disconnected, stopping transcoding of %s", self.label)
                    return
                chunk = await self.proc.stdout.read(READ_SIZE)
                if not chunk:
                    break
                sent += len(chunk)
                yield chunk

            returncode = await self.proc.wait()
            if returncode != 0:
                stderr = (await stderr_task).decode("utf-8", "replace").strip()
                logger.error("Transcoding of %s failed (code %d): %s", self.label, returncode, stderr)
                raise ToolError("ffmpeg transcoding failed", returncode=returncode, stderr=stderr)
            logger.info("Transcoding of %s completed, %d bytes", self.label, sent)
        finally:
            stderr_task.cancel()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            stop_process(self.proc, self.grace)


async def start_transcode(ffmpeg_bin: str, input_path: Path, label: str,
                          request: Optional[Request] = None, grace: float = 2.0) -> TranscodeResponse:
    """
    Start the encoder and wrap its output in a response.

    Raises:
        UpstreamToolFailure: ffmpeg could not be started.
    """
    try:
        proc = await spawn(build_command(ffmpeg_bin, input_path))
    except ToolError as e:
        logger.error("Failed to start transcoding of %s: %s", label, e)
        raise UpstreamToolFailure("Failed to initialize video transcoding")
    logger.info("Transcoding %s (pid %s)", label, proc.pid)
    return TranscodeResponse(proc, label, request, grace)
