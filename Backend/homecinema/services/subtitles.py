import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path

import anyio

from homecinema.core.errors import NotFound, UpstreamToolFailure
from homecinema.models.media import SubtitleTrack
from homecinema.services.paths import encode_url_path
from homecinema.services.tools import ToolError, run_tool

logger = logging.getLogger(__name__)

# Translator notes and alternatives in curly braces, e.g. "{\an8}" or "{TN: ...}"
ANNOTATION_RE = re.compile(r"\{[^}]*\}")


def clean_subtitle(content: str) -> str:
    return ANNOTATION_RE.sub("", content)


class SubtitleBridge:
    """
    Finds subtitle streams with ffprobe and extracts them to WebVTT with ffmpeg.

    Extracted tracks are cached as files named after the video basename and
    the track index, plus a short digest of the relative path so that
    same-named videos in different folders do not share a cache entry.
    """

    def __init__(self, cache_dir: Path, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe",
                 timeout: float = 120.0, grace: float = 2.0):
        self.cache_dir = Path(cache_dir)
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout
        self.grace = grace
        # One extraction per cache file at a time; waiters then find it cached
        self._locks: dict[Path, anyio.Lock] = {}

    def cache_path(self, video_path: Path, relative_path: str, track_index: int) -> Path:
        digest = hashlib.sha1(relative_path.encode("utf-8")).hexdigest()[:8]
        return self.cache_dir / f"{video_path.stem}_{digest}_{track_index}.vtt"

    async def probe(self, video_path: Path) -> list[dict]:
        """Subtitle streams reported by ffprobe, in container order."""
        output = await run_tool(
            [self.ffprobe_bin, "-v", "error", "-print_format", "json",
             "-show_streams", "-select_streams", "s", str(video_path)],
            timeout=self.timeout, grace=self.grace,
        )
        try:
            streams = json.loads(output or b"{}").get("streams", [])
        except (ValueError, AttributeError) as e:
            raise ToolError(f"unreadable ffprobe output: {e}")
        return [s for s in streams if s.get("codec_type", "subtitle") == "subtitle"]

    async def list_tracks(self, video_path: Path, relative_path: str) -> list[SubtitleTrack]:
        """
        Describe the subtitle tracks of a video. Probe failures give an empty list.
        """
        try:
            streams = await self.probe(video_path)
        except ToolError as e:
            logger.warning("FFprobe error for %s: %s %s", relative_path, e, e.stderr)
            return []

        encoded = encode_url_path(relative_path)
        tracks = []
        for position, stream in enumerate(streams):
            tags = stream.get("tags") or {}
            tracks.append(SubtitleTrack(
                index=stream.get("index", position),
                track_index=position,
                language=tags.get("language") or "unknown",
                title=tags.get("title") or f"Subtitle {position + 1}",
                codec_name=stream.get("codec_name") or "",
                url=f"/api/subtitle/{encoded}/{position}",
            ))
        logger.info("Found %d subtitle streams for: %s", len(tracks), relative_path)
        return tracks

    async def get_track(self, video_path: Path, relative_path: str, track_index: int) -> str:
        """
        Return cleaned WebVTT text for one subtitle track, extracting it on a cache miss.

        Raises:
            NotFound: the video has no such subtitle track.
            UpstreamToolFailure: ffprobe/ffmpeg failed.
        """
        cached = self.cache_path(video_path, relative_path, track_index)
        async with self._locks.setdefault(cached, anyio.Lock()):
            if await anyio.to_thread.run_sync(cached.is_file):
                logger.info("Using cached subtitle for: %s, track index: %d", relative_path, track_index)
            else:
                await self._extract(video_path, relative_path, track_index, cached)

        try:
            data = await anyio.to_thread.run_sync(_read_text, cached)
        except OSError as e:
            logger.error("Error reading subtitle file for %s: %s", relative_path, e)
            raise UpstreamToolFailure("Error reading subtitle file")
        return clean_subtitle(data)

    async def _extract(self, video_path: Path, relative_path: str, track_index: int, target: Path) -> None:
        try:
            streams = await self.probe(video_path)
        except ToolError as e:
            logger.error("FFprobe error for %s: %s", relative_path, e)
            raise UpstreamToolFailure("Subtitle extraction failed")
        if track_index >= len(streams):
            raise NotFound("Subtitle track not found")

        try:
            partial = await anyio.to_thread.run_sync(_partial_file, target)
        except OSError as e:
            logger.error("Cannot prepare subtitle cache for %s: %s", relative_path, e)
            raise UpstreamToolFailure("Subtitle extraction failed")
        try:
            await run_tool(
                [self.ffmpeg_bin, "-v", "error", "-y", "-i", str(video_path),
                 "-map", f"0:s:{track_index}", "-c:s", "webvtt", "-f", "webvtt", str(partial)],
                timeout=self.timeout, grace=self.grace,
            )
            os.replace(partial, target)
        except (ToolError, OSError) as e:
            logger.error("Subtitle extraction error for %s track %d: %s", relative_path, track_index, e)
            raise UpstreamToolFailure("Subtitle extraction failed")
        finally:
            if partial.exists():
                partial.unlink()
        logger.info("Subtitle extracted for: %s, track index: %d", relative_path, track_index)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def _partial_file(target: Path) -> Path:
    # Unique per extraction, in the cache directory so os.replace stays on one filesystem
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=f"{target.stem}.", suffix=".vtt.part", dir=target.parent)
    os.close(fd)
    return Path(name)
