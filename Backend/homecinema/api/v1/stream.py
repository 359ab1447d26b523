import logging
from pathlib import PurePosixPath
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from homecinema.api.deps import get_folder_key, get_settings, get_streamer
from homecinema.core.config import Settings
from homecinema.core.security import get_current_user
from homecinema.models.file import FileInfo
from homecinema.models.media import TranscodeInfo
from homecinema.services.streaming import RangeStreamer
from homecinema.services.transcode import start_transcode, transcode_info

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stream/{file_path:path}")
async def stream_file(
        file_path: str,
        request: Request,
        range_header: Optional[str] = Header(default=None, alias="Range"),
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Stream a media file, honouring a single "bytes=start-end" Range header.
    """
    return await streamer.stream(user, file_path, range_header, request, folder_key)


@router.get("/download/{file_path:path}")
async def download_file(
        file_path: str,
        request: Request,
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Send the whole file as an attachment.
    """
    return await streamer.download(user, file_path, request, folder_key)


@router.get("/info/{file_path:path}", response_model=FileInfo)
def file_info(
        file_path: str,
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    return streamer.info(user, file_path, folder_key)


@router.get("/transcode-info/{file_path:path}", response_model=TranscodeInfo)
def get_transcode_info(
        file_path: str,
        user_agent: Optional[str] = Header(default=None),
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Tell the player whether the re-encoded stream is the better choice for this device.
    """
    relative, _, _ = streamer.locate(user, file_path, folder_key)
    return transcode_info(user_agent, PurePosixPath(relative).suffix)


@router.get("/transcode/{file_path:path}")
async def transcode_file(
        file_path: str,
        request: Request,
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        settings: Settings = Depends(get_settings),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Re-encode the file on the fly for devices that cannot play it.
    Range headers are ignored: the output always starts at the beginning.
    """
    relative, full_path, _ = streamer.locate(user, file_path, folder_key)
    if request.headers.get("range"):
        logger.info("Range request ignored, transcoding %s from the start", relative)
    logger.info("User %s transcoding: %s", user, relative)
    return await start_transcode(settings.FFMPEG_BIN, full_path, relative, request,
                                 settings.KILL_GRACE_PERIOD)
