from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from homecinema.api.deps import get_folder_key, get_streamer, get_subtitles
from homecinema.core.security import get_current_user
from homecinema.models.media import SubtitleInfo
from homecinema.services.streaming import RangeStreamer
from homecinema.services.subtitles import SubtitleBridge

router = APIRouter()


@router.get("/subtitle-info/{file_path:path}", response_model=SubtitleInfo)
async def subtitle_info(
        file_path: str,
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        subtitles: SubtitleBridge = Depends(get_subtitles),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    List the subtitle tracks embedded in a video. Videos that cannot be probed have none.
    """
    relative, full_path, _ = streamer.locate(user, file_path, folder_key)
    return SubtitleInfo(subtitles=await subtitles.list_tracks(full_path, relative))


@router.get("/subtitle/{file_path:path}/{track_index:int}", response_class=PlainTextResponse)
async def subtitle_track(
        file_path: str,
        track_index: int,
        user: str = Depends(get_current_user),
        streamer: RangeStreamer = Depends(get_streamer),
        subtitles: SubtitleBridge = Depends(get_subtitles),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Serve one subtitle track as WebVTT.
    """
    relative, full_path, _ = streamer.locate(user, file_path, folder_key)
    content = await subtitles.get_track(full_path, relative, track_index)
    return PlainTextResponse(content, media_type="text/vtt")
