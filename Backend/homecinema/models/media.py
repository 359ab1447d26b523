from homecinema.models.file import ApiModel


class SubtitleTrack(ApiModel):
    """
    A subtitle stream found inside a video container.
    """
    index: int  # Stream index inside the container
    track_index: int  # Position among the subtitle streams, used to fetch the track
    language: str = "unknown"
    title: str
    codec_name: str = ""
    url: str


class SubtitleInfo(ApiModel):
    subtitles: list[SubtitleTrack] = []


class TranscodeInfo(ApiModel):
    needs_transcoding: bool
    is_mobile: bool
    original_format: str
    reason: str
