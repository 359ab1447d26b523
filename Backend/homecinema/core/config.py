import tempfile
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application Configuration Settings.
    Values are loaded from environment variables or a .env file.
    Dictionary and list values are given as JSON in the environment, e.g.
    USERS='{"alice": "secret"}'.
    """

    # The root directory whose video files are served.
    # Every relative path handed in by a client is confined to this tree.
    MEDIA_ROOT_PATH: Path = Path("./my_media_files")

    # Listening address and ports. HTTPS is only started when both the key
    # and the certificate file exist.
    HOST: str = "0.0.0.0"
    HTTP_PORT: int = 3000
    HTTPS_PORT: int = 3443
    SSL_KEYFILE: Optional[Path] = Path("./certs/server.key")
    SSL_CERTFILE: Optional[Path] = Path("./certs/server.crt")

    # Static credential table: username -> password.
    # Values may be plaintext or an argon2 hash produced by passlib.
    USERS: dict[str, str] = {}

    # Folder-name patterns hidden from a given user (case-insensitive,
    # exact or substring match). The "*" key applies to every user.
    HIDDEN_FOLDERS: dict[str, list[str]] = {}

    # Folder-name patterns that need an extra folder key for a given user:
    # {"family": {"private": "folder-secret"}}. The "*" key applies to every user.
    GATED_FOLDERS: dict[str, dict[str, str]] = {}

    # Flat JSON document holding the tags of every file.
    TAGS_FILE: Path = Path("./tags.json")

    # Extracted WebVTT tracks are cached here.
    SUBTITLE_CACHE_DIR: Path = Path(tempfile.gettempdir()) / "homecinema" / "subtitles"

    # External tools used for subtitles and the transcoding fallback.
    FFMPEG_BIN: str = "ffmpeg"
    FFPROBE_BIN: str = "ffprobe"
    TOOL_TIMEOUT: float = 120.0
    # Seconds between SIGTERM and SIGKILL when an external tool is stopped.
    KILL_GRACE_PERIOD: float = 2.0

    # Bytes read from disk per streamed chunk.
    STREAM_CHUNK_SIZE: int = 1024 * 1024

    # Origins allowed to call the API from a browser.
    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"

    class Config:
        """
        Pydantic configuration class.
        """
        # Instruct Pydantic to load settings from a file named ".env"
        env_file = ".env"


# Create a globally accessible settings instance
settings = Settings()
