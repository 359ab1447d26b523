from pathlib import Path
from urllib.parse import quote

from homecinema.core.errors import InvalidPath, PathEscape


def split_segments(user_path: str) -> list[str]:
    """
    Split a client path into its meaningful segments.
    Both separators are accepted; empty, "." and ".." segments are dropped.
    """
    if not user_path:
        return []
    parts = user_path.replace("\\", "/").split("/")
    return [p for p in parts if p not in ("", ".", "..")]


def encode_url_path(relative_path: str) -> str:
    """
    Percent-encode a relative path one segment at a time.
    quote() with no safe characters also escapes ()[]!*' so links survive proxies.
    """
    return "/".join(quote(segment, safe="") for segment in split_segments(relative_path))


class PathResolver:
    """
    Confines client supplied relative paths to the media root.
    """

    def __init__(self, media_root: Path):
        self.root = Path(media_root).resolve()

    def sanitize(self, user_path: str | None) -> str:
        """
        Normalize a relative path: e.g. "/Movies//Action/../x.mp4" -> "Movies/Action/x.mp4".
        Traversal segments are removed, not interpreted.
        """
        if user_path and "\x00" in user_path:
            raise InvalidPath()
        return "/".join(split_segments(user_path or ""))

    def resolve(self, user_path: str | None) -> Path:
        """
        Safely convert a user-provided relative path to an absolute server path.

        Raises:
            InvalidPath: the path cannot be represented on this filesystem.
            PathEscape: the resolved path is outside the media root
                (e.g. through a symlink).
        """
        relative = self.sanitize(user_path)
        try:
            full_path = self.root.joinpath(relative).resolve()
        except (OSError, ValueError, RuntimeError):
            raise InvalidPath()

        # Compare whole path components, so "/media-other" is not inside "/media"
        if full_path != self.root and self.root not in full_path.parents:
            raise PathEscape()
        return full_path
