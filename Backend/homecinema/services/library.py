import locale
import logging
import os
import stat
from datetime import datetime
from pathlib import PurePosixPath
from typing import Optional

from homecinema.core.errors import AccessDenied, NotADirectory
from homecinema.models.file import Breadcrumb, DirectoryListing, Folder, MediaFile
from homecinema.services.access import AccessPolicy
from homecinema.services.paths import PathResolver, split_segments
from homecinema.services.tags import WATCHED_TAG, TagStore

logger = logging.getLogger(__name__)

# Extensions listed and counted as media (compared lowercase)
SUPPORTED_FORMATS = {".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv", ".webm", ".m4v"}


def is_media_file(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in SUPPORTED_FORMATS


def format_size(size: int) -> str:
    return f"{size / 1024 / 1024 / 1024:.1f} GB"


def join_relative(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def created_time(st: os.stat_result) -> datetime:
    # st_birthtime only exists on some platforms; ctime is the closest fallback
    return datetime.fromtimestamp(getattr(st, "st_birthtime", st.st_ctime))


def build_breadcrumbs(relative_path: str) -> list[Breadcrumb]:
    """
    Breadcrumb trail for a relative path: Home, then every ancestor.
    """
    breadcrumbs = [Breadcrumb(name="Home", path="")]
    accumulated = ""
    for part in split_segments(relative_path):
        accumulated = join_relative(accumulated, part)
        breadcrumbs.append(Breadcrumb(name=part, path=accumulated))
    return breadcrumbs


class DirectoryLister:
    """
    Builds directory listings from the filesystem on every call.
    """

    def __init__(self, resolver: PathResolver, policy: AccessPolicy, tag_store: TagStore):
        self.resolver = resolver
        self.policy = policy
        self.tag_store = tag_store

    def list(self, identity: str, user_path: Optional[str], folder_key: Optional[str] = None) -> DirectoryListing:
        relative = self.resolver.sanitize(user_path)
        self.policy.check(identity, relative, folder_key)
        real_path = self.resolver.resolve(relative)

        try:
            # Iterate through directory entries
            with os.scandir(real_path) as it:
                entries = list(it)
        except FileNotFoundError:
            # The directory vanished between the request and the scan
            logger.warning("Directory does not exist: %s", relative or "/")
            return DirectoryListing(current_path=relative)
        except NotADirectoryError:
            raise NotADirectory()
        except PermissionError:
            raise AccessDenied("Permission denied reading directory")

        folders: list[Folder] = []
        files: list[MediaFile] = []
        for entry in entries:
            item_relative = join_relative(relative, entry.name)
            try:
                st = entry.stat()
            except OSError as e:
                logger.error("Error reading item %s: %s", item_relative, e)
                continue

            if stat.S_ISDIR(st.st_mode):
                if not self.policy.is_visible(identity, item_relative, True):
                    continue
                media_count, subfolder_count = self._count_children(identity, entry.path, item_relative)
                folders.append(Folder(
                    name=entry.name,
                    path=item_relative,
                    modified=datetime.fromtimestamp(st.st_mtime),
                    media_count=media_count,
                    subfolder_count=subfolder_count,
                    locked=self.policy.is_locked(identity, item_relative),
                ))
            elif stat.S_ISREG(st.st_mode) and is_media_file(entry.name):
                files.append(self._media_file(entry.name, item_relative, st))

        # Folders and files are sorted separately by name
        folders.sort(key=lambda x: locale.strxfrm(x.name))
        files.sort(key=lambda x: locale.strxfrm(x.name))

        return DirectoryListing(folders=folders, files=files, current_path=relative)

    def _media_file(self, name: str, relative: str, st: os.stat_result) -> MediaFile:
        suffix = PurePosixPath(name).suffix
        tags = self.tag_store.get(relative)
        return MediaFile(
            name=name,
            display_name=name[:-len(suffix)] if suffix else name,
            path=relative,
            size=st.st_size,
            size_formatted=format_size(st.st_size),
            modified=datetime.fromtimestamp(st.st_mtime),
            created=created_time(st),
            extension=suffix.lower(),
            tags=tags,
            watched=WATCHED_TAG in tags,
        )

    def _count_children(self, identity: str, path: str, relative: str) -> tuple[int, int]:
        """
        Count media files and visible sub folders one level below `path`.
        Anything unreadable counts as zero instead of failing the parent listing.
        """
        media_count = 0
        subfolder_count = 0
        try:
            with os.scandir(path) as it:
                for sub in it:
                    try:
                        if sub.is_dir():
                            if self.policy.is_visible(identity, join_relative(relative, sub.name), True):
                                subfolder_count += 1
                        elif sub.is_file() and is_media_file(sub.name):
                            media_count += 1
                    except OSError:
                        continue
        except OSError as e:
            logger.debug("Cannot scan %s: %s", relative, e)
            return 0, 0
        return media_count, subfolder_count
