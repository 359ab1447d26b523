import json
import logging
import os
import tempfile
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

WATCHED_TAG = "watched"


class TagStore:
    """
    Tags of every media file, keyed by the file's path relative to the media root.

    The whole mapping lives in memory and is rewritten to a single JSON
    document after every mutation. One lock serializes each
    read-modify-write together with its save, so concurrent requests can
    never interleave writes to the mapping.
    """

    def __init__(self, tags_file: Path):
        self.tags_file = Path(tags_file)
        self._tags: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        """
        Replace the in-memory mapping with the content of the tags file.
        A missing or unreadable file yields an empty mapping.
        """
        data: dict[str, list[str]] = {}
        try:
            with open(self.tags_file, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError("tags file must contain a JSON object")
            for path, tags in raw.items():
                if isinstance(tags, list):
                    data[path] = _unique([str(t) for t in tags])
        except FileNotFoundError:
            logger.info("No tags file at %s, starting empty", self.tags_file)
        except (OSError, ValueError) as e:
            logger.error("Error loading tags from %s: %s", self.tags_file, e)
            data = {}

        with self._lock:
            self._tags = data
        logger.info("Loaded tags for %d files", len(data))

    def save(self) -> None:
        with self._lock:
            self._save_locked()

    def _save_locked(self) -> None:
        # Write to a sibling temp file and rename, so a crash never leaves half a document
        try:
            self.tags_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.tags_file.name}.", dir=self.tags_file.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(self._tags, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.tags_file)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as e:
            # The in-memory change stays applied; durability is best effort
            logger.error("Error saving tags to %s: %s", self.tags_file, e)

    def get(self, path: str) -> list[str]:
        with self._lock:
            return list(self._tags.get(path, []))

    def all_tags(self) -> list[str]:
        with self._lock:
            tags = {tag for tag_list in self._tags.values() for tag in tag_list}
        return sorted(tags)

    def add(self, path: str, tag: str) -> list[str]:
        with self._lock:
            tags = self._tags.setdefault(path, [])
            if tag not in tags:
                tags.append(tag)
                self._save_locked()
            return list(tags)

    def remove(self, path: str, tag: str) -> list[str]:
        with self._lock:
            tags = self._tags.get(path)
            if tags and tag in tags:
                tags.remove(tag)
                if not tags:
                    del self._tags[path]
                self._save_locked()
            return list(self._tags.get(path, []))

    def toggle_watched(self, path: str) -> bool:
        """Flip the reserved "watched" tag and return the new state."""
        with self._lock:
            tags = self._tags.setdefault(path, [])
            if WATCHED_TAG in tags:
                tags.remove(WATCHED_TAG)
                watched = False
            else:
                tags.append(WATCHED_TAG)
                watched = True
            if not tags:
                del self._tags[path]
            self._save_locked()
            return watched


def _unique(tags: list[str]) -> list[str]:
    return list(dict.fromkeys(tags))
