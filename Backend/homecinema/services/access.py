import logging
from typing import Optional

from homecinema.core.errors import AccessDenied
from homecinema.core.security import hash_secrets, verify_password
from homecinema.services.paths import split_segments

logger = logging.getLogger(__name__)

# Rules stored under this key apply to every user
ANY_USER = "*"


def matches_pattern(name: str, pattern: str) -> bool:
    """
    Case-insensitive match of a folder name against a rule pattern:
    equal, or the pattern occurs inside the name. Empty patterns never match.
    """
    if not pattern:
        return False
    name = name.casefold()
    pattern = pattern.casefold()
    return name == pattern or pattern in name


class AccessPolicy:
    """
    Per-user folder rules.

    hidden: user -> patterns of folders the user must not see or reach.
    gated:  user -> {pattern: folder key}; matching folders are listed as
            locked and are only reachable when the request carries the key.
    """

    def __init__(self,
                 hidden: Optional[dict[str, list[str]]] = None,
                 gated: Optional[dict[str, dict[str, str]]] = None):
        self._hidden = {user: list(patterns) for user, patterns in (hidden or {}).items()}
        self._gated = {user: hash_secrets(keys) for user, keys in (gated or {}).items()}

    def hidden_patterns(self, identity: str) -> list[str]:
        return self._hidden.get(identity, []) + self._hidden.get(ANY_USER, [])

    def _gates(self, identity: str) -> dict[str, str]:
        gates = dict(self._gated.get(ANY_USER, {}))
        gates.update(self._gated.get(identity, {}))
        return gates

    def _is_hidden_name(self, identity: str, name: str) -> bool:
        return any(matches_pattern(name, p) for p in self.hidden_patterns(identity))

    def is_visible(self, identity: str, relative_path: str, is_folder: bool) -> bool:
        """Decide whether a listing entry is shown. Only folders are ever hidden."""
        if not is_folder:
            return True
        segments = split_segments(relative_path)
        if not segments:
            return True
        return not self._is_hidden_name(identity, segments[-1])

    def is_accessible(self, identity: str, relative_path: str) -> bool:
        """
        Walk every segment of the target; a single hidden segment denies access.
        Used for direct requests, which may never have gone through a listing.
        """
        return not any(self._is_hidden_name(identity, segment)
                       for segment in split_segments(relative_path))

    def is_locked(self, identity: str, relative_path: str) -> bool:
        segments = split_segments(relative_path)
        if not segments:
            return False
        return any(matches_pattern(segments[-1], p) for p in self._gates(identity))

    def check(self, identity: str, relative_path: str, folder_key: Optional[str] = None) -> None:
        """
        Raise AccessDenied unless `identity` may reach `relative_path`.
        """
        if not self.is_accessible(identity, relative_path):
            logger.warning("Access denied for user %s to path: %s", identity, relative_path)
            raise AccessDenied()

        gates = self._gates(identity)
        if not gates:
            return
        for segment in split_segments(relative_path):
            for pattern, hashed_key in gates.items():
                if not matches_pattern(segment, pattern):
                    continue
                if not folder_key or not verify_password(folder_key, hashed_key):
                    logger.warning("Folder key required for user %s to path: %s", identity, relative_path)
                    raise AccessDenied("Folder key required")
