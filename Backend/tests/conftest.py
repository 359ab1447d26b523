import pytest
from fastapi.testclient import TestClient

from homecinema.core.config import Settings
from homecinema.main import create_app

# 10 MiB of predictable bytes, so any window can be checked by slicing
MOVIE_BYTES = bytes(range(256)) * (10 * 1024 * 1024 // 256)

OWNER = ("vamshi", "moviepass")
FAMILY = ("family", "familypass")


@pytest.fixture
def media_root(tmp_path):
    root = tmp_path / "media"
    (root / "Movies").mkdir(parents=True)
    (root / "Movies" / "ActionFilm.mp4").write_bytes(MOVIE_BYTES)
    (root / "Series" / "Show").mkdir(parents=True)
    (root / "Series" / "Show" / "ep1.mkv").write_bytes(b"\x1a\x45\xdf\xa3" + b"\x00" * 2048)
    (root / ".private").mkdir()
    (root / ".private" / "secret.mp4").write_bytes(b"private" * 100)
    (root / "notes.txt").write_text("not a video")
    return root


@pytest.fixture
def make_settings(tmp_path, media_root):
    def _make(**overrides):
        values = dict(
            MEDIA_ROOT_PATH=media_root,
            USERS={OWNER[0]: OWNER[1], FAMILY[0]: FAMILY[1]},
            HIDDEN_FOLDERS={FAMILY[0]: [".private"]},
            GATED_FOLDERS={},
            TAGS_FILE=tmp_path / "tags.json",
            SUBTITLE_CACHE_DIR=tmp_path / "subtitles",
            SSL_KEYFILE=None,
            SSL_CERTFILE=None,
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def client(settings):
    # The context manager runs the lifespan, which loads the tags file
    with TestClient(create_app(settings)) as test_client:
        yield test_client
