from homecinema.services.access import AccessPolicy
from homecinema.services.library import (
    DirectoryLister,
    build_breadcrumbs,
    format_size,
    is_media_file,
)
from homecinema.services.paths import PathResolver
from homecinema.services.tags import TagStore


def test_is_media_file():
    assert is_media_file("film.MKV")
    assert is_media_file("clip.m4v")
    assert not is_media_file("notes.txt")
    assert not is_media_file("mkv")


def test_format_size():
    assert format_size(0) == "0.0 GB"
    assert format_size(3 * 1024 ** 3 // 2) == "1.5 GB"


def test_build_breadcrumbs():
    crumbs = build_breadcrumbs("a/b")
    assert [(c.name, c.path) for c in crumbs] == [("Home", ""), ("a", "a"), ("b", "a/b")]


def test_lister_skips_non_media_and_sorts(tmp_path):
    for name in ["b.mp4", "a.webm", "c.txt"]:
        (tmp_path / name).write_bytes(b"data")
    (tmp_path / "Zeta").mkdir()
    (tmp_path / "Alpha").mkdir()

    tag_store = TagStore(tmp_path / "tags.json")
    tag_store.toggle_watched("b.mp4")
    lister = DirectoryLister(PathResolver(tmp_path), AccessPolicy(), tag_store)
    listing = lister.list("anyone", "")

    assert [f.name for f in listing.folders] == ["Alpha", "Zeta"]
    assert [f.name for f in listing.files] == ["a.webm", "b.mp4"]
    assert listing.files[1].watched is True
    assert listing.files[0].display_name == "a"


def test_missing_directory_lists_empty(tmp_path):
    lister = DirectoryLister(PathResolver(tmp_path), AccessPolicy(), TagStore(tmp_path / "t.json"))
    listing = lister.list("anyone", "does/not/exist")
    assert listing.current_path == "does/not/exist"
    assert listing.folders == [] and listing.files == []
