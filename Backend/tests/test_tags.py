import json

from fastapi.testclient import TestClient

from homecinema.main import create_app
from homecinema.services.tags import WATCHED_TAG, TagStore

from conftest import FAMILY, OWNER

FILM = "Movies/ActionFilm.mp4"


def test_missing_file_loads_empty(tmp_path):
    store = TagStore(tmp_path / "tags.json")
    store.load()
    assert store.get(FILM) == []
    assert store.all_tags() == []


def test_corrupted_file_loads_empty(tmp_path):
    tags_file = tmp_path / "tags.json"
    tags_file.write_text("{not json")
    store = TagStore(tags_file)
    store.load()
    assert store.all_tags() == []


def test_add_remove_and_persist(tmp_path):
    tags_file = tmp_path / "tags.json"
    store = TagStore(tags_file)
    store.load()

    assert store.add(FILM, "favorite") == ["favorite"]
    assert store.add(FILM, "favorite") == ["favorite"]
    assert store.add(FILM, "action") == ["favorite", "action"]
    assert json.loads(tags_file.read_text()) == {FILM: ["favorite", "action"]}

    assert store.remove(FILM, "favorite") == ["action"]
    assert store.remove(FILM, "missing") == ["action"]
    assert store.remove(FILM, "action") == []
    # Files without tags are dropped from the document
    assert json.loads(tags_file.read_text()) == {}


def test_toggle_watched(tmp_path):
    store = TagStore(tmp_path / "tags.json")
    assert store.toggle_watched(FILM) is True
    assert WATCHED_TAG in store.get(FILM)
    assert store.toggle_watched(FILM) is False
    assert WATCHED_TAG not in store.get(FILM)
    assert store.get(FILM) == []


def test_all_tags_is_sorted_and_unique(tmp_path):
    store = TagStore(tmp_path / "tags.json")
    store.add("a.mp4", "zeta")
    store.add("b.mp4", "alpha")
    store.add("b.mp4", "zeta")
    assert store.all_tags() == ["alpha", "zeta"]


def test_save_failure_keeps_memory_state(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = TagStore(blocker / "tags.json")
    assert store.add(FILM, "favorite") == ["favorite"]
    assert store.get(FILM) == ["favorite"]


def test_tag_endpoints(client):
    response = client.post("/api/add-tag", json={"filePath": FILM, "tag": " favorite "}, auth=OWNER)
    assert response.status_code == 200
    assert response.json() == {"success": True, "tags": ["favorite"]}

    response = client.post("/api/toggle-watched", json={"filePath": FILM}, auth=OWNER)
    assert response.json() == {"success": True, "watched": True, "tags": ["favorite", "watched"]}

    response = client.request("DELETE", "/api/remove-tag", json={"filePath": FILM, "tag": "favorite"}, auth=OWNER)
    assert response.json() == {"success": True, "tags": ["watched"]}

    listing = client.get("/api/browse", params={"path": "Movies"}, auth=OWNER).json()
    assert listing["files"][0]["tags"] == ["watched"]
    assert listing["files"][0]["watched"] is True
    assert listing["allTags"] == ["watched"]


def test_tag_paths_are_normalized(client):
    client.post("/api/add-tag", json={"filePath": "/Movies//ActionFilm.mp4", "tag": "x"}, auth=OWNER)
    info = client.get(f"/api/info/{FILM}", auth=OWNER).json()
    assert info["tags"] == ["x"]


def test_blank_tag_is_rejected(client):
    response = client.post("/api/add-tag", json={"filePath": FILM, "tag": "   "}, auth=OWNER)
    assert response.status_code == 422


def test_tagging_hidden_file_is_denied(client):
    response = client.post(
        "/api/add-tag", json={"filePath": ".private/secret.mp4", "tag": "x"}, auth=FAMILY
    )
    assert response.status_code == 403


def test_tags_survive_restart(settings):
    with TestClient(create_app(settings)) as first:
        first.post("/api/add-tag", json={"filePath": FILM, "tag": "favorite"}, auth=OWNER)
        first.post("/api/toggle-watched", json={"filePath": FILM}, auth=OWNER)

    with TestClient(create_app(settings)) as second:
        listing = second.get("/api/browse", params={"path": "Movies"}, auth=OWNER).json()
    film = listing["files"][0]
    assert film["tags"] == ["favorite", "watched"]
    assert film["watched"] is True


def test_explicit_save_writes_current_state(tmp_path):
    tags_file = tmp_path / "nested" / "tags.json"
    store = TagStore(tags_file)
    store.save()
    assert json.loads(tags_file.read_text()) == {}

    store.add(FILM, "favorite")
    reloaded = TagStore(tags_file)
    reloaded.load()
    assert reloaded.get(FILM) == ["favorite"]
