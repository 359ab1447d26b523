from typing import Optional

from fastapi import Request

from homecinema.core.config import Settings
from homecinema.services.access import AccessPolicy
from homecinema.services.library import DirectoryLister
from homecinema.services.paths import PathResolver
from homecinema.services.streaming import RangeStreamer
from homecinema.services.subtitles import SubtitleBridge
from homecinema.services.tags import TagStore

FOLDER_KEY_HEADER = "X-Folder-Key"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_resolver(request: Request) -> PathResolver:
    return request.app.state.resolver


def get_policy(request: Request) -> AccessPolicy:
    return request.app.state.policy


def get_tag_store(request: Request) -> TagStore:
    return request.app.state.tag_store


def get_lister(request: Request) -> DirectoryLister:
    return request.app.state.lister


def get_streamer(request: Request) -> RangeStreamer:
    return request.app.state.streamer


def get_subtitles(request: Request) -> SubtitleBridge:
    return request.app.state.subtitles


def get_folder_key(request: Request) -> Optional[str]:
    """
    Key for gated folders. Media elements cannot set headers, so a `key`
    query parameter is accepted as well.
    """
    return request.headers.get(FOLDER_KEY_HEADER) or request.query_params.get("key")
