import logging
from typing import Optional

from fastapi import APIRouter, Depends

from homecinema.api.deps import get_folder_key, get_policy, get_resolver, get_tag_store
from homecinema.core.errors import InvalidPath
from homecinema.core.security import get_current_user
from homecinema.models.file import FilePathRequest, TagRequest
from homecinema.services.access import AccessPolicy
from homecinema.services.paths import PathResolver
from homecinema.services.tags import TagStore

logger = logging.getLogger(__name__)

router = APIRouter()


def tag_key(identity: str, file_path: str, resolver: PathResolver, policy: AccessPolicy,
            folder_key: Optional[str]) -> str:
    """
    Normalize a tagged file path into the key used by the tag store.
    Files the user cannot reach cannot be tagged either.
    """
    relative = resolver.sanitize(file_path)
    if not relative:
        raise InvalidPath("File path is required")
    policy.check(identity, relative, folder_key)
    return relative


@router.post("/toggle-watched")
def toggle_watched(
        body: FilePathRequest,
        user: str = Depends(get_current_user),
        resolver: PathResolver = Depends(get_resolver),
        policy: AccessPolicy = Depends(get_policy),
        tag_store: TagStore = Depends(get_tag_store),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    key = tag_key(user, body.file_path, resolver, policy, folder_key)
    watched = tag_store.toggle_watched(key)
    logger.info("User %s toggled watched status for: %s (%s)", user, key, watched)
    return {"success": True, "watched": watched, "tags": tag_store.get(key)}


@router.post("/add-tag")
def add_tag(
        body: TagRequest,
        user: str = Depends(get_current_user),
        resolver: PathResolver = Depends(get_resolver),
        policy: AccessPolicy = Depends(get_policy),
        tag_store: TagStore = Depends(get_tag_store),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    key = tag_key(user, body.file_path, resolver, policy, folder_key)
    tags = tag_store.add(key, body.tag)
    logger.info('User %s added tag "%s" to: %s', user, body.tag, key)
    return {"success": True, "tags": tags}


@router.delete("/remove-tag")
def remove_tag(
        body: TagRequest,
        user: str = Depends(get_current_user),
        resolver: PathResolver = Depends(get_resolver),
        policy: AccessPolicy = Depends(get_policy),
        tag_store: TagStore = Depends(get_tag_store),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    key = tag_key(user, body.file_path, resolver, policy, folder_key)
    tags = tag_store.remove(key, body.tag)
    logger.info('User %s removed tag "%s" from: %s', user, body.tag, key)
    return {"success": True, "tags": tags}
