import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from homecinema.api.deps import (
    get_folder_key,
    get_lister,
    get_policy,
    get_resolver,
    get_tag_store,
)
from homecinema.core.errors import AccessDenied, NotADirectory
from homecinema.core.security import get_current_user
from homecinema.models.file import BrowseResponse, CreateDirectoryRequest
from homecinema.services.access import AccessPolicy
from homecinema.services.library import DirectoryLister, build_breadcrumbs, join_relative
from homecinema.services.paths import PathResolver
from homecinema.services.tags import TagStore

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_target_directory(identity: str, user_path: str, resolver: PathResolver,
                         policy: AccessPolicy, folder_key: Optional[str]) -> tuple[str, Path]:
    """
    Resolve a directory the user wants to write into.
    Hidden or locked folders are refused just like for reading.
    """
    relative = resolver.sanitize(user_path)
    policy.check(identity, relative, folder_key)
    real_path = resolver.resolve(relative)
    if not real_path.is_dir():
        raise NotADirectory("Target path is not a directory")
    return relative, real_path


@router.get("/browse", response_model=BrowseResponse)
def browse_directory(
        # Query parameter default is "" (Root directory)
        path: str = Query(default="", description="Relative path to browse"),
        user: str = Depends(get_current_user),
        lister: DirectoryLister = Depends(get_lister),
        tag_store: TagStore = Depends(get_tag_store),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    List the folders and media files of a directory in the media root.
    """
    listing = lister.list(user, path, folder_key)
    return BrowseResponse(
        folders=listing.folders,
        files=listing.files,
        current_path=listing.current_path,
        breadcrumbs=build_breadcrumbs(listing.current_path),
        all_tags=tag_store.all_tags(),
        user=user,
    )


@router.post("/upload")
async def upload_files(
        current_path: str = Form(default="", alias="currentPath", description="Target relative path for upload"),
        files: list[UploadFile] = File(description="List of files to upload"),
        user: str = Depends(get_current_user),
        resolver: PathResolver = Depends(get_resolver),
        policy: AccessPolicy = Depends(get_policy),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Store uploaded files in a directory of the media root.
    Existing files are never overwritten.
    """
    relative, destination = get_target_directory(user, current_path, resolver, policy, folder_key)
    uploaded_details = []

    for file in files:
        filename = Path(file.filename or "").name
        if filename in ("", ".", ".."):
            uploaded_details.append(f"{file.filename!r} (Skipped: Invalid filename)")
            await file.close()
            continue

        file_path = destination.joinpath(filename)
        if file_path.exists():
            # Simple handling: Skip if file exists
            uploaded_details.append(f"{filename} (Skipped: Already exists)")
            await file.close()
            continue

        try:
            with open(file_path, "wb") as buffer:
                while contents := await file.read(UPLOAD_CHUNK_SIZE):
                    buffer.write(contents)
            uploaded_details.append(f"{filename} -> {join_relative(relative, filename)}")
            logger.info("User %s uploaded: %s", user, join_relative(relative, filename))
        except OSError as e:
            logger.error("Upload of %s failed: %s", filename, e)
            if file_path.exists():
                file_path.unlink()
            uploaded_details.append(f"{filename} (Failed: {e.strerror or 'write error'})")
        finally:
            await file.close()  # Ensure file handle is closed

    return {
        "message": "Upload processing complete",
        "details": uploaded_details,
    }


@router.post("/create-directory")
def create_directory(
        request: CreateDirectoryRequest,
        user: str = Depends(get_current_user),
        resolver: PathResolver = Depends(get_resolver),
        policy: AccessPolicy = Depends(get_policy),
        folder_key: Optional[str] = Depends(get_folder_key),
):
    """
    Create a new directory inside an existing one.
    """
    name = request.directory_name.strip()
    # Ensure name does not contain traversal characters
    if not name or ".." in name or "/" in name or "\\" in name or "\x00" in name:
        raise HTTPException(status_code=400, detail="Invalid folder name")

    relative, parent_dir = get_target_directory(user, request.current_path, resolver, policy, folder_key)
    new_relative = join_relative(relative, name)
    if not policy.is_accessible(user, new_relative):
        raise AccessDenied()

    new_folder_path = parent_dir.joinpath(name)
    if new_folder_path.exists():
        raise HTTPException(
            status_code=409,
            detail="Folder or file with this name already exists"
        )

    try:
        os.makedirs(new_folder_path)
    except PermissionError:
        raise HTTPException(status_code=403, detail="Permission denied to create folder here")
    except OSError as e:
        logger.error("Error creating folder %s: %s", new_relative, e)
        raise HTTPException(status_code=500, detail="Error creating folder")

    logger.info("User %s created folder: %s", user, new_relative)
    return {
        "message": "Folder created successfully",
        "path": new_relative,
    }
