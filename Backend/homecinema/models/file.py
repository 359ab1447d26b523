from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """
    Base model for API payloads: snake_case in Python, camelCase on the wire.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Folder(ApiModel):
    """
    A sub directory shown in a listing.
    """
    type: Literal["folder"] = "folder"
    name: str
    path: str  # Path relative to the media root (e.g. "Movies/Action")
    modified: datetime
    media_count: int = 0  # Supported media files directly inside the folder
    subfolder_count: int = 0  # Visible folders directly inside the folder
    locked: bool = False  # Needs a folder key for the current user


class MediaFile(ApiModel):
    """
    A playable file shown in a listing.
    """
    type: Literal["file"] = "file"
    name: str
    display_name: str  # File name without extension
    path: str
    size: int  # File size in bytes
    size_formatted: str
    modified: datetime
    created: datetime
    extension: str  # Lowercase, with the leading dot (".mkv")
    tags: list[str] = []
    watched: bool = False


class Breadcrumb(ApiModel):
    name: str
    path: str


class DirectoryListing(ApiModel):
    """
    Represents the contents of a directory.
    """
    folders: list[Folder] = []
    files: list[MediaFile] = []
    current_path: str = ""


class BrowseResponse(DirectoryListing):
    breadcrumbs: list[Breadcrumb]
    all_tags: list[str]
    user: str


class FileInfo(ApiModel):
    name: str
    path: str
    size: int
    size_formatted: str
    created: datetime
    modified: datetime
    extension: str
    tags: list[str] = []
    watched: bool = False


class FilePathRequest(ApiModel):
    """
    Request body naming a media file (e.g. {"filePath": "Movies/Alien.mkv"}).
    """
    file_path: str = Field(min_length=1)


class TagRequest(FilePathRequest):
    tag: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CreateDirectoryRequest(ApiModel):
    """
    Request model for creating a new directory.
    """
    current_path: str = ""  # The relative path where the new folder will be created
    directory_name: str = Field(min_length=1)  # The name of the new folder
