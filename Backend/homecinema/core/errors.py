"""
Error taxonomy of the media server.

Every error is an HTTPException, so services raise them directly and FastAPI
turns them into responses. Messages are relative to the media root and never
carry absolute filesystem paths.
"""
from fastapi import HTTPException, status


class InvalidPath(HTTPException):
    def __init__(self, detail: str = "Invalid path request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PathEscape(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access Denied: Path traversal detected",
        )


class AccessDenied(HTTPException):
    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Path does not exist"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class NotAFile(HTTPException):
    def __init__(self, detail: str = "Path is not a file"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotADirectory(HTTPException):
    def __init__(self, detail: str = "Requested path is not a directory"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class RangeNotSatisfiable(HTTPException):
    """
    Raised for a Range header outside the file. Rendered without a body,
    only a `Content-Range: bytes */<size>` header.
    """

    def __init__(self, file_size: int):
        super().__init__(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail="Range Not Satisfiable",
            headers={"Content-Range": f"bytes */{file_size}"},
        )
        self.file_size = file_size


class UpstreamToolFailure(HTTPException):
    def __init__(self, detail: str = "External tool failed"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class StreamFailure(HTTPException):
    def __init__(self, detail: str = "Stream error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
