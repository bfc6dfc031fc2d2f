from fastapi import HTTPException


class UploadError(HTTPException):
    """Raised when an uploaded file cannot be moved into the media library.

    Carries the upload handler's message both as ``message`` and as the
    HTTP ``detail`` so FastAPI renders it as a 400 response.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(status_code=status_code, detail=message)
        self.message = message

    def __str__(self) -> str:
        return self.message
