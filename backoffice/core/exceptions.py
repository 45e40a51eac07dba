from fastapi import HTTPException, status

class BaseAppException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

    def __str__(self) -> str:
        return str(self.detail)

class ValidationError(BaseAppException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class NotFoundError(BaseAppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class GenerationConflict(BaseAppException):
    """Barcode uniqueness could not be established within the retry budget"""
    def __init__(self, detail: str = "Could not generate a unique barcode"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class StoreError(BaseAppException):
    """Entity store call failed; detail carries the driver message"""
    def __init__(self, detail: str = "Entity store operation failed"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
