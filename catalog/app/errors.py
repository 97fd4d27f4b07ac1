from typing import Dict, List, Optional


class CatalogError(Exception):
    """Base for every failure surfaced by the API or the client."""

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(CatalogError):
    status_code = 400
    default_message = "One or more validation errors occurred."

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"message": self.message, "errors": self.errors}


class NotFoundError(CatalogError):
    status_code = 404
    default_message = "Product not found"


class ConflictError(CatalogError):
    """Path id and body id disagree on update. A client error, not a fault."""

    status_code = 400
    default_message = "Product ID mismatch"


class TransportError(CatalogError):
    """Network failure or an HTTP status the client has no mapping for."""

    default_message = "Unable to reach the product service"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
