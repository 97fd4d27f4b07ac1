"""HTTP client for the catalog API.

Single attempt per call: no retry, no backoff. Failures surface as the
exceptions in ``app.errors``; the underlying httpx error is chained.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import CatalogError, ConflictError, NotFoundError, TransportError, ValidationError
from .schemas import ProductOut

DEFAULT_BASE_URL = "http://localhost:5000/api"
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."

logger = logging.getLogger("catalog.client")


def normalize_base_url(raw: str) -> str:
    """Strip the trailing slash and make sure the URL ends in ``/api``."""
    base = raw.rstrip("/")
    if not base.endswith("/api"):
        base += "/api"
    return base


class ProductForm(BaseModel):
    """Client-side check of a create/edit form before anything is sent."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    price: float = Field(gt=0)
    image: Optional[HttpUrl] = None

    @field_validator("image", mode="before")
    @classmethod
    def blank_image_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "price": self.price,
        }
        if self.image is not None:
            payload["image"] = str(self.image)
        return payload


def validate_form(**fields: Any) -> ProductForm:
    """Build a ``ProductForm`` or raise ``ValidationError`` with per-field messages."""
    try:
        return ProductForm(**fields)
    except PydanticValidationError as exc:
        errors: Dict[str, List[str]] = {}
        for err in exc.errors():
            key = str(err["loc"][0]) if err.get("loc") else "form"
            errors.setdefault(key, []).append(err["msg"])
        raise ValidationError(errors) from exc


@dataclass
class ProductPage:
    products: List[ProductOut]
    total_count: int
    page: int
    page_size: int


def _header_int(response: httpx.Response, name: str, default: int) -> int:
    try:
        return int(response.headers.get(name, default))
    except ValueError:
        return default


def describe_error(exc: BaseException) -> str:
    """Message suitable for display; generic when the error carries no detail."""
    if isinstance(exc, ValidationError) and exc.errors:
        details = "; ".join(f"{field}: {', '.join(msgs)}" for field, msgs in exc.errors.items())
        return f"{exc.message} {details}"
    if isinstance(exc, CatalogError) and exc.message:
        return exc.message
    return GENERIC_ERROR_MESSAGE


class ProductClient:
    """Thin synchronous wrapper over ``/api/products``."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        client: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = normalize_base_url(base_url)
        if client is None:
            kwargs: Dict[str, Any] = {"base_url": self._base_url, "headers": {"Content-Type": "application/json"}}
            if timeout is not None:
                kwargs["timeout"] = timeout
            self._client = httpx.Client(**kwargs)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False
        hooks = self._client.event_hooks
        request_hooks = list(hooks.get("request", []))
        if self._log_request not in request_hooks:
            request_hooks.append(self._log_request)
        hooks["request"] = request_hooks
        self._client.event_hooks = hooks

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ProductClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def _log_request(request: httpx.Request) -> None:
        logger.info("Making %s request to: %s", request.method, request.url.path)

    def _url(self, path: str) -> str:
        # Absolute, so injected clients with another base_url still hit the API
        return self._base_url + path

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, self._url(path), **kwargs)
        except httpx.RequestError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise TransportError(str(exc) or None) from exc

        if response.is_success:
            return response
        raise self._error_for(response)

    @staticmethod
    def _error_for(response: httpx.Response) -> CatalogError:
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            body = None
        message = body.get("message") if isinstance(body, dict) else None

        if response.status_code == 404:
            logger.error("Resource not found: %s", response.request.url.path)
            return NotFoundError(message)
        if response.status_code == 400 and isinstance(body, dict):
            if body.get("errors"):
                return ValidationError(body["errors"], message)
            if message == ConflictError.default_message:
                return ConflictError(message)
        if response.status_code >= 500:
            logger.error("Server error %s on %s", response.status_code, response.request.url.path)
        return TransportError(message, status_code=response.status_code)

    def get_products(self, search: str = "", page: int = 1, page_size: int = 10) -> ProductPage:
        params: Dict[str, Union[str, int]] = {}
        if search:
            params["search"] = search
        params["page"] = page
        params["pageSize"] = page_size

        response = self._send("GET", "/products", params=params)
        return ProductPage(
            products=[ProductOut.model_validate(item) for item in response.json()],
            total_count=_header_int(response, "X-Total-Count", 0),
            page=_header_int(response, "X-Page", page),
            page_size=_header_int(response, "X-Page-Size", page_size),
        )

    def get_product(self, pid: int) -> ProductOut:
        response = self._send("GET", f"/products/{pid}")
        return ProductOut.model_validate(response.json())

    def create_product(self, data: Union[ProductForm, Dict[str, Any]]) -> ProductOut:
        payload = data.to_payload() if isinstance(data, ProductForm) else dict(data)
        response = self._send("POST", "/products", json=payload)
        return ProductOut.model_validate(response.json())

    def update_product(self, pid: int, data: Union[ProductForm, Dict[str, Any]]) -> ProductOut:
        payload = data.to_payload() if isinstance(data, ProductForm) else dict(data)
        payload["id"] = pid
        response = self._send("PUT", f"/products/{pid}", json=payload)
        return ProductOut.model_validate(response.json())

    def delete_product(self, pid: int) -> str:
        response = self._send("DELETE", f"/products/{pid}")
        return response.json().get("message", "")
