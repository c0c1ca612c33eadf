from typing import Generic, TypeVar

from app.shared.api.utils import ApiSuccess

T = TypeVar("T")


class ApiOut(ApiSuccess, Generic[T]):
    """Success envelope: {"version", "success": true, "results": T}."""

    results: T  # type: ignore[valid-type]
