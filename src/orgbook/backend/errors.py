"""Errors raised by the backend client."""

from typing import Optional

import httpx


class BackendError(Exception):
    """A request to the backend came back with an error status."""

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.method = method
        self.url = url

    @classmethod
    def from_response(cls, response: httpx.Response) -> "BackendError":
        """Build an error from a failed response.

        The backend reports problems in a JSON ``detail`` field; fall back to
        the status line when there is none.
        """
        detail = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("detail"):
            detail = body["detail"]
            if not isinstance(detail, str):
                detail = str(detail)
        if not detail:
            detail = f"HTTP {response.status_code}: {response.reason_phrase}"

        try:
            method, url = response.request.method, str(response.request.url)
        except RuntimeError:
            # Response built without a request, e.g. in tests
            method, url = None, None

        error_cls = NotFoundError if response.status_code == 404 else cls
        return error_cls(detail, status_code=response.status_code, method=method, url=url)


class NotFoundError(BackendError):
    """The requested record does not exist."""
