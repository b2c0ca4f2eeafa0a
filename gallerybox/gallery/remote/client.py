"""Picsum API client for the paged image listing."""

import logging
from typing import Any
from urllib.parse import urljoin

import requests

from gallerybox.core.errors import NetworkFailure, ServerFailure, UnknownFailure
from gallerybox.models.image import ImageRecord


logger = logging.getLogger(__name__)


class PicsumClient:
    """Client for the Picsum ``/v2/list`` endpoint and image downloads."""

    BASE_URL = "https://picsum.photos"
    LIST_ENDPOINT = "/v2/list"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or self.BASE_URL).rstrip("/") + "/"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "accept": "*/*",
                "user-agent": "gallerybox/0.1 (+https://picsum.photos)",
            }
        )

    def _get_full_url(self, endpoint: str) -> str:
        """Get full URL for API endpoint."""
        return urljoin(self.base_url, endpoint.lstrip("/"))

    def _get(self, url: str, **kwargs: Any) -> requests.Response:
        """Issue a GET and translate transport and HTTP errors."""
        try:
            response = self.session.get(url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NetworkFailure(f"Network connection failed: {e}", url=url) from e
        except requests.exceptions.RequestException as e:
            raise UnknownFailure(f"Unexpected error: {e}", url=url) from e

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise ServerFailure(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                url=url,
            ) from e
        return response

    def fetch_page(self, page: int, limit: int) -> list[ImageRecord]:
        """Fetch one 1-indexed page of image records.

        Records get ``position = (page - 1) * limit + i``.

        Raises:
            NetworkFailure: On connectivity problems
            ServerFailure: On non-success status or malformed payload
            UnknownFailure: On any other request error
        """
        if page < 1 or limit < 1:
            raise ValueError(f"page and limit must be positive, got {page}, {limit}")

        url = self._get_full_url(self.LIST_ENDPOINT)
        logger.debug("Fetching images page %d, limit %d", page, limit)
        response = self._get(url, params={"page": page, "limit": limit})

        try:
            payload = response.json()
        except ValueError as e:
            content_preview = response.text[:200] if response.text else "(empty)"
            raise ServerFailure(
                f"Invalid JSON response: {content_preview}",
                status_code=response.status_code,
            ) from e

        if not isinstance(payload, list):
            raise ServerFailure(
                f"Expected a JSON list, got {type(payload).__name__}",
                status_code=response.status_code,
            )

        offset = (page - 1) * limit
        try:
            records = [
                ImageRecord.from_api(item, position=offset + index)
                for index, item in enumerate(payload)
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ServerFailure(f"Malformed image payload: {e}") from e

        logger.debug("Fetched %d images from page %d", len(records), page)
        return records

    def download(self, url: str) -> bytes:
        """Download the bytes behind ``url``.

        Raises:
            NetworkFailure: On connectivity problems
            ServerFailure: On non-success status
        """
        logger.debug("Downloading %s", url)
        response = self._get(url)
        return response.content

    def close(self) -> None:
        self.session.close()
