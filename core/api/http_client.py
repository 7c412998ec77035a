"""
core.api.http_client

Thin wrapper around ``httpx.Client`` shared by every vendor integration
(avatar streams, speech-to-text).

Two calling styles are offered:

  - ``post_json`` / ``post_multipart``: decode the JSON response and raise
    ``VendorError`` on a non-2xx status. Used where a partial result is
    unusable (creating a stream, transcribing audio).
  - ``post`` / ``delete``: return ``True``/``False`` and log a warning on a
    non-2xx status. Used for "send"-style calls.

Transport failures and 5xx answers are retried with exponential backoff.
The ``Authorization`` header is never written to the logs.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from exceptions.exceptions import TransientNetworkError, VendorError


logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Retry configuration
# -------------------------------------------------------------------


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    backoff_multiplier: float = 2.0


def _is_retryable_status(status_code: int) -> bool:
    return 500 <= status_code < 600


def _preview(body: str, limit: int = 2000) -> str:
    if len(body) <= limit:
        return body
    return body[:limit] + f"... ({len(body)} chars)"


# -------------------------------------------------------------------
# Client
# -------------------------------------------------------------------


class VendorHttpClient:
    """Authenticated JSON client for one vendor base URL.

    Parameters
    ----------
    base_url:
        Vendor API root, e.g. ``https://api.d-id.com``.
    auth_header:
        Full ``Authorization`` header value (``"Basic ..."``/``"Bearer ..."``),
        or None for unauthenticated endpoints.
    timeout:
        Per-request timeout in seconds.
    retry:
        Retry policy for transport failures and 5xx answers.
    transport:
        Optional ``httpx`` transport; tests pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        auth_header: Optional[str] = None,
        timeout: float = 30.0,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.retry = retry or RetryConfig()
        self._auth_header = auth_header
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._auth_header:
            headers["Authorization"] = self._auth_header
        return headers

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send one request, retrying transport failures and 5xx answers.

        Returns the last response received (which may still be a 5xx once
        the attempts are exhausted).

        Raises
        ------
        TransientNetworkError
            If every attempt failed at the transport level.
        """
        backoff = self.retry.backoff_base
        attempts = self.retry.max_attempts

        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(
                    method, path, headers=self._headers(), **kwargs
                )
            except httpx.TransportError as exc:
                if attempt == attempts:
                    logger.error(
                        "[HTTP] %s %s failed after %d attempt(s): %s",
                        method, path, attempts, exc,
                    )
                    raise TransientNetworkError(path, attempts, exc) from exc
                logger.warning(
                    "[HTTP] %s %s attempt %d failed: %s, retrying in %.1fs",
                    method, path, attempt, exc, backoff,
                )
            else:
                if not _is_retryable_status(response.status_code) or attempt == attempts:
                    return response
                logger.warning(
                    "[HTTP] %s %s attempt %d returned %d, retrying in %.1fs",
                    method, path, attempt, response.status_code, backoff,
                )

            time.sleep(backoff)
            backoff = min(backoff * self.retry.backoff_multiplier, self.retry.backoff_max)

        # Unreachable: the loop either returns or raises on the last attempt.
        raise RuntimeError("Retry logic error")

    def _request_json(self, method: str, path: str, payload: Any) -> httpx.Response:
        if payload is not None:
            logger.debug("[HTTP] %s %s: %s", method, path, json.dumps(payload, default=str))
            response = self._send(method, path, json=payload)
        else:
            logger.debug("[HTTP] %s %s", method, path)
            response = self._send(method, path)
        logger.debug(
            "[HTTP] Response %d from %s: %s",
            response.status_code, path, _preview(response.text),
        )
        return response

    @staticmethod
    def _decode(path: str, response: httpx.Response) -> Dict[str, Any]:
        if not response.is_success:
            raise VendorError(path, response.status_code, _preview(response.text))
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise VendorError(
                path,
                response.status_code,
                _preview(response.text),
                reason=f"invalid JSON: {e}",
            )
        if not isinstance(data, dict):
            raise VendorError(
                path,
                response.status_code,
                _preview(response.text),
                reason="expected a JSON object",
            )
        return data

    def _report(self, method: str, path: str, response: httpx.Response) -> bool:
        if not response.is_success:
            logger.warning(
                "[HTTP] %s %s failed with status %d, response: %s",
                method, path, response.status_code, _preview(response.text),
            )
        return response.is_success

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def post_json(self, path: str, payload: Any) -> Dict[str, Any]:
        """POST ``payload`` as JSON and return the decoded JSON object.

        Raises
        ------
        VendorError
            On a non-2xx status or an undecodable body.
        TransientNetworkError
            If the vendor could not be reached.
        """
        response = self._request_json("POST", path, payload)
        return self._decode(path, response)

    def post(self, path: str, payload: Any) -> bool:
        """POST ``payload`` as JSON and report whether the vendor accepted it."""
        response = self._request_json("POST", path, payload)
        return self._report("POST", path, response)

    def delete(self, path: str, payload: Any = None) -> bool:
        """DELETE with an optional JSON body and report the vendor's verdict."""
        response = self._request_json("DELETE", path, payload)
        return self._report("DELETE", path, response)

    def post_multipart(
        self,
        path: str,
        files: Dict[str, Any],
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST a multipart form and return the decoded JSON object."""
        logger.debug("[HTTP] POST %s (multipart: %s)", path, ", ".join(files))
        response = self._send("POST", path, files=files, data=data)
        logger.debug(
            "[HTTP] Response %d from %s: %s",
            response.status_code, path, _preview(response.text),
        )
        return self._decode(path, response)
