"""HTTP fetch of the published catalog."""

from __future__ import annotations

from time import perf_counter

import httpx

from tpmi.errors import NetworkError

DEFAULT_TIMEOUT_S = 5.0


class CatalogFetcher:
    """Thin single-attempt HTTP client for the catalog endpoint."""

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        client: httpx.Client | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self._owns_client = client is None
        self._http = client or httpx.Client(timeout=timeout_s, follow_redirects=True)
        self.last_duration_ms = 0

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> CatalogFetcher:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def fetch(self, url: str) -> str:
        """GET `url` once and return the decoded body.

        Every failure mode is raised as `NetworkError`.
        """
        started = perf_counter()
        try:
            response = self._http.get(url, timeout=self.timeout_s)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"catalog fetch failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.TimeoutException as exc:
            raise NetworkError(f"catalog fetch timed out after {self.timeout_s}s") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError(f"catalog fetch failed with transport error: {exc}") from exc
        finally:
            self.last_duration_ms = int((perf_counter() - started) * 1000)
        return response.text
