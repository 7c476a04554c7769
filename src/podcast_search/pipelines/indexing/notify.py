"""Ask the downstream query service to reload the persisted index."""

from __future__ import annotations

from collections.abc import Mapping

import requests

from ...utils.logging import get_logger

__all__ = ["IndexRefreshNotifier"]

LOGGER = get_logger(__name__)

REFRESH_PAYLOAD = {"forceFreshDBFileDownload": True}


class IndexRefreshNotifier:
    """Fire-and-forget POST to ``refresh_url``; failures are logged, never raised."""

    def __init__(
        self,
        refresh_url: str | None,
        *,
        timeout_seconds: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.refresh_url = refresh_url
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, object],
        *,
        session: requests.Session | None = None,
    ) -> IndexRefreshNotifier:
        section = config.get("indexing")
        url = None
        timeout = 5.0
        if isinstance(section, Mapping):
            url = section.get("refresh_url") or None
            timeout = float(section.get("refresh_timeout_seconds", timeout))
        return cls(str(url) if url else None, timeout_seconds=timeout, session=session)

    def notify(self) -> bool:
        """Return True when the refresh request was accepted."""
        if not self.refresh_url:
            LOGGER.info("No refresh URL configured; skipping index refresh notification.")
            return False
        try:
            response = self._session.post(
                self.refresh_url,
                json=REFRESH_PAYLOAD,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            LOGGER.error("Failed to trigger index refresh at %s: %s", self.refresh_url, exc)
            return False

        if response.status_code >= 400:
            LOGGER.error(
                "Index refresh at %s returned HTTP %s: %s",
                self.refresh_url,
                response.status_code,
                response.text[:200],
            )
            return False
        LOGGER.info("Triggered index refresh at %s.", self.refresh_url)
        return True
