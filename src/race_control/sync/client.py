"""REST client for the remote race-management authority.

Every failure is raised as ``TransportFailure`` (or ``ConflictError`` when a
result submission is rejected for duplicate runner numbers), so callers
never see ``requests`` exceptions.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import requests

from race_control.errors import ConflictError, TransportFailure
from race_control.sync.buffer import FinishEvent

logger = logging.getLogger(__name__)


def _error_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error") or body.get("message")
        if isinstance(error, str) and error:
            return error
    return None


class RaceApiClient:
    """Thin wrapper over the race-management REST API."""

    def __init__(
        self,
        server_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.server_url}/api{path}"

    def _request(self, method: str, path: str, json_body: Any = None) -> requests.Response:
        url = self._url(path)
        try:
            response = self.session.request(method, url, json=json_body, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise TransportFailure("Request timeout") from exc
        except requests.exceptions.ConnectionError as exc:
            raise TransportFailure(f"Connection error: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise TransportFailure(str(exc)) from exc

        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def _check(self, response: requests.Response, fallback: str) -> None:
        if 200 <= response.status_code < 300:
            return
        message = _error_message(response) or fallback
        raise TransportFailure(f"{message} (HTTP {response.status_code})", status_code=response.status_code)

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportFailure("Invalid JSON in server response", status_code=response.status_code) from exc

    # -- Races ------------------------------------------------------------

    def create_race(self, name: str, date: str) -> dict[str, Any]:
        response = self._request("POST", "/races", {"name": name, "date": date})
        self._check(response, "Failed to create race")
        return self._json(response)

    def list_races(self) -> list[dict[str, Any]]:
        response = self._request("GET", "/races")
        self._check(response, "Failed to load races")
        races = self._json(response)
        if not isinstance(races, list):
            raise TransportFailure("Unexpected race list payload")
        return races

    def get_race(self, race_id: int) -> dict[str, Any]:
        response = self._request("GET", f"/races/{race_id}")
        self._check(response, "Failed to load race details")
        return self._json(response)

    def start_race(self, race_id: int, start_time: int) -> dict[str, Any]:
        response = self._request("PUT", f"/races/{race_id}/start", {"startTime": start_time})
        self._check(response, "Failed to start race")
        return self._json(response)

    def end_race(self, race_id: int) -> dict[str, Any]:
        response = self._request("PUT", f"/races/{race_id}/end")
        self._check(response, "Failed to end race")
        return self._json(response)

    def delete_race(self, race_id: int) -> None:
        response = self._request("DELETE", f"/races/{race_id}")
        self._check(response, "Failed to delete race")

    # -- Results ----------------------------------------------------------

    def submit_results(self, race_id: int, events: Iterable[FinishEvent], device_id: str) -> None:
        """POST finish events for *race_id*.

        Raises:
            ConflictError: HTTP 400 listing runner numbers already recorded.
            TransportFailure: Any other non-2xx status or network failure.
        """
        payload = {
            "results": [event.to_payload() for event in events],
            "deviceId": device_id,
        }
        response = self._request("POST", f"/races/{race_id}/results", payload)

        if response.status_code == 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("duplicates"), list):
                try:
                    duplicates = [int(n) for n in body["duplicates"]]
                except (TypeError, ValueError) as exc:
                    raise TransportFailure("Invalid conflict payload", status_code=400) from exc
                raise ConflictError(duplicates)

        self._check(response, "Failed to synchronize results")

    def get_results(self, race_id: int) -> list[dict[str, Any]]:
        response = self._request("GET", f"/races/{race_id}/results")
        self._check(response, "Failed to load race results")
        results = self._json(response)
        if not isinstance(results, list):
            raise TransportFailure("Unexpected results payload")
        return results
