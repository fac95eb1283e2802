"""Tests for the race-management REST client"""
from unittest.mock import MagicMock, Mock

import pytest
import requests

from race_control.errors import ConflictError, TransportFailure
from race_control.sync.buffer import FinishEvent
from race_control.sync.client import RaceApiClient


def make_response(status_code: int, body=None):
    response = Mock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return RaceApiClient("http://race.test/", timeout=5, session=session)


class TestRequests:
    """Each operation hits the documented method and path"""

    def test_create_race(self, client, session):
        session.request.return_value = make_response(201, {"id": 1, "name": "Parkrun"})

        race = client.create_race("Parkrun", "2026-10-18")

        assert race["id"] == 1
        session.request.assert_called_once_with(
            "POST", "http://race.test/api/races", json={"name": "Parkrun", "date": "2026-10-18"}, timeout=5
        )

    def test_list_races(self, client, session):
        session.request.return_value = make_response(200, [{"id": 1}, {"id": 2}])
        assert [r["id"] for r in client.list_races()] == [1, 2]
        session.request.assert_called_once_with("GET", "http://race.test/api/races", json=None, timeout=5)

    def test_get_race(self, client, session):
        session.request.return_value = make_response(200, {"id": 3, "status": "active", "startTime": 1000})
        assert client.get_race(3)["status"] == "active"
        session.request.assert_called_once_with("GET", "http://race.test/api/races/3", json=None, timeout=5)

    def test_start_race(self, client, session):
        session.request.return_value = make_response(200, {"id": 3, "status": "active"})
        client.start_race(3, 1_000_000)
        session.request.assert_called_once_with(
            "PUT", "http://race.test/api/races/3/start", json={"startTime": 1_000_000}, timeout=5
        )

    def test_end_race(self, client, session):
        session.request.return_value = make_response(200, {"id": 3, "status": "completed"})
        assert client.end_race(3)["status"] == "completed"
        session.request.assert_called_once_with("PUT", "http://race.test/api/races/3/end", json=None, timeout=5)

    def test_delete_race_accepts_empty_204(self, client, session):
        session.request.return_value = make_response(204)
        client.delete_race(3)
        session.request.assert_called_once_with("DELETE", "http://race.test/api/races/3", json=None, timeout=5)

    def test_get_results(self, client, session):
        rows = [{"runnerNumber": 5, "finishTime": 1_005_000, "raceTime": 5000}]
        session.request.return_value = make_response(200, rows)
        assert client.get_results(3) == rows


class TestSubmitResults:
    """Test submit_results() outcome mapping"""

    def test_payload_contains_only_runner_and_finish(self, client, session):
        session.request.return_value = make_response(200, {"message": "ok"})

        client.submit_results(3, [FinishEvent(5, 1_005_000), FinishEvent(7, 1_007_000)], "device_x")

        session.request.assert_called_once_with(
            "POST",
            "http://race.test/api/races/3/results",
            json={
                "results": [
                    {"runnerNumber": 5, "finishTime": 1_005_000},
                    {"runnerNumber": 7, "finishTime": 1_007_000},
                ],
                "deviceId": "device_x",
            },
            timeout=5,
        )

    def test_conflict_on_400_with_duplicates(self, client, session):
        session.request.return_value = make_response(
            400, {"error": "Duplicate runner numbers", "duplicates": [5, 7]}
        )

        with pytest.raises(ConflictError) as exc_info:
            client.submit_results(3, [FinishEvent(5, 1)], "device_x")

        assert exc_info.value.duplicates == [5, 7]

    def test_400_without_duplicates_is_transport_failure(self, client, session):
        session.request.return_value = make_response(400, {"error": "Invalid results"})

        with pytest.raises(TransportFailure) as exc_info:
            client.submit_results(3, [FinishEvent(5, 1)], "device_x")

        assert exc_info.value.status_code == 400
        assert "Invalid results" in exc_info.value.reason

    @pytest.mark.parametrize("duplicates", [["seven"], [None], [{"n": 7}]])
    def test_malformed_duplicates_is_transport_failure(self, client, session, duplicates):
        session.request.return_value = make_response(400, {"duplicates": duplicates})

        with pytest.raises(TransportFailure, match="Invalid conflict payload"):
            client.submit_results(3, [FinishEvent(5, 1)], "device_x")

    def test_500_is_transport_failure(self, client, session):
        session.request.return_value = make_response(500)

        with pytest.raises(TransportFailure) as exc_info:
            client.submit_results(3, [FinishEvent(5, 1)], "device_x")

        assert exc_info.value.status_code == 500
        assert "HTTP 500" in str(exc_info.value)


class TestTransportErrors:
    """requests exceptions never escape the client"""

    def test_timeout(self, client, session):
        session.request.side_effect = requests.exceptions.Timeout()
        with pytest.raises(TransportFailure, match="Request timeout"):
            client.list_races()

    def test_connection_error(self, client, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(TransportFailure, match="Connection error"):
            client.get_race(1)

    def test_invalid_json(self, client, session):
        session.request.return_value = make_response(200)
        with pytest.raises(TransportFailure, match="Invalid JSON"):
            client.get_race(1)

    def test_unexpected_list_payload(self, client, session):
        session.request.return_value = make_response(200, {"races": []})
        with pytest.raises(TransportFailure):
            client.list_races()
