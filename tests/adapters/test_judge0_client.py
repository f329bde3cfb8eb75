from __future__ import annotations

import http.client
import json
from urllib import error

import pytest

from hrassessment.adapters.judge0 import Judge0Client, Judge0Config, get_language_id, supported_languages
from hrassessment.core.judging import CaseJudge
from hrassessment.errors import ExternalServiceError, InputValidationError
from hrassessment.schemas import JudgeCase


class FakeResponse:
    def __init__(self, payload) -> None:
        self._payload = payload

    def read(self) -> bytes:
        if isinstance(self._payload, BaseException):
            raise self._payload
        if isinstance(self._payload, bytes):
            return self._payload
        raw = self._payload if isinstance(self._payload, str) else json.dumps(self._payload)
        return raw.encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


class FakeOpener:
    def __init__(self, responses) -> None:
        self._responses = list(responses)
        self.requests = []

    def __call__(self, req, timeout=None):
        self.requests.append((req, timeout))
        item = self._responses.pop(0)
        if isinstance(item, error.URLError):
            raise item
        return FakeResponse(item)


def build_client(responses, **config) -> tuple[Judge0Client, FakeOpener, list[float]]:
    opener = FakeOpener(responses)
    sleeps: list[float] = []
    client = Judge0Client(config=Judge0Config(api_key="key", **config), sleep=sleeps.append, opener=opener)
    return client, opener, sleeps


def test_language_table():
    assert get_language_id("Python") == 71
    assert get_language_id("cpp") == 54
    assert {"name": "rust", "id": 73} in supported_languages()
    with pytest.raises(InputValidationError):
        get_language_id("cobol")


def test_execute_submits_then_polls_until_done():
    client, opener, sleeps = build_client(
        [
            {"token": "tok-1"},
            {"status": {"id": 2, "description": "Processing"}},
            {"status": {"id": 3, "description": "Accepted"}, "stdout": "3\n", "time": "0.012", "memory": 2048},
        ]
    )

    result = client.execute("print(3)", 71, "1 2")

    assert result.stdout == "3\n"
    assert result.status == "success"
    assert result.time_ms == pytest.approx(12.0)
    assert result.memory == 2048
    assert sleeps == [1.0, 1.0]
    submit_request = opener.requests[0][0]
    body = json.loads(submit_request.data.decode("utf-8"))
    assert body["language_id"] == 71
    assert body["stdin"] == "1 2"
    assert "wait=false" in submit_request.full_url
    assert submit_request.get_header("X-rapidapi-key") == "key"


@pytest.mark.parametrize(
    "status_id,label",
    [(4, "failed"), (5, "time-limit-exceeded"), (6, "compilation-error"), (11, "error")],
)
def test_status_mapping(status_id, label):
    client, _, _ = build_client([{"token": "t"}, {"status": {"id": status_id}}])
    assert client.execute("x", 71).status == label


def test_polling_gives_up():
    client, _, sleeps = build_client([{"token": "t"}] + [{"status": {"id": 1}}] * 3, max_polls=3)

    with pytest.raises(ExternalServiceError) as excinfo:
        client.execute("x", 71)
    assert "timeout" in str(excinfo.value)
    assert len(sleeps) == 3


def test_network_and_parse_failures():
    client, _, _ = build_client([error.URLError("refused")])
    with pytest.raises(ExternalServiceError):
        client.execute("x", 71)

    client, _, _ = build_client(["not json"])
    with pytest.raises(ExternalServiceError):
        client.execute("x", 71)

    client, _, _ = build_client([{"error": "quota"}])
    with pytest.raises(ExternalServiceError):
        client.execute("x", 71)


@pytest.mark.parametrize(
    "failure",
    [
        TimeoutError("The read operation timed out"),
        http.client.IncompleteRead(b"{\"tok"),
        ConnectionResetError("reset by peer"),
        b"\xff\xfe",
    ],
)
def test_response_read_failures_are_service_errors(failure):
    client, _, _ = build_client([failure])

    with pytest.raises(ExternalServiceError):
        client.execute("x", 71)


def test_read_timeout_fails_only_its_case():
    client, _, _ = build_client(
        [
            {"token": "t1"},
            {"status": {"id": 3}, "stdout": "3\n", "time": "0.01"},
            {"token": "t2"},
            TimeoutError("The read operation timed out"),
        ]
    )
    cases = [
        JudgeCase(case_type="visible", ordinal=1, input="1 2", expected_output="3"),
        JudgeCase(case_type="hidden", ordinal=1, input="10 20", expected_output="30"),
    ]

    results = CaseJudge(client).judge("print(sum)", 71, cases)

    assert [result.passed for result in results] == [True, False]
    assert results[1].status == "error"
    assert "timed out" in results[1].error
