from __future__ import annotations

import threading

import pendulum
import pytest

from hrassessment.errors import BusinessRuleViolation, NotFoundError
from hrassessment.repository import InMemoryRepository
from hrassessment.schemas import Attempt, CandidateAssessment


def build_attempt(attempt_id: str) -> Attempt:
    return Attempt(
        attempt_id=attempt_id,
        session_id="s-1",
        question_id="p1",
        user_id="u-1",
        code="x",
        language="python",
        language_id=71,
        mode="run",
        attempt_number=1,
        created_at=pendulum.datetime(2026, 3, 2, tz="UTC"),
    )


def test_attempt_numbers_stay_unique_under_concurrency():
    repository = InMemoryRepository()

    threads = [threading.Thread(target=repository.append_attempt, args=(build_attempt(f"a{i}"),)) for i in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    numbers = [attempt.attempt_number for attempt in repository.attempts("s-1", "p1")]
    assert numbers == list(range(1, 21))


def test_replace_attempt_requires_existing_id():
    repository = InMemoryRepository()
    stored = repository.append_attempt(build_attempt("a1"))

    replaced = repository.replace_attempt(stored.model_copy(update={"is_final_submission": True}))

    assert repository.get_attempt("s-1", "p1", "a1") == replaced
    with pytest.raises(NotFoundError):
        repository.replace_attempt(build_attempt("ghost"))


def test_find_assessment_returns_latest_attempt():
    repository = InMemoryRepository()
    for number in (1, 2):
        repository.add_assessment(
            CandidateAssessment(
                assessment_id=f"a-{number}",
                candidate_id="c-1",
                candidate_email="ada@example.com",
                job_id="job-1",
                attempt_number=number,
            )
        )

    assert repository.find_assessment(" ADA@example.com", "job-1").assessment_id == "a-2"
    assert repository.find_assessment("bob@example.com", "job-1") is None
    with pytest.raises(BusinessRuleViolation):
        repository.add_assessment(repository.get_assessment("a-1"))


def test_unknown_ids_raise_not_found():
    repository = InMemoryRepository()
    for lookup in (repository.get_job, repository.get_set, repository.get_assessment, repository.get_session):
        with pytest.raises(NotFoundError):
            lookup("missing")
