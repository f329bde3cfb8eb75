"""In-memory record store keyed by unique identifiers."""

from __future__ import annotations

import threading
from typing import Iterable

from .errors import BusinessRuleViolation, NotFoundError
from .schemas.answers import AssessmentAnswer
from .schemas.assessment import CandidateAssessment
from .schemas.evaluation import Evaluation
from .schemas.job import Job, SectionName
from .schemas.question_set import AssessmentSet, ProgrammingQuestion
from .schemas.session import Attempt, Session


class InMemoryRepository:
    """Durable-record stand-in. Every record is addressed by its own id.

    Lookups of unknown ids raise ``NotFoundError``. There is no cross-record
    locking; only attempt numbering is serialized so numbers stay unique.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, Job] = {}
        self.sets: dict[str, AssessmentSet] = {}
        self.assessments: dict[str, CandidateAssessment] = {}
        self.answers: dict[tuple[str, str], AssessmentAnswer] = {}
        self.evaluations: dict[str, Evaluation] = {}
        self.sessions: dict[str, Session] = {}
        self.question_pool: dict[str, ProgrammingQuestion] = {}
        self._attempts: dict[tuple[str, str], list[Attempt]] = {}
        self._attempt_lock = threading.Lock()

    # jobs and question sets

    def add_job(self, job: Job) -> Job:
        self.jobs[job.job_id] = job
        return job

    def get_job(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    def job_by_link(self, link: str) -> Job:
        for job in self.jobs.values():
            if job.assessment_link == link:
                return job
        raise NotFoundError("assessment link", link)

    def add_set(self, assessment_set: AssessmentSet) -> AssessmentSet:
        self.sets[assessment_set.set_id] = assessment_set
        return assessment_set

    def get_set(self, set_id: str) -> AssessmentSet:
        assessment_set = self.sets.get(set_id)
        if assessment_set is None:
            raise NotFoundError("assessment set", set_id)
        return assessment_set

    def active_sets(self, job_id: str) -> list[AssessmentSet]:
        return sorted(
            (s for s in self.sets.values() if s.job_id == job_id and s.is_active),
            key=lambda s: (s.set_number, s.set_id),
        )

    def add_pool_questions(self, questions: Iterable[ProgrammingQuestion]) -> None:
        for question in questions:
            self.question_pool[question.question_id] = question

    # candidate assessments

    def add_assessment(self, assessment: CandidateAssessment) -> CandidateAssessment:
        if assessment.assessment_id in self.assessments:
            raise BusinessRuleViolation("duplicate_id", "assessment id already exists", assessment_id=assessment.assessment_id)
        self.assessments[assessment.assessment_id] = assessment
        return assessment

    def get_assessment(self, assessment_id: str) -> CandidateAssessment:
        assessment = self.assessments.get(assessment_id)
        if assessment is None:
            raise NotFoundError("candidate assessment", assessment_id)
        return assessment

    def find_assessment(self, email: str, job_id: str) -> CandidateAssessment | None:
        email = email.strip().lower()
        matches = [
            a for a in self.assessments.values() if a.candidate_email == email and a.job_id == job_id
        ]
        return max(matches, key=lambda a: a.attempt_number, default=None)

    def assessment_by_token(self, token: str) -> CandidateAssessment:
        for assessment in self.assessments.values():
            if token and assessment.session_token == token:
                return assessment
        raise NotFoundError("session token", token)

    # answers

    def get_answer(self, assessment_id: str, section: SectionName) -> AssessmentAnswer | None:
        return self.answers.get((assessment_id, section))

    def answer_for(self, assessment_id: str, section: SectionName) -> AssessmentAnswer:
        """Return the section's answer record, creating an empty one on first use."""
        key = (assessment_id, section)
        if key not in self.answers:
            self.answers[key] = AssessmentAnswer(assessment_id=assessment_id, section=section)
        return self.answers[key]

    def answers_of(self, assessment_id: str) -> dict[str, AssessmentAnswer]:
        return {section: answer for (owner, section), answer in self.answers.items() if owner == assessment_id}

    # evaluations

    def get_evaluation(self, assessment_id: str) -> Evaluation | None:
        return self.evaluations.get(assessment_id)

    def save_evaluation(self, evaluation: Evaluation) -> Evaluation:
        self.evaluations[evaluation.assessment_id] = evaluation
        return evaluation

    def delete_evaluation(self, assessment_id: str) -> None:
        self.evaluations.pop(assessment_id, None)

    # OA sessions and attempts

    def add_session(self, session: Session) -> Session:
        self.sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("session", session_id)
        return session

    def next_attempt_number(self, session_id: str, question_id: str) -> int:
        attempts = self._attempts.get((session_id, question_id), [])
        return max((a.attempt_number for a in attempts), default=0) + 1

    def append_attempt(self, attempt: Attempt) -> Attempt:
        """Store ``attempt`` under the next number for its (session, question) pair."""
        with self._attempt_lock:
            number = self.next_attempt_number(attempt.session_id, attempt.question_id)
            numbered = attempt.model_copy(update={"attempt_number": number})
            self._attempts.setdefault((attempt.session_id, attempt.question_id), []).append(numbered)
            return numbered

    def attempts(self, session_id: str, question_id: str) -> list[Attempt]:
        return sorted(self._attempts.get((session_id, question_id), []), key=lambda a: a.attempt_number)

    def get_attempt(self, session_id: str, question_id: str, attempt_id: str) -> Attempt:
        for attempt in self._attempts.get((session_id, question_id), []):
            if attempt.attempt_id == attempt_id:
                return attempt
        raise NotFoundError("attempt", attempt_id)

    def replace_attempt(self, attempt: Attempt) -> Attempt:
        """Overwrite a stored attempt with a rescored copy carrying the same id and number."""
        items = self._attempts.get((attempt.session_id, attempt.question_id), [])
        for index, existing in enumerate(items):
            if existing.attempt_id == attempt.attempt_id:
                items[index] = attempt
                return attempt
        raise NotFoundError("attempt", attempt.attempt_id)


__all__ = ["InMemoryRepository"]
