import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_INIT_MODE", "off")
os.environ.setdefault("RUN_EMBEDDED_WORKER", "false")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "cp-club-portal-tests.log"))

from typing import Callable, Dict, List, Optional, Union

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from portal.core.database import Base
from portal.core.exceptions import JudgeSubmitError
from portal.models.contest import Contest
from portal.models.user import User
from portal.schemas.judge import JudgeResult, JudgeStatus, JudgeToken


def verdict(status_id: int, stdout: Optional[str] = None, **fields) -> JudgeResult:
    descriptions = {
        1: "In Queue",
        2: "Processing",
        3: "Accepted",
        4: "Wrong Answer",
        5: "Time Limit Exceeded",
        6: "Compilation Error",
        11: "Runtime Error (NZEC)",
    }
    return JudgeResult(
        status=JudgeStatus(id=status_id, description=descriptions.get(status_id, "")),
        stdout=stdout,
        **fields,
    )


Outcome = Union[JudgeResult, Exception]


class FakeJudge:
    """In-memory stand-in for JudgeClient.

    Unscripted tokens are judged by running `program` on the test input and
    comparing with the expected output, like Judge0 does with expected_output.
    """

    def __init__(self, program: Optional[Callable[[str], Union[str, JudgeResult]]] = None):
        self.program = program or (lambda stdin: "")
        self.submissions: List[dict] = []
        self.result_calls: List[str] = []
        self.scripted: Dict[str, List[Outcome]] = {}
        self.no_token_for: set = set()
        self.fail_submit_for: set = set()

    def script(self, token: str, *outcomes: Outcome) -> None:
        """Outcomes are consumed in order; the last one repeats"""
        self.scripted[token] = list(outcomes)

    async def submit_with_test_case(self, source_code, language_id, stdin, expected_output, time_limit=None):
        position = len(self.submissions)
        if position in self.fail_submit_for:
            self.submissions.append({"token": None, "stdin": stdin})
            raise JudgeSubmitError("Judge submit failed with HTTP 503", upstream_status=503)
        token = None if position in self.no_token_for else f"tok-{position + 1}"
        self.submissions.append({
            "token": token,
            "source_code": source_code,
            "language_id": language_id,
            "stdin": stdin,
            "expected_output": expected_output,
            "time_limit": time_limit,
        })
        return JudgeToken(token=token)

    async def get_result(self, token: str) -> JudgeResult:
        self.result_calls.append(token)
        queue = self.scripted.get(token)
        if queue:
            outcome = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        submitted = next(s for s in self.submissions if s["token"] == token)
        output = self.program(submitted["stdin"])
        if isinstance(output, JudgeResult):
            return output
        status_id = 3 if output.strip() == submitted["expected_output"].strip() else 4
        # Judge0 GET bodies carry no stdin/expected_output unless asked for them
        return verdict(status_id, stdout=output, time="0.010", memory=1024)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'portal.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_judge():
    return FakeJudge()


@pytest.fixture
def participant(db):
    user = User(username="alice", role="participant", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db):
    user = User(username="root", role="admin", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


SUM_PROBLEM = {
    "title": "A + B",
    "constraints": {"time_limit": 1.5, "memory_limit": 256},
    "sample_test_cases": [
        {"input": "1\n1", "output": "2"},
        {"input": "2\n2", "output": "4"},
    ],
    "hidden_test_cases": [],
}


@pytest.fixture
def make_contest(db):
    def _make(*problems, **fields) -> Contest:
        contest = Contest(
            title=fields.pop("title", "Weekly Round"),
            problems=[dict(p) for p in (problems or (SUM_PROBLEM,))],
            results=[],
            **fields,
        )
        db.add(contest)
        db.commit()
        db.refresh(contest)
        return contest

    return _make


def sum_program(stdin: str) -> str:
    return str(sum(int(x) for x in stdin.split()))


@pytest.fixture
def make_verdict():
    return verdict


@pytest.fixture
def summing_judge():
    """Judge running a correct A + B solution"""
    return FakeJudge(sum_program)
