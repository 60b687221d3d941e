"""Contest routes - contests, run code, submissions and live status"""

import asyncio
import json
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from portal.api.deps import (
    get_current_admin_user,
    get_current_user,
    get_event_bus,
    get_sample_runner,
    get_submission_service,
)
from portal.config import settings
from portal.core.database import get_db
from portal.models.submission import SubmissionStatus
from portal.models.user import User
from portal.schemas.contest import ContestCreate, ContestResponse, LeaderboardRow, Problem, ResultEntry
from portal.schemas.submission import CodeRequest, RunCodeResult, SubmissionListResponse, SubmissionResponse
from portal.services.contest_service import contest_service
from portal.services.sample_runner import SampleRunner
from portal.services.submission_events import SubmissionEventBus
from portal.services.submission_service import SubmissionService

router = APIRouter()


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


# Static paths first so they are not swallowed by /{contest_id}

@router.get("/history/me", response_model=List[ContestResponse])
def my_history(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Contests the current user has judged results in"""
    return contest_service.user_history(db, current_user.id)


@router.get("/submissions/me", response_model=List[SubmissionListResponse])
def my_submissions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service)
):
    """All of the current user's submissions"""
    return service.get_user_submissions(db, current_user.id)


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service)
):
    """Submission details (owner or admin)"""
    return service.get_visible_submission(db, submission_id, current_user)


@router.get("/submissions/{submission_id}/events")
async def stream_submission_status(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service),
    bus: SubmissionEventBus = Depends(get_event_bus)
):
    """
    Server-sent events for one submission

    Sends the current state first, then the status change pushed by the
    reconciliation poller, and closes once the submission is no longer
    PENDING. Comment lines keep idle connections open.
    """
    submission = service.get_visible_submission(db, submission_id, current_user)

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    # Subscribe before taking the snapshot so no update falls in between.
    unsubscribe = bus.on_submission_update(
        submission.id, lambda payload: loop.call_soon_threadsafe(queue.put_nowait, payload)
    )
    db.refresh(submission)
    snapshot = {"submission_id": submission.id, "status": submission.status, "result": submission.result}
    finished = submission.status != SubmissionStatus.PENDING.value

    async def event_stream():
        try:
            yield _sse(snapshot)
            if finished:
                return
            while True:
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=settings.SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse({"submission_id": submission_id, **payload})
                if payload.get("status") != SubmissionStatus.PENDING.value:
                    return
        finally:
            unsubscribe()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


@router.post("/", response_model=ContestResponse, status_code=status.HTTP_201_CREATED)
def create_contest(
    contest: ContestCreate,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Create a contest (admin only)"""
    return contest_service.create_contest(db, contest)


@router.get("/", response_model=List[ContestResponse])
def list_contests(db: Session = Depends(get_db)):
    """List contests, newest first"""
    return contest_service.list_contests(db)


@router.get("/{contest_id}", response_model=ContestResponse)
def get_contest(contest_id: int, db: Session = Depends(get_db)):
    return contest_service.get_contest(db, contest_id)


@router.delete("/{contest_id}", status_code=status.HTTP_200_OK)
def delete_contest(
    contest_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Delete a contest and its submissions (admin only)"""
    contest_service.delete_contest(db, contest_id)
    return {"success": True, "message": "Contest deleted successfully"}


@router.post("/{contest_id}/problems", response_model=ContestResponse)
def add_problem(
    contest_id: int,
    problem: Problem,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Append a problem (admin only)"""
    return contest_service.add_problem(db, contest_id, problem)


@router.post("/{contest_id}/results", response_model=ContestResponse)
def save_results(
    contest_id: int,
    results: List[ResultEntry],
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Replace the results log (admin only)"""
    return contest_service.replace_results(db, contest_id, results)


@router.get("/{contest_id}/leaderboard", response_model=List[LeaderboardRow])
def get_leaderboard(contest_id: int, db: Session = Depends(get_db)):
    return contest_service.get_leaderboard(db, contest_id)


@router.post("/{contest_id}/run", response_model=RunCodeResult)
async def run_code(
    contest_id: int,
    request: CodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    runner: SampleRunner = Depends(get_sample_runner)
):
    """Run code against the problem's sample test cases; nothing is stored"""
    contest = contest_service.get_contest(db, contest_id)
    contest_service.ensure_active(contest)
    return await runner.run(db, contest_id, request.problem_idx, request.source, request.language_id)


@router.post("/{contest_id}/submit", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def submit_code(
    contest_id: int,
    request: CodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service)
):
    """Queue code against all test cases; the verdict arrives asynchronously"""
    return await service.submit_for_judging(
        db, contest_id, request.problem_idx, current_user.id, request.source, request.language_id
    )


@router.get("/{contest_id}/submissions", response_model=List[SubmissionListResponse])
def contest_submissions(
    contest_id: int,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service)
):
    """All submissions for a contest (admin only)"""
    contest_service.get_contest(db, contest_id)
    return service.get_contest_submissions(db, contest_id)


@router.get("/{contest_id}/submissions/me", response_model=List[SubmissionListResponse])
def my_contest_submissions(
    contest_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: SubmissionService = Depends(get_submission_service)
):
    return service.get_user_submissions(db, current_user.id, contest_id=contest_id)
