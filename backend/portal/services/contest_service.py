"""Contest service - contests, embedded problems and leaderboards"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from portal.core.exceptions import ContestNotActiveError, NotFoundError
from portal.models.contest import Contest
from portal.models.submission import SubmissionStatus
from portal.models.user import User
from portal.schemas.contest import ContestCreate, Problem, ResultEntry
import logging

logger = logging.getLogger(__name__)


class ContestService:
    """Service for contest records"""

    @staticmethod
    def create_contest(db: Session, contest_data: ContestCreate) -> Contest:
        contest = Contest(
            title=contest_data.title,
            description=contest_data.description,
            start_time=contest_data.start_time,
            timer=contest_data.timer,
            problems=[p.model_dump() for p in contest_data.problems],
            results=[],
        )
        db.add(contest)
        db.commit()
        db.refresh(contest)
        logger.info(f"Created contest {contest.id}: {contest.title}")
        return contest

    @staticmethod
    def list_contests(db: Session) -> List[Contest]:
        return db.query(Contest).order_by(Contest.created_at.desc(), Contest.id.desc()).all()

    @staticmethod
    def get_contest(db: Session, contest_id: int) -> Contest:
        contest = db.query(Contest).filter(Contest.id == contest_id).first()
        if not contest:
            raise NotFoundError("Contest")
        return contest

    @staticmethod
    def get_problem(db: Session, contest_id: int, problem_idx: int) -> Tuple[Contest, Problem]:
        """
        Resolve a contest and one of its problems by index

        Raises:
            NotFoundError: If the contest or the problem index does not exist
        """
        contest = ContestService.get_contest(db, contest_id)
        raw = contest.get_problem(problem_idx)
        if raw is None:
            raise NotFoundError("Problem")
        return contest, Problem.model_validate(raw)

    @staticmethod
    def add_problem(db: Session, contest_id: int, problem: Problem) -> Contest:
        """Append a problem; existing indexes never move"""
        contest = ContestService.get_contest(db, contest_id)
        contest.problems = list(contest.problems or []) + [problem.model_dump()]
        db.commit()
        db.refresh(contest)
        return contest

    @staticmethod
    def delete_contest(db: Session, contest_id: int) -> None:
        contest = ContestService.get_contest(db, contest_id)
        db.delete(contest)
        db.commit()
        logger.info(f"Deleted contest {contest_id} and its submissions")

    @staticmethod
    def replace_results(db: Session, contest_id: int, results: List[ResultEntry]) -> Contest:
        """Admin override of the whole results log"""
        contest = ContestService.get_contest(db, contest_id)
        contest.results = [r.model_dump() for r in results]
        db.commit()
        db.refresh(contest)
        return contest

    @staticmethod
    def ensure_active(contest: Contest, now: Optional[datetime] = None) -> None:
        """Reject code runs before the start or after start + timer"""
        if contest.start_time is None:
            return
        now = now or datetime.now(timezone.utc)
        start = contest.start_time
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        if start > now:
            raise ContestNotActiveError("Contest has not started yet")
        end = contest.end_time
        if end is not None:
            if end.tzinfo is None:
                end = end.replace(tzinfo=timezone.utc)
            if now > end:
                raise ContestNotActiveError("Contest has ended")

    @staticmethod
    def user_history(db: Session, user_id: int) -> List[Contest]:
        """Contests whose results mention the user"""
        return [
            contest for contest in ContestService.list_contests(db)
            if any(entry.get("user_id") == user_id for entry in (contest.results or []))
        ]

    @staticmethod
    def get_leaderboard(db: Session, contest_id: int) -> List[Dict[str, Any]]:
        """
        Rank participants from the contest results log

        A problem counts as solved once any of its entries is Accepted. Ties
        on solved count break on who reached their last first-solve earlier.
        """
        contest = ContestService.get_contest(db, contest_id)

        per_user: Dict[int, Dict[str, Any]] = {}
        entries = sorted(contest.results or [], key=lambda e: e.get("created_at") or "")
        for entry in entries:
            user_id = entry.get("user_id")
            if user_id is None:
                continue
            row = per_user.setdefault(user_id, {"attempts": 0, "problems": {}, "last_solved_at": None})
            row["attempts"] += 1
            problem_idx = entry.get("problem_idx")
            if row["problems"].get(problem_idx) == SubmissionStatus.ACCEPTED.value:
                continue
            row["problems"][problem_idx] = entry.get("status")
            if entry.get("status") == SubmissionStatus.ACCEPTED.value:
                row["last_solved_at"] = entry.get("created_at")

        usernames = {}
        if per_user:
            usernames = dict(
                db.query(User.id, User.username).filter(User.id.in_(list(per_user))).all()
            )

        rows = []
        for user_id, row in per_user.items():
            solved = sum(1 for s in row["problems"].values() if s == SubmissionStatus.ACCEPTED.value)
            rows.append({
                "user_id": user_id,
                "username": usernames.get(user_id),
                "solved": solved,
                "attempts": row["attempts"],
                "problems": row["problems"],
                "last_solved_at": row["last_solved_at"],
            })

        rows.sort(key=lambda r: (
            -r["solved"],
            r["last_solved_at"] is None,
            r["last_solved_at"] or "",
            r["user_id"],
        ))
        for rank, row in enumerate(rows, 1):
            row["rank"] = rank
        return rows


# Singleton instance
contest_service = ContestService()
