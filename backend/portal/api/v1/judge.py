"""Raw judge routes - direct token submit and verdict lookup"""

from fastapi import APIRouter, Depends, status

from portal.api.deps import get_current_user, get_judge_client
from portal.models.user import User
from portal.schemas.judge import JudgeResult, JudgeSubmitRequest, JudgeToken
from portal.services.judge_client import JudgeClient

router = APIRouter()


@router.post("/submit", response_model=JudgeToken, status_code=status.HTTP_201_CREATED)
async def submit(
    request: JudgeSubmitRequest,
    current_user: User = Depends(get_current_user),
    client: JudgeClient = Depends(get_judge_client)
):
    """Queue free-form code on the judge (playground)"""
    return await client.submit(request.source, request.language_id, request.stdin)


@router.get("/result/{token}", response_model=JudgeResult)
async def result(
    token: str,
    current_user: User = Depends(get_current_user),
    client: JudgeClient = Depends(get_judge_client)
):
    """Current verdict for a token"""
    return await client.get_result(token)
