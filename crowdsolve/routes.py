"""
HTTP routes for the CrowdSolve API.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from crowdsolve.auth import CredentialService, Identity
from crowdsolve.config import Settings
from crowdsolve.dependencies import (
    get_comment_service,
    get_credential_service,
    get_current_identity,
    get_problem_service,
    get_settings_dep,
    get_solution_service,
)
from crowdsolve.errors import InvalidRequest, PayloadTooLarge
from crowdsolve.schemas import (
    AuthResponse,
    CommentRequest,
    CommentResponse,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    ProblemResponse,
    RegisterRequest,
    SolutionRequest,
    SolutionResponse,
    UpvoteResponse,
    UserPublic,
)
from crowdsolve.services import (
    CommentService,
    ImageUpload,
    ProblemService,
    ProblemUpdate,
    SolutionService,
)

logger = logging.getLogger(__name__)

health_router = APIRouter()
router = APIRouter()

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def read_problem_payload(
    request: Request, max_upload_bytes: int
) -> tuple[dict, Optional[ImageUpload]]:
    """
    Decode a problem create/update body.

    Accepts multipart/urlencoded forms (with an optional ``image`` file part)
    or a JSON object. Only keys actually present in the body are returned.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        fields: dict = {}
        image = None
        form = await request.form()
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key != "image":
                    continue
                data = await value.read()
                if len(data) > max_upload_bytes:
                    raise PayloadTooLarge()
                if data:
                    image = ImageUpload(
                        data=data, filename=value.filename, content_type=value.content_type
                    )
            else:
                fields[key] = value
        return fields, image

    body = await request.body()
    if not body:
        return {}, None
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise InvalidRequest("Malformed JSON body") from exc
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return payload, None


@health_router.get("/health", response_model=HealthResponse)
def health(settings: Settings = Depends(get_settings_dep)):
    return HealthResponse(
        message="Backend is running successfully!",
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
    )


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    payload: RegisterRequest,
    credentials: CredentialService = Depends(get_credential_service),
):
    result = credentials.register(payload.username, payload.email, payload.password)
    return AuthResponse(
        message="User created successfully",
        token=result.token,
        user=UserPublic(**result.user.public()),
    )


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    credentials: CredentialService = Depends(get_credential_service),
):
    result = credentials.login(payload.email, payload.password)
    return AuthResponse(
        message="Login successful",
        token=result.token,
        user=UserPublic(**result.user.public()),
    )


@router.get("/problems", response_model=list[ProblemResponse])
def list_problems(problems: ProblemService = Depends(get_problem_service)):
    return problems.list_problems()


@router.post("/problems", response_model=ProblemResponse, status_code=201)
async def create_problem(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    problems: ProblemService = Depends(get_problem_service),
    settings: Settings = Depends(get_settings_dep),
):
    fields, image = await read_problem_payload(request, settings.max_upload_bytes)
    return await run_in_threadpool(
        problems.create_problem,
        identity,
        title=fields.get("title"),
        description=fields.get("description"),
        location=fields.get("location"),
        image=image,
    )


@router.get("/problems/{problem_id}", response_model=ProblemResponse)
def get_problem(problem_id: str, problems: ProblemService = Depends(get_problem_service)):
    return problems.get_problem(problem_id)


@router.put("/problems/{problem_id}", response_model=ProblemResponse)
async def update_problem(
    problem_id: str,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    problems: ProblemService = Depends(get_problem_service),
    settings: Settings = Depends(get_settings_dep),
):
    fields, image = await read_problem_payload(request, settings.max_upload_bytes)
    return await run_in_threadpool(
        problems.update_problem,
        identity,
        problem_id,
        ProblemUpdate.from_mapping(fields),
        image=image,
    )


@router.delete("/problems/{problem_id}", response_model=MessageResponse)
def delete_problem(
    problem_id: str,
    identity: Identity = Depends(get_current_identity),
    problems: ProblemService = Depends(get_problem_service),
):
    problems.delete_problem(identity, problem_id)
    return MessageResponse(message="Problem deleted successfully")


@router.get("/problems/{problem_id}/solutions", response_model=list[SolutionResponse])
def list_solutions(
    problem_id: str, solutions: SolutionService = Depends(get_solution_service)
):
    return solutions.list_solutions(problem_id)


@router.post(
    "/problems/{problem_id}/solutions", response_model=SolutionResponse, status_code=201
)
def create_solution(
    problem_id: str,
    payload: SolutionRequest,
    identity: Identity = Depends(get_current_identity),
    solutions: SolutionService = Depends(get_solution_service),
):
    return solutions.create_solution(identity, problem_id, payload.description)


@router.post("/solutions/{solution_id}/upvote", response_model=UpvoteResponse)
def upvote_solution(
    solution_id: str,
    identity: Identity = Depends(get_current_identity),
    solutions: SolutionService = Depends(get_solution_service),
):
    return solutions.toggle_upvote(identity, solution_id)


@router.get("/solutions/{solution_id}/comments", response_model=list[CommentResponse])
def list_comments(
    solution_id: str, comments: CommentService = Depends(get_comment_service)
):
    return comments.list_comments(solution_id)


@router.post(
    "/solutions/{solution_id}/comments", response_model=CommentResponse, status_code=201
)
def create_comment(
    solution_id: str,
    payload: CommentRequest,
    identity: Identity = Depends(get_current_identity),
    comments: CommentService = Depends(get_comment_service),
):
    return comments.create_comment(identity, solution_id, payload.text)
