"""
Ownership-checked operations over problems, solutions and comments.

Mutations of a problem follow one sequence: locate the record, check that
the caller owns it, upload any new image, write the record, then clean up
assets that are no longer referenced. A record never points at an asset
whose upload failed, and an upload whose record write failed is removed
again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping, Optional, Union

from crowdsolve.auth import Identity
from crowdsolve.db import (
    PROBLEM_STATUSES,
    CommentRecord,
    ProblemRecord,
    RecordStore,
    SolutionRecord,
    UserRecord,
)
from crowdsolve.errors import Forbidden, InvalidField, NotFound, StoreError, require_fields
from crowdsolve.schemas import (
    CommentResponse,
    OwnerSummary,
    ProblemResponse,
    SolutionResponse,
    UpvoteResponse,
)
from crowdsolve.storage import AssetStore

logger = logging.getLogger(__name__)


class _Absent:
    """Marks an update field the request did not mention."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def text_field(name: str, value: Any) -> Optional[str]:
    """
    Return ``value`` as text for storage.

    Strings and ``None`` pass through and numbers are stringified. Booleans,
    objects and arrays raise ``InvalidField``.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise InvalidField(f"Field {name!r} must be a string")


@dataclass(frozen=True)
class ProblemUpdate:
    """
    A partial problem update.

    Each field is either ``ABSENT`` (leave the stored value alone) or the new
    value, which may legitimately be an empty string.
    """

    title: Union[str, _Absent] = ABSENT
    description: Union[str, _Absent] = ABSENT
    location: Union[str, _Absent] = ABSENT
    status: Union[str, _Absent] = ABSENT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProblemUpdate":
        """Build an update from the keys present in ``data``; unknown keys are ignored."""
        present = {}
        for f in fields(cls):
            value = text_field(f.name, data.get(f.name))
            if value is not None:
                present[f.name] = value
        return cls(**present)

    def changes(self) -> dict:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not ABSENT
        }


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


def _owner_summary(owners: Mapping[str, UserRecord], user_id: str) -> Optional[OwnerSummary]:
    owner = owners.get(user_id)
    return OwnerSummary(**owner.summary()) if owner else None


def _resolve_owners(records: RecordStore, items: Iterable[Any]) -> dict:
    return records.get_users(item.posted_by for item in items)


def problem_response(problem: ProblemRecord, owners: Mapping[str, UserRecord]) -> ProblemResponse:
    return ProblemResponse(
        id=problem.id,
        title=problem.title,
        description=problem.description,
        location=problem.location,
        image=problem.image,
        postedBy=_owner_summary(owners, problem.posted_by),
        status=problem.status,
        createdAt=problem.created_at,
    )


def solution_response(
    solution: SolutionRecord, owners: Mapping[str, UserRecord]
) -> SolutionResponse:
    return SolutionResponse(
        id=solution.id,
        description=solution.description,
        problemId=solution.problem_id,
        postedBy=_owner_summary(owners, solution.posted_by),
        upvotes=list(solution.upvotes),
        createdAt=solution.created_at,
    )


def comment_response(comment: CommentRecord, owners: Mapping[str, UserRecord]) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        text=comment.text,
        solutionId=comment.solution_id,
        postedBy=_owner_summary(owners, comment.posted_by),
        createdAt=comment.created_at,
    )


class ProblemService:
    def __init__(self, records: RecordStore, assets: AssetStore):
        self.records = records
        self.assets = assets

    def _present(self, problem: ProblemRecord) -> ProblemResponse:
        return problem_response(problem, _resolve_owners(self.records, [problem]))

    def _locate_owned(self, identity: Identity, problem_id: str, action: str) -> ProblemRecord:
        problem = self.records.get_problem(problem_id)
        if not problem:
            raise NotFound("Problem not found")
        if problem.posted_by != identity.user_id:
            logger.warning(
                "User %s tried to %s problem %s owned by %s",
                identity.user_id,
                action,
                problem_id,
                problem.posted_by,
            )
            raise Forbidden(f"Not authorized to {action} this problem")
        return problem

    def _discard_upload(self, reference: Optional[str]) -> None:
        if reference:
            logger.info("Discarding unreferenced upload %s", reference)
            self.assets.delete(reference)

    def list_problems(self) -> list[ProblemResponse]:
        problems = self.records.list_problems()
        owners = _resolve_owners(self.records, problems)
        return [problem_response(problem, owners) for problem in problems]

    def get_problem(self, problem_id: str) -> ProblemResponse:
        problem = self.records.get_problem(problem_id)
        if not problem:
            raise NotFound("Problem not found")
        return self._present(problem)

    def create_problem(
        self,
        identity: Identity,
        *,
        title: Optional[str],
        description: Optional[str],
        location: Optional[str],
        image: Optional[ImageUpload] = None,
    ) -> ProblemResponse:
        title = text_field("title", title)
        description = text_field("description", description)
        location = text_field("location", location)
        require_fields(title=title, description=description, location=location)

        reference = self.assets.upload(image.data) if image else None
        try:
            problem = self.records.create_problem(
                title=title,
                description=description,
                location=location,
                posted_by=identity.user_id,
                image=reference,
            )
        except StoreError:
            self._discard_upload(reference)
            raise
        logger.info("User %s created problem %s", identity.user_id, problem.id)
        return self._present(problem)

    def update_problem(
        self,
        identity: Identity,
        problem_id: str,
        update: ProblemUpdate,
        image: Optional[ImageUpload] = None,
    ) -> ProblemResponse:
        problem = self._locate_owned(identity, problem_id, "edit")

        changes = update.changes()
        if "status" in changes and changes["status"] not in PROBLEM_STATUSES:
            raise InvalidField(
                f"Invalid status {changes['status']!r}; expected one of {', '.join(PROBLEM_STATUSES)}"
            )

        new_reference = None
        if image:
            new_reference = self.assets.upload(image.data)
            changes["image"] = new_reference

        try:
            updated = self.records.update_problem(problem_id, changes)
        except StoreError:
            self._discard_upload(new_reference)
            raise
        if not updated:
            self._discard_upload(new_reference)
            raise NotFound("Problem not found")

        if new_reference and problem.image:
            self.assets.delete(problem.image)
        logger.info("User %s updated problem %s", identity.user_id, problem_id)
        return self._present(updated)

    def delete_problem(self, identity: Identity, problem_id: str) -> None:
        problem = self._locate_owned(identity, problem_id, "delete")
        if not self.records.delete_problem(problem_id):
            raise NotFound("Problem not found")
        if problem.image:
            self.assets.delete(problem.image)
        logger.info("User %s deleted problem %s", identity.user_id, problem_id)


class SolutionService:
    def __init__(self, records: RecordStore):
        self.records = records

    def list_solutions(self, problem_id: str) -> list[SolutionResponse]:
        solutions = self.records.list_solutions(problem_id)
        owners = _resolve_owners(self.records, solutions)
        return [solution_response(solution, owners) for solution in solutions]

    def create_solution(
        self, identity: Identity, problem_id: str, description: Optional[str]
    ) -> SolutionResponse:
        require_fields(description=description)
        if not self.records.get_problem(problem_id):
            raise NotFound("Problem not found")
        solution = self.records.create_solution(
            description=description, problem_id=problem_id, posted_by=identity.user_id
        )
        return solution_response(solution, _resolve_owners(self.records, [solution]))

    def toggle_upvote(self, identity: Identity, solution_id: str) -> UpvoteResponse:
        solution = self.records.toggle_upvote(solution_id, identity.user_id)
        if not solution:
            raise NotFound("Solution not found")
        return UpvoteResponse(
            upvotes=len(solution.upvotes),
            hasUpvoted=identity.user_id in solution.upvotes,
        )


class CommentService:
    def __init__(self, records: RecordStore):
        self.records = records

    def list_comments(self, solution_id: str) -> list[CommentResponse]:
        comments = self.records.list_comments(solution_id)
        owners = _resolve_owners(self.records, comments)
        return [comment_response(comment, owners) for comment in comments]

    def create_comment(
        self, identity: Identity, solution_id: str, text: Optional[str]
    ) -> CommentResponse:
        require_fields(text=text)
        if not self.records.get_solution(solution_id):
            raise NotFound("Solution not found")
        comment = self.records.create_comment(
            text=text, solution_id=solution_id, posted_by=identity.user_id
        )
        return comment_response(comment, _resolve_owners(self.records, [comment]))
