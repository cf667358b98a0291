"""
Record storage for users, problems, solutions and comments: a SQLAlchemy
implementation and an in-memory one for development and tests.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, Optional, Protocol

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    create_engine,
    delete,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from crowdsolve.errors import Conflict, StoreError

PROBLEM_STATUSES = ("open", "solved")
UPDATABLE_PROBLEM_FIELDS = ("title", "description", "location", "status", "image")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class RecordStore(Protocol):
    """Interface for record access."""

    def create_user(self, username: str, email: str, password_hash: str) -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, "UserRecord"]:
        ...

    def find_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def find_user_by_email_or_username(
        self, email: str, username: str
    ) -> Optional["UserRecord"]:
        ...

    def create_problem(
        self,
        *,
        title: str,
        description: str,
        location: str,
        posted_by: str,
        image: Optional[str] = None,
    ) -> "ProblemRecord":
        ...

    def get_problem(self, problem_id: str) -> Optional["ProblemRecord"]:
        ...

    def list_problems(self) -> list["ProblemRecord"]:
        ...

    def update_problem(self, problem_id: str, changes: dict) -> Optional["ProblemRecord"]:
        ...

    def delete_problem(self, problem_id: str) -> bool:
        ...

    def create_solution(
        self, *, description: str, problem_id: str, posted_by: str
    ) -> "SolutionRecord":
        ...

    def get_solution(self, solution_id: str) -> Optional["SolutionRecord"]:
        ...

    def list_solutions(self, problem_id: str) -> list["SolutionRecord"]:
        ...

    def toggle_upvote(self, solution_id: str, user_id: str) -> Optional["SolutionRecord"]:
        ...

    def create_comment(
        self, *, text: str, solution_id: str, posted_by: str
    ) -> "CommentRecord":
        ...

    def list_comments(self, solution_id: str) -> list["CommentRecord"]:
        ...


@dataclass
class UserRecord:
    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime = field(default_factory=_now)

    def public(self) -> dict:
        return {"id": self.id, "username": self.username, "email": self.email}

    def summary(self) -> dict:
        return {"id": self.id, "username": self.username}


@dataclass
class ProblemRecord:
    id: str
    title: str
    description: str
    location: str
    posted_by: str
    image: Optional[str] = None
    status: str = "open"
    created_at: datetime = field(default_factory=_now)


@dataclass
class SolutionRecord:
    id: str
    description: str
    problem_id: str
    posted_by: str
    upvotes: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)


@dataclass
class CommentRecord:
    id: str
    text: str
    solution_id: str
    posted_by: str
    created_at: datetime = field(default_factory=_now)


def _newest_first(records):
    return sorted(records, key=lambda record: record.created_at, reverse=True)


class InMemoryRecordStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.problems: Dict[str, ProblemRecord] = {}
        self.solutions: Dict[str, SolutionRecord] = {}
        self.comments: Dict[str, CommentRecord] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.problems.clear()
            self.solutions.clear()
            self.comments.clear()

    def create_user(self, username: str, email: str, password_hash: str) -> UserRecord:
        with self._lock:
            for user in self.users.values():
                if user.email == email or user.username == username:
                    raise Conflict()
            record = UserRecord(
                id=_new_id(), username=username, email=email, password_hash=password_hash
            )
            self.users[record.id] = record
            return replace(record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            user = self.users.get(user_id)
            return replace(user) if user else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        wanted = set(user_ids)
        with self._lock:
            return {
                user_id: replace(self.users[user_id])
                for user_id in wanted
                if user_id in self.users
            }

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.email == email:
                    return replace(user)
        return None

    def find_user_by_email_or_username(
        self, email: str, username: str
    ) -> Optional[UserRecord]:
        with self._lock:
            for user in self.users.values():
                if user.email == email or user.username == username:
                    return replace(user)
        return None

    def create_problem(
        self,
        *,
        title: str,
        description: str,
        location: str,
        posted_by: str,
        image: Optional[str] = None,
    ) -> ProblemRecord:
        record = ProblemRecord(
            id=_new_id(),
            title=title,
            description=description,
            location=location,
            posted_by=posted_by,
            image=image,
        )
        with self._lock:
            self.problems[record.id] = record
        return replace(record)

    def get_problem(self, problem_id: str) -> Optional[ProblemRecord]:
        with self._lock:
            problem = self.problems.get(problem_id)
            return replace(problem) if problem else None

    def list_problems(self) -> list[ProblemRecord]:
        with self._lock:
            problems = [replace(p) for p in self.problems.values()]
        return _newest_first(problems)

    def update_problem(self, problem_id: str, changes: dict) -> Optional[ProblemRecord]:
        with self._lock:
            problem = self.problems.get(problem_id)
            if not problem:
                return None
            for name, value in changes.items():
                if name not in UPDATABLE_PROBLEM_FIELDS:
                    raise ValueError(f"Problem field {name!r} is not updatable")
                setattr(problem, name, value)
            return replace(problem)

    def delete_problem(self, problem_id: str) -> bool:
        with self._lock:
            return self.problems.pop(problem_id, None) is not None

    def create_solution(
        self, *, description: str, problem_id: str, posted_by: str
    ) -> SolutionRecord:
        record = SolutionRecord(
            id=_new_id(),
            description=description,
            problem_id=problem_id,
            posted_by=posted_by,
        )
        with self._lock:
            self.solutions[record.id] = record
        return replace(record, upvotes=list(record.upvotes))

    def get_solution(self, solution_id: str) -> Optional[SolutionRecord]:
        with self._lock:
            solution = self.solutions.get(solution_id)
            if not solution:
                return None
            return replace(solution, upvotes=list(solution.upvotes))

    def list_solutions(self, problem_id: str) -> list[SolutionRecord]:
        with self._lock:
            matching = [
                replace(s, upvotes=list(s.upvotes))
                for s in self.solutions.values()
                if s.problem_id == problem_id
            ]
        return _newest_first(matching)

    def toggle_upvote(self, solution_id: str, user_id: str) -> Optional[SolutionRecord]:
        with self._lock:
            solution = self.solutions.get(solution_id)
            if not solution:
                return None
            if user_id in solution.upvotes:
                solution.upvotes.remove(user_id)
            else:
                solution.upvotes.append(user_id)
            return replace(solution, upvotes=list(solution.upvotes))

    def create_comment(
        self, *, text: str, solution_id: str, posted_by: str
    ) -> CommentRecord:
        record = CommentRecord(
            id=_new_id(), text=text, solution_id=solution_id, posted_by=posted_by
        )
        with self._lock:
            self.comments[record.id] = record
        return replace(record)

    def list_comments(self, solution_id: str) -> list[CommentRecord]:
        with self._lock:
            matching = [
                replace(c) for c in self.comments.values() if c.solution_id == solution_id
            ]
        return _newest_first(matching)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        connect_args = (
            {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        )
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args=connect_args,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.Session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(detail=str(exc)) from exc
        finally:
            session.close()

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            username=row.username,
            email=row.email,
            password_hash=row.password_hash,
            created_at=_aware(row.created_at),
        )

    def _to_problem_record(self, row: "ProblemRow") -> ProblemRecord:
        return ProblemRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            location=row.location,
            posted_by=row.posted_by,
            image=row.image,
            status=row.status,
            created_at=_aware(row.created_at),
        )

    def _to_solution_record(self, session: Session, row: "SolutionRow") -> SolutionRecord:
        stmt = (
            select(UpvoteRow.user_id)
            .where(UpvoteRow.solution_id == row.id)
            .order_by(UpvoteRow.created_at.asc(), UpvoteRow.user_id.asc())
        )
        return SolutionRecord(
            id=row.id,
            description=row.description,
            problem_id=row.problem_id,
            posted_by=row.posted_by,
            upvotes=list(session.execute(stmt).scalars()),
            created_at=_aware(row.created_at),
        )

    def _to_comment_record(self, row: "CommentRow") -> CommentRecord:
        return CommentRecord(
            id=row.id,
            text=row.text,
            solution_id=row.solution_id,
            posted_by=row.posted_by,
            created_at=_aware(row.created_at),
        )

    def create_user(self, username: str, email: str, password_hash: str) -> UserRecord:
        with self._session() as session:
            row = UserRow(
                id=_new_id(),
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=_now(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise Conflict() from exc
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        ids = set(user_ids)
        if not ids:
            return {}
        with self._session() as session:
            rows = session.execute(select(UserRow).where(UserRow.id.in_(ids))).scalars()
            return {row.id: self._to_user_record(row) for row in rows}

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = select(UserRow).where(UserRow.email == email).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def find_user_by_email_or_username(
        self, email: str, username: str
    ) -> Optional[UserRecord]:
        with self._session() as session:
            stmt = (
                select(UserRow)
                .where(or_(UserRow.email == email, UserRow.username == username))
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def create_problem(
        self,
        *,
        title: str,
        description: str,
        location: str,
        posted_by: str,
        image: Optional[str] = None,
    ) -> ProblemRecord:
        with self._session() as session:
            row = ProblemRow(
                id=_new_id(),
                title=title,
                description=description,
                location=location,
                posted_by=posted_by,
                image=image,
                status="open",
                created_at=_now(),
            )
            session.add(row)
            session.commit()
            return self._to_problem_record(row)

    def get_problem(self, problem_id: str) -> Optional[ProblemRecord]:
        with self._session() as session:
            row = session.get(ProblemRow, problem_id)
            return self._to_problem_record(row) if row else None

    def list_problems(self) -> list[ProblemRecord]:
        with self._session() as session:
            stmt = select(ProblemRow).order_by(ProblemRow.created_at.desc())
            return [self._to_problem_record(row) for row in session.execute(stmt).scalars()]

    def update_problem(self, problem_id: str, changes: dict) -> Optional[ProblemRecord]:
        with self._session() as session:
            row = session.get(ProblemRow, problem_id)
            if not row:
                return None
            for name, value in changes.items():
                if name not in UPDATABLE_PROBLEM_FIELDS:
                    raise ValueError(f"Problem field {name!r} is not updatable")
                setattr(row, name, value)
            session.commit()
            return self._to_problem_record(row)

    def delete_problem(self, problem_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(ProblemRow).where(ProblemRow.id == problem_id))
            session.commit()
            return bool(result.rowcount)

    def create_solution(
        self, *, description: str, problem_id: str, posted_by: str
    ) -> SolutionRecord:
        with self._session() as session:
            row = SolutionRow(
                id=_new_id(),
                description=description,
                problem_id=problem_id,
                posted_by=posted_by,
                created_at=_now(),
            )
            session.add(row)
            session.commit()
            return self._to_solution_record(session, row)

    def get_solution(self, solution_id: str) -> Optional[SolutionRecord]:
        with self._session() as session:
            row = session.get(SolutionRow, solution_id)
            return self._to_solution_record(session, row) if row else None

    def list_solutions(self, problem_id: str) -> list[SolutionRecord]:
        with self._session() as session:
            stmt = (
                select(SolutionRow)
                .where(SolutionRow.problem_id == problem_id)
                .order_by(SolutionRow.created_at.desc())
            )
            return [
                self._to_solution_record(session, row)
                for row in session.execute(stmt).scalars().all()
            ]

    def toggle_upvote(self, solution_id: str, user_id: str) -> Optional[SolutionRecord]:
        """
        Flip ``user_id``'s upvote in one transaction.

        Deleting first and inserting only when nothing was deleted keeps the
        flip atomic; a concurrent insert by the same user trips the primary
        key and is resolved as a removal.
        """
        with self._session() as session:
            row = session.get(SolutionRow, solution_id)
            if not row:
                return None
            unvote = delete(UpvoteRow).where(
                UpvoteRow.solution_id == solution_id, UpvoteRow.user_id == user_id
            )
            removed = session.execute(unvote).rowcount
            if not removed:
                session.add(
                    UpvoteRow(solution_id=solution_id, user_id=user_id, created_at=_now())
                )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                session.execute(unvote)
                session.commit()
            return self._to_solution_record(session, row)

    def create_comment(
        self, *, text: str, solution_id: str, posted_by: str
    ) -> CommentRecord:
        with self._session() as session:
            row = CommentRow(
                id=_new_id(),
                text=text,
                solution_id=solution_id,
                posted_by=posted_by,
                created_at=_now(),
            )
            session.add(row)
            session.commit()
            return self._to_comment_record(row)

    def list_comments(self, solution_id: str) -> list[CommentRecord]:
        with self._session() as session:
            stmt = (
                select(CommentRow)
                .where(CommentRow.solution_id == solution_id)
                .order_by(CommentRow.created_at.desc())
            )
            return [self._to_comment_record(row) for row in session.execute(stmt).scalars()]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ProblemRow(Base):
    __tablename__ = "problems"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String, nullable=False)
    image = Column(String, nullable=True)
    posted_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class SolutionRow(Base):
    __tablename__ = "solutions"

    id = Column(String, primary_key=True)
    description = Column(Text, nullable=False)
    # Parent deletion does not cascade, so no foreign key here.
    problem_id = Column(String, nullable=False, index=True)
    posted_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class UpvoteRow(Base):
    __tablename__ = "solution_upvotes"

    solution_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class CommentRow(Base):
    __tablename__ = "comments"

    id = Column(String, primary_key=True)
    text = Column(Text, nullable=False)
    solution_id = Column(String, nullable=False, index=True)
    posted_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
