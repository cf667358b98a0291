"""
Pydantic schemas for the CrowdSolve API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SolutionRequest(BaseModel):
    description: Optional[str] = None


class CommentRequest(BaseModel):
    text: Optional[str] = None


class UserPublic(BaseModel):
    id: str
    username: str
    email: str


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserPublic


class OwnerSummary(BaseModel):
    id: str
    username: str


class ProblemResponse(BaseModel):
    id: str
    title: str
    description: str
    location: str
    image: Optional[str] = None
    postedBy: Optional[OwnerSummary] = None
    status: Literal["open", "solved"]
    createdAt: datetime


class SolutionResponse(BaseModel):
    id: str
    description: str
    problemId: str
    postedBy: Optional[OwnerSummary] = None
    upvotes: list[str]
    createdAt: datetime


class CommentResponse(BaseModel):
    id: str
    text: str
    solutionId: str
    postedBy: Optional[OwnerSummary] = None
    createdAt: datetime


class UpvoteResponse(BaseModel):
    upvotes: int
    hasUpvoted: bool


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    message: str
    status: str
    timestamp: str
    version: str
