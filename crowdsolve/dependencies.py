"""
Dependency wiring for the FastAPI app.

``build_backends`` constructs every component from one ``Settings`` object;
the result is stored on ``app.state`` by ``create_app`` and handed to routes
through the ``get_*`` dependencies below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crowdsolve.auth import CredentialService, Identity
from crowdsolve.config import Settings
from crowdsolve.db import InMemoryRecordStore, RecordStore, SqlRecordStore
from crowdsolve.services import CommentService, ProblemService, SolutionService
from crowdsolve.storage import AssetStore, InMemoryAssetStore, S3AssetStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Backends:
    settings: Settings
    records: RecordStore
    assets: AssetStore
    credentials: CredentialService
    problems: ProblemService
    solutions: SolutionService
    comments: CommentService


def build_record_store(settings: Settings) -> RecordStore:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory record store")
        return InMemoryRecordStore()
    return SqlRecordStore(settings.database_url)


def build_asset_store(settings: Settings) -> AssetStore:
    if settings.use_in_memory_backends or not settings.s3_bucket:
        logger.info("Using in-memory asset store")
        return InMemoryAssetStore(folder=settings.asset_folder)
    return S3AssetStore(
        bucket=settings.s3_bucket,
        region=settings.s3_region or "",
        endpoint=settings.s3_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.asset_public_base_url,
        folder=settings.asset_folder,
        max_width=settings.image_max_width,
        max_height=settings.image_max_height,
        quality=settings.image_quality,
        connect_timeout=settings.storage_connect_timeout,
        read_timeout=settings.storage_read_timeout,
    )


def build_backends(
    settings: Settings,
    *,
    records: Optional[RecordStore] = None,
    assets: Optional[AssetStore] = None,
) -> Backends:
    records = records if records is not None else build_record_store(settings)
    assets = assets if assets is not None else build_asset_store(settings)
    return Backends(
        settings=settings,
        records=records,
        assets=assets,
        credentials=CredentialService(settings, records),
        problems=ProblemService(records, assets),
        solutions=SolutionService(records),
        comments=CommentService(records),
    )


def get_backends(request: Request) -> Backends:
    return request.app.state.backends


def get_settings_dep(backends: Backends = Depends(get_backends)) -> Settings:
    return backends.settings


def get_credential_service(backends: Backends = Depends(get_backends)) -> CredentialService:
    return backends.credentials


def get_problem_service(backends: Backends = Depends(get_backends)) -> ProblemService:
    return backends.problems


def get_solution_service(backends: Backends = Depends(get_backends)) -> SolutionService:
    return backends.solutions


def get_comment_service(backends: Backends = Depends(get_backends)) -> CommentService:
    return backends.comments


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: CredentialService = Depends(get_credential_service),
) -> Identity:
    """Resolve the bearer token; 401 when absent, 403 when invalid."""
    token = credentials.credentials if credentials else None
    return service.verify(token)
