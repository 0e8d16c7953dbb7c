"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Everything they return is built once in
create_app()'s lifespan and stored on app.state.
"""

from __future__ import annotations

from fastapi import Request

from config import AppSettings
from repositories.protocol import VerificationRecordStore
from services.verification_service import VerificationService


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_verification_service(request: Request) -> VerificationService:
    return request.app.state.verification_service


def get_record_store(request: Request) -> VerificationRecordStore:
    """Return the verification record store from app.state."""
    return request.app.state.records
