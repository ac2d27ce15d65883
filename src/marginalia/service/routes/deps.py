"""Shared request dependencies for the service routes."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

from marginalia.config import AppConfig
from marginalia.service.store import EngagementStore


def get_store(request: Request) -> EngagementStore:
    return request.app.state.store


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def optional_reader(x_reader_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_reader_id.strip() if x_reader_id and x_reader_id.strip() else None


def required_reader(x_reader_id: Optional[str] = Header(default=None)) -> str:
    reader_id = optional_reader(x_reader_id)
    if not reader_id:
        raise HTTPException(status_code=400, detail="reader id required")
    return reader_id


def is_admin(request: Request, x_admin_token: Optional[str] = Header(default=None)) -> bool:
    expected = get_config(request).admin_token
    if not expected or not x_admin_token:
        return False
    return secrets.compare_digest(x_admin_token, expected)
