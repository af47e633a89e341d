"""Pydantic response models for quota endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class QuotaResponse(BaseModel):
    eggs: int
    tokens_used: int
    monthly_limit: int
    billing_plan: str


class EggLedgerEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class EggHistoryResponse(BaseModel):
    entries: list[EggLedgerEntry]
    total: int
    page: int
    per_page: int
