"""Tests for common utilities — exceptions, problem details and the audit helper."""

from __future__ import annotations

import uuid

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.audit import AuditTrail, create_audit_entry
from backend.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    LedgerConflictError,
    NotFoundException,
    StateConflictException,
    ValidationException,
    register_exception_handlers,
)


# ═════════════════════════════════════════════════════════════════════
# EXCEPTION HIERARCHY
# ═════════════════════════════════════════════════════════════════════


class TestExceptions:

    def test_not_found(self):
        exc = NotFoundException("Employee", "abc")
        assert exc.status_code == 404
        assert exc.error_type == "not-found"
        assert "abc" in exc.detail

    def test_conflict_carries_field_error(self):
        exc = ConflictError("date", "2026-12-25")
        assert exc.status_code == 409
        assert exc.errors == {"date": ["'2026-12-25' is already in use."]}

    def test_ledger_conflict_is_state_conflict(self):
        exc = LedgerConflictError("emp-1")
        assert isinstance(exc, StateConflictException)
        assert exc.status_code == 409
        assert exc.error_type == "state-conflict"
        assert exc.employee_id == "emp-1"

    def test_forbidden_default_detail(self):
        assert "permission" in ForbiddenException().detail

    def test_first_message_flattens_errors(self):
        exc = ValidationException(errors={"fallback_type": ["fallback_type is required."]})
        assert exc.first_message() == "fallback_type: fallback_type is required."

    def test_first_message_falls_back_to_detail(self):
        exc = ValidationException(errors={})
        assert exc.first_message() == exc.detail


# ═════════════════════════════════════════════════════════════════════
# RFC 7807 HANDLERS
# ═════════════════════════════════════════════════════════════════════


def _problem_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom/{kind}")
    async def boom(kind: str):
        if kind == "state":
            raise StateConflictException("Leave request is already approved.")
        if kind == "validation":
            raise ValidationException(errors={"to_date": ["to_date must not be before from_date."]})
        raise AppException(418, "teapot", "Teapot", "short and stout")

    @app.get("/typed/{number}")
    async def typed(number: int):
        return {"number": number}

    return app


class TestProblemDetails:

    @pytest.fixture
    async def problem_client(self):
        async with AsyncClient(
            transport=ASGITransport(app=_problem_app()),
            base_url="http://test",
        ) as ac:
            yield ac

    async def test_state_conflict_body(self, problem_client):
        resp = await problem_client.get("/boom/state")

        assert resp.status_code == 409
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/state-conflict")
        assert body["instance"] == "/boom/state"
        assert "errors" not in body

    async def test_validation_errors_included(self, problem_client):
        resp = await problem_client.get("/boom/validation")

        assert resp.status_code == 422
        assert resp.json()["errors"] == {"to_date": ["to_date must not be before from_date."]}

    async def test_generic_app_exception(self, problem_client):
        resp = await problem_client.get("/boom/other")
        assert resp.status_code == 418
        assert resp.json()["title"] == "Teapot"

    async def test_request_validation_is_problem_json(self, problem_client):
        resp = await problem_client.get("/typed/not-a-number")

        assert resp.status_code == 422
        body = resp.json()
        assert body["detail"] == "Request validation failed."
        assert "number" in body["errors"]


# ═════════════════════════════════════════════════════════════════════
# AUDIT TRAIL
# ═════════════════════════════════════════════════════════════════════


class TestAuditEntry:

    async def test_entry_is_flushed(self, db: AsyncSession, hr_admin):
        entity_id = uuid.uuid4()

        entry = await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=entity_id,
            actor_id=hr_admin.id,
            old_values={"status": "pending"},
            new_values={"status": "approved"},
        )

        result = await db.execute(
            select(AuditTrail).where(AuditTrail.entity_id == entity_id)
        )
        stored = result.scalars().one()
        assert stored.id == entry.id
        assert stored.new_values == {"status": "approved"}
        assert stored.actor_id == hr_admin.id
