"""Legal assistant chat on top of the LLM adapter.

The prompt is grounded on the caller's workspace: either a summary of their
projects or, when a project is given and accessible, excerpts of its
documents.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from companion.adapters.llm.base import AbstractLLMClient
from companion.core.errors import (
    LLMAppError,
    NotFoundAppError,
    PermissionAppError,
    PlanLimitAppError,
    ValidationAppError,
)
from companion.db.models import AuditLog, Document, Project, User
from companion.schemas.assistant import AssistantReply, AssistantRequest
from companion.services.activity_service import record_audit
from companion.services.plans import limits_for
from companion.services.project_service import list_projects, require_project_access
from companion.utils.dates import utcnow

logger = logging.getLogger(__name__)

MAX_CONTEXT_DOCUMENTS = 5
MAX_EXCERPT_CHARS = 2000
MAX_PROJECTS_IN_SUMMARY = 10
QUOTA_WINDOW_DAYS = 30

FOCUS_INSTRUCTIONS = {
    "general": "Answer questions on any area of French law.",
    "contracts": (
        "Focus on contract law: formation, clauses, obligations, breach and "
        "remedies under the French Civil Code."
    ),
    "litigation": (
        "Focus on litigation: procedure, limitation periods, evidence and "
        "jurisdiction before French courts."
    ),
    "compliance": (
        "Focus on regulatory compliance, in particular RGPD, consumer law and "
        "anti-money-laundering obligations."
    ),
}

TONE_INSTRUCTIONS = {
    "formal": "Use a formal, professional register.",
    "friendly": "Use a warm, approachable register while staying precise.",
}

EXPERTISE_INSTRUCTIONS = {
    "beginner": "Explain legal terms in plain language and avoid jargon.",
    "expert": "Assume legal training; cite articles and case law where relevant.",
}


def build_system_prompt(request: AssistantRequest, context: str) -> str:
    """Build the system instructions for one assistant turn."""
    return f"""
You are a legal assistant specialised in French law, helping legal professionals.

{FOCUS_INSTRUCTIONS[request.focus_mode]}
{TONE_INSTRUCTIONS[request.tone]}
{EXPERTISE_INSTRUCTIONS[request.expertise_level]}

RULES:
- Never present your answer as legal advice; recommend a qualified lawyer for specific cases
- Do NOT invent statutes, articles or case law
- If the workspace context is insufficient, say so and ask a clarifying question
- Answer in the language of the user's last message

WORKSPACE CONTEXT:
{context}

REQUIRED JSON STRUCTURE:
{{
  "reply": "Answer in Markdown",
  "suggestions": ["follow-up question 1", "follow-up question 2"],
  "disclaimer": "Short reminder that this is not legal advice"
}}

Return only the JSON object, no additional text.
""".strip()


class AssistantService:
    """Runs assistant turns for a user.

    Attributes:
        llm: LLM client adapter producing JSON replies.
    """

    def __init__(self, llm: AbstractLLMClient) -> None:
        self.llm = llm

    def _check_quota(self, db: Session, user: User) -> None:
        limit = limits_for(user).ai_requests
        if limit is None:
            return
        since = utcnow() - timedelta(days=QUOTA_WINDOW_DAYS)
        used = db.scalar(
            select(func.count(AuditLog.id)).where(
                AuditLog.user_id == user.id,
                AuditLog.action == "ASSISTANT",
                AuditLog.created_at >= since,
            )
        ) or 0
        if used >= limit:
            raise PlanLimitAppError(resource="assistant requests", limit=limit, current=used)

    def _projects_summary(self, db: Session, user: User) -> str:
        projects = list_projects(db, user)[:MAX_PROJECTS_IN_SUMMARY]
        if not projects:
            return "The user has no projects yet."
        lines = [
            f"- {p.name} ({p.status.value}, priority {p.priority.value}, "
            f"{p.document_count} documents)"
            for p in projects
        ]
        return "The user's projects:\n" + "\n".join(lines)

    def _project_context(self, db: Session, project: Project) -> str:
        documents = db.scalars(
            select(Document)
            .where(Document.project_id == project.id)
            .order_by(Document.created_at.desc())
            .limit(MAX_CONTEXT_DOCUMENTS)
        )
        parts = [f"Project: {project.name}"]
        if project.description:
            parts.append(f"Description: {project.description}")
        for document in documents:
            excerpt = (document.extracted_text or "")[:MAX_EXCERPT_CHARS]
            if excerpt:
                parts.append(f'Document "{document.name}" (excerpt):\n{excerpt}')
            else:
                parts.append(f'Document "{document.name}" (no extractable text)')
        return "\n\n".join(parts)

    def build_context(
        self, db: Session, user: User, project_id: str | None
    ) -> tuple[str, str | None]:
        """Workspace context and the id of the project it was built from, if any."""
        if project_id:
            try:
                project, _ = require_project_access(db, project_id, user)
            except (NotFoundAppError, PermissionAppError) as exc:
                logger.info(
                    "assistant.project_context_skipped",
                    extra={"user_id": user.id, "project_id": project_id, "reason": exc.code},
                )
            else:
                return self._project_context(db, project), project.id
        return self._projects_summary(db, user), None

    async def chat(self, db: Session, user: User, request: AssistantRequest) -> AssistantReply:
        """Answer the last user turn of ``request``.

        Raises:
            ValidationAppError: The conversation does not end with a user turn.
            PlanLimitAppError: FREEMIUM assistant quota reached.
            LLMAppError: Provider failure or unusable model output.
        """
        *earlier, last = request.messages
        if last.role != "user":
            raise ValidationAppError(
                code="last_turn_not_user",
                message="The conversation must end with a user message",
            )

        context, context_project_id = await run_in_threadpool(
            self._prepare, db, user, request.project_id
        )
        system = build_system_prompt(request, context)
        history = [{"role": turn.role, "content": turn.content} for turn in earlier]
        schema: dict[str, Any] = AssistantReply.model_json_schema()

        raw = await self.llm.generate_json(last.content, system=system, history=history, schema=schema)

        try:
            reply = AssistantReply.model_validate(raw)
        except ValidationError as exc:
            raise LLMAppError(
                code="llm_invalid_response",
                message="The assistant returned an unexpected response",
            ) from exc

        await run_in_threadpool(
            self._record_turn,
            db,
            user,
            context_project_id,
            {"focus_mode": request.focus_mode, "turns": len(request.messages)},
        )
        return reply

    def _prepare(self, db: Session, user: User, project_id: str | None) -> tuple[str, str | None]:
        self._check_quota(db, user)
        return self.build_context(db, user, project_id)

    def _record_turn(
        self, db: Session, user: User, project_id: str | None, details: dict[str, Any]
    ) -> None:
        record_audit(
            db,
            action="ASSISTANT",
            entity_type="ASSISTANT",
            entity_id=None,
            user_id=user.id,
            project_id=project_id,
            details=details,
        )
        db.commit()
