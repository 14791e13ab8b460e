from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from companion.adapters.payments import AbstractPaymentProvider, get_optional_payment_provider
from companion.core.auth import clear_session_cookie, get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.users import PlanResponse, UserDetail, UserStats, UserUpdate
from companion.services import user_service
from companion.services.plans import effective_plan

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(rate_limit("api_general"))],
)


@router.get("/me", response_model=UserDetail)
def get_me(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> UserDetail:
    """Profile with counts of owned projects, uploaded documents and comments."""
    return user_service.get_user_detail(db, user)


@router.patch("/me", response_model=UserDetail)
def update_me(
    payload: UserUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserDetail:
    """Update profile fields.

    Raises:
        403 when the payload tries to change the plan.
    """
    return user_service.update_user(db, user, payload)


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_me(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AbstractPaymentProvider | None = Depends(get_optional_payment_provider),
) -> Response:
    """Delete the account (RGPD right to erasure) and close the session."""
    user_service.delete_user(db, user, provider)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_session_cookie(response)
    return response


@router.get("/me/export")
def export_me(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> Response:
    """Download every stored personal datum as a JSON attachment (RGPD portability)."""
    payload, filename = user_service.export_user_data(db, user)
    return Response(
        content=json.dumps(payload, ensure_ascii=False, indent=2),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/me/stats", response_model=UserStats)
def my_stats(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> UserStats:
    return user_service.user_stats(db, user)


@router.get("/me/plan", response_model=PlanResponse)
def my_plan(user: User = Depends(get_current_user)) -> PlanResponse:
    return PlanResponse(plan=effective_plan(user).value.lower())
