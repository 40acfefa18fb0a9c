"""Authentication routes and session management."""
from __future__ import annotations

import os

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from salesdesk.auth import User
from salesdesk.database import get_session

router = APIRouter(tags=["Auth"])


@router.post("/login")
def login(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_session),
):
    """Check credentials and set the session cookie."""
    user = db.query(User).filter(User.username == username).first()
    if not user or not user.verify_password(password):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    response = JSONResponse({"ok": True, "user_id": user.id, "role": user.role})
    # Secure cookies whenever the app runs against a production database.
    is_production = os.getenv("SALESDESK_DATABASE_URL", "").startswith("postgresql")
    response.set_cookie(
        key="user_id",
        value=str(user.id),
        httponly=True,
        path="/",
        secure=is_production,
        samesite="lax",
        max_age=86400,  # 24 hours
    )
    return response


@router.post("/logout")
def logout():
    """Clear the session cookie."""
    response = JSONResponse({"ok": True})
    response.delete_cookie("user_id")
    return response


def get_current_user(request: Request, db: Session = Depends(get_session)) -> User:
    """Dependency to get current authenticated user."""
    user_id = request.cookies.get("user_id")

    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_id = int(user_id)
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.query(User).filter(User.id == user_id).first()

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """Dependency to ensure user is admin."""
    if not user.is_admin():
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
