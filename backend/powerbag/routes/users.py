import os
from urllib.parse import urlencode
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..database import get_db
from .. import models, schemas, auth, notify, audit

limiter = Limiter(key_func=get_remote_address)
testing = os.getenv("TESTING") == "1"


def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)


router = APIRouter(prefix="/api/users", tags=["users"])


def _find_by_email(db: Session, email: str) -> models.User | None:
    return db.query(models.User).filter(models.User.email == email.lower()).first()


@router.get("/check-email/{email}", response_model=schemas.EmailExistsOut)
async def check_email(email: str, db: Session = Depends(get_db)):
    return schemas.EmailExistsOut(exists=_find_by_email(db, email) is not None)


@router.post("/send-code")
@rate_limit("5/minute")
async def send_code(request: Request, data: schemas.SendCodeRequest, db: Session = Depends(get_db)):
    user = _find_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    code = auth.issue_login_code(db, user)
    magic_link = ""
    if data.magic_link:
        magic_link = f"{data.magic_link}?{urlencode({'email': user.email, 'code': code})}"
    notify.send_template_email(
        user.email,
        "Your Powerbag sign-in code",
        "Powerbag_signin_code",
        {"CODE": code, "MAGICLINK": magic_link},
    )
    return {"message": "Code sent"}


@router.post("/login", response_model=schemas.Token)
@rate_limit("10/minute")
async def login(request: Request, data: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = _find_by_email(db, data.email)
    if not user or not auth.verify_login_code(user, data.code):
        raise HTTPException(status_code=401, detail="Invalid email or code")
    audit.log_action(db, user.id, "login", "user", user.id)
    return schemas.Token(
        access_token=auth.create_access_token(user), user=schemas.UserOut.model_validate(user)
    )


@router.get("/me", response_model=schemas.UserOut)
async def read_profile(current_user: models.User = Depends(auth.get_current_user)):
    return current_user


@router.post("/", response_model=schemas.UserOut)
async def create_user(
    data: schemas.UserCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.require_admin),
):
    if _find_by_email(db, data.email):
        raise HTTPException(status_code=409, detail="Email already registered")
    user = models.User(email=data.email.lower(), name=data.name, roles=list(data.roles))
    db.add(user)
    db.commit()
    db.refresh(user)
    audit.log_action(db, admin.id, "user.create", "user", user.id)
    return user


@router.get("/", response_model=list[schemas.UserOut])
async def list_users(
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.require_admin),
):
    return db.query(models.User).order_by(models.User.created_at).all()


@router.get("/{user_id}", response_model=schemas.UserOut)
async def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.require_admin),
):
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(auth.require_admin),
):
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    db.delete(user)
    db.commit()
    audit.log_action(db, admin.id, "user.delete", "user", user_id)
    return
