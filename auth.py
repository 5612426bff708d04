"""
Identity provider: registration, login, bearer tokens and the caller dependency.

Tokens are HS256 JWTs carrying the user's storage key (``id``), sequential
identifier and email. The ``Authorization`` header is accepted with or
without the ``Bearer `` prefix.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Header
from pymongo.errors import DuplicateKeyError

import config
import identifiers
from database import create_document
from errors import AuthError, Conflict, NotFound
from logging_config import get_logger
from schemas import User, utcnow

logger = get_logger(__name__)

COLLECTION = "user"


@dataclass(frozen=True)
class Caller:
    """The authenticated user behind a request."""

    id: str
    user_id: Optional[str]
    email: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def public_user(doc: dict) -> dict:
    """User document without its credential, ready for JSON."""
    return {
        "id": str(doc["_id"]),
        "user_id": doc.get("user_id"),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "phone": doc.get("phone"),
        "created_at": doc["created_at"].isoformat() if doc.get("created_at") else None,
    }


def register(db, name: str, email: str, password: str, phone: Optional[str] = None) -> dict:
    email = email.strip().lower()
    if db[COLLECTION].find_one({"email": email}):
        raise Conflict("User already exists")

    user = User(
        user_id=identifiers.allocate(db, "user"),
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        phone=phone,
    )
    doc = user.model_dump()
    try:
        user_key = create_document(COLLECTION, doc, database=db)
    except DuplicateKeyError:
        # Lost a race with a concurrent registration for the same email.
        raise Conflict("User already exists")

    logger.info("user_registered", id=user_key, user_id=user.user_id)
    return public_user(doc)


def issue_token(user: dict) -> str:
    now = utcnow()
    claims = {
        "id": user["id"],
        "user_id": user.get("user_id"),
        "email": user["email"],
        "iat": now,
        "exp": now + timedelta(minutes=config.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Caller:
    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")

    if not claims.get("id") or not claims.get("email"):
        raise AuthError("Invalid token")
    return Caller(id=claims["id"], user_id=claims.get("user_id"), email=claims["email"])


def login(db, email: str, password: str) -> dict:
    doc = db[COLLECTION].find_one({"email": email.strip().lower()})
    if doc is None or not verify_password(password, doc["password_hash"]):
        raise AuthError("Invalid credentials")

    user = public_user(doc)
    logger.info("user_logged_in", id=user["id"])
    return {"token": issue_token(user), "user": user}


def _user_key(caller: Caller):
    try:
        return ObjectId(caller.id)
    except InvalidId:
        raise AuthError("Invalid token")


def get_profile(db, caller: Caller) -> dict:
    doc = db[COLLECTION].find_one({"_id": _user_key(caller)})
    if doc is None:
        raise NotFound("User not found")
    return public_user(doc)


def update_phone(db, caller: Caller, phone: str) -> dict:
    result = db[COLLECTION].update_one(
        {"_id": _user_key(caller)},
        {"$set": {"phone": phone, "updated_at": utcnow()}},
    )
    if result.matched_count == 0:
        raise NotFound("User not found")
    return get_profile(db, caller)


def current_user(authorization: Optional[str] = Header(None)) -> Caller:
    """FastAPI dependency resolving the bearer token into a ``Caller``."""
    if not authorization or not authorization.strip():
        raise AuthError("Unauthorized")
    token = authorization.strip()
    if token.lower() == "bearer" or token.lower().startswith("bearer "):
        token = token[6:].strip()
    if not token:
        raise AuthError("Unauthorized")
    return decode_token(token)
