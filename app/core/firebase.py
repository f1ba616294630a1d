"""Firebase Auth: identity verification and staff account provisioning."""

import json
import os

import firebase_admin
from firebase_admin import auth, credentials
from starlette.concurrency import run_in_threadpool
from structlog import get_logger

logger = get_logger(__name__)

_firebase_app: firebase_admin.App | None = None


def _load_credentials(
    config_json: str | None, credentials_path: str | None
) -> credentials.Certificate | None:
    if config_json:
        return credentials.Certificate(json.loads(config_json))
    if credentials_path and os.path.exists(credentials_path):
        return credentials.Certificate(credentials_path)
    return None


def initialize_firebase(
    firebase_credentials_path: str | None = None, firebase_config_json: str | None = None
) -> None:
    """
    Start the Firebase Admin app once per process.

    An inline service account JSON wins over a file path; with neither, the
    SDK falls back to application default credentials.
    """
    global _firebase_app

    if _firebase_app is not None:
        return

    cred = _load_credentials(firebase_config_json, firebase_credentials_path)
    try:
        _firebase_app = firebase_admin.initialize_app(cred) if cred else firebase_admin.initialize_app()
    except Exception as e:
        logger.error("firebase_init_failed", error=str(e))
        raise
    logger.info("firebase_app_started", source="service_account" if cred else "default")


async def verify_firebase_token(id_token: str) -> dict:
    """
    Decode a Firebase ID token sent by the web app.

    Raises:
        ValueError: the token is malformed, expired, revoked or unverifiable
    """
    try:
        claims = await run_in_threadpool(auth.verify_id_token, id_token, clock_skew_seconds=10)
    except auth.InvalidIdTokenError as e:
        logger.warning("firebase_token_rejected", error=str(e))
        raise ValueError(f"Invalid Firebase ID token: {e!s}") from e
    except Exception as e:
        logger.error("firebase_verification_error", error=str(e))
        raise ValueError(f"Token verification failed: {e!s}") from e

    logger.debug("firebase_token_accepted", uid=claims.get("uid"))
    return claims


async def create_firebase_user(email: str, password: str, display_name: str | None) -> str:
    """Provision the email/password login of a new staff member and return its uid."""
    record = await run_in_threadpool(
        auth.create_user,
        email=email,
        password=password,
        display_name=display_name,
    )
    logger.info("firebase_user_created", uid=record.uid)
    return record.uid


async def delete_firebase_user(uid: str) -> None:
    await run_in_threadpool(auth.delete_user, uid)
    logger.info("firebase_user_deleted", uid=uid)
