import logging

import firebase_admin
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .config import FIREBASE_PROJECT_ID
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_firebase_app() -> firebase_admin.App:
    """Initialize Firebase Admin SDK once (Application Default Credentials when available)"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if not FIREBASE_PROJECT_ID:
        logger.error("❌ FIREBASE_PROJECT_ID not configured")
        raise HTTPException(status_code=500, detail="Firebase not configured")

    try:
        cred = credentials.ApplicationDefault()
        app = firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
        logger.info("Firebase Admin initialized with default credentials")
    except Exception:
        # Token verification only needs the project id and Google's public certs
        app = firebase_admin.initialize_app(options={"projectId": FIREBASE_PROJECT_ID})
        logger.info("Firebase Admin initialized with project ID only")
    return app


async def verify_firebase_token(token: str) -> dict:
    """Verify a Firebase ID token (signature, audience, issuer, expiry)"""
    app = get_firebase_app()
    try:
        return await run_in_threadpool(firebase_auth.verify_id_token, token, app)
    except firebase_auth.ExpiredIdTokenError as e:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        ) from e
    except (firebase_auth.InvalidIdTokenError, ValueError) as e:
        logger.warning(f"⚠️ Invalid Firebase token: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token") from e
    except firebase_auth.CertificateFetchError as e:
        logger.error(f"❌ Could not fetch Firebase public keys: {str(e)}")
        raise HTTPException(status_code=503, detail="Unable to verify token right now") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get the dashboard user for a Firebase token; the user must belong to a workspace"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    decoded_token = await verify_firebase_token(credentials.credentials)

    firebase_uid = decoded_token.get("uid") or decoded_token.get("sub")
    if not firebase_uid:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(decoded_token.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.firebase_uid == firebase_uid).first()
    if not user:
        logger.warning(f"⚠️ No user record for Firebase UID {firebase_uid}")
        raise HTTPException(status_code=403, detail="User is not registered")

    if not user.workspace_id:
        logger.warning(f"⚠️ User {user.email} has no workspace")
        raise HTTPException(status_code=403, detail="User does not belong to a workspace")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user
