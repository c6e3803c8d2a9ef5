"""
Firebase Authentication - verify ID tokens from Google Sign-In.

Primary mode:
    - Use Firebase Admin SDK with a service account (FIREBASE_SERVICE_ACCOUNT_JSON).

Development mode (service account not configured, ENVIRONMENT != production):
    - Decode the JWT without verifying the signature using PyJWT.
    - Production deployments reject tokens when Firebase Admin is unavailable.
"""
import json
import logging
from typing import Optional

import firebase_admin
import jwt  # PyJWT
from firebase_admin import auth, credentials

from fitness_api.config import settings

logger = logging.getLogger(__name__)

_firebase_initialized = False


def _init_firebase() -> bool:
    """Initialize Firebase Admin SDK from settings."""
    global _firebase_initialized
    if _firebase_initialized:
        return True

    credentials_json = settings.FIREBASE_SERVICE_ACCOUNT_JSON
    if not credentials_json:
        logger.info("FIREBASE_SERVICE_ACCOUNT_JSON not set - Firebase Admin not initialized")
        return False

    try:
        cred = credentials.Certificate(json.loads(credentials_json))
        firebase_admin.initialize_app(cred)
    except (ValueError, OSError) as e:
        logger.error("Firebase init failed: %s", e)
        return False

    _firebase_initialized = True
    logger.info("Firebase Admin initialized successfully")
    return True


def _decode_without_verification(id_token: str) -> Optional[dict]:
    """
    Decode a JWT without verifying its signature.

    Only used outside production when Firebase Admin is not configured.
    """
    try:
        decoded = jwt.decode(
            id_token,
            options={
                "verify_signature": False,
                "verify_exp": False,
                "verify_aud": False,
            },
        )
    except jwt.InvalidTokenError as e:
        logger.warning("Token decode without verification failed: %s", e)
        return None

    logger.warning("Firebase token decoded without verification (development mode)")
    return decoded


def verify_id_token(id_token: str) -> Optional[dict]:
    """
    Verify Firebase ID token and return decoded claims.

    Returns:
        dict with uid, email, etc. or None if invalid.
    """
    if _init_firebase():
        try:
            return auth.verify_id_token(id_token)
        except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
            logger.warning("Token verification via Firebase Admin failed: %s", e)
            return None

    if settings.is_production:
        logger.error("Firebase Admin is not configured; rejecting ID token")
        return None

    return _decode_without_verification(id_token)
