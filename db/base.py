import os
import logging

import firebase_admin
from firebase_admin import credentials, firestore

from shared.settings import SECRETS_DIR

logger = logging.getLogger(__name__)

_db = None


def get_db():
    """Firestore client for the default app; initialized on first use."""
    global _db
    if _db is not None:
        return _db

    firebase_path = os.path.join(SECRETS_DIR, "firebase.json")
    if not firebase_admin._apps:
        if os.path.exists(firebase_path):
            cred = credentials.Certificate(firebase_path)
            firebase_admin.initialize_app(cred)
        else:
            # Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS, emulator, GCE)
            logger.info("[DB] %s not found, using application default credentials", firebase_path)
            firebase_admin.initialize_app()

    _db = firestore.client()
    return _db
