"""
Firebase Admin Setup

The storefront signs users in with Firebase Auth and keeps media in the
project's Cloud Storage bucket. The admin app is initialized once per
process and shared by everything that needs it.
"""

import logging
import os

import firebase_admin
from firebase_admin import credentials

from storefront_otp.core.config import Settings


logger = logging.getLogger(__name__)


def init_firebase(settings: Settings) -> firebase_admin.App:
    """
    Return the default Firebase app, initializing it on first use.

    Credentials come from ``FIREBASE_CREDENTIALS_PATH`` when it points at
    a service account file, and from Application Default Credentials
    otherwise.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    project_id = (
        settings.FIREBASE_PROJECT_ID
        or os.environ.get("GOOGLE_CLOUD_PROJECT")
        or os.environ.get("GCLOUD_PROJECT")
    )
    cred_path = settings.FIREBASE_CREDENTIALS_PATH
    if cred_path and os.path.isfile(cred_path):
        cred = credentials.Certificate(cred_path)
    else:
        if cred_path:
            logger.warning(f"Firebase credentials file not found at {cred_path}, using application default")
        cred = credentials.ApplicationDefault()

    options = {}
    if project_id:
        options["projectId"] = project_id
    if settings.STORAGE_BUCKET:
        options["storageBucket"] = settings.STORAGE_BUCKET

    app = firebase_admin.initialize_app(cred, options or None)
    logger.info(f"Firebase initialized (project={project_id or 'default'})")
    return app
