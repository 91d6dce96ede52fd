"""
Ocean Stella - Federated Identity (Google via Firebase)

Verifies Firebase ID tokens issued to the browser after a Google sign-in
and reduces them to the few claims the account layer needs.

Requires the firebase-admin package and a service account supplied through
FB_PROJECT_ID / FB_CLIENT_EMAIL / FB_PRIVATE_KEY.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from starlette.concurrency import run_in_threadpool

from oceanstella.config import Settings
from oceanstella.errors import AuthenticationError, DependencyError

logger = logging.getLogger(__name__)


FIREBASE_APP_NAME = "oceanstella"


@dataclass
class ExternalIdentity:
    """Claims extracted from a verified provider token."""
    provider: str
    uid: str
    email: Optional[str]
    name: Optional[str] = None
    picture: Optional[str] = None


class FirebaseVerifier:
    """
    Firebase Admin SDK token verifier.

    The Firebase app is initialized on first verification, once.
    """

    provider = "google"

    def __init__(
        self,
        project_id: Optional[str] = None,
        client_email: Optional[str] = None,
        private_key: Optional[str] = None,
    ):
        self._project_id = project_id
        self._client_email = client_email
        self._private_key = private_key
        self._app = None
        self._lock = threading.Lock()

        if not self.is_configured:
            logger.warning(
                "Missing FB_PROJECT_ID / FB_CLIENT_EMAIL / FB_PRIVATE_KEY; "
                "Google login will fail until set."
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirebaseVerifier":
        return cls(
            project_id=settings.FB_PROJECT_ID,
            client_email=settings.FB_CLIENT_EMAIL,
            private_key=settings.firebase_private_key,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._project_id and self._client_email and self._private_key)

    def _get_app(self):
        if self._app is None:
            with self._lock:
                if self._app is None:
                    try:
                        self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
                    except ValueError:
                        cred = credentials.Certificate({
                            "type": "service_account",
                            "project_id": self._project_id,
                            "client_email": self._client_email,
                            "private_key": self._private_key,
                            "token_uri": "https://oauth2.googleapis.com/token",
                        })
                        self._app = firebase_admin.initialize_app(
                            cred, {"projectId": self._project_id}, name=FIREBASE_APP_NAME
                        )
        return self._app

    async def verify(self, id_token: str) -> ExternalIdentity:
        """
        Verify a Firebase ID token.

        Raises:
            DependencyError: Firebase credentials are not configured
            AuthenticationError: Token invalid, expired, revoked or malformed
        """
        if not self.is_configured:
            raise DependencyError(
                "Google sign-in is not configured", code="FEDERATION_UNAVAILABLE"
            )

        try:
            app = self._get_app()
        except ValueError as e:
            logger.error("Firebase initialization failed: %s", e)
            raise DependencyError(
                "Google sign-in is not configured", code="FEDERATION_UNAVAILABLE"
            )

        try:
            # Fetches signing certs over the network; keep it off the event loop
            decoded = await run_in_threadpool(firebase_auth.verify_id_token, id_token, app)
        except (ValueError, firebase_auth.InvalidIdTokenError,
                firebase_auth.ExpiredIdTokenError, firebase_auth.RevokedIdTokenError) as e:
            logger.info("Rejected Google ID token: %s", type(e).__name__)
            raise AuthenticationError("Invalid Google token", code="INVALID_EXTERNAL_TOKEN")
        except firebase_auth.CertificateFetchError as e:
            logger.error("Could not fetch Firebase certificates: %s", e)
            raise DependencyError("Identity provider unavailable", code="FEDERATION_UNAVAILABLE")

        return ExternalIdentity(
            provider=self.provider,
            uid=decoded.get("uid") or decoded.get("sub"),
            email=decoded.get("email"),
            name=decoded.get("name"),
            picture=decoded.get("picture"),
        )
