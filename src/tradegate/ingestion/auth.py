"""
Request authentication for inbound sender events.

Two equally valid schemes:
- HMAC-SHA256 signature over the raw body (hex, optional "sha256=" prefix)
- Bearer token in the Authorization header

Senders with no secret configured are accepted unauthenticated. When a
secret is configured and neither scheme validates, the request is rejected.
"""

import hashlib
import hmac
from typing import Mapping, Optional, Union
import logging

from tradegate.config.settings import SenderConfig
from tradegate.core.errors import AuthenticationFailure

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-hub-signature-256", "x-signature", "signature")


def sign_body(body: Union[bytes, str], secret: str) -> str:
    """Hex HMAC-SHA256 of a request body."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: Union[bytes, str], signature: str, secret: str) -> bool:
    """Constant-time comparison of a provided signature with the expected one."""
    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]
    return hmac.compare_digest(provided.lower().encode("utf-8"), sign_body(body, secret).encode("utf-8"))


def verify_bearer(authorization: str, token: str) -> bool:
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not value:
        return False
    return hmac.compare_digest(value.strip().encode("utf-8"), token.encode("utf-8"))


class RequestAuthenticator:
    """Checks a request against a sender's configured secrets."""

    def __init__(self, name: str = "RequestAuthenticator"):
        self.logger = logging.getLogger(f"{__name__}.{name}")

    @staticmethod
    def _header(headers: Mapping[str, str], *names: str) -> Optional[str]:
        lowered = {k.lower(): v for k, v in headers.items()}
        for name in names:
            if lowered.get(name):
                return lowered[name]
        return None

    def authenticate(
        self,
        sender: str,
        body: Union[bytes, str],
        headers: Optional[Mapping[str, str]],
        sender_config: SenderConfig
    ) -> str:
        """
        Authenticate one request.

        Returns:
            Scheme that validated: "hmac", "bearer", or "none" when the sender
            has no secret configured

        Raises:
            AuthenticationFailure: A secret is configured and nothing validated
        """
        headers = headers or {}
        hmac_secret = sender_config.hmac_secret
        bearer_token = sender_config.bearer_token

        if hmac_secret is None and bearer_token is None:
            return "none"

        if hmac_secret is not None:
            signature = self._header(headers, *SIGNATURE_HEADERS)
            if signature and verify_signature(body, signature, hmac_secret.get_secret_value()):
                return "hmac"

        if bearer_token is not None:
            authorization = self._header(headers, "authorization")
            if authorization and verify_bearer(authorization, bearer_token.get_secret_value()):
                return "bearer"

        self.logger.warning(f"Authentication failed for sender {sender}", extra={'sender': sender})
        raise AuthenticationFailure(sender, "Neither HMAC signature nor bearer token validated")
