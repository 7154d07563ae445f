"""reCAPTCHA v3 verification over httpx."""

import logging
from typing import Optional

import httpx

from portal.config import settings
from portal.errors import AuthenticationError, DependencyError

logger = logging.getLogger(__name__)


class RecaptchaVerifier:
    def __init__(self, secret_key: str, min_score: float = 0.5,
                 verify_url: str = "https://www.google.com/recaptcha/api/siteverify",
                 timeout: float = 10.0):
        self.secret_key = secret_key
        self.min_score = min_score
        self.verify_url = verify_url
        self.timeout = timeout

    def verify(self, token: Optional[str], required: bool = True, remote_ip: Optional[str] = None) -> None:
        """
        Raise AuthenticationError unless the token passes.

        ``required=False`` lets trusted callers omit the token entirely; a
        token that is present is always checked.
        """
        if not token:
            if required:
                raise AuthenticationError("reCAPTCHA verification failed")
            return

        if not self.secret_key:
            logger.warning("RECAPTCHA_SECRET_KEY not set; skipping reCAPTCHA verification")
            return

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            resp = httpx.post(self.verify_url, data=data, timeout=self.timeout)
            resp.raise_for_status()
            result = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DependencyError(f"reCAPTCHA verification request failed: {e}")

        score = result.get("score", 0.0)
        if not result.get("success") or (score is not None and score < self.min_score):
            logger.info("reCAPTCHA rejected success=%s score=%s", result.get("success"), score)
            raise AuthenticationError("reCAPTCHA verification failed")


def get_captcha_verifier() -> RecaptchaVerifier:
    return RecaptchaVerifier(
        secret_key=settings.recaptcha_secret_key,
        min_score=settings.recaptcha_min_score,
        verify_url=settings.recaptcha_verify_url,
    )
