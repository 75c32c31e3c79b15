"""
Client HTTP (httpx) de l'API admin LearnWorlds v2.

- GET  /users/{email}             -> utilisateur ou None (404)
- POST /users                     -> création {email, username}
- POST /users/{email}/enrollment  -> inscription à un cours/bundle
Chaque appel consomme un jeton du TokenBucket, qu'il réussisse ou non.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from backend.config import (
    LEARNWORLDS_API_URL,
    LEARNWORLDS_AUTH_TOKEN,
    LEARNWORLDS_CLIENT_TOKEN,
    LEARNWORLDS_RATE_PER_SECOND,
    LEARNWORLDS_TIMEOUT,
)
from .rate_limiter import TokenBucket

logger = logging.getLogger(__name__)

ENROLLMENT_JUSTIFICATION = "Added by admin - Stripe payment completed"
ALREADY_OWNED_MARKERS = ("already owned", "product is already owned")

class LearnWorldsError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class LearnWorldsAuthError(LearnWorldsError):
    """Jetons refusés (401/403) ou page HTML renvoyée à la place du JSON."""

class LearnWorldsUser:
    def __init__(self, id: str, email: str, username: Optional[str] = None, created: bool = False):
        self.id = id
        self.email = email
        self.username = username
        self.created = created

class EnrollmentResult:
    def __init__(self, success: bool, already_owned: bool = False, message: Optional[str] = None, enrollment_id: Optional[str] = None):
        self.success = success
        self.already_owned = already_owned
        self.message = message
        self.enrollment_id = enrollment_id

def _is_already_owned(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in ALREADY_OWNED_MARKERS)

def _looks_like_html(response: httpx.Response) -> bool:
    ctype = response.headers.get("content-type", "").lower()
    body = response.text.lstrip()[:15].lower()
    return "text/html" in ctype or body.startswith("<!doctype") or body.startswith("<html")

def _json_or_none(response: httpx.Response) -> Optional[Any]:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None

class LearnWorldsClient:
    def __init__(
        self,
        base_url: str = LEARNWORLDS_API_URL,
        auth_token: str = LEARNWORLDS_AUTH_TOKEN,
        client_token: str = LEARNWORLDS_CLIENT_TOKEN,
        limiter: Optional[TokenBucket] = None,
        timeout: float = LEARNWORLDS_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.limiter = limiter or TokenBucket(rate=LEARNWORLDS_RATE_PER_SECOND)
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {auth_token}",
                "Lw-Client": client_token,
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        self.limiter.acquire()
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise LearnWorldsError(f"{method} {path} failed: {e}") from e
        if response.status_code in (401, 403):
            raise LearnWorldsAuthError(f"{method} {path} rejected credentials", response.status_code)
        if _looks_like_html(response):
            raise LearnWorldsAuthError(f"{method} {path} returned HTML instead of JSON", response.status_code)
        return response

    def get_user(self, email: str) -> Optional[LearnWorldsUser]:
        response = self._request("GET", f"/users/{quote(email, safe='@')}")
        if response.status_code == 404:
            return None
        if response.is_error:
            raise LearnWorldsError(f"user lookup failed: {response.text[:200]}", response.status_code)
        data = _json_or_none(response) or {}
        if not data.get("id"):
            return None
        return LearnWorldsUser(id=str(data["id"]), email=data.get("email") or email, username=data.get("username"))

    def create_user(self, email: str, username: str) -> LearnWorldsUser:
        response = self._request("POST", "/users", json={"email": email, "username": username})
        data = _json_or_none(response) or {}
        if response.is_error or not data.get("id"):
            raise LearnWorldsError(f"user creation failed: {response.text[:200]}", response.status_code)
        return LearnWorldsUser(id=str(data["id"]), email=data.get("email") or email, username=data.get("username") or username, created=True)

    def ensure_user(self, email: str, username: str) -> LearnWorldsUser:
        user = self.get_user(email)
        if user is not None:
            return user
        logger.info("learnworlds.client.ensure_user creating user email=%s", email)
        return self.create_user(email, username)

    def enroll(self, email: str, product_id: str, product_type: str, price: int) -> EnrollmentResult:
        """
        Inscrit l'utilisateur à un produit.
        - 2xx sans corps ou non-JSON: succès
        - JSON {success: false}: échec, sauf message "already owned" (succès idempotent)
        - non-2xx contenant "already owned": succès
        - LearnWorldsAuthError / LearnWorldsError propagées pour les autres cas réseau/auth
        """
        response = self._request(
            "POST",
            f"/users/{quote(email, safe='@')}/enrollment",
            json={
                "productId": product_id,
                "productType": product_type,
                "justification": ENROLLMENT_JUSTIFICATION,
                "price": price,
                "send_enrollment_email": True,
            },
        )
        data = _json_or_none(response)
        text = response.text or ""

        if response.is_error:
            if _is_already_owned(text):
                return EnrollmentResult(True, already_owned=True, message="Product is already owned")
            return EnrollmentResult(False, message=f"HTTP {response.status_code}: {text[:200]}")

        if not isinstance(data, dict):
            return EnrollmentResult(True)
        if data.get("success") is False:
            message = str(data.get("message") or data.get("error") or data.get("errors") or "")
            if _is_already_owned(message):
                return EnrollmentResult(True, already_owned=True, message=message)
            return EnrollmentResult(False, message=message or "enrollment rejected")
        return EnrollmentResult(True, enrollment_id=str(data["id"]) if data.get("id") else None)

_client: Optional[LearnWorldsClient] = None

def get_learnworlds_client() -> LearnWorldsClient:
    """Client partagé (un seul token bucket pour tout le processus)."""
    global _client
    if _client is None:
        _client = LearnWorldsClient()
    return _client

def close_learnworlds_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
