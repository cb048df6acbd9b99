"""
Signed Gateway Transport

Every outbound call to the Gateway carries an HMAC-SHA256 signature of the
raw request body in the ``X-Signature`` header. The transport never
interprets status codes and never retries; both are the caller's policy.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import aiohttp

from ..utils.logger import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature"


def sign_payload(secret: str, payload: Union[str, bytes]) -> str:
    """Return the ``sha256=<hex>`` signature of ``payload`` keyed by ``secret``."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, payload: Union[str, bytes], signature: str) -> bool:
    """Constant-time check of a received signature header."""
    return hmac.compare_digest(sign_payload(secret, payload), signature or "")


@dataclass
class GatewayResponse:
    """Raw HTTP response as seen by the caller."""

    status: int
    reason: str
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body)


class SignedTransport:
    """
    HMAC-signed HTTP client for the Gateway.

    The aiohttp session is created lazily and closed by :meth:`close` when
    the transport created it. A session passed in by the caller is left open.
    """

    def __init__(
        self,
        secret: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self._secret = secret
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def send(self, method: str, url: str, body: str) -> GatewayResponse:
        """
        Sign ``body`` and issue the request.

        Args:
            method: HTTP method
            url: Absolute URL
            body: Exact request body; for GET requests it is only signed, not sent

        Returns:
            GatewayResponse with the status and raw body

        Raises:
            aiohttp.ClientError, asyncio.TimeoutError: transport failures
        """
        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(self._secret, body),
        }
        data = None if method.upper() == "GET" else body.encode("utf-8")

        session = self._get_session()
        async with session.request(method, url, data=data, headers=headers) as resp:
            text = await resp.text()
            logger.debug("Gateway call", method=method, url=url, status=resp.status)
            return GatewayResponse(status=resp.status, reason=resp.reason or "", body=text)

    async def post_json(self, url: str, payload: Dict[str, Any]) -> GatewayResponse:
        return await self.send("POST", url, json.dumps(payload))

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "SignedTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


__all__ = [
    "SIGNATURE_HEADER",
    "sign_payload",
    "verify_signature",
    "GatewayResponse",
    "SignedTransport",
]
