# Copyright 2026 The aigate Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Caller identification for the HTTP surface.

Identity keys the rate limiter: an authenticated caller is identified by a
hash of its bearer token, everyone else by client IP.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable, Iterable

from fastapi import Request

# Callable mapping a bearer token to an identity, or None when rejected
Authenticator = Callable[[str], "str | None"]


class AuthenticationError(Exception):
    """Raised when a bearer credential is missing or rejected."""

    pass


class BearerTokenAuthenticator:
    """Default authenticator.

    With an empty token list any non-empty token is accepted; otherwise the
    token must match one of the configured tokens.
    """

    def __init__(self, tokens: Iterable[str] = ()) -> None:
        self._tokens = [t for t in tokens if t]

    def __call__(self, token: str) -> str | None:
        if not token:
            return None
        if self._tokens and not any(hmac.compare_digest(token, t) for t in self._tokens):
            return None
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"user:{digest}"


def bearer_token(request: Request) -> str | None:
    """Extract the bearer token from the Authorization header."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def client_ip(request: Request, trust_forwarded_for: bool = True) -> str:
    """Best-effort client address.

    Uses the first ``x-forwarded-for`` hop (then ``x-real-ip``) when proxy
    headers are trusted, falling back to the socket peer.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
        real_ip = request.headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def client_identity(
    request: Request,
    authenticator: Authenticator,
    required: bool = False,
    trust_forwarded_for: bool = True,
) -> str:
    """Resolve the rate-limit identity for a request.

    Args:
        request: Incoming request
        authenticator: Token-to-identity callable
        required: Reject requests without a valid bearer token
        trust_forwarded_for: Honor proxy headers for the IP fallback

    Returns:
        ``user:<hash>`` for authenticated callers, ``ip:<address>`` otherwise

    Raises:
        AuthenticationError: If a token is required but missing, or a
            supplied token is rejected
    """
    token = bearer_token(request)
    if token is None:
        if required:
            raise AuthenticationError("Bearer token required")
        return f"ip:{client_ip(request, trust_forwarded_for)}"

    identity = authenticator(token)
    if identity is None:
        raise AuthenticationError("Invalid bearer token")
    return identity
