"""
Convocate - Client Identity
Who a request counts against for quota purposes. Not authentication.
"""

import uuid
from typing import Tuple

from flask import Request

CLIENT_COOKIE = "client_id"
COOKIE_MAX_AGE = 60 * 60 * 24 * 365

# Checked in order; the first non-empty one wins.
IDENTITY_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP")


def get_client_id(request: Request) -> Tuple[str, bool]:
    """
    Resolve the caller's quota identity.

    Returns:
        (client_id, is_new). is_new means the id was just minted and the
        caller should set it as the client_id cookie on the response.
    """
    for header in IDENTITY_HEADERS:
        value = request.headers.get(header, "")
        # X-Forwarded-For is a chain; the first hop is the client
        first = value.split(",")[0].strip()
        if first:
            return first, False

    cookie = request.cookies.get(CLIENT_COOKIE, "").strip()
    if cookie:
        return cookie, False

    return uuid.uuid4().hex, True
