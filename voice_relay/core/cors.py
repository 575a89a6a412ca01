# voice_relay/core/cors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

ALLOW_METHODS = "GET,POST,OPTIONS"
ALLOW_HEADERS = "Content-Type,Authorization"


@dataclass(frozen=True)
class CorsPolicy:
    """
    Per-response CORS headers.

    - no Origin header           -> "*"
    - empty allow-list           -> echo the Origin
    - Origin in allow-list       -> echo the Origin
    - Origin not in allow-list   -> no Access-Control-Allow-Origin at all
    Methods/headers lists are static.
    """

    allowed_origins: Tuple[str, ...] = ()

    def headers_for(self, origin: Optional[str]) -> Dict[str, str]:
        headers = {
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
        }
        if not origin:
            headers["Access-Control-Allow-Origin"] = "*"
        elif not self.allowed_origins or origin in self.allowed_origins:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        return headers
