from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, urlsplit, urlunsplit


@dataclass(frozen=True, slots=True)
class Session:
    """The signed-in user and the service they talk to.

    Passed to every client component; there is no ambient "current user".
    """

    user_id: str
    token: str
    base_url: str
    ws_path: str = "/ws"

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def ws_url(self) -> str:
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + self.ws_path
        return urlunsplit((scheme, parts.netloc, path, f"token={quote(self.token)}", ""))
