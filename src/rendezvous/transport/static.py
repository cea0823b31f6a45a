"""Static asset serving on the signaling port.

Plain HTTP GET requests reaching the WebSocket server are answered from a
directory on disk; WebSocket upgrade requests pass through to the handshake.
"""

import email.utils
import logging
import mimetypes
from http import HTTPStatus
from pathlib import Path

from websockets.asyncio.server import ServerConnection
from websockets.datastructures import Headers
from websockets.http11 import Request, Response

logger = logging.getLogger(__name__)


def _response(status: HTTPStatus, body: bytes, content_type: str) -> Response:
    headers = Headers(
        [
            ("Date", email.utils.formatdate(usegmt=True)),
            ("Connection", "close"),
            ("Content-Length", str(len(body))),
            ("Content-Type", content_type),
        ]
    )
    return Response(status.value, status.phrase, headers, body)


class StaticAssetHandler:
    """``process_request`` hook serving files from ``root``.

    ``/`` maps to ``index.html``. Paths escaping the root directory are
    answered with 404.
    """

    def __init__(self, root: Path, index: str = "index.html") -> None:
        self.root = root.resolve()
        self.index = index

    def resolve(self, request_path: str) -> Path | None:
        """Map a request path to a file under the root, or None."""
        path = request_path.split("?", 1)[0].split("#", 1)[0]
        relative = path.lstrip("/") or self.index

        candidate = (self.root / relative).resolve()
        if not candidate.is_relative_to(self.root):
            return None
        if candidate.is_dir():
            candidate = candidate / self.index
        if not candidate.is_file():
            return None
        return candidate

    def __call__(self, connection: ServerConnection, request: Request) -> Response | None:
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None

        file_path = self.resolve(request.path)
        if file_path is None:
            logger.debug("Static asset not found", extra={"path": request.path})
            return _response(HTTPStatus.NOT_FOUND, b"Not Found\n", "text/plain; charset=utf-8")

        content_type, _ = mimetypes.guess_type(file_path.name)
        body = file_path.read_bytes()
        logger.debug(
            "Serving static asset", extra={"path": request.path, "size": len(body)}
        )
        return _response(HTTPStatus.OK, body, content_type or "application/octet-stream")
