"""Unit tests for static asset serving on the signaling port."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from websockets.datastructures import Headers
from websockets.http11 import Request

from rendezvous.config import DEFAULT_STATIC_DIR
from rendezvous.transport.static import StaticAssetHandler


@pytest.fixture
def root(tmp_path: Path) -> Path:
    (tmp_path / "index.html").write_text("<html>call</html>", encoding="utf-8")
    (tmp_path / "js").mkdir()
    (tmp_path / "js" / "app.js").write_text("console.log('hi')", encoding="utf-8")
    (tmp_path.parent / "secret.txt").write_text("nope", encoding="utf-8")
    return tmp_path


def get(handler: StaticAssetHandler, path: str, upgrade: bool = False):
    headers = Headers([("Host", "localhost")])
    if upgrade:
        headers["Upgrade"] = "websocket"
        headers["Connection"] = "Upgrade"
    return handler(MagicMock(), Request(path, headers))


class TestStaticAssetHandler:
    """Test request resolution and responses."""

    def test_root_serves_index(self, root: Path) -> None:
        response = get(StaticAssetHandler(root), "/")

        assert response.status_code == 200
        assert response.body == b"<html>call</html>"
        assert response.headers["Content-Type"].startswith("text/html")
        assert response.headers["Content-Length"] == str(len(response.body))

    def test_nested_file(self, root: Path) -> None:
        response = get(StaticAssetHandler(root), "/js/app.js?v=1")

        assert response.status_code == 200
        assert response.body == b"console.log('hi')"

    def test_missing_file_is_404(self, root: Path) -> None:
        assert get(StaticAssetHandler(root), "/missing.css").status_code == 404

    def test_traversal_is_404(self, root: Path) -> None:
        handler = StaticAssetHandler(root)

        assert handler.resolve("/../secret.txt") is None
        assert get(handler, "/../secret.txt").status_code == 404

    def test_upgrade_passes_through(self, root: Path) -> None:
        assert get(StaticAssetHandler(root), "/", upgrade=True) is None

    def test_bundled_client_exists(self) -> None:
        """The packaged browser client is served by default."""
        assert StaticAssetHandler(DEFAULT_STATIC_DIR).resolve("/") is not None
