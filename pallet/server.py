"""Read-only static file server for a registry directory.

Cargo only ever issues plain GETs against a sparse registry, so serving the
directory verbatim is the whole HTTP contract. This is meant for local use
and tests; any static web server pointed at the registry root works the
same way.
"""

from __future__ import annotations

import logging
import os
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote

logger = logging.getLogger(__name__)


class RegistryRequestHandler(SimpleHTTPRequestHandler):
    """Serves files and refuses directory listings and dot-files."""

    def send_head(self):
        url_path = self.path.split("?", 1)[0].split("#", 1)[0]
        # translate_path unquotes, so ``%2elocks`` must be caught here too.
        parts = unquote(url_path, errors="surrogatepass").replace("\\", "/").split("/")
        if any(p.startswith(".") and p not in (".", "..") for p in parts):
            self.send_error(404, "File not found")
            return None
        fs_path = self.translate_path(url_path)
        if os.path.isdir(fs_path) and not os.path.isfile(os.path.join(fs_path, "index.html")):
            self.send_error(404, "File not found")
            return None
        return super().send_head()

    def guess_type(self, path):
        # Index Files have no extension; cargo expects them as text.
        if "." not in path.rsplit("/", 1)[-1]:
            return "text/plain; charset=utf-8"
        return super().guess_type(path)

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)


def make_server(root: str | Path, host: str = "127.0.0.1", port: int = 8000) -> ThreadingHTTPServer:
    """Build (but do not start) a server for the registry directory *root*."""
    handler = partial(RegistryRequestHandler, directory=str(root))
    server = ThreadingHTTPServer((host, port), handler)
    logger.info("Serving %s on http://%s:%d/", root, *server.server_address[:2])
    return server
