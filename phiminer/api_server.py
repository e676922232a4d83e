"""TCP server for the miner's control API: JSON-RPC lines and a small HTTP status page."""

from __future__ import annotations

import json
import re
import socket
import threading
from typing import Any

from phiminer.api_requests import MinerBackend, RequestProcessor
from phiminer.api_stats import http_stat_page
from phiminer.log import note, warn

__all__ = ["ApiConnection", "ApiServer", "http_response", "SERVER_NAME"]

SERVER_NAME = "phiminer"

_HTTP_PATTERN = re.compile(rb"^([A-Z]{1,6}) (/\S*) (HTTP/1\.[0-9])")
_SERVED_PATHS = ("/", "/getstat1")
_RECV_SIZE = 4096
_ACCEPT_POLL = 0.5


def http_response(version: str, status: str, server: str, content_type: str, body: str) -> str:
    """Build a complete HTTP response with headers and body."""
    length = len(body.encode("utf-8"))
    return (
        f"{version} {status}\r\n"
        f"Server: {server}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {length}\r\n\r\n"
        f"{body}\r\n"
    )


def _encode_json(value: Any) -> bytes:
    text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return (text + "\n").encode("utf-8")


class ApiConnection:
    """Protocol state of one API session; turns received bytes into replies."""

    server_name = SERVER_NAME

    def __init__(
        self,
        session_id: int,
        backend: MinerBackend,
        read_only: bool = False,
        password: str = "",
    ) -> None:
        self.session_id = session_id
        self.backend = backend
        self.processor = RequestProcessor(backend, read_only, password)
        self.closing = False
        self._buffer = b""

    def feed(self, data: bytes) -> list[bytes]:
        """Take received bytes and return the replies to send, in order.

        After an HTTP request has been answered ``closing`` becomes true and the
        connection should be shut down once the reply is sent.
        """
        if self.closing:
            return []
        self._buffer += data
        if len(self._buffer) < 4:
            return []

        match = _HTTP_PATTERN.search(self._buffer)
        if match:
            self._buffer = b""
            self.closing = True
            method, path, version = (part.decode("ascii") for part in match.groups())
            return [self._http_reply(method, path, version).encode("utf-8")]

        replies: list[bytes] = []
        while b"\n" in self._buffer:
            raw, self._buffer = self._buffer.split(b"\n", 1)
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                replies.append(_encode_json(self._json_reply(line)))
        return replies

    def _http_reply(self, method: str, path: str, version: str) -> str:
        if method != "GET":
            return http_response(
                version,
                "405 Method not allowed",
                self.server_name,
                "text/plain",
                f"Method {method} not allowed",
            )
        if path not in _SERVED_PATHS:
            return http_response(
                version,
                "404 Not Found",
                self.server_name,
                "text/plain",
                f"The requested resource {path} not found on this server",
            )
        try:
            body = http_stat_page(self.backend.miner_stat_detail())
        except Exception as error:  # noqa: BLE001 - reported to the client
            return http_response(
                version,
                "500 Internal Server Error",
                self.server_name,
                "text/plain",
                f"Internal error : {error}",
            )
        return http_response(
            version, "200 Ok Error", self.server_name, "text/html; charset=utf-8", body
        )

    def _json_reply(self, line: str) -> dict[str, Any]:
        try:
            request = json.loads(line)
        except ValueError as error:
            what = str(error).replace("\n", " ")
            warn("API : Got invalid Json message ", what)
            return {
                "jsonrpc": "2.0",
                "id": None,
                "error": {"errorcode": "-32700", "message": "Json parse error : " + what},
            }
        try:
            return self.processor.process(request)
        except Exception as error:  # noqa: BLE001 - reported to the client
            return {
                "jsonrpc": "2.0",
                "id": None,
                "error": {"errorcode": "500", "message": str(error)},
            }


class ApiServer:
    """Listens for API clients and serves each on its own thread.

    A negative port number opens the API read-only on the absolute port; port 0
    disables the server.
    """

    def __init__(
        self, address: str, port: int, password: str = "", backend: MinerBackend | None = None
    ) -> None:
        self.address = address
        self.read_only = port < 0
        self.port = -port if port < 0 else port
        self.password = password
        self.backend = backend
        self.bound_port: int | None = None
        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._sessions: dict[int, tuple[ApiConnection, socket.socket, threading.Thread]] = {}
        self._last_session_id = 0

    def is_running(self) -> bool:
        """Return whether the server is accepting clients."""
        return self._running.is_set()

    def start(self) -> None:
        """Bind and start accepting; a failure to bind is logged, not raised."""
        if self.port == 0 or self.is_running():
            return
        if self.backend is None:
            raise ValueError("an API server needs a backend")
        family = socket.AF_INET6 if ":" in self.address else socket.AF_INET
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind((self.address, self.port))
            listener.listen(64)
        except OSError:
            listener.close()
            warn(f"Could not start API server on port: {self.port}")
            warn("Ensure port is not in use by another service")
            return
        listener.settimeout(_ACCEPT_POLL)
        self._listener = listener
        self.bound_port = listener.getsockname()[1]
        note(
            f"Api server listening on port {self.bound_port}",
            "." if not self.password else ". Authentication needed.",
        )
        self._running.set()
        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="api", daemon=True
        )
        self._accept_thread.start()

    def stop(self) -> None:
        """Stop accepting, close every session and wait for the threads."""
        if not self.is_running():
            return
        self._running.clear()
        if self._listener is not None:
            self._listener.close()
        if self._accept_thread is not None:
            self._accept_thread.join()
            self._accept_thread = None
        self._listener = None
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for _, sock, _ in sessions:
            self._close_socket(sock)
        for _, _, thread in sessions:
            if thread is not threading.current_thread():
                thread.join(timeout=2.0)

    def __enter__(self) -> ApiServer:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _accept_loop(self) -> None:
        listener = self._listener
        while self.is_running() and listener is not None:
            try:
                sock, peer = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            sock.settimeout(None)
            with self._lock:
                self._last_session_id += 1
                session_id = self._last_session_id
                connection = ApiConnection(
                    session_id, self.backend, self.read_only, self.password
                )
                thread = threading.Thread(
                    target=self._serve,
                    args=(connection, sock),
                    name=f"api-{session_id}",
                    daemon=True,
                )
                self._sessions[session_id] = (connection, sock, thread)
            note("New API session from ", f"{peer[0]}:{peer[1]}")
            thread.start()

    def _serve(self, connection: ApiConnection, sock: socket.socket) -> None:
        try:
            while self.is_running():
                data = sock.recv(_RECV_SIZE)
                if not data:
                    break
                for reply in connection.feed(data):
                    sock.sendall(reply)
                if connection.closing:
                    break
        except OSError:
            pass
        finally:
            self._close_socket(sock)
            with self._lock:
                self._sessions.pop(connection.session_id, None)

    @staticmethod
    def _close_socket(sock: socket.socket) -> None:
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()