"""JSON-RPC request handling for the miner's control API."""

from __future__ import annotations

import hmac
import math
import re
from abc import ABC, abstractmethod
from typing import Any

from phiminer.log import LOG_NEXT, note, settings, warn

__all__ = [
    "RpcError",
    "MinerBackend",
    "RequestProcessor",
    "get_request_value",
    "parse_request_id",
    "check_write_access",
]

INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
UNPROCESSABLE = -422
UNAUTHORIZED = -401
FORBIDDEN = -403

_MAX_UINT32 = 0xFFFFFFFF
_MAX_UINT64 = 0xFFFFFFFFFFFFFFFF
_MAX_PASSWORD_LENGTH = 500
_KINDS = ("bool", "uint", "uint64", "object", "string")
_HEX_NONCE = re.compile(r"0x([0-9a-fA-F]*)")

_NO_RESULT = object()


class RpcError(Exception):
    """A JSON-RPC error carrying its numeric code and message."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class MinerBackend(ABC):
    """What the API needs from the running farm and pool manager."""

    @abstractmethod
    def miner_stat1(self) -> list[str]:
        """Return the stat1 report."""

    @abstractmethod
    def miner_stat_detail(self) -> dict[str, Any]:
        """Return the detailed status report."""

    @abstractmethod
    def shuffle(self) -> None:
        """Give the nonce scrambler a new range."""

    @abstractmethod
    def restart_async(self) -> None:
        """Restart mining without blocking the caller."""

    @abstractmethod
    def reboot(self, args: list[str]) -> bool:
        """Reboot the miner; return whether it was started."""

    @abstractmethod
    def connections(self) -> list[Any]:
        """Return the configured pool connections."""

    @abstractmethod
    def add_connection(self, uri: str) -> None:
        """Add a pool connection; raise on a bad URI."""

    @abstractmethod
    def set_active_connection(self, target: int | str) -> None:
        """Switch to the connection at an index or with a URI; raise if not possible."""

    @abstractmethod
    def remove_connection(self, index: int) -> None:
        """Remove the connection at ``index``; raise if not possible."""

    @abstractmethod
    def scrambler_info(self) -> dict[str, Any]:
        """Return the nonce scrambler description."""

    @property
    @abstractmethod
    def nonce_scrambler(self) -> int:
        """The current nonce scrambler."""

    @property
    @abstractmethod
    def segment_width(self) -> int:
        """The current nonce segment width."""

    @abstractmethod
    def set_scrambler(self, nonce: int, width: int) -> None:
        """Set the nonce scrambler and segment width."""

    @abstractmethod
    def pause_miner(self, index: int, pause: bool) -> bool:
        """Pause or resume a miner; return False when there is no such miner."""


def _members(request: Any) -> dict[str, Any]:
    if request is None:
        return {}
    if not isinstance(request, dict):
        raise TypeError("request must be a JSON object")
    return request


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, dict)) and not value)


def _as_uint(value: Any, limit: int) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value <= limit else None
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value) if 0 <= value <= limit else None
    return None


def _as_uint64(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value if 0 <= value <= _MAX_UINT64 else None
    if isinstance(value, float) and math.isfinite(value) and 0 <= value < 2.0**64:
        return int(value)
    return None


def get_request_value(
    request: Any, name: str, kind: str, optional: bool = False
) -> Any:
    """Fetch member ``name`` of ``kind`` (bool, uint, uint64, object, string).

    Returns None when the member is missing and ``optional``; otherwise a
    missing, mistyped or empty member raises RpcError.
    """
    if kind not in _KINDS:
        raise ValueError(f"unknown value kind {kind!r}")
    members = _members(request)
    if name not in members:
        if optional:
            return None
        raise RpcError(INVALID_PARAMS, f"Missing '{name}'")
    value = members[name]

    if kind == "uint64":
        if _is_empty(value):
            raise RpcError(INVALID_PARAMS, f"Empty '{name}'")
        converted = _as_uint64(value)
        if converted is None:
            raise RpcError(INVALID_PARAMS, f"Bad value in '{name}'")
        return converted

    if kind == "bool":
        valid = isinstance(value, bool)
    elif kind == "uint":
        valid = _as_uint(value, _MAX_UINT32) is not None
    elif kind == "object":
        valid = isinstance(value, dict)
    else:
        valid = isinstance(value, str)
    if not valid:
        raise RpcError(INVALID_PARAMS, f"Invalid type of value '{name}'")
    if _is_empty(value):
        raise RpcError(INVALID_PARAMS, f"Empty '{name}'")
    return _as_uint(value, _MAX_UINT32) if kind == "uint" else value


def parse_request_id(request: Any) -> int | str:
    """Return the request id, which must be an unsigned integer or a string."""
    members = _members(request)
    if "id" not in members or _is_empty(members["id"]):
        raise RpcError(INVALID_REQUEST, "Invalid Request (missing or empty id)")
    value = members["id"]
    as_int = _as_uint(value, _MAX_UINT32)
    if as_int is not None:
        return as_int
    if isinstance(value, str):
        return value
    raise RpcError(INVALID_REQUEST, "Invalid Request (id has invalid type)")


def check_write_access(read_only: bool) -> None:
    """Raise RpcError when the API is read-only."""
    if read_only:
        raise RpcError(METHOD_NOT_FOUND, "Method not available")


def _padded(text: str) -> bytes:
    raw = text.encode("utf-8")[:_MAX_PASSWORD_LENGTH]
    return raw.ljust(_MAX_PASSWORD_LENGTH, b"\0")


def _json_as_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        raise TypeError("Value is not convertible to string")
    return str(value)


class RequestProcessor:
    """Answers JSON-RPC requests of one API session."""

    def __init__(
        self, backend: MinerBackend, read_only: bool = False, password: str = ""
    ) -> None:
        self.backend = backend
        self.read_only = read_only
        self._password = _padded(password)
        self.authenticated = not password

    def process(self, request: Any) -> dict[str, Any]:
        """Return the response object for one decoded request."""
        response: dict[str, Any] = {"jsonrpc": "2.0"}
        try:
            response["id"] = parse_request_id(request)
        except RpcError as error:
            response["id"] = None
            response["error"] = error.to_dict()
            return response
        try:
            result = self._dispatch(request)
        except RpcError as error:
            response["error"] = error.to_dict()
        else:
            if result is not _NO_RESULT:
                response["result"] = result
        return response

    def _params(self, request: dict[str, Any]) -> dict[str, Any]:
        return get_request_value(request, "params", "object")

    def _authorize(self, request: dict[str, Any]) -> object:
        self.authenticated = False
        params = self._params(request)
        supplied = get_request_value(params, "psw", "string")
        if hmac.compare_digest(_padded(supplied), self._password):
            self.authenticated = True
            return _NO_RESULT
        warn("API : Invalid password provided.")
        raise RpcError(UNAUTHORIZED, "Invalid password")

    def _dispatch(self, request: dict[str, Any]) -> Any:
        try:
            version = get_request_value(request, "jsonrpc", "string")
            if version != "2.0":
                raise RpcError(INVALID_REQUEST, "Invalid Request")
            method = get_request_value(request, "method", "string")
        except RpcError:
            raise RpcError(INVALID_REQUEST, "Invalid Request") from None

        if not self.authenticated or method == "api_authorize":
            if method != "api_authorize":
                raise RpcError(FORBIDDEN, "Authorization needed")
            return self._authorize(request)

        note("API : Method ", method, " requested")
        handler = self._handlers.get(method)
        if handler is None:
            raise RpcError(METHOD_NOT_FOUND, "Method not found")
        return handler(self, request)

    # ------------------------------------------------------------ read methods

    def _getstat1(self, request: dict[str, Any]) -> Any:
        return self.backend.miner_stat1()

    def _getstatdetail(self, request: dict[str, Any]) -> Any:
        return self.backend.miner_stat_detail()

    def _shuffle(self, request: dict[str, Any]) -> Any:
        self.backend.shuffle()
        return True

    def _ping(self, request: dict[str, Any]) -> Any:
        return "pong"

    def _getconnections(self, request: dict[str, Any]) -> Any:
        return self.backend.connections()

    def _getscramblerinfo(self, request: dict[str, Any]) -> Any:
        return self.backend.scrambler_info()

    # ----------------------------------------------------------- write methods

    def _restart(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        self.backend.restart_async()
        return True

    def _reboot(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        return self.backend.reboot(["api_miner_reboot"])

    def _addconnection(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        params = self._params(request)
        uri = get_request_value(params, "uri", "string")
        try:
            self.backend.add_connection(uri)
        except Exception:
            raise RpcError(UNPROCESSABLE, "Bad URI : " + uri) from None
        return True

    def _setactiveconnection(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        params = self._params(request)
        try:
            if "index" in params:
                target: int | str = get_request_value(params, "index", "uint")
            else:
                target = get_request_value(params, "URI", "string")
        except RpcError:
            raise RpcError(UNPROCESSABLE, "Invalid index") from None
        try:
            self.backend.set_active_connection(target)
        except Exception as error:
            raise RpcError(UNPROCESSABLE, str(error)) from None
        return True

    def _removeconnection(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        params = self._params(request)
        index = get_request_value(params, "index", "uint")
        try:
            self.backend.remove_connection(index)
        except Exception as error:
            raise RpcError(UNPROCESSABLE, str(error)) from None
        return True

    def _setscramblerinfo(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        params = self._params(request)
        provided = False
        nonce = self.backend.nonce_scrambler
        width = self.backend.segment_width

        if "noncescrambler" in params:
            provided = True
            text = _json_as_string(params["noncescrambler"])
            if text.startswith("0x"):
                digits = _HEX_NONCE.match(text).group(1)
                nonce = int(digits, 16) if digits else 0
                if nonce > _MAX_UINT64:
                    raise RpcError(UNPROCESSABLE, "Invalid nonce")
            else:
                nonce = get_request_value(params, "noncescrambler", "uint64")

        if "segmentwidth" in params:
            provided = True
            width = get_request_value(params, "segmentwidth", "uint")

        if not provided:
            raise RpcError(INVALID_PARAMS, "Missing parameters")

        if width < 10:
            width = 10
        if width > 50:
            width = 40
        self.backend.set_scrambler(nonce, width)
        return True

    def _pausegpu(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        params = self._params(request)
        index = get_request_value(params, "index", "uint")
        pause = get_request_value(params, "pause", "bool")
        if not self.backend.pause_miner(index, pause):
            raise RpcError(UNPROCESSABLE, "Index out of bounds")
        return True

    def _setverbosity(self, request: dict[str, Any]) -> Any:
        check_write_access(self.read_only)
        params = self._params(request)
        verbosity = get_request_value(params, "verbosity", "uint")
        if verbosity >= LOG_NEXT:
            raise RpcError(
                UNPROCESSABLE, f"Verbosity out of bounds (0-{LOG_NEXT - 1})"
            )
        note("Setting verbosity level to ", verbosity)
        settings.options = verbosity
        return True

    _handlers = {
        "miner_getstat1": _getstat1,
        "miner_getstatdetail": _getstatdetail,
        "miner_shuffle": _shuffle,
        "miner_ping": _ping,
        "miner_restart": _restart,
        "miner_reboot": _reboot,
        "miner_getconnections": _getconnections,
        "miner_addconnection": _addconnection,
        "miner_setactiveconnection": _setactiveconnection,
        "miner_removeconnection": _removeconnection,
        "miner_getscramblerinfo": _getscramblerinfo,
        "miner_setscramblerinfo": _setscramblerinfo,
        "miner_pausegpu": _pausegpu,
        "miner_setverbosity": _setverbosity,
    }