import pytest

from phiminer.api_requests import (
    MinerBackend,
    RequestProcessor,
    RpcError,
    check_write_access,
    get_request_value,
    parse_request_id,
)
from phiminer.log import settings


class FakeBackend(MinerBackend):
    def __init__(self):
        self.calls = []
        self.pool_uris = ["stratum://pool.example.com:4444"]
        self.active = None
        self._nonce = 0x1000
        self._width = 32
        self.miner_count = 2
        self.paused = {}

    def miner_stat1(self):
        return ["stat1"]

    def miner_stat_detail(self):
        return {"detail": True}

    def shuffle(self):
        self.calls.append("shuffle")

    def restart_async(self):
        self.calls.append("restart")

    def reboot(self, args):
        self.calls.append(("reboot", args))
        return True

    def connections(self):
        return list(self.pool_uris)

    def add_connection(self, uri):
        if "://" not in uri:
            raise ValueError("bad")
        self.pool_uris.append(uri)

    def set_active_connection(self, target):
        if isinstance(target, int):
            if target >= len(self.pool_uris):
                raise ValueError("Index out of bounds")
        elif target not in self.pool_uris:
            raise ValueError("Not found")
        self.active = target

    def remove_connection(self, index):
        if index >= len(self.pool_uris):
            raise ValueError("Index out of bounds")
        del self.pool_uris[index]

    def scrambler_info(self):
        return {"noncescrambler": self._nonce, "segmentwidth": self._width}

    @property
    def nonce_scrambler(self):
        return self._nonce

    @property
    def segment_width(self):
        return self._width

    def set_scrambler(self, nonce, width):
        self._nonce = nonce
        self._width = width

    def pause_miner(self, index, pause):
        if index >= self.miner_count:
            return False
        self.paused[index] = pause
        return True


def rpc(method, params=None, request_id=1):
    request = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        request["params"] = params
    return request


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def processor(backend):
    return RequestProcessor(backend)


@pytest.fixture
def restore_verbosity():
    saved = settings.options
    yield
    settings.options = saved


# ------------------------------------------------------------ value helpers


def test_get_request_value_kinds():
    request = {"b": True, "u": 7, "s": "text", "o": {"k": 1}, "big": 2**40}
    assert get_request_value(request, "b", "bool") is True
    assert get_request_value(request, "u", "uint") == 7
    assert get_request_value(request, "s", "string") == "text"
    assert get_request_value(request, "o", "object") == {"k": 1}
    assert get_request_value(request, "big", "uint64") == 2**40


def test_get_request_value_missing():
    assert get_request_value({}, "x", "string", optional=True) is None
    with pytest.raises(RpcError) as info:
        get_request_value({}, "x", "string")
    assert info.value.code == -32602
    assert info.value.message == "Missing 'x'"


def test_get_request_value_invalid_type():
    with pytest.raises(RpcError) as info:
        get_request_value({"u": -1}, "u", "uint")
    assert info.value.message == "Invalid type of value 'u'"
    with pytest.raises(RpcError):
        get_request_value({"b": 1}, "b", "bool")
    with pytest.raises(RpcError):
        get_request_value({"u": 2**32}, "u", "uint")


def test_get_request_value_empty_object():
    with pytest.raises(RpcError) as info:
        get_request_value({"o": {}}, "o", "object")
    assert info.value.message == "Empty 'o'"


def test_get_request_value_uint64_errors():
    with pytest.raises(RpcError) as info:
        get_request_value({"n": None}, "n", "uint64")
    assert info.value.message == "Empty 'n'"
    with pytest.raises(RpcError) as info:
        get_request_value({"n": "abc"}, "n", "uint64")
    assert info.value.message == "Bad value in 'n'"


def test_get_request_value_unknown_kind():
    with pytest.raises(ValueError):
        get_request_value({"a": 1}, "a", "float")


def test_parse_request_id():
    assert parse_request_id({"id": 5}) == 5
    assert parse_request_id({"id": "abc"}) == "abc"
    with pytest.raises(RpcError) as info:
        parse_request_id({})
    assert info.value.message == "Invalid Request (missing or empty id)"
    with pytest.raises(RpcError) as info:
        parse_request_id({"id": [1]})
    assert info.value.code == -32600
    assert info.value.message == "Invalid Request (id has invalid type)"


def test_check_write_access():
    check_write_access(False)
    with pytest.raises(RpcError) as info:
        check_write_access(True)
    assert info.value.code == -32601
    assert info.value.message == "Method not available"


# ------------------------------------------------------------- processing


def test_ping(processor):
    response = processor.process(rpc("miner_ping", request_id="x"))
    assert response == {"jsonrpc": "2.0", "id": "x", "result": "pong"}


def test_missing_id_gives_null_id(processor):
    response = processor.process({"jsonrpc": "2.0", "method": "miner_ping"})
    assert response["id"] is None
    assert response["error"]["code"] == -32600


def test_bad_jsonrpc_version(processor):
    request = rpc("miner_ping")
    request["jsonrpc"] = "1.0"
    response = processor.process(request)
    assert response["error"] == {"code": -32600, "message": "Invalid Request"}


def test_unknown_method(processor):
    response = processor.process(rpc("miner_nothing"))
    assert response["error"] == {"code": -32601, "message": "Method not found"}


def test_stat_methods(processor):
    assert processor.process(rpc("miner_getstat1"))["result"] == ["stat1"]
    assert processor.process(rpc("miner_getstatdetail"))["result"] == {"detail": True}


def test_shuffle_and_restart(processor, backend):
    assert processor.process(rpc("miner_shuffle"))["result"] is True
    assert processor.process(rpc("miner_restart"))["result"] is True
    assert backend.calls == ["shuffle", "restart"]


def test_reboot_passes_argument(processor, backend):
    assert processor.process(rpc("miner_reboot"))["result"] is True
    assert backend.calls == [("reboot", ["api_miner_reboot"])]


def test_read_only_blocks_writes(backend):
    processor = RequestProcessor(backend, read_only=True)
    response = processor.process(rpc("miner_restart"))
    assert response["error"]["message"] == "Method not available"
    assert backend.calls == []
    assert processor.process(rpc("miner_ping"))["result"] == "pong"


def test_authorization_flow(backend):
    password = "password"
    processor = RequestProcessor(backend, password=password)
    denied = processor.process(rpc("miner_ping"))
    assert denied["error"] == {"code": -403, "message": "Authorization needed"}

    wrong = processor.process(rpc("api_authorize", {"psw": "secret"}))
    assert wrong["error"] == {"code": -401, "message": "Invalid password"}
    assert processor.authenticated is False

    right = processor.process(rpc("api_authorize", {"psw": password}))
    assert "error" not in right
    assert "result" not in right
    assert processor.process(rpc("miner_ping"))["result"] == "pong"


def test_authorize_missing_params(backend):
    password = "password"
    processor = RequestProcessor(backend, password=password)
    response = processor.process(rpc("api_authorize"))
    assert response["error"]["message"] == "Missing 'params'"


def test_add_connection(processor, backend):
    uri = "stratum://other.example.com:3333"
    assert processor.process(rpc("miner_addconnection", {"uri": uri}))["result"] is True
    assert uri in backend.pool_uris
    bad = processor.process(rpc("miner_addconnection", {"uri": "nonsense"}))
    assert bad["error"] == {"code": -422, "message": "Bad URI : nonsense"}


def test_set_active_connection(processor, backend):
    assert processor.process(rpc("miner_setactiveconnection", {"index": 0}))["result"] is True
    assert backend.active == 0
    uri = backend.pool_uris[0]
    assert processor.process(rpc("miner_setactiveconnection", {"URI": uri}))["result"] is True
    assert backend.active == uri


def test_set_active_connection_errors(processor):
    out_of_range = processor.process(rpc("miner_setactiveconnection", {"index": 9}))
    assert out_of_range["error"] == {"code": -422, "message": "Index out of bounds"}
    bad_index = processor.process(rpc("miner_setactiveconnection", {"index": "a"}))
    assert bad_index["error"] == {"code": -422, "message": "Invalid index"}
    no_target = processor.process(rpc("miner_setactiveconnection", {"other": 1}))
    assert no_target["error"] == {"code": -422, "message": "Invalid index"}


def test_remove_connection(processor, backend):
    assert processor.process(rpc("miner_removeconnection", {"index": 0}))["result"] is True
    assert backend.pool_uris == []
    response = processor.process(rpc("miner_removeconnection", {"index": 0}))
    assert response["error"]["code"] == -422


def test_scrambler_info_round_trip(processor, backend):
    set_response = processor.process(
        rpc("miner_setscramblerinfo", {"noncescrambler": 1234, "segmentwidth": 20})
    )
    assert set_response["result"] is True
    info = processor.process(rpc("miner_getscramblerinfo"))["result"]
    assert info == {"noncescrambler": 1234, "segmentwidth": 20}


def test_scrambler_hex_nonce(processor, backend):
    response = processor.process(rpc("miner_setscramblerinfo", {"noncescrambler": "0xff"}))
    assert response["result"] is True
    assert "error" not in response
    assert backend.nonce_scrambler == 255
    assert backend.segment_width == 32


def test_scrambler_hex_nonce_too_large(processor):
    response = processor.process(
        rpc("miner_setscramblerinfo", {"noncescrambler": "0x" + "f" * 17})
    )
    assert response["error"] == {"code": -422, "message": "Invalid nonce"}


@pytest.mark.parametrize("width, expected", [(5, 10), (45, 45), (60, 40)])
def test_scrambler_width_clamping(processor, backend, width, expected):
    response = processor.process(rpc("miner_setscramblerinfo", {"segmentwidth": width}))
    assert response["result"] is True
    assert backend.segment_width == expected


def test_scrambler_missing_parameters(processor):
    response = processor.process(rpc("miner_setscramblerinfo", {"unused": 1}))
    assert response["error"] == {"code": -32602, "message": "Missing parameters"}


def test_pause_gpu(processor, backend):
    ok = processor.process(rpc("miner_pausegpu", {"index": 1, "pause": True}))
    assert ok["result"] is True
    assert backend.paused == {1: True}
    bad = processor.process(rpc("miner_pausegpu", {"index": 5, "pause": False}))
    assert bad["error"] == {"code": -422, "message": "Index out of bounds"}


def test_pause_gpu_requires_bool(processor):
    response = processor.process(rpc("miner_pausegpu", {"index": 0, "pause": "yes"}))
    assert response["error"]["message"] == "Invalid type of value 'pause'"


def test_set_verbosity(processor, restore_verbosity):
    assert processor.process(rpc("miner_setverbosity", {"verbosity": 2}))["result"] is True
    assert settings.options == 2
    response = processor.process(rpc("miner_setverbosity", {"verbosity": 4}))
    assert response["error"] == {"code": -422, "message": "Verbosity out of bounds (0-3)"}
    assert settings.options == 2