# phiminer

Building blocks for running and watching a proof-of-work mining farm:

- **`phiminer.common_data`**: hex encoding and decoding, big-endian integer
  packing, conversion from difficulty to target, and human-readable
  formatting of hashrates, memory sizes and elapsed times. Errors derive
  from `DevError`; bad hex digits raise `BadHexCharacter` in strict mode.
- **`phiminer.fixed_hash`**: `FixedHash`, a fixed-size byte container for
  hashes. It converts to and from integers and hex, compares, and supports
  bitwise operators and a big-endian `increment`.
- **`phiminer.log`**: lightweight coloured logging channels (`note`, `warn`,
  `emit`) with per-thread names. Options live in `phiminer.log.settings`;
  with `no_color` set, colour codes are stripped from the output.
- **`phiminer.worker`**: `Worker`, a restartable background thread with a
  small state machine (`WorkerState`). You supply the `work_loop`.
- **`phiminer.api_stats`**: builds the farm statistics reports
  (`miner_stat1`, `miner_stat_detail`) from a `FarmSnapshot` and renders the
  HTML status page (`http_stat_page`).
- **`phiminer.api_requests`**: `RequestProcessor`, a strict JSON-RPC 2.0
  request handler with optional password authorisation and read-only mode.
- **`phiminer.api_server`**: `ApiServer`, a TCP server that accepts
  newline-delimited JSON-RPC requests and plain HTTP `GET /` or
  `GET /getstat1` for the status page.

The package uses only the standard library.

## Installation

Install the package with pip from a checkout or from a built wheel. Python
3.10 or newer is required.

## Examples

### Hex and formatting helpers

```python
from phiminer.common_data import from_hex, to_hex, get_formatted_hashes

raw = from_hex("0x4169")          # b"Ai"
print(to_hex(raw))                # "4169"
print(get_formatted_hashes(1_500_000))  # "1.50 Mh"
```

`get_target_from_diff` turns a pool difficulty into a 64-digit boundary.
`get_hashes_to_target` goes the other way.

### Fixed-size hashes

```python
from phiminer.fixed_hash import FixedHash

h = FixedHash.from_int(1, 32)
print(h.hex())        # 64 hex digits, ending in "01"
print(h.to_int())     # 1
print(h.abridged())   # first four bytes followed by an ellipsis
```

### A background worker

```python
from phiminer.worker import Worker

class Ticker(Worker):
    def work_loop(self):
        while not self.should_stop():
            ...  # do one unit of work

ticker = Ticker("ticker")
ticker.start_working()
ticker.stop_working()
ticker.close()
```

`Worker` is also a context manager; leaving the `with` block calls `close()`.

### The monitoring API

`ApiServer` needs a backend: a subclass of `MinerBackend` from
`phiminer.api_requests` that supplies telemetry, pool connections, nonce
scrambler settings and miner control. `start()` raises `ValueError` when no
backend was given; a failure to bind is logged as a warning.

```python
from phiminer.api_server import ApiServer

password = "password"
server = ApiServer("127.0.0.1", 3333, password, backend)
server.start()
...
server.stop()
```

- Passing `0` as the listening number disables the server.
- A negative number listens on its absolute value in read-only mode. In this
  mode, methods that change state answer "Method not available".
- If a password is set, clients must call `api_authorize` with
  `{"psw": ...}` before any other method.
- An HTTP request gets one reply, after which the connection is closed.

Supported methods:

- `miner_ping`
- `miner_getstat1`
- `miner_getstatdetail`
- `miner_shuffle`
- `miner_restart`
- `miner_reboot`
- `miner_getconnections`
- `miner_addconnection`
- `miner_setactiveconnection`
- `miner_removeconnection`
- `miner_getscramblerinfo`
- `miner_setscramblerinfo`
- `miner_pausegpu`
- `miner_setverbosity`

## What this package does not do

It does not mine. There are no device drivers, no hashing kernels, no pool
client and no farm that schedules work; `MinerBackend` is the interface such
a program would implement to plug into the API. There is no command-line
program either: everything is used from Python.

## Running the tests

Install the `test` extra, then run pytest from the project root.