# tunnelkit

A library of building blocks for local proxy plugins: a SOCKS5 server and
client, a plain TCP forwarder, and chainable dialers that carry a connection
over TLS, WebSocket, trojan-cleartext, simple-obfs (HTTP or TLS flavour) or
an HTTP `CONNECT` proxy. Beside them sit small utilities: an LRU cache, a
static prefix trie, a doubly linked list, a SOCKS address codec, a ranged
HTTP downloader, a file copier and a reader for runtime parameters.

Python 3.10 or later is required. The package depends on `psutil` (interface
lookup in `tunnelkit.dialer`) and `websocket-client` (`tunnelkit.wsdialer`).

## Modules

| Module | What it provides |
| --- | --- |
| `tunnelkit.dialer` | `Dialer`, `Proxy` and `Server` abstract classes, `ProxyError`, the `Direct` dialer and `new_direct`, and URL-scheme registries: `register_dialer`, `dialer_from_url`, `register_server`, `server_from_url` |
| `tunnelkit.socks5` | `Socks5` (SOCKS5 server and client), `PacketConn` for UDP associate, `relay`, `new_socks5_dialer`, `new_socks5_server` |
| `tunnelkit.tcpforward` | `TcpForwarder`, `new_tcp_dialer`, `new_tcp_server`: listen locally and forward every connection to one fixed target |
| `tunnelkit.obfs` | `HTTPObfs` and `TLSObfs` connection wrappers, `make_client_hello` |
| `tunnelkit.simpleobfs` | `ObfsType`, `SimpleObfs` dialer, `SimpleObfsProxy`, `new_simple_obfs_dialer`, `new_simple_obfs_proxy` |
| `tunnelkit.trojanc` | `Trojan` dialer, `TrojanProxy`, `new_trojanc`, `new_trojan_proxy` |
| `tunnelkit.tlsdialer` | `TlsDialer`, `new_tls` |
| `tunnelkit.wsdialer` | `WsDialer`, `WsConn`, `new_ws` |
| `tunnelkit.dialerproxy` | `DialerProxy` and `from_dialer`: use any dialer as a `Proxy` |
| `tunnelkit.httpproxy` | `DirectDialer`, `HttpsDialer`, `HttpProxyDialer`, `from_url`, `from_environment` |
| `tunnelkit.pluginserver` | `PluginServer`: serve a proxy on `127.0.0.1:<port>` as SOCKS5 or as a TCP forward |
| `tunnelkit.socksaddr` | `SocksError`, `parse_addr`, `addr_to_string`, `split_addr`, `read_addr` |
| `tunnelkit.lru` | `LRU`, `LimitStrategy`, `EncapsulatedValue` |
| `tunnelkit.trie` | `Trie` with longest-prefix `match` |
| `tunnelkit.linklist` | `Linklist` and `Node` |
| `tunnelkit.dnsparser` | `parse` and `Dns` for `value -> outbound` lines |
| `tunnelkit.sitedat` | `SiteDat` with `to_dict` / `from_dict` |
| `tunnelkit.copyfile` | `copy_file` (hard link, else byte copy) and `copy_file_content` |
| `tunnelkit.download` | `Request`, `Response`, `DownloadError`, `resolve`, `down` |
| `tunnelkit.environment` | `Params`, `parse_params`, `get_environment_config`, `set_config`, `dont_load_config`, `ServiceControlMode`, `detect_service_control_mode`, `is_debug` |

## Examples

Longest dictionary prefix of a string:

```python
from tunnelkit.trie import Trie

trie = Trie(["12", "12345", "1234567", "2222", "1"])
assert trie.match("123456") == "12345"
assert trie.match("222") == ""
```

SOCKS address encoding round trip:

```python
from tunnelkit.socksaddr import addr_to_string, parse_addr, split_addr

raw = parse_addr("example.com:443")
assert addr_to_string(raw) == "example.com:443"
assert split_addr(raw + b"payload") == raw
```

Parsing a DNS rule line (the split is at the last `->`; a line without one
gives `None`):

```python
from tunnelkit.dnsparser import parse

rule = parse("223.5.5.5 -> direct")
assert (rule.val, rule.out) == ("223.5.5.5", "direct")
```

An LRU cache that keeps two entries; `insert` returns what it evicted:

```python
from tunnelkit.lru import LRU, LimitStrategy

cache = LRU(LimitStrategy.FIXED_LENGTH, 2)
cache.insert("a", 1)
cache.insert("b", 2)
evicted = cache.insert("c", 3)
assert [e.value for e in evicted] == [1]
```

With `LimitStrategy.FIXED_TIMEOUT` the limit is an idle time in seconds;
entries idle that long are dropped on the next insertion.

Serving a dialer chain on a local SOCKS5 port:

```python
from tunnelkit.dialer import new_direct
from tunnelkit.dialerproxy import from_dialer
from tunnelkit.pluginserver import PluginServer
from tunnelkit.trojanc import new_trojanc

upstream = new_trojanc("trojanc://password@example.com:443", new_direct(""))
server = PluginServer(1080)
server.serve(from_dialer(upstream, "example.com:443"), "socks5")
# ... later
server.close()
```

The `protocol` argument of `PluginServer.serve` is either `"socks5"` or
`"tcp->host:port"`, which forwards every accepted connection to
`host:port`. Errors raised while the listener starts, within the first
100 ms, are raised by `serve`; `close` raises `ProxyError` if the server is
not running or does not stop within three seconds.

## Dialer URLs

Each dialer is built from a URL and an upstream dialer:

- `tls://host:port?host=<sni>&skipVerify=true` — `host` defaults to the
  address without its port; `skipVerify` accepts `true` or `1`.
- `ws://host:port?host=<Host header>&path=<path>` — `path` defaults to `/`.
- `trojanc://<password>@host:port`
- `simpleobfs://host:port?type=http|tls&host=<host>&path=<path>` — any other
  `type` raises `ProxyError`.
- `socks5://[user:password@]host:port`
- `tcp://host:port/?target=host:port`

Importing `tunnelkit.simpleobfs` registers the `simpleobfs` scheme with
`register_dialer`; no other scheme, and no server scheme, is registered by
the package itself. `server_from_url` treats an address without `://` as
`mixed://`.

`httpproxy.from_url` accepts `http`, `https`, `socks5` and `socks5h` URLs;
`from_environment` reads `ALL_PROXY` (or `all_proxy`) and falls back to a
`DirectDialer` when it is unset or unusable.

UDP is supported by `Direct.dial_udp` and `Socks5.dial_udp` only; the other
dialers raise `ProxyError` from `dial_udp`.

## Runtime parameters

`environment.parse_params(argv, environ)` starts from the `Params` defaults,
then applies environment variables prefixed `V2RAYA_`, then command-line
flags: `--address`/`-a` (default `0.0.0.0:2017`), `--config`/`-c` (default
`/etc/v2raya`; dots in its last component become underscores),
`--v2ray-bin`, `--v2ray-confdir`, `--webdir`,
`--vless-grpc-inbound-cert-key` (comma separated, repeatable),
`--pluginlistenport`/`-s` (default `32346`), `--force-ipv6-on`,
`--passcheckroot`, `--reset-password`, `--verbose` and `--version`.
Unknown flags and bad values raise `ValueError`. `get_environment_config`
loads these once from `sys.argv` and `os.environ` (unless
`dont_load_config` was called), printing the version and exiting when
`--version` is given.

## Downloads

`download.resolve` sends a `Range: bytes=0-0` request to learn the file
name, size and range support, raising `DownloadError` on a status other than
200 or 206. `download.down` fetches the file into the system temporary
directory, in at least four parallel ranges when the server supports them,
then moves it into place with `copyfile.copy_file`.

## What this package does not do

- It has no command-line program or service: nothing here starts a daemon,
  reads a configuration store or manages subscriptions. It is a library to
  be called from Python.
- It provides no shadowsocks or shadowsocksR ciphers and no ICMP tunnel;
  the trojan dialer is cleartext and relies on a `TlsDialer` beneath it for
  encryption.
- It does not register any server schemes for `server_from_url`; callers
  register their own with `register_server`.