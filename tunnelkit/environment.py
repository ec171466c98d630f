"""Process-wide settings read from command-line flags and environment."""

from __future__ import annotations

import argparse
import enum
import os
import shutil
import sys
import threading
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

ENV_PREFIX = "V2RAYA_"

version = "debug"
found_new = False
remote_version = ""


@dataclass
class Params:
    address: str = "0.0.0.0:2017"
    config: str = "/etc/v2raya"
    v2ray_bin: str = ""
    v2ray_confdir: str = ""
    webdir: str = ""
    vless_grpc_inbound_cert_key: List[str] = field(default_factory=list)
    plugin_listen_port: int = 32346
    force_ipv6_on: bool = False
    pass_check_root: bool = False
    reset_password: bool = False
    verbose: bool = False
    show_version: bool = False


@dataclass(frozen=True)
class _Option:
    name: str
    flag: str
    kind: type
    short: Optional[str] = None

    @property
    def env_name(self) -> str:
        return ENV_PREFIX + self.flag.upper().replace("-", "_")


_OPTIONS = (
    _Option("address", "address", str, "-a"),
    _Option("config", "config", str, "-c"),
    _Option("v2ray_bin", "v2ray-bin", str),
    _Option("v2ray_confdir", "v2ray-confdir", str),
    _Option("webdir", "webdir", str),
    _Option("vless_grpc_inbound_cert_key", "vless-grpc-inbound-cert-key", list),
    _Option("plugin_listen_port", "pluginlistenport", int, "-s"),
    _Option("force_ipv6_on", "force-ipv6-on", bool),
    _Option("pass_check_root", "passcheckroot", bool),
    _Option("reset_password", "reset-password", bool),
    _Option("verbose", "verbose", bool),
    _Option("show_version", "version", bool),
)

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


class ServiceControlMode(enum.IntEnum):
    SYSTEMCTL = 0
    SERVICE = 1
    UNIVERSAL = 2


def _convert(option: _Option, raw):
    if option.kind is bool:
        if isinstance(raw, bool):
            return raw
        if raw in _TRUE:
            return True
        if raw in _FALSE:
            return False
        raise ValueError(f"invalid boolean for {option.flag}: {raw!r}")
    if option.kind is int:
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"invalid integer for {option.flag}: {raw!r}") from None
    if option.kind is list:
        items = raw if isinstance(raw, list) else [raw]
        return [part for item in items for part in item.split(",") if part]
    return raw


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False, exit_on_error=False)
    for option in _OPTIONS:
        names = [f"--{option.flag}"] + ([option.short] if option.short else [])
        if option.kind is bool:
            parser.add_argument(*names, dest=option.name, action="store_const", const=True)
        elif option.kind is list:
            parser.add_argument(*names, dest=option.name, action="append")
        else:
            parser.add_argument(*names, dest=option.name)
    return parser


def parse_params(
    argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None
) -> Params:
    """Build settings from defaults, then ``environ``, then ``argv`` flags."""
    argv = sys.argv[1:] if argv is None else list(argv)
    environ = os.environ if environ is None else environ
    try:
        namespace, extra = _build_parser().parse_known_args(argv)
    except argparse.ArgumentError as exc:
        raise ValueError(str(exc)) from None
    if extra:
        raise ValueError(f"unexpected word while parsing flags: {extra[0]!r}")

    params = Params()
    for option in _OPTIONS:
        raw = getattr(namespace, option.name)
        if raw is None:
            raw = environ.get(option.env_name)
        if raw is not None:
            setattr(params, option.name, _convert(option, raw))

    base = os.path.basename(params.config).replace(".", "_")
    params.config = os.path.normpath(os.path.join(os.path.dirname(params.config), base))
    return params


_lock = threading.Lock()
_params = Params()
_initialized = False
_skip_loading = False


def get_environment_config() -> Params:
    """Return the process settings, loading them on first use."""
    global _params, _initialized
    with _lock:
        if not _initialized:
            _initialized = True
            if not _skip_loading:
                _params = parse_params()
                if _params.show_version:
                    print(version)
                    raise SystemExit(0)
        return _params


def set_config(config: Params) -> None:
    global _params
    with _lock:
        _params = config


def dont_load_config() -> None:
    """Keep get_environment_config from reading flags and environment."""
    global _skip_loading
    with _lock:
        _skip_loading = True


def detect_service_control_mode() -> ServiceControlMode:
    if shutil.which("systemctl"):
        return ServiceControlMode.SYSTEMCTL
    if shutil.which("service"):
        return ServiceControlMode.SERVICE
    return ServiceControlMode.UNIVERSAL


def is_debug() -> bool:
    return version == "debug"