import os
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from .errors import HarnessConfigError

ENV_PREFIX = "AMQP_"

REQUIRED_FIELDS = ("host", "username", "password", "vhost")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise HarnessConfigError(f"'{name}' must be a boolean, got {value!r}")


def as_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HarnessConfigError(f"'{name}' must be an integer, got {value!r}")


def as_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise HarnessConfigError(f"'{name}' must be a number, got {value!r}")


def as_queue_list(value: Any) -> tuple[str, ...]:
    """Accept a comma/newline separated string or any iterable of names."""
    if isinstance(value, str):
        value = value.replace("\n", ",").split(",")
    queues: list[str] = []
    for name in value:
        name = name.strip()
        if name and name not in queues:
            queues.append(name)
    return tuple(queues)


@dataclass(frozen=True)
class SSLConfig:
    capath: str | None = "/etc/ssl/certs"
    cafile: str | None = "/etc/ssl/certs/ca-certificates.crt"
    verify_peer: bool = True
    verify_peer_name: bool = True
    certfile: str | None = None
    keyfile: str | None = None


@dataclass(frozen=True)
class HarnessConfig:
    """
    Broker settings for one harness.

    ``queues`` seeds the cleanup list; the harness keeps its own copy so the
    config itself never changes after construction.
    """

    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = "guest"
    vhost: str = "/"
    url: str | None = None
    cleanup: bool = True
    queues: tuple[str, ...] = ()
    single_channel: bool = False
    ssl_enabled: bool = False
    ssl: SSLConfig = field(default_factory=SSLConfig)
    connection_attempts: int = 1
    retry_delay: float = 2.0
    heartbeat: int | None = None
    blocked_connection_timeout: float | None = None

    def __post_init__(self):
        if self.url:
            return
        missing = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        if missing:
            raise HarnessConfigError(
                f"missing required config field(s): {', '.join(missing)}"
            )

    @property
    def address(self) -> str:
        if self.url:
            return self.url.split("@")[-1]
        return f"{self.host}:{self.port}{self.vhost}"

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "HarnessConfig":
        """
        Build a config from loosely typed settings (env vars, ini values).

        Keys are the field names; ``ssl_*`` keys populate ``SSLConfig``.
        Empty values and ``None`` are treated as unset.
        """
        settings = {k: v for k, v in settings.items() if v not in (None, "")}
        ssl_names = {f.name for f in fields(SSLConfig)}
        unknown = sorted(set(settings) - setting_names())
        if unknown:
            raise HarnessConfigError(f"unknown config field(s): {', '.join(unknown)}")

        ssl_kwargs: dict[str, Any] = {}
        for name in ssl_names:
            key = f"ssl_{name}"
            if key not in settings:
                continue
            value = settings.pop(key)
            if name.startswith("verify_"):
                value = as_bool(key, value)
            ssl_kwargs[name] = value

        kwargs: dict[str, Any] = {"ssl": SSLConfig(**ssl_kwargs)}
        for name, value in settings.items():
            if name in ("cleanup", "single_channel", "ssl_enabled"):
                value = as_bool(name, value)
            elif name in ("port", "connection_attempts", "heartbeat"):
                value = as_int(name, value)
            elif name in ("retry_delay", "blocked_connection_timeout"):
                value = as_float(name, value)
            elif name == "queues":
                value = as_queue_list(value)
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "HarnessConfig":
        return cls.from_mapping(env_settings(environ))


def setting_names() -> set[str]:
    names = {f.name for f in fields(HarnessConfig)} - {"ssl"}
    return names | {f"ssl_{f.name}" for f in fields(SSLConfig)}


def env_settings(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect known ``AMQP_*`` variables as lower-case config field names."""
    environ = os.environ if environ is None else environ
    names = setting_names()
    settings = {}
    for key, value in environ.items():
        name = key[len(ENV_PREFIX):].lower()
        if key.startswith(ENV_PREFIX) and name in names:
            settings[name] = value
    return settings
