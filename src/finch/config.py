from __future__ import annotations

import copy
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import anyio
import msgspec

from .logging import get_logger

logger = get_logger(__name__)

ENV_CONFIG_PATH = "FINCH_CONFIG"
ENV_BOT_TOKEN = "FINCH_TOKEN"
DEFAULT_CONFIG_NAME = "config.json"

T = TypeVar("T")


class ConfigError(RuntimeError):
    pass


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path and env_path.strip():
        return Path(env_path.strip()).expanduser()
    return Path(DEFAULT_CONFIG_NAME)


def _read_document(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("config.read_failed", path=str(path), error=str(exc))
        return {}
    try:
        data = msgspec.json.decode(raw)
    except msgspec.DecodeError as exc:
        logger.warning("config.malformed", path=str(path), error=str(exc))
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "config.invalid_document", path=str(path), kind=type(data).__name__
        )
        return {}
    return data


def _write_atomic(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class ConfigStore:
    """Key/value document shared by the bot and every command.

    The whole document is rewritten on every mutation. Mutations are
    serialized, so concurrent writers never lose each other's keys.
    """

    def __init__(self, path: Path, data: dict[str, Any] | None = None) -> None:
        self._path = path
        self._data: dict[str, Any] = dict(data) if data else {}
        self._lock = anyio.Lock()

    @classmethod
    def load(cls, path: str | Path | None = None) -> "ConfigStore":
        cfg_path = resolve_config_path(path)
        data = _read_document(cfg_path)
        logger.debug("config.loaded", path=str(cfg_path), keys=sorted(data))
        return cls(cfg_path, data)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def get_typed(self, key: str, type_: type[T], default: T) -> T:
        """Decode the value at ``key`` as ``type_``, or return ``default``.

        A missing key and a value of the wrong shape both count as absent.
        """
        value = self._data.get(key)
        if value is None:
            return default
        try:
            return msgspec.convert(value, type=type_)
        except msgspec.ValidationError as exc:
            logger.warning(
                "config.schema_mismatch",
                key=key,
                expected=getattr(type_, "__name__", repr(type_)),
                error=str(exc),
            )
            return default

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = value
            self._save_locked()

    async def update(
        self,
        key: str,
        fn: Callable[[Any], Any],
        default: Any = None,
    ) -> Any:
        """Replace the value at ``key`` with ``fn(current)`` and persist it."""
        async with self._lock:
            value = fn(self._data.get(key, default))
            self._data[key] = value
            self._save_locked()
            return value

    async def delete(self, key: str) -> None:
        async with self._lock:
            if key not in self._data:
                return
            del self._data[key]
            self._save_locked()

    def _save_locked(self) -> None:
        try:
            payload = msgspec.json.encode(self._data)
        except (TypeError, msgspec.EncodeError) as exc:
            logger.error("config.encode_failed", path=str(self._path), error=str(exc))
            raise ConfigError(f"Failed to encode config: {exc}") from exc
        try:
            _write_atomic(self._path, payload)
        except OSError as exc:
            logger.error("config.save_failed", path=str(self._path), error=str(exc))
            raise ConfigError(
                f"Failed to write config file {self._path}: {exc}"
            ) from exc


def get_bot_token(config: ConfigStore) -> str:
    """Get bot token from environment variable or config file.

    Environment variable FINCH_TOKEN takes precedence over config file.
    """
    env_token = os.environ.get(ENV_BOT_TOKEN)
    if env_token and env_token.strip():
        return env_token.strip()

    token = config.get("token")
    if token is None:
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} environment variable "
            f"or add `token` to {config.path}."
        )
    if not isinstance(token, str) or not token.strip():
        raise ConfigError(
            f"Invalid `token` in {config.path}; expected a non-empty string."
        )
    return token.strip()
