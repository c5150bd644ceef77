"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for ocalogin:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.ocalogin/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~ocalogin.models.GlobalConfig`
  JSON file storing the backend address, callback ports, sign-in timeout
  and catalog defaults.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, and the config file into the effective
  configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from ocalogin.exceptions import ConfigError
from ocalogin.models import GlobalConfig

_APP_NAME = "ocalogin"
_CONFIG_FILENAME = "config.json"

ENV_BACKEND_URL = "OCALOGIN_BACKEND_URL"
ENV_CALLBACK_BASE_URL = "OCALOGIN_CALLBACK_BASE_URL"
ENV_CALLBACK_PORTS = "OCALOGIN_CALLBACK_PORTS"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/ocalogin/`` (default ``~/.config/ocalogin/``).
    On macOS/Windows: ``~/.ocalogin/``.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/ocalogin/`` (default ``~/.local/share/ocalogin/``).
    On macOS/Windows: ``~/.ocalogin/logs/``.
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure
    the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~ocalogin.models.GlobalConfig`. A missing
        file yields the built-in defaults.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def parse_ports(raw: str) -> list[int]:
    """Parse a comma-separated port list such as ``"48801,48802"``."""
    try:
        ports = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise ConfigError(f"Invalid callback port list: {raw!r}") from exc
    if not ports:
        raise ConfigError("Callback port list is empty")
    for port in ports:
        if not 0 <= port <= 65535:
            raise ConfigError(f"Callback port out of range: {port}")
    return ports


def resolve_config(
    cli_backend_url: Optional[str] = None,
    cli_callback_base_url: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_backend_url``, ``cli_callback_base_url``, ``cli_format``)
        2. Environment variables (``OCALOGIN_BACKEND_URL``,
           ``OCALOGIN_CALLBACK_BASE_URL``, ``OCALOGIN_CALLBACK_PORTS``)
        3. User config (``~/.config/ocalogin/config.json``)
        4. Defaults

    Returns:
        The effective :class:`~ocalogin.models.GlobalConfig`.
    """
    config = load_global_config()

    env_backend = os.environ.get(ENV_BACKEND_URL)
    if env_backend:
        config.backend.url = env_backend
    env_redirect = os.environ.get(ENV_CALLBACK_BASE_URL)
    if env_redirect:
        config.callback.redirect_base_url = env_redirect
    env_ports = os.environ.get(ENV_CALLBACK_PORTS)
    if env_ports:
        config.callback.ports = parse_ports(env_ports)

    if cli_backend_url is not None:
        config.backend.url = cli_backend_url
    if cli_callback_base_url is not None:
        config.callback.redirect_base_url = cli_callback_base_url
    if cli_format is not None:
        config.output.format = cli_format

    return config


def callback_redirect_base(config: GlobalConfig) -> str:
    """Return the external callback the local listener forwards redirects to.

    Falls back to the backend's ``/auth/oca`` route when no explicit
    redirect base is configured.
    """
    if config.callback.redirect_base_url:
        return config.callback.redirect_base_url
    if not config.backend.url:
        raise ConfigError("No callback redirect base or backend URL is configured")
    return f"{config.backend.url.rstrip('/')}/auth/oca"
