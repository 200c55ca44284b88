from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .headers import HeaderParseError, parse_headers, valid_headers
from .urls import server_uri

logger = logging.getLogger(__name__)

APP = "comfysync"

DEFAULT_LOGIN_DOMAIN = "cloudflareaccess.com"
DEFAULT_SESSION_COOKIES = ("CF_Authorization",)


def config_dir() -> Path:
    """
    Cross-platform config directory:
      - Windows: %APPDATA%\\comfysync
      - macOS/Linux: $XDG_CONFIG_HOME/comfysync or ~/.config/comfysync
    """
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP
    return Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))) / APP


def config_path() -> Path:
    return config_dir() / "config.json"


@dataclass(frozen=True)
class AuthContext:
    """Headers to inject plus what identifies the access-control login page."""
    headers: Dict[str, str] = field(default_factory=dict)
    login_domain: str = DEFAULT_LOGIN_DOMAIN
    session_cookies: Tuple[str, ...] = DEFAULT_SESSION_COOKIES


@dataclass
class Settings:
    host: str = ""        # host, host:port or full URL
    port: str = ""        # legacy separate port field
    auth_headers: Dict[str, str] = field(default_factory=dict)
    login_domain: str = DEFAULT_LOGIN_DOMAIN
    session_cookies: List[str] = field(default_factory=lambda: list(DEFAULT_SESSION_COOKIES))
    timeout_s: float = 30.0
    models_dir: str = ""

    @staticmethod
    def load(path: Optional[Path] = None) -> "Settings":
        path = path or config_path()

        data: dict = {}

        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except Exception:
                logger.warning("Ignoring unreadable config file %s", path)
                data = {}

        headers = data.get("auth_headers", {})
        if isinstance(headers, str):
            # Older configs stored the header mapping as serialized text
            try:
                headers = parse_headers(headers)
            except HeaderParseError as e:
                logger.error("Failed to parse auth headers from config: %s", e)
                headers = {}
        if not isinstance(headers, dict):
            headers = {}

        cookies = data.get("session_cookies", list(DEFAULT_SESSION_COOKIES))
        if not isinstance(cookies, list):
            cookies = list(DEFAULT_SESSION_COOKIES)

        try:
            timeout_s = float(data.get("timeout_s", 30.0))
        except (TypeError, ValueError):
            timeout_s = 30.0

        s = Settings(
            host=str(data.get("host", "")),
            port=str(data.get("port", "")),
            auth_headers={str(k): "" if v is None else str(v) for k, v in headers.items()},
            login_domain=str(data.get("login_domain", DEFAULT_LOGIN_DOMAIN)),
            session_cookies=[str(c) for c in cookies],
            timeout_s=timeout_s,
            models_dir=str(data.get("models_dir", "")),
        )

        # Environment overrides (highest priority)
        s.host = os.environ.get("COMFYSYNC_HOST", s.host)
        s.port = os.environ.get("COMFYSYNC_PORT", s.port)
        s.login_domain = os.environ.get("COMFYSYNC_LOGIN_DOMAIN", s.login_domain)
        s.models_dir = os.environ.get("COMFYSYNC_MODELS_DIR", s.models_dir)

        env_headers = os.environ.get("COMFYSYNC_AUTH_HEADERS")
        if env_headers:
            try:
                s.auth_headers = parse_headers(env_headers)
            except HeaderParseError as e:
                logger.error("Failed to parse COMFYSYNC_AUTH_HEADERS: %s", e)

        env_timeout = os.environ.get("COMFYSYNC_TIMEOUT")
        if env_timeout:
            try:
                s.timeout_s = float(env_timeout)
            except ValueError:
                logger.warning("Ignoring invalid COMFYSYNC_TIMEOUT=%r", env_timeout)

        return s

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            "host": self.host,
            "port": self.port,
            "auth_headers": self.auth_headers,
            "login_domain": self.login_domain,
            "session_cookies": self.session_cookies,
            "timeout_s": self.timeout_s,
            "models_dir": self.models_dir,
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    def server_uri(self) -> str:
        return server_uri(self.host, self.port)

    def auth_context(self) -> AuthContext:
        headers = valid_headers(self.auth_headers)
        if headers:
            logger.debug(
                "Loaded %d valid auth headers: %s", len(headers), ", ".join(headers)
            )
        else:
            logger.debug("No auth headers configured")
        return AuthContext(
            headers=headers,
            login_domain=self.login_domain,
            session_cookies=tuple(self.session_cookies),
        )
