"""
Logging setup and per-run context.

Every run gets its own RunContext (correlation id + action) which hands out a
LoggerAdapter; components take the context as an argument instead of reaching
for a module-level logger.
"""

import json
import logging
import os
import random
import re
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, MutableMapping, Optional, Sequence

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

SENSITIVE_PATTERNS = [
    # bare 64-hex (a key pasted without 0x); 0x-prefixed tx hashes are left alone
    (re.compile(r"(?<![0-9a-fA-FxX])[a-fA-F0-9]{64}(?![0-9a-fA-F])"), "[PRIVATE_KEY_REDACTED]"),
    (re.compile(r"api[_-]?key[\"\s:=]+[\"']?[\w-]+[\"']?", re.IGNORECASE), "api_key=[REDACTED]"),
    (re.compile(r"bearer\s+[\w-]+", re.IGNORECASE), "Bearer [REDACTED]"),
]

_B36 = string.digits + string.ascii_uppercase


def known_secrets() -> List[str]:
    """
    The configured private key body, as found in the environment.
    A 0x-prefixed key has the same shape as a tx hash, so it is matched by value.
    """
    raw = (os.environ.get("PRIVATE_KEY") or "").strip().strip("\"'")
    body = raw[2:] if raw.lower().startswith("0x") else raw
    return [body] if len(body) == 64 else []


def mask_secrets(text: str, secrets: Sequence[str] = ()) -> str:
    for secret in secrets:
        text = re.sub("(0[xX])?" + re.escape(secret), "[PRIVATE_KEY_REDACTED]", text, flags=re.IGNORECASE)
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_address(address: str) -> str:
    if not address or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


class SecretMaskingFilter(logging.Filter):
    """Redacts keys and tokens from the fully rendered message."""

    def __init__(self, secrets: Optional[Sequence[str]] = None):
        super().__init__()
        self.secrets = list(known_secrets() if secrets is None else secrets)

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        masked = mask_secrets(msg, self.secrets)
        if masked != msg:
            record.msg = masked
            record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = mask_secrets(logging.Formatter().formatException(record.exc_info), self.secrets)
        return True


class GitHubAnnotationFilter(logging.Filter):
    """Prefix WARNING/ERROR lines so Actions shows them as annotations."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            record.gh_annotation = "::error::"
        elif record.levelno >= logging.WARNING:
            record.gh_annotation = "::warning::"
        else:
            record.gh_annotation = ""
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", None) or "N/A",
            "action": getattr(record, "action", None) or "GENERAL",
            "message": record.getMessage(),
        }
        extra = getattr(record, "data", None)
        if extra:
            entry["data"] = extra
        if record.exc_info:
            entry["error"] = record.exc_text or mask_secrets(self.formatException(record.exc_info))
        return getattr(record, "gh_annotation", "") + json.dumps(entry, default=str)


def in_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """
    Configure the root logger once per process.
    """
    handler = logging.StreamHandler()
    handler.addFilter(SecretMaskingFilter())
    if in_github_actions():
        handler.addFilter(GitHubAnnotationFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        prefix = "%(gh_annotation)s" if in_github_actions() else ""
        handler.setFormatter(logging.Formatter(prefix + TEXT_FORMAT))

    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
    # web3/urllib3 debug output is very chatty
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)


def generate_correlation_id(rng: Optional[random.Random] = None) -> str:
    """Base36 millisecond timestamp plus a random suffix, uppercase."""
    rng = rng or random.Random()
    n = int(time.time() * 1000)
    ts = ""
    while n:
        n, r = divmod(n, 36)
        ts = _B36[r] + ts
    suffix = "".join(rng.choice(_B36) for _ in range(6))
    return f"{ts or '0'}-{suffix}"


class RunLogger(logging.LoggerAdapter):
    """Stamps correlation id and action onto each record and message."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        extra = dict(self.extra)
        data = kwargs.pop("data", None)
        if data is not None:
            extra["data"] = data
        kwargs["extra"] = {**kwargs.get("extra", {}), **extra}
        return f"[{self.extra['correlation_id']}][{self.extra['action']}] {msg}", kwargs


@dataclass(frozen=True)
class RunContext:
    action: str
    correlation_id: str = field(default_factory=generate_correlation_id)
    started_at: float = field(default_factory=time.monotonic)

    def logger(self, name: str) -> RunLogger:
        return RunLogger(
            logging.getLogger(name),
            {"correlation_id": self.correlation_id, "action": self.action},
        )

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at
