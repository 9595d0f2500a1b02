import json
import logging
import os
import re
from typing import Any

from .settings import Settings

_SECRET_KV = re.compile(r"(pass(word|phrase)?|token|secret)\s*=\s*([^\s,;]+)", re.IGNORECASE)
_PEM_PRIV = re.compile(
    r"-----BEGIN (?:RSA |EC |ENCRYPTED )?PRIVATE KEY-----.*?-----END (?:RSA |EC |ENCRYPTED )?PRIVATE KEY-----",
    re.DOTALL,
)


def redact(value: str) -> str:
    value = _PEM_PRIV.sub("[REDACTED-PRIVATE-KEY]", value)
    return _SECRET_KV.sub(lambda m: f"{m.group(1)}=[REDACTED]", value)


def _redact_arg(arg: Any) -> Any:
    if isinstance(arg, str):
        return redact(arg)
    if isinstance(arg, bytes):
        text = arg.decode("ascii", "replace")
        cleaned = redact(text)
        # bytes stay bytes unless something was actually redacted
        return cleaned if cleaned != text else arg
    return arg


class _Redact(logging.Filter):
    """Keeps key PEM blocks out of log output, whether in the message or its args."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_redact_arg(a) for a in record.args)
        elif isinstance(record.args, dict):
            record.args = {k: _redact_arg(v) for k, v in record.args.items()}
        return True


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(settings: Settings, json_mode: bool | None = None) -> None:
    root = logging.getLogger()
    if getattr(root, "_pkibootstrap_configured", False):
        return

    level = getattr(logging, settings.LOG_LEVEL, logging.INFO)
    root.setLevel(level)

    if json_mode is None:
        json_mode = os.getenv("PKIBOOTSTRAP_LOG_JSON", "false").lower() in ("1", "true", "yes")

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(_Redact())
    handler.setFormatter(_JsonFormatter() if json_mode else logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)

    setattr(root, "_pkibootstrap_configured", True)
