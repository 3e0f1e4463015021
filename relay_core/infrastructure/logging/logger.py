"""结构化日志模块。

relay_core 的日志写入 ``<log_dir>/<log_file>``，每行一个 JSON 对象。
调用方通过 ``extra={"extra": {...}}`` 附加 trace_id、cid、message_id 等字段。
开启 log_redact_content 时截断消息正文，并隐去可能包含用户输入的字段。
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from relay_core.config.settings import settings


# 这些字段可能原样包含用户输入
CONTENT_FIELDS = ("query",)
REDACTED = "<redacted>"
MAX_REDACTED_MSG = 64


class JsonLineFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage() or ""
        fields: Dict[str, Any] = {}
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            fields.update(extra)
        if self._redact:
            msg = msg[:MAX_REDACTED_MSG]
            for key in CONTENT_FIELDS:
                if key in fields:
                    fields[key] = REDACTED

        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        for key, value in fields.items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(cfg=settings, name: str = "relay_core") -> logging.Logger:
    """创建（或返回已配置的）JSON 行文件日志器，重复调用不会叠加 handler。"""

    logger = logging.getLogger(name)
    level = logging.getLevelName(str(getattr(cfg, "log_level", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    if logger.handlers:
        return logger

    log_dir = Path(cfg.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / getattr(cfg, "log_file", "relay.log"), encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(JsonLineFormatter(redact=bool(getattr(cfg, "log_redact_content", False))))
    logger.addHandler(fh)
    return logger


logger = setup_logger()
