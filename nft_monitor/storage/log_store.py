"""JSON persistence for the monitoring log."""
import json
import os
from pathlib import Path
from typing import Union

import structlog

from nft_monitor.errors import PersistenceError
from nft_monitor.models import MonitoringLog

logger = structlog.get_logger()

LOG_PATH = "monitoring-log.json"


def load_log(path: Union[str, Path] = LOG_PATH) -> MonitoringLog:
    """Load the monitoring log. A missing or corrupt file yields an empty log."""
    path = Path(path)
    if not path.exists():
        logger.info("monitoring_log_not_found", path=str(path))
        return MonitoringLog()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        log = MonitoringLog.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning("monitoring_log_unreadable", path=str(path), error=str(e))
        return MonitoringLog()

    logger.info(
        "monitoring_log_loaded",
        path=str(path),
        history=len(log.alert_history),
        watch_list=len(log.high_priority_alerts),
    )
    return log


def save_log(log: MonitoringLog, path: Union[str, Path] = LOG_PATH):
    """Overwrite the log file via a temporary sibling and os.replace."""
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(log.to_dict(), f, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        raise PersistenceError(f"Failed to write monitoring log {path}: {e}") from e
