# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/metalprov/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional
import uuid

FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "metalprov",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - full DEBUG trace in a log file
      - console output (INFO, or DEBUG with --verbose)
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".metalprov" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # File = FULL TRACE
    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(formatter)

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger.addHandler(fh)
    logger.addHandler(ch)

    # the kubernetes client is chatty at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.WARNING)

    logger.info("=== metalprov controller started ===")
    logger.info(f"run_id={run_id}")
    logger.info(f"log_file={log_path}")

    return logger, run_id, log_path


class ObjectLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the kind and key of the object being reconciled."""

    def __init__(self, logger: logging.Logger, kind: str, key: Any):
        super().__init__(logger, {"kind": kind, "key": str(key)})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        return f"[{self.extra['kind']} {self.extra['key']}] {msg}", kwargs


def object_logger(kind: str, key: Any, logger: Optional[logging.Logger] = None) -> ObjectLogAdapter:
    return ObjectLogAdapter(logger or logging.getLogger("metalprov"), kind, key)
