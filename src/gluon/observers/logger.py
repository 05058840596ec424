# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/observers/logger.py

from __future__ import annotations
import logging
from .events import BaseEvent
from .interface import Observer


class LoggerObserver(Observer):
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts", "run_id"))

        self.logger.debug(f"[EVENT] {etype}: {msg}")
