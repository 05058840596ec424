# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/observers/interface.py

from __future__ import annotations

from typing import Protocol

from .events import BaseEvent


class Observer(Protocol):
    """Receives every event emitted on an EventBus, in emission order."""

    def notify(self, event: BaseEvent) -> None: ...
