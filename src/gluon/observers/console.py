# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/observers/console.py

import typer

from .events import BaseEvent
from .interface import Observer

_SKIP = ("ts", "run_id", "host")


class ConsoleObserver(Observer):
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in _SKIP)
        typer.echo(f"[{d['ts']}] {k} host={d['host']} {data}")
