"""Per-request options for the HomeKeeper clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class RequestOptions:
    method: str = "GET"
    headers: Mapping[str, str] | None = None
    # Pre-serialized request body; mutually exclusive with ``json``.
    body: str | None = None
    json: object | None = None
    timeout: float | None = None
