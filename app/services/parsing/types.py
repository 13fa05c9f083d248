from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ParsedBatch:
    columns: list[str]
    rows: list[dict[str, Any]]
    summary: dict = field(default_factory=dict)
