from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable


def iter_lines(path: str | Path) -> Iterable[str]:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield line


def iter_json_lines(path: str | Path) -> Iterable[tuple[int, Any]]:
    """Yield (record_no, payload) for every non-blank, non-comment (`#`) line."""

    records = (line for line in iter_lines(path) if not line.startswith("#"))
    for record_no, line in enumerate(records, start=1):
        yield record_no, json.loads(line)


def read_json(path: str | Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))
