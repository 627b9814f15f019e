from __future__ import annotations

import json
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def ensure_dir(path: str | Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def new_annotation_id(prefix: str) -> str:
    # e.g. highlight_1718000000000_3f9a1c2b
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def hex_to_rgb(color: str) -> tuple[float, float, float]:
    """Convert '#rrggbb' to an (r, g, b) tuple in 0.0-1.0.

    Anything unparsable falls back to black.
    """
    m = _HEX_RE.match((color or "").strip())
    if not m:
        return 0.0, 0.0, 0.0
    return tuple(int(m.group(i), 16) / 255.0 for i in (1, 2, 3))  # type: ignore[return-value]


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def write_json(path: str | Path, data: Any) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def append_jsonl(path: str | Path, obj: dict[str, Any]) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(obj, ensure_ascii=False) + "\n")


def load_json(path: str | Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
