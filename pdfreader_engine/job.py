from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .utils import append_jsonl, ensure_dir, utc_now_iso, write_json


@dataclass
class JobPaths:
    job_dir: Path
    input_dir: Path
    pages_dir: Path
    stage_ocr_dir: Path
    result_json: Path
    metrics_json: Path
    errors_jsonl: Path

    @classmethod
    def for_dir(cls, job_dir: str | Path) -> "JobPaths":
        job_dir = Path(job_dir)
        return cls(
            job_dir=job_dir,
            input_dir=job_dir / "input",
            pages_dir=job_dir / "pages",
            stage_ocr_dir=job_dir / "stage" / "ocr",
            result_json=job_dir / "result.json",
            metrics_json=job_dir / "metrics.json",
            errors_jsonl=job_dir / "errors.jsonl",
        )


def create_job_dirs(workspace: str | Path, job_id: str) -> JobPaths:
    paths = JobPaths.for_dir(Path(workspace) / "jobs" / job_id)
    for p in [paths.input_dir, paths.pages_dir, paths.stage_ocr_dir]:
        ensure_dir(p)
    return paths


def new_job_id() -> str:
    """Timeline job id: YYYY-MM-DD/HH-MM-SS__<shortid>."""
    now = datetime.now(timezone.utc)
    return f"{now.strftime('%Y-%m-%d')}/{now.strftime('%H-%M-%S')}__{uuid.uuid4().hex[:8]}"


def record_error(paths: JobPaths, page_number: int | None, stage: str, message: str) -> None:
    append_jsonl(paths.errors_jsonl, {"page_number": page_number, "stage": stage, "message": message})


def init_job_outputs(paths: JobPaths) -> None:
    # Always create output files, even if the run fails later.
    write_json(paths.result_json, {"job": {}, "pages": []})
    write_json(
        paths.metrics_json,
        {
            "created_at": utc_now_iso(),
            "finished": False,
            "completed_at": None,
            "pages_total": 0,
            "pages_processed": 0,
            "pages_failed": 0,
            "ocr_empty_count": 0,
            "average_confidence": 0.0,
        },
    )
    paths.errors_jsonl.parent.mkdir(parents=True, exist_ok=True)
    paths.errors_jsonl.touch(exist_ok=True)


def snapshot_input(paths: JobPaths, input_path: str | Path) -> None:
    src = Path(input_path)
    if src.is_file():
        shutil.copy2(src, paths.input_dir / src.name)
    else:
        write_json(paths.input_dir / "manifest.json", {"source": str(input_path)})
