from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .job import JobPaths
from .types import OCRResult
from .utils import load_json, utc_now_iso, write_json


def combined_text(results: list[OCRResult]) -> str:
    """All page texts in page order, separated by blank lines."""
    ordered = sorted(results, key=lambda r: r.page_number)
    return "\n\n".join(r.text.strip() for r in ordered if r.text.strip())


def load_results(job_dir: str | Path) -> list[OCRResult]:
    data = load_json(JobPaths.for_dir(job_dir).result_json)
    pages = data.get("pages", []) if isinstance(data, dict) else []
    return [OCRResult.from_dict(p) for p in pages if isinstance(p, dict)]


@dataclass
class JobWriter:
    paths: JobPaths

    def write_final(self, job_meta: dict[str, Any], results: list[OCRResult], metrics: dict[str, Any]) -> None:
        now = utc_now_iso()

        for r in results:
            write_json(self.paths.stage_ocr_dir / f"page_{r.page_number:03d}.json", r.to_dict())

        # Mark completion only when final outputs are successfully written.
        metrics_out = dict(metrics)
        metrics_out["finished"] = True
        metrics_out["completed_at"] = now

        job_out = dict(job_meta)
        job_out["finished"] = True
        job_out["completed_at"] = now

        write_json(self.paths.result_json, {"job": job_out, "pages": [r.to_dict() for r in results]})
        write_json(self.paths.metrics_json, metrics_out)
