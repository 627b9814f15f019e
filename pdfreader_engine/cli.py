from __future__ import annotations

import argparse
import json
from pathlib import Path

from .annotations import AnnotationStore
from .config import get_settings, load_config
from .errors import OCRError, ReaderError
from .job import create_job_dirs, init_job_outputs, new_job_id, snapshot_input
from .log import configure_logging
from .pipeline import PAGE_ERROR_POLICIES, OCRPipeline
from .search import ocr_stats, search_ocr_results, search_pdf_text
from .types import OCRProgress
from .writer import combined_text, load_results

DEFAULT_CONFIG = str(Path("config") / "default.json")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pdfreader_engine")
    p.add_argument("--debug", action="store_true", help="Human-readable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    ocr = sub.add_parser("ocr", help="OCR every page of a PDF or a single image into a job directory")
    ocr.add_argument("--input", required=True, help="PDF/image path or http(s) URL")
    ocr.add_argument("--lang", default="eng", help="OCR language (eng, vie, fra, deu, spa, chi_sim, jpn, kor)")
    ocr.add_argument("--workspace", default="./workspace", help="Workspace root")
    ocr.add_argument("--config", default=DEFAULT_CONFIG, help="Config path")
    ocr.add_argument("--on-page-error", default="raise", choices=list(PAGE_ERROR_POLICIES))
    ocr.add_argument("--text-out", default=None, help="Also write the combined page text to this file")

    ann = sub.add_parser("annotate", help="Write annotations from a JSON snapshot into a PDF")
    ann.add_argument("--pdf", required=True, help="Source PDF")
    ann.add_argument("--annotations", required=True, help="Annotation snapshot JSON")
    ann.add_argument("--out", required=True, help="Output PDF path")
    ann.add_argument("--config", default=DEFAULT_CONFIG, help="Config path")

    search = sub.add_parser("search", help="Search OCR results of a job, or the text layer of a PDF")
    src = search.add_mutually_exclusive_group(required=True)
    src.add_argument("--job-dir", help="Job directory (workspace/jobs/<job_id>)")
    src.add_argument("--pdf", help="PDF with a text layer")
    search.add_argument("--term", required=True)

    stats = sub.add_parser("stats", help="Confidence statistics of a finished OCR job")
    stats.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return p


def _print_progress(p: OCRProgress) -> None:
    print(f"[{p.progress:5.1f}%] {p.status}", flush=True)


def cmd_ocr(args: argparse.Namespace) -> int:
    job_id = new_job_id()
    paths = create_job_dirs(args.workspace, job_id)
    init_job_outputs(paths)
    snapshot_input(paths, args.input)

    cfg = load_config(args.config)
    try:
        results = OCRPipeline(cfg, paths=paths).run(
            args.input, args.lang, _print_progress, on_page_error=args.on_page_error
        )
    except OCRError as e:
        print(f"OCR failed on page {e.page_number}: {e.message} ({len(e.partial_results)} pages done)")
        print(str(paths.job_dir))
        return 1

    if args.text_out:
        Path(args.text_out).write_text(combined_text(results), encoding="utf-8")
    print(str(paths.job_dir))
    return 0


def cmd_annotate(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    store = AnnotationStore.load(args.annotations)
    original = Path(args.pdf).read_bytes()
    out = store.render_pdf(original, highlight_opacity=cfg.highlight_opacity)
    Path(args.out).write_bytes(out)
    print(args.out)
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    if args.job_dir:
        found = search_ocr_results(load_results(args.job_dir), args.term)
    else:
        found = search_pdf_text(Path(args.pdf).read_bytes(), args.term)
    out = [
        {
            "page_number": pm.page_number,
            "matches": [{"text": m.text, "index": m.index, "confidence": m.confidence} for m in pm.matches],
        }
        for pm in found
    ]
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    print(json.dumps(ocr_stats(load_results(args.job_dir)), indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("pdfreader_engine.server:create_app", factory=True, host=args.host, port=args.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug or get_settings().debug)

    commands = {
        "ocr": cmd_ocr,
        "annotate": cmd_annotate,
        "search": cmd_search,
        "stats": cmd_stats,
        "serve": cmd_serve,
    }
    handler = commands.get(args.command)
    if handler is None:
        raise SystemExit(2)
    try:
        return handler(args)
    except ReaderError as e:
        print(f"error [{e.code}]: {e.message}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
