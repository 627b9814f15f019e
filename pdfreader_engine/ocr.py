from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import cv2
import numpy as np
from PIL import Image, ImageEnhance

from .errors import OCRError
from .log import get_logger
from .types import OCRResult, OCRWord, PageImage

logger = get_logger(__name__)

# Front-end (Tesseract style) code -> (display name, EasyOCR code, PaddleOCR code)
LANGUAGES: dict[str, tuple[str, str, str]] = {
    "eng": ("English", "en", "en"),
    "vie": ("Vietnamese", "vi", "vi"),
    "fra": ("French", "fr", "fr"),
    "deu": ("German", "de", "german"),
    "spa": ("Spanish", "es", "es"),
    "chi_sim": ("Chinese (Simplified)", "ch_sim", "ch"),
    "jpn": ("Japanese", "ja", "japan"),
    "kor": ("Korean", "ko", "korean"),
}

SubProgress = Callable[[float], None]


def supported_languages() -> list[dict[str, str]]:
    return [{"code": code, "name": v[0]} for code, v in LANGUAGES.items()]


def _split_codes(language: str) -> list[str]:
    # "eng+vie" (Tesseract) and "en,ko" (EasyOCR) are both accepted.
    parts = language.replace("+", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


def easyocr_langs(language: str) -> list[str]:
    return [LANGUAGES[c][1] if c in LANGUAGES else c for c in _split_codes(language)] or ["en"]


def paddleocr_lang(language: str) -> str:
    # PaddleOCR takes a single language.
    codes = _split_codes(language) or ["eng"]
    c = codes[0]
    return LANGUAGES[c][2] if c in LANGUAGES else c


def _poly_to_xyxy(poly: list[list[float]] | list[tuple[float, float]]) -> tuple[int, int, int, int]:
    xs = [p[0] for p in poly]
    ys = [p[1] for p in poly]
    return int(min(xs)), int(min(ys)), int(max(xs)), int(max(ys))


def tokens_to_text(tokens: list[dict[str, Any]]) -> str:
    """Join tokens into reading order: lines top to bottom, words left to right."""
    if not tokens:
        return ""
    ordered = sorted(tokens, key=lambda t: (t["bbox_xyxy"][1], t["bbox_xyxy"][0]))
    lines: list[list[dict[str, Any]]] = []
    for t in ordered:
        x0, y0, x1, y1 = t["bbox_xyxy"]
        cy = (y0 + y1) / 2.0
        if lines:
            ref = lines[-1][0]["bbox_xyxy"]
            ref_h = max(1, ref[3] - ref[1])
            if abs(cy - (ref[1] + ref[3]) / 2.0) <= ref_h / 2.0:
                lines[-1].append(t)
                continue
        lines.append([t])
    return "\n".join(
        " ".join(str(t["text"]) for t in sorted(line, key=lambda t: t["bbox_xyxy"][0])) for line in lines
    )


def tokens_to_result(page_number: int, tokens: list[dict[str, Any]]) -> OCRResult:
    """Build a page result; engine confidences (0-1) are scaled to 0-100."""
    words = [
        OCRWord(
            text=str(t["text"]),
            confidence=round(float(t["confidence"]) * 100.0, 2),
            bbox=tuple(int(v) for v in t["bbox_xyxy"]),  # type: ignore[arg-type]
        )
        for t in tokens
    ]
    confidence = round(sum(w.confidence for w in words) / len(words), 2) if words else 0.0
    return OCRResult(page_number=page_number, text=tokens_to_text(tokens), confidence=confidence, words=words)


@dataclass
class OCRExtractor:
    lang: str = "eng"
    engine: str = "auto"  # auto, easyocr, paddleocr
    use_preprocessing: bool = True
    max_attempts: int = 2
    _easyocr: Any | None = None
    _paddle: Any | None = None

    def _preprocess_image(self, image: Image.Image) -> Image.Image:
        """Binarize, denoise, sharpen and boost contrast for a second attempt."""
        img_array = np.array(image.convert("RGB"))
        gray = cv2.cvtColor(img_array, cv2.COLOR_RGB2GRAY)

        binary = cv2.adaptiveThreshold(
            gray, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            11, 2,
        )
        denoised = cv2.fastNlMeansDenoising(binary, None, 10, 7, 21)
        kernel = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]])
        sharpened = cv2.filter2D(denoised, -1, kernel)

        processed = ImageEnhance.Contrast(Image.fromarray(sharpened)).enhance(1.5)
        return processed.convert("RGB")

    def recognize(self, page: PageImage, on_progress: SubProgress | None = None) -> OCRResult:
        """OCR one page.

        An empty first pass is retried once on a preprocessed image. Engine
        exceptions are not retried: they raise OCRError for the page.
        """
        if on_progress:
            on_progress(0.0)

        tokens: list[dict[str, Any]] = []
        for attempt in range(max(1, self.max_attempts)):
            if attempt > 0 and not self.use_preprocessing:
                break
            image = page.image if attempt == 0 else self._preprocess_image(page.image)
            try:
                tokens = self._extract_with_engine(image)
            except Exception as e:
                logger.warning("ocr_attempt_failed", page=page.page_number, attempt=attempt + 1, error=str(e))
                raise OCRError(f"OCR failed on page {page.page_number}: {e}", page_number=page.page_number) from e
            if tokens:
                break
            if on_progress:
                on_progress(0.5)

        result = tokens_to_result(page.page_number, tokens)
        if on_progress:
            on_progress(1.0)
        return result

    def _extract_with_engine(self, image: Image.Image) -> list[dict[str, Any]]:
        if self.engine == "easyocr":
            return self._extract_easyocr(image)
        if self.engine == "paddleocr":
            return self._extract_paddleocr(image)
        if self.engine != "auto":
            raise ValueError(f"Unknown OCR engine: {self.engine}")

        # auto: EasyOCR first, PaddleOCR as fallback
        try:
            return self._extract_easyocr(image)
        except Exception as e:
            logger.info("ocr_engine_fallback", engine="paddleocr", reason=str(e))
            return self._extract_paddleocr(image)

    def _extract_easyocr(self, image: Image.Image) -> list[dict[str, Any]]:
        import easyocr

        if self._easyocr is None:
            self._easyocr = easyocr.Reader(easyocr_langs(self.lang), gpu=False)

        results = self._easyocr.readtext(np.array(image))

        tokens = []
        for (bbox, text, confidence) in results:
            tokens.append({
                "text": text,
                "confidence": float(confidence),
                "bbox_xyxy": list(_poly_to_xyxy(bbox)),
            })
        return tokens

    def _extract_paddleocr(self, image: Image.Image) -> list[dict[str, Any]]:
        from paddleocr import PaddleOCR

        if self._paddle is None:
            self._paddle = PaddleOCR(use_angle_cls=True, lang=paddleocr_lang(self.lang), show_log=False)

        arr = np.array(image)
        try:
            result = self._paddle.ocr(arr, cls=True)
        except TypeError:
            result = self._paddle.ocr(arr)

        tokens = []
        for line in result or []:
            for item in line or []:
                poly, (text, score) = item
                tokens.append({
                    "text": text,
                    "confidence": float(score),
                    "bbox_xyxy": list(_poly_to_xyxy(poly)),
                })
        return tokens
