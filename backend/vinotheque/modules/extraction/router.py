"""Vinotheque Extraction API: /extraction/ endpoints.

  - /extract: page text in, fused + normalized + scored product record out

Failures come back as a structured payload (``success=False`` plus an
error code), never as a stack trace.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter

from vinotheque.core.config import settings
from vinotheque.modules.extraction.errors import (
    AllProvidersFailedError,
    EmptyDocumentError,
    MisconfigurationError,
    format_provider_failures,
)
from vinotheque.modules.extraction.schemas import ExtractionRequest, ExtractionResponse
from vinotheque.modules.extraction.service import extract_product_spec

logger = structlog.get_logger()

router = APIRouter(prefix="/extraction", tags=["extraction"])


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@router.post("/extract", response_model=ExtractionResponse)
async def extract(body: ExtractionRequest) -> ExtractionResponse:
    """Extract a wine technical sheet from already-extracted page text.

    Pipeline: pages -> chunks -> providers -> fusion -> normalize -> validate -> score
    """
    start = time.monotonic()
    logger.info(
        "Extraction request",
        pages=len(body.pages),
        chars=sum(len(p.text) for p in body.pages),
    )

    try:
        outcome = await extract_product_spec(
            body.pages,
            config=settings,
            max_chars_per_chunk=body.max_chars_per_chunk,
        )

    except EmptyDocumentError as exc:
        return ExtractionResponse(
            success=False,
            error=exc.code,
            message=str(exc),
            processing_time_ms=_elapsed_ms(start),
        )

    except AllProvidersFailedError as exc:
        return ExtractionResponse(
            success=False,
            error=exc.code,
            details=exc.details,
            message=format_provider_failures(exc.details),
            processing_time_ms=_elapsed_ms(start),
        )

    except MisconfigurationError as exc:
        logger.error("Extraction misconfigured", error=str(exc))
        return ExtractionResponse(
            success=False,
            error=exc.code,
            message=str(exc),
            processing_time_ms=_elapsed_ms(start),
        )

    except Exception as exc:
        logger.error("Extraction failed", error=str(exc), exc_info=True)
        return ExtractionResponse(
            success=False,
            error="ORCHESTRATOR_EXECUTION_FAILED",
            message=str(exc),
            processing_time_ms=_elapsed_ms(start),
        )

    if not outcome.acceptance.accepted:
        logger.warning(
            "Extraction below quality threshold",
            quality=outcome.quality_score,
            threshold=outcome.acceptance.threshold,
        )
        return ExtractionResponse(
            success=False,
            error="LOW_QUALITY_EXTRACTION",
            message=(
                f"Quality {outcome.quality_score} below threshold {outcome.acceptance.threshold}"
            ),
            data=outcome.spec,
            quality_score=outcome.quality_score,
            mode=outcome.mode,
            providers=outcome.providers,
            validation_errors=outcome.validation_errors,
            acceptance=outcome.acceptance,
            processing_time_ms=_elapsed_ms(start),
        )

    return ExtractionResponse(
        success=True,
        data=outcome.spec,
        quality_score=outcome.quality_score,
        mode=outcome.mode,
        providers=outcome.providers,
        validation_errors=outcome.validation_errors,
        acceptance=outcome.acceptance,
        processing_time_ms=_elapsed_ms(start),
    )
