"""Extraction service: pages in, scored product record out.

Pipeline: guard -> orchestrator -> normalize -> validate (advisory) -> score
"""

from __future__ import annotations

import structlog

from vinotheque.core.config import Settings, settings
from vinotheque.modules.extraction.errors import EmptyDocumentError
from vinotheque.modules.extraction.normalizer import normalize_spec
from vinotheque.modules.extraction.orchestrator import run_orchestrator
from vinotheque.modules.extraction.providers.base import ProviderAdapter
from vinotheque.modules.extraction.quality import assess_acceptance, compute_quality
from vinotheque.modules.extraction.schemas import ExtractionOutcome, PageBlock
from vinotheque.modules.extraction.validator import validate_spec

logger = structlog.get_logger()


async def extract_product_spec(
    pages: list[PageBlock],
    *,
    config: Settings | None = None,
    registry: dict[str, type[ProviderAdapter]] | None = None,
    max_chars_per_chunk: int | None = None,
) -> ExtractionOutcome:
    """Extract, fuse, normalize and score one document.

    Raises:
        EmptyDocumentError: the pages carry too little text to extract.
        MisconfigurationError / AllProvidersFailedError: from the orchestrator.
    """
    config = config or settings

    total_chars = sum(len(p.text.strip()) for p in pages)
    if total_chars < config.extraction_min_text_chars:
        logger.warning(
            "Extraction skipped: document has too little text",
            pages=len(pages),
            chars=total_chars,
            minimum=config.extraction_min_text_chars,
        )
        raise EmptyDocumentError(
            f"Document text too short ({total_chars} chars, need {config.extraction_min_text_chars})"
        )

    result = await run_orchestrator(
        pages,
        max_chars_per_chunk,
        config=config,
        registry=registry,
    )

    normalized = normalize_spec(result.fused.model_dump())
    validation = validate_spec(normalized)
    spec = validation.spec

    quality = compute_quality(spec, spec.get("citations"))
    acceptance = assess_acceptance(spec, quality, result.successes, result.failures)

    logger.info(
        "Extraction complete",
        mode=result.mode,
        quality=quality,
        accepted=acceptance.accepted,
        providers_ok=[p.provider for p in result.successes],
        providers_failed=[p.provider for p in result.failures],
        schema_valid=validation.valid,
    )

    return ExtractionOutcome(
        spec=spec,
        quality_score=quality,
        mode=result.mode,
        providers=[*result.successes, *result.failures],
        validation_errors=validation.errors,
        acceptance=acceptance,
    )
