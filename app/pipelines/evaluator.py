"""
Industry Evaluator
------------------
Two passes per industry group:

    Pass 1 (evaluate): sentiment, summary, key drivers and key risks from the
        group's texts, framed for a home-market investor. Produces an
        UnscoredEvaluation, which has no confidence at all.
    Pass 2 (score): the model rates how faithfully Pass 1 reflects the
        source excerpts on a 0.0-1.0 scale. Unparseable or out-of-range
        answers fall back to CONFIDENCE_FALLBACK (0.5).

Filtering by sentiment/confidence is a read-time concern and is not done here.
"""
import math
import re
from typing import Any, List, Optional, Sequence

import structlog

from app.config import settings
from app.core.exceptions import ResponseParseException, TextGenerationException
from app.models.enumerations import Sentiment
from app.models.evaluation import IndustryEvaluation, IndustryGroup, UnscoredEvaluation
from app.pipelines.prompts import build_evaluate_prompt, build_score_prompt
from app.services.text_generation import TextGenerator, parse_json_response

logger = structlog.get_logger(__name__)

_NUMBER = re.compile(r"[-+]?(?:\d+\.\d*|\.\d+|\d+)")
_STANDALONE = re.compile(r"[^\w+-]*(" + _NUMBER.pattern + r")\W*")


def parse_confidence(text: Optional[str], fallback: float) -> float:
    """
    Read the confidence from a Pass-2 response.

    A number standing alone on the last non-empty line is the answer.
    Otherwise the last number in [0, 1] anywhere in the text is used, so
    "On a 0.0-1.0 scale: 0.82" reads as 0.82.

    Returns fallback when there is no usable number, or when the
    standalone answer lies outside [0, 1].
    """
    if not text:
        return fallback

    lines = [line for line in text.splitlines() if line.strip()]
    standalone = _STANDALONE.fullmatch(lines[-1]) if lines else None
    if standalone is not None:
        value = float(standalone.group(1))
        return value if _in_unit_interval(value) else fallback

    in_range = [v for v in (float(m) for m in _NUMBER.findall(text)) if _in_unit_interval(v)]
    return in_range[-1] if in_range else fallback


def _in_unit_interval(value: float) -> bool:
    return not math.isnan(value) and 0.0 <= value <= 1.0


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    raise ResponseParseException(f"Expected a list of strings, got {type(value).__name__}")


def parse_evaluation(payload: Any, group: IndustryGroup) -> UnscoredEvaluation:
    """
    Validate a decoded Pass-1 response.

    Raises:
        ResponseParseException: Missing/invalid sentiment or summary
    """
    if not isinstance(payload, dict):
        raise ResponseParseException(f"Expected a JSON object, got {type(payload).__name__}")

    code = payload.get("sentiment") or payload.get("evaluationCode")
    try:
        sentiment = Sentiment(str(code).strip().upper())
    except ValueError as e:
        raise ResponseParseException(f"Unknown sentiment '{code}'") from e

    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ResponseParseException("Missing summary")

    return UnscoredEvaluation(
        industry_name=group.industry_name,
        sentiment=sentiment,
        summary=summary.strip(),
        key_drivers=_string_list(payload.get("keyDrivers", payload.get("key_drivers"))),
        key_risks=_string_list(payload.get("keyRisks", payload.get("key_risks"))),
        referenced_report_ids=list(group.referenced_report_ids),
    )


class IndustryEvaluator:
    """Evaluate and score industry groups."""

    def __init__(
        self,
        generator: TextGenerator,
        market: Optional[str] = None,
        content_chars: Optional[int] = None,
        confidence_fallback: Optional[float] = None,
    ):
        self.generator = generator
        self.market = market or settings.HOME_MARKET
        self.content_chars = content_chars if content_chars is not None else settings.EVALUATE_CONTENT_CHARS
        self.confidence_fallback = (
            confidence_fallback if confidence_fallback is not None else settings.CONFIDENCE_FALLBACK
        )

    def _excerpts(self, group: IndustryGroup) -> List[str]:
        return [text[: self.content_chars] for text in group.texts]

    def evaluate(self, group: IndustryGroup) -> UnscoredEvaluation:
        """
        Pass 1 for one industry.

        Raises:
            TextGenerationException: Generation failed
            ResponseParseException: Response unusable
        """
        logger.info("industry_evaluate_started", industry=group.industry_name, reports=len(group.texts))
        raw = self.generator.generate(
            build_evaluate_prompt(group.industry_name, self._excerpts(group), self.market)
        )
        result = parse_evaluation(parse_json_response(raw), group)
        logger.info("industry_evaluated", industry=group.industry_name, sentiment=result.sentiment.value)
        return result

    def score(self, evaluation: UnscoredEvaluation, sources: Sequence[str]) -> IndustryEvaluation:
        """
        Pass 2 for one industry. Never fails: generation errors and
        unparseable answers both yield the fallback confidence.
        """
        excerpts = [text[: self.content_chars] for text in sources]
        try:
            raw = self.generator.generate(build_score_prompt(evaluation, excerpts))
        except TextGenerationException as e:
            logger.warning(
                "confidence_fallback",
                industry=evaluation.industry_name,
                reason="generation_failed",
                error=str(e),
                confidence=self.confidence_fallback,
            )
            return evaluation.with_confidence(self.confidence_fallback)

        confidence = parse_confidence(raw, self.confidence_fallback)
        if confidence == self.confidence_fallback:
            logger.info("confidence_default_used", industry=evaluation.industry_name, raw=raw[:80])
        logger.info("industry_scored", industry=evaluation.industry_name, confidence=confidence)
        return evaluation.with_confidence(confidence)
