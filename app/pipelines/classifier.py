"""
Industry classifier and grouper.

Tags each converted report with zero or more labels from the closed
industry vocabulary, then groups derived texts by label. Labels outside the
vocabulary are data errors from the model and are dropped here.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence

from app.core.exceptions import ResponseParseException
from app.models.evaluation import ClassificationInput, ClassifiedReport, IndustryGroup
from app.models.industry import canonical_industry
from app.pipelines.prompts import build_classify_prompt
from app.services.text_generation import TextGenerator, parse_json_response

logger = logging.getLogger(__name__)


def parse_classification(payload: object, known_ids: Sequence[str]) -> List[ClassifiedReport]:
    """
    Validate a decoded classification response.

    Unknown ids and malformed items are skipped; out-of-vocabulary labels
    are removed; documents absent from the response get no labels.

    Raises:
        ResponseParseException: If the payload is not a JSON array
    """
    if not isinstance(payload, list):
        raise ResponseParseException(f"Expected a JSON array, got {type(payload).__name__}")

    labels_by_id: Dict[str, List[str]] = {doc_id: [] for doc_id in known_ids}
    for item in payload:
        if not isinstance(item, dict):
            logger.warning(f"⚠️  Skipping malformed classification item: {item!r}")
            continue
        doc_id = str(item.get("id", ""))
        if doc_id not in labels_by_id:
            logger.warning(f"⚠️  Classification returned unknown report id '{doc_id}'")
            continue
        raw_labels = item.get("industries") or []
        if not isinstance(raw_labels, list):
            raw_labels = [raw_labels]
        for raw in raw_labels:
            label = canonical_industry(raw)
            if label is None:
                logger.warning(f"⚠️  Dropping out-of-vocabulary industry '{raw}' for report {doc_id}")
                continue
            if label not in labels_by_id[doc_id]:
                labels_by_id[doc_id].append(label)

    return [ClassifiedReport(id=doc_id, industries=labels) for doc_id, labels in labels_by_id.items()]


class IndustryClassifier:

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def classify(self, documents: Sequence[ClassificationInput]) -> List[ClassifiedReport]:
        """
        Classify documents against the industry vocabulary.

        Raises:
            TextGenerationException: Generation failed
            ResponseParseException: Response could not be decoded at all
        """
        if not documents:
            return []
        logger.info(f"🏷️  Classifying {len(documents)} report(s) by industry")
        raw = self.generator.generate(build_classify_prompt(documents))
        classified = parse_classification(parse_json_response(raw), [d.id for d in documents])
        tagged = sum(1 for c in classified if c.industries)
        logger.info(f"🏷️  {tagged}/{len(classified)} report(s) received at least one industry")
        return classified


def group_by_industry(
    classified: Sequence[ClassifiedReport],
    texts_by_id: Mapping[str, str],
) -> Dict[str, IndustryGroup]:
    """
    Collect each report's derived text under every label it carries.

    Reports without derived text are skipped. Group order follows first
    appearance, so the result is deterministic for a given input.
    """
    groups: Dict[str, IndustryGroup] = {}
    for report in classified:
        text = texts_by_id.get(report.id)
        if not text:
            continue
        for label in report.industries:
            group = groups.setdefault(label, IndustryGroup(industry_name=label))
            group.texts.append(text)
            group.referenced_report_ids.append(report.id)
    return groups
