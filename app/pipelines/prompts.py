"""
Prompt templates for every text generation task in the pipeline.

Templates are plain str.format strings; builders below fill them so callers
never assemble prompt text themselves.
"""
import json
from typing import List, Sequence

from app.models.evaluation import ClassificationInput, UnscoredEvaluation
from app.models.industry import INDUSTRY_VOCABULARY


# =============================================================================
# CONVERSION (map / reduce)
# =============================================================================

CHUNK_SUMMARY_PROMPT = """\
The attached PDF is part of a financial research report. It contains {position}.
Process every page of the attachment in order; do not stop part-way.

Rewrite the content as accurately and completely as possible while condensing it:
- Follow the flow and detail of the original; do not add interpretation or opinion.
- Use hierarchical Markdown: headings for sections, **bold** labels and "-" bullet lists for facts.
- Keep every figure, percentage, forecast and table value. For each chart, list the indicators it shows.
- Do not include report metadata such as title, author, publisher or date.
- Do not add commentary, notes or a closing summary of your own.

Example of the expected style:

## Global earnings trend

**12-month forward EPS**: -0.1% month over month
- Emerging markets: -0.6%
- Developed markets: -0.01%
"""

REDUCE_MERGE_PROMPT = """\
Below are {count} partial summaries of consecutive page ranges of one financial report, in page order.
Merge them into a single coherent Markdown document:
- Preserve every fact and figure from every part; do not drop per-part details.
- Remove repetition where parts overlap, and keep the original order of topics.
- Keep the hierarchical heading / bullet structure.
- Do not add report metadata (title, author, date) or commentary of your own.

{parts}
"""

PART_SEPARATOR = "\n\n---\n\n"


def build_chunk_prompt(position: str) -> str:
    return CHUNK_SUMMARY_PROMPT.format(position=position)


def build_reduce_prompt(partials: Sequence[str]) -> str:
    parts = PART_SEPARATOR.join(
        f"### Part {i + 1}\n\n{text.strip()}" for i, text in enumerate(partials)
    )
    return REDUCE_MERGE_PROMPT.format(count=len(partials), parts=parts)


# =============================================================================
# CLASSIFICATION
# =============================================================================

CLASSIFY_PROMPT = """\
Allowed industry labels (closed list):
[{labels}]

For each report below, using its title and opening excerpt, choose the label(s) from the list that fit it best.
A report may have zero, one or several labels. Never invent a label that is not in the list.
Return only JSON in this exact shape:
[{{"id": "<report id>", "industries": ["<label>", "<label>"]}}]

--- Reports ---
{reports}
"""


def build_classify_prompt(documents: Sequence[ClassificationInput]) -> str:
    reports = json.dumps([d.model_dump() for d in documents], ensure_ascii=False, indent=2)
    return CLASSIFY_PROMPT.format(labels=", ".join(INDUSTRY_VOCABULARY), reports=reports)


# =============================================================================
# INDUSTRY EVALUATION (pass 1) AND CONFIDENCE SCORING (pass 2)
# =============================================================================

EVALUATE_PROMPT = """\
You are a professional equity analyst. Below are recent brokerage reports about the '{industry}' industry.
--- Report content ---
{contents}
--- End of content ---

Based only on this material, assess how the trends in '{industry}' will affect {market} listed stocks in this industry.
Focus in particular on the threat that growth of foreign competitors poses to the market share and profitability of {market} companies.
Write the key drivers and key risks from the point of view of a {market} market investor.
Return only JSON matching this schema:
{{
  "sentiment": "POSITIVE|NEGATIVE|NEUTRAL",
  "summary": "overall assessment in 2-3 sentences",
  "keyDrivers": ["driver 1", "driver 2"],
  "keyRisks": ["risk 1", "risk 2"]
}}
"""

SCORE_PROMPT = """\
An analyst produced the following assessment of the '{industry}' industry:
{evaluation}

Source excerpts the assessment was based on:
--- Sources ---
{sources}
--- End of sources ---

On a continuous scale from 0.0 to 1.0, how faithfully does the assessment reflect the source material?
1.0 means every claim is directly supported; 0.0 means it is unsupported or contradicted.
Respond with the number only.
"""


def build_evaluate_prompt(industry: str, contents: Sequence[str], market: str) -> str:
    return EVALUATE_PROMPT.format(
        industry=industry,
        contents=PART_SEPARATOR.join(contents),
        market=market,
    )


def build_score_prompt(evaluation: UnscoredEvaluation, sources: Sequence[str]) -> str:
    body = {
        "sentiment": evaluation.sentiment.value,
        "summary": evaluation.summary,
        "keyDrivers": evaluation.key_drivers,
        "keyRisks": evaluation.key_risks,
    }
    return SCORE_PROMPT.format(
        industry=evaluation.industry_name,
        evaluation=json.dumps(body, ensure_ascii=False, indent=2),
        sources=PART_SEPARATOR.join(sources),
    )


# =============================================================================
# KEYWORDS AND MARKET SUMMARY
# =============================================================================

KEYWORD_PROMPT = """\
Extract the key themes likely to move the stock market from the {count} most recent brokerage reports below.
{reports}

Return 3 to 8 concrete, high-impact keywords as a JSON array that conforms to this schema:
{{
  "type": "array",
  "items": {{
    "type": "object",
    "properties": {{
      "icon": {{"type": "string", "description": "a fitting emoji"}},
      "label": {{"type": "string", "description": "keyword affecting the market"}},
      "description": {{"type": "string", "description": "one or two lines explaining it"}},
      "impact": {{"type": "string", "enum": ["positive", "negative", "neutral"]}}
    }},
    "required": ["icon", "label", "description", "impact"]
  }}
}}

Example output:
[
  {{"icon": "📈", "label": "Memory demand surge", "description": "AI server demand is lifting memory chip prices", "impact": "positive"}}
]
"""

MARKET_SUMMARY_PROMPT = """\
Summarize the current stock market and economic situation from the {count} most recent brokerage reports below.
Write 3-6 short Markdown bullet points a retail investor can read in under a minute.
Cite figures exactly as given; do not speculate beyond the reports.

{reports}
"""


def _numbered_reports(items: Sequence[tuple], max_chars: int) -> str:
    return "\n".join(
        f"\n**{i + 1}. {title}**\n{content[:max_chars]}...\n"
        for i, (title, content) in enumerate(items)
    )


def build_keyword_prompt(items: List[tuple], max_chars: int) -> str:
    """items: (title, content) pairs."""
    return KEYWORD_PROMPT.format(count=len(items), reports=_numbered_reports(items, max_chars))


def build_market_summary_prompt(items: List[tuple], max_chars: int) -> str:
    return MARKET_SUMMARY_PROMPT.format(count=len(items), reports=_numbered_reports(items, max_chars))
