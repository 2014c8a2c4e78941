"""AI quality insights for a product record.

Insight generation is advisory: whatever goes wrong with the model, the caller
receives a well-formed result, tagged as degraded, so the ledger data can
still be served.
"""
import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pydantic import ValidationError

from gemini import GenerativeModel, ImageAttachment
from schemas import InsightResult, ProductRecord

logger = logging.getLogger(__name__)

NO_IMAGE = "No image provided."
DEGRADED_RESULT = InsightResult(
    freshness_score=None,
    estimated_shelf_life="N/A",
    quality_assessment="Could not generate AI insights.",
    visual_inspection="Could not perform visual analysis.",
    transit_anomalies="Unknown",
)

_DATA_KEYS = ("freshness_score", "estimated_shelf_life", "quality_assessment", "transit_anomalies")
_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

PREAMBLE = """You are a supply chain and food quality analyst for a premium grocery store called "VeriFresh".
Your task is to analyze the provided supply chain data{image_clause} to generate a customer-facing summary.
Your output MUST be a valid JSON object with the following keys: "freshness_score", "estimated_shelf_life", "quality_assessment", "visual_inspection", and "transit_anomalies". Do not include any other text or markdown formatting.

DATA ANALYSIS:
- freshness_score: An integer between 1 and 10, based on time since harvest.
- estimated_shelf_life: A string estimating remaining shelf life.
- transit_anomalies: A string that is "None detected." unless the history log shows long delays.
"""

IMAGE_SECTION = """
IMAGE ANALYSIS (based on the provided photo):
- visual_inspection: A one-sentence summary of the product's appearance. Comment on ripeness, color, and any visible blemishes.
"""

NO_IMAGE_SECTION = """
IMAGE ANALYSIS:
- visual_inspection: No photo is available. Set this key to exactly "{placeholder}".
"""

PRODUCT_SECTION = """
OVERALL ASSESSMENT:
- quality_assessment: A brief, reassuring summary combining {basis}.

Here is the data for the product "{name}" from "{farm_name}":
- Harvested at timestamp: {harvest_timestamp}
- Current UNIX timestamp: {now}
- Supply Chain History:
{history}
"""


class InsightStatus(str, Enum):
    GENERATED = "generated"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class InsightOutcome:
    status: InsightStatus
    result: InsightResult
    reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status is InsightStatus.DEGRADED


def render_history(record: ProductRecord) -> str:
    if not record.history:
        return "- No supply chain events recorded yet."
    return "\n".join(
        f'- At timestamp {e.timestamp}, status was updated to "{e.status}" at location "{e.location}".'
        for e in record.history
    )


def build_prompt(record: ProductRecord, now: int, with_image: bool) -> str:
    prompt = PREAMBLE.format(image_clause=" AND an image of the product" if with_image else "")
    prompt += IMAGE_SECTION if with_image else NO_IMAGE_SECTION.format(placeholder=NO_IMAGE)
    prompt += PRODUCT_SECTION.format(
        basis="both the data and visual analysis" if with_image else "the data analysis",
        name=record.name,
        farm_name=record.farm_name,
        harvest_timestamp=record.harvest_timestamp,
        now=now,
        history=render_history(record),
    )
    return prompt


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def parse_insights(text: str, with_image: bool) -> InsightResult:
    """Parse the model's raw answer. Raises ValueError on anything but a conforming object."""
    data = json.loads(strip_code_fences(text))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    required = _DATA_KEYS + (("visual_inspection",) if with_image else ())
    missing = [k for k in required if k not in data]
    if missing:
        raise ValueError(f"missing keys: {', '.join(missing)}")
    if not with_image:
        data = dict(data, visual_inspection=NO_IMAGE)
    try:
        return InsightResult.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"wrong value types: {e.error_count()} error(s)") from e


class InsightPipeline:
    def __init__(self, model: GenerativeModel, timeout: Optional[float] = None,
                 clock: Callable[[], float] = time.time):
        self.model = model
        self.timeout = timeout
        self._clock = clock

    async def generate_insights(self, record: ProductRecord,
                                image: Optional[ImageAttachment] = None) -> InsightOutcome:
        with_image = image is not None
        try:
            prompt = build_prompt(record, int(self._clock()), with_image)
            call = self.model.generate(prompt, image)
            text = await (asyncio.wait_for(call, self.timeout) if self.timeout else call)
            result = parse_insights(text, with_image)
        except Exception as e:
            reason = "model call timed out" if isinstance(e, asyncio.TimeoutError) else f"{type(e).__name__}: {e}"
            logger.warning("insight generation degraded for product %s: %s", record.product_id, reason)
            return InsightOutcome(status=InsightStatus.DEGRADED, result=DEGRADED_RESULT.model_copy(), reason=reason)

        score = result.freshness_score
        if score is not None and not 1 <= score <= 10:
            logger.warning("freshness_score %s for product %s is outside 1-10", score, record.product_id)
        return InsightOutcome(status=InsightStatus.GENERATED, result=result)
