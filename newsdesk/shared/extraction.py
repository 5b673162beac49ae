"""Structured news extraction over an untrusted model text channel."""
import json
import logging
import re
from datetime import date
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from newsdesk.config import Settings, settings as default_settings
from newsdesk.schemas.models import OTHER_BRAND, ExtractedNewsData, NewsType, Sentiment
from newsdesk.shared.clients import LLMServiceClient
from newsdesk.shared.errors import ModelOutputInvalid, UnparsableModelOutput

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    """Remove Markdown code fence markers."""
    return _FENCE.sub("", raw or "").strip()


def parse_structured(raw: str) -> Optional[Dict[str, Any]]:
    """Stage one: the reply is JSON once fences are gone."""
    try:
        value = json.loads(strip_code_fences(raw))
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def parse_brace_slice(raw: str) -> Optional[Dict[str, Any]]:
    """Stage two: keep only the text between the first '{' and the last '}'."""
    text = strip_code_fences(raw)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        value = json.loads(text[start : end + 1])
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def parse_model_output(raw: str) -> Dict[str, Any]:
    """Recover a JSON object from a model reply, or raise UnparsableModelOutput."""
    for stage in (parse_structured, parse_brace_slice):
        value = stage(raw)
        if value is not None:
            return value
    raise UnparsableModelOutput("AI output could not be parsed as JSON, please retry", raw=raw)


def match_brand(brand: str, known_brands: Sequence[str]) -> Optional[str]:
    """Return the vocabulary spelling of ``brand``, or None when unknown."""
    needle = (brand or "").strip().lower()
    if not needle:
        return None
    for known in list(known_brands) + [OTHER_BRAND]:
        if known.strip().lower() == needle:
            return known
    return None


class ExtractionClient:
    """Turn raw article text into a validated ExtractedNewsData record."""

    def __init__(
        self,
        llm_client: Optional[LLMServiceClient] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize extraction client."""
        self.config = config or default_settings
        self.llm_client = llm_client or LLMServiceClient(self.config)
        self.brand_policy = self.config.unknown_brand_policy
        self.output_language = self.config.llm_output_language

    def build_prompt(self, known_brands: Sequence[str], today: Optional[date] = None) -> str:
        today = today or date.today()
        brands = [b for b in known_brands if b != OTHER_BRAND] + [OTHER_BRAND]
        types = ", ".join(t.value for t in NewsType)
        sentiments = ", ".join(s.value for s in Sentiment)
        return f"""
You are an expert automotive news analyst. Extract structured data into STRICT JSON format.
Return ONLY the JSON object. No markdown blocks, no explanations.
Structure:
{{
  "title": "{self.output_language} headline",
  "summary": "2-3 sentences {self.output_language} summary",
  "brand": "Primary brand from: {', '.join(brands)}",
  "type": "One of: {types}",
  "date": "YYYY-MM-DD (default: {today.isoformat()})",
  "url": "URL or empty",
  "image_keywords": "3-6 English keywords",
  "sentiment": "One of: {sentiments}",
  "tags": ["2-5 short topic tags"]
}}
""".strip()

    async def extract(
        self,
        text: str,
        known_brands: Optional[Sequence[str]] = None,
        brand_policy: Optional[str] = None,
    ) -> ExtractedNewsData:
        """
        Extract one structured record from article text.

        Args:
            text: Article text, already bounded in length
            known_brands: Live brand vocabulary; defaults to configuration
            brand_policy: "preserve" keeps unknown brands verbatim, "other" maps them to Other

        Raises:
            ModelTimeout, UpstreamModelError, EmptyModelContent, UnparsableModelOutput,
            ModelOutputInvalid
        """
        brands = list(known_brands if known_brands is not None else self.config.known_brands)
        policy = brand_policy or self.brand_policy
        if policy not in ("preserve", "other"):
            raise ValueError(f"Unknown brand policy: {policy}")

        raw = await self.llm_client.generate(self.build_prompt(brands), text)
        parsed = parse_model_output(raw)
        return self.coerce(parsed, brands, policy)

    @staticmethod
    def coerce(parsed: Dict[str, Any], known_brands: Sequence[str], policy: str = "preserve") -> ExtractedNewsData:
        """Fit a parsed object into the ExtractedNewsData field set."""
        fields = {key: parsed[key] for key in ExtractedNewsData.model_fields if key in parsed}
        try:
            record = ExtractedNewsData(**fields)
        except ValidationError as e:
            logger.warning(f"Model output failed validation: {e.error_count()} errors")
            raise ModelOutputInvalid(f"AI output is missing required fields: {e.errors()[0]['msg']}") from e

        matched = match_brand(record.brand, known_brands)
        if matched:
            record.brand = matched
        elif policy == "other":
            record.brand = OTHER_BRAND
        return record
