"""HuggingFace Hub surveyor: trending models and spaces."""

import logging
from typing import Any, Dict, List, Optional

from indexer.models import Tool, ToolSource

from .classify import GENERAL_CATEGORY, calculate_popularity_score
from .surveyor import BaseSurveyor, SurveyResult

logger = logging.getLogger(__name__)

PIPELINE_CATEGORY_MAP = {
    "text-generation": "LLM",
    "text2text-generation": "LLM",
    "text-classification": "NLP",
    "token-classification": "NLP",
    "question-answering": "NLP",
    "translation": "NLP",
    "summarization": "NLP",
    "image-classification": "Computer Vision",
    "object-detection": "Computer Vision",
    "image-segmentation": "Computer Vision",
    "image-to-image": "Computer Vision",
    "text-to-image": "Computer Vision",
    "automatic-speech-recognition": "Audio",
    "audio-classification": "Audio",
    "text-to-speech": "Audio",
    "reinforcement-learning": "RL",
    "robotics": "Robotics",
}

CAPABILITY_TAG_MARKERS = ("generation", "classification", "detection", "translation")

LISTING_LIMITS = {"models": 50, "spaces": 30}


def map_pipeline_tag(tag: Optional[str]) -> str:
    if not tag:
        return GENERAL_CATEGORY
    return PIPELINE_CATEGORY_MAP.get(tag, GENERAL_CATEGORY)


def capabilities_from_tags(item: Dict[str, Any]) -> List[str]:
    """Pipeline tag (spaced) plus generation/classification/detection/translation tags."""
    capabilities: List[str] = []
    pipeline_tag = item.get("pipeline_tag")
    if pipeline_tag:
        capabilities.append(pipeline_tag.replace("-", " "))

    for tag in item.get("tags") or []:
        if isinstance(tag, str) and any(marker in tag for marker in CAPABILITY_TAG_MARKERS):
            if tag not in capabilities:
                capabilities.append(tag)
    return capabilities


class HuggingFaceSurveyor(BaseSurveyor):
    """Surveys trending models and spaces on the HuggingFace Hub."""

    source_name = ToolSource.HUGGINGFACE.value
    default_config = {
        "base_url": "https://huggingface.co",
        "dimensions": ["models", "spaces"],
        "rate_limit": 1.0,
    }

    async def survey(self) -> SurveyResult:
        result = SurveyResult()
        await self.survey_dimensions(result, self._survey_listing)
        return result

    async def _survey_listing(self, listing: str, result: SurveyResult):
        if listing not in LISTING_LIMITS:
            raise ValueError(f"Unknown HuggingFace listing '{listing}'")

        base = self.config.base_url.rstrip("/")
        url = f"{base}/api/{listing}?sort=trending&limit={LISTING_LIMITS[listing]}"
        page = await self.fetch(url)
        items = page.json()
        if not isinstance(items, list):
            raise ValueError(f"Unexpected {listing} payload: {type(items).__name__}")

        to_tool = self.model_to_tool if listing == "models" else self.space_to_tool
        for item in items:
            tool = to_tool(item)
            if tool is None:
                logger.debug(f"Skipping HuggingFace {listing} entry without id")
                continue
            await self.store_tool(tool, result)

        logger.info(f"HuggingFace {listing}: {len(items)} entries processed")

    def model_to_tool(self, model: Dict[str, Any]) -> Optional[Tool]:
        model_id = model.get("modelId") or model.get("id")
        if not model_id:
            return None

        pipeline_tag = model.get("pipeline_tag")
        return Tool(
            name=model_id,
            description=model.get("description") or f"AI model: {model_id}",
            url=f"https://huggingface.co/{model_id}",
            source=self.source_name,
            category=map_pipeline_tag(pipeline_tag),
            subcategory=pipeline_tag,
            capabilities=capabilities_from_tags(model),
            api_available=True,
            open_source=True,
            pricing_model="free",
            popularity_score=calculate_popularity_score(
                likes=model.get("likes"),
                downloads=model.get("downloads"),
            ),
            metadata={
                "pipeline_tag": pipeline_tag,
                "library_name": model.get("library_name"),
                "tags": model.get("tags") or [],
                "created_at": model.get("createdAt"),
                "last_modified": model.get("lastModified"),
            },
        )

    def space_to_tool(self, space: Dict[str, Any]) -> Optional[Tool]:
        space_id = space.get("id")
        if not space_id:
            return None

        return Tool(
            name=space_id,
            description=space.get("description") or f"AI Space: {space_id}",
            url=f"https://huggingface.co/spaces/{space_id}",
            source=self.source_name,
            category="Application",
            subcategory=space.get("sdk"),
            capabilities=capabilities_from_tags(space),
            api_available=True,
            open_source=True,
            pricing_model="free",
            popularity_score=calculate_popularity_score(likes=space.get("likes")),
            metadata={
                "sdk": space.get("sdk"),
                "tags": space.get("tags") or [],
                "created_at": space.get("createdAt"),
                "last_modified": space.get("lastModified"),
            },
        )
