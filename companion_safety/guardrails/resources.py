"""Crisis support resource directory.

Built-in lists cover the UK, the US and international lines. Deployments
can replace the directory with a JSON file (settings.crisis_resources_path)
without touching the selection logic in guardrails/crisis.py.
"""

import json
from pathlib import Path

from pydantic import BaseModel, Field

import structlog

logger = structlog.get_logger()

DEFAULT_REGION = "uk"


class EmergencyResources(BaseModel):
    uk: list[str] = Field(default_factory=lambda: ["999 (Emergency Services)", "116 123 (Samaritans - 24/7)"])
    us: list[str] = Field(default_factory=lambda: ["911 (Emergency Services)", "988 (Suicide & Crisis Lifeline)"])
    international: list[str] = Field(
        default_factory=lambda: ["+44 116 123 (Samaritans)", "+1 800 273 8255 (US Crisis Line)"]
    )


class TextSupportResources(BaseModel):
    uk: list[str] = Field(default_factory=lambda: ["85258 (Shout - Text Support)", "116 123 (Samaritans)"])
    us: list[str] = Field(default_factory=lambda: ["741741 (Crisis Text Line)", "988 (Suicide & Crisis Lifeline)"])


class SpecializedResources(BaseModel):
    grief: list[str] = Field(
        default_factory=lambda: [
            "Cruse Bereavement Care: 0808 808 1677",
            "GriefShare: griefshare.org",
            "Compassionate Friends: 0345 123 2304",
        ]
    )
    abuse: list[str] = Field(
        default_factory=lambda: [
            "National Domestic Abuse Helpline: 0808 2000 247",
            "Refuge: 0808 2000 247",
            "Women's Aid: 0808 2000 247",
        ]
    )
    addiction: list[str] = Field(
        default_factory=lambda: [
            "Alcoholics Anonymous: 0800 9177 650",
            "Narcotics Anonymous: 0300 999 1212",
            "SMART Recovery: smartrecovery.org.uk",
        ]
    )
    lgbtq: list[str] = Field(
        default_factory=lambda: [
            "Switchboard LGBT+ Helpline: 0800 0119 100",
            "LGBT Foundation: 0345 3 30 30 30",
            "Mermaids: 0808 801 0400",
        ]
    )


class CrisisResources(BaseModel):
    """Region and specialisation keyed resource lists."""

    emergency: EmergencyResources = Field(default_factory=EmergencyResources)
    text_support: TextSupportResources = Field(default_factory=TextSupportResources)
    specialized: SpecializedResources = Field(default_factory=SpecializedResources)
    region: str = DEFAULT_REGION

    def emergency_for_region(self) -> list[str]:
        return list(getattr(self.emergency, self.region, None) or getattr(self.emergency, DEFAULT_REGION))

    def text_support_for_region(self) -> list[str]:
        return list(getattr(self.text_support, self.region, None) or getattr(self.text_support, DEFAULT_REGION))


def load_crisis_resources(path: str | None = None, region: str = DEFAULT_REGION) -> CrisisResources:
    """Load the resource directory.

    Args:
        path: Optional JSON file overriding the built-in lists. Missing keys
            keep their defaults.
        region: Region used for emergency and text-support lists. Regions
            without a list fall back to the UK lists.

    Returns:
        CrisisResources ready for resource selection.

    Raises:
        FileNotFoundError: If path is given but does not exist.
        pydantic.ValidationError: If the file does not match the schema.
    """
    region = region.lower()
    if not path:
        return CrisisResources(region=region)

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    resources = CrisisResources.model_validate({**data, "region": region})
    logger.info("crisis_resources_loaded", path=path, region=region)
    return resources
