"""Location value type.

Only the governorate is mandatory; city and district are optional refinements.
A district is only meaningful inside a city, so a district without a city is
rejected at construction time.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_COUNTRY = "EG"

_SEPARATORS = re.compile(r"[\s\-_]+")
_ALEF_VARIANTS = re.compile("[أإآ]")


def normalize_place(name: Optional[str]) -> Optional[str]:
    """Normalize a place name for comparison.

    Case-folds, strips whitespace/dashes/underscores and folds the Arabic
    letter variants that are routinely typed interchangeably.

    Args:
        name: Raw place name (may be None)

    Returns:
        Normalized key, or None if the name is missing or blank
    """
    if name is None:
        return None
    key = _SEPARATORS.sub("", name.casefold())
    key = key.replace("ة", "ه").replace("ى", "ي")
    key = _ALEF_VARIANTS.sub("ا", key)
    return key or None


class Location(BaseModel):
    """Where a tradable item or demand is located."""

    model_config = ConfigDict(frozen=True)

    governorate: str
    city: Optional[str] = None
    district: Optional[str] = None
    country: str = DEFAULT_COUNTRY

    @field_validator("governorate", "country")
    @classmethod
    def require_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("city", "district")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def district_requires_city(self) -> "Location":
        if self.district and not self.city:
            raise ValueError("district requires a city")
        return self

    @property
    def governorate_key(self) -> Optional[str]:
        return normalize_place(self.governorate)

    @property
    def city_key(self) -> Optional[str]:
        return normalize_place(self.city)

    @property
    def district_key(self) -> Optional[str]:
        return normalize_place(self.district)

    @property
    def country_key(self) -> Optional[str]:
        return normalize_place(self.country)
