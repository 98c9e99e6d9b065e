"""
Listing catalog - booking categories, listings and security questions from YAML.
"""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).parent.parent / "config" / "catalog.yml"


class Listing(BaseModel):
    id: str
    title: str = Field(max_length=20)
    nightly_rate: int = Field(gt=0)  # Whole naira
    max_guests: int = Field(ge=1)


class Category(BaseModel):
    id: str
    title: str = Field(max_length=20)
    listings: list[Listing] = Field(min_length=1, max_length=3)


class SecurityQuestion(BaseModel):
    id: str
    title: str = Field(max_length=20)
    text: str


class Catalog(BaseModel):
    categories: list[Category] = Field(min_length=1, max_length=3)
    security_questions: list[SecurityQuestion] = Field(min_length=1, max_length=3)

    def get_category(self, category_id: str | None) -> Category | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def get_listing(self, category_id: str | None, listing_id: str | None) -> Listing | None:
        category = self.get_category(category_id)
        if category is None:
            return None
        return next((item for item in category.listings if item.id == listing_id), None)

    def get_security_question(self, question_id: str | None) -> SecurityQuestion | None:
        return next((q for q in self.security_questions if q.id == question_id), None)


def load_catalog(path: Path = CATALOG_PATH) -> Catalog:
    """Parse and validate a catalog file; raises on a missing or malformed file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    catalog = Catalog.model_validate(data)
    logger.info(
        f"Loaded catalog from {path}: {len(catalog.categories)} categories, "
        f"{sum(len(c.listings) for c in catalog.categories)} listings"
    )
    return catalog


@lru_cache(maxsize=1)
def get_catalog() -> Catalog:
    return load_catalog()
