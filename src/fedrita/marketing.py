from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ValidationError

from fedrita.exceptions import ConfigError

DEFAULT_CONTENT_PATH = Path(__file__).resolve().parent / "content" / "home.yaml"


class Link(BaseModel):
    label: str
    href: str


class Card(BaseModel):
    title: str
    description: str


class Testimonial(BaseModel):
    name: str
    business: str = ""
    rating: int = 5
    text: str


class Hero(BaseModel):
    badge: str = ""
    title: str
    subtitle: str = ""
    actions: List[Link] = []


class CardSection(BaseModel):
    title: str
    subtitle: str = ""
    items: List[Card] = []


class TestimonialSection(BaseModel):
    title: str
    subtitle: str = ""
    items: List[Testimonial] = []


class CallToAction(BaseModel):
    badge: str = ""
    title: str
    subtitle: str = ""
    action: Optional[Link] = None


class HomeContent(BaseModel):
    hero: Hero
    features: CardSection
    benefits: CardSection
    how_it_works: CardSection
    testimonials: TestimonialSection
    cta: CallToAction


_cache: dict[Path, HomeContent] = {}


def load_home_content(path: Optional[Path] = None) -> HomeContent:
    """
    Load the home page copy. Parsed once per path; a missing or invalid file is
    a configuration error since the home page cannot render without it.
    """
    path = Path(path) if path else DEFAULT_CONTENT_PATH
    if path in _cache:
        return _cache[path]
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read home content {path}: {exc}") from exc
    try:
        content = HomeContent.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid home content {path}: {exc}") from exc
    _cache[path] = content
    return content
