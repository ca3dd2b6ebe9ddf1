# app/modules/scan/metadata.py
"""
Typed product metadata parsed once from an enrichment blob.

Providers return heterogeneous shapes (Open Food Facts `nutriments` keys,
comma separated tag strings, UPC specification dicts). They are normalised
here into a closed set of models before anything is written to an item.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from app.config.settings import settings

OFF_IMAGE_FIELDS = [
    "image_front_url",
    "image_ingredients_url",
    "image_nutrition_url",
    "image_packaging_url",
]

OFF_SELECTED_IMAGE_KINDS = ["front", "ingredients", "nutrition", "packaging"]


class NutritionFacts(BaseModel):
    per_100g: Dict[str, float] = Field(default_factory=dict)
    per_serving: Dict[str, float] = Field(default_factory=dict)
    serving_size: Optional[str] = None
    nutriscore_grade: Optional[str] = None
    nova_group: Optional[int] = None


class EnvironmentalImpact(BaseModel):
    ecoscore_grade: Optional[str] = None
    ecoscore_score: Optional[float] = None
    packaging: List[str] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)


class Ingredients(BaseModel):
    text: Optional[str] = None
    items: List[str] = Field(default_factory=list)


class ProductMetadata(BaseModel):
    source: str = "unknown"
    nutrition: Optional[NutritionFacts] = None
    environmental: Optional[EnvironmentalImpact] = None
    ingredients: Optional[Ingredients] = None
    allergens: List[str] = Field(default_factory=list)
    specifications: Dict[str, Any] = Field(default_factory=dict)
    quantity: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        """Serialisable form for the item's metadata column, empty sections dropped"""
        data = self.model_dump(exclude_none=True)
        return {key: value for key, value in data.items() if value not in ({}, [])}


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _split_tags(value: Any) -> List[str]:
    """Accept "en:milk,en:nuts" or ["en:milk", ...]; drop language prefixes"""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []

    tags = []
    for tag in value:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if ":" in tag:
            tag = tag.split(":", 1)[1]
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _extract_nutrition(raw: Dict[str, Any]) -> Optional[NutritionFacts]:
    nested = raw.get("nutrition")
    if isinstance(nested, dict) and (nested.get("per_100g") or nested.get("per_serving")):
        return NutritionFacts(
            per_100g={k: v for k, v in (nested.get("per_100g") or {}).items() if _to_float(v) is not None},
            per_serving={k: v for k, v in (nested.get("per_serving") or {}).items() if _to_float(v) is not None},
            serving_size=nested.get("serving_size"),
            nutriscore_grade=nested.get("nutriscore_grade"),
            nova_group=nested.get("nova_group"),
        )

    nutriments = raw.get("nutriments")
    if not isinstance(nutriments, dict) or not nutriments:
        return None

    per_100g: Dict[str, float] = {}
    per_serving: Dict[str, float] = {}
    for key, value in nutriments.items():
        number = _to_float(value)
        if number is None:
            continue
        if key.endswith("_100g"):
            per_100g[key[:-len("_100g")].replace("-", "_")] = number
        elif key.endswith("_serving"):
            per_serving[key[:-len("_serving")].replace("-", "_")] = number

    if not per_100g and not per_serving:
        return None

    nova_group = _to_float(raw.get("nova_group"))
    return NutritionFacts(
        per_100g=per_100g,
        per_serving=per_serving,
        serving_size=raw.get("serving_size"),
        nutriscore_grade=raw.get("nutriscore_grade") or raw.get("nutrition_grades"),
        nova_group=int(nova_group) if nova_group is not None else None,
    )


def _extract_environmental(raw: Dict[str, Any]) -> Optional[EnvironmentalImpact]:
    nested = raw.get("environmental")
    if isinstance(nested, dict):
        return EnvironmentalImpact(**{
            key: nested[key] for key in EnvironmentalImpact.model_fields if nested.get(key) is not None
        })

    packaging = _split_tags(raw.get("packaging_tags")) or _split_tags(raw.get("packaging"))
    impact = EnvironmentalImpact(
        ecoscore_grade=raw.get("ecoscore_grade"),
        ecoscore_score=_to_float(raw.get("ecoscore_score")),
        packaging=packaging,
        labels=_split_tags(raw.get("labels_tags")),
    )
    if impact.ecoscore_grade is None and impact.ecoscore_score is None and not packaging and not impact.labels:
        return None
    return impact


def _extract_ingredients(raw: Dict[str, Any]) -> Optional[Ingredients]:
    value = raw.get("ingredients")
    text = raw.get("ingredients_text")

    if isinstance(value, dict):
        text = text or value.get("text")
        value = value.get("items")

    items: List[str] = []
    if isinstance(value, list):
        for entry in value:
            if isinstance(entry, dict):
                entry = entry.get("text")
            if isinstance(entry, str) and entry.strip():
                items.append(entry.strip())
    elif isinstance(value, str) and not text:
        text = value

    if not text and not items:
        return None
    return Ingredients(text=text, items=items)


def extract_product_metadata(enrichment: Optional[Dict[str, Any]]) -> ProductMetadata:
    """Normalise the enrichment's `metadata` into a ProductMetadata"""
    enrichment = enrichment or {}
    raw = enrichment.get("metadata") or {}
    if not isinstance(raw, dict):
        raw = {}

    allergens = _split_tags(raw.get("allergens_tags")) or _split_tags(raw.get("allergens"))
    specifications = raw.get("specifications") if isinstance(raw.get("specifications"), dict) else {}

    return ProductMetadata(
        source=enrichment.get("source") or "unknown",
        nutrition=_extract_nutrition(raw),
        environmental=_extract_environmental(raw),
        ingredients=_extract_ingredients(raw),
        allergens=allergens,
        specifications=specifications,
        quantity=raw.get("quantity"),
    )


def build_image_gallery(enrichment: Optional[Dict[str, Any]], limit: Optional[int] = None) -> List[str]:
    """
    Ordered, de-duplicated image URLs for an enrichment

    Main image first, then Open Food Facts secondary shots and selected
    images, then UPC style `images` lists. Only http(s) URLs are kept.
    """
    enrichment = enrichment or {}
    raw = enrichment.get("metadata") or {}
    if not isinstance(raw, dict):
        raw = {}
    limit = settings.scan_max_photo_assets if limit is None else limit

    candidates: List[Any] = [enrichment.get("imageUrl")]
    candidates.extend(raw.get(field) for field in OFF_IMAGE_FIELDS)

    selected = raw.get("selected_images")
    if isinstance(selected, dict):
        for kind in OFF_SELECTED_IMAGE_KINDS:
            display = (selected.get(kind) or {}).get("display")
            if isinstance(display, dict):
                candidates.extend(display.values())

    for images in (enrichment.get("images"), raw.get("images")):
        if isinstance(images, list):
            candidates.extend(images)

    gallery: List[str] = []
    for url in candidates:
        if not isinstance(url, str):
            continue
        url = url.strip()
        if not url.startswith(("http://", "https://")) or url in gallery:
            continue
        gallery.append(url)
        if len(gallery) >= limit:
            break
    return gallery
