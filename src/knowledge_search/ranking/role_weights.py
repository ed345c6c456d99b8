"""Role-aware re-ranking of search results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from enum import Enum
from types import MappingProxyType

from knowledge_search.types import SearchResult


class UserRole(str, Enum):
    DEVELOPER = "developer"
    PRODUCT = "product"
    UI = "ui"


class ContentType(str, Enum):
    CODE = "code"
    MARKDOWN = "markdown"
    DATABASE_SCHEMA = "database_schema"
    DOCUMENT = "document"


RoleWeightTable = Mapping[str, Mapping[ContentType, float]]

ROLE_WEIGHT_STRATEGIES: RoleWeightTable = MappingProxyType(
    {
        UserRole.DEVELOPER.value: MappingProxyType(
            {
                ContentType.CODE: 1.5,
                ContentType.MARKDOWN: 1.2,  # technical docs
                ContentType.DATABASE_SCHEMA: 1.3,
                ContentType.DOCUMENT: 0.8,
            }
        ),
        UserRole.PRODUCT.value: MappingProxyType(
            {
                ContentType.DOCUMENT: 1.5,  # PRDs and requirements
                ContentType.MARKDOWN: 1.3,
                ContentType.CODE: 0.7,
                ContentType.DATABASE_SCHEMA: 0.9,
            }
        ),
        UserRole.UI.value: MappingProxyType(
            {
                ContentType.DOCUMENT: 1.5,  # design specs
                ContentType.MARKDOWN: 1.3,
                ContentType.CODE: 1.1,  # UI component code
                ContentType.DATABASE_SCHEMA: 0.5,
            }
        ),
    }
)


def normalize_content_type(content_type: str) -> ContentType:
    """Classify a free-form content type string into a weighting bucket."""

    lower = content_type.lower()
    if lower == "code":
        return ContentType.CODE
    if lower.startswith("markdown"):
        return ContentType.MARKDOWN
    if "schema" in lower:
        return ContentType.DATABASE_SCHEMA
    return ContentType.DOCUMENT


def role_key(role: str | UserRole) -> str:
    """Plain string key of a role, whether given as `UserRole` or text."""
    return role.value if isinstance(role, UserRole) else str(role)


def get_role_weight(
    role: str | None,
    content_type: str,
    table: RoleWeightTable = ROLE_WEIGHT_STRATEGIES,
) -> float:
    """Multiplier for `content_type` under `role`; 1.0 when either is unknown."""

    if not role:
        return 1.0
    strategy = table.get(role_key(role))
    if strategy is None:
        return 1.0
    return strategy.get(normalize_content_type(content_type), 1.0)


def apply_role_weighting(
    results: list[SearchResult],
    role: str | None,
    table: RoleWeightTable = ROLE_WEIGHT_STRATEGIES,
) -> list[SearchResult]:
    """Weight scores by role and re-sort descending.

    Without a role the input is returned unchanged. `sorted` is stable, so ties
    keep their similarity order.
    """

    if not role:
        return results

    weighted = []
    for result in results:
        weight = get_role_weight(role, result.content_type, table)
        weighted.append(
            replace(
                result,
                original_score=result.score,
                role_weight=weight,
                score=result.score * weight,
            )
        )
    return sorted(weighted, key=lambda item: item.score, reverse=True)
