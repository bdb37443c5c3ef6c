"""Declarative attribute mapping: definitions and value containers.

The resolution engine lives in :mod:`CmsToIndex.ContentSync.mapping.engine`
and is imported from there directly.
"""

from .models import (
    AttributeSpec,
    ContentMapping,
    MappingModel,
    SourceAttr,
    TargetAttr,
    select_model,
)
from .values import MultiValue, TargetAttrValueMap

__all__ = [
    "AttributeSpec",
    "ContentMapping",
    "MappingModel",
    "MultiValue",
    "SourceAttr",
    "TargetAttr",
    "TargetAttrValueMap",
    "select_model",
]
