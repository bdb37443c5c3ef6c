"""
Pydantic v2 models for declarative attribute mappings

A content mapping names, per node type, the target attributes to produce and
how each one is sourced:
- a literal text value
- an extension registered under a string key
- one or more source attributes read from the node (optionally through an
  extension, HTML-to-text conversion or de-duplication)

Global attribute definitions decorate matching target attributes and add the
mandatory ones a model forgot to declare (see :func:`select_model`).
"""

from __future__ import annotations

from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from CmsToIndex.ContentSync import constants as c

_SUB_TYPE_ALIASES = {
    "static-file": c.STATIC_FILE,
    "static_file": c.STATIC_FILE,
    "staticfile": c.STATIC_FILE,
    "content-fragment": c.CONTENT_FRAGMENT_SUB_TYPE,
    "content_fragment": c.CONTENT_FRAGMENT_SUB_TYPE,
    "contentfragment": c.CONTENT_FRAGMENT_SUB_TYPE,
}


def normalize_sub_type(value: Optional[str]) -> Optional[str]:
    """Map spellings such as ``STATIC_FILE`` or ``contentFragment`` to one form."""
    if value is None or not value.strip():
        return None
    return _SUB_TYPE_ALIASES.get(value.strip().lower(), value.strip())


# ============================================================================
# Attribute specs
# ============================================================================


class AttributeSpec(BaseModel):
    """Field/facet declaration handed to the downstream index."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: str = Field(description="Target attribute name")
    description: Optional[str] = Field(default=None, description="Human readable label")
    type: str = Field(default="string", description="Index field type")
    mandatory: bool = Field(default=False, description="Resolved even when no model declares it")
    multi_valued: bool = Field(default=False, description="Field accepts a list of values")
    facet: bool = Field(default=False, description="Expose the field as a facet")
    facet_name: Dict[str, str] = Field(
        default_factory=dict, description="Facet label per locale ('default' key for fallback)"
    )
    extension: Optional[str] = Field(
        default=None, description="Extension key used for every source of this attribute"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Attribute name must not be blank")
        return v


# ============================================================================
# Source/target attributes
# ============================================================================


class SourceAttr(BaseModel):
    """One way of reading values for a target attribute."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, description="Node property to read")
    extension: Optional[str] = Field(default=None, description="Extension key producing the values")
    unique_values: bool = Field(default=False, description="Drop duplicate values, first one wins")
    convert_html_to_text: bool = Field(default=False, description="Strip markup from values")


class TargetAttr(BaseModel):
    """One attribute of the emitted job."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: str = Field(description="Target attribute name")
    text_value: Optional[str] = Field(default=None, description="Literal value, skips resolution")
    extension: Optional[str] = Field(
        default=None, description="Extension resolving the whole attribute when no sources are set"
    )
    source_attrs: Optional[List[SourceAttr]] = Field(
        default=None, description="Sources merged in order"
    )
    description: Optional[str] = None
    type: str = "string"
    mandatory: bool = False
    multi_valued: bool = False
    facet: bool = False
    facet_name: Dict[str, str] = Field(default_factory=dict)

    @property
    def resolved_by_extension(self) -> bool:
        return self.source_attrs is None and bool(self.extension and self.extension.strip())

    def decorated(self, spec: AttributeSpec) -> "TargetAttr":
        """Copy of this attribute carrying the field settings of ``spec``."""
        update = {
            "description": spec.description,
            "type": spec.type,
            "mandatory": spec.mandatory,
            "multi_valued": spec.multi_valued,
            "facet": spec.facet,
            "facet_name": dict(spec.facet_name),
        }
        if spec.extension and spec.extension.strip():
            if not self.source_attrs:
                update["source_attrs"] = [SourceAttr(extension=spec.extension)]
                update["extension"] = spec.extension
            else:
                update["source_attrs"] = [
                    source
                    if source.extension
                    else source.model_copy(update={"extension": spec.extension})
                    for source in self.source_attrs
                ]
        return self.model_copy(update=update)

    @classmethod
    def from_spec(cls, spec: AttributeSpec) -> "TargetAttr":
        return cls(name=spec.name).decorated(spec)


class MappingModel(BaseModel):
    """Mapping for one node type."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    type: str = Field(description="Node type this model applies to (e.g. cq:Page)")
    sub_type: Optional[str] = Field(
        default=None, description="Asset sub type (static-file, content-fragment)"
    )
    extension: Optional[str] = Field(
        default=None, description="Content extension contributing extra attributes"
    )
    target_attrs: List[TargetAttr] = Field(default_factory=list)

    @field_validator("sub_type")
    @classmethod
    def validate_sub_type(cls, v: Optional[str]) -> Optional[str]:
        return normalize_sub_type(v)


class ContentMapping(BaseModel):
    """Complete mapping for one source."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    target_attr_definitions: List[AttributeSpec] = Field(default_factory=list)
    models: List[MappingModel] = Field(default_factory=list)
    delta_extension: Optional[str] = Field(
        default=None, description="Extension computing the change fingerprint date"
    )


# ============================================================================
# Model selection
# ============================================================================


def select_model(mapping: Optional[ContentMapping], content_type: str) -> Optional[MappingModel]:
    """Return the model for ``content_type`` merged with the global definitions.

    Definitions that match a model attribute decorate it; mandatory definitions
    the model lacks are appended; the model's remaining attributes follow.
    """
    if mapping is None:
        return None
    model = next((m for m in mapping.models if m.type == content_type), None)
    if model is None:
        return None

    by_name = {attr.name: attr for attr in model.target_attrs}
    merged: List[TargetAttr] = []
    for spec in mapping.target_attr_definitions:
        declared = by_name.get(spec.name)
        if declared is not None:
            merged.append(declared.decorated(spec))
        elif spec.mandatory:
            merged.append(TargetAttr.from_spec(spec))

    seen = {attr.name for attr in merged}
    merged.extend(attr for attr in model.target_attrs if attr.name not in seen)
    return model.model_copy(update={"target_attrs": merged})


__all__ = [
    "AttributeSpec",
    "ContentMapping",
    "MappingModel",
    "SourceAttr",
    "TargetAttr",
    "select_model",
]
