"""
Projection descriptor model

A descriptor is the canonical, strategy-agnostic shape the optimizer works on:
a mapping of field name to FieldSpec plus a metadata record. Raw projections
(dicts, lists of names, "name -password" strings) are normalized into this
shape by to_descriptor(), which is idempotent.

Descriptors are frozen. Strategies never mutate one in place; they build a
new descriptor with transform_descriptor() or Descriptor.with_metadata().
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from projopt.core.errors import ValidationError

DESCRIPTOR_TYPES = ("empty", "inclusion", "exclusion", "mixed")


@dataclass(frozen=True)
class FieldSpec:
    """
    Projection entry for a single field

    Attributes:
        include: Whether the field is part of the result
        nested: Sub-projection applied to the field's value
        lazy: Field is fetched on demand rather than eagerly
        pushed: Field is evaluated by the data source
        original: The spec a lazy field was derived from
    """

    include: bool = True
    nested: Optional["Descriptor"] = None
    lazy: bool = False
    pushed: bool = False
    original: Optional["FieldSpec"] = None

    def __post_init__(self):
        if not self.include and self.nested is not None:
            raise ValidationError("A field cannot be both excluded and nested")


@dataclass(frozen=True)
class LazyLoadingInfo:
    """Eager/lazy partition recorded by the lazy loading strategy"""

    enabled: bool
    eager_fields: Tuple[str, ...]
    lazy_fields: Tuple[str, ...]
    eager_load_limit: int


@dataclass(frozen=True)
class PushdownInfo:
    """Fields handed to the data source by the pushdown strategy"""

    enabled: bool
    pushed_fields: Tuple[str, ...]
    residual_fields: Tuple[str, ...]


@dataclass(frozen=True)
class FieldSelectionInfo:
    """
    Outcome of the field selection strategy

    pruned_fields lists included fields that were deliberately dropped.
    It is empty unless the strategy was licensed to prune.
    """

    flagged: bool
    included_count: int
    dropped_exclusions: Tuple[str, ...] = ()
    pruned_fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DescriptorMetadata:
    """Summary of a descriptor plus annotations left by strategies"""

    type: str = "empty"
    lazy_loading: Optional[LazyLoadingInfo] = None
    pushdown: Optional[PushdownInfo] = None
    field_selection: Optional[FieldSelectionInfo] = None


@dataclass(frozen=True)
class Descriptor:
    """
    Canonical projection: field name -> FieldSpec

    Field order is irrelevant for equality. The fields mapping is never
    mutated after construction.
    """

    fields: Dict[str, FieldSpec] = field(default_factory=dict)
    metadata: DescriptorMetadata = field(default_factory=DescriptorMetadata)

    @classmethod
    def from_fields(cls, fields: Mapping[str, FieldSpec], **annotations) -> "Descriptor":
        """
        Build a descriptor, deriving metadata.type from the fields

        Args:
            fields: Field name -> FieldSpec
            **annotations: lazy_loading / pushdown / field_selection records

        Returns:
            New descriptor
        """
        fields = dict(fields)
        metadata = DescriptorMetadata(type=_descriptor_type(fields), **annotations)
        return cls(fields=fields, metadata=metadata)

    def with_metadata(self, **changes) -> "Descriptor":
        """Return a copy with some metadata annotations replaced"""
        return Descriptor(fields=dict(self.fields), metadata=replace(self.metadata, **changes))

    @property
    def included_fields(self) -> Tuple[str, ...]:
        return tuple(name for name, spec in self.fields.items() if spec.include)

    @property
    def excluded_fields(self) -> Tuple[str, ...]:
        return tuple(name for name, spec in self.fields.items() if not spec.include)

    def __len__(self) -> int:
        return len(self.fields)

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def to_dict(self) -> Dict[str, Any]:
        """
        Render as plain JSON-compatible data

        Plain fields render as booleans; lazy or pushed fields render as
        {"include": ..., "lazy": true, "pushed": true}. Both shapes are read
        back by to_descriptor(), so the field set and annotations round-trip.
        Metadata is not part of the output.
        """
        return {name: _spec_to_value(spec) for name, spec in self.fields.items()}

    def describe(self) -> Dict[str, Any]:
        """Render fields and metadata, for reports and the CLI"""
        meta = self.metadata
        info: Dict[str, Any] = {"type": meta.type}
        if meta.lazy_loading:
            info["lazy_loading"] = {
                "enabled": meta.lazy_loading.enabled,
                "eager_fields": list(meta.lazy_loading.eager_fields),
                "lazy_fields": list(meta.lazy_loading.lazy_fields),
                "eager_load_limit": meta.lazy_loading.eager_load_limit,
            }
        if meta.pushdown:
            info["pushdown"] = {
                "enabled": meta.pushdown.enabled,
                "pushed_fields": list(meta.pushdown.pushed_fields),
                "residual_fields": list(meta.pushdown.residual_fields),
            }
        if meta.field_selection:
            info["field_selection"] = {
                "flagged": meta.field_selection.flagged,
                "included_count": meta.field_selection.included_count,
                "dropped_exclusions": list(meta.field_selection.dropped_exclusions),
                "pruned_fields": list(meta.field_selection.pruned_fields),
            }
        return {"fields": self.to_dict(), "metadata": info}


def _spec_to_value(spec: FieldSpec) -> Any:
    if not (spec.lazy or spec.pushed):
        if spec.nested is not None:
            return spec.nested.to_dict()
        return spec.include
    value: Dict[str, Any] = {"include": spec.include}
    if spec.nested is not None:
        value["nested"] = spec.nested.to_dict()
    if spec.lazy:
        value["lazy"] = True
    if spec.pushed:
        value["pushed"] = True
    return value


def _descriptor_type(fields: Mapping[str, FieldSpec]) -> str:
    if not fields:
        return "empty"
    included = sum(1 for spec in fields.values() if spec.include)
    if included == len(fields):
        return "inclusion"
    if included == 0:
        return "exclusion"
    return "mixed"


_TOKEN_SPLIT = re.compile(r"[\s,]+")


def to_descriptor(projection: Any) -> Descriptor:
    """
    Normalize a raw projection into a Descriptor

    Accepted inputs:
        - Descriptor (returned unchanged)
        - None (empty descriptor)
        - mapping {field: bool | 0/1 | mapping | FieldSpec | Descriptor}
        - annotated entries as rendered by Descriptor.to_dict()
        - iterable of names; a leading '-' marks an exclusion
        - string of names separated by spaces or commas ("name -password")

    Args:
        projection: Raw projection

    Returns:
        Canonical descriptor

    Raises:
        ValidationError: On cyclic input, excluded-and-nested fields or
            unsupported values
    """
    return _normalize(projection, frozenset())


def _normalize(projection: Any, ancestors: frozenset) -> Descriptor:
    if isinstance(projection, Descriptor):
        return projection

    if projection is None:
        return Descriptor.from_fields({})

    if isinstance(projection, str):
        tokens = [t for t in _TOKEN_SPLIT.split(projection.strip()) if t]
        return _from_names(tokens)

    if isinstance(projection, Mapping):
        if id(projection) in ancestors:
            raise ValidationError("Cyclic projection: a field is nested inside itself")
        scope = ancestors | {id(projection)}
        fields: Dict[str, FieldSpec] = {}
        for name, value in projection.items():
            _check_name(name)
            fields[name] = _to_field_spec(name, value, scope)
        return Descriptor.from_fields(fields)

    if isinstance(projection, (list, tuple, set, frozenset)):
        return _from_names(projection)

    raise ValidationError(f"Unsupported projection type: {type(projection).__name__}")


def _from_names(names: Iterable[Any]) -> Descriptor:
    fields: Dict[str, FieldSpec] = {}
    for raw in names:
        if not isinstance(raw, str):
            raise ValidationError(f"Field names must be strings, got {raw!r}")
        include = not raw.startswith("-")
        name = raw.lstrip("-+")
        _check_name(name)
        fields[name] = FieldSpec(include=include)
    return Descriptor.from_fields(fields)


def _check_name(name: Any) -> None:
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Invalid field name: {name!r}")


def _to_field_spec(name: str, value: Any, ancestors: frozenset) -> FieldSpec:
    if isinstance(value, FieldSpec):
        if value.nested is not None:
            _validate(value.nested, ancestors)
        return value
    if isinstance(value, bool):
        return FieldSpec(include=value)
    if isinstance(value, int):
        if value not in (0, 1):
            raise ValidationError(f"Field '{name}' must be 0 or 1, got {value}")
        return FieldSpec(include=bool(value))
    if isinstance(value, Descriptor):
        _validate(value, ancestors)
        return FieldSpec(include=True, nested=value)
    if isinstance(value, Mapping):
        if not value:
            return FieldSpec(include=True)
        if _is_annotated_spec(value):
            nested = value.get("nested")
            return FieldSpec(
                include=value["include"],
                nested=_normalize(nested, ancestors) if nested is not None else None,
                lazy=bool(value.get("lazy", False)),
                pushed=bool(value.get("pushed", False)),
            )
        return FieldSpec(include=True, nested=_normalize(value, ancestors))
    raise ValidationError(f"Unsupported value for field '{name}': {value!r}")


_ANNOTATION_KEYS = frozenset({"include", "nested", "lazy", "pushed"})


def _is_annotated_spec(value: Mapping) -> bool:
    """Whether a mapping is the {"include": bool, "lazy"/"pushed": true} shape to_dict() emits"""
    if not set(value) <= _ANNOTATION_KEYS:
        return False
    if not isinstance(value.get("include"), bool):
        return False
    return value.get("lazy") is True or value.get("pushed") is True


def validate_descriptor(descriptor: Descriptor) -> Descriptor:
    """
    Reject descriptors the analyzer cannot handle

    Walks every nested descriptor looking for cycles and excluded-and-nested
    fields. Must run before analysis; the analyzer itself does not
    cycle-detect.

    Returns:
        The descriptor, unchanged

    Raises:
        ValidationError: If the descriptor is cyclic or malformed
    """
    _validate(descriptor, frozenset())
    return descriptor


def _validate(descriptor: Descriptor, ancestors: frozenset) -> None:
    if not isinstance(descriptor, Descriptor):
        raise ValidationError(f"Expected a Descriptor, got {type(descriptor).__name__}")
    if id(descriptor) in ancestors:
        raise ValidationError("Cyclic projection: a field is nested inside itself")
    scope = ancestors | {id(descriptor)}
    for name, spec in descriptor.fields.items():
        if not spec.include and spec.nested is not None:
            raise ValidationError(f"Field '{name}' cannot be both excluded and nested")
        if spec.nested is not None:
            _validate(spec.nested, scope)


def transform_descriptor(
    descriptor: Descriptor,
    fn: Callable[[str, FieldSpec], Optional[FieldSpec]],
) -> Descriptor:
    """
    Build a new descriptor by mapping every field spec

    Args:
        descriptor: Source descriptor (left untouched)
        fn: Called with (name, spec); returns the new spec, or None to drop
            the field

    Returns:
        New descriptor carrying the source's annotations
    """
    fields: Dict[str, FieldSpec] = {}
    for name, spec in descriptor.fields.items():
        new_spec = fn(name, spec)
        if new_spec is not None:
            fields[name] = new_spec
    meta = descriptor.metadata
    return Descriptor.from_fields(
        fields,
        lazy_loading=meta.lazy_loading,
        pushdown=meta.pushdown,
        field_selection=meta.field_selection,
    )


def included_field_set(descriptor: Descriptor) -> Set[str]:
    """Names of included top-level fields, as a set"""
    return set(descriptor.included_fields)
