"""
Tests for the projection descriptor model
"""

import pytest

from projopt.core.descriptor import (
    Descriptor,
    FieldSelectionInfo,
    FieldSpec,
    LazyLoadingInfo,
    included_field_set,
    to_descriptor,
    transform_descriptor,
    validate_descriptor,
)
from projopt.core.errors import ValidationError


class TestToDescriptor:
    """Test normalization of raw projections"""

    def test_mapping_inclusion(self):
        """Test a mapping with only included fields"""
        d = to_descriptor({"id": 1, "name": True})

        assert d.metadata.type == "inclusion"
        assert d.included_fields == ("id", "name")
        assert d.excluded_fields == ()

    def test_mapping_exclusion(self):
        """Test a mapping with only excluded fields"""
        d = to_descriptor({"password": 0, "token": False})

        assert d.metadata.type == "exclusion"
        assert d.excluded_fields == ("password", "token")

    def test_mapping_mixed(self):
        """Test a mapping with both kinds"""
        d = to_descriptor({"name": 1, "password": 0})
        assert d.metadata.type == "mixed"

    def test_empty_inputs(self):
        """Test None and empty mapping give the empty descriptor"""
        assert to_descriptor(None).metadata.type == "empty"
        assert to_descriptor({}).metadata.type == "empty"
        assert len(to_descriptor([])) == 0

    def test_list_of_names(self):
        """Test a list of names, with '-' marking exclusions"""
        d = to_descriptor(["id", "name", "-password"])

        assert d.included_fields == ("id", "name")
        assert d.excluded_fields == ("password",)

    def test_string_of_names(self):
        """Test space and comma separated names"""
        d = to_descriptor("id, name -password")

        assert d.included_fields == ("id", "name")
        assert d.excluded_fields == ("password",)

    def test_nested_mapping(self):
        """Test nested sub-projections become nested descriptors"""
        d = to_descriptor({"id": 1, "address": {"city": 1, "zip": 1}})
        spec = d.fields["address"]

        assert spec.include is True
        assert isinstance(spec.nested, Descriptor)
        assert spec.nested.included_fields == ("city", "zip")

    def test_empty_nested_mapping_means_include(self):
        """Test {} as a field value includes the whole field"""
        d = to_descriptor({"address": {}})
        assert d.fields["address"] == FieldSpec(include=True)

    def test_descriptor_passes_through(self):
        """Test normalization is idempotent"""
        d = to_descriptor({"id": 1})
        assert to_descriptor(d) is d

    def test_invalid_int_value(self):
        """Test integers other than 0 and 1 are rejected"""
        with pytest.raises(ValidationError, match="must be 0 or 1"):
            to_descriptor({"id": 2})

    def test_non_string_name(self):
        """Test list entries must be strings"""
        with pytest.raises(ValidationError):
            to_descriptor(["id", 3])

    def test_empty_name(self):
        """Test empty field names are rejected"""
        with pytest.raises(ValidationError):
            to_descriptor({"": 1})

    def test_unsupported_type(self):
        """Test unsupported projection types are rejected"""
        with pytest.raises(ValidationError, match="Unsupported projection type"):
            to_descriptor(42)

    def test_unsupported_value(self):
        """Test unsupported field values are rejected"""
        with pytest.raises(ValidationError):
            to_descriptor({"id": "yes"})

    def test_cyclic_projection(self):
        """Test a projection nested inside itself is rejected"""
        projection = {"id": 1}
        projection["self"] = projection

        with pytest.raises(ValidationError, match="Cyclic"):
            to_descriptor(projection)

    def test_shared_subprojection_is_not_a_cycle(self):
        """Test the same sub-mapping under two fields is fine"""
        shared = {"city": 1}
        d = to_descriptor({"home": shared, "work": shared})
        assert set(d.fields) == {"home", "work"}


class TestFieldSpec:
    """Test FieldSpec invariants"""

    def test_excluded_and_nested_rejected(self):
        """Test a field cannot be excluded and nested"""
        with pytest.raises(ValidationError):
            FieldSpec(include=False, nested=to_descriptor({"a": 1}))

    def test_defaults(self):
        """Test default spec is a plain inclusion"""
        spec = FieldSpec()
        assert spec.include and not spec.lazy and not spec.pushed
        assert spec.nested is None


class TestDescriptor:
    """Test Descriptor helpers"""

    def test_len_and_contains(self):
        """Test container protocol"""
        d = to_descriptor(["id", "name"])

        assert len(d) == 2
        assert "id" in d
        assert "email" not in d

    def test_equality_ignores_order(self):
        """Test field order does not matter for equality"""
        assert to_descriptor(["a", "b"]) == to_descriptor(["b", "a"])

    def test_to_dict_round_trip(self):
        """Test plain descriptors round-trip through to_dict"""
        d = to_descriptor({"id": 1, "secret": 0, "address": {"city": 1}})

        assert d.to_dict() == {"id": True, "secret": False, "address": {"city": True}}
        assert to_descriptor(d.to_dict()) == d

    def test_to_dict_annotated_fields(self):
        """Test lazy and pushed fields render as mappings"""
        d = Descriptor.from_fields(
            {
                "id": FieldSpec(pushed=True),
                "bio": FieldSpec(lazy=True, original=FieldSpec()),
            }
        )

        assert d.to_dict() == {
            "id": {"include": True, "pushed": True},
            "bio": {"include": True, "lazy": True},
        }

    def test_annotated_fields_read_back(self):
        """Test pushed exclusions stay excluded and flags survive to_dict"""
        d = Descriptor.from_fields(
            {
                "id": FieldSpec(pushed=True),
                "secret": FieldSpec(include=False, pushed=True),
                "bio": FieldSpec(lazy=True),
                "address": FieldSpec(pushed=True, nested=to_descriptor({"city": 1})),
            }
        )

        restored = to_descriptor(d.to_dict())

        assert restored == d
        assert restored.excluded_fields == ("secret",)
        assert restored.metadata.type == "mixed"

    def test_include_key_without_flags_is_a_projection(self):
        """Test a nested field named include is still a sub-projection"""
        d = to_descriptor({"options": {"include": True, "color": True}})

        assert d.fields["options"].nested is not None
        assert set(d.fields["options"].nested.fields) == {"include", "color"}

    def test_with_metadata(self):
        """Test annotations are replaced on a copy"""
        d = to_descriptor(["id"])
        info = FieldSelectionInfo(flagged=True, included_count=1)

        annotated = d.with_metadata(field_selection=info)

        assert annotated.metadata.field_selection == info
        assert annotated.metadata.type == "inclusion"
        assert d.metadata.field_selection is None

    def test_describe(self):
        """Test describe renders fields and annotations"""
        d = to_descriptor(["id", "bio"]).with_metadata(
            lazy_loading=LazyLoadingInfo(
                enabled=True, eager_fields=("id",), lazy_fields=("bio",), eager_load_limit=1
            )
        )

        info = d.describe()

        assert info["fields"] == {"id": True, "bio": True}
        assert info["metadata"]["type"] == "inclusion"
        assert info["metadata"]["lazy_loading"]["lazy_fields"] == ["bio"]


class TestTransformDescriptor:
    """Test building descriptors from existing ones"""

    def test_drop_fields(self):
        """Test returning None drops a field"""
        d = to_descriptor(["id", "name", "-password"])

        result = transform_descriptor(d, lambda name, spec: None if not spec.include else spec)

        assert set(result.fields) == {"id", "name"}
        assert result.metadata.type == "inclusion"
        # Source untouched
        assert "password" in d

    def test_keeps_annotations(self):
        """Test existing metadata annotations are carried over"""
        info = FieldSelectionInfo(flagged=True, included_count=2)
        d = to_descriptor(["id", "name"]).with_metadata(field_selection=info)

        result = transform_descriptor(d, lambda name, spec: FieldSpec(pushed=True))

        assert result.metadata.field_selection == info
        assert all(spec.pushed for spec in result.fields.values())

    def test_included_field_set(self):
        """Test included names as a set"""
        assert included_field_set(to_descriptor("a b -c")) == {"a", "b"}


class TestValidateDescriptor:
    """Test descriptor validation"""

    def test_valid_descriptor_returned(self):
        """Test a valid descriptor is returned unchanged"""
        d = to_descriptor({"a": {"b": {"c": 1}}})
        assert validate_descriptor(d) is d

    def test_rejects_non_descriptor_nested(self):
        """Test malformed nested values are rejected"""
        d = Descriptor(fields={"a": FieldSpec(nested={"b": 1})})

        with pytest.raises(ValidationError, match="Expected a Descriptor"):
            validate_descriptor(d)
