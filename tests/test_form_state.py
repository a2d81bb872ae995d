"""
Tests for the form state engine.
"""

import pytest

from edm_forms.exceptions import UnknownFieldError, ValidationError
from edm_forms.schemas.ui_schema import FieldKind, FieldProps, FieldSchema
from edm_forms.services.form_state import FormState, coerce_values, presence_validator

FIELDS = {
    "Name": FieldSchema(
        key="Name",
        kind=FieldKind.TEXT,
        props=FieldProps(label="Name", required=True, maxLength=5),
    ),
    "Total": FieldSchema(
        key="Total",
        kind=FieldKind.NUMBER,
        props=FieldProps(label="Total", required=True),
    ),
    "Active": FieldSchema(
        key="Active",
        kind=FieldKind.CHECKBOX,
        props=FieldProps(label="Active", required=True),
    ),
    "Notes": FieldSchema(
        key="Notes",
        kind=FieldKind.TEXTAREA,
        props=FieldProps(label="Notes"),
    ),
}


NUMERIC_FIELDS = {
    "Price": FieldSchema(
        key="Price",
        kind=FieldKind.NUMBER,
        props=FieldProps(label="Price", step="0.01"),
    ),
    "Count": FieldSchema(
        key="Count",
        kind=FieldKind.NUMBER,
        props=FieldProps(label="Count", step="1"),
    ),
    "OwnerId": FieldSchema(
        key="OwnerId",
        kind=FieldKind.SELECT,
        props=FieldProps(label="Owner", step="1", options=[]),
    ),
    "Code": FieldSchema(
        key="Code",
        kind=FieldKind.SELECT,
        props=FieldProps(label="Code", options=[]),
    ),
    "Active": FieldSchema(
        key="Active",
        kind=FieldKind.CHECKBOX,
        props=FieldProps(label="Active"),
    ),
    "Notes": FieldSchema(
        key="Notes",
        kind=FieldKind.TEXTAREA,
        props=FieldProps(label="Notes"),
    ),
}


def make_state(**values) -> FormState:
    initial = {"Name": "", "Total": 0, "Active": False, "Notes": None}
    initial.update(values)
    return FormState(initial, FIELDS, presence_validator(FIELDS))


class TestPresenceValidator:
    """Tests for presence_validator."""

    def test_required_blank(self):
        errors = presence_validator(FIELDS)({"Name": "  ", "Total": None, "Active": False})
        assert errors == {"Name": "Name is required", "Total": "Total is required"}

    def test_max_length_and_number(self):
        errors = presence_validator(FIELDS)({"Name": "Too long", "Total": "abc"})
        assert errors == {
            "Name": "Name must be at most 5 characters",
            "Total": "Total must be a number",
        }

    def test_valid_values(self):
        assert presence_validator(FIELDS)({"Name": "Ada", "Total": "12.5", "Active": False}) == {}

    def test_non_finite_numbers(self):
        validate = presence_validator(NUMERIC_FIELDS)
        assert validate({"Price": "nan"}) == {"Price": "Price must be a finite number"}
        assert validate({"Price": "inf"}) == {"Price": "Price must be a finite number"}

    def test_whole_numbers(self):
        validate = presence_validator(NUMERIC_FIELDS)
        assert validate({"Count": "2.5", "OwnerId": "x"}) == {
            "Count": "Count must be a whole number",
            "OwnerId": "Owner must be a number",
        }
        assert validate({"Count": "3.0", "OwnerId": "1", "Code": "WH-1"}) == {}


class TestCoerceValues:
    """Tests for coerce_values."""

    def test_numbers_by_step(self):
        coerced = coerce_values(
            NUMERIC_FIELDS, {"Price": "12.50", "Count": "3", "OwnerId": "1"}
        )
        assert coerced == {"Price": 12.5, "Count": 3, "OwnerId": 1}
        assert isinstance(coerced["Count"], int)
        assert isinstance(coerced["Price"], float)

    def test_checkboxes(self):
        assert coerce_values(NUMERIC_FIELDS, {"Active": "true"}) == {"Active": True}
        assert coerce_values(NUMERIC_FIELDS, {"Active": "off"}) == {"Active": False}
        assert coerce_values(NUMERIC_FIELDS, {"Active": None}) == {"Active": False}

    def test_blank_values_become_none(self):
        coerced = coerce_values(NUMERIC_FIELDS, {"Price": "", "Notes": "  ", "Code": ""})
        assert coerced == {"Price": None, "Notes": None, "Code": None}

    def test_other_values_unchanged(self):
        coerced = coerce_values(NUMERIC_FIELDS, {"Code": "WH-1", "Notes": "x", "Extra": "1"})
        assert coerced == {"Code": "WH-1", "Notes": "x", "Extra": "1"}


class TestFormState:
    """Tests for FormState."""

    def test_initial_values(self):
        state = make_state(Name="Ada")
        assert state.values == {"Name": "Ada", "Total": 0, "Active": False, "Notes": None}
        assert state.errors == {}

    def test_undeclared_initial_values_dropped(self):
        state = FormState({"Name": "Ada", "Id": 4}, FIELDS)
        assert "Id" not in state.values
        assert state.values["Active"] is False
        assert state.values["Total"] == 0

    def test_set_value_clears_error(self):
        state = make_state()
        state.set_error("Name", "Name is required")

        state.set_value("Name", "Ada")
        assert state.get_value("Name") == "Ada"
        assert not state.has_error("Name")

    def test_unknown_key(self):
        state = make_state()
        with pytest.raises(UnknownFieldError):
            state.set_value("Nope", 1)
        with pytest.raises(UnknownFieldError):
            state.set_values({"Name": "Ada", "Nope": 1})
        assert state.get_value("Name") == ""

    def test_set_values_merges(self):
        state = make_state(Name="Ada")
        state.set_error("Total", "Total is required")

        state.patch_values({"Total": 3})
        assert state.values["Name"] == "Ada"
        assert state.values["Total"] == 3
        assert state.get_error("Total") is None

    def test_reset_values(self):
        state = make_state(Name="Ada")
        state.set_value("Name", "Grace")
        state.set_error("Total", "bad")

        state.reset_values()
        assert state.values["Name"] == "Ada"
        assert state.errors == {}

        state.reset_values()
        assert state.values == state.initial_values

    def test_reset_with_new_values(self):
        state = make_state(Name="Ada")
        state.reset_values({"Name": "Grace", "Stray": 1})

        assert state.values == {"Name": "Grace", "Total": 0, "Active": False, "Notes": None}

    def test_error_helpers(self):
        state = make_state()
        state.set_error("Name", "Taken")
        state.set_error("Total", "Too high")

        assert state.has_error("Name")
        assert state.get_error("Name") == "Taken"
        state.clear_error("Name")
        assert not state.has_error("Name")
        state.clear_all_errors()
        assert state.errors == {}

    def test_validate_fields(self):
        state = make_state()
        assert state.validate_fields() is False
        assert set(state.errors) == {"Name"}

        state.set_value("Name", "Ada")
        assert state.validate_fields() is True
        assert state.errors == {}

    def test_values_are_copies(self):
        state = make_state()
        state.values["Name"] = "changed"
        assert state.get_value("Name") == ""

    def test_without_schema(self):
        """Test a free-form state without declared fields."""
        state = FormState({"a": 1})
        state.set_value("b", 2)

        assert state.values == {"a": 1, "b": 2}
        assert state.validate_fields() is True


class TestSubmit:
    """Tests for FormState.submit."""

    @pytest.mark.asyncio
    async def test_invalid_form_not_submitted(self):
        state = make_state()
        calls = []

        result = await state.submit(lambda values: calls.append(values))
        assert result is None
        assert calls == []
        assert state.has_error("Name")

    @pytest.mark.asyncio
    async def test_async_action(self):
        state = make_state(Name="Ada", Total=2)

        async def save(values):
            return {"Id": 1, **values}

        result = await state.submit(save)
        assert result["Id"] == 1
        assert result["Name"] == "Ada"

    @pytest.mark.asyncio
    async def test_sync_action(self):
        state = make_state(Name="Ada")
        assert await state.submit(lambda values: "saved") == "saved"

    @pytest.mark.asyncio
    async def test_server_errors_applied(self):
        state = make_state(Name="Ada")

        async def save(values):
            raise ValidationError({"Name": "Name already exists"})

        assert await state.submit(save) is None
        assert state.get_error("Name") == "Name already exists"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        state = make_state(Name="Ada")

        async def save(values):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await state.submit(save)
