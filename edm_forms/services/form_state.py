"""
Form state engine.

Holds the current values and validation errors of one form instance,
independent of how the form is rendered.
"""

import inspect
import logging
import math
from typing import Any, Callable, Mapping

from edm_forms.exceptions import UnknownFieldError, ValidationError
from edm_forms.schemas.ui_schema import FieldKind, FieldSchema
from edm_forms.utils.edm_mapping import get_default_value

logger = logging.getLogger(__name__)

Validator = Callable[[Mapping[str, Any]], Mapping[str, str]]
SubmitAction = Callable[[dict[str, Any]], Any]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_numeric(schema: FieldSchema) -> bool:
    if schema.kind is FieldKind.NUMBER:
        return True
    return schema.kind is FieldKind.SELECT and schema.props.step is not None


def _number_error(schema: FieldSchema, value: Any) -> str | None:
    label = schema.props.label
    try:
        number = float(value)
    except (TypeError, ValueError):
        return f"{label} must be a number"
    if not math.isfinite(number):
        return f"{label} must be a finite number"
    if schema.props.step == "1" and not number.is_integer():
        return f"{label} must be a whole number"
    return None


def presence_validator(fields: Mapping[str, FieldSchema]) -> Validator:
    """
    Build a validator checking presence and basic type coercion.

    Required fields must be non-blank, strings must respect ``maxLength``
    and number fields must hold a finite number (a whole one when the
    field steps by 1).
    """

    def validate(values: Mapping[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        for key, schema in fields.items():
            value = values.get(key)
            props = schema.props
            if _is_blank(value):
                if props.required and schema.kind is not FieldKind.CHECKBOX:
                    errors[key] = f"{props.label} is required"
                continue
            if _is_numeric(schema) and not isinstance(value, bool):
                error = _number_error(schema, value)
                if error:
                    errors[key] = error
                    continue
            if props.maxLength is not None and isinstance(value, str) and len(value) > props.maxLength:
                errors[key] = f"{props.label} must be at most {props.maxLength} characters"
        return errors

    return validate


def coerce_value(schema: FieldSchema, value: Any) -> Any:
    """
    Coerce a validated form value to the type the service expects.

    Blank values become None, numbers become int or float depending on the
    field's step and checkboxes become bool.
    """
    if schema.kind is FieldKind.CHECKBOX:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)
    if _is_blank(value):
        return None
    if _is_numeric(schema) and not isinstance(value, bool):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return value
        if schema.props.step == "1" and number.is_integer():
            return int(number)
        return number
    return value


def coerce_values(fields: Mapping[str, FieldSchema], values: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce every declared value; undeclared keys pass through unchanged."""
    return {
        key: coerce_value(fields[key], value) if key in fields else value
        for key, value in values.items()
    }


class FormState:
    """
    Values and errors of one form instance.

    When a field map is given, keys are checked against it: unknown keys
    raise UnknownFieldError and ``reset_values`` reconciles the value map
    with the declared fields.
    """

    def __init__(
        self,
        initial_values: Mapping[str, Any] | None = None,
        fields: Mapping[str, FieldSchema] | None = None,
        validator: Validator | None = None,
    ):
        self.fields = dict(fields) if fields is not None else None
        self.validator = validator
        self._initial = self._reconcile(dict(initial_values or {}))
        self._values: dict[str, Any] = dict(self._initial)
        self._errors: dict[str, str] = {}

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    @property
    def errors(self) -> dict[str, str]:
        return dict(self._errors)

    @property
    def initial_values(self) -> dict[str, Any]:
        return dict(self._initial)

    def _check_key(self, key: str) -> None:
        if self.fields is not None and key not in self.fields:
            raise UnknownFieldError(key)

    def _reconcile(
        self, values: dict[str, Any], fallback: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Drop undeclared keys and fill missing declared ones."""
        if self.fields is None:
            return values
        reconciled: dict[str, Any] = {}
        for key, schema in self.fields.items():
            if key in values:
                reconciled[key] = values[key]
            elif fallback and key in fallback:
                reconciled[key] = fallback[key]
            else:
                reconciled[key] = get_default_value(schema.kind)
        dropped = set(values) - set(reconciled)
        if dropped:
            logger.debug("Dropping undeclared form values: %s", sorted(dropped))
        return reconciled

    def set_value(self, key: str, value: Any) -> None:
        self._check_key(key)
        self._values[key] = value
        self._errors.pop(key, None)

    def set_values(self, values: Mapping[str, Any]) -> None:
        for key in values:
            self._check_key(key)
        self._values.update(values)
        for key in values:
            self._errors.pop(key, None)

    patch_values = set_values

    def reset_values(self, values: Mapping[str, Any] | None = None) -> None:
        """Restore the supplied values, or the initial ones, and clear all errors."""
        if values is None:
            self._values = dict(self._initial)
        else:
            self._values = self._reconcile(dict(values), self._initial)
        self._errors = {}

    def get_value(self, key: str) -> Any:
        self._check_key(key)
        return self._values.get(key)

    def set_error(self, key: str, message: str) -> None:
        self._errors[key] = message

    def clear_error(self, key: str) -> None:
        self._errors.pop(key, None)

    def clear_all_errors(self) -> None:
        self._errors = {}

    def has_error(self, key: str) -> bool:
        return bool(self._errors.get(key))

    def get_error(self, key: str) -> str | None:
        return self._errors.get(key)

    def apply_errors(self, errors: Mapping[str, str]) -> None:
        """Set several errors at once, e.g. from a ValidationError."""
        for key, message in errors.items():
            self.set_error(key, message)

    def validate_fields(self) -> bool:
        """Replace the error map with the validator's result."""
        if self.validator is None:
            self._errors = {}
            return True
        self._errors = dict(self.validator(self.values))
        return not self._errors

    async def submit(self, action: SubmitAction) -> Any:
        """
        Validate and hand the values to ``action``.

        Invalid forms are not submitted and nothing is raised. A
        ValidationError raised by the action is mapped onto the form.

        Returns:
            The action's result, or None if nothing was submitted
        """
        if not self.validate_fields():
            logger.debug("Form has validation errors: %s", sorted(self._errors))
            return None

        try:
            result = action(self.values)
            if inspect.isawaitable(result):
                result = await result
        except ValidationError as e:
            self.apply_errors(e.errors)
            return None
        return result
