"""Operator / field-type compatibility checks.

A comparison that makes no sense for a field's type (``contains`` on a
number field, ``is`` on a multi-select) usually means the caller picked the
wrong operator. These checks produce a readable diagnostic, with a suggested
operator where one is obvious. By default they only warn.
"""

import logging
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


class OperatorMismatchError(ValueError):
    """Raised in strict mode when an operator does not fit a field type."""

    pass


TEXT_OPERATORS = frozenset(
    ["is", "is_not", "is_empty", "is_not_empty", "contains", "not_contains", "does_not_contain"]
)
NUMERIC_NO_EMPTY_OPERATORS = frozenset(
    [
        "is",
        "is_not",
        "is_equal_to",
        "is_not_equal_to",
        "is_greater_than",
        "is_less_than",
        "is_equal_or_greater_than",
        "is_equal_or_less_than",
    ]
)
NUMERIC_OPERATORS = NUMERIC_NO_EMPTY_OPERATORS | {"is_empty", "is_not_empty"}
DATE_OPERATORS = frozenset(
    [
        "is",
        "is_not",
        "is_before",
        "is_after",
        "is_on_or_before",
        "is_on_or_after",
        "is_empty",
        "is_not_empty",
    ]
)
DUE_DATE_OPERATORS = DATE_OPERATORS | {"is_overdue", "is_not_overdue"}
SINGLE_SELECT_OPERATORS = frozenset(
    ["is", "is_not", "is_any_of", "is_none_of", "is_empty", "is_not_empty"]
)
MULTIPLE_SELECT_OPERATORS = frozenset(
    ["has_any_of", "has_all_of", "is_exactly", "has_none_of", "is_empty", "is_not_empty"]
)
LINKED_RECORD_OPERATORS = MULTIPLE_SELECT_OPERATORS | {"contains", "not_contains"}
USER_OPERATORS = MULTIPLE_SELECT_OPERATORS
FILE_OPERATORS = frozenset(["file_name_contains", "file_type_is", "is_empty", "is_not_empty"])
YESNO_OPERATORS = frozenset(["is"])

TEXT_FIELD_TYPES = (
    "textfield",
    "textareafield",
    "richtextareafield",
    "emailfield",
    "phonefield",
    "linkfield",
    "fullnamefield",
    "addressfield",
    "smartdocfield",
)
NUMERIC_FIELD_TYPES = (
    "numberfield",
    "currencyfield",
    "ratingfield",
    "percentfield",
    "durationfield",
    "votefield",
)
AUTO_NUMBER_FIELD_TYPES = ("autonumberfield",)
DATE_FIELD_TYPES = ("datefield", "daterangefield", "firstcreatedfield", "lastupdatedfield")
DUE_DATE_FIELD_TYPES = ("duedatefield",)
SINGLE_SELECT_FIELD_TYPES = ("singleselectfield", "statusfield")
MULTIPLE_SELECT_FIELD_TYPES = ("multipleselectfield", "tagsfield")
LINKED_RECORD_FIELD_TYPES = ("linkedrecordfield", "subitemsfield")
USER_FIELD_TYPES = ("userfield", "assignedtofield", "createdbyfield")
FILE_FIELD_TYPES = ("filefield", "imagefield", "signaturefield")
YESNO_FIELD_TYPES = ("yesnofield", "checkboxfield")
# Formula-like fields take their operators from a return type we do not know
FORMULA_FIELD_TYPES = ("formulafield", "lookupfield", "rollupfield", "countfield")


def _build_operator_map() -> Dict[str, FrozenSet[str]]:
    groups = [
        (TEXT_FIELD_TYPES, TEXT_OPERATORS),
        (NUMERIC_FIELD_TYPES, NUMERIC_OPERATORS),
        (AUTO_NUMBER_FIELD_TYPES, NUMERIC_NO_EMPTY_OPERATORS),
        (DUE_DATE_FIELD_TYPES, DUE_DATE_OPERATORS),
        (DATE_FIELD_TYPES, DATE_OPERATORS),
        (SINGLE_SELECT_FIELD_TYPES, SINGLE_SELECT_OPERATORS),
        (MULTIPLE_SELECT_FIELD_TYPES, MULTIPLE_SELECT_OPERATORS),
        (LINKED_RECORD_FIELD_TYPES, LINKED_RECORD_OPERATORS),
        (USER_FIELD_TYPES, USER_OPERATORS),
        (FILE_FIELD_TYPES, FILE_OPERATORS),
        (YESNO_FIELD_TYPES, YESNO_OPERATORS),
    ]
    mapping = {}
    for field_types, operators in groups:
        for field_type in field_types:
            mapping[field_type] = operators
    return mapping


OPERATORS_BY_FIELD_TYPE = _build_operator_map()


def operators_for_field_type(field_type: Optional[str]) -> Optional[FrozenSet[str]]:
    """Valid operators for a field type, or None if the type is not checked."""
    if not field_type:
        return None
    return OPERATORS_BY_FIELD_TYPE.get(field_type.lower())


def is_valid_operator(operator: str, field_type: Optional[str]) -> bool:
    """Check an operator against a field type (unknown types always pass)."""
    valid = operators_for_field_type(field_type)
    if valid is None:
        return True
    return str(operator).lower() in valid


def suggest_operator(operator: str, field_type: Optional[str]) -> Optional[str]:
    """Suggest the operator the caller most likely meant.

    Examples:
        >>> suggest_operator("is", "multipleselectfield")
        'has_any_of'
        >>> suggest_operator("contains", "numberfield")
        'is_equal_to'
    """
    field_type = (field_type or "").lower()
    operator = str(operator).lower()

    if field_type in MULTIPLE_SELECT_FIELD_TYPES and operator in ("is", "is_any_of"):
        return "has_any_of"
    if field_type in SINGLE_SELECT_FIELD_TYPES:
        if operator == "has_any_of":
            return "is_any_of"
        if operator == "contains":
            return "is"
    if field_type in USER_FIELD_TYPES + LINKED_RECORD_FIELD_TYPES and operator == "is":
        return "has_any_of"
    if field_type in TEXT_FIELD_TYPES and operator in (
        "is_equal_to",
        "is_greater_than",
        "is_less_than",
    ):
        return "is"
    if field_type in NUMERIC_FIELD_TYPES and operator == "contains":
        return "is_equal_to"
    return None


def check_operator(
    field: str, operator: str, field_type: Optional[str], strict: bool = False
) -> Optional[str]:
    """Check one field/operator pair.

    Args:
        field: Field slug (for the message)
        operator: Comparison name
        field_type: Declared field type, or None if unknown
        strict: Raise instead of returning a warning

    Returns:
        Warning message if the pair is invalid, otherwise None

    Raises:
        OperatorMismatchError: If strict and the pair is invalid
    """
    valid = operators_for_field_type(field_type)
    if valid is None or str(operator).lower() in valid:
        return None

    suggestion = suggest_operator(operator, field_type)
    message = (
        f"Invalid operator '{operator}' for field '{field}' ({field_type}). "
        f"Valid operators: {', '.join(sorted(valid))}."
    )
    if suggestion:
        message += f" Did you mean '{suggestion}'?"

    if strict:
        raise OperatorMismatchError(message)
    logger.warning(message)
    return message
