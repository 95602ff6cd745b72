"""Accessor for plain scalar fields."""

from tablemirror.base.accessor import FieldAccessor, FieldPath


class PlainTextAccessor(FieldAccessor):
    """Direct scalar read of a payload field.

    Used for text, number, email, phone and every field type without a
    dedicated accessor.

    Examples:
        >>> PlainTextAccessor().extract_sql(FieldPath("title"))
        'json_extract(payload, \\'$."title"\\')'
    """

    @property
    def strategy(self) -> str:
        return "plain_text"

    def extract_sql(self, path: FieldPath) -> str:
        return self.raw_sql(path)
