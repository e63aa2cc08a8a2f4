from __future__ import annotations

from typing import Any, Mapping

from .codec import RowCodec
from .errors import ValidationError

ROW_KEY_COLUMN = "row_key"
KEY_SEPARATOR = ":"


class IdentityScheme:
    """Maps a (student, month, year) triple onto the store's row identity.

    A scheme is chosen once per store and used for every search, insert and
    update of ledger rows.
    """

    name = ""
    extra_columns: list[str] = []
    needs_composite_writes = False

    def ledger_match(self, student_id: str, month: int, year: int) -> dict[str, str]:
        raise NotImplementedError

    def ledger_fields(self, student_id: str, month: int, year: int) -> dict[str, str]:
        """Identity columns written on insert."""

        raise NotImplementedError

    def key_of(self, row: Mapping[str, Any]) -> str:
        raise NotImplementedError

    @staticmethod
    def profile_match(student_id: str) -> dict[str, str]:
        return {"id": str(student_id)}


class CompositeMatchScheme(IdentityScheme):
    name = "composite"
    needs_composite_writes = True

    def ledger_match(self, student_id: str, month: int, year: int) -> dict[str, str]:
        return {
            "id": str(student_id),
            "month": RowCodec.encode_int(month),
            "year": RowCodec.encode_int(year),
        }

    def ledger_fields(self, student_id: str, month: int, year: int) -> dict[str, str]:
        return self.ledger_match(student_id, month, year)

    def key_of(self, row: Mapping[str, Any]) -> str:
        # No stored key; the display key is derived from the triple itself.
        month = RowCodec.decode_int(row.get("month"), "month")
        year = RowCodec.decode_int(row.get("year"), "year")
        if month is None or year is None:
            return ""
        return make_key(str(row.get("id", "")), month, year)


class DerivedKeyScheme(IdentityScheme):
    name = "derived_key"
    extra_columns = [ROW_KEY_COLUMN]

    def ledger_match(self, student_id: str, month: int, year: int) -> dict[str, str]:
        return {ROW_KEY_COLUMN: make_key(student_id, month, year)}

    def ledger_fields(self, student_id: str, month: int, year: int) -> dict[str, str]:
        return {
            "id": str(student_id),
            "month": RowCodec.encode_int(month),
            "year": RowCodec.encode_int(year),
            ROW_KEY_COLUMN: make_key(student_id, month, year),
        }

    def key_of(self, row: Mapping[str, Any]) -> str:
        return str(row.get(ROW_KEY_COLUMN, "") or "")


def make_key(student_id: str, month: int, year: int) -> str:
    student_id = str(student_id)
    if not student_id:
        raise ValidationError("Student id is required to build a row key")
    return f"{student_id}{KEY_SEPARATOR}{int(year):04d}{KEY_SEPARATOR}{int(month):02d}"


def parse_key(key: str) -> tuple[str, int, int]:
    """Inverse of :func:`make_key`: returns ``(student_id, month, year)``."""

    # Split from the right so student ids may themselves contain the separator.
    parts = str(key).rsplit(KEY_SEPARATOR, 2)
    if len(parts) != 3 or not parts[0]:
        raise ValidationError(f"Not a ledger row key: {key!r}")
    student_id, year, month = parts
    try:
        return student_id, int(month), int(year)
    except ValueError:
        raise ValidationError(f"Not a ledger row key: {key!r}") from None


SCHEMES: dict[str, type[IdentityScheme]] = {
    CompositeMatchScheme.name: CompositeMatchScheme,
    DerivedKeyScheme.name: DerivedKeyScheme,
}


def scheme_for(name: str) -> IdentityScheme:
    try:
        return SCHEMES[name]()
    except KeyError:
        raise ValueError(f"Unknown identity scheme: {name!r}") from None
