# tests/test_type_mapping.py
"""Tests for the type mapping table and value codec."""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from autocrud.models.database import BackendKind
from autocrud.models.types import EnumRef, Kind, ValueKind, INT32, TEXT, UUID
from autocrud.services.type_mapping import TypeMappingTable, normalize_type_name, sqlite_numeric_text
from autocrud.utils.exceptions import CodecError, InvalidFormatError, OutOfRangeError


class TestResolve:
    """Native type resolution tests."""

    def setup_method(self):
        """Set up test fixtures."""
        self.table = TypeMappingTable()

    def test_postgres_scalars(self):
        """Test common PostgreSQL types."""
        pg = BackendKind.POSTGRES
        assert self.table.resolve("uuid", pg).kind == Kind.UUID
        assert self.table.resolve("text", pg).kind == Kind.TEXT
        assert self.table.resolve("integer", pg).kind == Kind.INT32
        assert self.table.resolve("int4", pg).kind == Kind.INT32
        assert self.table.resolve("numeric", pg).kind == Kind.DECIMAL_TEXT
        assert self.table.resolve("timestamp with time zone", pg).kind == Kind.TIMESTAMP_TZ
        assert self.table.resolve("timestamp without time zone", pg).kind == Kind.TIMESTAMP_NAIVE
        assert self.table.resolve("jsonb", pg).kind == Kind.JSON

    def test_parameterized_names(self):
        """Test that length and precision arguments are ignored."""
        assert self.table.resolve("character varying(255)", BackendKind.POSTGRES).kind == Kind.TEXT
        assert self.table.resolve("NUMERIC(10, 2)", BackendKind.POSTGRES).kind == Kind.DECIMAL_TEXT
        assert self.table.resolve("VARCHAR(32)", BackendKind.MYSQL).kind == Kind.TEXT

    def test_array_notations(self):
        """Test the three PostgreSQL array spellings."""
        pg = BackendKind.POSTGRES
        assert self.table.resolve("integer[]", pg) == ValueKind.array(INT32)
        assert self.table.resolve("_int4", pg) == ValueKind.array(INT32)
        assert self.table.resolve("ARRAY", pg, udt_name="_text") == ValueKind.array(TEXT)

    def test_user_defined_resolves_udt(self):
        """Test USER-DEFINED columns resolve through their udt name."""
        assert self.table.resolve("USER-DEFINED", BackendKind.POSTGRES, udt_name="citext") == TEXT

    def test_unknown_type_is_unsupported(self):
        """Test unknown types resolve instead of raising."""
        kind = self.table.resolve("tsvector", BackendKind.POSTGRES)
        assert kind.kind == Kind.UNSUPPORTED
        assert kind.native == "tsvector"
        assert not kind.is_supported

    def test_array_of_unknown_is_unsupported(self):
        """Test arrays of unknown element types are not writable."""
        kind = self.table.resolve("_tsvector", BackendKind.POSTGRES)
        assert kind.kind == Kind.ARRAY
        assert not kind.is_supported

    def test_mysql_tinyint_one_is_bool(self):
        """Test MySQL's boolean spelling."""
        assert self.table.resolve("tinyint(1)", BackendKind.MYSQL).kind == Kind.BOOL
        assert self.table.resolve("tinyint", BackendKind.MYSQL).kind == Kind.INT16

    @pytest.mark.parametrize("native,expected", [
        ("tinyint unsigned", Kind.INT16),
        ("smallint unsigned", Kind.INT32),
        ("mediumint unsigned", Kind.INT32),
        ("int unsigned", Kind.INT64),
        ("INT(10) UNSIGNED ZEROFILL", Kind.INT64),
        ("bigint unsigned", Kind.DECIMAL_TEXT),
    ])
    def test_mysql_unsigned_widening(self, native, expected):
        """Test unsigned integers widen to a kind holding their full range."""
        assert self.table.resolve(native, BackendKind.MYSQL).kind == expected

    @pytest.mark.parametrize("native,expected", [
        ("INTEGER", Kind.INT64),
        ("INT4", Kind.INT32),
        ("VARCHAR(20)", Kind.TEXT),
        ("CLOB", Kind.TEXT),
        ("BLOB", Kind.BYTES),
        ("DOUBLE PRECISION", Kind.FLOAT64),
        ("UUID", Kind.UUID),
        ("NUMERIC", Kind.DECIMAL_TEXT),
    ])
    def test_sqlite_affinity(self, native, expected):
        """Test SQLite declared types and affinity fallbacks."""
        assert self.table.resolve(native, BackendKind.SQLITE).kind == expected

    def test_sqlite_empty_declaration_is_unsupported(self):
        """Test columns without a declared type."""
        assert self.table.resolve("", BackendKind.SQLITE).kind == Kind.UNSUPPORTED

    def test_overrides(self):
        """Test extra mappings supplied at construction."""
        table = TypeMappingTable(overrides={BackendKind.POSTGRES: {"ltree": TEXT}})
        assert table.resolve("ltree", BackendKind.POSTGRES) == TEXT

    def test_normalize_type_name(self):
        """Test type name normalization."""
        assert normalize_type_name("  Character Varying(10) ") == "character varying"
        assert normalize_type_name("int(11) unsigned zerofill") == "int unsigned"


class TestToPortable:
    """Client value validation tests."""

    def setup_method(self):
        """Set up test fixtures."""
        self.table = TypeMappingTable()

    def test_int_range(self):
        """Test integer range checks per width."""
        assert self.table.to_portable(ValueKind(kind=Kind.INT16), 32767) == 32767
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(ValueKind(kind=Kind.INT16), 32768)
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(INT32, 2 ** 31)
        assert self.table.to_portable(INT32, "42") == 42

    def test_int_rejects_bool_and_fractions(self):
        """Test that integers are not silently coerced."""
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(INT32, True)
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(INT32, 1.5)
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(INT32, "abc")

    def test_decimal_stays_exact_text(self):
        """Test decimals are carried as exact text."""
        kind = ValueKind(kind=Kind.DECIMAL_TEXT)
        assert self.table.to_portable(kind, "12345678901234567890.123456789") == (
            "12345678901234567890.123456789"
        )
        assert self.table.to_portable(kind, Decimal("1.10")) == "1.10"
        assert self.table.to_portable(kind, 0.1) == "0.1"
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(kind, "NaN")

    @pytest.mark.parametrize("native,highest", [
        ("tinyint unsigned", 255),
        ("smallint unsigned", 65535),
        ("mediumint unsigned", 16777215),
        ("int(10) unsigned", 4294967295),
    ])
    def test_mysql_unsigned_int_range(self, native, highest):
        """Test unsigned integers accept exactly 0 to their maximum."""
        kind = self.table.resolve(native, BackendKind.MYSQL)
        assert kind.is_unsigned
        assert self.table.to_portable(kind, 0) == 0
        assert self.table.to_portable(kind, highest) == highest
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(kind, -5)
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(kind, highest + 1)

    def test_mysql_bigint_unsigned(self):
        """Test bigint unsigned is exact integer text within 0 to 2**64 - 1."""
        kind = self.table.resolve("bigint unsigned", BackendKind.MYSQL)
        assert kind.kind == Kind.DECIMAL_TEXT
        assert self.table.to_portable(kind, "18446744073709551615") == "18446744073709551615"
        assert self.table.to_portable(kind, 7) == "7"
        assert self.table.to_portable(kind, "7.00") == "7"
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(kind, "1.5")
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(kind, "-1")
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(kind, "18446744073709551616")

    def test_mysql_unsigned_decimal_and_float(self):
        """Test non-integer unsigned columns reject negatives only."""
        decimal_kind = self.table.resolve("decimal(10,2) unsigned", BackendKind.MYSQL)
        assert self.table.to_portable(decimal_kind, "1.25") == "1.25"
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(decimal_kind, "-0.01")
        float_kind = self.table.resolve("double unsigned", BackendKind.MYSQL)
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(float_kind, -1.0)

    def test_signed_kinds_are_not_unsigned(self):
        """Test plain kinds keep the signed range."""
        kind = self.table.resolve("int", BackendKind.MYSQL)
        assert not kind.is_unsigned
        assert self.table.to_portable(kind, -5) == -5

    def test_text_accepts_only_strings(self):
        """Test text columns reject non-string values."""
        assert self.table.to_portable(TEXT, "a@b.com") == "a@b.com"
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(TEXT, 42)

    def test_timestamp_offsets_are_not_interchanged(self):
        """Test naive and aware timestamps stay distinct."""
        naive = ValueKind(kind=Kind.TIMESTAMP_NAIVE)
        aware = ValueKind(kind=Kind.TIMESTAMP_TZ)
        assert self.table.to_portable(naive, "2024-01-02T03:04:05") == datetime(2024, 1, 2, 3, 4, 5)
        assert self.table.to_portable(aware, "2024-01-02T03:04:05Z").utcoffset() == timedelta(0)
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(naive, "2024-01-02T03:04:05+02:00")
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(aware, "2024-01-02T03:04:05")

    def test_date_rejects_datetime(self):
        """Test a datetime is not truncated into a date."""
        kind = ValueKind(kind=Kind.DATE)
        assert self.table.to_portable(kind, "2024-02-29") == date(2024, 2, 29)
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(kind, datetime(2024, 2, 29, 12, 0))

    def test_uuid(self):
        """Test UUID parsing."""
        value = uuid.uuid4()
        assert self.table.to_portable(UUID, str(value)) == value
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(UUID, "not-a-uuid")

    def test_bytes_accepts_base64(self):
        """Test base64 strings for bytes columns."""
        kind = ValueKind(kind=Kind.BYTES)
        assert self.table.to_portable(kind, "aGVsbG8=") == b"hello"
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(kind, "***")

    def test_enum_labels(self):
        """Test enum values are limited to the declared labels."""
        kind = ValueKind.enum_ref(EnumRef(schema_name="app", name="mood", labels=("sad", "happy")))
        assert self.table.to_portable(kind, "happy") == "happy"
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(kind, "angry")

    def test_json_must_serialize(self):
        """Test JSON values must be serializable."""
        kind = ValueKind(kind=Kind.JSON)
        assert self.table.to_portable(kind, {"a": [1, 2]}) == {"a": [1, 2]}
        with pytest.raises(InvalidFormatError):
            self.table.to_portable(kind, {"a": object()})

    def test_array_elements_validated(self):
        """Test arrays validate every element."""
        kind = ValueKind.array(INT32)
        assert self.table.to_portable(kind, ["1", 2]) == [1, 2]
        with pytest.raises(OutOfRangeError):
            self.table.to_portable(kind, [1, 2 ** 40])

    def test_unsupported_is_read_only(self):
        """Test unsupported kinds reject writes."""
        with pytest.raises(CodecError):
            self.table.to_portable(ValueKind.unsupported("tsvector"), "x")

    def test_none_passes_through(self):
        """Test NULL values."""
        assert self.table.to_portable(INT32, None) is None


class TestDriverConversion:
    """Encode/decode tests."""

    def setup_method(self):
        """Set up test fixtures."""
        self.table = TypeMappingTable()

    def test_decimal_round_trip_keeps_precision(self):
        """Test decimals survive encode and decode unchanged."""
        kind = ValueKind(kind=Kind.DECIMAL_TEXT)
        value = "0.10000000000000000000000001"
        encoded = self.table.encode(kind, value, BackendKind.POSTGRES)
        assert encoded == Decimal(value)
        assert self.table.decode(kind, encoded) == value

    @pytest.mark.parametrize("value", ["10.25", "-3.5", "42", "12345678901234567"])
    def test_sqlite_exact_decimals_stored(self, value):
        """Test decimals SQLite stores exactly are bound unchanged."""
        kind = ValueKind(kind=Kind.DECIMAL_TEXT)
        assert self.table.encode(kind, value, BackendKind.SQLITE) == value
        assert sqlite_numeric_text(Decimal(value)) == value

    @pytest.mark.parametrize("value", [
        "10.50",
        "42.0",
        "12345678901234567.89",
        "0.1000000000000000000001",
        "99999999999999999999",
    ])
    def test_sqlite_inexact_decimals_rejected(self, value):
        """Test decimals that would not read back as the same text."""
        kind = ValueKind(kind=Kind.DECIMAL_TEXT)
        with pytest.raises(OutOfRangeError):
            self.table.encode(kind, value, BackendKind.SQLITE)
        assert self.table.encode(kind, value, BackendKind.SQLITE, store=False) == value
        assert self.table.encode(kind, value, BackendKind.POSTGRES) == Decimal(value)

    def test_timestamp_tz_round_trip_keeps_offset(self):
        """Test aware timestamps keep their offset through SQLite text storage."""
        kind = ValueKind(kind=Kind.TIMESTAMP_TZ)
        value = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone(timedelta(hours=5, minutes=30)))
        encoded = self.table.encode(kind, value, BackendKind.SQLITE)
        assert isinstance(encoded, str)
        decoded = self.table.decode(kind, encoded)
        assert decoded == value
        assert decoded.utcoffset() == timedelta(hours=5, minutes=30)

    def test_sqlite_bool_and_uuid(self):
        """Test SQLite storage forms."""
        value = uuid.uuid4()
        assert self.table.encode(ValueKind(kind=Kind.BOOL), True, BackendKind.SQLITE) == 1
        assert self.table.encode(UUID, value, BackendKind.SQLITE) == str(value)
        assert self.table.decode(UUID, value.hex) == value
        assert self.table.decode(ValueKind(kind=Kind.BOOL), 0) is False

    def test_json_encoded_as_text(self):
        """Test JSON values are bound as text."""
        kind = ValueKind(kind=Kind.JSON)
        encoded = self.table.encode(kind, {"a": 1}, BackendKind.MYSQL)
        assert encoded == '{"a": 1}'
        assert self.table.decode(kind, encoded) == {"a": 1}

    def test_postgres_arrays_stay_lists(self):
        """Test arrays bind natively on PostgreSQL and as JSON elsewhere."""
        kind = ValueKind.array(INT32)
        assert self.table.encode(kind, [1, 2], BackendKind.POSTGRES) == [1, 2]
        assert self.table.encode(kind, [1, 2], BackendKind.SQLITE) == "[1, 2]"
        assert self.table.decode(kind, "[1, 2]") == [1, 2]

    def test_mysql_time_from_timedelta(self):
        """Test MySQL TIME values returned as timedelta."""
        kind = ValueKind(kind=Kind.TIME)
        assert self.table.decode(kind, timedelta(hours=1, minutes=2, seconds=3)) == time(1, 2, 3)

    def test_unsupported_decodes_as_text(self):
        """Test unsupported values stay readable as opaque text."""
        kind = ValueKind.unsupported("tsvector")
        assert self.table.decode(kind, "'a':1") == "'a':1"
        assert self.table.decode(kind, b"\x01\x02") == "0102"

    def test_decode_rejects_garbage(self):
        """Test stored values that cannot be read as their kind."""
        with pytest.raises(InvalidFormatError):
            self.table.decode(UUID, "nope")
