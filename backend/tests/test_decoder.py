"""
Test Table Decoder

Unit tests for spreadsheet and CSV/TSV decoding into datasets.
"""

import io
from datetime import date, datetime

import polars as pl
import pytest

from core.errors import DecodeError
from core.table_decoder import TableDecoder, cell_text


@pytest.fixture
def decoder():
    return TableDecoder()


@pytest.fixture
def sample_csv_bytes():
    return b"""id,name,value,date
1,Alice,100.5,2024-01-01
2,Bob,200.0,2024-01-02
3,Charlie,150.75,2024-01-03
4,Diana,175.25,2024-01-04
5,Eve,125.0,2024-01-05"""


class TestTableDecoder:
    def test_decode_bytes(self, decoder, sample_csv_bytes):
        """Headers keep their order and cells stay raw strings."""
        dataset = decoder.decode(sample_csv_bytes, "people.csv")

        assert dataset.name == "people.csv"
        assert dataset.headers == ["id", "name", "value", "date"]
        assert dataset.row_count == 5
        assert dataset.rows[0]["value"] == "100.5"
        assert dataset.rows[2]["name"] == "Charlie"

    def test_type_hints(self, decoder, sample_csv_bytes):
        dataset = decoder.decode(sample_csv_bytes, "people.csv")

        assert dataset.column_types["value"] == "number"
        assert dataset.column_types["name"] == "string"
        assert dataset.column_types["date"] == "date"

    def test_tsv(self, decoder):
        dataset = decoder.decode(b"a\tb\n1\tx\n2\ty", "data.tsv")

        assert dataset.headers == ["a", "b"]
        assert dataset.column("b") == ["x", "y"]

    def test_byte_order_mark_is_dropped(self, decoder):
        dataset = decoder.decode(b"\xef\xbb\xbfregion,sales\nNorth,10", "bom.csv")

        assert dataset.headers == ["region", "sales"]

    def test_handles_nulls(self, decoder):
        """Empty cells come back as missing values."""
        dataset = decoder.decode(b"a,b,c\n1,hello,\n2,,world", "nulls.csv")

        assert dataset.rows[0]["c"] is None
        assert dataset.rows[1]["b"] is None

    def test_handles_special_characters(self, decoder):
        csv_data = b'name,description\n"John, Doe","Description with ""quotes"""'
        dataset = decoder.decode(csv_data, "quotes.csv")

        assert dataset.rows[0]["name"] == "John, Doe"
        assert dataset.rows[0]["description"] == 'Description with "quotes"'

    def test_unsupported_extension(self, decoder):
        with pytest.raises(DecodeError, match="Unsupported"):
            decoder.decode(b"%PDF-1.7", "report.pdf")

    def test_headers_colliding_after_strip(self, decoder):
        dataset = decoder.decode(b"region,region \nN,S\n", "dupes.csv")

        assert dataset.headers == ["region", "region_2"]
        assert dataset.rows[0] == {"region": "N", "region_2": "S"}

    def test_blank_header_named(self, decoder):
        dataset = decoder.decode(b"region, \nN,S\n", "blank.csv")

        assert dataset.headers == ["region", "column_2"]

    def test_empty_file(self, decoder):
        with pytest.raises(DecodeError, match="empty"):
            decoder.decode(b"   \n", "empty.csv")

    def test_too_large(self, decoder):
        decoder.settings.max_file_size_mb = 0
        try:
            with pytest.raises(DecodeError, match="exceeds"):
                decoder.decode(b"a,b\n1,2", "big.csv")
        finally:
            decoder.settings.max_file_size_mb = 5

    def test_dataset_id_generation(self, decoder):
        id1 = decoder.generate_dataset_id("test.csv")
        id2 = decoder.generate_dataset_id("test.csv")

        # Should be different due to timestamp
        assert id1 != id2
        assert len(id1) == 16


class TestSpreadsheets:
    @pytest.fixture
    def xlsx_bytes(self):
        frame = pl.DataFrame({
            "month": [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)],
            "region": ["North", "South", None],
            "revenue": [300.0, 200.5, 120.0],
        })
        buffer = io.BytesIO()
        frame.write_excel(buffer)
        return buffer.getvalue()

    def test_decode_xlsx(self, decoder, xlsx_bytes):
        dataset = decoder.decode(xlsx_bytes, "sales.xlsx")

        assert dataset.headers == ["month", "region", "revenue"]
        assert dataset.row_count == 3
        assert dataset.rows[0] == {"month": "2024-01-01", "region": "North", "revenue": "300"}
        assert dataset.rows[1]["revenue"] == "200.5"
        assert dataset.rows[2]["region"] is None
        assert dataset.column_types["revenue"] == "number"

    def test_corrupt_xlsx(self, decoder):
        with pytest.raises(DecodeError, match="Could not parse"):
            decoder.decode(b"PK\x03\x04 not really a workbook", "broken.xlsx")

    def test_cell_text(self):
        assert cell_text(12.0) == "12"
        assert cell_text(0.25) == "0.25"
        assert cell_text(datetime(2024, 5, 1)) == "2024-05-01"
        assert cell_text(datetime(2024, 5, 1, 8, 30)) == "2024-05-01 08:30:00"
        assert cell_text("  ") is None
        assert cell_text(None) is None
