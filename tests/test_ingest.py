import io

import pytest

from errors import InputAccessError, RecordFormatError
from ingest import TransactionReader, open_input, parse_row


def read(text):
    reader = TransactionReader(io.StringIO(text))
    return reader, list(reader)


class TestTransactionReader:
    """Test CSV framing and row parsing."""

    def test_trimmed_header_and_values(self):
        reader, records = read(
            "type,      client,      tx, amount\n"
            "      deposit,     1,    1,     1.0\n"
            "  deposit,   2,    2,  2.0\n"
        )
        assert [(r.type, r.client, r.tx, r.amount) for r in records] == [
            ("deposit", 1, 1, 1.0),
            ("deposit", 2, 2, 2.0),
        ]
        assert reader.records_read == 2
        assert reader.records_skipped == 0

    def test_header_declares_column_order(self):
        _, records = read(
            "amount,tx,client,type\n"
            "1.5,7,3,deposit\n"
        )
        assert (records[0].type, records[0].client, records[0].tx, records[0].amount) == ("deposit", 3, 7, 1.5)

    def test_unknown_columns_ignored(self):
        _, records = read(
            "junk,type,client,tx,amount,more\n"
            "x,withdrawal,1,2,0.5,y\n"
        )
        assert records[0].type == "withdrawal"
        assert records[0].amount == 0.5

    def test_blank_lines_skipped(self):
        reader, records = read(
            "type,client,tx,amount\n"
            "deposit,1,10,1.0\n"
            "\n"
            "      \n"
            "deposit,1,11,1.0\n"
            "\n"
        )
        assert [r.tx for r in records] == [10, 11]
        assert reader.records_skipped == 0

    def test_dispute_with_empty_amount(self):
        _, records = read(
            "type,client,tx,amount\n"
            "dispute,1,11,\n"
        )
        assert records[0].amount is None

    def test_malformed_rows_skipped(self):
        reader, records = read(
            "type,client,tx,amount\n"
            "abcdefg\n"
            "too,many,columns,a,b,c,d\n"
            "deposit,1,11,1.0\n"
            "deposit,-1,12,1.0\n"
            "deposit,1,notanumber,1.0\n"
            "deposit,1,13,notanamount\n"
            "resolve,1,11\n"
            "dispute,1,11,\n"
        )
        assert [(r.type, r.tx) for r in records] == [("deposit", 11), ("dispute", 11)]
        assert reader.records_read == 8
        assert reader.records_skipped == 6

    def test_fractional_ids_skipped(self):
        reader, records = read(
            "type,client,tx,amount\n"
            "deposit,1.0,2.0,1.0\n"
        )
        assert records == []
        assert reader.records_skipped == 1

    def test_unknown_type_passed_through(self):
        _, records = read(
            "type,client,tx,amount\n"
            "bacon,55,123,17.64\n"
        )
        assert records[0].type == "bacon"

    def test_header_without_amount_column(self):
        _, records = read(
            "type,client,tx\n"
            "dispute,1,2\n"
        )
        assert records[0].amount is None

    def test_missing_header_columns(self):
        with pytest.raises(InputAccessError):
            TransactionReader(io.StringIO("type,client,amount\ndeposit,1,1.0\n"))

    def test_empty_input(self):
        with pytest.raises(InputAccessError):
            TransactionReader(io.StringIO("\n\n"))


class TestParseRow:
    def test_wrong_field_count(self):
        with pytest.raises(RecordFormatError):
            parse_row(["deposit", "1", "1"], ["type", "client", "tx", "amount"])


class TestOpenInput:
    """Test input path checks."""

    def test_missing_path(self, tmp_path):
        with pytest.raises(InputAccessError, match="does not exist"):
            open_input(str(tmp_path / "nope.csv"))

    def test_directory_path(self, tmp_path):
        with pytest.raises(InputAccessError, match="is not a file"):
            open_input(str(tmp_path))

    def test_regular_file(self, tmp_path):
        path = tmp_path / "tx.csv"
        path.write_text("type,client,tx,amount\n")
        with open_input(str(path)) as stream:
            assert stream.readline().strip() == "type,client,tx,amount"

    def test_undecodable_bytes_skip_only_their_row(self, tmp_path):
        path = tmp_path / "tx.csv"
        path.write_bytes(
            b"type,client,tx,amount\n"
            b"deposit,1,1,1.0\n"
            b"deposit,2,2,\xff1.0\n"
            b"deposit,1,3,2.0\n"
        )
        with open_input(str(path)) as stream:
            reader = TransactionReader(stream)
            records = list(reader)

        assert [r.tx for r in records] == [1, 3]
        assert reader.records_read == 3
        assert reader.records_skipped == 1
