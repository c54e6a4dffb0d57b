# ========================
# tests/test_feeder.py
# ========================

import unittest
import tempfile
import gzip
import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.streaming.boundary import LineBoundaryResolver
from src.streaming.exceptions import RecordParseError, RecordTooLargeError
from src.streaming.extraction import parse_csv_bytes
from src.streaming.feeder import PARSE_ERROR_PREFIX, StreamingRecordFeeder, parse_file_with_callback
from src.streaming.parser import CSVRecordParser, ParserConfig

MULTILINE_CSV = (
    b'id,name,notes\r\n'
    b'1,Laptop,"line one\nline two"\r\n'
    b'2,"Mouse, wireless","the ""premium"" edition"\r\n'
    b'3,Chair,\r\n'
    b'4,Desk,"multi\r\nline"\r\n'
    b'5,Lamp,last'
)


class RecordingParser(CSVRecordParser):
    """Parser that remembers every block it was given."""

    def __init__(self, config=None):
        super().__init__(config)
        self.blocks = []

    def parse(self, data):
        self.blocks.append(bytes(data))
        return super().parse(data)


class TestStreamingRecordFeeder(unittest.TestCase):
    """Test chunk-by-chunk record delivery."""

    def _feed(self, data, chunk_size, resolver=None, parser=None, **kwargs):
        records = []
        feeder = StreamingRecordFeeder(parser or CSVRecordParser(), records.append, resolver=resolver, **kwargs)
        for start in range(0, len(data), chunk_size):
            feeder.feed(data[start:start + chunk_size])
        feeder.finish()
        return records, feeder

    def test_small_chunks(self):
        """Records split over 5-byte chunks come out whole and in order."""
        records, feeder = self._feed(b'A,B\n1,2\n3,4\n', 5)

        self.assertEqual(records, [['A', 'B'], ['1', '2'], ['3', '4']])
        self.assertEqual(feeder.records_emitted, 3)
        self.assertEqual(feeder.carry_size, 0)

    def test_missing_final_newline(self):
        """The last record is delivered even without a trailing terminator."""
        records, _ = self._feed(b'A,B\nC,D', 100)
        self.assertEqual(records, [['A', 'B'], ['C', 'D']])

    def test_any_chunk_size_matches_whole_file(self):
        """Chunking never changes the parsed records."""
        expected = list(CSVRecordParser().parse(MULTILINE_CSV + b'\n'))
        self.assertEqual(len(expected), 6)

        for chunk_size in range(1, len(MULTILINE_CSV) + 2):
            records, _ = self._feed(MULTILINE_CSV, chunk_size)
            self.assertEqual(records, expected, f"chunk size {chunk_size}")

    def test_blocks_concatenate_to_input(self):
        """Every byte is parsed exactly once, and only at record boundaries."""
        data = b''.join(b'%d,value %d\n' % (i, i) for i in range(200))

        for chunk_size in (1, 7, 64, 1000, len(data)):
            parser = RecordingParser()
            records, _ = self._feed(data, chunk_size, resolver=LineBoundaryResolver(), parser=parser)

            self.assertEqual(b''.join(parser.blocks), data)
            self.assertTrue(all(block.endswith(b'\n') for block in parser.blocks))
            self.assertEqual(len(records), 200)

    def test_stray_quotes_match_whole_file_parse(self):
        """Quotes inside unquoted values do not upset later multi-line fields."""
        data = b'h1,h2\nx"y,"a\nb"\nz,w\n12" pipe,"two\r\nlines"\nlast,1\n'
        table = parse_csv_bytes(data)
        expected = [table.headers] + table.rows
        self.assertEqual(expected[2], ['z', 'w'])

        for chunk_size in range(1, len(data) + 2):
            records, _ = self._feed(data, chunk_size)
            self.assertEqual(records, expected, f"chunk size {chunk_size}")

    def test_line_policy_breaks_multiline_field(self):
        """A chunk edge inside a quoted field defeats the last-terminator policy."""
        data = b'id,note\n1,"x\ny"\n'

        with self.assertRaises(RecordParseError):
            self._feed(data, 14, resolver=LineBoundaryResolver())

        records, _ = self._feed(data, 14)
        self.assertEqual(records, [['id', 'note'], ['1', 'x\ny']])

    def test_bom_is_dropped(self):
        """A UTF-8 BOM split over chunks is still removed from the first field."""
        data = b'\xef\xbb\xbfA,B\n1,2\n'

        records, _ = self._feed(data, 1)
        self.assertEqual(records[0], ['A', 'B'])

        records, _ = self._feed(data, 1, detect_bom=False)
        self.assertEqual(records[0], ['\ufeffA', 'B'])

    def test_parse_error_is_prefixed(self):
        """Strict quoting violations surface as RecordParseError with the standard prefix."""
        with self.assertRaises(RecordParseError) as context:
            self._feed(b'a,b\n"x"y,2\n', 4)
        self.assertTrue(str(context.exception).startswith(PARSE_ERROR_PREFIX))

    def test_unterminated_quote_at_end(self):
        """A quote left open at end of file is a parse error."""
        with self.assertRaises(RecordParseError):
            self._feed(b'a,b\n1,"open\n', 3)

    def test_record_too_large(self):
        """The carry guard rejects a record that never closes."""
        data = b'a,b\n1,"' + b'x' * 200

        with self.assertRaises(RecordTooLargeError):
            self._feed(data, 10, max_record_bytes=50)

    def test_finish_only_once(self):
        feeder = StreamingRecordFeeder(CSVRecordParser(), lambda record: None)
        feeder.feed(b'a,b\n')
        feeder.finish()
        self.assertTrue(feeder.finished)

        with self.assertRaises(RuntimeError):
            feeder.finish()
        with self.assertRaises(RuntimeError):
            feeder.feed(b'c,d\n')

    def test_cancellation_stops_delivery(self):
        """No record is delivered after the cancel check turns true."""
        records = []
        feeder = StreamingRecordFeeder(
            CSVRecordParser(), records.append, is_cancelled=lambda: len(records) >= 2
        )
        feeder.feed(b'a\nb\nc\nd\n')
        self.assertEqual(records, [['a'], ['b']])

    def test_parser_options(self):
        """Delimiter, trimming, empty-line skipping and null values."""
        config = ParserConfig(delimiter=';', trim_whitespace=True, skip_empty_lines=True, null_value='NULL')
        records, _ = self._feed(b'a; b\n;\n 1 ;NULL\n', 3, parser=CSVRecordParser(config))

        self.assertEqual(records, [['a', 'b'], ['1', None]])


class TestParseFileWithCallback(unittest.TestCase):
    """Test the file-level streaming entry point."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def _write(self, name, content):
        path = os.path.join(self.temp_dir.name, name)
        with open(path, 'wb') as f:
            f.write(content)
        return path

    def test_streams_plain_file(self):
        path = self._write('data.csv', MULTILINE_CSV)
        records = []

        count = parse_file_with_callback(path, records.append, chunk_size=8)

        self.assertEqual(count, 6)
        self.assertEqual(records[1], ['1', 'Laptop', 'line one\nline two'])
        self.assertEqual(records[-1], ['5', 'Lamp', 'last'])

    def test_streams_gzip_file(self):
        path = self._write('data.csv.gz', gzip.compress(MULTILINE_CSV))
        records = []

        count = parse_file_with_callback(path, records.append, chunk_size=16)

        self.assertEqual(count, 6)
        self.assertEqual(records[4], ['4', 'Desk', 'multi\r\nline'])

    def test_repeated_load_is_identical(self):
        """Loading the same file twice with the same settings gives the same records."""
        path = self._write('data.csv', MULTILINE_CSV)
        first, second = [], []

        parse_file_with_callback(path, first.append, chunk_size=7)
        parse_file_with_callback(path, second.append, chunk_size=7)

        self.assertEqual(len(first), 6)
        self.assertEqual(first, second)

    def test_null_callback(self):
        with self.assertRaises(ValueError) as context:
            parse_file_with_callback('data.csv', None)
        self.assertEqual(str(context.exception), "Callback cannot be None")

    def test_invalid_chunk_size(self):
        with self.assertRaises(ValueError):
            parse_file_with_callback('data.csv', lambda record: None, chunk_size=0)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            parse_file_with_callback(os.path.join(self.temp_dir.name, 'missing.csv'), lambda record: None)

    def test_cancelled_before_first_read(self):
        path = self._write('data.csv', b'a,b\n1,2\n')
        records = []

        count = parse_file_with_callback(path, records.append, is_cancelled=lambda: True)

        self.assertEqual(count, 0)
        self.assertEqual(records, [])


if __name__ == '__main__':
    unittest.main()
