import unittest

from sourcecrawler.extraction.dates import parse_date, to_strptime_format
from tests.fakes import utc


class TestDateFormats(unittest.TestCase):
    def test_moment_tokens_translate(self):
        self.assertEqual(to_strptime_format("DD.MM.YYYY HH:mm"), "%d.%m.%Y %H:%M")
        self.assertEqual(to_strptime_format("D MMMM YYYY [at] HH:mm"), "%d %B %Y at %H:%M")

    def test_strptime_formats_pass_through(self):
        self.assertEqual(to_strptime_format("%Y-%m-%d"), "%Y-%m-%d")


class TestParseDate(unittest.TestCase):
    def test_explicit_format(self):
        self.assertEqual(parse_date("05.03.2024 14:30", "DD.MM.YYYY HH:mm"), utc(2024, 3, 5, 14, 30))

    def test_result_is_utc(self):
        parsed = parse_date("2024-03-05T10:00:00+02:00")
        self.assertEqual(parsed, utc(2024, 3, 5, 8, 0))
        self.assertEqual(parsed.utcoffset().total_seconds(), 0)

    def test_locale(self):
        parsed = parse_date("5 marzo 2024", locale="it-IT")
        self.assertEqual((parsed.year, parsed.month, parsed.day), (2024, 3, 5))

    def test_unparseable(self):
        self.assertIsNone(parse_date(""))
        self.assertIsNone(parse_date(None))
        self.assertIsNone(parse_date("???"))


if __name__ == "__main__":
    unittest.main()
