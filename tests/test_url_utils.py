import unittest

from sourcecrawler.extraction.documents import validate_fetch_url
from sourcecrawler.ingestion.url_utils import absolute_url, canonicalize_url, url_hash


class TestUrlCanonicalization(unittest.TestCase):
    def test_canonicalize_strips_tracking_params(self):
        raw = "https://Example.com/path/to/article?utm_source=x&utm_medium=y&id=123&gclid=AAA#section"
        canon = canonicalize_url(raw)
        self.assertEqual(canon, "https://example.com/path/to/article?id=123")

    def test_hash_is_stable_for_equivalent_urls(self):
        a = "https://example.com/a?utm_source=x&id=1"
        b = "https://example.com/a?id=1&utm_medium=y"
        self.assertEqual(url_hash(a), url_hash(b))

    def test_hash_differs_for_different_articles(self):
        self.assertNotEqual(url_hash("https://example.com/a?id=1"), url_hash("https://example.com/a?id=2"))


class TestAbsoluteUrl(unittest.TestCase):
    def test_resolves_relative_links(self):
        self.assertEqual(absolute_url("https://news.example.com/list/", "../a/1"), "https://news.example.com/a/1")
        self.assertEqual(absolute_url("https://news.example.com/list", "/a/1#top"), "https://news.example.com/a/1")

    def test_rejects_unusable_hrefs(self):
        self.assertIsNone(absolute_url("https://news.example.com/", None))
        self.assertIsNone(absolute_url("https://news.example.com/", "#comments"))
        self.assertIsNone(absolute_url("https://news.example.com/", "javascript:void(0)"))
        self.assertIsNone(absolute_url("https://news.example.com/", "mailto:desk@example.com"))


class TestFetchSecurity(unittest.TestCase):
    def test_blocks_localhost(self):
        self.assertEqual(validate_fetch_url("http://localhost:1234/"), "blocked_host")

    def test_blocks_private_ip(self):
        self.assertEqual(validate_fetch_url("http://127.0.0.1:1234/"), "blocked_private_ip")
        self.assertEqual(validate_fetch_url("http://192.168.1.10/feed"), "blocked_private_ip")

    def test_blocks_non_http_scheme(self):
        self.assertEqual(validate_fetch_url("file:///etc/passwd"), "bad_scheme")

    def test_allows_public_http(self):
        self.assertIsNone(validate_fetch_url("https://news.example.com/list"))


if __name__ == "__main__":
    unittest.main()
