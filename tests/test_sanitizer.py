import unittest

from sourcecrawler.extraction.sanitizer import prettify_html, remove_empty_tags, sanitize_html, strip_markup
from sourcecrawler.ingestion.post_types import TagWhitelist


class TestStripMarkup(unittest.TestCase):
    def test_collapses_whitespace_and_drops_tags(self):
        self.assertEqual(strip_markup("  <b>Big</b>\n\n  news <i>today</i> "), "Big news today")

    def test_script_and_style_contents_are_discarded(self):
        self.assertEqual(strip_markup("<style>p{}</style>Lead <script>alert(1)</script>text"), "Lead text")

    def test_empty_input(self):
        self.assertEqual(strip_markup(None), "")
        self.assertEqual(strip_markup(""), "")


class TestSanitizeHtml(unittest.TestCase):
    def setUp(self):
        self.whitelist = TagWhitelist.default()

    def test_disallowed_tags_are_unwrapped(self):
        soup = sanitize_html("<p>Hi <span>there</span></p>", self.whitelist)
        self.assertEqual(str(soup), "<p>Hi there</p>")

    def test_script_is_dropped_with_content(self):
        soup = sanitize_html("<p>Hi<script>steal()</script></p>", self.whitelist)
        self.assertEqual(str(soup), "<p>Hi</p>")

    def test_comments_are_dropped(self):
        soup = sanitize_html("<p>a<!-- tracking -->b</p>", self.whitelist)
        self.assertEqual(str(soup), "<p>ab</p>")

    def test_attributes_are_filtered(self):
        soup = sanitize_html('<p class="x" style="color:red">t</p><a href="https://e.com/" onclick="x()">l</a>', self.whitelist)
        self.assertEqual(str(soup), '<p>t</p><a href="https://e.com/">l</a>')

    def test_javascript_urls_are_removed(self):
        soup = sanitize_html('<a href="javascript:alert(1)">x</a>', self.whitelist)
        self.assertEqual(str(soup), "<a>x</a>")

    def test_custom_whitelist_with_wildcard_attributes(self):
        whitelist = TagWhitelist.build(["p", "img"], {"img": ["src"], "*": ["title"]})
        soup = sanitize_html('<div><p title="t" id="i">x</p><img src="/a.png" alt="a"/></div>', whitelist)
        self.assertEqual(str(soup), '<p title="t">x</p><img src="/a.png"/>')


class TestRemoveEmptyTags(unittest.TestCase):
    def test_removes_nested_empty_tags(self):
        soup = sanitize_html("<div><p></p><b> </b></div><p>x</p>", TagWhitelist.default())
        self.assertEqual(str(remove_empty_tags(soup)), "<p>x</p>")

    def test_keeps_void_tags(self):
        soup = sanitize_html("<p>a<br/>b</p><hr/>", TagWhitelist.default())
        self.assertEqual(str(remove_empty_tags(soup)), "<p>a<br/>b</p><hr/>")


class TestPrettify(unittest.TestCase):
    def test_prettify_is_stable(self):
        once = prettify_html("<p>Hello <b>world</b></p>")
        self.assertEqual(prettify_html(once), once)
        self.assertTrue(once.startswith("<p>"))
        self.assertTrue(once.endswith("</p>"))

    def test_blank_input(self):
        self.assertEqual(prettify_html("   "), "")


if __name__ == "__main__":
    unittest.main()
