import unittest

from sourcecrawler.crawlers.dom import DomPaginationCrawler
from sourcecrawler.ingestion.errors import ExtractionMismatch, InvalidSettings
from sourcecrawler.ingestion.post_types import SourceSettings
from tests.fakes import FakeFetcher, utc

BASE = "https://news.example.com"


def listing(items, next_href=None):
    rows = []
    for slug, title, date in items:
        rows.append(
            f'<div class="post"><h2 class="t">{title}</h2>'
            f'<a class="l" href="/a/{slug}">more</a>'
            f'<span class="d">{date}</span>'
            f'<p class="desc">About {title}</p></div>'
        )
    nav = f'<a class="next" href="{next_href}">next</a>' if next_href else ""
    return f"<html><body>{''.join(rows)}{nav}</body></html>"


def article(body, next_href=None, og_image=None):
    head = f'<meta property="og:image" content="{og_image}">' if og_image else ""
    nav = f'<a class="more-pages" href="{next_href}">2</a>' if next_href else ""
    return (
        f"<html><head>{head}</head><body><article>"
        f'<img class="lead" src="/img/lead.jpg"><div class="body">{body}</div>{nav}'
        f"</article></body></html>"
    )


def settings(**overrides):
    doc = {
        "type": "dom",
        "url": f"{BASE}/list",
        "titlesSelector": ".post .t",
        "linksSelector": ".post a.l",
        "datesSelector": ".post .d",
        "descriptionSelector": ".post .desc",
        "contentSelector": "article .body",
        "nextSelector": "a.next",
        "dateFormat": "YYYY-MM-DD HH:mm",
        "isApproved": True,
    }
    doc.update(overrides)
    return SourceSettings.from_dict(doc)


WATERMARK = utc(2024, 3, 1, 0, 0)


class TestDomPaginationCrawler(unittest.TestCase):
    def crawler(self, pages):
        self.fetcher = FakeFetcher(pages)
        return DomPaginationCrawler(self.fetcher, item_workers=2)

    def test_stops_at_first_page_with_older_item(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([
                ("1", "One", "2024-03-05 10:00"),
                ("2", "Two", "2024-03-04 10:00"),
                ("3", "Old", "2024-02-20 10:00"),
            ], next_href="/list?page=2"),
            f"{BASE}/a/1": article("<p>Body one</p>"),
            f"{BASE}/a/2": article("<p>Body two</p>"),
        })
        out = crawler.crawl(settings(), WATERMARK)

        self.assertEqual([c.url for c in out], [f"{BASE}/a/1", f"{BASE}/a/2"])
        self.assertNotIn(f"{BASE}/list?page=2", self.fetcher.calls)
        self.assertNotIn(f"{BASE}/a/3", self.fetcher.calls)
        self.assertEqual(out[0].title, "One")
        self.assertEqual(out[0].published_at, utc(2024, 3, 5, 10, 0))
        self.assertEqual(out[0].description, "About One")
        self.assertEqual(out[0].content, "<p>Body one</p>")

    def test_follows_next_link_until_older_item(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([("1", "One", "2024-03-05 10:00")], next_href="/list?page=2"),
            f"{BASE}/list?page=2": listing([
                ("2", "Two", "2024-03-04 10:00"),
                ("3", "Old", "2024-02-01 10:00"),
            ], next_href="/list?page=3"),
            f"{BASE}/a/1": article("<p>1</p>"),
            f"{BASE}/a/2": article("<p>2</p>"),
        })
        out = crawler.crawl(settings(), WATERMARK)

        self.assertEqual([c.title for c in out], ["One", "Two"])
        self.assertNotIn(f"{BASE}/list?page=3", self.fetcher.calls)

    def test_watermark_is_exclusive(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([
                ("1", "Boundary", "2024-03-01 00:00"),
            ], next_href="/list?page=2"),
        })
        self.assertEqual(crawler.crawl(settings(), WATERMARK), [])
        self.assertEqual(self.fetcher.calls, [f"{BASE}/list"])

    def test_limit_max_truncates_and_stops(self):
        rows = [(str(n), f"Item {n}", f"2024-03-0{9 - n} 10:00") for n in range(1, 6)]
        pages = {f"{BASE}/list": listing(rows, next_href="/list?page=2")}
        pages.update({f"{BASE}/a/{n}": article(f"<p>{n}</p>") for n in range(1, 6)})
        crawler = self.crawler(pages)
        out = crawler.crawl(settings(limitMax=3), WATERMARK)

        self.assertEqual([c.title for c in out], ["Item 1", "Item 2", "Item 3"])
        self.assertNotIn(f"{BASE}/list?page=2", self.fetcher.calls)
        self.assertNotIn(f"{BASE}/a/4", self.fetcher.calls)
        self.assertNotIn(f"{BASE}/a/5", self.fetcher.calls)

    def test_pages_max_stops_pagination(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([("1", "One", "2024-03-05 10:00")], next_href="/list?page=2"),
            f"{BASE}/list?page=2": listing([("2", "Two", "2024-03-04 10:00")]),
            f"{BASE}/a/1": article("<p>1</p>"),
        })
        out = crawler.crawl(settings(pagesMax=1), WATERMARK)

        self.assertEqual([c.title for c in out], ["One"])
        self.assertNotIn(f"{BASE}/list?page=2", self.fetcher.calls)

    def test_next_link_cycle_is_not_followed(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([("1", "One", "2024-03-05 10:00")], next_href="/list"),
            f"{BASE}/a/1": article("<p>1</p>"),
        })
        out = crawler.crawl(settings(), WATERMARK)
        self.assertEqual(len(out), 1)
        self.assertEqual(self.fetcher.calls.count(f"{BASE}/list"), 1)

    def test_undated_items_are_dropped_without_stopping(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([
                ("1", "One", "2024-03-05 10:00"),
                ("x", "Undated", ""),
            ], next_href="/list?page=2"),
            f"{BASE}/list?page=2": listing([("2", "Two", "2024-03-04 10:00")]),
            f"{BASE}/a/1": article("<p>1</p>"),
            f"{BASE}/a/2": article("<p>2</p>"),
        })
        out = crawler.crawl(settings(), WATERMARK)
        self.assertEqual([c.title for c in out], ["One", "Two"])

    def test_title_link_mismatch_aborts(self):
        html = (
            '<div class="post"><h2 class="t">One</h2><span class="d">2024-03-05 10:00</span></div>'
            '<div class="post"><h2 class="t">Three</h2><a class="l" href="/a/3">x</a>'
            '<span class="d">2024-03-05 10:00</span></div>'
            '<div class="post"><h2 class="t">Two</h2><a class="l" href="/a/2">x</a>'
            '<span class="d">2024-03-05 10:00</span></div>'
        )
        crawler = self.crawler({f"{BASE}/list": html})
        with self.assertRaises(ExtractionMismatch) as ctx:
            crawler.crawl(settings(), WATERMARK)
        self.assertEqual((ctx.exception.titles, ctx.exception.links), (3, 2))

    def test_missing_required_settings(self):
        crawler = self.crawler({})
        with self.assertRaises(InvalidSettings):
            crawler.crawl(settings(contentSelector=None), WATERMARK)
        self.assertEqual(self.fetcher.calls, [])

    def test_item_without_content_is_skipped(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([
                ("1", "One", "2024-03-05 10:00"),
                ("2", "Empty", "2024-03-04 10:00"),
                ("3", "Gone", "2024-03-03 10:00"),
            ]),
            f"{BASE}/a/1": article("<p>1</p>"),
            f"{BASE}/a/2": "<html><body><p>No article here</p></body></html>",
        })
        out = crawler.crawl(settings(), WATERMARK)
        self.assertEqual([c.title for c in out], ["One"])

    def test_later_listing_failure_keeps_accepted_items(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([("1", "One", "2024-03-05 10:00")], next_href="/list?page=2"),
            f"{BASE}/a/1": article("<p>1</p>"),
        })
        out = crawler.crawl(settings(), WATERMARK)
        self.assertEqual([c.title for c in out], ["One"])
        self.assertIn(f"{BASE}/list?page=2", self.fetcher.calls)

    def test_multi_page_content_and_images(self):
        crawler = self.crawler({
            f"{BASE}/list": listing([("1", "One", "2024-03-05 10:00")]),
            f"{BASE}/a/1": article("<p>Part 1</p>", next_href="/a/1?p=2", og_image="/img/og.jpg"),
            f"{BASE}/a/1?p=2": article("<p>Part 2</p>", next_href="/a/1"),
        })
        out = crawler.crawl(
            settings(nextContentSelector="a.more-pages", imageSelector="img.lead", previewFromMeta=True),
            WATERMARK,
        )
        self.assertEqual(len(out), 1)
        self.assertEqual(out[0].content, "<p>Part 1</p><p>Part 2</p>")
        self.assertEqual(out[0].inline_image_url, f"{BASE}/img/lead.jpg")
        self.assertEqual(out[0].preview_image_url, f"{BASE}/img/og.jpg")
        self.assertEqual(self.fetcher.calls.count(f"{BASE}/a/1"), 1)


if __name__ == "__main__":
    unittest.main()
