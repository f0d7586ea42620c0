import os
import tempfile
import unittest

from page_mirror.mirror.downloader import FetchError
from page_mirror.mirror.rewrite import ERROR_SUPPRESSION_MARKER
from page_mirror.mirror.scraper import PageScraper

from .helpers import FakeFetcher


BANNER_SCRIPT = (
    r'window.cfg = {"css_file":"https:\/\/x.com\/banner-{banner_id}-{type}.css",'
    r'"user_banner_id":"7","consenttype":"optin"};'
)

PAGE = """<!DOCTYPE html>
<html>
<head>
  <link rel="stylesheet" href="https://x.com/css/site.css">
  <script src="/js/app.js"></script>
  <script>%s</script>
</head>
<body>
  <img src="https://x.com/img/logo.png">
  <img srcset="https://x.com/img/a.jpg 1x, https://x.com/img/b.jpg 2x">
</body>
</html>
""" % BANNER_SCRIPT


def site_routes():
    return {
        "https://x.com/": (PAGE, "text/html"),
        "https://x.com/css/site.css": (
            "@font-face{src:url(../fonts/inter.woff2)}\n/*# sourceMappingURL=site.css.map */",
            "text/css"
        ),
        "https://x.com/fonts/inter.woff2": b"wOF2",
        "https://x.com/js/app.js": BANNER_SCRIPT + "\n//# sourceMappingURL=app.js.map",
        "https://x.com/banner-7-optin.css": ".banner{display:none}",
        "https://x.com/img/logo.png": (b"\x89PNG", "image/png"),
        "https://x.com/img/b.jpg": (b"\xff\xd8", "image/jpeg"),
    }


class PageScraperTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.output_dir = self._tmp.name

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def read(self, *parts: str) -> str:
        with open(os.path.join(self.output_dir, *parts), 'r', encoding='utf-8') as f:
            return f.read()

    def make_scraper(self, fetcher, **kwargs) -> PageScraper:
        kwargs.setdefault("workers", 4)
        kwargs.setdefault("retry_delay", 0)
        return PageScraper(self.output_dir, fetcher=fetcher, **kwargs)

    async def test_scrape_end_to_end(self) -> None:
        fetcher = FakeFetcher(site_routes())
        result = await self.make_scraper(fetcher).scrape("https://x.com/")

        self.assertEqual(result.document_path, os.path.join(self.output_dir, "index.html"))
        document = self.read("index.html")

        self.assertIn('href="assets/site.css"', document)
        self.assertIn('src="assets/app.js"', document)
        self.assertIn('src="assets/images/logo.png"', document)
        self.assertIn(ERROR_SUPPRESSION_MARKER, document)

        css = self.read("assets", "site.css")
        self.assertIn("url(fonts/inter.woff2)", css)
        self.assertNotIn("sourceMappingURL", css)
        self.assertTrue(os.path.isfile(os.path.join(self.output_dir, "assets", "fonts", "inter.woff2")))

        script = self.read("assets", "app.js")
        self.assertIn('"css_file":"assets/banner-7-optin.css"', script)
        self.assertNotIn("sourceMappingURL", script)
        self.assertEqual(self.read("assets", "banner-7-optin.css"), ".banner{display:none}")

    async def test_templated_stylesheet_fetched_once(self) -> None:
        fetcher = FakeFetcher(site_routes())
        result = await self.make_scraper(fetcher).scrape("https://x.com/")

        # Referenced from both the external and the inline script
        self.assertEqual(fetcher.calls["https://x.com/banner-7-optin.css"], 1)
        self.assertIn('"css_file":"assets/banner-7-optin.css"', self.read("index.html"))
        self.assertTrue(all(count == 1 for url, count in fetcher.calls.items()
                            if url != "https://x.com/img/a.jpg"))
        self.assertEqual(result.summary.failed, 1)

    async def test_partial_srcset(self) -> None:
        fetcher = FakeFetcher(site_routes())
        result = await self.make_scraper(fetcher).scrape("https://x.com/")

        document = self.read("index.html")
        self.assertIn('srcset="https://x.com/img/a.jpg 1x, assets/images/b.jpg 2x"', document)
        self.assertEqual(fetcher.calls["https://x.com/img/a.jpg"], 3)
        self.assertEqual(
            [(e['url'], e['attempts']) for e in result.summary.errors],
            [("https://x.com/img/a.jpg", 3)]
        )

    async def test_mirror_without_error_suppression(self) -> None:
        fetcher = FakeFetcher({"https://x.com/a.css": "p{}"})
        scraper = self.make_scraper(fetcher, suppress_errors=False)
        result = await scraper.mirror(
            '<html><head><link rel="stylesheet" href="a.css"></head></html>',
            "https://x.com/"
        )
        self.assertEqual(
            result.document,
            '<html><head><link rel="stylesheet" href="assets/a.css"></head></html>'
        )
        self.assertEqual(result.summary.succeeded, 1)
        self.assertEqual(result.summary.failed, 0)

    async def test_transient_failures_recover(self) -> None:
        fetcher = FakeFetcher(
            {"https://x.com/a.png": b"png"},
            failures={"https://x.com/a.png": 2}
        )
        result = await self.make_scraper(fetcher).mirror(
            '<img src="https://x.com/a.png">', "https://x.com/"
        )
        self.assertEqual(fetcher.calls["https://x.com/a.png"], 3)
        self.assertEqual(result.summary.succeeded, 1)
        self.assertIn('src="assets/images/a.png"', result.document)

    async def test_concurrency_is_bounded_by_workers(self) -> None:
        images = {f"https://x.com/{i}.png": b"png" for i in range(12)}
        fetcher = FakeFetcher(images, delay=0.01)
        document = "".join(f'<img src="{url}">' for url in images)

        result = await self.make_scraper(fetcher, workers=3).mirror(document, "https://x.com/")

        self.assertEqual(result.summary.succeeded, 12)
        self.assertLessEqual(fetcher.max_active, 3)

    async def test_root_page_failure_raises(self) -> None:
        with self.assertRaises(FetchError):
            await self.make_scraper(FakeFetcher()).scrape("https://x.com/")

    async def test_custom_document_name(self) -> None:
        fetcher = FakeFetcher({"https://x.com/": "<html><head></head></html>"})
        result = await self.make_scraper(fetcher).scrape("https://x.com/", "home.html")
        self.assertEqual(result.document_path, os.path.join(self.output_dir, "home.html"))
        self.assertEqual(result.summary.succeeded, 0)

    async def test_failed_font_keeps_original_url(self) -> None:
        fetcher = FakeFetcher({
            "https://x.com/site.css": (
                "body{src:url(https://cdn.y/f/a.woff2)}"
                "p{src:url(https://cdn.y/f/ok.woff2)}",
                "text/css"
            ),
            "https://cdn.y/f/ok.woff2": b"wOF2",
        })
        result = await self.make_scraper(fetcher).mirror(
            '<link rel="stylesheet" href="https://x.com/site.css">', "https://x.com/"
        )

        css = self.read("assets", "site.css")
        self.assertIn("url(https://cdn.y/f/a.woff2)", css)
        self.assertIn("url(fonts/ok.woff2)", css)
        self.assertFalse(os.path.exists(os.path.join(self.output_dir, "assets", "fonts", "a.woff2")))
        self.assertEqual([e['url'] for e in result.summary.errors], ["https://cdn.y/f/a.woff2"])

    async def test_inline_script_keeps_failed_stylesheet_literal(self) -> None:
        fetcher = FakeFetcher({"https://x/a.css": "p{}"})
        document = (
            '<html><head><script>var c={"u":"https:\\/\\/x\\/b.css",'
            '"v":"https:\\/\\/x\\/a.css"};</script></head></html>'
        )
        result = await self.make_scraper(fetcher, suppress_errors=False).mirror(
            document, "https://x.com/"
        )

        self.assertIn('"u":"https:\\/\\/x\\/b.css"', result.document)
        self.assertIn('"v":"assets/a.css"', result.document)
        self.assertEqual(result.summary.failed, 1)

    async def test_inline_script_with_crlf_line_endings(self) -> None:
        fetcher = FakeFetcher({"https://x/a.css": "p{}"})
        document = (
            '<html><head><script>\r\nvar c={"v":"https:\\/\\/x\\/a.css"};\r\n'
            '//# sourceMappingURL=inline.js.map\r\n</script></head></html>'
        )
        result = await self.make_scraper(fetcher, suppress_errors=False).mirror(
            document, "https://x.com/"
        )

        self.assertIn('"v":"assets/a.css"', result.document)
        self.assertNotIn("sourceMappingURL", result.document)

    async def test_external_script_keeps_failed_stylesheet_literal(self) -> None:
        fetcher = FakeFetcher({
            "https://x.com/app.js": (
                'loadCss("https://cdn.x.com/gone.css");'
                'loadCss("https://cdn.x.com/ok.css");'
            ),
            "https://cdn.x.com/ok.css": "p{}",
        })
        result = await self.make_scraper(fetcher).mirror(
            '<script src="https://x.com/app.js"></script>', "https://x.com/"
        )

        script = self.read("assets", "app.js")
        self.assertIn('loadCss("https://cdn.x.com/gone.css")', script)
        self.assertIn('loadCss("assets/ok.css")', script)
        self.assertFalse(os.path.exists(os.path.join(self.output_dir, "assets", "gone.css")))
        self.assertEqual(result.summary.succeeded, 2)

    async def test_failed_stylesheet_keeps_href(self) -> None:
        fetcher = FakeFetcher({"https://x.com/ok.css": "p{}"})
        result = await self.make_scraper(fetcher, suppress_errors=False).mirror(
            '<link rel="stylesheet" href="https://x.com/missing.css">'
            '<link rel="stylesheet" href="https://x.com/ok.css">',
            "https://x.com/"
        )

        self.assertEqual(
            result.document,
            '<link rel="stylesheet" href="https://x.com/missing.css">'
            '<link rel="stylesheet" href="assets/ok.css">'
        )
        self.assertNotIn("https://x.com/missing.css", result.asset_map)
        self.assertEqual(fetcher.calls["https://x.com/missing.css"], 3)

    def test_invalid_worker_count(self) -> None:
        with self.assertRaises(ValueError):
            PageScraper(self.output_dir, workers=0)


if __name__ == "__main__":
    unittest.main()
