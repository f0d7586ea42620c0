import os
import tempfile
import unittest

from page_mirror.utils.paths import (
    canonical_url,
    create_output_structure,
    extension_for_content_type,
    get_asset_path,
    has_font_extension,
    is_fetchable,
    resolve_url,
    to_root_relative,
)


class ResolveUrlTest(unittest.TestCase):
    def test_resolution_table(self) -> None:
        cases = [
            ("https://example.com/dir/", "style.css", "https://example.com/dir/style.css"),
            ("https://example.com/dir/page.html", "../img/a.png", "https://example.com/img/a.png"),
            ("https://example.com/dir/", "/root.css", "https://example.com/root.css"),
            ("https://example.com/", "//cdn.example.com/lib.js", "https://cdn.example.com/lib.js"),
            ("http://example.com/", "//cdn.example.com/lib.js", "http://cdn.example.com/lib.js"),
            ("https://example.com/", "https://other.com/x.css", "https://other.com/x.css"),
            ("https://example.com/", "  a.css  ", "https://example.com/a.css"),
        ]
        for base, ref, expected in cases:
            with self.subTest(ref=ref):
                self.assertEqual(resolve_url(base, ref), expected)

    def test_absolute_urls_are_fixed_points(self) -> None:
        base = "https://example.com/a/b.html"
        for ref in ("https://example.com/x.css", "//cdn.example.com/y.js", "img/z.png"):
            once = resolve_url(base, ref)
            self.assertEqual(resolve_url(base, once), once)

    def test_malformed_reference_is_returned_unchanged(self) -> None:
        self.assertEqual(resolve_url("https://example.com/", "http://[::1"), "http://[::1")

    def test_empty_reference(self) -> None:
        self.assertEqual(resolve_url("https://example.com/", "   "), "")

    def test_canonical_url_drops_fragment(self) -> None:
        self.assertEqual(
            canonical_url("https://example.com/sprite.svg#icon"),
            "https://example.com/sprite.svg"
        )

    def test_is_fetchable(self) -> None:
        self.assertTrue(is_fetchable("https://example.com/a.css"))
        self.assertFalse(is_fetchable("data:image/png;base64,AAAA"))
        self.assertFalse(is_fetchable("javascript:void(0)"))
        self.assertFalse(is_fetchable("mailto:someone@example.com"))


class AssetNamingTest(unittest.TestCase):
    def test_style_and_script_extensions_are_enforced(self) -> None:
        self.assertEqual(get_asset_path("https://x.com/css/site", "style"), "assets/site.css")
        self.assertEqual(get_asset_path("https://x.com/site.css?v=3", "style"), "assets/site.css")
        self.assertEqual(get_asset_path("https://x.com/js/app", "script"), "assets/app.js")
        self.assertEqual(get_asset_path("https://x.com/data/feed", "json"), "assets/feed.json")

    def test_images_get_extension_from_content_type(self) -> None:
        self.assertEqual(
            get_asset_path("https://x.com/img/photo", "image", "image/png"),
            "assets/images/photo.png"
        )
        self.assertEqual(
            get_asset_path("https://x.com/img/photo", "image"),
            "assets/images/photo.jpg"
        )
        self.assertEqual(
            get_asset_path("https://x.com/img/logo.webp", "image", "image/png"),
            "assets/images/logo.webp"
        )

    def test_manifest_and_icons(self) -> None:
        self.assertEqual(
            get_asset_path("https://x.com/site.webmanifest", "manifest"),
            "assets/site.webmanifest"
        )
        self.assertEqual(
            get_asset_path("https://x.com/manifest", "manifest"),
            "assets/manifest.json"
        )
        self.assertEqual(
            get_asset_path("https://x.com/favicon.ico", "manifest"),
            "assets/favicon.ico"
        )

    def test_fonts_go_to_font_directory(self) -> None:
        self.assertEqual(
            get_asset_path("https://x.com/static/Inter.woff2?v=1", "font"),
            "assets/fonts/Inter.woff2"
        )

    def test_font_extension_ignores_query(self) -> None:
        self.assertTrue(has_font_extension("fonts/a.woff2?v=4.7.0"))
        self.assertTrue(has_font_extension("https://x.com/a.TTF"))
        self.assertFalse(has_font_extension("https://x.com/bg.png"))

    def test_extension_for_content_type_parameters(self) -> None:
        self.assertEqual(extension_for_content_type("image/svg+xml; charset=utf-8"), ".svg")
        self.assertEqual(extension_for_content_type("text/plain", default=".bin"), ".bin")


class OutputStructureTest(unittest.TestCase):
    def test_create_output_structure(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            dirs = create_output_structure(os.path.join(tmp, "out"))
            for path in dirs.values():
                self.assertTrue(os.path.isdir(path))
            self.assertTrue(dirs['fonts'].endswith(os.path.join("assets", "fonts")))

    def test_to_root_relative(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "assets", "images", "a.png")
            self.assertEqual(to_root_relative(path, tmp), "assets/images/a.png")


if __name__ == "__main__":
    unittest.main()
