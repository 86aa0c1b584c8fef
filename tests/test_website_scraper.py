"""
网站抓取的纯函数部分：sitemap 解析、请求拦截规则。浏览器流程不在单测中启动。
"""

from houndmaster.sources.website_scraper import WebsiteScraper, format_page_block, parse_sitemap

SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://project.xyz/</loc></url>
  <url><loc>https://project.xyz/roadmap</loc></url>
  <url><loc>https://project.xyz/roadmap</loc></url>
  <url><loc>https://cdn.other.com/team</loc></url>
  <url><loc>https://project.xyz/sitemap-posts.xml</loc></url>
  <url><loc>https://project.xyz/team</loc></url>
</urlset>
"""


class TestSitemap:
    def test_same_origin_deduplicated_in_order(self):
        urls = parse_sitemap(SITEMAP, "https://project.xyz", limit=10)
        assert urls == ["https://project.xyz/", "https://project.xyz/roadmap", "https://project.xyz/team"]

    def test_limit_applies(self):
        assert len(parse_sitemap(SITEMAP, "https://project.xyz", limit=2)) == 2

    def test_garbage_yields_nothing(self):
        assert parse_sitemap("<html><body>404</body></html>", "https://project.xyz", limit=5) == []
        assert parse_sitemap("", "https://project.xyz", limit=5) == []


class TestBlocking:
    def _scraper(self):
        return WebsiteScraper(
            blocked_domains=["google-analytics.com", "doubleclick.net"],
            blocked_extensions=["png", "mp4"],
        )

    def test_tracking_domains_blocked(self):
        s = self._scraper()
        assert s.is_blocked("https://www.google-analytics.com/collect?v=1")
        assert s.is_blocked("https://ad.doubleclick.net/x.js")

    def test_media_extensions_blocked(self):
        s = self._scraper()
        assert s.is_blocked("https://project.xyz/img/hero.PNG")
        assert not s.is_blocked("https://project.xyz/about")
        assert not s.is_blocked("https://project.xyz/app.js")


def test_page_block_format():
    assert format_page_block("https://a.io", "hello") == "=== Content from https://a.io ===\nhello"
