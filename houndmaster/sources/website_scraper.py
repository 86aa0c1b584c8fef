"""
项目网站抓取（Playwright headless Chromium）。

流程：
1. 探测 {origin}/sitemap.xml（10s 超时，失败不算错误），BeautifulSoup 解析 <loc>
2. 主 URL + sitemap 中同源页面（上限 max_pages）逐个导航，networkidle + 2s 等待动态内容
3. 只取正文区域文本（header/main/article/section/内容类 div），跳过 nav/footer/菜单
4. 每页格式化为 "=== Content from {url} ===" 块后拼接

广告、统计脚本和图片/音视频请求在 context 层直接 abort，加快加载。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Route, async_playwright

from config.settings import settings
from houndmaster.errors import ScrapeError
from houndmaster.log import get_logger

logger = get_logger(__name__)

CONTENT_SELECTORS = [
    "header",
    "main",
    "article",
    "section",
    'div[class*="content"]',
    'div[class*="main"]',
]
EXCLUDED_ANCESTORS = ["nav", "footer", '[class*="menu"]', '[class*="navigation"]']

# 在页面内执行：收集正文区域文本，跳过位于导航/页脚/菜单内的元素
_EXTRACT_JS = """
([selectors, excluded]) => {
  const parts = [];
  for (const el of document.querySelectorAll(selectors.join(","))) {
    if (excluded.some((sel) => el.closest(sel))) continue;
    const text = (el.textContent || "").trim();
    if (text) parts.push(text);
  }
  return parts.join("\\n").trim();
}
"""

_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
]


@dataclass
class ScrapeResult:
    content: str
    urls: List[str] = field(default_factory=list)


def format_page_block(url: str, text: str) -> str:
    return f"=== Content from {url} ===\n{text}"


def parse_sitemap(xml: str, base_url: str, limit: int) -> List[str]:
    """提取 sitemap 中与 base_url 同源的页面 URL（去重、保序，跳过子 sitemap）"""
    origin = urlparse(base_url).netloc.lower()
    soup = BeautifulSoup(xml or "", "html.parser")
    urls: List[str] = []
    for loc in soup.find_all("loc"):
        u = (loc.get_text() or "").strip()
        if not u or u.lower().endswith(".xml"):
            continue
        if urlparse(u).netloc.lower() != origin or u in urls:
            continue
        urls.append(u)
        if len(urls) >= limit:
            break
    return urls


@dataclass
class WebsiteScraper:
    headless: bool = True
    user_agent: str = ""
    navigation_timeout_ms: int = 30000
    sitemap_timeout_ms: int = 10000
    settle_ms: int = 2000
    max_pages: int = 20
    blocked_domains: List[str] = field(default_factory=list)
    blocked_extensions: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls) -> "WebsiteScraper":
        cfg = settings.scraper
        return cls(
            headless=cfg.headless,
            user_agent=cfg.user_agent,
            navigation_timeout_ms=cfg.navigation_timeout_ms,
            sitemap_timeout_ms=cfg.sitemap_timeout_ms,
            settle_ms=cfg.settle_ms,
            max_pages=cfg.max_pages,
            blocked_domains=list(cfg.blocked_domains),
            blocked_extensions=list(cfg.blocked_extensions),
        )

    # --------------------------------------------------------
    # 请求拦截
    # --------------------------------------------------------

    def is_blocked(self, url: str) -> bool:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if any(domain in host for domain in self.blocked_domains):
            return True
        path = parsed.path.lower()
        return any(path.endswith(f".{ext}") for ext in self.blocked_extensions)

    async def _route(self, route: Route) -> None:
        if self.is_blocked(route.request.url):
            await route.abort()
        else:
            await route.continue_()

    # --------------------------------------------------------
    # 抓取
    # --------------------------------------------------------

    async def _discover(self, page, url: str) -> List[str]:
        sitemap_url = urljoin(url, "/sitemap.xml")
        try:
            response = await page.goto(sitemap_url, timeout=self.sitemap_timeout_ms)
            if response is None or not response.ok:
                return []
            return parse_sitemap(await response.text(), url, self.max_pages)
        except Exception as e:
            logger.debug(f"sitemap 不可用，仅抓取主页: {sitemap_url} - {e}")
            return []

    async def _page_text(self, page, url: str) -> Optional[str]:
        try:
            response = await page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
            if response is not None and not response.ok:
                logger.debug(f"页面返回 {response.status}: {url}")
                return None
            await page.wait_for_timeout(self.settle_ms)
            text = await page.evaluate(_EXTRACT_JS, [CONTENT_SELECTORS, EXCLUDED_ANCESTORS])
        except Exception as e:
            logger.warning(f"页面抓取失败，跳过: {url} - {e}")
            return None
        return (text or "").strip() or None

    async def scrape(self, url: str) -> ScrapeResult:
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=self.headless, args=_BROWSER_ARGS)
                try:
                    context = await browser.new_context(
                        user_agent=self.user_agent or None,
                        viewport={"width": 1280, "height": 800},
                    )
                    await context.route("**/*", self._route)
                    page = await context.new_page()

                    discovered = await self._discover(page, url)
                    urls = [url] + [u for u in discovered if u.rstrip("/") != url.rstrip("/")]
                    urls = urls[: max(1, self.max_pages)]

                    blocks = []
                    for page_url in urls:
                        text = await self._page_text(page, page_url)
                        if text:
                            blocks.append(format_page_block(page_url, text))
                    await context.close()
                finally:
                    await browser.close()
        except Exception as e:
            raise ScrapeError(f"failed to scrape {url}: {e}") from e

        logger.info(f"网站抓取完成: {url}，{len(blocks)}/{len(urls)} 页有内容")
        return ScrapeResult(content="\n\n".join(blocks), urls=urls)
