"""
사이트 크롤러: 사이트맵 → (없으면) 홈페이지 BFS 링크 탐색 → (없으면) 홈페이지 URL.
페이지 단위 실패는 해당 페이지만 제외. 0페이지도 정상 결과(page_count=0).
"""

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from requests.exceptions import RequestException

from visibility.core.config import settings
from visibility.core.crawl_http import HtmlTooLargeError, fetch_html
from visibility.core.crawler_config import (
    ASSET_PATH_RE,
    COMBINED_BODY_MAX_CHARS,
    PAGE_BODY_MAX_CHARS,
    PAGE_HEADINGS_MAX,
    SITEMAP_PATHS,
    SKIP_HREF_PREFIXES,
    SKIP_PATH_PREFIXES,
    STRIP_TAGS,
)

logger = logging.getLogger(__name__)

# 사이트맵에서 취할 최대 URL 수.
SITEMAP_MAX_URLS = 20
# 사이트맵 인덱스일 때 따라갈 하위 사이트맵 수.
SITEMAP_INDEX_MAX_CHILDREN = 3

# (url, timeout) → 본문 문자열. 테스트에서 교체.
Fetcher = Callable[[str, float], str]

# 개별 페이지 실패로 간주하는 예외.
FETCH_ERRORS = (RequestException, HtmlTooLargeError, UnicodeDecodeError, LookupError, ValueError)


class CrawlError(Exception):
    """크롤 전체를 중단해야 하는 오류(잘못된 입력 등). 개별 페이지 실패는 해당하지 않음."""

    pass


@dataclass
class CrawledPage:
    url: str
    path: str
    title: str | None
    description: str | None
    h1: str | None
    headings: list[str]
    body_text: str
    word_count: int


@dataclass
class CrawlResult:
    domain: str
    pages: list[CrawledPage] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)


def _default_fetch(url: str, timeout: float) -> str:
    return fetch_html(url, timeout=timeout)


def _is_asset(path: str) -> bool:
    return bool(ASSET_PATH_RE.search(path))


def _site_hosts(domain: str) -> set[str]:
    return {domain, f"www.{domain}"}


def _clean_url(url: str) -> str:
    """쿼리·프래그먼트·끝 슬래시 제거."""
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}{p.path}".rstrip("/")


def _text(tag) -> str | None:
    if tag is None:
        return None
    value = tag.get_text(" ", strip=True)
    return value or None


class SiteCrawler:
    """
    도메인 1개 크롤. fetch·sleep 주입 가능(테스트에서 네트워크 없이 실행).
    max_pages 이상은 추출하지 않음.
    """

    def __init__(
        self,
        *,
        fetch: Fetcher | None = None,
        max_pages: int | None = None,
        page_timeout: float | None = None,
        polite_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetch = fetch or _default_fetch
        self.max_pages = max_pages or settings.crawl_max_pages
        self.page_timeout = page_timeout or settings.crawl_page_timeout_seconds
        self.polite_delay = settings.crawl_polite_delay_seconds if polite_delay is None else polite_delay
        self.sleep = sleep

    def crawl(self, domain: str) -> CrawlResult:
        domain = (domain or "").strip().lower()
        if not domain or "/" in domain or " " in domain:
            raise CrawlError(f"Invalid crawl domain: {domain!r}")

        urls = self.fetch_sitemap_urls(domain)
        source = "sitemap"
        if not urls:
            urls = self.discover_pages(domain)
            source = "discovery"
        if not urls:
            urls = [f"https://{domain}", f"https://www.{domain}"]
            source = "homepage"
        logger.info("Crawl start: domain=%s source=%s candidates=%d", domain, source, len(urls))

        result = CrawlResult(domain=domain)
        for url in urls[: self.max_pages]:
            page = self.extract_page(url)
            if page is not None:
                result.pages.append(page)
            if self.polite_delay:
                self.sleep(self.polite_delay)
        logger.info("Crawl finished: domain=%s pages=%d", domain, result.page_count)
        return result

    def fetch_sitemap_urls(self, domain: str) -> list[str]:
        """첫 번째로 URL을 돌려준 사이트맵만 사용. 인덱스면 하위 사이트맵 일부를 따라감."""
        hosts = _site_hosts(domain)
        for template in SITEMAP_PATHS:
            sitemap_url = template.format(domain=domain)
            urls = self._read_sitemap(sitemap_url, hosts=hosts, depth=0)
            if urls:
                return urls[:SITEMAP_MAX_URLS]
        return []

    def _read_sitemap(self, sitemap_url: str, *, hosts: set[str], depth: int) -> list[str]:
        try:
            xml = self.fetch(sitemap_url, self.page_timeout)
        except FETCH_ERRORS as e:
            logger.debug("Sitemap fetch failed: url=%s error=%s", sitemap_url, e)
            return []
        soup = BeautifulSoup(xml, "html.parser")
        urls: list[str] = []
        for loc in soup.find_all("loc"):
            loc_url = loc.get_text(strip=True)
            parsed = urlparse(loc_url)
            if parsed.scheme not in ("http", "https") or parsed.hostname not in hosts:
                continue
            if not _is_asset(parsed.path) and loc_url not in urls:
                urls.append(loc_url)
            if len(urls) >= SITEMAP_MAX_URLS:
                break
        if urls or depth > 0:
            return urls
        children = [
            loc.get_text(strip=True)
            for sm in soup.find_all("sitemap")
            for loc in sm.find_all("loc")
        ][:SITEMAP_INDEX_MAX_CHILDREN]
        for child in children:
            urls.extend(u for u in self._read_sitemap(child, hosts=hosts, depth=depth + 1) if u not in urls)
            if len(urls) >= SITEMAP_MAX_URLS:
                break
        return urls

    def discover_pages(self, domain: str) -> list[str]:
        """홈페이지에서 BFS. 내부 링크만, API·관리자·리소스 경로 제외."""
        hosts = _site_hosts(domain)
        to_visit: deque[str] = deque([f"https://{domain}", f"https://www.{domain}"])
        queued: set[str] = set(to_visit)
        discovered: list[str] = []

        while to_visit and len(discovered) < self.max_pages:
            url = to_visit.popleft()
            normalized = url.rstrip("/")
            if normalized in discovered:
                continue
            try:
                html = self.fetch(url, self.page_timeout)
            except FETCH_ERRORS as e:
                logger.debug("Discovery fetch failed: url=%s error=%s", url, e)
                continue
            discovered.append(normalized)

            soup = BeautifulSoup(html, "html.parser")
            for a in soup.find_all("a", href=True):
                href = a["href"].strip()
                if not href or href.startswith(SKIP_HREF_PREFIXES):
                    continue
                absolute = urljoin(url, href)
                parsed = urlparse(absolute)
                if parsed.scheme not in ("http", "https") or parsed.hostname not in hosts:
                    continue
                path = parsed.path.lower()
                if _is_asset(path) or path.startswith(SKIP_PATH_PREFIXES):
                    continue
                clean = _clean_url(absolute)
                if clean not in queued and clean not in discovered:
                    queued.add(clean)
                    to_visit.append(clean)
            if self.polite_delay:
                self.sleep(self.polite_delay)
        return discovered

    def extract_page(self, url: str) -> CrawledPage | None:
        """페이지 1개 추출. 실패 시 None(경고 로그)."""
        try:
            html = self.fetch(url, self.page_timeout)
            return parse_page(url, html)
        except FETCH_ERRORS as e:
            logger.warning("Page fetch failed: url=%s error=%s", url, e)
        except Exception as e:
            # 파서 오류(RecursionError 등)도 해당 페이지만 제외.
            logger.warning("Page extraction failed: url=%s error=%s", url, e, exc_info=True)
        return None


def parse_page(url: str, html: str) -> CrawledPage:
    """HTML → CrawledPage. title·description·h1·h2/h3·본문(불필요 태그 제거)."""
    soup = BeautifulSoup(html, "html.parser")

    title = _text(soup.title)
    description = None
    meta = soup.find("meta", attrs={"name": lambda v: v and v.lower() == "description"})
    if meta is not None and meta.get("content"):
        description = meta["content"].strip() or None
    h1 = _text(soup.find("h1"))

    headings: list[str] = []
    for tag in soup.find_all(["h2", "h3"]):
        text = tag.get_text(" ", strip=True)
        if text:
            headings.append(text)
        if len(headings) >= PAGE_HEADINGS_MAX:
            break

    body = soup.body or soup
    for tag in body.find_all(list(STRIP_TAGS)):
        tag.decompose()
    body_text = " ".join(body.get_text(" ", strip=True).split())

    return CrawledPage(
        url=url,
        path=urlparse(url).path or "/",
        title=title,
        description=description,
        h1=h1,
        headings=headings,
        body_text=body_text[:PAGE_BODY_MAX_CHARS],
        word_count=len(body_text.split()),
    )


def combine_content(result: CrawlResult) -> str:
    """분석용 단일 텍스트. 페이지당 본문은 COMBINED_BODY_MAX_CHARS까지."""
    sections = [f"Domain: {result.domain}", f"Pages crawled: {result.page_count}", ""]
    for page in result.pages:
        sections.append(f"--- Page: {page.path} ---")
        if page.title:
            sections.append(f"Title: {page.title}")
        if page.description:
            sections.append(f"Description: {page.description}")
        if page.h1:
            sections.append(f"H1: {page.h1}")
        if page.headings:
            sections.append(f"Headings: {' | '.join(page.headings)}")
        sections.append(f"Content: {page.body_text[:COMBINED_BODY_MAX_CHARS]}")
        sections.append("")
    return "\n".join(sections)
