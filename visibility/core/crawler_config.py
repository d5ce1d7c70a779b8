"""
크롤러 설정 (헤더, 사이트맵 경로, 스킵 규칙).
페이지 선택 규칙은 코드가 아니라 이 모듈의 상수로만 조정.
"""

import re

CRAWLER_HEADERS = {
    "User-Agent": "outrank-crawler/1.0 (+https://outrankllm.io)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# {domain} 치환. 앞에서부터 시도, 첫 번째로 URL을 돌려준 사이트맵만 사용.
SITEMAP_PATHS: tuple[str, ...] = (
    "https://{domain}/sitemap.xml",
    "https://{domain}/sitemap_index.xml",
    "https://www.{domain}/sitemap.xml",
)

# 사이트맵·링크 탐색에서 제외할 리소스 확장자.
ASSET_PATH_RE = re.compile(
    r"\.(jpg|jpeg|png|gif|webp|pdf|css|js|ico|svg|woff|woff2|ttf|xml|zip|mp4)$",
    re.IGNORECASE,
)

# 링크 탐색에서 제외할 경로 접두사(API·관리자·프레임워크 내부).
SKIP_PATH_PREFIXES: tuple[str, ...] = ("/api/", "/admin/", "/_", "/wp-admin", "/wp-json")

SKIP_HREF_PREFIXES: tuple[str, ...] = ("#", "javascript:", "mailto:", "tel:")

# 본문 추출 시 제거할 태그.
STRIP_TAGS: tuple[str, ...] = ("script", "style", "noscript", "nav", "header", "footer", "iframe", "svg")

# 페이지별 본문·헤딩 상한.
PAGE_BODY_MAX_CHARS = 5000
PAGE_HEADINGS_MAX = 20
# combine_content에서 페이지당 본문 상한.
COMBINED_BODY_MAX_CHARS = 1500
