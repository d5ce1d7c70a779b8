"""
크롤러 공통 HTTP 래퍼. OOM 방지: Content-Length fail-fast + 무조건 stream chunking.
악의적 서버가 Content-Length를 속여도 누적 바이트 캡으로 방어.
"""

import codecs
import logging
from typing import Any

import requests

from visibility.core.crawler_config import CRAWLER_HEADERS

logger = logging.getLogger(__name__)

DEFAULT_MAX_HTML_BYTES = 5 * 1024 * 1024
DEFAULT_TIMEOUT = 10
CHUNK_SIZE = 64 * 1024


class HtmlTooLargeError(Exception):
    """응답 본문이 max_bytes를 초과함 (OOM 방지)."""

    pass


def fetch_html(
    url: str,
    *,
    max_bytes: int = DEFAULT_MAX_HTML_BYTES,
    timeout: float = DEFAULT_TIMEOUT,
    headers: dict[str, Any] | None = None,
) -> str:
    """
    URL에서 HTML(또는 XML) 문자열을 안전하게 가져옴. 리다이렉트 추종.
    - Content-Length가 max_bytes 초과면 본문 읽기 전에 HtmlTooLargeError.
    - stream + iter_content로 읽고 누적이 max_bytes 초과 시 즉시 close 후 HtmlTooLargeError.
    - 4xx/5xx는 requests.HTTPError.
    """
    h = headers or CRAWLER_HEADERS
    resp = requests.get(url, headers=h, timeout=timeout, stream=True, allow_redirects=True)
    try:
        resp.raise_for_status()
    except Exception:
        resp.close()
        raise

    cl = resp.headers.get("Content-Length")
    if cl:
        try:
            too_large = int(cl) > max_bytes
        except ValueError:
            too_large = False
        if too_large:
            resp.close()
            raise HtmlTooLargeError(
                f"Content-Length {cl} > max_bytes {max_bytes}; url={url[:200]}"
            )

    accumulated = 0
    chunks: list[bytes] = []
    try:
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if chunk:
                accumulated += len(chunk)
                if accumulated > max_bytes:
                    raise HtmlTooLargeError(
                        f"Accumulated {accumulated} > max_bytes {max_bytes}; url={url[:200]}"
                    )
                chunks.append(chunk)
    finally:
        resp.close()

    # charset 미지정 text/*에 requests가 붙이는 ISO-8859-1 기본값은 무시.
    content_type = resp.headers.get("Content-Type", "").lower()
    encoding = (resp.encoding if "charset=" in content_type else None) or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        logger.debug("Unknown charset, decoding as utf-8: url=%s charset=%s", url[:200], encoding)
        encoding = "utf-8"
    return b"".join(chunks).decode(encoding, errors="replace")
