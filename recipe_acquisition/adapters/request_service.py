"""
Request Service Adapter for the Recipe Acquisition Pipeline.
Bot-detection-aware page fetching: rotating browser identity, progressive
retry delays, a minimum interval between requests, and user-actionable
error messages for every failure mode.
"""
import asyncio
import random
import time
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx

from recipe_acquisition.config import config
from recipe_acquisition.errors import FetchError
from recipe_acquisition.utils.logger import LayerLogger


USER_AGENTS: Dict[str, List[str]] = {
    "chrome": [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ],
    "firefox": [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0",
        "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0",
    ],
    "safari": [
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
    ],
}

# Phrases that identify bot walls and challenge pages
BLOCK_PATTERNS = [
    "access denied",
    "captcha",
    "bot detection",
    "please enable javascript",
    "checking your browser",
    "ddos protection",
    "security check",
    "error 1020",
    "error 1015",
    "please wait while we",
    "human verification",
    "unusual traffic",
    "automated requests",
    "suspicious activity",
]

# Challenge pages are short; full recipe pages may mention these words in passing
BLOCK_CHECK_MAX_BODY = 2000

NON_RETRYABLE_STATUSES = {400, 401, 403, 404, 410}


@dataclass
class FetchResponse:
    """Successful page fetch."""
    html: str
    status_code: int
    url: str
    attempts: int
    user_agent: str


def status_error(status_code: int) -> FetchError:
    """Map an HTTP status to a user-actionable fetch error."""
    if status_code == 404:
        return FetchError(
            "Recipe page not found",
            http_status=404,
            status_code=404,
            retryable=False,
            suggestion="Check that the URL is correct and the page exists",
        )
    if status_code == 403:
        return FetchError(
            "This website blocks automated recipe imports. Try copying the recipe manually.",
            http_status=403,
            status_code=403,
            retryable=False,
        )
    if status_code == 429:
        return FetchError(
            "The website is rate limiting requests. Please try again later.",
            http_status=429,
            status_code=429,
            retryable=True,
        )
    if status_code in (500, 502, 503, 504):
        return FetchError(
            "The website is temporarily unavailable. Please try again later.",
            http_status=status_code,
            status_code=502,
            retryable=True,
        )
    return FetchError(
        f"Failed to fetch recipe page (HTTP {status_code})",
        http_status=status_code,
        retryable=status_code not in NON_RETRYABLE_STATUSES,
    )


def transport_error(error: httpx.HTTPError) -> FetchError:
    """Map an httpx transport failure to a user-actionable fetch error."""
    text = str(error).lower()
    if isinstance(error, httpx.TimeoutException):
        return FetchError(
            "Request timed out - the website took too long to respond",
            status_code=408,
            retryable=True,
            suggestion="Try again in a few minutes",
        )
    if isinstance(error, httpx.ConnectError) and any(
        marker in text
        for marker in ("name or service not known", "nodename nor servname", "getaddrinfo", "name resolution")
    ):
        return FetchError(
            "Website not found",
            status_code=404,
            retryable=True,
            suggestion="Check that the URL is correct and the website is online",
        )
    if isinstance(error, (httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError, httpx.WriteError)):
        return FetchError("Connection failed - the website may be down", retryable=True)
    return FetchError(f"Failed to fetch recipe page: {error}", retryable=True)


class RequestService:
    """
    Page fetcher with retry and identity rotation.

    One instance is shared per process; it spaces consecutive requests by
    FETCH_MIN_INTERVAL_SECONDS.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_interval: Optional[float] = None,
    ):
        self.transport = transport
        self.min_interval = config.FETCH_MIN_INTERVAL_SECONDS if min_interval is None else min_interval
        self.logger = LayerLogger("request_service")
        self._last_request_time = 0.0

    def _client(self, timeout: float, max_redirects: int = 5) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=max_redirects,
            transport=self.transport,
        )

    async def fetch_with_retry(
        self,
        url: str,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        delay: Optional[float] = None,
        user_agent: str = "random",
    ) -> FetchResponse:
        """
        Fetch a page, retrying with a fresh identity and growing delay.

        Raises FetchError describing the last failure.
        """
        timeout = config.FETCH_TIMEOUT_SECONDS if timeout is None else timeout
        retries = max(1, config.FETCH_RETRIES if retries is None else retries)
        delay = config.FETCH_RETRY_DELAY_SECONDS if delay is None else delay

        last_error: Optional[FetchError] = None

        for attempt in range(retries):
            await self._enforce_min_interval()
            agent = self.select_user_agent(user_agent, attempt)
            headers = self.generate_headers(agent, url, attempt)

            try:
                async with self._client(timeout) as client:
                    response = await client.get(url, headers=headers)
                self._last_request_time = time.monotonic()

                if response.status_code >= 400:
                    raise status_error(response.status_code)

                html = response.text
                if self.is_blocked_response(html):
                    raise status_error(403)

                self.logger.log_fetch_attempt(
                    url, attempt + 1, response.status_code, "success", content_length=len(html)
                )
                return FetchResponse(
                    html=html,
                    status_code=response.status_code,
                    url=str(response.url),
                    attempts=attempt + 1,
                    user_agent=agent,
                )

            except FetchError as e:
                last_error = e
            except httpx.HTTPError as e:
                self._last_request_time = time.monotonic()
                last_error = transport_error(e)

            self.logger.log_fetch_attempt(
                url,
                attempt + 1,
                last_error.http_status,
                "failed",
                error=last_error.message,
                retryable=last_error.retryable,
            )

            if not last_error.retryable:
                break
            if attempt < retries - 1:
                await asyncio.sleep(delay * (attempt + 1))

        self.logger.log_error(
            f"Failed to fetch {url}: {last_error.message}",
            error_type="fetch_failed",
            url=url,
        )
        raise last_error

    async def head(self, url: str, timeout: float, max_redirects: int = 3) -> httpx.Response:
        """Lightweight existence probe (used for image validation)."""
        headers = {"User-Agent": USER_AGENTS["chrome"][0], "Accept": "image/*,*/*;q=0.8"}
        async with self._client(timeout, max_redirects=max_redirects) as client:
            return await client.head(url, headers=headers)

    async def _enforce_min_interval(self):
        if not self.min_interval:
            return
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.min_interval:
            await asyncio.sleep(self.min_interval - elapsed)

    def select_user_agent(self, kind: str, attempt: int) -> str:
        """Rotate browsers across attempts for "random", else pick from one family."""
        if kind == "random":
            browsers = list(USER_AGENTS)
            agents = USER_AGENTS[browsers[attempt % len(browsers)]]
            return agents[attempt % len(agents)]
        if kind in USER_AGENTS:
            agents = USER_AGENTS[kind]
            return agents[attempt % len(agents)]
        return USER_AGENTS["chrome"][0]

    def generate_headers(self, user_agent: str, url: str, attempt: int) -> Dict[str, str]:
        """Browser-consistent request headers for the chosen identity."""
        headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Upgrade-Insecure-Requests": "1",
        }

        # Retries arrive "from" a search engine or the site itself
        if attempt > 0:
            headers["Referer"] = self.generate_referer(url)

        if "Chrome" in user_agent:
            headers.update({
                "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
                "sec-ch-ua-mobile": "?0",
                "sec-ch-ua-platform": '"macOS"',
                "Sec-Fetch-Dest": "document",
                "Sec-Fetch-Mode": "navigate",
                "Sec-Fetch-Site": "none" if attempt == 0 else "cross-site",
                "Sec-Fetch-User": "?1",
            })
        elif "Firefox" in user_agent:
            headers["Accept"] = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
            headers["DNT"] = "1"
        elif "Safari" in user_agent:
            headers["Accept"] = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

        return headers

    def generate_referer(self, url: str) -> str:
        domain = urlparse(url).hostname
        if not domain:
            return "https://www.google.com/"
        return random.choice([
            f"https://{domain}",
            f"https://www.google.com/search?q={quote(domain)}",
            f"https://www.bing.com/search?q={quote(domain)}",
            f"https://duckduckgo.com/?q={quote(domain)}",
        ])

    def is_blocked_response(self, body: str) -> bool:
        """Detect a short challenge page served with a 2xx status."""
        if len(body) >= BLOCK_CHECK_MAX_BODY:
            return False
        lowered = body.lower()
        for pattern in BLOCK_PATTERNS:
            if pattern in lowered:
                self.logger.log_decision(
                    decision="response_blocked",
                    reason=f"matched pattern '{pattern}'",
                    body_length=len(body),
                )
                return True
        return False
