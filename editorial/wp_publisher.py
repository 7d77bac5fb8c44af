"""WordPress REST API publish target."""

import base64
import logging
import os
import time
from datetime import datetime, timezone

import requests
from dotenv import load_dotenv

from editorial.models import ContentStatus, parse_timestamp, utcnow

load_dotenv(override=True)

log = logging.getLogger(__name__)

PUBLISHABLE_STATUSES = (ContentStatus.APPROVED, ContentStatus.SCHEDULED)


class AuthenticationError(Exception):
    pass


class PublishPermissionError(Exception):
    pass


class WordPressPublisher:
    """Pushes content items to WordPress and marks them published."""

    def __init__(self, content, base_url=None, username=None, app_password=None):
        self.content = content
        self.base_url = (base_url or os.getenv("WP_URL", "")).rstrip("/")
        self.username = username or os.getenv("WP_USERNAME", "")
        self.app_password = app_password or os.getenv("WP_APP_PASSWORD", "")
        self.api_base = f"{self.base_url}/wp-json/wp/v2"

        credentials = f"{self.username}:{self.app_password}"
        token = base64.b64encode(credentials.encode()).decode()
        self.headers = {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }

        self._verify_connection()

    def _verify_connection(self):
        """Verify WP REST API is reachable and authenticated."""
        try:
            resp = self._request("GET", f"{self.api_base}/")
            if resp.status_code != 200:
                raise ConnectionError(f"WordPress API returned status {resp.status_code}")
            log.info("WordPress connection verified", extra={"endpoint": "/wp-json/wp/v2/"})
        except requests.exceptions.ConnectionError as e:
            raise ConnectionError(f"Cannot reach WordPress at {self.base_url}: {e}")

    def _request(self, method, url, retries=3, timeout=30, **kwargs):
        """Make an HTTP request with retry logic and error handling."""
        last_exception = None
        for attempt in range(retries):
            try:
                start = time.time()
                resp = requests.request(
                    method, url, headers=self.headers, timeout=timeout, **kwargs
                )
                elapsed = time.time() - start

                log.info(
                    f"{method} {url} -> {resp.status_code}",
                    extra={
                        "endpoint": url,
                        "method": method,
                        "status_code": resp.status_code,
                        "response_time": round(elapsed, 3),
                    },
                )

                if resp.status_code == 401:
                    raise AuthenticationError(f"Authentication failed: {resp.text}")
                if resp.status_code == 403:
                    raise PublishPermissionError(f"Insufficient permissions: {resp.text}")
                if resp.status_code == 404:
                    log.warning(f"Not found: {url}")
                    return resp
                if resp.status_code == 429:
                    wait = 2 ** attempt
                    log.warning(f"Rate limited, waiting {wait}s")
                    time.sleep(wait)
                    last_exception = Exception(f"Rate limited: {url}")
                    continue
                if resp.status_code >= 500:
                    wait = 2 ** attempt
                    log.warning(f"Server error {resp.status_code}, retry {attempt+1}/{retries}")
                    time.sleep(wait)
                    last_exception = Exception(f"Server error {resp.status_code}: {resp.text}")
                    continue

                return resp

            except requests.exceptions.Timeout:
                wait = 2 ** attempt
                log.warning(f"Timeout on {url}, retry {attempt+1}/{retries}")
                time.sleep(wait)
                last_exception = requests.exceptions.Timeout(f"Timeout: {url}")
            except requests.exceptions.ConnectionError as e:
                wait = 2 ** attempt
                log.warning(f"Connection error, retry {attempt+1}/{retries}")
                time.sleep(wait)
                last_exception = e

        raise last_exception or Exception(f"Request failed after {retries} retries")

    def find_post(self, slug: str) -> dict | None:
        """Existing post with this slug (any status), if any."""
        for status in ("publish", "future", "draft", "pending"):
            resp = self._request("GET", f"{self.api_base}/posts?slug={slug}&status={status}")
            if resp.status_code == 200:
                posts = resp.json()
                if posts:
                    return posts[0]
        return None

    def create_post(self, item: dict) -> dict:
        """Create a draft post for a content item, reusing one that already has its slug."""
        slug = item.get("slug")
        if slug:
            existing = self.find_post(slug)
            if existing:
                log.warning(f"Post with slug '{slug}' already exists (ID: {existing['id']}), reusing it")
                return existing

        payload = {
            "title": item.get("title", ""),
            "content": item.get("body", ""),
            "excerpt": item.get("meta_description", ""),
            "status": "draft",
            "meta": {
                "rank_math_description": item.get("meta_description", ""),
                "rank_math_focus_keyword": ",".join((item.get("keywords") or [])[:5]),
            },
        }
        if slug:
            payload["slug"] = slug

        resp = self._request("POST", f"{self.api_base}/posts", json=payload)
        resp.raise_for_status()
        post = resp.json()
        log.info(f"Created draft: {post['id']} - {payload['title']}", extra={"content_id": item.get("id")})
        return post

    def schedule_post(self, post_id, publish_datetime: datetime) -> bool:
        """Schedule a post for future publication."""
        resp = self._request(
            "POST",
            f"{self.api_base}/posts/{post_id}",
            json={"status": "future", "date_gmt": publish_datetime.astimezone(timezone.utc).isoformat()},
        )
        log.info(f"Scheduled post {post_id} for {publish_datetime.isoformat()}")
        return 200 <= resp.status_code < 300

    def publish_now(self, post_id) -> bool:
        """Publish a post immediately."""
        resp = self._request("POST", f"{self.api_base}/posts/{post_id}", json={"status": "publish"})
        return 200 <= resp.status_code < 300

    def publish(self, content_id: str) -> bool:
        """Push a content item live, or queue it in WordPress if its slot is in the future.

        Returns True on success. The item is marked published only when
        WordPress accepted an immediate publish. Items that are not approved
        or scheduled are refused.
        """
        item = self.content.get(content_id)
        status = item.get("status")
        if status == ContentStatus.PUBLISHED:
            log.info(f"Content {content_id} already published", extra={"content_id": content_id})
            return True
        if status not in PUBLISHABLE_STATUSES:
            log.warning(f"Refusing to publish content in status '{status}'",
                        extra={"content_id": content_id})
            return False

        post = self.create_post(item)
        slot = parse_timestamp(item.get("scheduled_publish_at"))
        now = utcnow()

        if slot and slot > now:
            ok = self.schedule_post(post["id"], slot)
            if ok:
                self.content.update(content_id, {"wp_post_id": post["id"]})
            return ok

        if not self.publish_now(post["id"]):
            log.error(f"WordPress refused to publish post {post['id']}", extra={"content_id": content_id})
            return False

        self.content.update(content_id, {
            "status": ContentStatus.PUBLISHED,
            "published_at": now.isoformat(),
            "wp_post_id": post["id"],
            "wp_url": post.get("link", ""),
        })
        log.info(f"Published content {content_id} as post {post['id']}", extra={"content_id": content_id})
        return True
