import logging
import threading
import time

import mwclient
import requests
from mwclient.errors import APIError

from . import config
from .utils import format_item_value, is_mid, mediainfo_id

logger = logging.getLogger(__name__)


class WriteThrottle:
    """
    Spaces outbound writes to at most ``max_qps`` per second across all workers.

    Each caller reserves the next free slot under the lock and sleeps outside
    it, so concurrent writers queue up in arrival order.
    """

    def __init__(self, max_qps, clock=time.monotonic, sleep=time.sleep):
        self.interval = 1.0 / max_qps if max_qps and max_qps > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0
        self._lock = threading.Lock()

    def wait(self):
        """Block until this caller's slot comes up; returns the seconds waited."""
        if not self.interval:
            return 0.0
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)
        return delay


def build_session():
    """Shared HTTP session carrying the client identity."""
    session = requests.Session()
    session.headers.update(config.HEADERS)
    return session


def build_site(host, session, username=None, password=None):
    """Create an mwclient handle without touching the network until first use."""
    site = mwclient.Site(
        host,
        path=config.API_PATH,
        pool=session,
        max_retries=config.GATEWAY_MAX_RETRIES,
        do_init=False,
        connection_options={"timeout": config.API_TIMEOUT},
    )
    if username and password:
        logger.info("[*] Logging in to %s as %s", host, username)
        site.login(username, password)
    return site


class RemoteEntityGateway:
    """
    Atomic remote operations against the knowledge base and the media repository.

    Every call is a single request/response. API error responses are mapped to
    the operation's rejection value; transport errors propagate to the caller.
    """

    def __init__(
        self,
        kb_site=None,
        media_site=None,
        session=None,
        username=config.USERNAME,
        password=config.PASSWORD,
        max_qps=config.GATEWAY_MAX_QPS,
    ):
        self._kb_site = kb_site
        self._media_site = media_site
        self._session = session
        self.username = username
        self.password = password
        self._site_lock = threading.Lock()
        self._throttle = WriteThrottle(max_qps)

    def _get_session(self):
        if self._session is None:
            self._session = build_session()
        return self._session

    @property
    def kb_site(self):
        with self._site_lock:
            if self._kb_site is None:
                self._kb_site = build_site(
                    config.KNOWLEDGE_BASE_HOST, self._get_session(), self.username, self.password
                )
            return self._kb_site

    @property
    def media_site(self):
        with self._site_lock:
            if self._media_site is None:
                self._media_site = build_site(
                    config.MEDIA_REPOSITORY_HOST, self._get_session(), self.username, self.password
                )
            return self._media_site

    def _post(self, site, action, token=None, **params):
        """POST a write action; returns None when the API rejects it."""
        waited = self._throttle.wait()
        if waited:
            logger.debug("Throttled %s on %s for %.2fs", action, site.host, waited)
        params["token"] = token or site.get_token("csrf")
        try:
            return site.post(action, **params)
        except APIError as exc:
            logger.warning("[!] %s rejected by %s: %s (%s)", action, site.host, exc.code, exc.info)
            return None

    @staticmethod
    def _last_revision(response, *path):
        cur = response
        for key in path:
            if not isinstance(cur, dict) or key not in cur:
                return config.REJECTED_REVISION_ID
            cur = cur[key]
        if not response.get("success") or not isinstance(cur, int):
            return config.REJECTED_REVISION_ID
        return cur

    def create_claim(self, entity_id, property_id, value):
        """wbcreateclaim with a value snak; returns the new revision id or -1."""
        response = self._post(
            self.kb_site,
            "wbcreateclaim",
            entity=entity_id,
            property=property_id,
            snaktype="value",
            value=value,
        )
        return self._last_revision(response, "pageinfo", "lastrevid")

    def add_edit_tag(self, revision_id, tag, reason):
        """Attach a change tag to an existing revision."""
        response = self._post(self.kb_site, "tag", revid=revision_id, add=tag, reason=reason)
        if not response:
            return False
        results = response.get("tag") or []
        return any(entry.get("status") == "success" for entry in results if isinstance(entry, dict))

    def get_file_entity_id(self, file_ref):
        """Return the MediaInfo id (M<pageid>) of a file page, or None if it does not exist."""
        try:
            response = self.media_site.get("query", prop="info", titles=file_ref, formatversion=2)
        except APIError as exc:
            logger.warning("[!] Page info lookup for %s failed: %s (%s)", file_ref, exc.code, exc.info)
            return None
        pages = (response.get("query") or {}).get("pages") or []
        for page in pages:
            if page.get("missing") or page.get("invalid"):
                continue
            entity_id = mediainfo_id(page.get("pageid"))
            if is_mid(entity_id):
                return entity_id
        return None

    def set_entity_relation(self, entity_id, related_entity_id):
        """Add a depicts (P180) statement on the file entity pointing at entity_id."""
        response = self._post(
            self.media_site,
            "wbcreateclaim",
            entity=related_entity_id,
            property=config.DEPICTS_PROPERTY,
            snaktype="value",
            value=format_item_value(entity_id),
        )
        return self._last_revision(response, "pageinfo", "lastrevid")

    def set_entity_label(self, entity_id, auth_token, language, text):
        """Set one label (caption) on the file entity."""
        response = self._post(
            self.media_site,
            "wbsetlabel",
            token=auth_token,
            id=entity_id,
            language=language,
            value=text,
        )
        return self._last_revision(response, "entity", "lastrevid")
