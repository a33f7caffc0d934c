"""Drive the YouTube Music web UI with Playwright to create playlists and add tracks.

YouTube Music has no public write API, so everything goes through the page:
wait for an element, click it, fill a field, read the URL. Every wait is
bounded and none is retried; a timeout ends the operation.

One browser page is one shared surface. The automator holds a lock so two
create/add calls never drive the page at the same time.
"""

import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from config import (
    BROWSER_PROFILE_DIR, HEADLESS, RESULTS_TIMEOUT_MS, SEARCH_SETTLE_MS,
    WAIT_TIMEOUT_MS, YTMUSIC_URL,
)
from errors import AutomationError, ElementNotFound, IdExtractionFailed, InvalidRequest, Timeout
from log_setup import get_logger
from models import MatchResult

PLAYLIST_ID_RE = re.compile(r"list=([a-zA-Z0-9_-]+)")
MAX_CANDIDATES = 3
POLL_INTERVAL_MS = 100

log = get_logger("ytmusic")


@dataclass
class Selectors:
    """CSS selectors and visible texts of the YouTube Music UI."""

    anchor: str = "ytmusic-nav-bar"
    search_box: str = 'input[placeholder*="earch"]'
    results: str = '[role="listbox"]'
    result_item: str = '[role="option"]'
    result_title: str = '[role="button"]'
    name_input: str = 'input[placeholder*="ame"]'
    playlist_link: str = 'a[href*="list="]'
    create_playlist_text: str = "New playlist"
    confirm_text: str = "Create"
    add_to_playlist_text: str = "Add to playlist"


class AddState(str, Enum):
    SEARCHING = "searching"
    RESULTS_AVAILABLE = "results_available"
    BEST_MATCH_SELECTED = "best_match_selected"
    CONTEXT_MENU_OPEN = "context_menu_open"
    ADD_MENU_OPEN = "add_menu_open"
    PLAYLIST_SELECTED = "playlist_selected"
    NO_RESULTS = "no_results"
    TIMEOUT = "timeout"
    AFFORDANCE_NOT_FOUND = "affordance_not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class PlaylistHandle:
    id: str
    name: str


@dataclass(frozen=True)
class Candidate:
    title: str
    element: object


class YouTubeMusicAutomator:
    def __init__(self, page, selectors=None, timeout_ms=WAIT_TIMEOUT_MS,
                 results_timeout_ms=RESULTS_TIMEOUT_MS, settle_ms=SEARCH_SETTLE_MS):
        self.page = page
        self.selectors = selectors or Selectors()
        self.timeout_ms = timeout_ms
        self.results_timeout_ms = results_timeout_ms
        self.settle_ms = settle_ms
        self.playlist = None
        self._lock = threading.Lock()

    # --- Waiting primitives ---

    def await_observable(self, selector, timeout_ms=None, root=None):
        """Wait until `selector` is attached under `root` (the page by default).

        Raises Timeout when nothing shows up within the bound."""
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        target = root if root is not None else self.page
        try:
            handle = target.wait_for_selector(selector, timeout=timeout_ms, state="attached")
        except PlaywrightTimeout as e:
            raise Timeout(selector, timeout_ms) from e
        if handle is None:
            raise Timeout(selector, timeout_ms)
        return handle

    def wait_until(self, predicate, timeout_ms=None):
        """Poll `predicate` until it returns something truthy; return that value.

        Raises Timeout when the bound expires first."""
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            value = predicate()
            if value:
                return value
            if time.monotonic() >= deadline:
                raise Timeout("condition", timeout_ms)
            self.page.wait_for_timeout(POLL_INTERVAL_MS)

    def _require(self, selector, what, timeout_ms=None):
        try:
            return self.await_observable(selector, timeout_ms)
        except Timeout as e:
            raise ElementNotFound(what, str(e)) from e

    def _require_text(self, text, what, exact=False, timeout_ms=None):
        """Locate the first element whose visible text matches `text`."""
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        locator = self.page.get_by_text(text, exact=exact).first
        try:
            locator.wait_for(state="attached", timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise ElementNotFound(what, f"'{text}' not found within {timeout_ms}ms") from e
        except PlaywrightError as e:
            raise AutomationError(f"Could not locate {what}", str(e)) from e
        return locator

    def _click(self, target, what):
        """Click with the automator's bound; Playwright errors become automation errors."""
        try:
            target.click(timeout=self.timeout_ms)
        except PlaywrightTimeout as e:
            raise Timeout(what, self.timeout_ms) from e
        except PlaywrightError as e:
            raise AutomationError(f"Could not click {what}", str(e)) from e

    def _fill(self, target, value, what):
        # fill() sets the value and dispatches the input event
        try:
            target.fill(value, timeout=self.timeout_ms)
        except PlaywrightTimeout as e:
            raise Timeout(what, self.timeout_ms) from e
        except PlaywrightError as e:
            raise AutomationError(f"Could not fill {what}", str(e)) from e

    # --- Playlist creation ---

    def create_playlist(self, name):
        """Create an empty playlist named `name` and return its handle.

        Raises ElementNotFound when a step's element never appears, Timeout
        when a click or fill exceeds the bound, and IdExtractionFailed when no
        playlist ID can be read afterwards. Any other page failure is an
        AutomationError."""
        if not name:
            raise InvalidRequest("Playlist name is required")

        with self._lock:
            log.debug(f"Creating playlist '{name}'")
            try:
                playlist_id = self._create(name)
            except PlaywrightError as e:
                raise AutomationError("Playlist creation failed", str(e)) from e

            self.playlist = PlaylistHandle(playlist_id, name)
            log.info(f"Created YouTube Music playlist '{name}' ({playlist_id})")
            return self.playlist

    def _create(self, name):
        s = self.selectors
        self._require(s.anchor, "navigation bar")
        create_what = f"'{s.create_playlist_text}' button"
        self._click(self._require_text(s.create_playlist_text, create_what), create_what)

        self._fill(self._require(s.name_input, "playlist name field"), name, "playlist name field")

        confirm_what = f"'{s.confirm_text}' button"
        self._click(self._require_text(s.confirm_text, confirm_what, exact=True), confirm_what)

        try:
            return self.wait_until(self._playlist_id_from_page)
        except Timeout as e:
            raise IdExtractionFailed(f"no list= ID in {self.page.url}") from e

    def _playlist_id_from_page(self):
        m = PLAYLIST_ID_RE.search(self.page.url or "")
        if m:
            return m.group(1)
        link = self.page.query_selector(self.selectors.playlist_link)
        if link is not None:
            m = PLAYLIST_ID_RE.search(link.get_attribute("href") or "")
            if m:
                return m.group(1)
        return None

    # --- Search and add ---

    def search(self, track):
        """Type "{title} {artist}" into the search box and collect up to 3 results."""
        s = self.selectors
        box = self._require(s.search_box, "search box")
        box.focus()
        self._fill(box, track.search_query, "search box")
        # Suggestions are debounced by the page; there is no element to wait on until they render.
        self.page.wait_for_timeout(self.settle_ms)

        results = self.await_observable(s.results, self.results_timeout_ms)
        candidates = []
        for item in results.query_selector_all(s.result_item)[:MAX_CANDIDATES]:
            title_el = item.query_selector(s.result_title)
            title = (title_el.text_content() or "").strip() if title_el is not None else ""
            candidates.append(Candidate(title, item))
        return candidates

    def search_and_add(self, track, playlist_name=None):
        """Search for `track` and add the top result to the target playlist.

        Never raises: every failure becomes MatchResult(found=False) with the
        state it stopped in. Only the first result is ever tried."""
        if playlist_name is None and self.playlist is not None:
            playlist_name = self.playlist.name

        with self._lock:
            state = AddState.SEARCHING
            try:
                if not track.search_query:
                    return self._miss(track, AddState.NO_RESULTS, "empty search query")
                if not playlist_name:
                    return self._miss(track, AddState.FAILED, "no target playlist")

                candidates = self.search(track)
                if not candidates:
                    return self._miss(track, AddState.NO_RESULTS, "no search results")
                state = AddState.RESULTS_AVAILABLE

                best = candidates[0]
                state = AddState.BEST_MATCH_SELECTED
                log.debug(f"  best match: {best.title or '?'} ({len(candidates)} candidates)")

                best.element.dispatch_event("contextmenu")
                state = AddState.CONTEXT_MENU_OPEN

                s = self.selectors
                add_what = f"'{s.add_to_playlist_text}' menu item"
                self._click(self._require_text(s.add_to_playlist_text, add_what), add_what)
                state = AddState.ADD_MENU_OPEN

                option_what = f"playlist option '{playlist_name}'"
                self._click(self._require_text(playlist_name, option_what, exact=True), option_what)
                state = AddState.PLAYLIST_SELECTED
                return MatchResult(track, True, best.element, state.value)

            except Timeout as e:
                return self._miss(track, AddState.TIMEOUT, f"{e} (after {state.value})")
            except ElementNotFound as e:
                return self._miss(track, AddState.AFFORDANCE_NOT_FOUND, f"{e} (after {state.value})")
            except AutomationError as e:
                return self._miss(track, AddState.FAILED, f"{e} (after {state.value})")
            except Exception as e:
                log.debug(f"  unexpected automation failure after {state.value}", exc_info=True)
                return self._miss(track, AddState.FAILED, f"{type(e).__name__}: {e}")

    def _miss(self, track, state, reason):
        log.debug(f"  {state.value}: {reason}")
        return MatchResult(track, False, None, state.value, reason)


@contextmanager
def open_browser(url=YTMUSIC_URL, profile_dir=BROWSER_PROFILE_DIR, headless=HEADLESS):
    """Yield a YouTube Music page in a persistent Chromium profile (keeps the login)."""
    with sync_playwright() as p:
        try:
            context = p.chromium.launch_persistent_context(profile_dir, headless=headless)
        except PlaywrightError as e:
            raise AutomationError("Could not launch the browser", str(e)) from e
        try:
            page = context.pages[0] if context.pages else context.new_page()
            try:
                page.goto(url, wait_until="domcontentloaded")
            except PlaywrightError as e:
                raise AutomationError(f"Could not open {url}", str(e)) from e
            yield page
        finally:
            context.close()
