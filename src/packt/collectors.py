import json
import re
from typing import Iterator

from bs4 import Tag

from .constants import MAX_JSON_OBJECTS, MEDIA_EXTENSION, STREAM_PATTERNS
from .locators import Scope, SelectorEngine, Target
from .models import Chapter, MediaCandidate, SourceKind, Video

ENGINE = SelectorEngine()

JUNK_LINK_PARTS = ("javascript:", "login", "register", "about", "contact", "support")
COURSE_HREF_PARTS = ("/course/", "/video/", "/book/")
COURSE_TEXT_WORDS = ("watch", "view", "start", "course", "learn", "read")
VIDEO_HREF_PARTS = ("video", "player", "watch")
VIDEO_TEXT_WORDS = ("video", "lesson", "lecture", "watch")
REVEAL_PHRASES = ("view course", "watch course", "start course", "begin course")
MAIN_CONTENT = 'main, [role="main"], .main-content, #content, #main'
MP4_URL = re.compile(r"""['"](https?://[^'"]+\.mp4[^'"]*)['"]""")


def _first_present(*selectors: str):
    """Build a strategy returning the first selector present in the scope."""

    def strategy(scope: Scope) -> str | None:
        for selector in selectors:
            if scope.has(selector):
                return selector
        return None

    return strategy


def _first_text(selector: str):
    def strategy(scope: Scope) -> str | None:
        for element in scope.select(selector):
            text = Scope.text(element)
            if text:
                return text
        return None

    return strategy


def _href(scope: Scope, anchor: Tag) -> str | None:
    href = (anchor.get("href") or "").strip()
    if not href or href.startswith("#"):
        return None
    if any(part in href.lower() for part in JUNK_LINK_PARTS):
        return None
    url = scope.absolute(href).split("#", 1)[0]
    if url == scope.base_url.split("#", 1)[0]:
        return None
    return url


def _unique(urls) -> list[str]:
    return list(dict.fromkeys(url for url in urls if url))


# ---------------------------------------------------------------- login


ENGINE.register(Target.LOGIN_EMAIL, "username input")(
    _first_present("#inline-form-input-username")
)
ENGINE.register(Target.LOGIN_EMAIL, "email input")(_first_present("#login-input-email"))
ENGINE.register(Target.LOGIN_EMAIL, "typed email input")(
    _first_present('input[type="email"]', 'input[name="email"]')
)

ENGINE.register(Target.LOGIN_PASSWORD, "inline password input")(
    _first_present("#inline-form-input-password")
)
ENGINE.register(Target.LOGIN_PASSWORD, "password input")(_first_present("#login-input-password"))
ENGINE.register(Target.LOGIN_PASSWORD, "typed password input")(
    _first_present('input[type="password"]')
)

ENGINE.register(Target.LOGIN_SUBMIT, "login form button")(
    _first_present(
        "button.login-page__main__container__login__form__button__login",
        'button[class*="login"]',
    )
)
ENGINE.register(Target.LOGIN_SUBMIT, "sign-in form submit")(
    _first_present('form[name="sign-in-form"] button[type="submit"]')
)
ENGINE.register(Target.LOGIN_SUBMIT, "any submit")(
    _first_present('form button[type="submit"]', 'input[type="submit"]')
)


@ENGINE.register(Target.LOGIN_ERROR, "error alert")
def login_error(scope: Scope) -> str | None:
    for element in scope.select(".alert.alert-danger, .error-field, .alert-danger, .error-message"):
        text = Scope.text(element)
        if text:
            return text
    return None


ENGINE.register(Target.CHALLENGE, "recaptcha")(
    _first_present(
        ".grecaptcha-badge",
        'iframe[src*="recaptcha"]',
        ".g-recaptcha",
        'iframe[title*="recaptcha"]',
    )
)
ENGINE.register(Target.CHALLENGE, "generic captcha")(_first_present('iframe[src*="captcha"]'))

ENGINE.register(Target.POST_LOGIN, "avatar")(
    _first_present('[data-testid="avatar-button-desktop"]', ".user-avatar")
)
ENGINE.register(Target.POST_LOGIN, "account links")(
    _first_present('a[href*="/account"]', 'a[href*="logout"]')
)
ENGINE.register(Target.POST_LOGIN, "dashboard")(_first_present("#dashboard", "#user-menu"))


# ------------------------------------------------------------- playlist


ENGINE.register(Target.PLAYLIST_TITLE, "playlist heading")(
    _first_text(".playlist-title, .title, .course-title")
)
ENGINE.register(Target.PLAYLIST_TITLE, "h1")(_first_text("h1"))


@ENGINE.register(Target.COURSE_LINKS, "course cards")
def course_cards(scope: Scope) -> list[str]:
    urls = []
    for anchor in scope.select("a[href]"):
        href = (anchor.get("href") or "").lower()
        text = Scope.text(anchor).lower()
        in_card = anchor.find_parent(
            lambda tag: tag.name == "article"
            or any(
                word in cls
                for cls in tag.get("class") or []
                for word in ("card", "course", "item", "playlist-item")
            )
        )
        if (
            in_card
            or any(part in href for part in COURSE_HREF_PARTS)
            or any(word in text for word in COURSE_TEXT_WORDS)
        ):
            urls.append(_href(scope, anchor))
    return _unique(urls)


@ENGINE.register(Target.COURSE_LINKS, "titled links")
def titled_links(scope: Scope) -> list[str]:
    urls = []
    for anchor in scope.select("a[href]"):
        if not (anchor.get("title") or "").strip():
            continue
        href = (anchor.get("href") or "").lower()
        text = Scope.text(anchor).lower()
        if any(part in href for part in COURSE_HREF_PARTS) or any(
            word in text for word in ("course", "chapter", "video")
        ):
            urls.append(_href(scope, anchor))
    return _unique(urls)


@ENGINE.register(Target.COURSE_LINKS, "main content links")
def main_content_links(scope: Scope) -> list[str]:
    urls = []
    for main in scope.select(MAIN_CONTENT):
        urls.extend(_href(scope, anchor) for anchor in scope.select("a[href]", main))
    return _unique(urls)


@ENGINE.register(Target.REVEAL_BUTTON, "reveal phrase")
def reveal_button(scope: Scope) -> str | None:
    """Returns a Playwright text selector, the engine does not click."""
    for element in scope.select("a, button"):
        text = Scope.text(element).lower()
        for phrase in REVEAL_PHRASES:
            if phrase in text:
                return f'{element.name}:has-text("{phrase}")'
    return None


# --------------------------------------------------------------- course


@ENGINE.register(Target.COURSE_TITLE, "h1")
def course_title(scope: Scope) -> str | None:
    return Scope.text(scope.select_one("h1")) or None


@ENGINE.register(Target.COURSE_TITLE, "document title")
def document_title(scope: Scope) -> str | None:
    return Scope.text(scope.select_one("title")) or None


def _author(selector: str):
    def strategy(scope: Scope) -> str | None:
        element = scope.select_one(selector)
        text = re.sub(r"^\s*By\b:?", "", Scope.text(element)).strip()
        return text or None

    return strategy


ENGINE.register(Target.COURSE_AUTHOR, "author byline")(_author(".author, .instructor, .by-line"))
ENGINE.register(Target.COURSE_AUTHOR, "itemprop author")(_author('[itemprop="author"]'))
ENGINE.register(Target.COURSE_AUTHOR, "instructor name")(_author(".instructor-name"))
ENGINE.register(Target.COURSE_AUTHOR, "course author")(_author(".course-author"))

ENGINE.register(Target.COURSE_DESCRIPTION, "overview block")(
    _first_text(".description, .overview, .summary")
)
ENGINE.register(Target.COURSE_DESCRIPTION, "lead paragraph")(_first_text("p.lead"))
ENGINE.register(Target.COURSE_DESCRIPTION, "itemprop description")(
    _first_text('[itemprop="description"]')
)


@ENGINE.register(Target.COURSE_DESCRIPTION, "meta description")
def meta_description(scope: Scope) -> str | None:
    element = scope.select_one('meta[name="description"]')
    if element is None:
        return None
    return (element.get("content") or "").strip() or None


ENGINE.register(Target.COURSE_DESCRIPTION, "course description")(
    _first_text(".course-description")
)


# ------------------------------------------------------------- chapters


def _video_title(anchor: Tag) -> str:
    title = Scope.text(anchor)
    if len(title) < 3 and anchor.parent is not None:
        title = Scope.text(anchor.parent.select_one("h3, h4, .title, .video-title, .lesson-title"))
    return title or (anchor.get("title") or "").strip()


def _is_video_link(anchor: Tag) -> bool:
    href = (anchor.get("href") or "").lower()
    text = Scope.text(anchor).lower()
    return any(part in href for part in VIDEO_HREF_PARTS) or any(
        word in text for word in VIDEO_TEXT_WORDS
    )


def _videos(scope: Scope, anchors, seen: set[str]) -> list[Video]:
    videos = []
    for anchor in anchors:
        url = _href(scope, anchor)
        if url is None or url in seen:
            continue
        seen.add(url)
        order = len(videos) + 1
        videos.append(Video(title=_video_title(anchor) or f"Video {order}", order=order, page_url=url))
    return videos


def _chapter_anchors(scope: Scope, element: Tag) -> list[Tag]:
    anchors = scope.select('a[href*="video"], a[href*="course"], a[href*="player"]', element)
    if not anchors:
        anchors = [
            anchor
            for container in scope.select(
                ".video-item, .lesson, .lecture, li, .video, .course-content-item", element
            )
            if (anchor := container.find("a", href=True)) is not None
        ]
    if not anchors:
        anchors = [a for a in scope.select("a[href]", element) if _is_video_link(a)]
    return anchors


def _top_level(elements: list[Tag]) -> list[Tag]:
    matched = {id(element) for element in elements}
    return [
        element
        for element in elements
        if not any(id(parent) in matched for parent in element.parents)
    ]


def _chapters(pairs: Iterator[tuple[str, list[Video]]]) -> list[Chapter]:
    chapters = []
    for title, videos in pairs:
        if not videos:
            continue
        order = len(chapters) + 1
        chapters.append(Chapter(title=title or f"Chapter {order}", order=order, videos=videos))
    return chapters


@ENGINE.register(Target.CHAPTERS, "table of contents")
def toc_chapters(scope: Scope) -> list[Chapter] | None:
    for toc in scope.select(".toc, .course-outline, .curriculum, .course-content"):
        for selector in (
            ".chapter, .section, .module, .unit",
            ".chapter-header, .section-header, .module-header",
            '[class*="chapter"], [id*="chapter"]',
        ):
            elements = _top_level(scope.select(selector, toc))
            if not elements:
                continue

            seen: set[str] = set()

            def pairs():
                for element in elements:
                    title = Scope.text(element.select_one(".title, h2, h3, h4, .header, .heading"))
                    anchors = _chapter_anchors(scope, element)
                    sibling = element.find_next_sibling()
                    if (
                        not anchors
                        and sibling is not None
                        and all(sibling is not other for other in elements)
                    ):
                        anchors = _chapter_anchors(scope, sibling)
                    yield title or Scope.text(element), _videos(scope, anchors, seen)

            chapters = _chapters(pairs())
            if chapters:
                return chapters
    return None


@ENGINE.register(Target.CHAPTERS, "heading sections")
def heading_chapters(scope: Scope) -> list[Chapter] | None:
    root = scope.select_one(MAIN_CONTENT) or scope.soup
    level = "h2" if root.find("h2") else "h3"
    sections: list[tuple[str, list[Tag]]] = []

    for element in root.find_all([level, "a"], limit=scope.max_elements):
        if element.name == level:
            sections.append((Scope.text(element), []))
        elif sections and element.get("href") and _is_video_link(element):
            sections[-1][1].append(element)

    seen: set[str] = set()
    return _chapters((title, _videos(scope, anchors, seen)) for title, anchors in sections) or None


@ENGINE.register(Target.CHAPTERS, "single chapter")
def flat_chapter(scope: Scope) -> list[Chapter]:
    root = scope.select_one(".course-content, .main-content, #content, main") or scope.soup
    anchors = [a for a in scope.select("a[href]", root) if _is_video_link(a)]
    return [Chapter(title="Course Content", order=1, videos=_videos(scope, anchors, set()))]


# ---------------------------------------------------------------- video


PLAY_CONTROLS = (
    'button[aria-label="Play"]',
    ".play-button",
    ".vjs-big-play-button",
    '[class*="play-button"]',
    '[id*="play-button"]',
)

for _selector in PLAY_CONTROLS:
    ENGINE.register(Target.PLAY_CONTROL, _selector)(_first_present(_selector))
ENGINE.register(Target.PLAY_CONTROL, "video element")(_first_present("video"))


def _element_sources(element: Tag) -> Iterator[str]:
    # data-current-src is stamped by the resolver from the live currentSrc
    yield element.get("data-current-src") or ""
    yield element.get("src") or ""
    for source in element.find_all("source", src=True):
        yield source["src"]


def _candidate(url: str, origin: str) -> MediaCandidate:
    return MediaCandidate(url=url, kind=SourceKind.from_url(url), origin=origin)


def _player_source(scope: Scope, selector: str, origin: str) -> MediaCandidate | None:
    """First MP4 source of a matching element; streams and embed pages are left to the network tier."""
    for element in scope.select(selector):
        for src in _element_sources(element):
            src = src.strip()
            if not src or src.startswith("blob:"):
                continue
            candidate = _candidate(scope.absolute(src), origin)
            if candidate.kind is SourceKind.MP4:
                return candidate
    return None


@ENGINE.register(Target.VIDEO_SOURCE, "labelled player")
def labelled_player(scope: Scope) -> MediaCandidate | None:
    return _player_source(scope, 'video[aria-label="Video Player"]', "labelled player")


@ENGINE.register(Target.VIDEO_SOURCE, "player element")
def player_element(scope: Scope) -> MediaCandidate | None:
    return _player_source(
        scope,
        'video, [aria-label*="video" i], [aria-label*="player" i], '
        '[class*="video-player"], [id*="video-player"]',
        "player element",
    )


@ENGINE.register(Target.VIDEO_SOURCE, "markup scan")
def markup_scan(scope: Scope) -> MediaCandidate | None:
    match = MP4_URL.search(scope.markup)
    return _candidate(match.group(1), "markup scan") if match else None


def _json_objects(text: str, limit: int = MAX_JSON_OBJECTS) -> Iterator:
    decoder = json.JSONDecoder()
    index = 0
    for _ in range(limit):
        start = text.find("{", index)
        if start == -1:
            return
        try:
            obj, end = decoder.raw_decode(text, start)
        except ValueError:
            index = start + 1
            continue
        yield obj
        index = end


def _media_urls(obj) -> Iterator[str]:
    if isinstance(obj, dict):
        for key, value in obj.items():
            if (
                isinstance(value, str)
                and ("url" in key.lower() or "src" in key.lower())
                and value.startswith("http")
                and MEDIA_EXTENSION in value.lower()
            ):
                yield value
            else:
                yield from _media_urls(value)
    elif isinstance(obj, list):
        for item in obj:
            yield from _media_urls(item)


@ENGINE.register(Target.VIDEO_SOURCE, "inline script data")
def inline_script_data(scope: Scope) -> MediaCandidate | None:
    for script in scope.select("script:not([src])"):
        for obj in _json_objects(script.string or ""):
            for url in _media_urls(obj):
                return _candidate(url, "inline script data")
    return None


@ENGINE.register(Target.VIDEO_SOURCE, "network traffic")
def network_traffic(scope: Scope) -> MediaCandidate | None:
    urls = [url for url in scope.network_urls if any(p in url.lower() for p in STREAM_PATTERNS)]
    for url in urls:
        if SourceKind.from_url(url) is SourceKind.MP4:
            return _candidate(url, "network traffic")
    return _candidate(urls[0], "network traffic") if urls else None
