from packt.constants import playlist_url
from packt.extractor import CatalogExtractor, clean_course_title

BASE = "https://subscription.packtpub.com"
COURSE_URL = f"{BASE}/video/programming/9781/python-basics"
OTHER_URL = f"{BASE}/video/programming/9782/broken-course"

PLAYLIST = f"""
<html><head><title>Playlists</title></head><body>
<h1>Weekend Learning</h1>
<div class="course-listing">
  <div class="card"><a href="/video/programming/9781/python-basics">Python Basics [Video]</a></div>
  <div class="card"><a href="/video/programming/9781/python-basics">View</a></div>
  <div class="card"><a href="{OTHER_URL}">Broken</a></div>
</div>
<a href="/register">Register</a>
</body></html>
"""

COURSE = """
<html><body>
<h1>Python Basics [Video]</h1>
<div class="author">By Jane Doe</div>
<div class="description">Learn Python from scratch.</div>
<div class="toc">
  <div class="chapter"><h3>1. Intro</h3>
    <ul><li><a href="/video/programming/9781/python-basics/p1/v1">1. Welcome</a></li></ul>
  </div>
</div>
</body></html>
"""

GATED = """
<html><body>
<h1>Gated Course</h1>
<button class="cta">Start Course</button>
</body></html>
"""

REVEALED = """
<html><body>
<h1>Gated Course</h1>
<div class="course-outline">
  <div class="section"><h2>Only chapter</h2>
    <a href="/video/x/p1/v1">Lesson</a><a href="/video/x/p1/v2">Lesson two</a>
  </div>
</div>
</body></html>
"""


def extractor(page):
    return CatalogExtractor(page, content_wait=0, scroll_time=0)


def test_clean_course_title():
    assert clean_course_title("Python Basics [Video]") == "Python Basics"
    assert clean_course_title("[Video]") == "Unknown Course"


async def test_extract_course(fake_page):
    page = fake_page(routes={COURSE_URL: COURSE})
    course = await extractor(page).extract_course(COURSE_URL)

    assert course.title == "Python Basics"
    assert course.author == "Jane Doe"
    assert course.description == "Learn Python from scratch."
    assert course.source_url == COURSE_URL
    assert course.total_video_count == 1
    assert course.chapters[0].videos[0].page_url == f"{COURSE_URL}/p1/v1"


async def test_missing_fields_degrade_to_placeholders(fake_page):
    page = fake_page(routes={COURSE_URL: "<html><body><h1>Bare</h1></body></html>"})
    ex = extractor(page)
    course = await ex.extract_course(COURSE_URL)

    assert course.title == "Bare"
    assert course.author == "Unknown Author"
    assert course.description == ""
    # the flat fallback always yields one chapter
    assert [c.title for c in course.chapters] == ["Course Content"]
    assert {issue.field for issue in ex.issues} == {"course author", "course description"}


async def test_reveal_button_is_clicked_before_extraction(fake_page):
    url = f"{BASE}/video/x"
    page = fake_page(routes={url: GATED}, clicks={'button:has-text("start course")': REVEALED})
    course = await extractor(page).extract_course(url)

    assert page.clicked == ['button:has-text("start course")']
    assert [c.title for c in course.chapters] == ["Only chapter"]
    assert [v.title for v in course.chapters[0].videos] == ["Lesson", "Lesson two"]


async def test_unreachable_course_becomes_placeholder(fake_page):
    page = fake_page(routes={})
    ex = extractor(page)
    course = await ex.extract_course(OTHER_URL)

    assert course.title == "Unknown Course"
    assert course.chapters == ()
    assert course.error
    assert ex.issues[0].field == "course"


async def test_extract_playlist(fake_page):
    page = fake_page(routes={playlist_url("42"): PLAYLIST, COURSE_URL: COURSE})
    playlist = await extractor(page).extract_playlist("42")

    assert playlist.id == "42"
    assert playlist.title == "Weekend Learning"
    assert playlist.url == playlist_url("42")
    # duplicate card link removed, broken course kept as a placeholder in order
    assert [c.source_url for c in playlist.courses] == [COURSE_URL, OTHER_URL]
    assert playlist.courses[0].title == "Python Basics"
    assert playlist.courses[1].title == "Unknown Course"
    assert page.visited == [playlist_url("42"), COURSE_URL, OTHER_URL]


async def test_empty_playlist(fake_page):
    page = fake_page(routes={playlist_url("7"): "<html><body><p>Nothing yet</p></body></html>"})
    playlist = await extractor(page).extract_playlist("7")

    assert playlist.title == "Playlist 7"
    assert playlist.courses == ()
