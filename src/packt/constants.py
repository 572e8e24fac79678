from pathlib import Path

SESSION_DIR = Path.home() / ".packt"
SESSION_FILE = SESSION_DIR / "state.json"
CACHE_DIR = SESSION_DIR / "cache"
REPORT_FILE = SESSION_DIR / "download_report.json"

BASE_URL = "https://subscription.packtpub.com"
LOGIN_URL = f"{BASE_URL}/login"
PLAYLISTS_URL = f"{BASE_URL}/playlists"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": BASE_URL,
}

# session
MAX_RETRIES = 3
RETRY_DELAY = 2.0  # seconds, grows as delay * 2 * attempt
CHALLENGE_POLL_INTERVAL = 2.0  # seconds
CHALLENGE_TIMEOUT = 120.0  # seconds
LOGIN_MARKER_TIMEOUT = 20.0  # seconds

# page driver (milliseconds, as Playwright expects)
NAVIGATION_TIMEOUT = 60_000
SELECTOR_TIMEOUT = 10_000
CLICK_TIMEOUT = 3_000

# extraction pacing (seconds)
CONTENT_WAIT = 5.0
PLAY_WAIT = 5.0
SCROLL_TIME = 2.0

# scan bounds for selector strategies
MAX_SCAN_CHARS = 5_000_000
MAX_SCAN_ELEMENTS = 2_000
MAX_JSON_OBJECTS = 500

MEDIA_EXTENSION = ".mp4"
STREAM_PATTERNS = (".mp4", ".m3u8", ".mpd", "/video/", "/hls/", "/stream/")


def playlist_url(playlist_id: str) -> str:
    return f"{PLAYLISTS_URL}/{playlist_id}"


# progress bars
BAR_FORMAT = "{desc} |{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"
BAR_ASCII = "░█"
