import pytest

from src.nova.core.stream_parser import (
    READY_SENTINEL,
    ParseState,
    StreamParser,
    clean_display_text,
    normalize_path,
    parse,
)
from .utils import HOMEPAGE_RESPONSE, MULTI_PAGE_RESPONSE


def test_end_to_end_homepage():
    state = parse(HOMEPAGE_RESPONSE)
    assert state.plan == ["Create homepage"]
    assert state.files == {"index.html": "<html><body>Hi</body></html>"}
    assert state.display_text == "Building a page."
    assert state.currently_building is None


def test_parse_is_idempotent():
    assert parse(MULTI_PAGE_RESPONSE) == parse(MULTI_PAGE_RESPONSE)
    assert parse(MULTI_PAGE_RESPONSE, final=True) == parse(MULTI_PAGE_RESPONSE, final=True)


def test_completed_files_only_grow_over_prefixes():
    previous: dict = {}
    for end in range(len(MULTI_PAGE_RESPONSE) + 1):
        files = parse(MULTI_PAGE_RESPONSE[:end]).files
        assert set(previous) <= set(files)
        for path, content in previous.items():
            assert files[path] == content
        previous = files
    assert set(previous) == {"pages/about.html", "css/styles.css"}


@pytest.mark.parametrize("size", [1, 2, 5, 13, 64])
def test_chunked_feed_matches_whole_buffer(size):
    parser = StreamParser()
    for i in range(0, len(MULTI_PAGE_RESPONSE), size):
        parser.feed(MULTI_PAGE_RESPONSE[i : i + size])
    assert parser.snapshot() == parse(MULTI_PAGE_RESPONSE)
    assert parser.snapshot().plan == ["Create about page", "Add styles"]


def test_open_block_reports_currently_building():
    state = parse("Intro\n\nFILE: app.js\n```js\nconsole.log(1)\n")
    assert state.files == {}
    assert state.currently_building == "app.js"
    assert state.display_text == "Intro"


def test_unterminated_line_waits_for_close():
    buffer = "FILE: a.css\n```css\nbody{}\n```"
    assert parse(buffer).files == {}
    assert parse(buffer, final=True).files == {"a.css": "body{}"}


def test_close_keeps_unterminated_block_out_of_files():
    parser = StreamParser().feed("Working on it\nFILE: a.html\n```html\n<p>partial")
    state = parser.close().snapshot()
    assert state.files == {}
    assert state.currently_building == "a.html"
    assert state.display_text == "Working on it"
    assert parser.closed
    # Input after close is ignored
    parser.feed("\n```\n")
    assert parser.snapshot().files == {}


def test_marker_for_other_path_finalizes_open_block():
    buffer = "FILE: a.html\n```html\n<p>a</p>\nFILE: b.html\n```html\n<p>b</p>\n```\n"
    assert parse(buffer).files == {"a.html": "<p>a</p>", "b.html": "<p>b</p>"}


def test_marker_for_same_path_restarts_block():
    buffer = "FILE: a.html\n```html\nold\nFILE: a.html\n```html\nnew\n```\n"
    assert parse(buffer).files == {"a.html": "new"}


def test_first_completed_version_of_a_path_wins():
    buffer = "FILE: a.txt\n```\none\n```\nFILE: a.txt\n```\ntwo\n```\n"
    assert parse(buffer).files == {"a.txt": "one"}


def test_marker_without_fence_is_dropped():
    buffer = "FILE: lost.html\nFILE: kept.html\n```html\n<p>k</p>\n```\n"
    assert parse(buffer).files == {"kept.html": "<p>k</p>"}


def test_indented_marker_inside_content_is_content():
    buffer = "FILE: README.md\n```md\n  FILE: not-a-marker\n```\n"
    assert parse(buffer).files == {"README.md": "  FILE: not-a-marker"}


def test_blank_lines_between_marker_and_fence_are_skipped():
    buffer = "FILE: a.js\n\n\n```js\nlet a = 1;\n\nlet b = 2;\n```\n"
    assert parse(buffer).files == {"a.js": "let a = 1;\n\nlet b = 2;"}


def test_crlf_line_endings():
    buffer = "Hi\r\nFILE: a.css\r\n```css\r\nb{}\r\n```\r\n"
    state = parse(buffer)
    assert state.files == {"a.css": "b{}"}
    assert state.display_text == "Hi"


def test_bare_html_block_falls_back_to_index():
    state = parse("Here you go\n```html\n<h1>x</h1>\n```\n")
    assert state.files == {"index.html": "<h1>x</h1>"}
    assert state.display_text == "Here you go"


def test_bare_non_html_block_is_ignored():
    assert parse("Example:\n```js\nalert(1)\n```\n").files == {}


def test_fallback_not_used_once_a_marker_was_seen():
    buffer = "FILE: a.css\n```css\nx\n```\n```html\n<h1/>\n```\n"
    assert parse(buffer).files == {"a.css": "x"}


def test_sentinel_is_never_content():
    buffer = f"Done.\nFILE: a.txt\n```\nline\n{READY_SENTINEL}\n```\n{READY_SENTINEL}"
    state = parse(buffer, final=True)
    assert state.files == {"a.txt": "line"}
    assert READY_SENTINEL not in state.display_text


def test_plan_bullet_variants_and_stop():
    buffer = "Plan ahead.\n\n📋 Plan:\n- Step 1: First\n2) Second\n* Third\nNot a bullet\n• Ignored\n"
    state = parse(buffer)
    assert state.plan == ["First", "Second", "Third"]
    assert state.display_text == "Plan ahead."


def test_only_first_plan_block_is_used():
    buffer = "📋 Plan:\n• A\n\n📋 Plan:\n• B\n"
    assert parse(buffer).plan == ["A"]


def test_partial_plan_line_shows_in_snapshot():
    parser = StreamParser().feed("📋 Plan:\n• Step 1: Build nav")
    assert parser.snapshot().plan == ["Build nav"]


def test_display_text_collapses_blank_runs():
    assert parse("Line1\n\n\n\nLine2\nFILE: x\n").display_text == "Line1\n\nLine2"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("index.html", "index.html"),
        ("`index.html`", "index.html"),
        ("'pages/a.html'", "pages/a.html"),
        ("./src\\app.js", "src/app.js"),
        ("/css/site.css", "css/site.css"),
    ],
)
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_clean_display_text_strips_plan_and_sentinel():
    assert clean_display_text(f"Hello\n📋 Plan:\n• x\n{READY_SENTINEL}") == "Hello"


def test_to_dict_lists_files_in_order():
    state = ParseState(files={"b": "2", "a": "1"}, plan=["p"])
    data = state.to_dict()
    assert [f["path"] for f in data["files"]] == ["b", "a"]
    assert data["plan"] == ["p"]
    assert state.has_files


def test_display_text_tracks_reply_fed_in_small_chunks():
    reply = (
        "Sure, here is a note.\n\n\n\nIt has two paragraphs.\n\n"
        "📋 Plan:\n• Step 1: Write it\n"
    )
    parser = StreamParser()
    for i in range(0, len(reply), 3):
        parser.feed(reply[i:i + 3])
        assert parser.snapshot().display_text == clean_display_text(reply[: i + 3])
    state = parser.close().snapshot()
    assert state.display_text == "Sure, here is a note.\n\nIt has two paragraphs."
    assert state.plan == ["Write it"]


def test_long_single_line_file_streams_without_leaking_into_display():
    parser = StreamParser().feed("Intro\nFILE: app.js\n```js\n")
    for _ in range(500):
        parser.feed("x")
        state = parser.snapshot()
        assert state.display_text == "Intro"
        assert state.currently_building == "app.js"
        assert state.files == {}
    parser.feed("\n```\nDone.\n")
    state = parser.snapshot()
    assert state.files == {"app.js": "x" * 500}
    assert state.display_text == "Intro"
