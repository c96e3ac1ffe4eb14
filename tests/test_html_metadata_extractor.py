from datetime import datetime, timezone

from richlink_api.services.html_metadata_extractor import (
    clean_text,
    extract_html_metadata,
    extract_next_data,
    extract_reading_time,
    extract_window_json,
    find_json_ld,
    parse_datetime,
    regex_extract_basic,
)

ARTICLE_PAGE = """
<html>
<head>
  <title>Fallback &amp; Title</title>
  <meta name="description" content="Plain description">
  <meta property="og:title" content="Tom &amp; Jerry&#39;s   Guide">
  <meta property="og:description" content="An   OG description">
  <meta property="og:image" content="/img.png">
  <meta property="og:url" content="https://example.com/page">
  <meta property="og:site_name" content="Example">
  <meta property="og:type" content="article">
  <meta name="author" content="Jane Doe">
  <meta property="article:published_time" content="2026-01-15T08:30:00Z">
  <meta property="article:tag" content="python">
  <meta property="article:tag" content="web">
  <link rel="canonical" href="/canonical-page">
  <link rel="shortcut icon" href="/static/favicon.png">
  <script type="application/ld+json">
    {"@context": "https://schema.org", "@graph": [
      {"@type": "WebSite", "name": "Example"},
      {"@type": "BlogPosting", "headline": "Structured headline"}
    ]}
  </script>
</head>
<body>5 min read</body>
</html>
"""


def test_extracts_open_graph_fields_and_resolves_relative_urls():
    metadata = extract_html_metadata(ARTICLE_PAGE, "https://example.com/page")

    assert metadata.title == "Tom & Jerry's Guide"
    assert metadata.description == "An OG description"
    assert metadata.image == "https://example.com/img.png"
    assert metadata.favicon == "https://example.com/static/favicon.png"
    assert metadata.canonical_url == "https://example.com/canonical-page"
    assert metadata.site_name == "Example"
    assert metadata.og_type == "article"
    assert metadata.meta_title == "Fallback & Title"
    assert metadata.meta_description == "Plain description"
    assert metadata.author == "Jane Doe"
    assert metadata.published_time == "2026-01-15T08:30:00Z"
    assert metadata.tags == ["python", "web"]


def test_json_ld_graph_blocks_are_flattened():
    metadata = extract_html_metadata(ARTICLE_PAGE, "https://example.com/page")

    article = find_json_ld(metadata.json_ld)
    assert article == {"@type": "BlogPosting", "headline": "Structured headline"}


def test_title_falls_back_to_title_tag_then_twitter():
    html = (
        "<html><head><title> Only   title </title>"
        '<meta name="twitter:description" content="Tweet text"></head></html>'
    )
    metadata = extract_html_metadata(html, "https://example.com/")
    assert metadata.title == "Only title"
    assert metadata.description == "Tweet text"
    assert metadata.favicon is None

    twitter_only = '<html><head><meta name="twitter:title" content="Card"></head></html>'
    assert extract_html_metadata(twitter_only, "https://example.com/").title == "Card"


def test_unparsable_json_ld_is_skipped():
    html = (
        '<html><head><script type="application/ld+json">{not json</script>'
        "</head></html>"
    )
    assert extract_html_metadata(html, "https://example.com/").json_ld == []


def test_extract_next_data_from_script_tag():
    html = (
        '<html><script id="__NEXT_DATA__" type="application/json">'
        '{"props": {"pageProps": {"post": {"title": "Hi"}}}}</script></html>'
    )
    assert extract_next_data(html)["props"]["pageProps"]["post"]["title"] == "Hi"


def test_extract_next_data_from_window_assignment():
    html = '<script>window.__NEXT_DATA__ = {"props": {"page": 1}};</script>'
    assert extract_next_data(html) == {"props": {"page": 1}}


def test_extract_window_json_handles_json_parse_payloads():
    html = r'<script>window._preloads = JSON.parse("{\"post\": {\"title\": \"Hello\"}}")</script>'
    assert extract_window_json(html, "_preloads") == {"post": {"title": "Hello"}}
    assert extract_window_json("<script></script>", "_preloads") is None


def test_reading_time_and_regex_basics():
    assert extract_reading_time("<span>12 min read</span>") == 12
    assert extract_reading_time("no reading time") is None

    basic = regex_extract_basic(
        '<title>Raw &amp; title</title><meta name="description" content="Desc">'
        '<meta name="author" content="Ann">'
    )
    assert basic["title"] == "Raw & title"
    assert basic["description"] == "Desc"
    assert basic["author"] == "Ann"
    assert basic.get("image") is None


def test_clean_text_and_parse_datetime():
    assert clean_text("  a&nbsp;&amp;\n b ") == "a & b"
    assert clean_text("   ") is None
    assert parse_datetime("2026-01-15T08:30:00Z") == datetime(
        2026, 1, 15, 8, 30, tzinfo=timezone.utc
    )
    assert parse_datetime(1767225600000) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime("yesterday") is None
    assert parse_datetime(None) is None
