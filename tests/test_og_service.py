import httpx
import pytest

from conftest import FakeClock, NOW, html_response, mock_client, page
from richlink_api.common.errors import PreviewErrorCode, PreviewFetchError
from richlink_api.services.og_service import WebpageScraper, validate_url


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/page",
        "http://example.com:8080/path?q=1",
        "https://93.184.216.34/",
    ],
)
def test_public_http_urls_are_allowed(url):
    assert validate_url(url)


@pytest.mark.parametrize(
    "url",
    [
        "http://169.254.169.254/latest/meta-data/",
        "http://127.0.0.1:8000/",
        "http://localhost/",
        "http://api.localhost/",
        "http://10.0.0.5/",
        "http://192.168.1.1/admin",
        "http://[::1]/",
        "http://[::ffff:127.0.0.1]/",
        "http://0.0.0.0/",
        "http://127.1/",
        "http://2130706433/",
        "http://0x7f000001/",
        "http://0177.0.0.1/",
        "http://169.254.43518/",
        "http://100.64.0.1/",
        "ftp://example.com/file",
        "javascript:alert(1)",
        "not a url",
        "http://[::1",
    ],
)
def test_local_private_and_non_http_urls_are_rejected(url):
    assert not validate_url(url)


@pytest.mark.asyncio
async def test_fetches_open_graph_metadata(upstream, http_client, clock):
    upstream.add(
        "https://example.com/article",
        html_response(
            page(
                "Example Article",
                "About things",
                '<meta property="og:image" content="/img.png">'
                '<meta property="og:site_name" content="Example">',
            )
        ),
    )
    scraper = WebpageScraper(http_client, clock=clock)

    metadata = await scraper.fetch_webpage_metadata("https://example.com/article")

    assert metadata.type == "webpage"
    assert metadata.title == "Example Article"
    assert metadata.description == "About things"
    assert metadata.image == "https://example.com/img.png"
    assert metadata.favicon == "https://example.com/favicon.ico"
    assert metadata.site_name == "Example"
    assert metadata.domain == "example.com"
    assert metadata.url == "https://example.com/article"
    assert metadata.fetched_at == NOW
    assert (metadata.expires_at - metadata.fetched_at).days == 7

    request = upstream.requests[0]
    assert "RichLink-Bot" in request.headers["user-agent"]


@pytest.mark.asyncio
async def test_disallowed_url_issues_no_request(upstream, http_client):
    scraper = WebpageScraper(http_client)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("http://169.254.169.254/latest/meta-data/")

    assert exc_info.value.code == PreviewErrorCode.INVALID_URL
    assert not exc_info.value.retryable
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_redirects_are_followed_and_revalidated(upstream, http_client):
    upstream.add(
        "https://example.com/old",
        httpx.Response(301, headers={"location": "/new"}),
    )
    upstream.add("https://example.com/new", html_response(page("Moved page")))
    scraper = WebpageScraper(http_client)

    metadata = await scraper.fetch_webpage_metadata("https://example.com/old")

    assert metadata.title == "Moved page"
    assert metadata.url == "https://example.com/new"
    assert [str(r.url) for r in upstream.requests] == [
        "https://example.com/old",
        "https://example.com/new",
    ]


@pytest.mark.asyncio
async def test_redirect_to_private_host_is_refused(upstream, http_client):
    upstream.add(
        "https://example.com/sneaky",
        httpx.Response(302, headers={"location": "http://169.254.169.254/latest"}),
    )
    scraper = WebpageScraper(http_client)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("https://example.com/sneaky")

    assert exc_info.value.code == PreviewErrorCode.INVALID_URL
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url", ["http://2130706433/", "http://127.1/admin", "http://0x7f000001/"]
)
async def test_numeric_loopback_hosts_issue_no_request(upstream, http_client, url):
    scraper = WebpageScraper(http_client)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata(url)

    assert exc_info.value.code == PreviewErrorCode.INVALID_URL
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_redirect_to_numeric_link_local_host_is_refused(upstream, http_client):
    upstream.add(
        "https://example.com/hop",
        httpx.Response(302, headers={"location": "http://169.254.43518/latest"}),
    )
    scraper = WebpageScraper(http_client)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("https://example.com/hop")

    assert exc_info.value.code == PreviewErrorCode.INVALID_URL
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_redirect_loop_stops():
    client = mock_client(
        lambda request: httpx.Response(302, headers={"location": str(request.url)})
    )
    scraper = WebpageScraper(client)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("https://example.com/loop")

    assert exc_info.value.code == PreviewErrorCode.NETWORK_ERROR


@pytest.mark.asyncio
async def test_non_html_content_is_rejected(upstream, http_client):
    upstream.add(
        "https://example.com/data.json",
        httpx.Response(200, headers={"content-type": "application/json"}, text="{}"),
    )
    scraper = WebpageScraper(http_client)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("https://example.com/data.json")

    assert exc_info.value.code == PreviewErrorCode.INVALID_URL


@pytest.mark.asyncio
async def test_oversized_body_is_rejected(upstream, http_client):
    upstream.add(
        "https://example.com/huge",
        html_response(page("Huge", "x" * 500)),
    )
    scraper = WebpageScraper(http_client, max_content_bytes=100)

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("https://example.com/huge")

    assert exc_info.value.code == PreviewErrorCode.INVALID_URL
    assert "too large" in exc_info.value.message


@pytest.mark.asyncio
async def test_timeout_maps_to_retryable_network_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    scraper = WebpageScraper(mock_client(handler))

    with pytest.raises(PreviewFetchError) as exc_info:
        await scraper.fetch_webpage_metadata("https://slow.example.com/")

    assert exc_info.value.code == PreviewErrorCode.NETWORK_ERROR
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_upstream_status_maps_to_error_codes(upstream, http_client):
    upstream.add("https://example.com/limited", html_response("", status_code=429))
    scraper = WebpageScraper(http_client)

    with pytest.raises(PreviewFetchError) as missing:
        await scraper.fetch_webpage_metadata("https://example.com/missing")
    with pytest.raises(PreviewFetchError) as limited:
        await scraper.fetch_webpage_metadata("https://example.com/limited")

    assert missing.value.code == PreviewErrorCode.NOT_FOUND
    assert not missing.value.retryable
    assert limited.value.code == PreviewErrorCode.RATE_LIMITED
    assert limited.value.retryable


def test_parse_webpage_prefers_declared_favicon_and_canonical_url():
    scraper = WebpageScraper(mock_client(lambda _: httpx.Response(500)), clock=FakeClock())
    html = page(
        "Docs",
        extra_head='<link rel="icon" href="https://cdn.example.com/icon.svg">'
        '<link rel="canonical" href="https://docs.example.com/start">',
    )

    metadata = scraper.parse_webpage(html, "https://docs.example.com/start?ref=x")

    assert metadata.favicon == "https://cdn.example.com/icon.svg"
    assert metadata.url == "https://docs.example.com/start"


def test_parse_webpage_rejects_non_html_text():
    scraper = WebpageScraper(mock_client(lambda _: httpx.Response(500)))

    with pytest.raises(PreviewFetchError) as exc_info:
        scraper.parse_webpage("just some text", "https://example.com/")

    assert exc_info.value.code == PreviewErrorCode.PARSE_ERROR
