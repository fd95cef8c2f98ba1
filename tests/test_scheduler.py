"""
Crawl Loop Tests

End-to-end crawls over an in-memory web served by a mock aiohttp session.
"""

import pytest
from dataclasses import replace

from polite_crawler.crawler.fetcher import WebFetcher, FixedBackoff
from polite_crawler.crawler.parser import ContentParser
from polite_crawler.crawler.scheduler import CrawlerScheduler
from polite_crawler.crawler.url_filter import UrlFilter
from polite_crawler.crawler.url_frontier import URLFrontier, FrontierEntry
from polite_crawler.exceptions import InvalidSeedURLError
from tests.conftest import drain


def links(*hrefs):
    return "<html><body>" + "".join(f'<a href="{href}">link</a>' for href in hrefs) + "</body></html>"


def make_scheduler(config, session, observer, **kwargs):
    fetcher = WebFetcher(
        config.user_agent,
        max_retries=config.max_retries,
        backoff=FixedBackoff(0),
        max_concurrent_requests=config.max_concurrent_requests,
        session=session
    )
    return CrawlerScheduler(config, observer=observer, fetcher=fetcher, **kwargs)


@pytest.mark.asyncio
async def test_same_domain_scenario(fast_config, fake_web, mock_session, observer):
    """Seed links to /a and y.test/b: only x.test/a is queued at depth 1"""
    config = replace(fast_config, max_depth=1, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/a", "https://y.test/b"))

    scheduler = make_scheduler(config, mock_session, observer)
    await scheduler.initialize()
    scheduler.frontier = URLFrontier()
    scheduler.url_filter = UrlFilter(config, scheduler.frontier.visited)
    scheduler.frontier.add(FrontierEntry("https://x.test/", 0))

    await scheduler._process_entry(scheduler.frontier.get_nowait(), "test")

    queued = [(entry.url, entry.depth) for entry in drain(scheduler.frontier)]
    assert queued == [("https://x.test/a", 1)]


@pytest.mark.asyncio
async def test_full_crawl_is_breadth_first(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/a", "/b"))
    fake_web.add_page("https://x.test/a", links("/a1"))
    fake_web.add_page("https://x.test/b", links("/b1"))
    fake_web.add_page("https://x.test/a1", links())
    fake_web.add_page("https://x.test/b1", links())

    stats = await make_scheduler(config, mock_session, observer).start_crawling()

    assert observer.crawled_urls == [
        ("https://x.test/", 0),
        ("https://x.test/a", 1),
        ("https://x.test/b", 1),
        ("https://x.test/a1", 2),
        ("https://x.test/b1", 2),
    ]
    assert stats.urls_crawled == 5
    assert stats.fetch_errors == 0


@pytest.mark.asyncio
async def test_depth_bound(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, max_depth=1, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/d1"))
    fake_web.add_page("https://x.test/d1", links("/d2"))
    fake_web.add_page("https://x.test/d2", links("/d3"))

    await make_scheduler(config, mock_session, observer).start_crawling()

    assert fake_web.page_requests == ["https://x.test/", "https://x.test/d1"]
    assert max(depth for _, depth in observer.crawled_urls) == 1


@pytest.mark.asyncio
async def test_max_depth_zero_fetches_only_seed(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, max_depth=0, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/a"))

    await make_scheduler(config, mock_session, observer).start_crawling()

    assert fake_web.page_requests == ["https://x.test/"]


@pytest.mark.asyncio
async def test_each_url_fetched_once(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/a", "/b", "/shared"))
    fake_web.add_page("https://x.test/a", links("/shared", "/shared#frag", "/"))
    fake_web.add_page("https://x.test/b", links("HTTPS://X.TEST/shared", "/a"))
    fake_web.add_page("https://x.test/shared", links("/a", "/b"))

    await make_scheduler(config, mock_session, observer).start_crawling()

    assert sorted(fake_web.page_requests) == [
        "https://x.test/", "https://x.test/a", "https://x.test/b", "https://x.test/shared"
    ]
    assert len(fake_web.page_requests) == len(set(fake_web.page_requests))


@pytest.mark.asyncio
async def test_each_url_fetched_once_with_workers(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False, max_concurrent_requests=4)
    fake_web.add_page("https://x.test/", links(*[f"/p{i}" for i in range(8)]))
    for i in range(8):
        fake_web.add_page(f"https://x.test/p{i}", links(*[f"/p{j}" for j in range(8)], "/"))

    stats = await make_scheduler(config, mock_session, observer).start_crawling()

    assert len(fake_web.page_requests) == 9
    assert len(set(fake_web.page_requests)) == 9
    assert stats.urls_crawled == 9


@pytest.mark.asyncio
async def test_robots_blocks_disallowed_paths(fast_config, fake_web, mock_session, observer):
    fake_web.add_robots("https://x.test", "User-agent: *\nDisallow: /admin")
    fake_web.add_page("https://x.test/", links("/admin/x", "/public"))
    fake_web.add_page("https://x.test/public", links())
    fake_web.add_page("https://x.test/admin/x", links())

    stats = await make_scheduler(fast_config, mock_session, observer).start_crawling()

    assert "https://x.test/admin/x" not in fake_web.page_requests
    assert observer.blocked_urls == ["https://x.test/admin/x"]
    assert stats.robots_blocked == 1
    assert fake_web.robots_requests == ["https://x.test/robots.txt"]


@pytest.mark.asyncio
async def test_robots_ignored_when_disabled(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False)
    fake_web.add_robots("https://x.test", "User-agent: *\nDisallow: /admin")
    fake_web.add_page("https://x.test/", links("/admin/x"))
    fake_web.add_page("https://x.test/admin/x", links())

    await make_scheduler(config, mock_session, observer).start_crawling()

    assert "https://x.test/admin/x" in fake_web.page_requests
    assert fake_web.robots_requests == []
    assert observer.blocked_urls == []


@pytest.mark.asyncio
async def test_off_domain_links_never_fetched(fast_config, fake_web, mock_session, observer):
    fake_web.add_page("https://x.test/", links("https://y.test/b", "/a"))
    fake_web.add_page("https://x.test/a", links())

    await make_scheduler(fast_config, mock_session, observer).start_crawling()

    assert not any("y.test" in url for url in fake_web.requests)


@pytest.mark.asyncio
async def test_other_domains_followed_when_scope_disabled(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, same_domain_only=False, max_depth=1)
    fake_web.add_page("https://x.test/", links("https://y.test/b"))
    fake_web.add_page("https://y.test/b", links())

    await make_scheduler(config, mock_session, observer).start_crawling()

    assert ("https://y.test/b", 1) in observer.crawled_urls
    assert "https://y.test/robots.txt" in fake_web.robots_requests


@pytest.mark.asyncio
async def test_fetch_failures_are_reported_and_not_fatal(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/missing", "/flaky", "/ok"))
    fake_web.add_sequence("https://x.test/flaky", [
        (503, "", "text/html"),
        (503, "", "text/html"),
        (200, links(), "text/html"),
    ])
    fake_web.add_page("https://x.test/ok", links())

    stats = await make_scheduler(config, mock_session, observer).start_crawling()

    assert observer.errors == [("https://x.test/missing", "HTTP 404")]
    assert ("https://x.test/flaky", 1) in observer.crawled_urls
    assert ("https://x.test/ok", 1) in observer.crawled_urls
    assert fake_web.page_requests.count("https://x.test/missing") == 1
    assert stats.fetch_errors == 1


@pytest.mark.asyncio
async def test_max_pages_stops_crawl(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False, max_pages=2)
    fake_web.add_page("https://x.test/", links("/a", "/b", "/c"))
    for name in "abc":
        fake_web.add_page(f"https://x.test/{name}", links())

    stats = await make_scheduler(config, mock_session, observer).start_crawling()

    assert stats.urls_crawled == 2
    assert len(fake_web.page_requests) == 2


@pytest.mark.asyncio
async def test_invalid_seed_aborts_before_any_request(fast_config, mock_session, observer):
    config = replace(fast_config, start_url="mailto:someone@x.test")
    scheduler = make_scheduler(config, mock_session, observer)

    with pytest.raises(InvalidSeedURLError):
        await scheduler.start_crawling()

    mock_session.get.assert_not_called()


@pytest.mark.asyncio
async def test_worker_survives_unexpected_errors(fast_config, fake_web, mock_session, observer):
    class BrokenParser(ContentParser):
        def parse(self, url, html_content):
            if url.endswith("/a"):
                raise RuntimeError("parser crashed")
            return super().parse(url, html_content)

    config = replace(fast_config, respect_robots_txt=False)
    fake_web.add_page("https://x.test/", links("/a", "/b"))
    fake_web.add_page("https://x.test/a", links("/a1"))
    fake_web.add_page("https://x.test/b", links())

    scheduler = make_scheduler(config, mock_session, observer, parser=BrokenParser())
    stats = await scheduler.start_crawling()

    assert stats.errors == 1
    assert ("https://x.test/b", 1) in observer.crawled_urls
    assert not scheduler.get_stats()["is_running"]


@pytest.mark.asyncio
async def test_max_duration_stops_crawl(fast_config, fake_web, mock_session, observer):
    config = replace(fast_config, respect_robots_txt=False, domain_delay_millis=10000)
    fake_web.add_page("https://x.test/", links("/a"))
    fake_web.add_page("https://x.test/a", links())

    stats = await make_scheduler(config, mock_session, observer).start_crawling(max_duration=0.2)

    # The second fetch would have to wait out the 10s domain delay
    assert fake_web.page_requests == ["https://x.test/"]
    assert stats.urls_crawled == 1
