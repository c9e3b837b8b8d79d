from datetime import datetime, timedelta, timezone

from smartmark.client import favicon_url, time_ago, truncate_url

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)


def test_truncate_url_shows_host_and_path() -> None:
    assert truncate_url("https://example.com/docs?q=1") == "example.com/docs"
    long_url = "https://example.com/" + "a" * 60
    assert truncate_url(long_url) == ("example.com/" + "a" * 60)[:40] + "…"


def test_favicon_url_uses_hostname() -> None:
    assert favicon_url("https://docs.python.org/3/") == "https://www.google.com/s2/favicons?domain=docs.python.org&sz=32"
    assert favicon_url("not a url") is None


def test_time_ago_buckets() -> None:
    assert time_ago(NOW - timedelta(seconds=30), now=NOW) == "Just now"
    assert time_ago(NOW - timedelta(minutes=5), now=NOW) == "5m ago"
    assert time_ago(NOW - timedelta(hours=3), now=NOW) == "3h ago"
    assert time_ago(NOW - timedelta(days=2), now=NOW) == "2d ago"
    assert time_ago(datetime(2024, 3, 4, 8, 0), now=NOW) == "Mar 4"
