import httpx

from taskflow import gravatar


def test_gravatar_url_normalises_email():
    url = gravatar.gravatar_url("  Someone@Example.COM ", size=120, default_image="mp")
    expected_hash = gravatar.email_hash("someone@example.com")
    assert url == f"https://www.gravatar.com/avatar/{expected_hash}?s=120&d=mp&r=g"
    assert gravatar.gravatar_url("") == ""


def test_avatar_url_checks_existence(monkeypatch):
    gravatar.gravatar_exists.cache_clear()
    seen = []

    def fake_head(url, timeout):
        seen.append(url)
        return httpx.Response(200 if "d=404" in url else 500)

    monkeypatch.setattr(gravatar.httpx, "head", fake_head)
    url = gravatar.avatar_url("a@example.com", size=64)
    assert url.endswith("?s=64&d=mp&r=g")
    assert len(seen) == 1


def test_avatar_url_missing_or_offline(monkeypatch):
    gravatar.gravatar_exists.cache_clear()

    def offline(url, timeout):
        raise httpx.ConnectError("offline")

    monkeypatch.setattr(gravatar.httpx, "head", offline)
    assert gravatar.avatar_url("b@example.com") is None
    assert gravatar.avatar_url(None) is None
