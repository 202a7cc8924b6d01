from types import SimpleNamespace
from urllib.parse import parse_qs, urlparse

import pytest
from supabase import AuthError

from taskflow import supabase_client as sc
from taskflow.errors import AuthenticationError


class FakeAuth:
    def __init__(self):
        self.calls = []
        self.response = None
        self.error = None

    def _result(self, name, *args):
        self.calls.append((name, args))
        if self.error is not None:
            raise self.error
        return self.response

    def sign_in_with_password(self, credentials):
        return self._result("sign_in_with_password", credentials)

    def sign_up(self, credentials):
        return self._result("sign_up", credentials)

    def sign_out(self):
        return self._result("sign_out")

    def reset_password_for_email(self, email, options):
        return self._result("reset_password_for_email", email, options)

    def update_user(self, attrs):
        return self._result("update_user", attrs)

    def sign_in_with_oauth(self, credentials):
        return self._result("sign_in_with_oauth", credentials)

    def exchange_code_for_session(self, params):
        return self._result("exchange_code_for_session", params)


@pytest.fixture()
def auth(fake_st, monkeypatch):
    fake_auth = FakeAuth()
    fake_auth.storage = {}
    client = SimpleNamespace(auth=fake_auth, options=SimpleNamespace(storage=SimpleNamespace(storage=fake_auth.storage)))
    monkeypatch.setattr(sc, "get_client", lambda: client)
    monkeypatch.delenv("TASKFLOW_SITE_URL", raising=False)
    return fake_auth


def _session_response(user_id="u-1"):
    return SimpleNamespace(
        session=SimpleNamespace(access_token="access", refresh_token="refresh"),
        user={"id": user_id, "email": "me@example.com", "user_metadata": {"name": "Me"}},
    )


def test_sign_in_stores_session(auth, fake_st):
    auth.response = _session_response()

    sc.sign_in("me@example.com", "secret")

    assert fake_st.session_state["supabase_session"] == {"access_token": "access", "refresh_token": "refresh"}
    assert sc.current_user()["email"] == "me@example.com"
    assert sc.current_user_id() == "u-1"
    assert sc.session_tokens() == {"access_token": "access", "refresh_token": "refresh"}


def test_sign_in_without_session_fails(auth, fake_st):
    auth.response = SimpleNamespace(session=None, user=None)
    with pytest.raises(AuthenticationError):
        sc.sign_in("me@example.com", "secret")
    assert sc.current_user() is None


def test_sign_in_auth_error_is_wrapped(auth):
    auth.error = AuthError("Email not confirmed", "email_not_confirmed")
    with pytest.raises(AuthenticationError) as excinfo:
        sc.sign_in("me@example.com", "secret")
    assert "Email not confirmed" in str(excinfo.value)


def test_sign_up_requires_confirmation(auth):
    auth.response = SimpleNamespace(user={"id": "u-2"}, session=None)
    message = sc.sign_up("new@example.com", "secret", "New")
    assert "check your email" in message.lower()
    name, args = auth.calls[0]
    assert args[0]["options"]["data"] == {"name": "New"}


def test_sign_up_with_session_signs_in(auth):
    auth.response = _session_response("u-3")
    assert sc.sign_up("new@example.com", "secret") is None
    assert sc.current_user_id() == "u-3"


def test_sign_out_clears_state_even_on_error(auth, fake_st):
    auth.response = _session_response()
    sc.sign_in("me@example.com", "secret")
    auth.error = AuthError("network", None)

    sc.sign_out()

    assert "supabase_session" not in fake_st.session_state
    assert sc.current_user() is None


def test_reset_password_redirects_to_recovery_flow(auth):
    assert "sent" in sc.reset_password("me@example.com").lower()
    _, (email, options) = auth.calls[0]
    assert email == "me@example.com"
    assert options["redirect_to"].endswith("/?flow=recovery")


def test_oauth_url(auth):
    auth.response = SimpleNamespace(url="https://provider.example/authorize")
    assert sc.oauth_sign_in_url("github") == "https://provider.example/authorize"
    _, (credentials,) = auth.calls[0]
    assert credentials["provider"] == "github"
    assert "/?flow=oauth&ref=" in credentials["options"]["redirect_to"]

    with pytest.raises(ValueError):
        sc.oauth_sign_in_url("myspace")


def test_exchange_oauth_code(auth):
    auth.response = _session_response("u-9")
    sc.exchange_oauth_code("the-code")
    assert auth.calls[0] == ("exchange_code_for_session", ({"auth_code": "the-code"},))
    assert sc.current_user_id() == "u-9"


def test_oauth_verifier_is_handed_to_the_callback_session(auth):
    auth.storage["sb-test-auth-token-code-verifier"] = "verifier-1"
    auth.response = SimpleNamespace(url="https://provider.example/authorize")
    sc.oauth_sign_in_url("google")
    redirect = auth.calls[0][1][0]["options"]["redirect_to"]
    ref = parse_qs(urlparse(redirect).query)["ref"][0]

    auth.response = _session_response()
    sc.exchange_oauth_code("the-code", ref)

    assert auth.calls[-1] == (
        "exchange_code_for_session",
        ({"auth_code": "the-code", "code_verifier": "verifier-1"},),
    )
    sc.exchange_oauth_code("the-code", ref)
    assert auth.calls[-1] == ("exchange_code_for_session", ({"auth_code": "the-code"},))


def test_verifier_handoff_expires():
    now = [0.0]
    handoff = sc.VerifierHandoff(ttl=60, clock=lambda: now[0])
    handoff.park("a", "va")
    handoff.park("b", "vb")
    assert handoff.claim("a") == "va"
    assert handoff.claim("a") is None
    now[0] = 61
    assert handoff.claim("b") is None
    assert handoff.claim(None) is None


def test_get_client_is_per_session(fake_st, monkeypatch):
    monkeypatch.setattr(sc, "create_supabase_client", lambda: object())
    monkeypatch.setattr(sc, "_apply_saved_session", lambda client: None)

    first = sc.get_client()
    assert sc.get_client() is first

    fake_st.session_state = {}
    second = sc.get_client()
    assert second is not first


def test_session_value_handles_objects_and_dicts():
    assert sc.session_value({"access_token": "a"}, "access_token") == "a"
    assert sc.session_value(SimpleNamespace(access_token="b"), "access_token") == "b"
    assert sc.session_value(None, "access_token") is None


def test_update_profile_refreshes_cached_user(auth, fake_st):
    auth.response = _session_response()
    sc.sign_in("me@example.com", "secret")
    auth.response = SimpleNamespace(user={"id": "u-1", "user_metadata": {"name": "Renamed"}})

    sc.update_profile("  Renamed ")

    assert auth.calls[-1] == ("update_user", ({"data": {"name": "Renamed"}},))
    assert sc.current_user()["user_metadata"]["name"] == "Renamed"
