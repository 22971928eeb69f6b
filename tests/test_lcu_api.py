from __future__ import annotations

import pytest
import requests

from binding_agent.errors import AuthenticationError, SessionConnectionError
from binding_agent.lcu_api import Credentials, LcuApi

CREDENTIALS = Credentials(pid=1, port="51234", token="tok")


class _Response:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        if self._invalid_json:
            raise ValueError("no json")
        return self._payload


class _Session:
    def __init__(self, routes):
        self.routes = routes
        self.headers = {}
        self.auth = None
        self.verify = True
        self.requested = []
        self.closed = False

    def get(self, url, timeout=None):
        self.requested.append((url, timeout))
        outcome = self.routes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def _url(path):
    return f"https://127.0.0.1:51234{path}"


def _api(routes, **kwargs):
    session = _Session(routes)
    return LcuApi(CREDENTIALS, session=session, timeout=2.5, **kwargs), session


def test_session_uses_basic_auth_and_loopback_tls():
    api, session = _api({})
    assert session.auth == ("riot", "tok")
    assert session.verify is False
    api.close()
    assert session.closed


def test_ca_bundle_enables_verification():
    _api_instance, session = _api({}, ca_bundle="/etc/riotgames.pem")
    assert session.verify == "/etc/riotgames.pem"


def test_get_region_reads_platform_id():
    api, session = _api({_url("/rso-auth/v1/authorization"): _Response(payload={"currentPlatformId": "EUW1"})})
    assert api.get_region() == "EUW1"
    assert session.requested == [(_url("/rso-auth/v1/authorization"), 2.5)]


@pytest.mark.parametrize(
    "outcome",
    [
        _Response(status_code=401),
        _Response(status_code=404),
        _Response(payload={"currentPlatformId": ""}),
        requests.ConnectionError("refused"),
    ],
)
def test_get_region_failures_are_authentication_errors(outcome):
    api, _session = _api({_url("/rso-auth/v1/authorization"): outcome})
    with pytest.raises(AuthenticationError, match="unable to get summoner region, check if you're logged in"):
        api.get_region()


def test_current_summoner_id_is_a_string():
    payload = {"summonerId": 42, "displayName": "Teemo Main", "accountId": 7}
    api, _session = _api({_url("/lol-summoner/v1/current-summoner"): _Response(payload=payload)})
    summoner = api.get_current_summoner()
    assert summoner.summoner_id == "42"
    assert summoner.display_name == "Teemo Main"
    assert summoner.account_id == "7"


def test_current_summoner_rejected_credentials():
    api, _session = _api({_url("/lol-summoner/v1/current-summoner"): _Response(status_code=403)})
    with pytest.raises(AuthenticationError):
        api.get_current_summoner()


def test_current_summoner_server_error_is_connection_error():
    api, _session = _api({_url("/lol-summoner/v1/current-summoner"): _Response(status_code=500)})
    with pytest.raises(SessionConnectionError) as excinfo:
        api.get_current_summoner()
    assert isinstance(excinfo.value.__cause__, requests.HTTPError)


def test_champion_catalog_is_normalised():
    payload = [{"id": -1, "name": "None"}, {"id": 145, "name": "Kai'Sa", "alias": "Kaisa"}]
    path = "/lol-champions/v1/inventories/42/champions-minimal"
    api, _session = _api({_url(path): _Response(payload=payload)})
    assert api.get_champion_catalog("42") == {"kaisa": 145}


def test_champion_catalog_rejects_non_list_and_bad_json():
    path = "/lol-champions/v1/inventories/42/champions-minimal"
    api, _session = _api({_url(path): _Response(payload={"oops": True})})
    with pytest.raises(SessionConnectionError):
        api.get_champion_catalog("42")

    api, _session = _api({_url(path): _Response(invalid_json=True)})
    with pytest.raises(SessionConnectionError, match="not JSON"):
        api.get_champion_catalog("42")
