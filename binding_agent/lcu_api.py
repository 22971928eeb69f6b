"""Minimal REST client for the game client's local API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import requests
import urllib3

from binding_agent.errors import AuthenticationError, SessionConnectionError
from binding_agent.event_decoder import coerce_summoner_id
from binding_agent.group_resolver import ChampionCatalog, catalog_from_inventory

LOGGER = logging.getLogger("DarkBinding.LcuApi")

LCU_USERNAME = "riot"
LOCAL_HOST = "127.0.0.1"
AUTHORIZATION_ENDPOINT = "/rso-auth/v1/authorization"
CURRENT_SUMMONER_ENDPOINT = "/lol-summoner/v1/current-summoner"
CHAMPIONS_MINIMAL_ENDPOINT = "/lol-champions/v1/inventories/{summoner_id}/champions-minimal"


@dataclass(frozen=True)
class Credentials:
    pid: int
    port: str
    token: str = field(repr=False)

    @property
    def base_url(self) -> str:
        return f"https://{LOCAL_HOST}:{self.port}"

    @property
    def websocket_url(self) -> str:
        return f"wss://{LCU_USERNAME}:{self.token}@{LOCAL_HOST}:{self.port}"

    @property
    def redacted_websocket_url(self) -> str:
        return f"wss://{LCU_USERNAME}:***@{LOCAL_HOST}:{self.port}"


@dataclass(frozen=True)
class LocalSummoner:
    summoner_id: str
    display_name: str = ""
    account_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "LocalSummoner":
        if not isinstance(payload, Mapping):
            raise ValueError("current summoner payload must be an object")
        summoner_id = coerce_summoner_id(payload.get("summonerId"))
        if summoner_id is None:
            raise ValueError("current summoner payload has no summonerId")
        display_name = payload.get("displayName") or payload.get("gameName") or ""
        return cls(
            summoner_id=summoner_id,
            display_name=str(display_name),
            account_id=coerce_summoner_id(payload.get("accountId")),
        )


class LcuApi:
    """Basic-auth session against ``https://127.0.0.1:<port>``.

    The client serves a self-signed certificate. Pass ``ca_bundle`` to pin it;
    without one, verification is disabled for these loopback requests.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        ca_bundle: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._credentials = credentials
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (LCU_USERNAME, credentials.token)
        self._session.headers.update({"Accept": "application/json"})
        verify: Union[bool, str] = ca_bundle if ca_bundle else False
        self._session.verify = verify
        if verify is False:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def close(self) -> None:
        self._session.close()

    def _url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return self._credentials.base_url + endpoint

    def _get(self, endpoint: str, failure: str) -> Any:
        try:
            response = self._session.get(self._url(endpoint), timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status in (401, 403):
                raise AuthenticationError(failure) from exc
            raise SessionConnectionError(failure) from exc
        except requests.RequestException as exc:
            raise SessionConnectionError(failure) from exc
        except ValueError as exc:
            raise SessionConnectionError(f"{failure} (response was not JSON)") from exc

    def get_region(self) -> str:
        failure = "unable to get summoner region, check if you're logged in"
        try:
            payload = self._get(AUTHORIZATION_ENDPOINT, failure)
        except SessionConnectionError as exc:
            raise AuthenticationError(failure) from exc
        region = payload.get("currentPlatformId") if isinstance(payload, Mapping) else None
        if not isinstance(region, str) or not region:
            raise AuthenticationError(failure)
        LOGGER.debug("RSO authorization succeeded (region=%s)", region)
        return region

    def get_current_summoner(self) -> LocalSummoner:
        failure = "unable to get local summoner, check if you're logged in"
        payload = self._get(CURRENT_SUMMONER_ENDPOINT, failure)
        try:
            return LocalSummoner.from_payload(payload)
        except ValueError as exc:
            raise SessionConnectionError(failure) from exc

    def get_champion_catalog(self, summoner_id: str) -> ChampionCatalog:
        endpoint = CHAMPIONS_MINIMAL_ENDPOINT.format(summoner_id=summoner_id)
        payload = self._get(endpoint, "unable to load the champion list")
        if not isinstance(payload, list):
            raise SessionConnectionError("unable to load the champion list (unexpected payload)")
        return catalog_from_inventory(payload)
