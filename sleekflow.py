"""Upstream SleekFlow operations relayed through the failover pool."""
import json
from urllib.parse import quote

import requests

from failover import HostPool, UpstreamResponse, join_url, try_hosts

API_KEY_HEADER = "X-Sleekflow-Api-Key"
RECORDS_LIMIT = 1000


def _headers(api_key: str) -> dict:
    return {
        "Accept": "application/json",
        "Content-Type": "application/json",
        API_KEY_HEADER: api_key,
    }


def records_path(object_key: str) -> str:
    return f"/api/customObjects/{quote(object_key, safe='')}/records?limit={RECORDS_LIMIT}"


def fetch_records(
    pool: HostPool,
    session: requests.Session,
    api_key: str,
    object_key: str,
    continuation_token: str = "",
    timeout: float = 15,
) -> UpstreamResponse:
    """Fetch one page of custom object records.

    The upstream expects GET with a JSON body, so the body is passed to
    ``Session.request`` directly. Only an exact 200 counts as success.
    """
    path = records_path(object_key)
    payload = json.dumps({"continuationToken": continuation_token})

    def send(base):
        return session.request(
            "GET",
            join_url(base, path),
            data=payload.encode("utf-8"),
            headers=_headers(api_key),
            timeout=timeout,
        )

    return try_hosts(pool, send, lambda resp: resp.status_code == 200)


def post_contact_list(
    pool: HostPool,
    session: requests.Session,
    api_key: str,
    group_list_name: str,
    user_profile_ids: list,
    timeout: float = 15,
) -> UpstreamResponse:
    """Create a contact list; any 2xx counts as success."""
    payload = {"groupListName": group_list_name, "userProfileIds": user_profile_ids}

    def send(base):
        return session.post(
            join_url(base, "/api/contact/list"),
            json=payload,
            headers=_headers(api_key),
            timeout=timeout,
        )

    return try_hosts(pool, send, lambda resp: 200 <= resp.status_code < 300)
