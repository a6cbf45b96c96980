import base64
import plistlib

import pytest

from signsmith.src.app_store_connect.api import (
    MAX_PAGES,
    AppStoreConnectAPI,
    humanize_identifier,
)
from signsmith.src.errors import DuplicateResourceConflict, ProtocolError, RemoteAPIError


class CountingGenerator:
    def __init__(self):
        self.count = 0

    def generate(self, private_key, key_id, issuer_id):
        self.count += 1
        return f"token-{self.count}"


def make_api(credentials, session, sleeps=None):
    return AppStoreConnectAPI(
        credentials,
        session=session,
        jwt_generator=CountingGenerator(),
        sleep=(sleeps.append if sleeps is not None else lambda seconds: None),
    )


def profile_resource(profile_id, name, bundle_id_id=None, uuid=None):
    resource = {
        "id": profile_id,
        "type": "profiles",
        "attributes": {
            "name": name,
            "profileType": "IOS_APP_STORE",
            "uuid": uuid or f"uuid-{profile_id}",
            "expirationDate": "2030-01-01T00:00:00.000+0000",
        },
        "relationships": {},
    }
    if bundle_id_id:
        resource["relationships"]["bundleId"] = {"data": {"type": "bundleIds", "id": bundle_id_id}}
    return resource


def test_every_request_gets_a_fresh_token(credentials, fake_session, fake_response):
    session = fake_session(lambda *args: fake_response(200, {"data": []}))
    api = make_api(credentials, session)

    api.request("/bundleIds")
    api.request("/certificates")

    tokens = [call["headers"]["Authorization"] for call in session.calls]
    assert tokens == ["Bearer token-1", "Bearer token-2"]
    assert session.calls[0]["url"] == "https://api.appstoreconnect.apple.com/v1/bundleIds"


def test_errors_envelope_raises_remote_api_error(credentials, fake_session, fake_response):
    payload = {"errors": [{"detail": "first problem"}, {"detail": "second problem"}]}
    api = make_api(credentials, fake_session(lambda *args: fake_response(409, payload)))

    with pytest.raises(RemoteAPIError) as error:
        api.request("/profiles", method="POST", body={})

    assert error.value.message == "[ASC ERROR] first problem, second problem"
    assert error.value.status_code == 409
    assert error.value.details == ["first problem", "second problem"]


def test_delete_tolerates_empty_body(credentials, fake_session, fake_response):
    api = make_api(credentials, fake_session(lambda *args: fake_response(204, text="")))
    assert api.request("/profiles/P1", method="DELETE") == {}


def test_delete_with_error_status_and_empty_body_fails(credentials, fake_session, fake_response):
    api = make_api(credentials, fake_session(lambda *args: fake_response(404, text="")))
    with pytest.raises(RemoteAPIError, match="HTTP 404"):
        api.delete_profile("P1")


def test_non_json_success_body_decodes_to_empty_dict(credentials, fake_session, fake_response):
    api = make_api(credentials, fake_session(lambda *args: fake_response(200, text="<html>")))
    assert api.request("/bundleIds") == {}


def test_pagination_concatenates_pages_in_order(credentials, fake_session, fake_response):
    pages = {
        None: ({"data": [{"id": "1"}, {"id": "2"}], "links": {"next": "https://x/v1/bundleIds?cursor=AAA&limit=200"}}),
        "AAA": ({"data": [{"id": "3"}], "links": {"next": "https://x/v1/bundleIds?cursor=BBB"}}),
        "BBB": ({"data": [{"id": "4"}], "links": {}}),
    }
    session = fake_session(lambda method, url, params, body: fake_response(200, pages[params.get("cursor")]))
    api = make_api(credentials, session)

    resources = api._paginate("/bundleIds", {}, "fetch_bundle_ids")

    assert [r["id"] for r in resources] == ["1", "2", "3", "4"]
    assert all(call["params"]["limit"] == 200 for call in session.calls)


def test_pagination_stops_at_iteration_ceiling(credentials, fake_session, fake_response):
    stuck = {"data": [{"id": "1"}], "links": {"next": "https://x/v1/profiles?cursor=SAME"}}
    session = fake_session(lambda *args: fake_response(200, stuck))
    api = make_api(credentials, session)

    with pytest.raises(ProtocolError, match="Infinite loop detected in fetch_profiles"):
        api._paginate("/profiles", {}, "fetch_profiles")
    assert len(session.calls) == MAX_PAGES


def test_create_bundle_id_uses_humanized_name(credentials, fake_session, fake_response):
    response = {"data": {"id": "B1", "attributes": {"identifier": "com.example.my-app_name", "seedId": "TEAM1"}}}
    session = fake_session(lambda *args: fake_response(201, response))
    api = make_api(credentials, session)

    bundle_id = api.create_bundle_id("com.example.my-app_name")

    attributes = session.calls[0]["json"]["data"]["attributes"]
    assert attributes == {"identifier": "com.example.my-app_name", "name": "My App Name", "platform": "IOS"}
    assert bundle_id.seed_id == "TEAM1"


def test_humanize_identifier():
    assert humanize_identifier("com.example.app") == "App"
    assert humanize_identifier("com.example.super_cool-app") == "Super Cool App"


def test_fetch_team_id_prefers_exact_identifier(credentials, fake_session, fake_response):
    payload = {
        "data": [
            {"id": "B1", "attributes": {"identifier": "com.example.app.widget", "seedId": "OTHER"}},
            {"id": "B2", "attributes": {"identifier": "com.example.app", "seedId": "TEAM1"}},
        ]
    }
    api = make_api(credentials, fake_session(lambda *args: fake_response(200, payload)))
    assert api.fetch_team_id("com.example.app") == "TEAM1"


def test_fetch_certificates_filters_by_type(credentials, fake_session, fake_response):
    payload = {
        "data": [
            {
                "id": "C1",
                "attributes": {
                    "certificateType": "IOS_DISTRIBUTION",
                    "name": "Apple Distribution: Example",
                    "expirationDate": "2030-01-01T00:00:00.000+0000",
                },
            }
        ]
    }
    session = fake_session(lambda *args: fake_response(200, payload))
    api = make_api(credentials, session)

    certificates = api.fetch_certificates()

    assert session.calls[0]["params"]["filter[certificateType]"] == "IOS_DEVELOPMENT,IOS_DISTRIBUTION"
    assert certificates[0].expiration_date.year == 2030


def test_fetch_profiles_uses_server_side_filter(credentials, fake_session, fake_response):
    payload = {"data": [profile_resource("P1", "com.example.app App Store", "B1")]}
    session = fake_session(lambda *args: fake_response(200, payload))
    api = make_api(credentials, session)

    profiles = api.fetch_profiles("B1", "IOS_APP_STORE", "com.example.app")

    assert [p.id for p in profiles] == ["P1"]
    assert session.calls[0]["params"]["filter[bundleId]"] == "B1"


def test_fetch_profiles_falls_back_to_relationship_scan(credentials, fake_session, fake_response):
    def handler(method, url, params, body):
        if "filter[bundleId]" in params:
            return fake_response(400, {"errors": [{"detail": "'bundleId' is not a valid filter type"}]})
        if url.endswith("/profiles/P3"):
            return fake_response(200, {"data": profile_resource("P3", "Third", "B1")})
        return fake_response(
            200,
            {
                "data": [
                    profile_resource("P1", "Mine", "B1"),
                    profile_resource("P2", "Other", "B2"),
                    profile_resource("P3", "Third"),
                ]
            },
        )

    api = make_api(credentials, fake_session(handler))

    profiles = api.fetch_profiles("B1", "IOS_APP_STORE", "com.example.app")

    assert [p.id for p in profiles] == ["P1", "P3"]


def test_fetch_profiles_falls_back_to_name_matching(credentials, fake_session, fake_response):
    def handler(method, url, params, body):
        if "filter[bundleId]" in params:
            return fake_response(400, {"errors": [{"detail": "not a valid filter"}]})
        if "/profiles/" in url:
            return fake_response(200, {"data": profile_resource("PX", "x")})
        return fake_response(
            200,
            {
                "data": [
                    profile_resource("P1", "com.example.app App Store"),
                    profile_resource("P2", "com.other.thing App Store"),
                ]
            },
        )

    api = make_api(credentials, fake_session(handler))

    profiles = api.fetch_profiles("B1", "IOS_APP_STORE", "com.example.app")

    assert [p.id for p in profiles] == ["P1"]


def test_fetch_profiles_propagates_unrelated_errors(credentials, fake_session, fake_response):
    api = make_api(
        credentials,
        fake_session(lambda *args: fake_response(401, {"errors": [{"detail": "Authentication credentials are missing"}]})),
    )
    with pytest.raises(RemoteAPIError):
        api.fetch_profiles("B1", "IOS_APP_STORE")


def test_create_profile_duplicate_becomes_conflict(credentials, fake_session, fake_response):
    payload = {"errors": [{"detail": "Multiple profiles found with the name 'x'"}]}
    api = make_api(credentials, fake_session(lambda *args: fake_response(409, payload)))

    with pytest.raises(DuplicateResourceConflict):
        api.create_profile("x", "B1", ["C1"], "IOS_APP_STORE")


def test_download_profile_retries_until_content_is_ready(credentials, fake_session, fake_response):
    content = base64.b64encode(plistlib.dumps({"UUID": "U1"})).decode("ascii")
    answers = [
        fake_response(200, {"data": {"id": "P1", "attributes": {"profileContent": None}}}),
        fake_response(500, {"errors": [{"detail": "try later"}]}),
        fake_response(200, {"data": {"id": "P1", "attributes": {"profileContent": content}}}),
    ]
    sleeps = []
    api = make_api(credentials, fake_session(lambda *args: answers.pop(0)), sleeps)

    data = api.download_profile("P1")

    assert b"<plist" in data
    assert sleeps == [2, 4]


def test_download_profile_gives_up_after_eight_attempts(credentials, fake_session, fake_response):
    empty = {"data": {"id": "P1", "attributes": {"profileContent": ""}}}
    sleeps = []
    session = fake_session(lambda *args: fake_response(200, empty))
    api = make_api(credentials, session, sleeps)

    with pytest.raises(RemoteAPIError) as error:
        api.download_profile("P1")

    assert "Profile ID: P1" in error.value.message
    assert len(session.calls) == 8
    assert sleeps == [2, 4, 8, 16, 30, 30, 30]


def test_download_profile_does_not_retry_auth_failures(credentials, fake_session, fake_response):
    session = fake_session(lambda *args: fake_response(401, {"errors": [{"detail": "Unauthorized"}]}))
    api = make_api(credentials, session, [])

    with pytest.raises(RemoteAPIError):
        api.download_profile("P1")
    assert len(session.calls) == 1
