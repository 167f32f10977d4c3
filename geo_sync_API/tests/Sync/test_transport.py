# test_transport.py
#
# Imports
import json
from unittest.mock import MagicMock
#
# Third-Party Imports
import pytest
import requests
#
# Local Imports
from geo_sync_API.app.core.Sync import HttpApiTransport, RemoteRejectedError, TransportError
from geo_sync_API.app.core.Sync.transport import is_success_response
#
#######################################################################################################################
#
# Functions:

def _response(status_code=200, text="", json_body=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_body is not None:
        text = json.dumps(json_body)
        response.json.return_value = json_body
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    response.text = text
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def transport(session):
    return HttpApiTransport("http://cloud.test/", timeout=5, session=session)


@pytest.mark.parametrize("body, expected", [
    ("Record saved successfully", True),
    ("SUCCESS", True),
    ('{"ok": true}', True),
    ('{"ok": false}', False),
    ('{"ok": "true"}', False),
    ("error: duplicate", False),
    ("", False),
])
def test_success_contract(body, expected):
    assert is_success_response(body) is expected


def test_base_url_required():
    with pytest.raises(ValueError):
        HttpApiTransport("")


class TestFetchSyncQueue:
    def test_fetch_parses_and_drops_malformed(self, transport, session):
        session.get.return_value = _response(json_body=[
            {"id": 1, "table_name": "countries", "record_uuid": "u1", "operation": "UPSERT",
             "json_payload": '{"uuid": "u1", "name": "Testland"}'},
            {"table_name": "countries"},
            {"id": 2, "table_name": "states", "record_uuid": "u2", "operation": "DELETE", "json_payload": None},
        ])

        entries = transport.fetch_sync_queue()

        session.get.assert_called_once_with("http://cloud.test/api/get_sync_queue", timeout=5)
        assert [e.id for e in entries] == [1, 2]
        assert entries[1].operation == "DELETE"

    def test_fetch_non_list_body(self, transport, session):
        session.get.return_value = _response(json_body={"error": "nope"})
        with pytest.raises(TransportError, match="expected list"):
            transport.fetch_sync_queue()

    def test_fetch_non_2xx(self, transport, session):
        session.get.return_value = _response(status_code=503, text="maintenance")
        with pytest.raises(TransportError) as exc_info:
            transport.fetch_sync_queue()
        assert exc_info.value.status_code == 503

    def test_fetch_invalid_json(self, transport, session):
        session.get.return_value = _response(text="<html>")
        with pytest.raises(TransportError, match="Invalid JSON"):
            transport.fetch_sync_queue()

    def test_fetch_network_error(self, transport, session):
        session.get.side_effect = requests.exceptions.ConnectionError("unreachable")
        with pytest.raises(TransportError, match="unreachable"):
            transport.fetch_sync_queue()


class TestPushRecord:
    def test_push_posts_form_data(self, transport, session):
        session.post.return_value = _response(text="success")
        data = {"uuid": "u1", "name": "North", "country_id": "c1", "last_updated": "2024-01-01T00:00:00.000Z"}

        assert transport.push_record("states", "UPSERT", "u1", data) is True

        args, kwargs = session.post.call_args
        assert args[0] == "http://cloud.test/api/save_states"
        assert kwargs["data"]["table"] == "states"
        assert kwargs["data"]["operation"] == "UPSERT"
        assert kwargs["data"]["uuid"] == "u1"
        assert json.loads(kwargs["data"]["data"]) == data
        assert kwargs["timeout"] == 5

    def test_push_accepts_json_ok(self, transport, session):
        session.post.return_value = _response(json_body={"ok": True})
        assert transport.push_record("countries", "DELETE", "u1", {"uuid": "u1"}) is True

    def test_push_non_2xx_raises_transport_error(self, transport, session):
        session.post.return_value = _response(status_code=500, text="success? no, crash")
        with pytest.raises(TransportError) as exc_info:
            transport.push_record("countries", "UPSERT", "u1", {"uuid": "u1"})
        assert not isinstance(exc_info.value, RemoteRejectedError)
        assert exc_info.value.status_code == 500

    def test_push_without_success_marker_is_rejected(self, transport, session):
        session.post.return_value = _response(text="validation failed: name required")
        with pytest.raises(RemoteRejectedError, match="validation failed"):
            transport.push_record("countries", "UPSERT", "u1", {"uuid": "u1"})

    def test_push_network_error(self, transport, session):
        session.post.side_effect = requests.exceptions.Timeout("timed out")
        with pytest.raises(TransportError, match="timed out"):
            transport.push_record("cities", "UPSERT", "u1", {"uuid": "u1"})


class TestTruncateAll:
    def test_truncate_sends_reset_header(self, transport, session):
        session.post.return_value = _response(json_body={"ok": True})
        assert transport.truncate_all("s3cret") is True
        args, kwargs = session.post.call_args
        assert args[0] == "http://cloud.test/api/truncate_all"
        assert kwargs["headers"] == {"X-Reset-Token": "s3cret"}

    @pytest.mark.parametrize("response", [
        _response(status_code=403, json_body={"ok": False}),
        _response(json_body={"ok": False}),
        _response(text="success"),
    ])
    def test_truncate_requires_explicit_ok(self, transport, session, response):
        session.post.return_value = response
        assert transport.truncate_all("s3cret") is False


def test_close_closes_session(transport, session):
    transport.close()
    session.close.assert_called_once()

#
# End of test_transport.py
#######################################################################################################################
