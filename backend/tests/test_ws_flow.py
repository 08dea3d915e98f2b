"""
WebSocket flow tests using FastAPI TestClient: participant join, live test
start, submission, admin observers and the emergency reset signal.
"""
import pytest
from fastapi import status
from starlette.websockets import WebSocketDisconnect

from conftest import recv_until


def send(ws, msg_type, payload=None):
    ws.send_json({"type": msg_type, "payload": payload or {}})


def join_ws(ws, username="Ayse", token="token-1"):
    send(ws, "user-connected", {"username": username, "sessionId": token})
    return recv_until(ws, "user-status")["payload"]


def admin_token(admin_headers):
    return admin_headers["Authorization"].split(" ", 1)[1]


class TestParticipantSocket:

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            send(ws, "ping")
            assert recv_until(ws, "pong")["payload"] == {"status": "alive"}

    def test_invalid_json_reports_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            error = recv_until(ws, "error")["payload"]
            assert error["code"] == "validation"

            # The socket stays usable
            send(ws, "ping")
            recv_until(ws, "pong")

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            send(ws, "dance")
            assert recv_until(ws, "error")["payload"]["code"] == "validation"

    def test_join_reports_status(self, client):
        with client.websocket_connect("/ws") as ws:
            status_payload = join_ws(ws)
            assert status_payload["connected"] is True
            assert status_payload["username"] == "Ayse"
            assert status_payload["hasSubmitted"] is False
            assert status_payload["testActive"] is False
            assert recv_until(ws, "user-count")["payload"] == {"count": 1}

    def test_join_requires_username(self, client):
        with client.websocket_connect("/ws") as ws:
            send(ws, "user-connected", {"username": " ", "sessionId": "token-1"})
            assert recv_until(ws, "error")["payload"]["code"] == "validation"

    def test_live_round(self, client, admin_headers):
        with client.websocket_connect("/ws") as ws:
            join_ws(ws)

            res = client.post("/api/admin/test", json={"word": "Kitap"}, headers=admin_headers)
            test_id = res.json()["data"]["testId"]
            client.post(f"/api/admin/test/{test_id}/start", headers=admin_headers)

            started = recv_until(ws, "test-started")["payload"]
            assert started == {"testId": test_id, "word": "Kitap", "hasSubmitted": False}

            send(ws, "submit-words", {"words": ["okumak", " kalem ", ""]})
            confirmed = recv_until(ws, "submission-confirmed")["payload"]
            assert confirmed == {"success": True, "wordCount": 2}

            send(ws, "submit-words", {"words": ["sayfa"]})
            assert recv_until(ws, "error")["payload"]["code"] == "conflict"

            client.post(f"/api/admin/test/{test_id}/finish", headers=admin_headers)
            assert recv_until(ws, "test-finished")["payload"] == {"testId": test_id}

    def test_reconnect_remembers_submission(self, client, admin_headers):
        res = client.post("/api/admin/test", json={"word": "Kitap"}, headers=admin_headers)
        test_id = res.json()["data"]["testId"]
        client.post(f"/api/admin/test/{test_id}/start", headers=admin_headers)

        with client.websocket_connect("/ws") as ws:
            assert join_ws(ws)["testId"] == test_id
            send(ws, "submit-words", {"words": ["okumak"]})
            recv_until(ws, "submission-confirmed")

        with client.websocket_connect("/ws") as ws:
            status_payload = join_ws(ws)
            assert status_payload["hasSubmitted"] is True
            assert status_payload["testId"] == test_id
            assert status_payload["testWord"] == "Kitap"


class TestAdminSocket:

    def test_admin_requires_valid_token(self, client):
        with client.websocket_connect("/ws") as ws:
            send(ws, "admin-connected", {"token": "forged"})
            assert recv_until(ws, "error")["payload"]["code"] == "unauthorized"

    def test_admin_sees_roster_and_submissions(self, client, admin_headers):
        with client.websocket_connect("/ws") as admin_ws:
            send(admin_ws, "admin-connected", {"token": admin_token(admin_headers)})
            status_payload = recv_until(admin_ws, "admin-status")["payload"]
            assert status_payload["userCount"] == 0
            assert status_payload["activeTest"] is None

            with client.websocket_connect("/ws") as ws:
                join_ws(ws)
                users = recv_until(admin_ws, "user-list-update")["payload"]["users"]
                assert [u["username"] for u in users] == ["Ayse"]

                res = client.post("/api/admin/test", json={"word": "Kitap"}, headers=admin_headers)
                client.post(f"/api/admin/test/{res.json()['data']['testId']}/start", headers=admin_headers)
                active = recv_until(admin_ws, "admin-status")["payload"]
                assert active["readyTest"]["word"] == "Kitap"
                active = recv_until(admin_ws, "admin-status")["payload"]
                assert active["activeTest"]["word"] == "Kitap"

                send(ws, "submit-words", {"words": ["okumak", "kalem"]})
                submitted = recv_until(admin_ws, "user-submitted")["payload"]
                assert submitted == {"username": "Ayse", "wordCount": 2}


class TestEmergencyResetSocket:

    def test_signal_then_close(self, client, admin_headers):
        res = client.post("/api/admin/test", json={"word": "Kitap"}, headers=admin_headers)
        client.post(f"/api/admin/test/{res.json()['data']['testId']}/start", headers=admin_headers)

        with client.websocket_connect("/ws") as ws:
            join_ws(ws)
            client.post("/api/admin/emergency-reset", headers=admin_headers)

            signal = recv_until(ws, "emergency-reset")
            assert signal["payload"]["timestamp"]
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == status.WS_1012_SERVICE_RESTART

        dashboard = client.get("/api/admin/dashboard", headers=admin_headers)
        assert dashboard.status_code == 401
