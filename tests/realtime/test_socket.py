# tests/realtime/test_socket.py
"""End-to-end tests for the ``/ws`` realtime endpoint."""

import pytest
from starlette.websockets import WebSocketDisconnect

from parley.realtime.endpoint import AUTH_FAILED_CLOSE_CODE


@pytest.fixture
def connect(client, make_token):
    def _connect(user_id: str):
        return client.websocket_connect(f"/ws?token={make_token(user_id)}")

    return _connect


def _send_text(ws, receiver_id: str, content: str, ack=None) -> None:
    ws.send_json(
        {
            "event": "send_message",
            "data": {"receiverId": receiver_id, "messageType": "text", "content": content},
            "ack": ack,
        }
    )


class TestAuthentication:
    def test_missing_token_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass
        assert exc_info.value.code == AUTH_FAILED_CLOSE_CODE

    def test_invalid_token_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?token=not-a-jwt"):
                pass
        assert exc_info.value.code == AUTH_FAILED_CLOSE_CODE

    def test_authorization_header_is_accepted(self, client, make_token):
        headers = {"Authorization": f"Bearer {make_token('alice')}"}
        with client.websocket_connect("/ws", headers=headers) as ws:
            ws.send_json({"event": "get_unread_count", "ack": 1})
            assert ws.receive_json() == {
                "event": "ack",
                "ack": 1,
                "success": True,
                "unreadCount": 0,
            }


class TestMessaging:
    def test_hello_is_acked_pushed_and_delivered(self, connect):
        with connect("alice") as alice, connect("bob") as bob:
            _send_text(alice, "bob", "Hello", ack=1)

            ack = alice.receive_json()
            assert ack["event"] == "ack"
            assert ack["ack"] == 1
            assert ack["success"] is True
            message = ack["message"]
            assert message["content"] == "Hello"
            assert message["senderId"] == "alice"
            assert message["receiverId"] == "bob"

            push = bob.receive_json()
            assert push["event"] == "new_message"
            assert push["data"]["id"] == message["id"]
            assert push["data"]["content"] == "Hello"

            bob.send_json(
                {"event": "message_delivered", "data": {"messageId": message["id"]}, "ack": 2}
            )
            assert bob.receive_json() == {"event": "ack", "ack": 2, "success": True}

            receipt = alice.receive_json()
            assert receipt["event"] == "message_delivered"
            assert receipt["data"]["messageId"] == message["id"]
            assert receipt["data"]["deliveredAt"]

    def test_read_receipts_clear_unread_count(self, connect):
        with connect("alice") as alice, connect("bob") as bob:
            ids = []
            for index, text in enumerate(("one", "two", "three"), start=1):
                _send_text(alice, "bob", text, ack=index)
                ids.append(alice.receive_json()["message"]["id"])
            for _ in ids:
                assert bob.receive_json()["event"] == "new_message"

            bob.send_json({"event": "get_unread_count", "ack": 10})
            assert bob.receive_json()["unreadCount"] == 3

            bob.send_json({"event": "messages_read", "data": {"messageIds": ids}, "ack": 11})
            assert bob.receive_json() == {"event": "ack", "ack": 11, "success": True}

            receipt = alice.receive_json()
            assert receipt["event"] == "messages_read"
            assert sorted(receipt["data"]["messageIds"]) == sorted(ids)
            assert receipt["data"]["readBy"] == "bob"
            assert receipt["data"]["readAt"]

            bob.send_json({"event": "get_unread_count", "ack": 12})
            assert bob.receive_json()["unreadCount"] == 0

    def test_unread_messages_wait_for_offline_receiver(self, connect):
        with connect("alice") as alice:
            ids = []
            for index, text in enumerate(("one", "two", "three"), start=1):
                _send_text(alice, "bob", text, ack=index)
                ids.append(alice.receive_json()["message"]["id"])

            with connect("bob") as bob:
                online = alice.receive_json()
                assert online["event"] == "user_online"
                assert online["data"]["userId"] == "bob"

                bob.send_json({"event": "get_unread_count", "ack": 10})
                assert bob.receive_json()["unreadCount"] == 3

                bob.send_json({"event": "messages_read", "data": {"messageIds": ids}, "ack": 11})
                assert bob.receive_json() == {"event": "ack", "ack": 11, "success": True}

                receipt = alice.receive_json()
                assert receipt["event"] == "messages_read"
                assert sorted(receipt["data"]["messageIds"]) == sorted(ids)
                assert receipt["data"]["readBy"] == "bob"

                bob.send_json({"event": "get_unread_count", "ack": 12})
                assert bob.receive_json()["unreadCount"] == 0

                # One receipt only: the next frame alice sees answers her own request.
                alice.send_json({"event": "get_unread_count", "ack": 13})
                assert alice.receive_json()["ack"] == 13

    def test_blocked_conversation_fails_until_unblocked(self, client, connect, auth_headers):
        with connect("alice") as alice:
            _send_text(alice, "bob", "first", ack=1)
            conversation_id = alice.receive_json()["message"]["conversationId"]

            response = client.post(
                f"/api/v1/chat/conversations/{conversation_id}/block",
                headers=auth_headers("alice"),
            )
            assert response.status_code == 200

            _send_text(alice, "bob", "second", ack=2)
            assert alice.receive_json() == {
                "event": "ack",
                "ack": 2,
                "success": False,
                "error": "Cannot send message to blocked conversation",
            }

            response = client.post(
                f"/api/v1/chat/conversations/{conversation_id}/unblock",
                headers=auth_headers("bob"),
            )
            assert response.status_code == 200

            _send_text(alice, "bob", "third", ack=3)
            assert alice.receive_json()["success"] is True

    def test_fetch_history_and_conversations(self, connect):
        with connect("alice") as alice:
            _send_text(alice, "bob", "kept", ack=1)
            conversation_id = alice.receive_json()["message"]["conversationId"]

            alice.send_json(
                {"event": "fetch_messages", "data": {"conversationId": conversation_id}, "ack": 2}
            )
            history = alice.receive_json()
            assert history["success"] is True
            assert history["data"]["total"] == 1
            assert history["data"]["messages"][0]["content"] == "kept"

            alice.send_json({"event": "fetch_conversations", "data": {"page": 1}, "ack": 3})
            listing = alice.receive_json()
            assert listing["data"]["total"] == 1
            assert listing["data"]["conversations"][0]["lastMessagePreview"] == "kept"

    def test_outsider_cannot_fetch_history(self, connect):
        with connect("alice") as alice, connect("mallory") as mallory:
            _send_text(alice, "bob", "private", ack=1)
            conversation_id = alice.receive_json()["message"]["conversationId"]

            mallory.send_json(
                {"event": "fetch_messages", "data": {"conversationId": conversation_id}, "ack": 9}
            )
            reply = mallory.receive_json()
            assert reply["success"] is False
            assert reply["error"] == "Not a participant of this conversation"

    def test_delete_by_non_sender_fails(self, connect):
        with connect("alice") as alice, connect("bob") as bob:
            _send_text(alice, "bob", "mine", ack=1)
            message_id = alice.receive_json()["message"]["id"]
            bob.receive_json()

            bob.send_json({"event": "delete_message", "data": {"messageId": message_id}, "ack": 2})
            reply = bob.receive_json()
            assert reply["success"] is False
            assert reply["error"] == "Unauthorized to delete this message"

            alice.send_json({"event": "delete_message", "data": {"messageId": message_id}, "ack": 3})
            assert alice.receive_json()["success"] is True

    def test_invalid_commands_keep_connection_open(self, connect):
        with connect("alice") as alice:
            alice.send_text("{not json")
            assert alice.receive_json()["event"] == "error"

            alice.send_json({"event": "messages_read", "data": {"messageIds": "m1"}, "ack": 4})
            reply = alice.receive_json()
            assert reply["ack"] == 4
            assert reply["success"] is False

            _send_text(alice, "bob", "   ", ack=5)
            assert alice.receive_json()["error"] == "Message content cannot be empty"

            alice.send_json({"event": "message_delivered", "data": {}, "ack": 6})
            assert alice.receive_json() == {"event": "ack", "ack": 6, "success": True}

            alice.send_json({"event": "get_unread_count", "ack": 7})
            assert alice.receive_json()["success"] is True


class TestPresenceAndTyping:
    def test_partners_see_online_and_offline(self, client, connect, auth_headers):
        response = client.post(
            "/api/v1/chat/messages",
            json={"receiverId": "bob", "messageType": "text", "content": "hi"},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 201

        with connect("alice") as alice, connect("carol"):
            with connect("bob"):
                online = alice.receive_json()
                assert online["event"] == "user_online"
                assert online["data"]["userId"] == "bob"

            offline = alice.receive_json()
            assert offline["event"] == "user_offline"
            assert offline["data"]["userId"] == "bob"

            alice.send_json({"event": "get_user_status", "data": {"userId": "bob"}, "ack": 1})
            status = alice.receive_json()["status"]
            assert status["online"] is False

            alice.send_json(
                {"event": "get_users_status", "data": {"userIds": ["alice", "carol", "zed"]}, "ack": 2}
            )
            statuses = {
                item["userId"]: item["status"] for item in alice.receive_json()["statuses"]
            }
            assert statuses["alice"]["online"] is True
            assert statuses["carol"]["online"] is True
            assert statuses["zed"] is None

    def test_refresh_status(self, connect):
        with connect("alice") as alice:
            alice.send_json({"event": "refresh_status", "ack": 1})
            assert alice.receive_json() == {
                "event": "ack",
                "ack": 1,
                "success": True,
                "refreshed": True,
            }

    def test_typing_indicators(self, connect):
        with connect("alice") as alice, connect("bob") as bob:
            typing = {"conversationId": "conv-1", "receiverId": "bob"}
            alice.send_json({"event": "typing_start", "data": typing})

            started = bob.receive_json()
            assert started["event"] == "user_typing"
            assert started["data"]["conversationId"] == "conv-1"
            assert started["data"]["userId"] == "alice"
            assert isinstance(started["data"]["timestamp"], int)

            check = {"conversationId": "conv-1", "userId": "alice"}
            bob.send_json({"event": "check_typing", "data": check, "ack": 1})
            assert bob.receive_json()["isTyping"] is True

            alice.send_json({"event": "typing_stop", "data": typing})
            assert bob.receive_json()["event"] == "user_stopped_typing"

            bob.send_json({"event": "check_typing", "data": check, "ack": 2})
            assert bob.receive_json()["isTyping"] is False
