def test_snapshot_on_connect(client):
    with client.websocket_connect("/ws/rates") as ws:
        message = ws.receive_json()
        assert message["event"] == "rates:update"
        assert len(message["rates"]) == 10
        usd = next(r for r in message["rates"] if r["currency_code"] == "USD")
        assert set(usd) == {"currency_code", "currency_name", "buy_rate", "sell_rate", "last_updated"}
        assert usd["sell_rate"] == 85.0


def test_ping_and_explicit_subscribe(client):
    with client.websocket_connect("/ws/rates") as ws:
        ws.receive_json()
        ws.send_text("ping")
        assert ws.receive_json() == {"event": "pong"}
        ws.send_json({"action": "subscribe:rates"})
        assert ws.receive_json()["event"] == "rates:update"
        ws.send_text("subscribe:rates")
        assert ws.receive_json()["event"] == "rates:update"
        ws.send_text("dance")
        assert ws.receive_json()["event"] == "error"


def test_admin_edit_pushes_update(live_client, admin_headers):
    with live_client.websocket_connect("/ws/rates") as ws:
        ws.receive_json()
        resp = live_client.put(
            "/admin/rates/USD", json={"sell_rate": 86.25}, headers=admin_headers
        )
        assert resp.status_code == 200, resp.text
        message = ws.receive_json()
        usd = next(r for r in message["rates"] if r["currency_code"] == "USD")
        assert usd["sell_rate"] == 86.25


def test_deleted_rate_drops_out_of_stream(live_client, admin_headers):
    with live_client.websocket_connect("/ws/rates") as ws:
        ws.receive_json()
        assert live_client.delete("/admin/rates/JPY", headers=admin_headers).status_code == 204
        codes = {r["currency_code"] for r in ws.receive_json()["rates"]}
        assert "JPY" not in codes
        assert len(codes) == 9
