import json
import socket
import stat
from datetime import datetime, timedelta, timezone

import pytest

from editrelay.intake import IntakeServer
from editrelay.service import IntakeService


@pytest.fixture
def server(socket_dir, buffer):
    srv = IntakeServer(socket_dir / "test.sock", IntakeService(buffer, machine="test-machine"))
    srv.start()
    yield srv
    srv.stop()


class Client:
    def __init__(self, path):
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock.settimeout(2.0)
        self.sock.connect(str(path))
        self.reader = self.sock.makefile("rb")

    def send_raw(self, raw: bytes) -> dict:
        self.sock.sendall(raw)
        line = self.reader.readline()
        assert line, "no response from server"
        return json.loads(line)

    def send(self, payload) -> dict:
        return self.send_raw((json.dumps(payload) + "\n").encode())

    def close(self):
        self.reader.close()
        self.sock.close()


@pytest.fixture
def client(server):
    conn = Client(server.path)
    yield conn
    conn.close()


def test_ping(client):
    assert client.send({"type": "ping"}) == {"ok": True}


def test_activity_insertion(client, buffer):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    response = client.send(
        {
            "type": "activity",
            "data": {
                "project": "blast",
                "git_remote": "git@github.com:taigrr/blast.git",
                "started_at": (now - timedelta(minutes=5)).isoformat(),
                "ended_at": now.isoformat(),
                "filetype": "go",
                "lines_added": 10,
                "lines_removed": 5,
                "actions_per_minute": 45.5,
                "words_per_minute": 60.2,
            },
        }
    )

    assert response == {"ok": True}
    activities = buffer.unconsumed(10)
    assert len(activities) == 1
    assert activities[0].project == "blast"
    assert activities[0].machine == "test-machine"
    assert activities[0].editor == "neovim"
    assert activities[0].ended_at == now


def test_malformed_line_keeps_connection_open(client):
    response = client.send_raw(b"not json\n")

    assert response["ok"] is False
    assert response["error"] == "invalid json"
    assert client.send({"type": "ping"}) == {"ok": True}


def test_unknown_request_type(client):
    response = client.send({"type": "unknown"})

    assert response == {"ok": False, "error": "unknown request type"}
    assert client.send({"type": "ping"}) == {"ok": True}


def test_sync_not_wired(client):
    assert client.send({"type": "sync"}) == {"ok": False, "error": "sync not available"}


def test_pipelined_lines_answered_in_order(client):
    client.sock.sendall(b'{"type": "ping"}\nnope\n{"type": "bogus"}\n')

    responses = [json.loads(client.reader.readline()) for _ in range(3)]

    assert responses == [
        {"ok": True},
        {"ok": False, "error": "invalid json"},
        {"ok": False, "error": "unknown request type"},
    ]


def test_concurrent_clients(server):
    first = Client(server.path)
    second = Client(server.path)
    try:
        assert first.send({"type": "ping"}) == {"ok": True}
        assert second.send({"type": "ping"}) == {"ok": True}
        assert first.send({"type": "ping"}) == {"ok": True}
    finally:
        first.close()
        second.close()


def test_socket_is_owner_only(server):
    mode = stat.S_IMODE(server.path.stat().st_mode)

    assert mode == 0o600


def test_start_replaces_stale_socket_and_stop_removes_it(socket_dir, buffer):
    path = socket_dir / "stale.sock"
    path.write_text("left over")
    srv = IntakeServer(path, IntakeService(buffer, machine="m"))

    srv.start()
    assert stat.S_ISSOCK(path.stat().st_mode)

    srv.stop()
    assert not path.exists()
