"""
Pytest fixtures for functional tests.

The CLI runs end to end through the real command, firewall and rule store
code. Only the kernel is faked: iptables/ip/pgrep invocations go to a
FakeHost and interface addresses come from a fake netifaces.
"""

import logging
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from lib.test_stubs import TUNNEL_ADDRESSES, FakeHost, completed, fake_netifaces


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI group reconfigures the root logger; put it back afterwards."""
    level, handlers = logging.root.level, list(logging.root.handlers)
    yield
    logging.root.setLevel(level)
    logging.root.handlers = handlers


@pytest.fixture
def addresses(monkeypatch):
    """Interface addresses of a namespace with a connected tunnel."""
    current = {name: list(entries) for name, entries in TUNNEL_ADDRESSES.items()}
    mock_netifaces = Mock()
    fake_netifaces(mock_netifaces, current)
    monkeypatch.setattr("killswitch.netstate.netifaces", mock_netifaces)
    return current


@pytest.fixture
def host(monkeypatch, addresses):
    """FakeHost behind lib.utils.run_command, with the client process running."""
    fake = FakeHost()
    fake.client_running = True

    def fake_run(command, **kwargs):
        if command[0] == "pgrep":
            return completed(command, 0 if fake.client_running else 1)
        return fake(command)

    monkeypatch.setattr("lib.utils.subprocess.run", fake_run)
    return fake


@pytest.fixture
def client_config(tmp_path):
    """OpenVPN client config with one literal and one hostname remote."""
    config = tmp_path / "client.ovpn"
    config.write_text("client\ndev tun\nremote 203.0.113.5 1194 udp\nremote vpn.example.com 443 tcp\n")
    return config
