#!/usr/bin/env python3

"""
Functional tests for 'tunnelguard healthcheck'.

Checks the PASS/FAIL line and exit status against a fake kernel.
"""

import sys
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from click.testing import CliRunner

from tunnelguard import cli


def invoke(env=None):
    return CliRunner().invoke(cli, ["healthcheck"], env={"KILL_SWITCH": "on", **(env or {})})


def test_healthcheck_passes_with_killswitch(host, monkeypatch):
    monkeypatch.setattr("killswitch.health.requests.get", lambda url, timeout: None)
    installed = CliRunner().invoke(cli, ["killswitch"], env={"ALLOWED_SUBNETS": ""})
    assert installed.exit_code == 0, installed.output

    result = invoke()

    assert result.exit_code == 0
    assert "PASS: VPN tunnel fully established and protecting traffic" in result.output


def test_healthcheck_fails_on_missing_killswitch(host, monkeypatch):
    """Tunnel fine but no rules -> the killswitch check is named"""
    monkeypatch.setattr("killswitch.health.requests.get", lambda url, timeout: None)

    result = invoke()

    assert result.exit_code == 1
    assert "FAIL: Killswitch not active" in result.output


def test_healthcheck_ignores_rules_when_killswitch_off(host, monkeypatch):
    monkeypatch.setattr("killswitch.health.requests.get", lambda url, timeout: None)

    result = invoke(env={"KILL_SWITCH": "off"})

    assert result.exit_code == 0


def test_healthcheck_fails_without_process(host):
    host.client_running = False

    result = invoke()

    assert result.exit_code == 1
    assert "FAIL: OpenVPN process not running" in result.output


def test_healthcheck_fails_without_connectivity(host, monkeypatch):
    def unreachable(url, timeout):
        raise requests.ConnectionError("Temporary failure in name resolution")

    monkeypatch.setattr("killswitch.health.requests.get", unreachable)

    result = invoke()

    assert result.exit_code == 1
    assert "FAIL: DNS resolution and external connectivity not working" in result.output
