"""
Unit tests for the command-line interface.
"""

import json
import sys
import pytest

from teamctl import cli
from teamctl.communication.mailbox import MailboxStore
from teamctl.communication.message_types import InboxMessage


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["teamctl", *argv])
    return cli.main()


@pytest.mark.unit
class TestInboxCommand:

    def test_show_and_drain(self, monkeypatch, capsys, tmp_path):
        store = MailboxStore(tmp_path)
        store.append("team-a", "controller", InboxMessage(sender="alice", text="one"))

        assert run_cli(monkeypatch, "inbox", "team-a", "controller", "--base-dir", str(tmp_path)) == 0
        shown = json.loads(capsys.readouterr().out)
        assert [(m["from"], m["text"], m["read"]) for m in shown] == [("alice", "one", False)]

        assert run_cli(monkeypatch, "inbox", "team-a", "controller", "--drain",
                       "--base-dir", str(tmp_path)) == 0
        assert [m["text"] for m in json.loads(capsys.readouterr().out)] == ["one"]

        assert run_cli(monkeypatch, "inbox", "team-a", "controller", "--drain",
                       "--base-dir", str(tmp_path)) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_invalid_name(self, monkeypatch, capsys, tmp_path):
        assert run_cli(monkeypatch, "inbox", "../team", "alice", "--base-dir", str(tmp_path)) == 1
        assert "name must be" in capsys.readouterr().out


@pytest.mark.integration
class TestProbeCommand:

    def test_supported(self, monkeypatch, capsys, fake_claude):
        assert run_cli(monkeypatch, "probe", fake_claude) == 0
        assert "supports agent teams" in capsys.readouterr().out

    def test_unsupported(self, monkeypatch, capsys, old_claude):
        assert run_cli(monkeypatch, "probe", old_claude) == 1
        assert "does not appear to support" in capsys.readouterr().out
