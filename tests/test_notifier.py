import os
import sys
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from models import Expense, OverdueStatus, ProfitLossReport
from notifier import SLACK_POST_URL, SlackNotifier


def _ok(ts="123.456"):
    r = MagicMock()
    r.json.return_value = {"ok": True, "ts": ts}
    return r


def test_skips_without_token(monkeypatch, capsys):
    monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)
    with patch("notifier.requests.post") as mock_post:
        assert SlackNotifier().post_message("hi") is None
    mock_post.assert_not_called()
    assert "SLACK_BOT_TOKEN" in capsys.readouterr().out


@patch("notifier.requests.post")
def test_report_saved_posts_formatted_totals(mock_post):
    mock_post.return_value = _ok()
    report = ProfitLossReport(period="monthly", month="March", year="2025",
                              revenue=150000, expenses=100000, profit=50000)
    ts = SlackNotifier(bot_token="xoxb", channel_id="C1").report_saved(report)
    assert ts == "123.456"
    args, kwargs = mock_post.call_args
    assert args[0] == SLACK_POST_URL
    assert kwargs["headers"]["Authorization"] == "Bearer xoxb"
    assert kwargs["json"]["channel"] == "C1"
    assert "March 2025" in kwargs["json"]["text"]
    assert "₹50,000.00" in kwargs["json"]["text"]


@patch("notifier.requests.post")
def test_slack_error_raises(mock_post):
    r = MagicMock()
    r.json.return_value = {"ok": False, "error": "channel_not_found"}
    mock_post.return_value = r
    with pytest.raises(RuntimeError):
        SlackNotifier(bot_token="xoxb", channel_id="C1").post_message("hi")


@patch("notifier.requests.post")
def test_overdue_digest_truncates(mock_post):
    mock_post.return_value = _ok()
    rows = [
        (Expense(id=f"e{i}", user_id="u", amount=100, company=f"Co {i}"), OverdueStatus(True, 5))
        for i in range(3)
    ]
    SlackNotifier(bot_token="xoxb", channel_id="C1", locale="en-SG").overdue_digest(rows, limit=2)
    text = mock_post.call_args.kwargs["json"]["text"]
    assert text.startswith("3 overdue expense(s)")
    assert "Co 1: S$100.00 (5 days overdue)" in text
    assert "Co 2" not in text
    assert "1 more" in text


def test_overdue_digest_empty_sends_nothing():
    with patch("notifier.requests.post") as mock_post:
        assert SlackNotifier(bot_token="xoxb").overdue_digest([]) is None
    mock_post.assert_not_called()
