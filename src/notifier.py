import os
from typing import Dict, List, Optional, Tuple

import requests

from formatting import format_amount
from models import Expense, OverdueStatus, ProfitLossReport


SLACK_POST_URL = "https://slack.com/api/chat.postMessage"


class SlackNotifier:
    """Posts reconciliation events to a Slack channel."""

    def __init__(self, bot_token: Optional[str] = None, channel_id: Optional[str] = None, locale: str = "en-IN"):
        self.bot_token = bot_token if bot_token is not None else os.getenv("SLACK_BOT_TOKEN")
        self.channel_id = channel_id or os.getenv("SLACK_CHANNEL_ID", "#finance")
        self.locale = locale

    def post_message(self, text: str, blocks: Optional[List[Dict]] = None) -> Optional[str]:
        if not self.bot_token:
            print("⚠️ SLACK_BOT_TOKEN not set - skipping Slack message")
            return None
        headers = {"Authorization": f"Bearer {self.bot_token}", "Content-Type": "application/json; charset=utf-8"}
        payload = {"channel": self.channel_id, "text": text}
        if blocks:
            payload["blocks"] = blocks
        resp = requests.post(SLACK_POST_URL, headers=headers, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if not data.get("ok"):
            raise RuntimeError(f"Slack error: {data}")
        return data.get("ts")

    def report_saved(self, report: ProfitLossReport) -> Optional[str]:
        period = f"{report.month} {report.year}" if report.month else report.year
        text = (
            f"Profit/Loss report for {period} saved with total profit of "
            f"{format_amount(report.profit, self.locale)}"
        )
        blocks = [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*Profit/Loss Report Saved* ({period})"}},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Revenue*\n{format_amount(report.revenue, self.locale)}"},
                    {"type": "mrkdwn", "text": f"*Expenses*\n{format_amount(report.expenses, self.locale)}"},
                    {"type": "mrkdwn", "text": f"*Profit*\n{format_amount(report.profit, self.locale)}"},
                ],
            },
        ]
        return self.post_message(text, blocks)

    def overdue_digest(self, overdue: List[Tuple[Expense, OverdueStatus]], limit: int = 10) -> Optional[str]:
        if not overdue:
            return None
        lines = [
            f"• {e.client_name or e.company or e.user_id}: {format_amount(e.amount, self.locale)} "
            f"({s.days_overdue} days overdue)"
            for e, s in overdue[:limit]
        ]
        if len(overdue) > limit:
            lines.append(f"…and {len(overdue) - limit} more")
        text = f"{len(overdue)} overdue expense(s)\n" + "\n".join(lines)
        return self.post_message(text)
