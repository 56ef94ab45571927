"""Telegram notification handler."""
import html
import os
from typing import Optional

import structlog
from telegram import Bot
from telegram.constants import ParseMode

from nft_monitor.models import MonitoringLog, ScanResult, Severity

logger = structlog.get_logger()

SEVERITY_EMOJI = {
    Severity.HIGH: "🔴",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "⚪",
}


class TelegramNotifier:
    """Sends watch-list alerts and log digests to one or more Telegram chats."""

    def __init__(self, bot_token: Optional[str] = None, chat_ids: Optional[str] = None):
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN")
        chat_ids_str = chat_ids or os.getenv("TELEGRAM_CHAT_IDS") or os.getenv("TELEGRAM_CHAT_ID")

        # Comma separated: "123,456,789"
        self.chat_ids: list[str] = []
        if chat_ids_str:
            self.chat_ids = [cid.strip() for cid in chat_ids_str.split(",") if cid.strip()]

        self._bot: Optional[Bot] = None

        if not self.is_configured:
            logger.info("telegram_not_configured")
        else:
            logger.info("telegram_configured", chats=len(self.chat_ids))

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(token=self.bot_token)
        return self._bot

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_ids)

    async def _send_to_all(self, text: str, disable_preview: bool = True) -> int:
        """Send to every configured chat. Returns the number of successful sends."""
        success_count = 0
        for chat_id in self.chat_ids:
            try:
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=text,
                    parse_mode=ParseMode.HTML,
                    disable_web_page_preview=disable_preview,
                )
                success_count += 1
            except Exception as e:
                logger.warning("telegram_send_failed", chat_id=chat_id, error=str(e))
        return success_count

    async def send_watch_list_alert(self, result: ScanResult) -> bool:
        """Announce a collection that just joined the watch list."""
        if not self.is_configured:
            return False

        sent = await self._send_to_all(self.format_watch_list_alert(result))
        logger.info("watch_list_alert_sent", collection=result.collection, chats=sent)
        return sent > 0

    async def send_report(self, log: MonitoringLog) -> bool:
        """Send a digest of the monitoring log."""
        if not self.is_configured:
            logger.info("report_skipped", reason="telegram_not_configured")
            return False

        sent = await self._send_to_all(self.format_report(log))
        logger.info("report_sent", chats=sent)
        return sent > 0

    def format_watch_list_alert(self, result: ScanResult) -> str:
        """Format a new high-priority collection for Telegram."""
        stats = result.stats
        rec = result.recommendation
        alerts_text = "\n".join(
            f"  {SEVERITY_EMOJI[a.severity]} {html.escape(a.message)}" for a in result.alerts
        )
        url = f"https://opensea.io/collection/{result.collection}"

        return (
            "🚨 <b>New High Priority Collection</b>\n\n"
            f"<b>Collection:</b> {html.escape(result.collection)}\n"
            f"<b>Floor:</b> {stats.floor_price:.3f} {stats.floor_price_symbol} | "
            f"<b>24h Volume:</b> {stats.one_day_volume:.2f} | <b>24h Sales:</b> {stats.one_day_sales}\n"
            f"<b>Risk Score:</b> {result.risk_score}/100\n"
            f"<b>Action:</b> {rec.action.value} ({rec.confidence.value}) - {html.escape(rec.reasoning)}\n\n"
            f"<b>Alerts:</b>\n{alerts_text}\n\n"
            f"🔗 <a href=\"{url}\">View Collection</a>\n\n"
            "⚠️ <i>Heuristic alert only. DYOR.</i>"
        )

    def format_report(self, log: MonitoringLog, cycles: int = 6) -> str:
        """Format the recent history and watch list as one message."""
        updated = log.last_update.strftime("%Y-%m-%d %H:%M UTC") if log.last_update else "never"
        lines = ["📊 <b>NFT Activity Report</b>", f"<i>Last update: {updated}</i>", ""]

        recent = log.alert_history[-cycles:]
        if recent:
            lines.append(f"<b>Last {len(recent)} scans:</b>")
            for summary in reversed(recent):
                lines.append(
                    f"  • {summary.timestamp.strftime('%H:%M')} - "
                    f"{summary.total_alerts} active, {summary.high_priority_count} high priority"
                )
        else:
            lines.append("No scans recorded yet.")

        lines.append("")
        watch_list = sorted(log.high_priority_alerts, key=lambda e: e.risk_score, reverse=True)
        if watch_list:
            lines.append(f"🎯 <b>Watch list ({len(watch_list)}):</b>")
            for entry in watch_list[:10]:
                lines.append(
                    f"  • {html.escape(entry.collection)} - score {entry.risk_score} - "
                    f"{entry.recommendation.action.value} (since {entry.first_seen_at.strftime('%b %d')})"
                )
        else:
            lines.append("Watch list is empty.")

        return "\n".join(lines)
