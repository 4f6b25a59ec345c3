"""Chat command handlers.

The chat gateway (a Discord client, in practice) routes its slash
commands here and sends back whatever ``ChatReply`` comes out. Replies
are always private to the invoking user.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, Field

from bothost.service import HostingService
from bothost.types import BotStatus


class ReplyField(BaseModel):
    name: str
    value: str
    inline: bool = False


class ChatReply(BaseModel):
    title: str = ""
    content: str
    fields: list[ReplyField] = Field(default_factory=list)
    link_url: str = ""
    ephemeral: bool = True


def _minutes(ttl: timedelta) -> str:
    minutes = int(ttl.total_seconds() // 60)
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


async def verify(
    service: HostingService,
    user_id: str,
    username: str,
    avatar: str = "",
    login_url: str = "",
) -> ChatReply:
    """Issue a login code for the invoking user."""
    code = await service.issue_code(user_id, username, avatar)
    return ChatReply(
        title="Your verification code",
        content="Use this code to sign in to the dashboard.",
        fields=[
            ReplyField(name="Code", value=f"`{code}`"),
            ReplyField(name="Valid for", value=_minutes(service.broker.ttl), inline=True),
            ReplyField(name="Uses", value="Once", inline=True),
        ],
        link_url=login_url,
    )


async def my_bots(service: HostingService, user_id: str) -> ChatReply:
    tenant = await service.registry.find_tenant(user_id)
    if tenant is None:
        return ChatReply(
            content="You have not signed in to the dashboard yet. Run `/verify` first."
        )

    bots = await service.list_bots(tenant.id)
    if not bots:
        return ChatReply(content="You are not hosting any bots yet.")

    fields = []
    for i, bot in enumerate(bots, start=1):
        state = "running" if bot.status == BotStatus.RUNNING else "stopped"
        fields.append(ReplyField(
            name=f"{i}. {bot.name}",
            value=f"Status: {state}\nCreated: <t:{int(bot.created_at.timestamp())}:R>",
            inline=True,
        ))
    return ChatReply(
        title="Your bots",
        content=f"Total bots: **{len(bots)}**",
        fields=fields,
    )


async def stats(service: HostingService) -> ChatReply:
    s = await service.platform_stats()
    return ChatReply(
        title="Platform statistics",
        content="",
        fields=[
            ReplyField(name="Users", value=str(s["users"]), inline=True),
            ReplyField(name="Bots", value=str(s["bots"]), inline=True),
            ReplyField(name="Running", value=str(s["running_bots"]), inline=True),
            ReplyField(name="Stopped", value=str(s["stopped_bots"]), inline=True),
            ReplyField(name="Uptime", value=f"{s['uptime_pct']}%", inline=True),
        ],
    )


COMMANDS = {
    "verify": verify,
    "mybots": my_bots,
    "stats": stats,
}
