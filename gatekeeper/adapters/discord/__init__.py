"""Discord adapters - role grants and interaction reply edits over REST."""

from .interactions import DiscordInteractionNotifier
from .roles import DiscordRoleGateway, build_discord_client

__all__ = ["DiscordInteractionNotifier", "DiscordRoleGateway", "build_discord_client"]
