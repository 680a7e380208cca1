"""
Discord interaction notifier - edits the original ephemeral reply.

Register answers immediately with a "sending" message; once the email job
finishes, the reply is edited in place through the interaction webhook:

    PATCH /webhooks/{application_id}/{interaction_token}/messages/@original

Interaction tokens are valid for 15 minutes. An edit after that fails with
an HTTP error, which the delivery dispatcher logs and drops.
"""

import httpx

from gatekeeper.domain.ports import StatusCallback


class DiscordInteractionNotifier:
    """Builds StatusCallbacks bound to one interaction token."""

    def __init__(self, client: httpx.Client, application_id: int) -> None:
        self._client = client
        self._application_id = application_id

    def for_interaction(self, interaction_token: str) -> StatusCallback:
        path = f"/webhooks/{self._application_id}/{interaction_token}/messages/@original"

        def edit_original(content: str) -> None:
            response = self._client.patch(path, json={"content": content})
            response.raise_for_status()

        return edit_original
