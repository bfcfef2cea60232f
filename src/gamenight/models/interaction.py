"""Inbound Discord interaction payloads.

Only the fields the router reads are modelled; everything else Discord sends
is ignored. See https://discord.com/developers/docs/interactions/receiving-and-responding
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Interaction.context value for interactions that happen inside a guild.
GUILD_CONTEXT = 0


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class DiscordUser(_Payload):
    id: str
    username: str = ""
    global_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.global_name or self.username or self.id


class GuildMember(_Payload):
    user: DiscordUser
    nick: str | None = None


class CommandOption(_Payload):
    name: str
    type: int = 3
    value: Any = None


class InteractionData(_Payload):
    """The ``data`` object: command name, component custom_id, or modal fields."""

    name: str | None = None
    custom_id: str | None = None
    component_type: int | None = None
    options: list[CommandOption] = Field(default_factory=list)
    components: list[dict[str, Any]] = Field(default_factory=list)


class MessageRef(_Payload):
    """The message a component or modal interaction originated from."""

    id: str
    channel_id: str = ""
    components: list[dict[str, Any]] = Field(default_factory=list)
    embeds: list[dict[str, Any]] = Field(default_factory=list)


class Interaction(_Payload):
    id: str
    type: int
    token: str = ""
    application_id: str = ""
    channel_id: str | None = None
    guild_id: str | None = None
    context: int | None = None
    data: InteractionData | None = None
    member: GuildMember | None = None
    user: DiscordUser | None = None
    message: MessageRef | None = None

    @property
    def actor(self) -> DiscordUser:
        """The user who triggered the interaction.

        Guild interactions carry the user under ``member``; DMs and private
        channels carry it at the top level.
        """
        if self.context == GUILD_CONTEXT and self.member is not None:
            return self.member.user
        if self.user is not None:
            return self.user
        if self.member is not None:
            return self.member.user
        msg = f"Interaction {self.id} has no user"
        raise ValueError(msg)

    def option(self, name: str) -> str | None:
        """String value of a command option, or None when absent or blank."""
        if self.data is None:
            return None
        for opt in self.data.options:
            if opt.name == name:
                value = opt.value
                if value is None:
                    return None
                text = str(value).strip()
                return text or None
        return None

    def modal_values(self) -> dict[str, str]:
        """Flatten submitted modal fields into ``{custom_id: value}``.

        Handles both the classic layout (action rows wrapping text inputs)
        and the label layout (``component`` nested under a label).
        """
        values: dict[str, str] = {}
        if self.data is None:
            return values

        def _collect(component: dict[str, Any]) -> None:
            if "custom_id" in component and "value" in component:
                values[component["custom_id"]] = str(component["value"] or "")
            for child in component.get("components", []):
                _collect(child)
            if isinstance(component.get("component"), dict):
                _collect(component["component"])

        for component in self.data.components:
            _collect(component)
        return values
