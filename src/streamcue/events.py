"""Messages received from and sent to the trigger feed."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from .actions.models import ActionUser


class RedemptionMessage(BaseModel):
    """A viewer redeemed a channel point reward."""

    type: Literal["redemption"] = "redemption"
    reward_id: str
    user_id: str = ""
    user_login: str = ""
    user_name: str = ""
    user_input: str = ""

    def to_user(self) -> ActionUser:
        return ActionUser(id=self.user_id, login=self.user_login, name=self.user_name, input=self.user_input)


class CheerMessage(BaseModel):
    type: Literal["cheer"] = "cheer"
    bits: int = Field(ge=0)
    total_bits: int = Field(default=0, ge=0)
    user_id: str = ""
    user_login: str = ""
    user_name: str = ""
    message: str = ""

    def to_user(self) -> ActionUser:
        return ActionUser(
            id=self.user_id,
            login=self.user_login,
            name=self.user_name,
            input=self.message,
            bits=self.bits,
            bits_total=self.total_bits,
        )


class CommandMessage(BaseModel):
    """A chat line starting with the command prefix."""

    type: Literal["command"] = "command"
    text: str
    user_id: str = ""
    user_login: str = ""
    user_name: str = ""
    color: str = ""
    is_broadcaster: bool = False
    is_moderator: bool = False
    is_vip: bool = False
    is_subscriber: bool = False

    def split(self, prefix: str = "!") -> tuple[str, str]:
        """Return (command word, remaining input)."""
        text = self.text.strip()
        if prefix and text.startswith(prefix):
            text = text[len(prefix) :]
        word, _, rest = text.partition(" ")
        return word.lower(), rest.strip()

    def to_user(self, user_input: str = "") -> ActionUser:
        return ActionUser(
            id=self.user_id,
            login=self.user_login,
            name=self.user_name or self.user_login,
            input=user_input,
            color=self.color,
            is_broadcaster=self.is_broadcaster,
            is_moderator=self.is_moderator,
            is_vip=self.is_vip,
            is_subscriber=self.is_subscriber,
        )


class ChatOutMessage(BaseModel):
    type: Literal["chat"] = "chat"
    text: str


FeedMessage = Annotated[RedemptionMessage | CheerMessage | CommandMessage, Field(discriminator="type")]
feed_message_adapter: TypeAdapter[FeedMessage] = TypeAdapter(FeedMessage)
