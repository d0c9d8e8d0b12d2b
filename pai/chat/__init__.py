"""Chat channel boundary."""

from pai.chat.gateway import Channel, Gateway, InboundMessage, OutboundMessage

__all__ = ["Channel", "Gateway", "InboundMessage", "OutboundMessage"]
