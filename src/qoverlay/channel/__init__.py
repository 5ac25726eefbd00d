from qoverlay.channel.protocol import ChannelProtocol

__all__ = ["ChannelProtocol"]
