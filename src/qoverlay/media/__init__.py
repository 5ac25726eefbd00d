from qoverlay.media.decoder import ImageDecoder, PillowDecoder

__all__ = ["ImageDecoder", "PillowDecoder"]
