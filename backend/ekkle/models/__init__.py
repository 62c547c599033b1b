from .live_streams import LiveStream
