from .live_streams import (
    create_live_stream,
    end_live_stream_for_room,
    get_live_stream_by_room_name,
    mark_stream_live,
)
