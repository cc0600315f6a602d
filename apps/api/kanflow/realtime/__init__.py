from kanflow.realtime.hub import RealtimeHub, board_room, hub, publish_board_event, publish_user_event, user_room

__all__ = ["RealtimeHub", "board_room", "hub", "publish_board_event", "publish_user_event", "user_room"]
