"""
Realtime delivery of booking and safety events.

Key Components:
    - notifications.py: server-side dispatch (channel groups, e-mail, SMS hand-off)
    - consumers.py: the WebSocket endpoint each signed-in user connects to
    - middleware.py: JWT / session authentication for WebSocket connections
"""
