"""
config.py - Settings read from the environment
"""

import os


def env_flag(name: str, default: str = 'False') -> bool:
    return os.environ.get(name, default).lower() in ('true', '1', 't')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'jass-dev-secret-key')
    DEVELOPER_MODE = env_flag('DEVELOPER_MODE')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

    # Pacing: how long a bot "thinks" and how long a finished trick stays on the table
    BOT_DELAY = float(os.environ.get('JASS_BOT_DELAY', '1.0'))
    TRICK_DELAY = float(os.environ.get('JASS_TRICK_DELAY', '2.0'))
    WINNING_SCORE = int(os.environ.get('JASS_WINNING_SCORE', '1000'))
    # Rooms whose humans all disconnected are closed after this many seconds
    IDLE_ROOM_TIMEOUT = float(os.environ.get('JASS_IDLE_ROOM_TIMEOUT', '300'))

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'gevent')
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', '5000'))
