"""WSGI entry point for gunicorn.

Jobs, their expiry timers and ffmpeg processes live in this process's
memory, so run a single worker (``gunicorn -w 1 --threads 8 wsgi:application``);
a second worker would not see the first one's jobs.
"""

from convert_app import create_app

app, socketio = create_app()
application = app
