import atexit

from .server import create_app, shutdown_app

app = create_app()
atexit.register(shutdown_app, app)
