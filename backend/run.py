# run.py
import os
from app import create_app
from app.services.realtime import socketio

app = create_app()


if __name__ == '__main__':
    # Werkzeug dev server; put a proper async worker in front for production
    socketio.run(
        app,
        host=os.getenv('HOST', '0.0.0.0'),
        port=int(os.getenv('PORT', '5000')),
        debug=False,
        use_reloader=False,
        allow_unsafe_werkzeug=True,
    )
