#!/usr/bin/env python
"""
RosterDesk entry point.

`flask --app run` and gunicorn (`run:app`) both pick up `app` from here;
running the file directly starts the development server.
"""
import os
from dotenv import load_dotenv

# .env values must be in place before the config classes are imported
load_dotenv()

from rosterdesk import create_app

app = create_app(os.environ.get('FLASK_ENV', 'development'))

if __name__ == '__main__':
    host = os.environ.get('FLASK_HOST', '127.0.0.1')
    port = int(os.environ.get('FLASK_PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'

    print(f"""
    ----------------------------------------------
      RosterDesk API  (development server)
      http://{host}:{port}/api/v1
      env={os.environ.get('FLASK_ENV', 'development')} debug={debug}
    ----------------------------------------------
    """)

    app.run(host=host, port=port, debug=debug)
