# Overview: WSGI entrypoint; exposes the Flask app for servers and the flask CLI.

from storedesk import create_app

app = create_app()
