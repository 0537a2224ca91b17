"""Domain services shared by the HTTP routes and the socket handlers.

The app factory builds one engine (with its repository and question
supplier) and one connection registry per application and stores them in
``app.extensions``; these accessors fetch them for the current app.
"""

from flask import current_app

ENGINE_KEY = 'whosaidit.engine'
CONNECTIONS_KEY = 'whosaidit.connections'


def get_engine():
    return current_app.extensions[ENGINE_KEY]


def get_connections():
    return current_app.extensions[CONNECTIONS_KEY]
