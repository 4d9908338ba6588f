"""WSGI entrypoint for the Heirloom Kitchen application.

Containerized deployments serve this module with Gunicorn
(``gunicorn main:app``). Local development can use ``flask --app main run``,
which imports the ``app`` object defined below.
"""

import logging

from heirloom import create_app

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = create_app()


__all__ = ["app"]
