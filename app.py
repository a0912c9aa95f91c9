# app.py
import logging
import os

from flask import Flask

from celery_app import celery_app  # noqa: F401  (binds the shared notification tasks)
from notifications.api import bp as notifications_bp

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = Flask(__name__)

DEBUG = os.getenv("FLASK_ENV") != "production"

app.register_blueprint(notifications_bp)


@app.get("/healthz")
def healthz():
    return {"ok": True}, 200


if __name__ == "__main__":
    app.run(debug=DEBUG)
