"""Health check endpoint."""

import os
from api._common import JsonHandler

SERVICE_NAME = "marketplace-match-backend"


class handler(JsonHandler):
    """Unauthenticated liveness check. Answers GET and POST alike."""

    endpoint = "health"

    def do_GET(self):
        self.send_json(200, {
            "status": "ok",
            "service": SERVICE_NAME,
            "environment": os.environ.get("ENVIRONMENT", "production"),
        })

    def do_POST(self):
        self.do_GET()
