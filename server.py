import http.server
import socketserver
import json
import os
import threading
import time
import traceback

import config

DIRECTORY = "web"


class Handler(http.server.SimpleHTTPRequestHandler):
    """Serves web/ (logs.json, events.json) plus the bot status at /status."""

    status_provider = None

    def __init__(self, *args, **kwargs):
        super().__init__(*args, directory=DIRECTORY, **kwargs)

    def do_GET(self):
        if self.path.rstrip("/") == "/status":
            provider = type(self).status_provider
            body = json.dumps(provider() if provider else {}).encode()
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        super().do_GET()

    def log_message(self, format, *args):
        # Silence server logs to keep terminal clean
        pass


def run_server(status_provider=None, port: int = None):
    port = port or config.PORT
    Handler.status_provider = status_provider

    while True:
        try:
            # Change into the directory of this script to ensure relative paths work
            script_dir = os.path.dirname(os.path.abspath(__file__))
            os.chdir(script_dir)
            os.makedirs(os.path.join(DIRECTORY, "public"), exist_ok=True)

            print(f"\n🌐 Starting event feed on PORT {port}...")
            print(f"📁 Serving directory: {os.path.abspath(DIRECTORY)}")

            # Listen on all interfaces (0.0.0.0) which is required for containers
            with socketserver.TCPServer(("0.0.0.0", port), Handler) as httpd:
                print(f"✅ EVENT FEED ACTIVE: http://0.0.0.0:{port}/public/events.json\n")
                httpd.serve_forever()
            return
        except OSError as e:
            print(f"❌ SERVER CRASH: {e}")
            print(f"Traceback: {traceback.format_exc()}")
            time.sleep(5)
            print("🔄 Attempting to restart server...")


def start_in_background(status_provider=None) -> threading.Thread:
    t = threading.Thread(target=run_server, args=(status_provider,), daemon=True)
    t.start()
    return t


if __name__ == "__main__":
    run_server()
