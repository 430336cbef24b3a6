"""
Example: Proxy a GitHub API call through a locally running credproxy.

Run 'credproxy init' first, then set GITHUB_TOKEN and run this script from
the same directory. The script creates a project, stores the token as the
project's github_api_key secret and calls the GitHub API without ever
sending the token itself.
"""

import json
import os
import sys
import time

import httpx

from credproxy.server import run_server

BASE_URL = "http://127.0.0.1:8000"


def main():
    github_token = os.environ.get("GITHUB_TOKEN")
    if not github_token:
        sys.exit("Set GITHUB_TOKEN to run this example.")

    with open("config.json", "r", encoding="utf-8") as f:
        admin_token = json.load(f)["admin_token"]

    headers = {"Authorization": f"Bearer {admin_token}"}

    print("Starting credproxy...")

    # Server automatically starts on entry and stops on exit.
    with run_server(host="127.0.0.1", port=8000) as server:
        print(f"Server process ID: {server.pid}")
        time.sleep(1)

        with httpx.Client(base_url=BASE_URL, headers=headers) as admin:
            project = admin.post(
                "/api/projects", json={"name": "Example", "type": "web"}
            ).json()
            admin.post(
                f"/api/secrets/{project['id']}/github_api_key",
                json={"value": github_token},
            )

        # The proxy endpoint itself needs no admin credentials.
        response = httpx.get(
            f"{BASE_URL}/proxy/{project['id']}",
            params={"target_url": "https://api.github.com/user"},
        )
        print(f"GitHub answered {response.status_code}")
        print(response.json().get("login"))

        with httpx.Client(base_url=BASE_URL, headers=headers) as admin:
            for entry in admin.get(f"/api/logs/{project['id']}").json():
                print(entry["timestamp"], entry["method"], entry["status"])

    print("Server stopped.")


if __name__ == "__main__":
    main()
