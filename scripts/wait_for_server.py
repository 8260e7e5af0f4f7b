"""Block until a local mneme server answers /health (used before smoke tests)."""

import argparse
import sys
import time

import requests

SERVER_URL = "http://127.0.0.1:8777"
MAX_RETRIES = 30
DELAY = 1


def check_server(url: str) -> bool:
    try:
        response = requests.get(f"{url}/health", timeout=1)
        if response.status_code == 200:
            data = response.json()
            print(f"mneme server is up (v{data.get('version')})")
            return True
    except requests.exceptions.RequestException:
        pass
    return False


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", default=SERVER_URL)
    parser.add_argument("--retries", type=int, default=MAX_RETRIES)
    args = parser.parse_args()

    print(f"Waiting for mneme at {args.url}...")
    for i in range(args.retries):
        if check_server(args.url):
            sys.exit(0)
        time.sleep(DELAY)
        print(f"Retry {i + 1}/{args.retries}...")

    print("Timed out waiting for the server.")
    sys.exit(1)


if __name__ == "__main__":
    main()
