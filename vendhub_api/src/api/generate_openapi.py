"""
Write the OpenAPI schema to interfaces/openapi.json.

Usage:
    python -m src.api.generate_openapi [output_dir]
"""
import json
import os
import sys

from src.api.main import app, websocket_info


def build_schema() -> dict:
    schema = app.openapi()
    # WebSocket routes are invisible to OpenAPI; publish them as an extension
    schema["x-websocket-endpoints"] = websocket_info()["endpoints"]
    return schema


def main(output_dir: str = "interfaces") -> str:
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, "openapi.json")
    with open(output_path, "w") as f:
        json.dump(build_schema(), f, indent=2)
    return output_path


if __name__ == "__main__":
    print(main(*sys.argv[1:2]))
