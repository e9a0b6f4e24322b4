#!/usr/bin/env python3
"""Start script that handles the PORT environment variable and the src layout."""

import os
import sys
import subprocess

# Get PORT from environment, default to 5050
port = os.environ.get("PORT", "5050")

try:
    port_int = int(port)
except ValueError:
    print(f"Warning: Invalid PORT value '{port}', using default 5050", file=sys.stderr)
    port_int = 5050

# Set PYTHONPATH to include src directory
pythonpath = os.environ.get("PYTHONPATH", "")
src_path = os.path.abspath("src")
if not os.path.isdir(src_path):
    print(f"Warning: src directory not found at {src_path}", file=sys.stderr)
    src_path = os.getcwd()

if pythonpath:
    os.environ["PYTHONPATH"] = f"{src_path}{os.pathsep}{pythonpath}"
else:
    os.environ["PYTHONPATH"] = src_path

cmd = [
    sys.executable,
    "-m",
    "uvicorn",
    "looproute.main:app",
    "--host",
    os.environ.get("HOST", "127.0.0.1"),
    "--port",
    str(port_int),
]

if not os.environ.get("LOOPROUTE_ORS_API_KEY"):
    print("Warning: LOOPROUTE_ORS_API_KEY is not set in the environment (a .env file may still provide it)", file=sys.stderr)

print(f"Starting server on port {port_int}...", file=sys.stderr)
try:
    sys.exit(subprocess.call(cmd))
except KeyboardInterrupt:
    print("Server interrupted by user", file=sys.stderr)
    sys.exit(0)
